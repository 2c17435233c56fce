"""
Builders for the three programmable transactions of an upload session.

registration:  split native coin -> exchange into settlement coin -> per asset
               reserve space + register blob (+ content-type metadata) ->
               return leftover settlement coin -> write video metadata
tip:           relay fee payment carrying the asset's auth digest
certification: one certify call per asset with its relay certificate
"""

import logging
from typing import Dict, List

from .models import (
    AssetAddress, ProgrammableTransaction, RegistrationPlan, TipConfig, UploadCertificate
)
from .types import AssetLabel, CertificationPreconditionError
from .utils import signers_to_bitmap

logger = logging.getLogger(__name__)

CONTENT_TYPE_ATTRIBUTE = "content-type"


def build_registration_transaction(plan: RegistrationPlan, settings) -> ProgrammableTransaction:
    """Build the atomic registration transaction for every asset in ``plan``"""
    walrus = settings.walrus_package_id
    app = settings.app_package_id

    tx = ProgrammableTransaction(sender=plan.owner)
    owner = tx.pure(plan.owner, "address")

    # Funding: native coin exchanged into settlement coin
    [native] = tx.split_coins(tx.gas(), [tx.pure(plan.funding.native_amount, "u64")])
    settlement = tx.move_call(
        f"{app}::{settings.exchange_function}",
        [tx.object(settings.dex_bank_id), native],
        [settings.settlement_coin_type],
    )

    system = tx.object(settings.walrus_system_object_id)
    for entry in plan.entries:
        address = entry.address
        storage = tx.move_call(
            f"{walrus}::system::reserve_space",
            [system, tx.pure(entry.size, "u64"), tx.pure(entry.epochs, "u32"), settlement],
        )
        blob = tx.move_call(
            f"{walrus}::system::register_blob",
            [
                system,
                storage,
                tx.pure(address.blob_id_u256, "u256"),
                tx.pure(address.root_hash_u256, "u256"),
                tx.pure(entry.size, "u64"),
                tx.pure(address.encoding_type.value, "u8"),
                tx.pure(entry.deletable, "bool"),
                settlement,
            ],
        )
        if entry.content_type:
            metadata = tx.move_call(f"{walrus}::metadata::new", [])
            tx.move_call(
                f"{walrus}::metadata::insert_or_update",
                [metadata, tx.pure(CONTENT_TYPE_ATTRIBUTE, "string"), tx.pure(entry.content_type, "string")],
            )
            tx.move_call(f"{walrus}::blob::add_or_replace_metadata", [blob, metadata])
        tx.transfer_objects([blob], owner)

    # Leftover settlement coin must be disposed of explicitly
    tx.transfer_objects([settlement], owner)

    meta = plan.metadata
    tx.move_call(
        f"{app}::video_platform::create_video",
        [
            tx.pure(meta.title, "string"),
            tx.pure(meta.description, "string"),
            tx.pure(meta.video_id, "string"),
            tx.pure(meta.manifest_id, "string"),
            tx.pure(meta.cover_id, "string"),
            tx.pure(meta.key_id, "string"),
            tx.pure(meta.policy_id, "vector<u8>"),
            tx.pure(meta.price, "u64"),
        ],
    )

    logger.debug(
        f"Registration transaction built: {len(plan.entries)} assets, "
        f"{len(tx.commands)} commands"
    )
    return tx


def build_tip_transaction(address: AssetAddress, tip: TipConfig, sender: str) -> ProgrammableTransaction:
    """
    Build the relay fee payment for one asset.

    The first input is the auth digest; the relay reads it back from the
    transaction to authorize the matching transmission.
    """
    tx = ProgrammableTransaction(sender=sender)
    tx.pure(address.auth_digest, "vector<u8>")
    [fee] = tx.split_coins(tx.gas(), [tx.pure(tip.amount, "u64")])
    tx.transfer_objects([fee], tx.pure(tip.address, "address"))
    return tx


def build_certification_transaction(sender: str,
                                    addresses: List[AssetAddress],
                                    blob_object_ids: Dict[str, str],
                                    certificates: Dict[str, UploadCertificate],
                                    settings) -> ProgrammableTransaction:
    """Build one certify call per asset; every asset must have a certificate"""
    missing: List[AssetLabel] = [
        address.label for address in addresses
        if address.content_id not in certificates or address.content_id not in blob_object_ids
    ]
    if missing:
        raise CertificationPreconditionError(missing)

    walrus = settings.walrus_package_id
    tx = ProgrammableTransaction(sender=sender)
    system = tx.object(settings.walrus_system_object_id)
    for address in addresses:
        certificate = certificates[address.content_id]
        tx.move_call(
            f"{walrus}::system::certify_blob",
            [
                system,
                tx.object(blob_object_ids[address.content_id]),
                tx.pure(certificate.signature, "vector<u8>"),
                tx.pure(signers_to_bitmap(certificate.signers), "vector<u8>"),
                tx.pure(certificate.serialized_message, "vector<u8>"),
            ],
        )
    return tx
