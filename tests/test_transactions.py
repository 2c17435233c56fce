"""
Tests for registration, tip and certification transaction builders
"""

import json

import pytest

from suistream_pipeline.addressing import ContentAddresser
from suistream_pipeline.models import (
    FundingInstruction, RegistrationEntry, RegistrationPlan, TipConfig, UploadCertificate,
    VideoMetadata
)
from suistream_pipeline.transactions import (
    build_certification_transaction, build_registration_transaction, build_tip_transaction
)
from suistream_pipeline.types import ASSET_ORDER, AssetLabel, CertificationPreconditionError

OWNER = "0x" + "11" * 32


@pytest.fixture
def addresses():
    addresser = ContentAddresser(shard_count=10)
    return [addresser.compute(label.value.encode() * 50, label) for label in ASSET_ORDER]


@pytest.fixture
def plan(addresses):
    entries = [
        RegistrationEntry(
            address=address,
            size=address.size,
            epochs=2,
            deletable=False,
            content_type="image/png" if address.label == AssetLabel.COVER else None,
        )
        for address in addresses
    ]
    by_label = {a.label: a.content_id for a in addresses}
    return RegistrationPlan(
        owner=OWNER,
        entries=entries,
        funding=FundingInstruction(native_amount=5000, settlement_amount=2000),
        metadata=VideoMetadata(
            title="Title",
            description="Description",
            video_id=by_label[AssetLabel.VIDEO],
            manifest_id=by_label[AssetLabel.MANIFEST],
            cover_id=by_label[AssetLabel.COVER],
            key_id=by_label[AssetLabel.KEY],
            policy_id=b"\x09" * 32,
            price=42,
        ),
    )


class TestRegistrationTransaction:
    """Test suite for the atomic registration transaction"""

    def test_command_order(self, plan, settings):
        tx = build_registration_transaction(plan, settings)
        summary = [(c.kind, c.target) for c in tx.commands]

        assert summary[0] == ("SplitCoins", None)
        assert summary[1] == ("MoveCall", "0xb0b::mock_dex::swap_sui_for_token")
        assert summary[-2] == ("TransferObjects", None)
        assert summary[-1] == ("MoveCall", "0xb0b::video_platform::create_video")

        registrations = [i for i, (_, target) in enumerate(summary) if target and target.endswith("::register_blob")]
        assert len(registrations) == 4
        assert all(1 < i < len(summary) - 2 for i in registrations)

    def test_funding_and_exchange(self, plan, settings):
        tx = build_registration_transaction(plan, settings)
        split = tx.commands[0]
        assert tx.input_value(split.arguments[1]) == 5000
        exchange = tx.commands[1]
        assert exchange.type_arguments == ["0xa11::wal::WAL"]
        assert tx.input_value(exchange.arguments[0]) == "0xba4c"

    def test_register_blob_arguments(self, plan, settings, addresses):
        tx = build_registration_transaction(plan, settings)
        calls = tx.move_calls("::system::register_blob")

        for call, address in zip(calls, addresses):
            assert call.target == "0xa11::system::register_blob"
            args = call.arguments
            assert tx.input_value(args[0]) == "0x5e5"
            assert tx.input_value(args[2]) == address.blob_id_u256
            assert tx.input_value(args[3]) == address.root_hash_u256
            assert tx.input_value(args[4]) == address.size
            assert tx.input_value(args[5]) == 1
            assert tx.input_value(args[6]) is False

        reserve = tx.move_calls("::system::reserve_space")
        assert [tx.input_value(c.arguments[2]) for c in reserve] == [2, 2, 2, 2]

    def test_content_type_metadata_only_when_set(self, plan, settings):
        tx = build_registration_transaction(plan, settings)
        inserts = tx.move_calls("::metadata::insert_or_update")
        assert len(inserts) == 1
        assert tx.input_value(inserts[0].arguments[1]) == "content-type"
        assert tx.input_value(inserts[0].arguments[2]) == "image/png"
        assert len(tx.move_calls("::blob::add_or_replace_metadata")) == 1

    def test_leftover_settlement_returned_to_owner(self, plan, settings):
        tx = build_registration_transaction(plan, settings)
        balancing = tx.commands[-2]
        settlement_coin = balancing.arguments[0]
        assert settlement_coin.kind == "Result" and settlement_coin.index == 1
        assert tx.input_value(balancing.arguments[-1]) == OWNER

    def test_video_metadata_write(self, plan, settings):
        tx = build_registration_transaction(plan, settings)
        values = [tx.input_value(arg) for arg in tx.commands[-1].arguments]
        meta = plan.metadata
        assert values == [
            "Title", "Description", meta.video_id, meta.manifest_id,
            meta.cover_id, meta.key_id, b"\x09" * 32, 42,
        ]

    def test_to_dict_is_json_serializable(self, plan, settings):
        payload = build_registration_transaction(plan, settings).to_dict()
        encoded = json.loads(json.dumps(payload))
        assert encoded["sender"] == OWNER
        assert encoded["inputs"][1] == {"Pure": {"type": "u64", "value": "5000"}}
        assert encoded["commands"][0]["arguments"][0] == {"GasCoin": True}


class TestTipTransaction:
    """Test suite for the relay fee transaction"""

    def test_auth_digest_is_first_input(self, addresses):
        address = addresses[0]
        tx = build_tip_transaction(address, TipConfig(address="0x" + "ab" * 32, amount=777), OWNER)

        assert tx.inputs[0].value == address.auth_digest
        assert tx.inputs[0].type_tag == "vector<u8>"
        assert [c.kind for c in tx.commands] == ["SplitCoins", "TransferObjects"]
        assert tx.input_value(tx.commands[0].arguments[1]) == 777
        assert tx.input_value(tx.commands[1].arguments[-1]) == "0x" + "ab" * 32


class TestCertificationTransaction:
    """Test suite for the certification transaction"""

    def _certificates(self, addresses):
        return {
            a.content_id: UploadCertificate(a.content_id, [0, 2, 5], b"msg", b"sig")
            for a in addresses
        }

    def test_one_certify_call_per_asset(self, addresses, settings):
        object_ids = {a.content_id: f"0x{i + 1:064x}" for i, a in enumerate(addresses)}
        tx = build_certification_transaction(
            OWNER, addresses, object_ids, self._certificates(addresses), settings
        )

        calls = tx.move_calls("::system::certify_blob")
        assert len(calls) == 4
        for call, address in zip(calls, addresses):
            assert tx.input_value(call.arguments[1]) == object_ids[address.content_id]
            assert tx.input_value(call.arguments[2]) == b"sig"
            assert tx.input_value(call.arguments[3]) == bytes([0b00100101])
            assert tx.input_value(call.arguments[4]) == b"msg"

    def test_missing_certificate_is_fatal(self, addresses, settings):
        object_ids = {a.content_id: f"0x{i + 1:064x}" for i, a in enumerate(addresses)}
        certificates = self._certificates(addresses)
        del certificates[addresses[2].content_id]

        with pytest.raises(CertificationPreconditionError) as excinfo:
            build_certification_transaction(OWNER, addresses, object_ids, certificates, settings)
        assert excinfo.value.missing == [AssetLabel.COVER]
