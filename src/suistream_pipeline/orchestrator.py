"""
Upload orchestrator.

Drives one upload session through

    ENCODING -> ADDRESSING -> COST_ESTIMATED -> REGISTRATION_BUILT
    -> REGISTRATION_SUBMITTED -> AWAITING_REGISTRATION_VISIBILITY
    -> PER_ASSET_TRANSMISSION -> CERTIFYING -> DONE

with FAILED reachable from every state. Each phase either completes or raises
a typed ``PipelineError``; nothing is compensated across phases. Once the
registration transaction is submitted the session can no longer be cancelled,
but a session that failed during transmission or certification can be resumed
with ``resume_transmission``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from .addressing import ContentAddresser
from .assembler import BlobAssembler
from .cipher import SegmentCipher
from .cost import CostEstimator
from .escrow import KeyEscrow
from .interfaces import (
    IChainReader, IKeyEscrowService, ITranscoder, ITransactionSigner, IUploadRelay
)
from .models import (
    AssetAddress, CostEstimate, EncryptedBlob, EscrowedKey, FundingInstruction, NetworkState,
    ProgrammableTransaction, RegistrationEntry, RegistrationPlan, StatusUpdate, TipConfig,
    TransactionBlock, UploadCertificate, UploadRequest, UploadResult, VideoMetadata
)
from .transactions import (
    build_certification_transaction, build_registration_transaction, build_tip_transaction
)
from .types import (
    ASSET_ORDER, AddressComputationError, AssetLabel, CertificationSubmissionError, ChainRpcError,
    EncodingType, InputValidationError, PipelineError, RegistrationError,
    RegistrationVisibilityTimeout, TranscodeError, TransmissionFailed,
    TransmissionTransientError, UploadCancelled, UploadState, VisibilityTimeout
)
from .utils import validate_object_id

logger = logging.getLogger(__name__)

StatusCallback = Callable[[StatusUpdate], None]


@dataclass
class UploadSession:
    """All state owned by one upload, from raw video to certified blobs"""
    request: UploadRequest
    state: UploadState = UploadState.ENCODING
    key: Optional[bytes] = None
    blobs: Dict[AssetLabel, EncryptedBlob] = field(default_factory=dict)
    network_state: Optional[NetworkState] = None
    escrowed_key: Optional[EscrowedKey] = None
    addresses: Dict[AssetLabel, AssetAddress] = field(default_factory=dict)
    estimate: Optional[CostEstimate] = None
    plan: Optional[RegistrationPlan] = None
    registration_tx: Optional[ProgrammableTransaction] = None
    registration_digest: Optional[str] = None
    blob_object_ids: Dict[str, str] = field(default_factory=dict)
    tip_config: Optional[TipConfig] = None
    tip_config_loaded: bool = False
    certificates: Dict[str, UploadCertificate] = field(default_factory=dict)
    certification_digest: Optional[str] = None
    error: Optional[PipelineError] = None

    def ordered_addresses(self) -> List[AssetAddress]:
        return [self.addresses[label] for label in ASSET_ORDER]

    def uncertified(self) -> List[AssetLabel]:
        return [
            label for label in ASSET_ORDER
            if label not in self.addresses
            or self.addresses[label].content_id not in self.certificates
        ]

    @property
    def registered(self) -> bool:
        return (
            self.registration_digest is not None
            and len(self.addresses) == len(ASSET_ORDER)
            and all(a.content_id in self.blob_object_ids for a in self.addresses.values())
        )

    def release(self) -> None:
        """Drop the symmetric key and asset buffers"""
        self.key = None
        self.blobs.clear()


class UploadOrchestrator:
    """Top-level state machine for preparing, registering and certifying an upload"""

    def __init__(self,
                 settings,
                 transcoder: ITranscoder,
                 signer: ITransactionSigner,
                 chain: IChainReader,
                 relay: IUploadRelay,
                 escrow_service: IKeyEscrowService,
                 on_status: Optional[StatusCallback] = None,
                 sleep=asyncio.sleep):
        self.settings = settings
        self.transcoder = transcoder
        self.signer = signer
        self.chain = chain
        self.relay = relay
        self.on_status = on_status
        self._sleep = sleep

        try:
            self.encoding_type = EncodingType[settings.encoding_type]
        except KeyError:
            raise InputValidationError(f"Unknown encoding type {settings.encoding_type}")

        self.cipher = SegmentCipher()
        self.assembler = BlobAssembler()
        self.cost = CostEstimator.from_settings(settings)
        self.escrow = KeyEscrow(escrow_service, settings.escrow_package_id, settings.escrow_threshold)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def start_session(self, request: UploadRequest) -> UploadSession:
        if not request.video:
            raise InputValidationError("Video is empty", phase=UploadState.ENCODING)
        if not validate_object_id(request.owner):
            raise InputValidationError(f"Invalid owner address {request.owner}", phase=UploadState.ENCODING)
        if request.price < 0:
            raise InputValidationError("Price must be non-negative", phase=UploadState.ENCODING)
        return UploadSession(request=request)

    async def upload(self, request: UploadRequest,
                     cancel: Optional[asyncio.Event] = None) -> UploadResult:
        """Run a new session from raw video to certified blobs"""
        return await self.run(self.start_session(request), cancel)

    async def run(self, session: UploadSession,
                  cancel: Optional[asyncio.Event] = None) -> UploadResult:
        try:
            await self._encode(session, cancel)
            await self._address(session)
            self._estimate(session)
            self._build_registration(session)
            self._check_cancel(session, cancel, "before registration was submitted")
            await self._register(session)
            return await self._transmit_and_certify(session)
        except PipelineError as e:
            self._fail(session, e)
            raise
        except Exception as e:
            raise self._unexpected(session, e) from e

    async def resume_transmission(self, session: UploadSession) -> UploadResult:
        """
        Retry transmission for assets without a certificate, then certify.

        Only valid for a session whose registration completed; assets that
        already hold a certificate are skipped.
        """
        if session.state == UploadState.DONE:
            raise PipelineError("Upload session is already complete", phase=UploadState.DONE)
        if not session.registered:
            raise PipelineError(
                "Registration has not completed for this session; start a new upload",
                phase=session.state,
            )
        logger.info(f"Resuming transmission for {[a.value for a in session.uncertified()]}")
        try:
            return await self._transmit_and_certify(session)
        except PipelineError as e:
            self._fail(session, e)
            raise
        except Exception as e:
            raise self._unexpected(session, e) from e

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _encode(self, session: UploadSession, cancel: Optional[asyncio.Event]) -> None:
        request = session.request
        split = request.split_seconds or self.settings.split_seconds
        self._set_state(session, UploadState.ENCODING, f"Splitting video into {split:g}s segments")

        try:
            transcoded = await self.transcoder.segment(request.video, split)
        except PipelineError:
            raise
        except Exception as e:
            raise TranscodeError(f"Transcoder failed: {e}") from e

        self._check_cancel(session, cancel, "after transcoding")
        session.key = SegmentCipher.generate_key()
        self.cipher.encrypt_segments(
            transcoded.segments,
            session.key,
            cancel=cancel,
            on_progress=lambda done, total: self._notify(
                session, f"Encrypted segment {done}/{total}"
            ),
        )

        assembled = self.assembler.assemble(transcoded.segments, split, release=True)
        session.blobs[AssetLabel.VIDEO] = EncryptedBlob(
            AssetLabel.VIDEO, assembled.data, AssetLabel.VIDEO.default_content_type
        )
        session.blobs[AssetLabel.MANIFEST] = EncryptedBlob(
            AssetLabel.MANIFEST, assembled.manifest.encode("utf-8"), AssetLabel.MANIFEST.default_content_type
        )
        session.blobs[AssetLabel.COVER] = EncryptedBlob(
            AssetLabel.COVER, transcoded.cover, AssetLabel.COVER.default_content_type
        )

    async def _address(self, session: UploadSession) -> None:
        self._set_state(session, UploadState.ADDRESSING, "Computing content addresses")

        # Shard count is fixed for the session; content ids depend on it
        if session.network_state is None:
            session.network_state = await self.chain.get_network_state()

        session.escrowed_key = await self.escrow.wrap(session.key)
        session.blobs[AssetLabel.KEY] = EncryptedBlob(
            AssetLabel.KEY, session.escrowed_key.ciphertext, AssetLabel.KEY.default_content_type
        )

        addresser = ContentAddresser(session.network_state.shard_count, self.encoding_type)
        loop = asyncio.get_running_loop()
        try:
            results = await asyncio.gather(*[
                loop.run_in_executor(None, addresser.compute_blob, session.blobs[label])
                for label in ASSET_ORDER
            ])
        except PipelineError:
            raise
        except Exception as e:
            raise AddressComputationError(f"Address computation failed: {e}",
                                          phase=UploadState.ADDRESSING) from e
        session.addresses = dict(zip(ASSET_ORDER, results))

    def _estimate(self, session: UploadSession) -> None:
        sizes = [session.blobs[label].size for label in ASSET_ORDER]
        epochs = self.settings.retention_epochs
        estimate = self.cost.estimate(sizes, epochs)
        required = self.cost.network_requirement(sizes, epochs, session.network_state)
        self.cost.ensure_covers(estimate, required)
        session.estimate = estimate
        self._set_state(
            session, UploadState.COST_ESTIMATED,
            f"Storage cost {estimate.settlement_amount}, funding {estimate.native_amount}",
        )

    def _build_registration(self, session: UploadSession) -> None:
        request = session.request
        addresses = session.addresses
        entries = [
            RegistrationEntry(
                address=addresses[label],
                size=addresses[label].size,
                epochs=self.settings.retention_epochs,
                deletable=self.settings.deletable,
                content_type=session.blobs[label].content_type,
            )
            for label in ASSET_ORDER
        ]
        metadata = VideoMetadata(
            title=request.title,
            description=request.description,
            video_id=addresses[AssetLabel.VIDEO].content_id,
            manifest_id=addresses[AssetLabel.MANIFEST].content_id,
            cover_id=addresses[AssetLabel.COVER].content_id,
            key_id=addresses[AssetLabel.KEY].content_id,
            policy_id=session.escrowed_key.policy_id,
            price=request.price,
        )
        session.plan = RegistrationPlan(
            owner=request.owner,
            entries=entries,
            funding=FundingInstruction(
                native_amount=session.estimate.native_amount,
                settlement_amount=session.estimate.settlement_amount,
            ),
            metadata=metadata,
        )
        session.registration_tx = build_registration_transaction(session.plan, self.settings)
        self._set_state(session, UploadState.REGISTRATION_BUILT, "Registration ready for signing")

    async def _register(self, session: UploadSession) -> None:
        self._set_state(session, UploadState.REGISTRATION_SUBMITTED, "Submitting registration")
        try:
            result = await self.signer.sign_and_submit(session.registration_tx)
        except PipelineError:
            raise
        except Exception as e:
            raise RegistrationError(f"Registration submission failed: {e}",
                                    phase=UploadState.REGISTRATION_SUBMITTED) from e
        session.registration_digest = result.digest
        logger.info(f"Registration submitted: {result.digest}")

        self._set_state(
            session, UploadState.AWAITING_REGISTRATION_VISIBILITY,
            f"Waiting for registration {result.digest} to become visible",
        )
        block = await self._await_visibility(result.digest, RegistrationVisibilityTimeout)
        if not block.succeeded:
            raise RegistrationError(
                f"Registration {block.digest} failed on chain: {block.error}",
                phase=UploadState.AWAITING_REGISTRATION_VISIBILITY,
            )
        await self._resolve_blob_objects(session, block)

    async def _resolve_blob_objects(self, session: UploadSession, block: TransactionBlock) -> None:
        """Match created blob objects to assets by their decoded content id"""
        by_content_id: Dict[str, str] = {}
        for object_id in block.created_of_type(self.settings.blob_type):
            blob = await self.chain.get_blob_object(object_id)
            by_content_id[blob.content_id] = object_id

        for address in session.ordered_addresses():
            object_id = by_content_id.get(address.content_id)
            if object_id is None:
                raise RegistrationError(
                    f"No registered blob object has content id {address.content_id}",
                    phase=UploadState.AWAITING_REGISTRATION_VISIBILITY,
                    asset=address.label,
                )
            session.blob_object_ids[address.content_id] = object_id
            logger.debug(f"{address.label.value} registered as {object_id}")

    async def _transmit_and_certify(self, session: UploadSession) -> UploadResult:
        self._set_state(session, UploadState.PER_ASSET_TRANSMISSION, "Uploading assets")
        tip = await self._tip_config(session)

        # Sequential: every fee payment is its own signing prompt
        for address in session.ordered_addresses():
            if address.content_id in session.certificates:
                logger.info(f"Skipping {address.label.value}; certificate already held")
                continue
            await self._transmit_asset(session, address, tip)

        return await self._certify(session)

    async def _tip_config(self, session: UploadSession) -> Optional[TipConfig]:
        if not session.tip_config_loaded:
            try:
                session.tip_config = await self.relay.get_tip_config()
            except PipelineError:
                raise
            except Exception as e:
                raise PipelineError(f"Could not load relay tip configuration: {e}",
                                    phase=UploadState.PER_ASSET_TRANSMISSION) from e
            session.tip_config_loaded = True
        return session.tip_config

    async def _pay_tip(self, session: UploadSession, address: AssetAddress, tip: TipConfig) -> str:
        label = address.label
        self._notify(session, f"Paying relay fee for {label.value}", label)
        tx = build_tip_transaction(address, tip, session.request.owner)
        try:
            result = await self.signer.sign_and_submit(tx)
        except PipelineError:
            raise
        except Exception as e:
            raise TransmissionFailed(label, 0, f"fee payment failed: {e}") from e

        def on_timeout(digest: str, waited: float) -> VisibilityTimeout:
            return VisibilityTimeout(digest, waited, phase=UploadState.PER_ASSET_TRANSMISSION, asset=label)

        block = await self._await_visibility(result.digest, on_timeout)
        if not block.succeeded:
            raise TransmissionFailed(label, 0, f"fee payment {block.digest} failed: {block.error}")
        return result.digest

    async def _transmit_asset(self, session: UploadSession, address: AssetAddress,
                              tip: Optional[TipConfig]) -> None:
        label = address.label
        if tip is not None and tip.amount > 0:
            tx_id = await self._pay_tip(session, address, tip)
        else:
            tx_id = session.registration_digest

        self._notify(session, f"Uploading {label.value} ({address.size} bytes)", label)
        blob = session.blobs[label]
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.transmit_max_attempts),
            wait=self._backoff,
            retry=retry_if_exception_type(TransmissionTransientError),
            sleep=self._sleep,
            reraise=True,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    certificate = await self.relay.upload_blob(
                        content_id=address.content_id,
                        data=blob.data,
                        nonce=address.nonce,
                        tx_id=tx_id,
                        blob_object_id=session.blob_object_ids[address.content_id],
                        deletable=self.settings.deletable,
                        encoding_type=self.encoding_type.name,
                    )
        except TransmissionTransientError as e:
            logger.error(f"Transmission of {label.value} exhausted {attempts} attempts: {e}")
            raise TransmissionFailed(label, attempts, f"{e.kind.value}: {e}") from e
        except Exception as e:
            logger.error(f"Transmission of {label.value} failed on attempt {attempts}: {e}")
            raise TransmissionFailed(label, attempts, str(e)) from e

        session.certificates[address.content_id] = certificate
        self._notify(session, f"Stored {label.value}", label)

    def _backoff(self, retry_state) -> float:
        return retry_state.attempt_number ** 2 * self.settings.transmit_backoff_base

    async def _certify(self, session: UploadSession) -> UploadResult:
        self._set_state(session, UploadState.CERTIFYING, "Certifying stored assets")
        tx = build_certification_transaction(
            session.request.owner,
            session.ordered_addresses(),
            session.blob_object_ids,
            session.certificates,
            self.settings,
        )
        try:
            result = await self.signer.sign_and_submit(tx)
        except Exception as e:
            raise CertificationSubmissionError(
                uncertified=list(ASSET_ORDER), reason=str(e)
            ) from e
        session.certification_digest = result.digest

        upload_result = UploadResult(
            registration_digest=session.registration_digest,
            certification_digest=result.digest,
            content_ids={label: session.addresses[label].content_id for label in ASSET_ORDER},
            policy_id=session.escrowed_key.policy_id_hex,
        )
        self._set_state(session, UploadState.DONE, "Upload complete")
        session.release()
        return upload_result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _await_visibility(self, digest: str,
                                on_timeout: Callable[[str, float], VisibilityTimeout]) -> TransactionBlock:
        """Poll the read endpoint until it sees ``digest`` or the ceiling is reached"""
        loop = asyncio.get_running_loop()
        timeout = self.settings.visibility_timeout
        interval = self.settings.visibility_poll_interval
        started = loop.time()
        slept = 0.0

        while True:
            try:
                block = await self.chain.get_transaction_block(digest)
            except ChainRpcError as e:
                logger.warning(f"Reading transaction {digest} failed, polling again: {e}")
                block = None
            if block is not None:
                return block
            waited = max(loop.time() - started, slept)
            if waited >= timeout:
                logger.error(f"Transaction {digest} not visible after {waited:.1f}s")
                raise on_timeout(digest, waited)
            delay = min(interval, timeout - waited)
            await self._sleep(delay)
            slept += delay

    @staticmethod
    def _check_cancel(session: UploadSession, cancel: Optional[asyncio.Event], when: str) -> None:
        if cancel is not None and cancel.is_set():
            raise UploadCancelled(f"Upload cancelled {when}", phase=session.state)

    def _set_state(self, session: UploadSession, state: UploadState, message: str) -> None:
        session.state = state
        logger.info(f"[{state.value}] {message}")
        self._emit(StatusUpdate(state=state, message=message))

    def _notify(self, session: UploadSession, message: str,
                asset: Optional[AssetLabel] = None) -> None:
        logger.info(f"[{session.state.value}] {message}")
        self._emit(StatusUpdate(state=session.state, message=message, asset=asset))

    def _fail(self, session: UploadSession, error: PipelineError) -> None:
        failed_in = error.phase or session.state
        session.state = UploadState.FAILED
        session.error = error
        asset = f" ({error.asset.value})" if error.asset else ""
        logger.error(f"Upload failed in {failed_in.value}{asset}: {error}")
        self._emit(StatusUpdate(state=UploadState.FAILED, message=str(error), asset=error.asset))

    def _unexpected(self, session: UploadSession, cause: Exception) -> PipelineError:
        """Fail the session on an untyped collaborator error and return it typed"""
        error = PipelineError(f"Unexpected {type(cause).__name__}: {cause}", phase=session.state)
        self._fail(session, error)
        return error

    def _emit(self, update: StatusUpdate) -> None:
        if self.on_status is not None:
            self.on_status(update)
