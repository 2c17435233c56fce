"""
Pytest configuration and in-memory collaborators for pipeline tests
"""

from typing import Callable, Dict, List, Optional

import pytest

from suistream_pipeline.config import PipelineSettings
from suistream_pipeline.models import (
    BlobObject, NetworkState, ObjectChange, ProgrammableTransaction, SignedMessage,
    SubmitResult, TipConfig, TranscodeResult, TransactionBlock, UploadCertificate,
    UploadRequest, VideoSegment
)
from suistream_pipeline.orchestrator import UploadOrchestrator
from suistream_pipeline.utils import blob_id_from_u256

OWNER = "0x" + "11" * 32
TIP_ADDRESS = "0x" + "ab" * 32
COVER_BYTES = b"\x89PNG\r\n\x1a\n" + b"cover-frame" * 20
RAW_VIDEO = bytes(range(256)) * 40


class FakeTranscoder:
    """Splits bytes proportionally to a fixed source duration"""

    def __init__(self, duration: float = 25.0, cover: bytes = COVER_BYTES):
        self.duration = duration
        self.cover = cover
        self.calls = []

    async def segment(self, raw: bytes, split_seconds: float) -> TranscodeResult:
        self.calls.append((len(raw), split_seconds))
        durations = []
        remaining = self.duration
        while remaining > 1e-9:
            durations.append(min(split_seconds, remaining))
            remaining -= durations[-1]

        segments = []
        start = 0
        elapsed = 0.0
        for index, duration in enumerate(durations):
            elapsed += duration
            end = len(raw) if index == len(durations) - 1 else int(len(raw) * elapsed / self.duration)
            segments.append(VideoSegment(index=index, data=raw[start:end], duration=duration,
                                         name=f"segment_{index:03d}.ts"))
            start = end
        return TranscodeResult(segments=segments, cover=self.cover)


class FakeSui:
    """Signer and read endpoint backed by an in-memory ledger"""

    def __init__(self, blob_type: str, shard_count: int = 10):
        self.blob_type = blob_type
        self.network_state = NetworkState(shard_count=shard_count)
        self.submitted: List[ProgrammableTransaction] = []
        self.blocks: Dict[str, TransactionBlock] = {}
        self.blobs: Dict[str, BlobObject] = {}
        self.certified: List[str] = []
        self.polls: List[str] = []
        self.poll_errors: List[Exception] = []
        self.invisible_polls = 0
        self.fail_registration_effects = False
        self.corrupt_blob_ids = False
        self.reject: Optional[Callable[[ProgrammableTransaction], bool]] = None
        self._pending: Dict[str, int] = {}
        self._next_object = 1

    @property
    def address(self) -> str:
        return OWNER

    async def sign_and_submit(self, transaction: ProgrammableTransaction) -> SubmitResult:
        if self.reject is not None and self.reject(transaction):
            raise RuntimeError("User rejected the request")
        self.submitted.append(transaction)
        digest = f"digest{len(self.submitted)}"

        changes = []
        registrations = transaction.move_calls("::system::register_blob")
        for command in registrations:
            args = command.arguments
            blob_id = transaction.input_value(args[2])
            if self.corrupt_blob_ids:
                blob_id = (blob_id + 1) % (1 << 256)
            object_id = "0x" + f"{self._next_object:064x}"
            self._next_object += 1
            self.blobs[object_id] = BlobObject(
                object_id=object_id,
                content_id=blob_id_from_u256(blob_id),
                size=transaction.input_value(args[4]),
                encoding_type=transaction.input_value(args[5]),
                deletable=transaction.input_value(args[6]),
            )
            changes.append(ObjectChange("created", object_id, self.blob_type))
        if transaction.commands and transaction.commands[0].kind == "SplitCoins":
            changes.append(ObjectChange("created", "0x" + "cc" * 32, "0x2::coin::Coin<0x2::sui::SUI>"))
        for command in transaction.move_calls("::system::certify_blob"):
            self.certified.append(transaction.input_value(command.arguments[1]))

        failed = bool(registrations) and self.fail_registration_effects
        self.blocks[digest] = TransactionBlock(
            digest=digest,
            succeeded=not failed,
            object_changes=changes,
            error="InsufficientCoinBalance" if failed else None,
        )
        self._pending[digest] = self.invisible_polls
        return SubmitResult(digest=digest)

    async def sign_message(self, message: bytes) -> SignedMessage:
        return SignedMessage(encoded_bytes=message.hex(), signature="signature")

    async def get_network_state(self) -> NetworkState:
        return self.network_state

    async def get_transaction_block(self, digest: str) -> Optional[TransactionBlock]:
        self.polls.append(digest)
        if self.poll_errors:
            raise self.poll_errors.pop(0)
        if self._pending.get(digest, 0) > 0:
            self._pending[digest] -= 1
            return None
        return self.blocks.get(digest)

    async def get_blob_object(self, object_id: str) -> BlobObject:
        return self.blobs[object_id]


class FakeRelay:
    """Relay that records uploads and fails on demand"""

    def __init__(self, tip: Optional[TipConfig] = TipConfig(address=TIP_ADDRESS, amount=1000)):
        self.tip = tip
        self.tip_requests = 0
        self.calls: List[dict] = []
        self.transient: List[Exception] = []
        self.fail_when: Optional[Callable[[str, bytes], Optional[Exception]]] = None
        self.stored: Dict[str, bytes] = {}

    async def get_tip_config(self) -> Optional[TipConfig]:
        self.tip_requests += 1
        return self.tip

    async def upload_blob(self, content_id, data, nonce, tx_id, blob_object_id,
                          deletable, encoding_type) -> UploadCertificate:
        self.calls.append({
            "content_id": content_id,
            "data": data,
            "nonce": nonce,
            "tx_id": tx_id,
            "blob_object_id": blob_object_id,
            "deletable": deletable,
            "encoding_type": encoding_type,
        })
        if self.fail_when is not None:
            error = self.fail_when(content_id, data)
            if error is not None:
                raise error
        if self.transient:
            raise self.transient.pop(0)
        self.stored[content_id] = data
        return UploadCertificate(
            content_id=content_id,
            signers=[0, 2, 5],
            serialized_message=b"message:" + content_id.encode(),
            signature=b"signature",
        )


class FakeEscrowService:
    """Deterministic stand-in for the threshold encryption service"""

    def __init__(self):
        self.calls = []
        self.error: Optional[Exception] = None

    async def encrypt(self, threshold: int, package_id: str, identity: str, data: bytes) -> bytes:
        self.calls.append({
            "threshold": threshold,
            "package_id": package_id,
            "identity": identity,
            "data": data,
        })
        if self.error is not None:
            raise self.error
        return b"sealed:" + bytes.fromhex(identity) + data


@pytest.fixture
def settings():
    """Settings isolated from the environment"""
    return PipelineSettings(
        _env_file=None,
        walrus_package_id="0xa11",
        walrus_system_object_id="0x5e5",
        app_package_id="0xb0b",
        dex_bank_id="0xba4c",
        settlement_coin_type="0xa11::wal::WAL",
        escrow_package_id="0x5ea1",
        shard_count=10,
        visibility_timeout=3.0,
        visibility_poll_interval=1.0,
    )


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def sui(settings):
    return FakeSui(settings.blob_type)


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def escrow_service():
    return FakeEscrowService()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def orchestrator(settings, transcoder, sui, relay, escrow_service, sleeps, statuses):
    async def fake_sleep(delay):
        sleeps.append(delay)

    return UploadOrchestrator(
        settings,
        transcoder=transcoder,
        signer=sui,
        chain=sui,
        relay=relay,
        escrow_service=escrow_service,
        on_status=statuses.append,
        sleep=fake_sleep,
    )


@pytest.fixture
def upload_request():
    return UploadRequest(
        video=RAW_VIDEO,
        title="Sunset timelapse",
        description="25 seconds over the bay",
        owner=OWNER,
        price=5,
    )
