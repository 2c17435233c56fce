"""
Interfaces (protocols) for the pipeline's external collaborators.
Using Python's Protocol for structural subtyping.
"""

from typing import Protocol, Optional
from abc import abstractmethod

from .models import (
    BlobObject, NetworkState, ProgrammableTransaction, SignedMessage, SubmitResult,
    TipConfig, TranscodeResult, TransactionBlock, UploadCertificate
)


class ITranscoder(Protocol):
    """Splits raw video into keyframe-aligned segments"""

    @abstractmethod
    async def segment(self, raw: bytes, split_seconds: float) -> TranscodeResult:
        """Return ordered segments with approximate durations and a cover image"""
        ...


class ITransactionSigner(Protocol):
    """Wallet or signing agent; every call may prompt the user"""

    @property
    @abstractmethod
    def address(self) -> str:
        """Account that pays for and owns submitted transactions"""
        ...

    @abstractmethod
    async def sign_and_submit(self, transaction: ProgrammableTransaction) -> SubmitResult:
        """Sign and execute a transaction"""
        ...

    @abstractmethod
    async def sign_message(self, message: bytes) -> SignedMessage:
        """Sign an arbitrary message"""
        ...


class IChainReader(Protocol):
    """Read endpoint used for visibility checks and object reads"""

    @abstractmethod
    async def get_network_state(self) -> NetworkState:
        """Shard count and published storage prices"""
        ...

    @abstractmethod
    async def get_transaction_block(self, digest: str) -> Optional[TransactionBlock]:
        """Transaction with object changes, or None while not yet visible"""
        ...

    @abstractmethod
    async def get_blob_object(self, object_id: str) -> BlobObject:
        """Decoded blob object fields"""
        ...


class IUploadRelay(Protocol):
    """Relay that forwards blob bytes to storage nodes for a fee"""

    @abstractmethod
    async def get_tip_config(self) -> Optional[TipConfig]:
        """Fee address and amount, or None when the relay charges nothing"""
        ...

    @abstractmethod
    async def upload_blob(self,
                          content_id: str,
                          data: bytes,
                          nonce: bytes,
                          tx_id: str,
                          blob_object_id: str,
                          deletable: bool,
                          encoding_type: str) -> UploadCertificate:
        """
        Transmit bytes and return the storage certificate.

        Raises TransmissionTransientError for failures that are safe to retry
        and RelayRejectedError for everything else.
        """
        ...


class IKeyEscrowService(Protocol):
    """Threshold identity-based encryption service"""

    @abstractmethod
    async def encrypt(self, threshold: int, package_id: str, identity: str, data: bytes) -> bytes:
        """Encrypt ``data`` for ``identity`` under ``package_id``'s access policy"""
        ...
