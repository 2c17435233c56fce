"""
SuiStream Upload Pipeline

Encrypted HLS asset preparation and Walrus/Sui upload orchestration.
"""

from .types import (
    AssetLabel,
    UploadState,
    EncodingType,
    TransientFailure,
    PipelineError,
    InputValidationError,
    AddressComputationError,
    FundingInsufficientError,
    RegistrationError,
    VisibilityTimeout,
    RegistrationVisibilityTimeout,
    TransmissionTransientError,
    RelayRejectedError,
    TransmissionFailed,
    CertificationPreconditionError,
    CertificationSubmissionError,
    FieldDecodeError,
    TranscodeError,
    UploadCancelled,
    ChainRpcError
)

from .interfaces import (
    ITranscoder,
    ITransactionSigner,
    IChainReader,
    IUploadRelay,
    IKeyEscrowService
)

from .models import (
    VideoSegment,
    EncryptedBlob,
    AssetAddress,
    RegistrationPlan,
    UploadCertificate,
    EscrowedKey,
    CostEstimate,
    UploadRequest,
    UploadResult,
    StatusUpdate,
    ProgrammableTransaction
)

from .config import PipelineSettings, get_settings
from .cipher import SegmentCipher
from .assembler import BlobAssembler
from .addressing import ContentAddresser
from .cost import CostEstimator
from .escrow import KeyEscrow
from .orchestrator import UploadOrchestrator, UploadSession
from .adapters import (
    SuiRpcReader,
    UploadRelayClient,
    FfmpegTranscoder
)

__all__ = [
    # Types
    "AssetLabel",
    "UploadState",
    "EncodingType",
    "TransientFailure",
    "PipelineError",
    "InputValidationError",
    "AddressComputationError",
    "FundingInsufficientError",
    "RegistrationError",
    "VisibilityTimeout",
    "RegistrationVisibilityTimeout",
    "TransmissionTransientError",
    "RelayRejectedError",
    "TransmissionFailed",
    "CertificationPreconditionError",
    "CertificationSubmissionError",
    "FieldDecodeError",
    "TranscodeError",
    "UploadCancelled",
    "ChainRpcError",

    # Interfaces
    "ITranscoder",
    "ITransactionSigner",
    "IChainReader",
    "IUploadRelay",
    "IKeyEscrowService",

    # Models
    "VideoSegment",
    "EncryptedBlob",
    "AssetAddress",
    "RegistrationPlan",
    "UploadCertificate",
    "EscrowedKey",
    "CostEstimate",
    "UploadRequest",
    "UploadResult",
    "StatusUpdate",
    "ProgrammableTransaction",

    # Pipeline
    "PipelineSettings",
    "get_settings",
    "SegmentCipher",
    "BlobAssembler",
    "ContentAddresser",
    "CostEstimator",
    "KeyEscrow",
    "UploadOrchestrator",
    "UploadSession",

    # Adapters
    "SuiRpcReader",
    "UploadRelayClient",
    "FfmpegTranscoder",
]

__version__ = "1.0.0"
