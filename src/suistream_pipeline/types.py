"""
Core types, enums and the error taxonomy for the SuiStream upload pipeline.
"""

from enum import Enum
from typing import Optional, List


class AssetLabel(Enum):
    """The four logical assets produced for every upload session"""
    VIDEO = "video"
    MANIFEST = "manifest"
    COVER = "cover"
    KEY = "key"

    @property
    def default_content_type(self) -> str:
        return _CONTENT_TYPES[self]


_CONTENT_TYPES = {
    AssetLabel.VIDEO: "application/octet-stream",
    AssetLabel.MANIFEST: "application/vnd.apple.mpegurl",
    AssetLabel.COVER: "image/png",
    AssetLabel.KEY: "application/octet-stream",
}

# Registration, transmission and certification all walk the assets in this order
ASSET_ORDER = (AssetLabel.VIDEO, AssetLabel.MANIFEST, AssetLabel.COVER, AssetLabel.KEY)


class UploadState(Enum):
    """Upload orchestrator states"""
    ENCODING = "encoding"
    ADDRESSING = "addressing"
    COST_ESTIMATED = "cost_estimated"
    REGISTRATION_BUILT = "registration_built"
    REGISTRATION_SUBMITTED = "registration_submitted"
    AWAITING_REGISTRATION_VISIBILITY = "awaiting_registration_visibility"
    PER_ASSET_TRANSMISSION = "per_asset_transmission"
    CERTIFYING = "certifying"
    DONE = "done"
    FAILED = "failed"


class TransientFailure(Enum):
    """Relay failures that are safe to retry"""
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    NONCE_RACE = "nonce_race"


class EncodingType(Enum):
    """Erasure encoding identifiers understood by the storage network"""
    RED_STUFF = 0
    RS2 = 1


class PipelineError(Exception):
    """Base exception for pipeline operations"""
    def __init__(self, message: str, phase: Optional[UploadState] = None,
                 asset: Optional[AssetLabel] = None):
        self.phase = phase
        self.asset = asset
        super().__init__(message)


class InputValidationError(PipelineError):
    """Bad key or IV length, or otherwise malformed input"""
    pass


class AddressComputationError(PipelineError):
    """Content address could not be computed"""
    pass


class FundingInsufficientError(PipelineError):
    """Estimated funding does not cover what the network requires"""
    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        self.shortfall = required - available
        super().__init__(
            f"Funding estimate {available} is below network requirement {required} "
            f"(shortfall {self.shortfall})",
            phase=UploadState.COST_ESTIMATED,
        )


class RegistrationError(PipelineError):
    """Registration transaction failed or produced unexpected objects"""
    pass


class VisibilityTimeout(PipelineError):
    """A submitted transaction did not become visible on the read endpoint in time"""
    def __init__(self, digest: str, waited: float, phase: Optional[UploadState] = None,
                 asset: Optional[AssetLabel] = None):
        self.digest = digest
        self.waited = waited
        super().__init__(
            f"Transaction {digest} not visible after {waited:.1f}s",
            phase=phase,
            asset=asset,
        )


class RegistrationVisibilityTimeout(VisibilityTimeout):
    """The registration transaction did not become visible in time"""
    def __init__(self, digest: str, waited: float):
        super().__init__(digest, waited, phase=UploadState.AWAITING_REGISTRATION_VISIBILITY)


class TransmissionTransientError(PipelineError):
    """Relay transmission failed in a way that is safe to retry"""
    def __init__(self, message: str, kind: TransientFailure,
                 asset: Optional[AssetLabel] = None):
        self.kind = kind
        super().__init__(message, phase=UploadState.PER_ASSET_TRANSMISSION, asset=asset)


class RelayRejectedError(PipelineError):
    """Relay refused the upload with a non-retryable error"""
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"Relay upload failed ({status_code}): {body}",
            phase=UploadState.PER_ASSET_TRANSMISSION,
        )


class TransmissionFailed(PipelineError):
    """Transmission of one asset failed for good"""
    def __init__(self, asset: AssetLabel, attempts: int, reason: str):
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Transmission of {asset.value} failed after {attempts} attempt(s): {reason}",
            phase=UploadState.PER_ASSET_TRANSMISSION,
            asset=asset,
        )


class CertificationPreconditionError(PipelineError):
    """Certification attempted while some assets have no certificate"""
    def __init__(self, missing: List[AssetLabel]):
        self.missing = missing
        super().__init__(
            "Missing upload certificate for: " + ", ".join(a.value for a in missing),
            phase=UploadState.CERTIFYING,
        )


class CertificationSubmissionError(PipelineError):
    """The certification transaction could not be signed or submitted"""
    def __init__(self, uncertified: List[AssetLabel], reason: str):
        self.uncertified = uncertified
        self.reason = reason
        super().__init__(
            f"Certification failed ({reason}); uncertified: "
            + ", ".join(a.value for a in uncertified),
            phase=UploadState.CERTIFYING,
        )


class FieldDecodeError(PipelineError):
    """A remote payload did not match the expected schema"""
    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Could not decode {path}: {message}")


class TranscodeError(PipelineError):
    """The transcoder could not split the source video"""
    def __init__(self, message: str):
        super().__init__(message, phase=UploadState.ENCODING)


class UploadCancelled(PipelineError):
    """Caller cancelled the upload before registration was submitted"""
    pass


class ChainRpcError(PipelineError):
    """The chain read endpoint failed or answered with a JSON-RPC error"""
    def __init__(self, method: str, code: Optional[int], message: str):
        self.method = method
        self.code = code
        super().__init__(f"{method} failed ({code}): {message}")
