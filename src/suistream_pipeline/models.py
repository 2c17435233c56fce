"""
Core data models for the upload pipeline.
"""

import base64
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field

from .types import AssetLabel, EncodingType, UploadState
from .utils import blob_id_to_u256, bytes_to_u256


@dataclass
class VideoSegment:
    """One transcoded chunk of the source video"""
    index: int
    data: bytes
    duration: float
    iv: Optional[bytes] = None
    name: Optional[str] = None


@dataclass
class TranscodeResult:
    """Output of the external transcoder"""
    segments: List[VideoSegment]
    cover: bytes


@dataclass
class ByteRange:
    """Position of one encrypted segment inside the merged video blob"""
    offset: int
    length: int
    duration: float
    iv: Optional[bytes] = None


@dataclass
class AssembledVideo:
    """Merged ciphertext plus the byte-range playlist describing it"""
    data: bytes
    manifest: str
    ranges: List[ByteRange]
    target_duration: int


@dataclass
class EncryptedBlob:
    """A byte buffer that becomes one stored asset"""
    label: AssetLabel
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class AssetAddress:
    """Content address and registration parameters derived from one blob"""
    label: AssetLabel
    content_id: str
    integrity_root: bytes
    nonce: bytes
    auth_digest: bytes
    size: int
    encoding_type: EncodingType = EncodingType.RS2

    @property
    def blob_id_u256(self) -> int:
        return blob_id_to_u256(self.content_id)

    @property
    def root_hash_u256(self) -> int:
        return bytes_to_u256(self.integrity_root)


@dataclass
class EscrowedKey:
    """Symmetric key wrapped under an access policy"""
    policy_id: bytes
    ciphertext: bytes

    @property
    def policy_id_hex(self) -> str:
        return self.policy_id.hex()


@dataclass
class NetworkState:
    """Storage network parameters cached once per session"""
    shard_count: int
    storage_price_per_unit: Optional[int] = None
    write_price_per_unit: Optional[int] = None


@dataclass
class CostEstimate:
    """Storage cost and the native funding needed to cover it"""
    total_bytes: int
    epochs: int
    settlement_amount: int
    native_before_buffer: int
    native_amount: int
    buffer_bps: int


@dataclass
class RegistrationEntry:
    """One asset to register in the atomic registration transaction"""
    address: AssetAddress
    size: int
    epochs: int
    deletable: bool
    content_type: Optional[str] = None


@dataclass
class FundingInstruction:
    """Native amount to convert into settlement currency"""
    native_amount: int
    settlement_amount: int


@dataclass
class VideoMetadata:
    """Application metadata written alongside the registration"""
    title: str
    description: str
    video_id: str
    manifest_id: str
    cover_id: str
    key_id: str
    policy_id: bytes
    price: int


@dataclass
class RegistrationPlan:
    """Everything the atomic registration transaction must contain"""
    owner: str
    entries: List[RegistrationEntry]
    funding: FundingInstruction
    metadata: VideoMetadata


@dataclass
class UploadCertificate:
    """Proof from the relay that an asset's bytes were stored"""
    content_id: str
    signers: List[int]
    serialized_message: bytes
    signature: bytes


@dataclass
class TipConfig:
    """Relay fee parameters"""
    address: str
    amount: int


@dataclass
class SubmitResult:
    """Result of signing and submitting a transaction"""
    digest: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SignedMessage:
    """Result of signing an arbitrary message"""
    encoded_bytes: str
    signature: str


@dataclass
class ObjectChange:
    """An object created or mutated by a transaction"""
    change_type: str
    object_id: str
    object_type: Optional[str] = None


@dataclass
class TransactionBlock:
    """A transaction as seen by the read endpoint"""
    digest: str
    succeeded: bool
    object_changes: List[ObjectChange] = field(default_factory=list)
    error: Optional[str] = None

    def created_of_type(self, object_type: str) -> List[str]:
        return [
            change.object_id for change in self.object_changes
            if change.change_type == "created" and change.object_type == object_type
        ]


@dataclass
class BlobObject:
    """Decoded on-chain blob object"""
    object_id: str
    content_id: str
    size: int
    encoding_type: int
    deletable: bool
    certified_epoch: Optional[int] = None


@dataclass
class UploadRequest:
    """Caller input for one upload session"""
    video: bytes
    title: str
    description: str
    owner: str
    price: int = 0
    split_seconds: Optional[float] = None


@dataclass
class UploadResult:
    """Returned to the caller once the upload is certified"""
    registration_digest: str
    certification_digest: str
    content_ids: Dict[AssetLabel, str]
    policy_id: str


@dataclass
class StatusUpdate:
    """A caller-visible phase transition"""
    state: UploadState
    message: str
    asset: Optional[AssetLabel] = None


# ---------------------------------------------------------------------------
# Programmable transaction payload handed to the signer
# ---------------------------------------------------------------------------

@dataclass
class Argument:
    """Reference to a gas coin, an input or a command result"""
    kind: str  # GasCoin | Input | Result | NestedResult
    index: int = 0
    nested: int = 0

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "GasCoin":
            return {"GasCoin": True}
        if self.kind == "NestedResult":
            return {"NestedResult": [self.index, self.nested]}
        return {self.kind: self.index}


@dataclass
class TransactionInput:
    kind: str  # pure | object
    value: Any
    type_tag: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "object":
            return {"Object": self.value}
        value = self.value
        if isinstance(value, (bytes, bytearray)):
            value = base64.b64encode(bytes(value)).decode("ascii")
        elif isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        return {"Pure": {"type": self.type_tag, "value": value}}


@dataclass
class TransactionCommand:
    kind: str  # SplitCoins | MoveCall | TransferObjects
    arguments: List[Argument] = field(default_factory=list)
    target: Optional[str] = None
    type_arguments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "kind": self.kind,
            "arguments": [arg.to_dict() for arg in self.arguments],
        }
        if self.target:
            data["target"] = self.target
            data["typeArguments"] = list(self.type_arguments)
        return data


@dataclass
class ProgrammableTransaction:
    """Ordered commands executed atomically by the chain"""
    sender: Optional[str] = None
    inputs: List[TransactionInput] = field(default_factory=list)
    commands: List[TransactionCommand] = field(default_factory=list)

    def gas(self) -> Argument:
        return Argument("GasCoin")

    def pure(self, value: Any, type_tag: str) -> Argument:
        self.inputs.append(TransactionInput("pure", value, type_tag))
        return Argument("Input", len(self.inputs) - 1)

    def object(self, object_id: str) -> Argument:
        self.inputs.append(TransactionInput("object", object_id))
        return Argument("Input", len(self.inputs) - 1)

    def _add(self, command: TransactionCommand) -> int:
        self.commands.append(command)
        return len(self.commands) - 1

    def split_coins(self, coin: Argument, amounts: List[Argument]) -> List[Argument]:
        index = self._add(TransactionCommand("SplitCoins", [coin] + list(amounts)))
        return [Argument("NestedResult", index, i) for i in range(len(amounts))]

    def move_call(self, target: str, arguments: List[Argument],
                  type_arguments: Optional[List[str]] = None) -> Argument:
        index = self._add(TransactionCommand(
            "MoveCall", list(arguments), target=target,
            type_arguments=list(type_arguments or []),
        ))
        return Argument("Result", index)

    def transfer_objects(self, objects: List[Argument], recipient: Argument) -> None:
        self._add(TransactionCommand("TransferObjects", list(objects) + [recipient]))

    def move_calls(self, suffix: str) -> List[TransactionCommand]:
        """Move calls whose target ends with ``suffix``"""
        return [
            c for c in self.commands
            if c.kind == "MoveCall" and c.target and c.target.endswith(suffix)
        ]

    def input_value(self, argument: Argument) -> Any:
        if argument.kind != "Input":
            raise ValueError(f"Argument {argument} is not an input")
        return self.inputs[argument.index].value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the signer"""
        return {
            "sender": self.sender,
            "inputs": [i.to_dict() for i in self.inputs],
            "commands": [c.to_dict() for c in self.commands],
        }
