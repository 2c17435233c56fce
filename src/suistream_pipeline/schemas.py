"""
Strict decoders for payloads returned by the relay and the chain read endpoint.

Every decoder fails closed: a missing or mistyped field raises
``FieldDecodeError`` naming the offending path instead of yielding ``None``.
"""

from typing import Any, List, Optional, Type, TypeVar

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
)

from .models import (
    BlobObject, NetworkState, ObjectChange, TipConfig, TransactionBlock, UploadCertificate
)
from .types import FieldDecodeError
from .utils import b64decode_any, blob_id_from_u256

T = TypeVar("T", bound=BaseModel)


def decode(model: Type[T], payload: Any, path: str) -> T:
    """Validate ``payload`` against ``model`` or raise FieldDecodeError"""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        full_path = f"{path}.{location}" if location else path
        raise FieldDecodeError(full_path, first["msg"]) from e


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------

class TipConfigSchema(_Schema):
    """Relay fee configuration, either flat or nested under ``send_tip``"""
    address: str
    amount: int = Field(ge=0)

    @model_validator(mode="before")
    @classmethod
    def flatten_send_tip(cls, data: Any) -> Any:
        if isinstance(data, dict) and "send_tip" in data:
            tip = data["send_tip"] or {}
            kind = tip.get("kind") or {}
            amount = kind.get("const") if isinstance(kind, dict) else None
            return {"address": tip.get("address"), "amount": amount}
        return data

    def to_model(self) -> TipConfig:
        return TipConfig(address=self.address, amount=self.amount)


class CertificateSchema(_Schema):
    signers: List[int]
    serialized_message: bytes = Field(
        validation_alias=AliasChoices("serializedMessage", "serialized_message")
    )
    signature: bytes

    @field_validator("serialized_message", "signature", mode="before")
    @classmethod
    def decode_base64(cls, value: Any) -> bytes:
        if isinstance(value, list):
            return bytes(value)
        if not isinstance(value, str) or not value:
            raise ValueError("expected a base64 string")
        return b64decode_any(value)

    @field_validator("signers")
    @classmethod
    def non_empty_signers(cls, value: List[int]) -> List[int]:
        if not value or min(value) < 0:
            raise ValueError("expected at least one non-negative signer index")
        return value

    def to_model(self, content_id: str) -> UploadCertificate:
        return UploadCertificate(
            content_id=content_id,
            signers=list(self.signers),
            serialized_message=self.serialized_message,
            signature=self.signature,
        )


class UploadResponseSchema(_Schema):
    blob_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("blob_id", "blobId"))
    certificate: CertificateSchema = Field(
        validation_alias=AliasChoices("certificate", "confirmation_certificate")
    )


# ---------------------------------------------------------------------------
# Chain read endpoint
# ---------------------------------------------------------------------------

class _ExecutionStatus(_Schema):
    status: str
    error: Optional[str] = None


class _Effects(_Schema):
    status: _ExecutionStatus


class _ObjectChange(_Schema):
    type: str
    object_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("objectId", "object_id"))
    object_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("objectType", "object_type"))


class TransactionBlockSchema(_Schema):
    digest: str
    effects: _Effects
    object_changes: List[_ObjectChange] = Field(
        default_factory=list, validation_alias=AliasChoices("objectChanges", "object_changes")
    )

    def to_model(self) -> TransactionBlock:
        return TransactionBlock(
            digest=self.digest,
            succeeded=self.effects.status.status == "success",
            object_changes=[
                ObjectChange(change.type, change.object_id, change.object_type)
                for change in self.object_changes
                if change.object_id is not None
            ],
            error=self.effects.status.error,
        )


class _BlobFields(_Schema):
    blob_id: int
    size: int
    encoding_type: int
    deletable: bool
    certified_epoch: Optional[int] = None


class _BlobContent(_Schema):
    type: str
    fields: _BlobFields


class _BlobData(_Schema):
    object_id: str = Field(validation_alias=AliasChoices("objectId", "object_id"))
    content: _BlobContent


class BlobObjectSchema(_Schema):
    data: _BlobData

    def to_model(self) -> BlobObject:
        fields = self.data.content.fields
        try:
            content_id = blob_id_from_u256(fields.blob_id)
        except ValueError as e:
            raise FieldDecodeError("data.content.fields.blob_id", str(e)) from e
        return BlobObject(
            object_id=self.data.object_id,
            content_id=content_id,
            size=fields.size,
            encoding_type=fields.encoding_type,
            deletable=fields.deletable,
            certified_epoch=fields.certified_epoch,
        )


class _CommitteeFields(_Schema):
    n_shards: int = Field(ge=1)


class _Committee(_Schema):
    fields: _CommitteeFields


class _SystemInnerFields(_Schema):
    committee: _Committee
    storage_price_per_unit_size: Optional[int] = None
    write_price_per_unit_size: Optional[int] = None


class _SystemInner(_Schema):
    fields: _SystemInnerFields


class _DynamicFieldFields(_Schema):
    value: _SystemInner


class _DynamicFieldContent(_Schema):
    fields: _DynamicFieldFields


class _SystemStateData(_Schema):
    content: _DynamicFieldContent


class SystemStateSchema(_Schema):
    """The dynamic field holding the storage system's inner state"""
    data: _SystemStateData

    def to_model(self) -> NetworkState:
        inner = self.data.content.fields.value.fields
        return NetworkState(
            shard_count=inner.committee.fields.n_shards,
            storage_price_per_unit=inner.storage_price_per_unit_size,
            write_price_per_unit=inner.write_price_per_unit_size,
        )
