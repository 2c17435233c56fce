"""
Utility functions for hashing and on-chain value encoding.
"""

import base64
import hashlib
import re
import struct
from typing import Iterable, Union


def blake2b256(data: bytes) -> bytes:
    """Blake2b with a 32-byte digest, the storage network's content hash"""
    return hashlib.blake2b(data, digest_size=32).digest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def u64_le(value: int) -> bytes:
    """Serialize an unsigned 64-bit integer little-endian (BCS u64)"""
    if value < 0 or value >= 1 << 64:
        raise ValueError(f"Value {value} does not fit in u64")
    return struct.pack("<Q", value)


def urlsafe_b64encode(data: bytes) -> str:
    """URL-safe base64 without padding"""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def urlsafe_b64decode(value: str) -> bytes:
    """Decode URL-safe base64, tolerating missing padding"""
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def b64decode_any(value: str) -> bytes:
    """Decode standard or URL-safe base64"""
    normalized = value.replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    return base64.b64decode(normalized.encode("ascii"))


def bytes_to_u256(data: bytes) -> int:
    """Little-endian u256, the on-chain encoding of blob ids and root hashes"""
    if len(data) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(data)}")
    return int.from_bytes(data, "little")


def u256_to_bytes(value: Union[int, str]) -> bytes:
    value = int(value)
    if value < 0 or value >= 1 << 256:
        raise ValueError(f"Value {value} does not fit in u256")
    return value.to_bytes(32, "little")


def blob_id_to_u256(content_id: str) -> int:
    """Convert a content id string to its on-chain numeric form"""
    return bytes_to_u256(urlsafe_b64decode(content_id))


def blob_id_from_u256(value: Union[int, str]) -> str:
    """Convert an on-chain numeric blob id back to its content id string"""
    return urlsafe_b64encode(u256_to_bytes(value))


def signers_to_bitmap(signers: Iterable[int]) -> bytes:
    """Encode signer member indices as a little-endian bitmap"""
    signers = list(signers)
    if not signers:
        return b""
    if min(signers) < 0:
        raise ValueError("Signer indices must be non-negative")
    bitmap = bytearray(max(signers) // 8 + 1)
    for index in signers:
        bitmap[index // 8] |= 1 << (index % 8)
    return bytes(bitmap)


def ceil_div(numerator: int, denominator: int) -> int:
    """Integer ceiling division"""
    if denominator <= 0:
        raise ValueError("Denominator must be positive")
    return -(-numerator // denominator)


def validate_object_id(object_id: str) -> bool:
    """Validate a Sui object id / address (0x + up to 64 hex chars)"""
    return bool(re.match(r'^0x[0-9a-fA-F]{1,64}$', object_id))
