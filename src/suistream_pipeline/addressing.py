"""
Content addressing for stored assets.

The content id is a pure function of the blob bytes, the network shard count
and the encoding type:

    slivers   = bytes split into ``shard_count`` zero-padded symbols
    leaf_i    = blake2b256(0x00 || sliver_i)
    node      = blake2b256(0x01 || left || right)
    root      = merkle root over the leaves
    blob_id   = blake2b256(encoding_type || u64_le(len) || root)

The nonce is fresh randomness per call and binds the relay fee payment to one
specific transmission. The relay recomputes

    auth_digest = sha256(root || sha256(nonce) || u64_le(len))

byte for byte before accepting the upload.
"""

import logging
import os
from typing import List, Optional

from .models import AssetAddress, EncryptedBlob
from .types import AddressComputationError, AssetLabel, EncodingType, UploadState
from .utils import blake2b256, sha256, u64_le, urlsafe_b64encode

logger = logging.getLogger(__name__)

NONCE_SIZE = 32

_LEAF_PREFIX = b"\x00"
_NODE_PREFIX = b"\x01"


def merkle_root(leaves: List[bytes]) -> bytes:
    """Merkle root over leaf hashes; an odd node is paired with itself"""
    if not leaves:
        raise ValueError("Cannot build a merkle tree without leaves")
    level = list(leaves)
    while len(level) > 1:
        if len(level) % 2:
            level.append(level[-1])
        level = [
            blake2b256(_NODE_PREFIX + level[i] + level[i + 1])
            for i in range(0, len(level), 2)
        ]
    return level[0]


def auth_digest(integrity_root: bytes, nonce: bytes, size: int) -> bytes:
    """Digest the relay uses to match a fee payment to the transmitted bytes"""
    return sha256(integrity_root + sha256(nonce) + u64_le(size))


class ContentAddresser:
    """Computes content ids, integrity roots and relay nonces"""

    def __init__(self, shard_count: int, encoding_type: EncodingType = EncodingType.RS2):
        if shard_count < 1:
            raise AddressComputationError(
                f"Shard count must be positive, got {shard_count}",
                phase=UploadState.ADDRESSING,
            )
        self.shard_count = shard_count
        self.encoding_type = encoding_type

    def _slivers(self, data: bytes) -> List[bytes]:
        symbol_size = max(1, -(-len(data) // self.shard_count))
        padded = data.ljust(symbol_size * self.shard_count, b"\x00")
        return [
            padded[i * symbol_size:(i + 1) * symbol_size]
            for i in range(self.shard_count)
        ]

    def integrity_root(self, data: bytes) -> bytes:
        leaves = [blake2b256(_LEAF_PREFIX + sliver) for sliver in self._slivers(data)]
        return merkle_root(leaves)

    def content_id(self, data: bytes, root: Optional[bytes] = None) -> str:
        root = root if root is not None else self.integrity_root(data)
        digest = blake2b256(bytes([self.encoding_type.value]) + u64_le(len(data)) + root)
        return urlsafe_b64encode(digest)

    def compute(self, data: bytes, label: AssetLabel = AssetLabel.VIDEO) -> AssetAddress:
        """
        Compute the full address of a byte buffer.

        ``content_id`` and ``integrity_root`` are identical across calls for the
        same bytes and shard count; ``nonce`` and ``auth_digest`` are not.
        """
        if not isinstance(data, (bytes, bytearray)):
            raise AddressComputationError(
                f"Expected bytes for {label.value}, got {type(data).__name__}",
                phase=UploadState.ADDRESSING,
                asset=label,
            )
        data = bytes(data)
        try:
            root = self.integrity_root(data)
            content_id = self.content_id(data, root)
        except ValueError as e:
            raise AddressComputationError(str(e), phase=UploadState.ADDRESSING, asset=label) from e

        nonce = os.urandom(NONCE_SIZE)
        address = AssetAddress(
            label=label,
            content_id=content_id,
            integrity_root=root,
            nonce=nonce,
            auth_digest=auth_digest(root, nonce, len(data)),
            size=len(data),
            encoding_type=self.encoding_type,
        )
        logger.debug(f"Addressed {label.value}: {content_id} ({len(data)} bytes)")
        return address

    def compute_blob(self, blob: EncryptedBlob) -> AssetAddress:
        return self.compute(blob.data, blob.label)
