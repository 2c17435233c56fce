"""
Per-segment AES-128-CBC encryption.

Every segment gets its own random 16-byte IV, which the playlist later
carries in a per-segment ``#EXT-X-KEY`` tag. Ciphertext is PKCS7 padded, so
its length is always a multiple of the block size and the original plaintext
length is only recoverable from the playlist's byte ranges.
"""

import asyncio
import logging
import os
from typing import Callable, List, Optional, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .models import VideoSegment
from .types import InputValidationError, UploadCancelled, UploadState

logger = logging.getLogger(__name__)


class SegmentCipher:
    """AES-128-CBC encryption of transcoded segments"""

    KEY_SIZE = 16
    IV_SIZE = 16
    BLOCK_BITS = 128

    @classmethod
    def generate_key(cls) -> bytes:
        return os.urandom(cls.KEY_SIZE)

    @classmethod
    def generate_iv(cls) -> bytes:
        return os.urandom(cls.IV_SIZE)

    @classmethod
    def _validate(cls, key: bytes, iv: bytes) -> None:
        if len(key) != cls.KEY_SIZE:
            raise InputValidationError(
                f"Key must be {cls.KEY_SIZE} bytes, got {len(key)}",
                phase=UploadState.ENCODING,
            )
        if len(iv) != cls.IV_SIZE:
            raise InputValidationError(
                f"IV must be {cls.IV_SIZE} bytes, got {len(iv)}",
                phase=UploadState.ENCODING,
            )

    @classmethod
    def encrypt(cls, key: bytes, plaintext: bytes, iv: Optional[bytes] = None) -> Tuple[bytes, bytes]:
        """
        Encrypt one payload.

        Args:
            key: 16-byte AES key
            plaintext: segment bytes
            iv: 16-byte IV; a fresh random one is drawn when omitted

        Returns:
            (ciphertext, iv)
        """
        iv = iv if iv is not None else cls.generate_iv()
        cls._validate(key, iv)

        padder = padding.PKCS7(cls.BLOCK_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return encryptor.update(padded) + encryptor.finalize(), iv

    @classmethod
    def decrypt(cls, key: bytes, ciphertext: bytes, iv: bytes) -> bytes:
        """Decrypt one payload and strip its padding"""
        cls._validate(key, iv)
        if len(ciphertext) % (cls.BLOCK_BITS // 8):
            raise InputValidationError(
                "Ciphertext length is not a multiple of the block size",
                phase=UploadState.ENCODING,
            )

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(cls.BLOCK_BITS).unpadder()
        return unpadder.update(padded) + unpadder.finalize()

    @classmethod
    def decrypt_segment(cls, key: bytes, segment: VideoSegment) -> bytes:
        if segment.iv is None:
            raise InputValidationError(
                f"Segment {segment.index} has no IV", phase=UploadState.ENCODING
            )
        return cls.decrypt(key, segment.data, segment.iv)

    def encrypt_segments(self,
                         segments: List[VideoSegment],
                         key: bytes,
                         cancel: Optional[asyncio.Event] = None,
                         on_progress: Optional[Callable[[int, int], None]] = None) -> List[VideoSegment]:
        """
        Encrypt segments in place, attaching each segment's IV.

        The cancellation signal is checked once per segment.
        """
        if len(key) != self.KEY_SIZE:
            raise InputValidationError(
                f"Key must be {self.KEY_SIZE} bytes, got {len(key)}",
                phase=UploadState.ENCODING,
            )

        total = len(segments)
        for position, segment in enumerate(segments, start=1):
            if cancel is not None and cancel.is_set():
                raise UploadCancelled(
                    f"Upload cancelled while encrypting segment {position}/{total}",
                    phase=UploadState.ENCODING,
                )

            raw_size = len(segment.data)
            segment.data, segment.iv = self.encrypt(key, segment.data)
            logger.debug(
                f"Segment {segment.index} encrypted: {raw_size} -> {len(segment.data)} bytes"
            )
            if on_progress:
                on_progress(position, total)

        return segments
