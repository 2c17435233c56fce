"""
Key escrow under a threshold identity-based encryption policy.

Only the wrap step lives here. Readers unwrap through the escrow service with
an on-chain authorization proof and a short-lived session credential.
"""

import logging
import secrets
from typing import Optional

from .interfaces import IKeyEscrowService
from .models import EscrowedKey
from .types import InputValidationError, PipelineError, UploadState

logger = logging.getLogger(__name__)

POLICY_ID_SIZE = 32
KEY_SIZE = 16


class KeyEscrow:
    """Wraps the session's symmetric key behind a fresh access-policy identifier"""

    def __init__(self, service: IKeyEscrowService, package_id: str, threshold: int = 2):
        if threshold < 1:
            raise InputValidationError(f"Escrow threshold must be positive, got {threshold}")
        self.service = service
        self.package_id = package_id
        self.threshold = threshold

    @staticmethod
    def new_policy_id() -> bytes:
        return secrets.token_bytes(POLICY_ID_SIZE)

    async def wrap(self, key: bytes, policy_id: Optional[bytes] = None) -> EscrowedKey:
        """
        Encrypt ``key`` under ``(policy_id, package_id)``.

        Args:
            key: 16-byte symmetric key
            policy_id: 32-byte identifier; generated when omitted

        Returns:
            EscrowedKey carrying the policy id and wrapped ciphertext
        """
        if len(key) != KEY_SIZE:
            raise InputValidationError(
                f"Key must be {KEY_SIZE} bytes, got {len(key)}", phase=UploadState.ADDRESSING
            )
        policy_id = policy_id if policy_id is not None else self.new_policy_id()
        if len(policy_id) != POLICY_ID_SIZE:
            raise InputValidationError(
                f"Policy id must be {POLICY_ID_SIZE} bytes, got {len(policy_id)}",
                phase=UploadState.ADDRESSING,
            )

        try:
            ciphertext = await self.service.encrypt(
                threshold=self.threshold,
                package_id=self.package_id,
                identity=policy_id.hex(),
                data=key,
            )
        except PipelineError:
            raise
        except Exception as e:
            logger.error(f"Key escrow failed for policy {policy_id.hex()}: {e}")
            raise PipelineError(f"Key escrow failed: {e}", phase=UploadState.ADDRESSING) from e

        if not ciphertext:
            raise PipelineError("Key escrow returned an empty ciphertext", phase=UploadState.ADDRESSING)

        logger.info(f"Wrapped session key under policy {policy_id.hex()}")
        return EscrowedKey(policy_id=policy_id, ciphertext=bytes(ciphertext))
