"""
Upload relay HTTP adapter.

Failure classification lives here and nowhere else: callers receive either a
``TransmissionTransientError`` (safe to retry) or a fatal typed error.
"""

import logging
from typing import Optional

import httpx

from ..models import TipConfig, UploadCertificate
from ..schemas import TipConfigSchema, UploadResponseSchema, decode
from ..types import FieldDecodeError, RelayRejectedError, TransientFailure, TransmissionTransientError
from ..utils import urlsafe_b64encode
from .base import BaseHttpAdapter

logger = logging.getLogger(__name__)

TIP_CONFIG_PATH = "/v1/tip-config"
UPLOAD_PATH = "/v1/blob-upload-relay"

# Relay-side race between fee visibility and nonce bookkeeping
_NONCE_RACE_MARKER = "nonce hash"


class UploadRelayClient(BaseHttpAdapter):
    """Client for the blob upload relay"""

    @classmethod
    def from_settings(cls, settings, client: Optional[httpx.AsyncClient] = None) -> "UploadRelayClient":
        return cls(settings.upload_relay_host, timeout=settings.http_timeout, client=client)

    async def get_tip_config(self) -> Optional[TipConfig]:
        client = await self._get_client()
        response = await client.get(self.url(TIP_CONFIG_PATH))
        if response.is_error:
            raise RelayRejectedError(response.status_code, response.text)
        payload = self._json(response, "tip_config")
        if payload == "no_tip" or payload is None:
            return None
        return decode(TipConfigSchema, payload, "tip_config").to_model()

    async def upload_blob(self,
                          content_id: str,
                          data: bytes,
                          nonce: bytes,
                          tx_id: str,
                          blob_object_id: str,
                          deletable: bool,
                          encoding_type: str) -> UploadCertificate:
        """POST the raw bytes and decode the returned certificate"""
        client = await self._get_client()
        params = {
            "blob_id": content_id,
            "nonce": urlsafe_b64encode(nonce),
            "tx_id": tx_id,
            "blob_object_id": blob_object_id,
            "deletable": "true" if deletable else "false",
            "encoding_type": encoding_type,
        }

        try:
            response = await client.post(
                self.url(UPLOAD_PATH),
                params=params,
                content=data,
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.TimeoutException as e:
            raise TransmissionTransientError(
                f"Relay timed out uploading {content_id}: {e}", TransientFailure.TIMEOUT
            ) from e

        if response.status_code == 401:
            raise TransmissionTransientError(
                f"Relay rejected payment proof for {content_id}", TransientFailure.UNAUTHORIZED
            )
        if response.is_error:
            body = response.text
            if _NONCE_RACE_MARKER in body.lower():
                raise TransmissionTransientError(
                    f"Relay nonce race for {content_id}: {body}", TransientFailure.NONCE_RACE
                )
            raise RelayRejectedError(response.status_code, body)

        decoded = decode(UploadResponseSchema, self._json(response, "upload_response"), "upload_response")
        if decoded.blob_id is not None and decoded.blob_id != content_id:
            raise FieldDecodeError(
                "upload_response.blob_id", f"expected {content_id}, got {decoded.blob_id}"
            )

        logger.info(f"Relay accepted {content_id} ({len(data)} bytes)")
        return decoded.certificate.to_model(content_id)

    @staticmethod
    def _json(response: httpx.Response, path: str):
        try:
            return response.json()
        except ValueError as e:
            raise FieldDecodeError(path, f"response is not JSON: {e}") from e
