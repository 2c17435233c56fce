"""
Sui JSON-RPC read adapter.
"""

import itertools
import logging
from typing import Any, List, Optional

import httpx

from ..models import BlobObject, NetworkState, TransactionBlock
from ..schemas import BlobObjectSchema, SystemStateSchema, TransactionBlockSchema, decode
from ..types import AddressComputationError, ChainRpcError, UploadState
from .base import BaseHttpAdapter

logger = logging.getLogger(__name__)


class SuiRpcReader(BaseHttpAdapter):
    """Reads transactions, blob objects and storage system state over JSON-RPC"""

    def __init__(self,
                 rpc_url: str,
                 system_state_object_id: Optional[str] = None,
                 shard_count: Optional[int] = None,
                 timeout: float = 60.0,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(rpc_url, timeout=timeout, client=client)
        self.system_state_object_id = system_state_object_id
        self.shard_count = shard_count
        self._ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings, client: Optional[httpx.AsyncClient] = None) -> "SuiRpcReader":
        return cls(
            settings.sui_rpc_url,
            system_state_object_id=settings.walrus_system_state_object_id,
            shard_count=settings.shard_count,
            timeout=settings.http_timeout,
            client=client,
        )

    async def _call(self, method: str, params: List[Any]) -> Any:
        client = await self._get_client()
        try:
            response = await client.post(self.base_url, json={
                "jsonrpc": "2.0",
                "id": next(self._ids),
                "method": method,
                "params": params,
            })
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise ChainRpcError(method, None, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ChainRpcError(method, None, f"Response is not JSON: {e}") from e

        if not isinstance(body, dict):
            raise ChainRpcError(method, None, "Response is not a JSON-RPC object")
        if body.get("error"):
            error = body["error"]
            raise ChainRpcError(method, error.get("code"), error.get("message", ""))
        return body.get("result")

    async def get_network_state(self) -> NetworkState:
        """
        Shard count and storage prices.

        A configured shard count takes precedence over the one published in
        the system state; prices still come from the chain when readable.
        """
        if not self.system_state_object_id:
            if self.shard_count is None:
                raise AddressComputationError(
                    "No shard count configured and no system state object to read it from",
                    phase=UploadState.ADDRESSING,
                )
            return NetworkState(shard_count=self.shard_count)

        result = await self._call("sui_getObject", [self.system_state_object_id, {"showContent": True}])
        state = decode(SystemStateSchema, result, "system_state").to_model()
        if self.shard_count is not None:
            state.shard_count = self.shard_count
        logger.info(f"Network state: {state.shard_count} shards")
        return state

    async def get_transaction_block(self, digest: str) -> Optional[TransactionBlock]:
        try:
            result = await self._call("sui_getTransactionBlock", [
                digest, {"showEffects": True, "showObjectChanges": True},
            ])
        except ChainRpcError as e:
            # Unknown digests and replica errors both mean "not yet"
            logger.debug(f"Transaction {digest} not visible yet: {e}")
            return None
        if result is None:
            return None
        return decode(TransactionBlockSchema, result, "transaction_block").to_model()

    async def get_blob_object(self, object_id: str) -> BlobObject:
        result = await self._call("sui_getObject", [object_id, {"showContent": True}])
        return decode(BlobObjectSchema, result, f"blob_object[{object_id}]").to_model()
