"""
Base adapter with a shared HTTP client lifecycle.
"""

import logging
from abc import ABC
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class BaseHttpAdapter(ABC):
    """Owns (or borrows) an ``httpx.AsyncClient`` for one remote endpoint"""

    def __init__(self, base_url: str, timeout: float = 60.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> bool:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
            logger.debug(f"Opened HTTP client for {self.base_url}")
        return True

    async def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            logger.debug(f"Closed HTTP client for {self.base_url}")
        self._client = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.connect()
        return self._client

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
