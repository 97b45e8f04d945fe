"""
Pinning service client and metadata pinner.

Publishes token metadata as a JSON blob, pins it by content address and
returns the gateway URI that is stored on the token.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp
import structlog

from mintsync.core.config import settings
from mintsync.core.exceptions import PinningError

from .retry import retry_async


logger = structlog.get_logger(__name__)


class PinningClient:
    """Async client for a Pinata-compatible pinning API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        jwt: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = (base_url or settings.pinning_api_url).rstrip("/")
        self.jwt = jwt if jwt is not None else settings.pinning_jwt
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.pinning_timeout)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.jwt}"}
        async with self._get_session().post(
            f"{self.base_url}{path}", json=body, headers=headers, timeout=self.timeout
        ) as response:
            response.raise_for_status()
            return await response.json()

    async def add_metadata(self, metadata: Dict[str, Any], name: str) -> str:
        """Pin a JSON document; returns its content address."""
        payload = await self._post("/pinning/pinJSONToIPFS", {
            "pinataContent": metadata,
            "pinataMetadata": {"name": name},
        })
        cid = payload.get("IpfsHash") if isinstance(payload, dict) else None
        if not cid:
            raise PinningError("Pinning service returned no content address", details={"name": name})
        return cid

    async def add_pin(self, cid: str, name: str) -> None:
        """Ask the service to keep ``cid`` pinned."""
        await self._post("/pinning/pinByHash", {
            "hashToPin": cid,
            "pinataMetadata": {"name": name},
        })


class MetadataPinner:
    """Republishes existing token metadata and returns its durable URI."""

    def __init__(
        self,
        client: PinningClient,
        gateway: Optional[str] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self.client = client
        self.gateway = (gateway or settings.pinning_gateway).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = logger.bind(service="metadata_pinner")

    async def pin(self, metadata: Dict[str, Any]) -> str:
        """
        Pin ``metadata`` and return ``{gateway}/{cid}``.

        Raises:
            PinningError: when the service fails after the retry budget
        """
        name = str(metadata.get("name", "none"))
        try:
            cid = await retry_async(
                self.client.add_metadata, metadata, name,
                max_retries=self.max_retries, delay=self.retry_delay,
            )
            await retry_async(
                self.client.add_pin, cid, f"metadata_{name}",
                max_retries=self.max_retries, delay=self.retry_delay,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, TypeError, AttributeError) as e:
            # ValueError covers a 200 with an undecodable body
            raise PinningError(
                f"Failed to pin metadata: {e}",
                details={"name": name}
            ) from e

        uri = f"{self.gateway}/{cid}"
        self.logger.info("Metadata pinned", name=name, uri=uri)
        return uri
