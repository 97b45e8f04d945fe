"""
HTTP client for the blockchain indexing service (contract events, NFT owners).
"""

from typing import Any, Dict, List, Optional

import aiohttp
import structlog
from pydantic import ValidationError as PydanticValidationError

from mintsync.core.config import settings
from mintsync.core.exceptions import IndexerError

from .schemas import ContractEventRecord, EventPage, NftOwnerRecord, NftOwnersPage


logger = structlog.get_logger(__name__)


class IndexingServiceClient:
    """
    Thin async wrapper over the indexing service REST API.

    One ``aiohttp.ClientSession`` is shared by all calls; every call is bounded
    by ``timeout`` seconds. Records failing validation are dropped, never
    passed on.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = (base_url or settings.indexer_api_url).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.indexer_timeout)
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(service="indexing_client")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, api_key: str, **kwargs: Any) -> Dict[str, Any]:
        headers = {"X-API-Key": api_key, "accept": "application/json"}
        async with self._get_session().request(
            method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
        ) as response:
            response.raise_for_status()
            payload = await response.json()

        if not isinstance(payload, dict):
            raise IndexerError("Unexpected response shape", details={"path": path})
        return payload

    async def get_contract_events(
        self,
        address: str,
        chain: str,
        topic: str,
        abi: Dict[str, Any],
        from_block: int,
        api_key: str,
        limit: Optional[int] = None,
        order: Optional[str] = None,
    ) -> EventPage:
        """Fetch one page of decoded events for ``topic`` at or after ``from_block``."""
        params = {"chain": chain, "topic": topic, "from_block": str(from_block)}
        if limit:
            params["limit"] = str(limit)
        if order:
            params["order"] = order

        payload = await self._request("POST", f"/{address}/events", api_key, params=params, json=abi)

        page = self._envelope(EventPage, payload, path=f"/{address}/events")
        page.events, page.dropped = self._parse_events(page.result)
        if page.dropped:
            self.logger.warning("Dropped malformed event records", dropped=page.dropped, address=address)
        return page

    async def get_nft_owners(
        self,
        address: str,
        chain: str,
        api_key: str,
        cursor: Optional[str] = None,
    ) -> NftOwnersPage:
        """Fetch one page of token owners for a contract."""
        params = {"chain": chain, "format": "decimal"}
        if cursor:
            params["cursor"] = cursor

        payload = await self._request("GET", f"/nft/{address}/owners", api_key, params=params)

        page = self._envelope(NftOwnersPage, payload, path=f"/nft/{address}/owners")
        tokens: List[NftOwnerRecord] = []
        for record in page.result:
            try:
                tokens.append(NftOwnerRecord.model_validate(record))
            except PydanticValidationError:
                page.dropped += 1
        page.tokens = tokens
        return page

    async def fetch_json(self, url: str) -> Any:
        """GET an arbitrary JSON document, e.g. a token_uri."""
        async with self._get_session().get(url, timeout=self.timeout) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    @staticmethod
    def _envelope(model, payload: Dict[str, Any], path: str):
        try:
            return model.model_validate(payload)
        except PydanticValidationError as e:
            raise IndexerError("Malformed page envelope", details={"path": path, "error": str(e)}) from e

    @staticmethod
    def _parse_events(records: List[Dict[str, Any]]):
        events = []
        dropped = 0
        for record in records:
            try:
                events.append(ContractEventRecord.model_validate(record).to_raw_event())
            except PydanticValidationError:
                dropped += 1
        return events, dropped
