import logging
from typing import Any, Optional

import httpx

from hyperwatch.config import DEFAULT_API_BASE, DEFAULT_REQUEST_TIMEOUT_SEC
from hyperwatch.models import AccountSnapshot

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """The clearinghouse state for an address could not be obtained."""


class HyperliquidClient:
    """
    Thin client for the Hyperliquid Info API.

    One request per call and no retries: a failed fetch is reported to the
    caller, which tries again on the next polling cycle.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self):
        await self._client.aclose()

    async def post_info(self, payload: dict) -> Any:
        try:
            response = await self._client.post(self.api_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"HTTP {e.response.status_code} from Info API") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Request to Info API failed: {e!r}") from e

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Undecodable Info API response: {e}") from e

    async def fetch(self, address: str) -> AccountSnapshot:
        """
        Fetch the current perp positions and account value of an address.

        Args:
            address: EVM address to query

        Returns:
            AccountSnapshot for the address

        Raises:
            FetchError: on transport, status, or decode failure
        """
        data = await self.post_info({"type": "clearinghouseState", "user": address})
        if not isinstance(data, dict):
            raise FetchError(f"Unexpected Info API payload for {address}: {type(data).__name__}")

        snapshot = AccountSnapshot.from_api(address, data)
        logger.debug(f"Fetched {len(snapshot.positions)} positions for {address}")
        return snapshot
