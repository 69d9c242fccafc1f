#!/usr/bin/env python3
"""Client for the Hermes price service.

Hermes serves the signed price update VAAs that price feed contracts
verify on-chain, together with the prices they carry.
"""

import logging
from typing import Any

import httpx

from .codec import convert_price, strip_hex_prefix
from .models import PriceFeed

logger = logging.getLogger(__name__)


class HermesClient:
    """Client for the Hermes price service REST API.

    Fetches signed price update VAAs that can be handed to
    PriceFeedContract.execute_update_price_feed*, along with the parsed
    prices they carry.
    """

    DEFAULT_URL: str = "https://hermes.pyth.network"
    LATEST_UPDATES_PATH: str = "/v2/updates/price/latest"

    def __init__(
        self,
        url: str = DEFAULT_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """Initialize Hermes client.

        Args:
            url: Base URL of the Hermes service
            timeout: Request timeout in seconds
            transport: Optional transport override
        """
        self.url: str = url.rstrip("/")
        self.timeout: float = timeout
        self.transport: httpx.AsyncBaseTransport | None = transport

    async def _get(self, path: str, params: list[tuple[str, str]]) -> Any:
        """Send a GET request to Hermes.

        Raises:
            httpx.HTTPStatusError: If the request fails
        """
        async with httpx.AsyncClient(
            base_url=self.url,
            transport=self.transport,
            timeout=self.timeout
        ) as client:
            logger.debug(f"GET {self.url}{path} {params}")
            response: httpx.Response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()

    async def _latest(self, feed_ids: list[str], parsed: bool) -> dict[str, Any]:
        if not feed_ids:
            raise ValueError("At least one feed id is required")

        params: list[tuple[str, str]] = [
            ("ids[]", strip_hex_prefix(feed_id).lower()) for feed_id in feed_ids
        ]
        params.append(("encoding", "hex"))
        params.append(("parsed", "true" if parsed else "false"))
        return await self._get(self.LATEST_UPDATES_PATH, params)

    async def get_price_update_data(self, feed_ids: list[str]) -> list[bytes]:
        """Fetch the latest price update VAAs for the given feeds.

        Args:
            feed_ids: Hex feed identifiers, 0x prefix optional

        Returns:
            Raw update blobs ready to be submitted on-chain
        """
        response = await self._latest(feed_ids, parsed=False)
        blobs: list[str] = response["binary"]["data"]
        logger.info(f"Fetched {len(blobs)} price update(s) for {len(feed_ids)} feed(s)")
        return [bytes.fromhex(strip_hex_prefix(blob)) for blob in blobs]

    async def get_latest_price_feeds(self, feed_ids: list[str]) -> dict[str, PriceFeed]:
        """Fetch the latest off-chain prices for the given feeds.

        Returns:
            Mapping of feed id (lowercase hex, no prefix) to price feed
        """
        response = await self._latest(feed_ids, parsed=True)
        feeds: dict[str, PriceFeed] = {}
        for entry in response.get("parsed", []):
            feeds[strip_hex_prefix(entry["id"]).lower()] = PriceFeed(
                price=convert_price(entry["price"]),
                ema_price=convert_price(entry["ema_price"])
            )
        return feeds
