"""MOEX ISS client for polling executed trades.

Fetches the most recent page of trades for one engine/market:

    GET {base_url}/iss/engines/{engine}/markets/{market}/trades.json
        ?limit=100&reversed=1[&from=<watermark>&till=-1]

``reversed=1`` makes ISS answer newest first; ``from``/``till`` ask it to
skip what was already seen. The ``from`` filter only saves bandwidth: the
decoder drops anything at or below the watermark regardless.

Each call waits for a rate limiter permit before touching the network.
Cancelling the calling task aborts either the wait or the request.

Usage:
    async with IssClient() as client:
        batch = await client.fetch_trades("stock", "shares", since_watermark="")
        for trade in batch.trades:
            ...
"""

import json
from decimal import Decimal
from typing import Any, Optional

import httpx

from moexfeed import __version__
from moexfeed.common.config import config
from moexfeed.common.logging import get_logger
from moexfeed.common.metrics import create_component_metrics
from moexfeed.ingestion.decoder import decode_trades
from moexfeed.ingestion.exceptions import FetchError, MalformedResponseError
from moexfeed.ingestion.models import DecodedBatch
from moexfeed.ingestion.rate_limiter import RateLimiter

logger = get_logger(__name__, component="iss")
metrics = create_component_metrics("iss", environment=config.environment)

TRADES_PATH = "/iss/engines/{engine}/markets/{market}/trades.json"

# How much of an error body is kept in the exception message
ERROR_BODY_EXCERPT = 500


class IssClient:
    """Rate-limited ISS trades fetcher.

    Owns its HTTP client and rate limiter unless they are passed in.
    """

    def __init__(
        self,
        base_url: str | None = None,
        page_size: int | None = None,
        request_timeout: float | None = None,
        limiter: Optional[RateLimiter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: ISS base URL (default: from config)
            page_size: Trades per request (default: from config, 100)
            request_timeout: HTTP timeout in seconds (default: from config)
            limiter: Rate limiter (default: config.iss.requests_per_second, burst 1)
            http_client: Pre-built httpx client (tests pass one with a MockTransport)
        """
        self.base_url = (base_url or config.iss.base_url).rstrip("/")
        self.page_size = page_size or config.iss.page_size
        self.request_timeout = request_timeout or config.iss.request_timeout
        self.limiter = limiter or RateLimiter(rate=config.iss.requests_per_second)

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.request_timeout,
            headers={"User-Agent": f"moexfeed/{__version__}", "Accept": "application/json"},
        )

        logger.info(
            "ISS client initialized",
            base_url=self.base_url,
            page_size=self.page_size,
            rate=self.limiter.rate,
        )

    async def __aenter__(self) -> "IssClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def build_params(self, since_watermark: str) -> dict[str, Any]:
        """Query parameters for one page of trades."""
        params: dict[str, Any] = {
            "limit": self.page_size,
            "reversed": 1,
        }
        if since_watermark:
            params["from"] = since_watermark
            params["till"] = -1
        return params

    async def fetch_trades(self, engine: str, market: str, since_watermark: str) -> DecodedBatch:
        """Fetch trades newer than ``since_watermark``, oldest first.

        Raises:
            FetchError: On transport failure, non-200 status or a body that
                is not a usable trades table
            asyncio.CancelledError: If cancelled while waiting or requesting
        """
        labels = {"engine": engine, "market": market}

        await self.limiter.acquire()

        url = TRADES_PATH.format(engine=engine, market=market)
        params = self.build_params(since_watermark)

        logger.debug("Requesting ISS trades", url=url, params=params)

        try:
            with metrics.timer("fetch_duration_seconds", labels=labels):
                response = await self._client.get(url, params=params)
        except httpx.HTTPError as err:
            metrics.increment(
                "fetch_errors_total", labels={**labels, "error_type": type(err).__name__},
            )
            raise FetchError(f"ISS request failed: {err}") from err

        if response.status_code != httpx.codes.OK:
            metrics.increment(
                "fetch_errors_total", labels={**labels, "error_type": f"http_{response.status_code}"},
            )
            raise FetchError(
                f"ISS returned status {response.status_code}: "
                f"{response.text[:ERROR_BODY_EXCERPT]}",
                status_code=response.status_code,
            )

        try:
            payload = json.loads(response.content, parse_float=Decimal)
            batch = decode_trades(payload, since_watermark)
        except (json.JSONDecodeError, UnicodeDecodeError) as err:
            metrics.increment("fetch_errors_total", labels={**labels, "error_type": "invalid_json"})
            raise MalformedResponseError(f"ISS body is not valid JSON: {err}") from err
        except MalformedResponseError as err:
            metrics.increment(
                "fetch_errors_total", labels={**labels, "error_type": type(err).__name__},
            )
            raise

        metrics.increment("trades_fetched_total", value=len(batch.trades), labels=labels)
        if batch.rejected:
            metrics.increment(
                "rows_rejected_total", value=batch.rejected,
                labels={**labels, "reason": "decode_error"},
            )
        if batch.already_seen:
            metrics.increment(
                "rows_rejected_total", value=batch.already_seen,
                labels={**labels, "reason": "already_seen"},
            )

        logger.debug(
            "ISS trades decoded",
            new_trades=len(batch.trades),
            rejected=batch.rejected,
            already_seen=batch.already_seen,
            watermark=batch.watermark,
        )
        return batch
