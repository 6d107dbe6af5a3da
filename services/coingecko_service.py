# services/coingecko_service.py
from __future__ import annotations

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List, Optional, Tuple

import httpx
from dotenv import load_dotenv

from utils.common_helpers import safe_float, safe_json

load_dotenv()

logger = logging.getLogger(__name__)

COINGECKO_API_URL = os.getenv("COINGECKO_API_URL", "https://api.coingecko.com/api/v3").rstrip("/")
COINGECKO_API_KEY = os.getenv("COINGECKO_API_KEY")
COINGECKO_TIMEOUT_SEC = float(os.getenv("COINGECKO_TIMEOUT_SEC", "5"))
PRICE_CACHE_TTL_SEC = int(os.getenv("PRICE_CACHE_TTL_SEC", "30"))

# simple/price accepts a comma list; keep URLs short
MAX_IDS_PER_REQUEST = 100


class CoinGeckoServiceError(Exception):
    """Domain-level error for the CoinGecko service."""


class PriceSourceUnavailable(CoinGeckoServiceError):
    """Prices could not be fetched for a batch of assets."""


def _chunks(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class CoinGeckoService:
    """
    Live unit prices keyed by CoinGecko id ("bitcoin", "ethereum", ...).

    get_prices never raises for provider problems: assets whose batch failed,
    timed out or came back without a price map to None.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = COINGECKO_API_URL,
        timeout: float = COINGECKO_TIMEOUT_SEC,
        cache_ttl_sec: int = PRICE_CACHE_TTL_SEC,
    ):
        self.api_key = api_key or COINGECKO_API_KEY
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._ttl = cache_ttl_sec
        # (currency, asset) -> (price, expires_at)
        self._cache: Dict[Tuple[str, str], Tuple[float, float]] = {}

    @asynccontextmanager
    async def _client(self, client: Optional[httpx.AsyncClient] = None):
        if client is not None:
            yield client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as c:
                yield c

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    def _cached(self, currency: str, asset: str, now: float) -> Optional[float]:
        hit = self._cache.get((currency, asset))
        if hit and hit[1] > now:
            return hit[0]
        return None

    def _evict_expired(self, now: float) -> None:
        stale = [k for k, (_, exp) in self._cache.items() if exp <= now]
        for k in stale:
            del self._cache[k]

    async def _fetch_batch(
        self,
        c: httpx.AsyncClient,
        ids: List[str],
        currency: str,
    ) -> Dict[str, Optional[float]]:
        try:
            r = await c.get(
                f"{self.base_url}/simple/price",
                params={"ids": ",".join(ids), "vs_currencies": currency},
                headers=self._headers(),
            )
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise PriceSourceUnavailable(f"{type(e).__name__}: {e}") from e

        data = safe_json(r) or {}
        out: Dict[str, Optional[float]] = {}
        for asset in ids:
            quote = data.get(asset)
            price = safe_float(quote.get(currency)) if isinstance(quote, dict) else None
            out[asset] = price if price is not None and price >= 0 else None
        return out

    async def get_prices(
        self,
        assets: Iterable[str],
        currency: str = "usd",
        client: Optional[httpx.AsyncClient] = None,
    ) -> Dict[str, Optional[float]]:
        ccy = (currency or "usd").lower()
        wanted = sorted({(a or "").strip().lower() for a in assets if a and a.strip()})
        if not wanted:
            return {}

        now = time.time()
        prices: Dict[str, Optional[float]] = {}
        missing: List[str] = []
        for asset in wanted:
            hit = self._cached(ccy, asset, now)
            if hit is not None:
                prices[asset] = hit
            else:
                missing.append(asset)

        if not missing:
            return prices

        batches = _chunks(missing, MAX_IDS_PER_REQUEST)
        t0 = time.perf_counter()
        async with self._client(client) as c:
            try:
                results = await asyncio.wait_for(
                    asyncio.gather(
                        *(self._fetch_batch(c, b, ccy) for b in batches),
                        return_exceptions=True,
                    ),
                    # per-request timeout bounds each batch; this bounds the whole call
                    timeout=self.timeout * 2,
                )
            except asyncio.TimeoutError:
                logger.warning("price_fetch_timeout assets=%d", len(missing))
                results = [PriceSourceUnavailable("timed out")] * len(batches)

        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        for batch, res in zip(batches, results):
            if isinstance(res, BaseException):
                logger.warning(
                    "price_batch_unavailable assets=%d error=%s",
                    len(batch), res,
                )
                prices.update({a: None for a in batch})
                continue
            prices.update(res)

        now = time.time()
        expires = now + self._ttl
        if self._ttl:
            self._evict_expired(now)
            for asset in missing:
                price = prices.get(asset)
                if price is not None:
                    self._cache[(ccy, asset)] = (price, expires)

        live = sum(1 for a in missing if prices.get(a) is not None)
        logger.info(
            "price_fetch_done requested=%d live=%d cached=%d elapsed_ms=%.1f",
            len(missing), live, len(wanted) - len(missing), elapsed_ms,
        )
        return prices


_shared_service = CoinGeckoService()


def get_coingecko_service() -> CoinGeckoService:
    return _shared_service
