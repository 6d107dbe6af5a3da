import asyncio
import unittest
from unittest.mock import patch

import httpx

from services.coingecko_service import CoinGeckoService


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class CoinGeckoServiceTests(unittest.TestCase):
    def _run(self, svc, handler, assets, **kw):
        async def run():
            async with _client(handler) as client:
                return await svc.get_prices(assets, client=client, **kw)

        return asyncio.run(run())

    def test_parses_simple_price_response(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json={"bitcoin": {"usd": 65000.5}, "ethereum": {"usd": 3200}})

        svc = CoinGeckoService(api_key="demo-key", base_url="https://cg.test/api/v3", cache_ttl_sec=0)
        prices = self._run(svc, handler, ["Bitcoin", "ethereum", "bitcoin"])

        self.assertEqual(prices, {"bitcoin": 65000.5, "ethereum": 3200.0})
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].url.path, "/api/v3/simple/price")
        self.assertEqual(seen[0].url.params["ids"], "bitcoin,ethereum")
        self.assertEqual(seen[0].url.params["vs_currencies"], "usd")
        self.assertEqual(seen[0].headers["x-cg-demo-api-key"], "demo-key")

    def test_unknown_or_malformed_assets_are_none(self):
        def handler(request):
            return httpx.Response(200, json={"bitcoin": {"usd": 1.0}, "weird": {"usd": "n/a"}, "neg": {"usd": -4}})

        svc = CoinGeckoService(cache_ttl_sec=0)
        prices = self._run(svc, handler, ["bitcoin", "weird", "neg", "missing"])

        self.assertEqual(prices["bitcoin"], 1.0)
        self.assertIsNone(prices["weird"])
        self.assertIsNone(prices["neg"])
        self.assertIsNone(prices["missing"])

    def test_failed_batch_only_blanks_its_assets(self):
        def handler(request):
            if request.url.params["ids"] == "ethereum":
                return httpx.Response(503, json={"error": "busy"})
            ids = request.url.params["ids"].split(",")
            return httpx.Response(200, json={i: {"usd": 10.0} for i in ids})

        svc = CoinGeckoService(cache_ttl_sec=0)
        with patch("services.coingecko_service.MAX_IDS_PER_REQUEST", 1):
            prices = self._run(svc, handler, ["bitcoin", "ethereum", "solana"])

        self.assertEqual(prices, {"bitcoin": 10.0, "ethereum": None, "solana": 10.0})

    def test_timeout_degrades_to_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        svc = CoinGeckoService(cache_ttl_sec=0)
        with self.assertLogs("services.coingecko_service", level="WARNING"):
            prices = self._run(svc, handler, ["bitcoin", "ethereum"])

        self.assertEqual(prices, {"bitcoin": None, "ethereum": None})

    def test_overall_budget_bounds_slow_provider(self):
        async def handler(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200, json={"bitcoin": {"usd": 1.0}})

        svc = CoinGeckoService(timeout=0.05, cache_ttl_sec=0)
        prices = self._run(svc, handler, ["bitcoin"])

        self.assertEqual(prices, {"bitcoin": None})

    def test_cache_serves_repeat_requests(self):
        calls = []

        def handler(request):
            calls.append(request.url.params["ids"])
            ids = request.url.params["ids"].split(",")
            return httpx.Response(200, json={i: {"usd": 2.0} for i in ids if i != "ghost"})

        svc = CoinGeckoService(cache_ttl_sec=60)
        self._run(svc, handler, ["bitcoin", "ghost"])
        prices = self._run(svc, handler, ["bitcoin", "ghost"])

        self.assertEqual(prices, {"bitcoin": 2.0, "ghost": None})
        # unavailable prices are not cached, so only "ghost" is asked for again
        self.assertEqual(calls, ["bitcoin,ghost", "ghost"])

    def test_expired_entries_are_dropped_on_write(self):
        def handler(request):
            ids = request.url.params["ids"].split(",")
            return httpx.Response(200, json={i: {"usd": 3.0} for i in ids})

        svc = CoinGeckoService(cache_ttl_sec=10)
        with patch("services.coingecko_service.time.time", return_value=1000.0):
            self._run(svc, handler, ["bitcoin", "ethereum"])
        self.assertEqual(set(svc._cache), {("usd", "bitcoin"), ("usd", "ethereum")})

        with patch("services.coingecko_service.time.time", return_value=2000.0):
            self._run(svc, handler, ["solana"])
        self.assertEqual(set(svc._cache), {("usd", "solana")})

    def test_empty_input_makes_no_request(self):
        def handler(request):
            raise AssertionError("should not be called")

        svc = CoinGeckoService()
        self.assertEqual(self._run(svc, handler, ["", "  "]), {})


if __name__ == "__main__":
    unittest.main()
