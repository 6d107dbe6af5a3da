# services/portfolio_service.py
from __future__ import annotations

import logging
import os
from typing import List, Optional

from tenacity import before_log, retry, retry_if_exception_type, stop_after_attempt

from services.ledger import (
    DEFAULT_TOP_N,
    BuyEvent,
    PositionNotFound,
    PositionState,
    SellEvent,
    SellOutcome,
    ValuationReport,
    apply_buy,
    apply_sell,
    build_valuation_report,
)
from services.coingecko_service import CoinGeckoService
from services.position_store import PositionStore, StoreConflict

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = int(os.getenv("PORTFOLIO_MAX_WRITE_ATTEMPTS", "3"))
REPORT_TOP_N = int(os.getenv("PORTFOLIO_TOP_N", str(DEFAULT_TOP_N)))


# Every attempt re-reads the position, so a conflicting writer's result is
# the base for the next try. Ledger errors are never retried.
_retry_on_conflict = retry(
    retry=retry_if_exception_type(StoreConflict),
    stop=stop_after_attempt(MAX_WRITE_ATTEMPTS),
    before=before_log(logger, logging.DEBUG),
    reraise=True,
)


@_retry_on_conflict
def record_buy(store: PositionStore, owner: str, event: BuyEvent) -> PositionState:
    existing = store.get(owner, event.asset)
    updated = apply_buy(existing, event, owner=owner)
    saved = store.put(
        owner,
        event.asset,
        updated,
        expected_version=existing.version if existing else None,
    )
    logger.info(
        "position_bought owner=%s asset=%s new_position=%s",
        owner, event.asset, existing is None,
    )
    return saved


@_retry_on_conflict
def record_sell(store: PositionStore, owner: str, event: SellEvent) -> SellOutcome:
    existing = store.get(owner, event.asset)
    outcome = apply_sell(existing, event)

    if outcome.removed:
        store.delete(owner, event.asset, expected_version=existing.version)
        logger.info("position_closed owner=%s asset=%s", owner, event.asset)
        return outcome

    saved = store.put(owner, event.asset, outcome.position, expected_version=existing.version)
    logger.info("position_reduced owner=%s asset=%s", owner, event.asset)
    return SellOutcome(position=saved)


def remove_asset(store: PositionStore, owner: str, asset: str) -> None:
    """Drop the position outright, ignoring quantity and cost basis."""
    if not store.delete(owner, asset):
        raise PositionNotFound(asset)
    logger.info("position_removed owner=%s asset=%s", owner, asset)


def list_positions(store: PositionStore, owner: str) -> List[PositionState]:
    return store.list_by_owner(owner)


async def get_valuation_report(
    store: PositionStore,
    prices: CoinGeckoService,
    owner: str,
    *,
    top_n: Optional[int] = None,
    currency: str = "usd",
) -> ValuationReport:
    n = REPORT_TOP_N if top_n is None else top_n
    positions = store.list_by_owner(owner)
    if not positions:
        return build_valuation_report([], {}, top_n=n)

    live = await prices.get_prices([p.asset for p in positions], currency=currency)
    report = build_valuation_report(positions, live or {}, top_n=n)

    if report.price_status != "live":
        logger.warning(
            "valuation_degraded owner=%s price_status=%s positions=%d",
            owner, report.price_status, len(positions),
        )
    return report
