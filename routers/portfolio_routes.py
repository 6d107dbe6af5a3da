# routers/portfolio_routes.py
import logging
import time
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from middleware.rate_limit import limiter
from schemas.portfolio import (
    BuyRequest,
    PositionOut,
    SellRequest,
    SellResultOut,
    ValuationReportOut,
    to_position_out,
    to_report_out,
)
from services.auth import get_current_owner
from services.coingecko_service import CoinGeckoService, get_coingecko_service
from services.ledger import (
    BuyEvent,
    InsufficientHoldings,
    LedgerError,
    PositionNotFound,
    SellEvent,
)
from services.portfolio_service import (
    get_valuation_report,
    list_positions,
    record_buy,
    record_sell,
    remove_asset,
)
from services.position_store import PositionStore, StoreConflict

logger = logging.getLogger(__name__)

router = APIRouter()


def get_position_store(db: Session = Depends(get_db)) -> PositionStore:
    return PositionStore(db)


def _ledger_http_error(exc: LedgerError) -> HTTPException:
    detail = {"error": exc.kind, "message": str(exc)}
    if isinstance(exc, PositionNotFound):
        return HTTPException(status_code=404, detail=detail)
    if isinstance(exc, InsufficientHoldings):
        detail["max_sellable"] = exc.max_sellable
        return HTTPException(status_code=400, detail=detail)
    return HTTPException(status_code=400, detail=detail)


def _conflict_http_error(exc: StoreConflict) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"error": exc.kind, "message": "Position is busy, please retry"},
    )


@router.post("/add", response_model=PositionOut)
@limiter.limit("30/minute")
def add_to_portfolio(
    request: Request,
    payload: BuyRequest,
    store: PositionStore = Depends(get_position_store),
    owner: str = Depends(get_current_owner),
):
    event = BuyEvent(
        asset=payload.asset,
        unit_price=payload.unit_price,
        quantity=payload.quantity,
        meta=payload.display_meta(),
    )
    try:
        position = record_buy(store, owner, event)
    except LedgerError as exc:
        raise _ledger_http_error(exc)
    except StoreConflict as exc:
        logger.warning("buy_conflict_exhausted owner=%s asset=%s", owner, payload.asset)
        raise _conflict_http_error(exc)
    return to_position_out(position)


@router.post("/sell", response_model=SellResultOut)
@limiter.limit("30/minute")
def sell_from_portfolio(
    request: Request,
    payload: SellRequest,
    store: PositionStore = Depends(get_position_store),
    owner: str = Depends(get_current_owner),
):
    try:
        outcome = record_sell(store, owner, SellEvent(asset=payload.asset, quantity=payload.quantity))
    except LedgerError as exc:
        raise _ledger_http_error(exc)
    except StoreConflict as exc:
        logger.warning("sell_conflict_exhausted owner=%s asset=%s", owner, payload.asset)
        raise _conflict_http_error(exc)

    if outcome.removed:
        return SellResultOut(removed=True, detail="Coin sold and removed from portfolio.")
    return SellResultOut(
        removed=False,
        position=to_position_out(outcome.position),
        detail="Coin sold.",
    )


@router.get("", response_model=ValuationReportOut)
async def portfolio_report(
    top_n: int | None = Query(None, ge=0, le=50),
    store: PositionStore = Depends(get_position_store),
    owner: str = Depends(get_current_owner),
    prices: CoinGeckoService = Depends(get_coingecko_service),
):
    report = await get_valuation_report(store, prices, owner, top_n=top_n)
    return to_report_out(report, as_of=int(time.time()))


@router.get("/positions", response_model=List[PositionOut])
def portfolio_positions(
    store: PositionStore = Depends(get_position_store),
    owner: str = Depends(get_current_owner),
):
    return [to_position_out(p) for p in list_positions(store, owner)]


@router.delete("/{asset}")
def delete_portfolio_entry(
    asset: str,
    store: PositionStore = Depends(get_position_store),
    owner: str = Depends(get_current_owner),
):
    try:
        remove_asset(store, owner, asset.strip().lower())
    except PositionNotFound as exc:
        raise _ledger_http_error(exc)
    return {"detail": "Portfolio entry deleted successfully"}
