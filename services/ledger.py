# services/ledger.py
"""
Position ledger + valuation.

Pure functions only: nothing in here touches the database or the network.
Callers read a position, apply an event, and persist whatever comes back.

Cost accounting is average-cost: every held unit of an asset is fungible and
carries cost_basis / quantity. Sells remove that average cost per unit sold and
never book a realized P/L figure.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from math import fsum
from typing import List, Mapping, Optional, Sequence

# Quantities at or below this are float residue from repeated sells.
DUST_EPSILON = 1e-6

DEFAULT_TOP_N = 3


class LedgerError(Exception):
    """Base class for ledger validation failures."""

    kind = "ledger_error"


class InvalidQuantity(LedgerError):
    kind = "invalid_quantity"


class InvalidPrice(LedgerError):
    kind = "invalid_price"


class PositionNotFound(LedgerError):
    kind = "position_not_found"

    def __init__(self, asset: str):
        self.asset = asset
        super().__init__(f"{asset} is not currently held in this portfolio")


class InsufficientHoldings(LedgerError):
    kind = "insufficient_holdings"

    def __init__(self, asset: str, requested: float, max_sellable: float):
        self.asset = asset
        self.requested = requested
        self.max_sellable = max_sellable
        super().__init__(
            f"Cannot sell {requested:g} {asset}: you hold {max_sellable:g}"
        )


@dataclass(frozen=True)
class DisplayMeta:
    name: str | None = None
    symbol: str | None = None
    image: str | None = None


@dataclass(frozen=True)
class PositionState:
    owner: str
    asset: str
    quantity: float
    cost_basis: float
    name: str | None = None
    symbol: str | None = None
    image: str | None = None
    # store-level CAS counter; the engine carries it through untouched
    version: int = 0

    @property
    def average_cost(self) -> float:
        if self.quantity <= 0:
            return 0.0
        return self.cost_basis / self.quantity


@dataclass(frozen=True)
class BuyEvent:
    asset: str
    unit_price: float
    quantity: float
    meta: DisplayMeta = field(default_factory=DisplayMeta)


@dataclass(frozen=True)
class SellEvent:
    asset: str
    quantity: float


@dataclass(frozen=True)
class SellOutcome:
    """Either an updated position or a removal; never both."""

    position: Optional[PositionState] = None
    removed: bool = False


def _check_quantity(quantity: float) -> float:
    try:
        q = float(quantity)
    except (TypeError, ValueError):
        raise InvalidQuantity("quantity must be a number")
    if not math.isfinite(q) or q <= 0:
        raise InvalidQuantity("quantity must be greater than zero")
    return q


def _check_price(unit_price: float) -> float:
    try:
        p = float(unit_price)
    except (TypeError, ValueError):
        raise InvalidPrice("unit price must be a number")
    if not math.isfinite(p) or p < 0:
        raise InvalidPrice("unit price cannot be negative")
    return p


def apply_buy(
    existing: Optional[PositionState],
    event: BuyEvent,
    *,
    owner: str,
) -> PositionState:
    qty = _check_quantity(event.quantity)
    price = _check_price(event.unit_price)
    spent = price * qty
    if not math.isfinite(spent):
        raise InvalidPrice("purchase total is too large")

    if existing is None:
        return PositionState(
            owner=owner,
            asset=event.asset,
            quantity=qty,
            cost_basis=spent,
            name=event.meta.name,
            symbol=event.meta.symbol,
            image=event.meta.image,
        )

    new_qty = existing.quantity + qty
    new_cost = existing.cost_basis + spent
    if not math.isfinite(new_qty):
        raise InvalidQuantity("resulting quantity is too large")
    if not math.isfinite(new_cost):
        raise InvalidPrice("resulting cost basis is too large")

    # metadata is whatever the first purchase captured
    return replace(existing, quantity=new_qty, cost_basis=new_cost)


def apply_sell(existing: Optional[PositionState], event: SellEvent) -> SellOutcome:
    if existing is None:
        raise PositionNotFound(event.asset)

    qty = _check_quantity(event.quantity)
    if qty > existing.quantity:
        raise InsufficientHoldings(event.asset, qty, existing.quantity)

    sale_cost_portion = existing.average_cost * qty
    remaining_qty = existing.quantity - qty

    if remaining_qty <= DUST_EPSILON:
        return SellOutcome(removed=True)

    remaining_cost = max(existing.cost_basis - sale_cost_portion, 0.0)
    return SellOutcome(
        position=replace(existing, quantity=remaining_qty, cost_basis=remaining_cost)
    )


# -----------------------
# Valuation
# -----------------------

@dataclass(frozen=True)
class ValuationLine:
    asset: str
    name: str | None
    symbol: str | None
    image: str | None
    quantity: float
    cost_basis: float
    average_cost: float
    price: float
    price_status: str
    current_value: float
    profit_loss: float
    profit_loss_percent: float
    allocation_percent: float


@dataclass(frozen=True)
class AllocationSlice:
    asset: str
    name: str | None
    percent: float


@dataclass(frozen=True)
class ValuationReport:
    lines: List[ValuationLine]
    total_investment: float
    total_current_value: float
    overall_profit_loss: float
    overall_profit_loss_percent: float
    allocation: List[AllocationSlice]
    top_gainers: List[ValuationLine]
    top_losers: List[ValuationLine]

    @property
    def price_status(self) -> str:
        if not self.lines:
            return "live"
        live = sum(1 for ln in self.lines if ln.price_status == "live")
        if live == len(self.lines):
            return "live"
        if live == 0:
            return "unavailable"
        return "mixed"


def _pct(part: float, whole: float) -> float:
    # zero cost basis means "no meaningful percentage", reported as 0
    if whole > 0:
        return part / whole * 100.0
    return 0.0


def build_valuation_report(
    positions: Sequence[PositionState],
    live_prices: Mapping[str, Optional[float]],
    *,
    top_n: int = DEFAULT_TOP_N,
) -> ValuationReport:
    total_investment = fsum(p.cost_basis for p in positions)

    lines: List[ValuationLine] = []
    for p in positions:
        live = live_prices.get(p.asset)
        price, status = 0.0, "unavailable"
        if live is not None:
            price = float(live)
            if math.isfinite(price) and price >= 0 and math.isfinite(price * p.quantity):
                status = "live"
            else:
                price = 0.0

        current_value = price * p.quantity
        profit_loss = current_value - p.cost_basis
        lines.append(
            ValuationLine(
                asset=p.asset,
                name=p.name,
                symbol=p.symbol,
                image=p.image,
                quantity=p.quantity,
                cost_basis=p.cost_basis,
                average_cost=p.average_cost,
                price=price,
                price_status=status,
                current_value=current_value,
                profit_loss=profit_loss,
                profit_loss_percent=_pct(profit_loss, p.cost_basis),
                allocation_percent=_pct(p.cost_basis, total_investment),
            )
        )

    total_current_value = fsum(ln.current_value for ln in lines)
    overall_pl = total_current_value - total_investment

    n = max(0, top_n)
    # sorted() is stable, so equal percentages keep input order in both lists
    gainers = sorted(lines, key=lambda ln: ln.profit_loss_percent, reverse=True)[:n]
    losers = sorted(lines, key=lambda ln: ln.profit_loss_percent)[:n]

    return ValuationReport(
        lines=lines,
        total_investment=total_investment,
        total_current_value=total_current_value,
        overall_profit_loss=overall_pl,
        overall_profit_loss_percent=_pct(overall_pl, total_investment),
        allocation=[
            AllocationSlice(asset=ln.asset, name=ln.name, percent=ln.allocation_percent)
            for ln in lines
        ],
        top_gainers=gainers,
        top_losers=losers,
    )
