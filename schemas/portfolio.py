from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.ledger import DisplayMeta, PositionState, ValuationReport


def _normalize_asset(value: str) -> str:
    asset = (value or "").strip().lower()
    if not asset or len(asset) > 100:
        raise ValueError("asset must be 1-100 characters")
    return asset


class BuyRequest(BaseModel):
    asset: str
    # bounded by the positions table columns
    name: Optional[str] = Field(None, max_length=128)
    symbol: Optional[str] = Field(None, max_length=32)
    image: Optional[str] = Field(None, max_length=512)
    unit_price: float
    quantity: float

    @field_validator("asset")
    @classmethod
    def validate_asset(cls, value: str) -> str:
        return _normalize_asset(value)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        symbol = value.strip().upper()
        return symbol or None

    def display_meta(self) -> DisplayMeta:
        return DisplayMeta(name=self.name, symbol=self.symbol, image=self.image)


class SellRequest(BaseModel):
    asset: str
    quantity: float

    @field_validator("asset")
    @classmethod
    def validate_asset(cls, value: str) -> str:
        return _normalize_asset(value)


class PositionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset: str
    name: str | None = None
    symbol: str | None = None
    image: str | None = None
    quantity: float
    cost_basis: float                   # TOTAL cost of held units
    average_cost: float                 # per-unit


class SellResultOut(BaseModel):
    removed: bool
    position: PositionOut | None = None
    detail: str


class ValuationLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset: str
    name: str | None = None
    symbol: str | None = None
    image: str | None = None
    price: float
    price_status: str                   # "live" | "unavailable"
    quantity: float
    investment: float = Field(validation_alias="cost_basis")
    average_cost: float
    current_value: float
    profit_loss: float
    profit_loss_percent: float
    allocation_percent: float


class AllocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset: str
    name: str | None = None
    percent: float

    @field_validator("percent")
    @classmethod
    def round_percent(cls, value: float) -> float:
        return round(value, 2)


class ValuationReportOut(BaseModel):
    as_of: int
    price_status: str                   # "live" | "mixed" | "unavailable"
    positions_count: int
    portfolio: list[ValuationLineOut] = Field(default_factory=list)
    total_investment: float
    total_current_value: float
    overall_profit_loss: float
    overall_profit_loss_percent: float
    allocation: list[AllocationOut] = Field(default_factory=list)
    top_gainers: list[ValuationLineOut] = Field(default_factory=list)
    top_losers: list[ValuationLineOut] = Field(default_factory=list)


def to_position_out(position: PositionState) -> PositionOut:
    return PositionOut.model_validate(position)


def to_report_out(report: ValuationReport, as_of: int) -> ValuationReportOut:
    def lines(items) -> list[ValuationLineOut]:
        return [ValuationLineOut.model_validate(ln) for ln in items]

    # round ONLY at the edge
    return ValuationReportOut(
        as_of=as_of,
        price_status=report.price_status,
        positions_count=len(report.lines),
        portfolio=lines(report.lines),
        total_investment=round(report.total_investment, 8),
        total_current_value=round(report.total_current_value, 8),
        overall_profit_loss=round(report.overall_profit_loss, 8),
        overall_profit_loss_percent=round(report.overall_profit_loss_percent, 4),
        allocation=[AllocationOut.model_validate(a) for a in report.allocation],
        top_gainers=lines(report.top_gainers),
        top_losers=lines(report.top_losers),
    )
