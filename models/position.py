# models/position.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Position(Base):
    __tablename__ = "positions"
    __table_args__ = (
        UniqueConstraint("owner", "asset", name="uq_positions_owner_asset"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # opaque account id from the auth token (JWT "sub")
    owner: Mapped[str] = mapped_column(String(128), index=True)

    # provider id, e.g. "bitcoin"
    asset: Mapped[str] = mapped_column(String(100))

    # captured on first purchase only
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    symbol: Mapped[str | None] = mapped_column(String(32), nullable=True)
    image: Mapped[str | None] = mapped_column(String(512), nullable=True)

    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    # TOTAL paid for the units still held, not a unit price
    cost_basis: Mapped[float] = mapped_column(Float, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
