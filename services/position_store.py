# services/position_store.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.position import Position
from services.ledger import PositionState

logger = logging.getLogger(__name__)


class StoreConflict(Exception):
    """Stored position changed between read and write (or was created concurrently)."""

    kind = "store_conflict"


def _to_state(row: Position) -> PositionState:
    return PositionState(
        owner=row.owner,
        asset=row.asset,
        quantity=float(row.quantity),
        cost_basis=float(row.cost_basis),
        name=row.name,
        symbol=row.symbol,
        image=row.image,
        version=row.version,
    )


class PositionStore:
    """
    One row per (owner, asset).

    Writes are compare-and-swap on `version`: pass the version you read as
    `expected_version`, or None when the position did not exist. A lost race
    raises StoreConflict and leaves the session rolled back.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, owner: str, asset: str) -> Optional[PositionState]:
        row = self.db.execute(
            select(Position)
            .where(Position.owner == owner, Position.asset == asset)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_state(row) if row else None

    def list_by_owner(self, owner: str) -> List[PositionState]:
        rows = self.db.execute(
            select(Position)
            .where(Position.owner == owner)
            .order_by(Position.created_at.asc(), Position.id.asc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [_to_state(r) for r in rows]

    def put(
        self,
        owner: str,
        asset: str,
        position: PositionState,
        *,
        expected_version: Optional[int],
    ) -> PositionState:
        if expected_version is None:
            return self._insert(owner, asset, position)

        new_version = expected_version + 1
        result = self.db.execute(
            update(Position)
            .where(
                Position.owner == owner,
                Position.asset == asset,
                Position.version == expected_version,
            )
            .values(
                quantity=position.quantity,
                cost_basis=position.cost_basis,
                name=position.name,
                symbol=position.symbol,
                image=position.image,
                version=new_version,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            logger.info("position_write_conflict op=update owner=%s asset=%s", owner, asset)
            raise StoreConflict(f"{asset} was modified concurrently")

        self.db.commit()
        return replace(position, owner=owner, asset=asset, version=new_version)

    def _insert(self, owner: str, asset: str, position: PositionState) -> PositionState:
        self.db.add(
            Position(
                owner=owner,
                asset=asset,
                name=position.name,
                symbol=position.symbol,
                image=position.image,
                quantity=position.quantity,
                cost_basis=position.cost_basis,
                version=1,
            )
        )
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.info("position_write_conflict op=insert owner=%s asset=%s", owner, asset)
            raise StoreConflict(f"{asset} was created concurrently") from exc
        return replace(position, owner=owner, asset=asset, version=1)

    def delete(self, owner: str, asset: str, *, expected_version: Optional[int] = None) -> bool:
        """
        Delete the row. With expected_version the delete is conditional and a
        mismatch raises StoreConflict; without it the delete is unconditional
        and the return value says whether anything was removed.
        """
        stmt = delete(Position).where(Position.owner == owner, Position.asset == asset)
        if expected_version is not None:
            stmt = stmt.where(Position.version == expected_version)

        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        if expected_version is not None and result.rowcount != 1:
            self.db.rollback()
            logger.info("position_write_conflict op=delete owner=%s asset=%s", owner, asset)
            raise StoreConflict(f"{asset} was modified concurrently")

        self.db.commit()
        return result.rowcount > 0
