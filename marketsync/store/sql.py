"""
SQL Instrument Store
SQLAlchemy async persistence for instrument records.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Iterable, List, Mapping, Optional

from sqlalchemy import DateTime, Numeric, String, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from marketsync.core.errors import InstrumentNotFound
from marketsync.models import QUOTE_FIELDS, InstrumentRecord, InstrumentType

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SQLAlchemy Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""
    pass


class InstrumentRow(Base):
    """financial_instruments table."""
    __tablename__ = "financial_instruments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    symbol: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    current_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    daily_change: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))
    weekly_change: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))
    daily_high: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    daily_low: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    volume: Mapped[Optional[Decimal]] = mapped_column(Numeric(32, 4))
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def to_record(self) -> InstrumentRecord:
        last_updated = self.last_updated
        # SQLite drops tzinfo on round trip
        if last_updated is not None and last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=timezone.utc)
        return InstrumentRecord(
            id=self.id,
            symbol=self.symbol,
            name=self.name,
            type=InstrumentType(self.type),
            current_price=self.current_price,
            daily_change=self.daily_change,
            weekly_change=self.weekly_change,
            daily_high=self.daily_high,
            daily_low=self.daily_low,
            volume=self.volume,
            last_updated=last_updated,
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class SqlInstrumentStore:
    """Async SQL instrument store; each update is one transaction."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get database session context manager."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        """Create tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def add_missing(self, records: Iterable[InstrumentRecord]) -> int:
        """
        Insert records whose symbol is not stored yet.

        Returns:
            Number of inserted records
        """
        inserted = 0
        async with self.session() as session:
            existing = set((await session.scalars(select(InstrumentRow.symbol))).all())
            for record in records:
                if record.symbol in existing:
                    continue
                data = record.model_dump(mode="python")
                data["type"] = record.type.value
                session.add(InstrumentRow(**data))
                existing.add(record.symbol)
                inserted += 1
        logger.info(f"Seeded {inserted} instruments")
        return inserted

    async def list_all(self) -> List[InstrumentRecord]:
        async with self.session() as session:
            rows = (await session.scalars(select(InstrumentRow).order_by(InstrumentRow.symbol))).all()
            return [row.to_record() for row in rows]

    async def get(self, instrument_id: str) -> Optional[InstrumentRecord]:
        async with self.session() as session:
            row = await session.get(InstrumentRow, instrument_id)
            return row.to_record() if row is not None else None

    async def update(self, instrument_id: str, fields: Mapping[str, Any]) -> InstrumentRecord:
        unknown = set(fields) - QUOTE_FIELDS
        if unknown:
            raise ValueError(f"Not writable quote fields: {sorted(unknown)}")

        async with self.session() as session:
            row = await session.get(InstrumentRow, instrument_id)
            if row is None:
                raise InstrumentNotFound(instrument_id)
            for key, value in fields.items():
                setattr(row, key, value)
            await session.flush()
            return row.to_record()

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Instrument store health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
