# =============================================================================
# Portfolio Repository — Async Persistence for Analysed Portfolios
# =============================================================================
#
# Stores one row per analysed upload in the `portfolios` table. Holdings,
# summary and risk analysis are JSONB, so the dashboard aggregates run in
# SQL over summary fields.
#
# Every method opens its own session and commits before returning.
# Connection and driver errors surface as StorageUnavailableError.
# =============================================================================

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from finrag.db.models import Base, Portfolio
from finrag.services.errors import StorageUnavailableError
from finrag.services.portfolio import PortfolioMetrics

logger = logging.getLogger(__name__)

MAX_LISTED = 50


def make_portfolio_id(user_id: str, filename: str, epoch_ms: int | None = None) -> str:
    """'<user_id>_<filename>_<epoch milliseconds>'."""
    if epoch_ms is None:
        epoch_ms = time.time_ns() // 1_000_000
    return f"{user_id}_{filename}_{epoch_ms}"


class PortfolioRepository:
    """CRUD and aggregates over the portfolios table."""

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._engine = engine
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str):
        try:
            async with self._session_factory() as session:
                yield session
        except (DBAPIError, OSError) as exc:
            raise StorageUnavailableError(
                f"Portfolio storage {operation} failed: {exc}"
            ) from exc

    async def create_schema(self) -> None:
        """Create the portfolios table if missing. Safe to call concurrently."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all, tables=[Portfolio.__table__])
        except (IntegrityError, ProgrammingError) as exc:
            if "already exists" not in str(exc).lower():
                raise StorageUnavailableError(f"Portfolio schema creation failed: {exc}") from exc
        except (DBAPIError, OSError) as exc:
            raise StorageUnavailableError(f"Portfolio schema creation failed: {exc}") from exc
        logger.info("Portfolio table ready")

    async def save(
        self,
        user_id: str,
        filename: str,
        metrics: PortfolioMetrics,
        risk_analysis: dict[str, str] | None = None,
    ) -> Portfolio:
        portfolio = Portfolio(
            id=make_portfolio_id(user_id, filename),
            user_id=user_id,
            filename=filename,
            holdings=metrics.holdings,
            summary=metrics.summary,
            risk_analysis=risk_analysis,
        )
        async with self._session("save") as session:
            session.add(portfolio)
            await session.commit()
            await session.refresh(portfolio)

        logger.info("Stored portfolio %s for user %s", portfolio.id, user_id)
        return portfolio

    async def get(self, portfolio_id: str) -> Portfolio | None:
        async with self._session("get") as session:
            return await session.get(Portfolio, portfolio_id)

    async def list_for_user(self, user_id: str, limit: int = MAX_LISTED) -> list[Portfolio]:
        """A user's portfolios, newest upload first."""
        stmt = (
            select(Portfolio)
            .where(Portfolio.user_id == user_id)
            .order_by(Portfolio.upload_date.desc())
            .limit(limit)
        )
        async with self._session("list") as session:
            return list((await session.execute(stmt)).scalars().all())

    async def delete(self, portfolio_id: str) -> bool:
        """Delete a portfolio. Returns False if it did not exist."""
        stmt = delete(Portfolio).where(Portfolio.id == portfolio_id)
        async with self._session("delete") as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount > 0

    async def dashboard(self, user_id: str) -> dict[str, float | int]:
        """
        Aggregate figures across a user's portfolios.

        total_value / total_investment / total_gain_loss are rounded to
        whole currency units, average_return to 2 decimal places.
        """
        total_value = func.coalesce(func.sum(Portfolio.summary["total_value"].as_float()), 0.0)
        total_investment = func.coalesce(
            func.sum(Portfolio.summary["total_investment"].as_float()), 0.0,
        )
        average_return = func.coalesce(
            func.avg(Portfolio.summary["total_gain_loss_percent"].as_float()), 0.0,
        )
        stmt = select(
            func.count(Portfolio.id),
            total_value,
            total_investment,
            average_return,
        ).where(Portfolio.user_id == user_id)

        async with self._session("dashboard") as session:
            count, value, investment, avg_return = (await session.execute(stmt)).one()

        value = float(value)
        investment = float(investment)
        return {
            "total_portfolios": count,
            "total_value": round(value),
            "total_investment": round(investment),
            "average_return": round(float(avg_return), 2),
            "total_gain_loss": round(value - investment),
        }
