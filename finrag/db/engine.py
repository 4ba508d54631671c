# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Async SQLAlchemy engine over asyncpg. Used by:
#   - PortfolioRepository (portfolio records)
#   - PgVectorIndex (when VECTORSTORE_TYPE=pgvector)
#
# The engine is built per application from its Settings (see lifespan() in
# finrag/main.py) and disposed on shutdown. Creating it does not open a
# connection; the pool connects on first use, so the service starts without
# PostgreSQL when only the ChromaDB index is in use.
#
# SESSION LIFECYCLE:
# Components own their sessions: each repository / index call opens a
# session from the factory, commits explicitly, and closes it.
# =============================================================================

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from finrag.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Build the async engine for settings.database_url.

    - echo=settings.debug: log all SQL statements in debug mode
    - pool_pre_ping: detect connections dropped by the server
    """
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps loaded attributes readable after commit,
    # which async code cannot lazily refresh.
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
