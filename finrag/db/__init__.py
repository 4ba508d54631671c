# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine, session management, ORM models and
# the portfolio repository.
#
# Key exports:
#   - create_engine / create_session_factory: per-app PostgreSQL connection pool
#   - Base: SQLAlchemy declarative base for ORM models
#   - IndexedChunk, Portfolio: ORM models
# =============================================================================
