# =============================================================================
# FastAPI Application — App Factory & Lifespan
# =============================================================================
#
# create_app() assembles the routers; lifespan() builds the long-lived
# components once per process and stores them on app.state (see
# finrag/api/deps.py for how routes reach them).
#
# STARTUP ORDER:
#   1. Logging
#   2. Database engine built from the app's Settings
#   3. Embedder + vector index (schema created) → RetrievalPipeline
#   4. LLM provider          — optional: a missing key disables generation
#   5. Portfolio repository  — optional: an unreachable database disables
#                              the portfolio routes (503)
#
# Run locally:
#   uvicorn finrag.main:app --reload
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from finrag.api.ask import router as ask_router
from finrag.api.documents import router as documents_router
from finrag.api.portfolio import router as portfolio_router
from finrag.config import Settings, get_settings
from finrag.db.engine import create_engine, create_session_factory
from finrag.db.portfolios import PortfolioRepository
from finrag.logging_config import configure_logging
from finrag.models.responses import HealthResponse
from finrag.services.embedder import create_embedder
from finrag.services.errors import StorageUnavailableError
from finrag.services.llm import create_llm_provider
from finrag.services.pipeline import RetrievalPipeline
from finrag.services.vectorstore import create_vector_index

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)

    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    app.state.engine = engine

    embedder = create_embedder(settings)
    index = create_vector_index(settings, engine=engine, session_factory=session_factory)
    await index.create_schema()
    app.state.pipeline = RetrievalPipeline(
        embedder=embedder,
        index=index,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        default_top_k=settings.retrieval_top_k,
    )

    try:
        app.state.llm = create_llm_provider(settings)
    except ValueError as exc:
        logger.warning("Answer generation disabled: %s", exc)
        app.state.llm = None

    repository = PortfolioRepository(engine, session_factory)
    try:
        await repository.create_schema()
        app.state.portfolios = repository
    except StorageUnavailableError as exc:
        logger.warning("Portfolio routes disabled: %s", exc)
        app.state.portfolios = None

    yield

    await embedder.close()
    await engine.dispose()
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application. Components are attached at startup by lifespan()."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Upload PDFs and ask questions answered from their content; "
            "upload portfolio CSVs for metrics, risk analysis and advice."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(documents_router)
    app.include_router(ask_router)
    app.include_router(portfolio_router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(version=settings.app_version, service=settings.app_name)

    return app


app = create_app()
