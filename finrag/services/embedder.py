# =============================================================================
# Embedding Service — Text → Fixed-Dimension Vector
# =============================================================================
#
# Maps a chunk (or a user question) to an embedding vector by calling an
# external embedding service. Nothing is computed locally.
#
# ARCHITECTURE:
#   Embedder (Protocol)
#   ├── HuggingFaceEmbedder       — POST {"inputs": text} to a Hugging Face
#   │                               feature-extraction endpoint (aiohttp)
#   ├── OpenAICompatibleEmbedder  — any OpenAI-style /embeddings API
#   └── create_embedder()         — builds the configured provider
#
# CONTRACT:
# - Every returned vector has exactly `dimensions` floats
# - Non-success status, transport failure, timeout or a malformed payload
#   raises EmbeddingServiceError. There is no fallback vector and no
#   internal retry; retry policy belongs to the caller.
# - Each call is bounded by `timeout` seconds.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from numbers import Real
from typing import Any, Protocol

import aiohttp
import numpy as np

from finrag.config import Settings
from finrag.services.errors import EmbeddingServiceError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class Embedder(Protocol):
    """Protocol defining the embedding client interface."""

    dimensions: int

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Returns:
            A vector of exactly `dimensions` floats.

        Raises:
            EmbeddingServiceError: On remote failure or malformed payload.
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


# ---------------------------------------------------------------------------
# Response Validation
# ---------------------------------------------------------------------------


def validate_embedding(payload: Any, dimensions: int) -> list[float]:
    """
    Turn an embedding-service payload into a validated vector.

    Accepted shapes:
        [0.1, 0.2, ...]              → used as-is
        [[0.1, 0.2, ...]]            → single row unwrapped
        [[...], [...], ...]          → token-level rows, mean-pooled

    Raises:
        EmbeddingServiceError: If the payload is empty, non-numeric,
            ragged, or not `dimensions` long.
    """
    if not isinstance(payload, list) or not payload:
        raise EmbeddingServiceError(
            f"Embedding payload must be a non-empty list, got {type(payload).__name__}"
        )

    if all(isinstance(row, list) for row in payload):
        rows = [_as_numeric_row(row) for row in payload]
        if len({len(row) for row in rows}) != 1:
            raise EmbeddingServiceError("Embedding payload rows have unequal lengths")
        if len(rows) == 1:
            vector = rows[0]
        else:
            vector = np.mean(np.asarray(rows, dtype=float), axis=0).tolist()
    else:
        vector = _as_numeric_row(payload)

    if len(vector) != dimensions:
        raise EmbeddingServiceError(
            f"Embedding service returned {len(vector)} dimensions, "
            f"expected {dimensions}"
        )
    return vector


def _as_numeric_row(row: Sequence[Any]) -> list[float]:
    if not row:
        raise EmbeddingServiceError("Embedding payload contains an empty vector")
    for value in row:
        # bool is a Real subclass; a vector of booleans is not an embedding
        if isinstance(value, bool) or not isinstance(value, Real):
            raise EmbeddingServiceError(
                f"Embedding payload contains a non-numeric value: {value!r}"
            )
    return [float(value) for value in row]


# ---------------------------------------------------------------------------
# Implementation 1: Hugging Face Feature Extraction
# ---------------------------------------------------------------------------


class HuggingFaceEmbedder:
    """
    Embeds text through a Hugging Face feature-extraction endpoint.

    Request:  POST <api_url>  {"inputs": text}
              Authorization: Bearer <api_key>
    Response: a vector, or an array of vectors (see validate_embedding)

    The aiohttp session is created on first use and shared by all calls;
    close() must be called on shutdown.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        dimensions: int,
        timeout: float = 30.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self.dimensions = dimensions
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

        logger.info(
            "Initialized HuggingFaceEmbedder (url=%s, dimensions=%d, timeout=%.0fs)",
            api_url, dimensions, timeout,
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=self._timeout,
            )
        return self._session

    async def embed(self, text: str) -> list[float]:
        """Embed a single text via the feature-extraction endpoint."""
        session = self._get_session()
        try:
            async with session.post(self._api_url, json={"inputs": text}) as response:
                if response.status != 200:
                    body = await response.text()
                    raise EmbeddingServiceError(
                        f"Embedding service returned HTTP {response.status}: "
                        f"{body[:200]}",
                        status=response.status,
                    )
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise EmbeddingServiceError(
                f"Embedding service request failed: {exc!r}"
            ) from exc
        except ValueError as exc:
            # Body was not valid JSON
            raise EmbeddingServiceError(
                f"Embedding service returned invalid JSON: {exc}"
            ) from exc

        return validate_embedding(payload, self.dimensions)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible Embeddings API
# ---------------------------------------------------------------------------


class OpenAICompatibleEmbedder:
    """
    Embeds text through any OpenAI-compatible /embeddings endpoint
    (OpenAI, DashScope, a local TEI/vLLM server, ...).
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        dimensions: int,
        base_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        from openai import AsyncOpenAI

        if not api_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": api_key, "timeout": timeout}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model
        self.dimensions = dimensions

        logger.info(
            "Initialized OpenAICompatibleEmbedder (model=%s, base_url=%s)",
            model, base_url or "https://api.openai.com/v1",
        )

    async def embed(self, text: str) -> list[float]:
        """Embed a single text via the embeddings API."""
        import openai

        try:
            response = await self._client.embeddings.create(
                model=self._model,
                input=[text],
            )
        except openai.APIStatusError as exc:
            raise EmbeddingServiceError(
                f"Embedding service returned HTTP {exc.status_code}: {exc.message}",
                status=exc.status_code,
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingServiceError(
                f"Embedding service request failed: {exc}"
            ) from exc

        if not response.data:
            raise EmbeddingServiceError("Embedding service returned no data")
        return validate_embedding(list(response.data[0].embedding), self.dimensions)

    async def close(self) -> None:
        await self._client.close()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def create_embedder(
    settings: Settings,
) -> HuggingFaceEmbedder | OpenAICompatibleEmbedder:
    """
    Build the configured embedding client.

    Reads `embedding_provider` from settings:
    - "huggingface" → HuggingFaceEmbedder (default)
    - "openai_compatible" → OpenAICompatibleEmbedder
    """
    if settings.embedding_provider == "openai_compatible":
        return OpenAICompatibleEmbedder(
            api_key=settings.openai_api_key or settings.llm_api_key or "",
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            base_url=settings.embedding_base_url,
            timeout=settings.embedding_timeout_seconds,
        )

    if settings.embedding_provider != "huggingface":
        raise ValueError(
            f"Unknown embedding provider '{settings.embedding_provider}'. "
            "Supported: 'huggingface', 'openai_compatible'"
        )

    return HuggingFaceEmbedder(
        api_url=settings.embedding_api_url,
        api_key=settings.huggingface_api_key,
        dimensions=settings.embedding_dimensions,
        timeout=settings.embedding_timeout_seconds,
    )
