# =============================================================================
# Documents API — PDF Upload, Listing and Deletion
# =============================================================================
#
# ENDPOINTS:
#   POST   /upload                  — Upload a PDF, extract, chunk, index
#   GET    /documents               — List indexed documents + chunk counts
#   DELETE /documents/{source_id}   — Remove every chunk of a document
#
# Ingestion runs inside the request: the response is returned once every
# chunk has been embedded and stored. The uploaded file is stored as
# "<epoch-ms>.pdf", which doubles as the document's source id, and is
# removed from disk once processing finishes (successfully or not).
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from finrag.api.deps import get_app_settings, get_pipeline, http_error_for
from finrag.config import Settings
from finrag.models.responses import (
    DocumentListResponse,
    DocumentSummary,
    MessageResponse,
    UploadResponse,
)
from finrag.services.errors import RetrievalError, StorageUnavailableError
from finrag.services.parser import TextExtractionError, extract_text_async
from finrag.services.pipeline import RetrievalPipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Documents"])


def _is_pdf(file: UploadFile) -> bool:
    if file.content_type == "application/pdf":
        return True
    return bool(file.filename) and file.filename.lower().endswith(".pdf")


# ---------------------------------------------------------------------------
# POST /upload — Upload and index a PDF
# ---------------------------------------------------------------------------


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a PDF and index its text",
)
async def upload_pdf(
    pdf: UploadFile = File(..., description="PDF document to index"),
    pipeline: RetrievalPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_app_settings),
) -> UploadResponse:
    """
    Store the upload, extract its text, and ingest it into the index.

    A failure part-way through ingestion leaves the chunks indexed so far in
    place; the error detail names the failing chunk.
    """
    if not _is_pdf(pdf):
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")

    content = await pdf.read()
    if not content:
        raise HTTPException(status_code=400, detail="No PDF file uploaded")

    upload_dir = Path(settings.upload_dir)
    await asyncio.to_thread(upload_dir.mkdir, parents=True, exist_ok=True)
    filename = f"{time.time_ns() // 1_000_000}.pdf"
    file_path = upload_dir / filename
    await asyncio.to_thread(file_path.write_bytes, content)

    logger.info("Processing PDF %s (%d bytes) as %s", pdf.filename, len(content), filename)

    try:
        text = await extract_text_async(file_path)
        result = await pipeline.ingest(text, source_id=filename)
    except TextExtractionError as exc:
        raise HTTPException(status_code=400, detail=f"Failed to process PDF: {exc}") from exc
    except (RetrievalError, StorageUnavailableError) as exc:
        raise http_error_for(exc) from exc
    finally:
        await asyncio.to_thread(file_path.unlink, missing_ok=True)

    return UploadResponse(
        filename=filename,
        chunks=result.chunk_count,
        text_length=len(text),
    )


# ---------------------------------------------------------------------------
# GET /documents — Indexed documents
# ---------------------------------------------------------------------------


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List indexed documents",
)
async def list_documents(
    pipeline: RetrievalPipeline = Depends(get_pipeline),
) -> DocumentListResponse:
    try:
        sources = await pipeline.list_sources()
    except RetrievalError as exc:
        raise http_error_for(exc) from exc

    return DocumentListResponse(
        documents=[
            DocumentSummary(filename=source_id, chunks=count)
            for source_id, count in sources.items()
        ]
    )


# ---------------------------------------------------------------------------
# DELETE /documents/{source_id} — Remove a document's chunks
# ---------------------------------------------------------------------------


@router.delete(
    "/documents/{source_id}",
    response_model=MessageResponse,
    summary="Delete every chunk of a document",
)
async def delete_document(
    source_id: str,
    pipeline: RetrievalPipeline = Depends(get_pipeline),
) -> MessageResponse:
    """Deleting an unknown document succeeds and removes nothing."""
    try:
        await pipeline.delete_source(source_id)
    except RetrievalError as exc:
        raise http_error_for(exc) from exc

    return MessageResponse(message=f"Document {source_id} deleted successfully")
