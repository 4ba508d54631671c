# =============================================================================
# PDF Text Extraction — Docling
# =============================================================================
#
# Turns an uploaded PDF into plain text for the chunker.
#
# Paragraphs, list items, headings and captions are joined in reading
# order. Each block is terminated with a period if it has no sentence
# terminator of its own, so headings do not run into the following
# paragraph when the chunker splits sentences. Tables are exported as
# markdown rows.
#
# The DocumentConverter loads layout models on first use, so one instance
# is created lazily and reused.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from docling.datamodel.base_models import InputFormat
from docling.datamodel.pipeline_options import PdfPipelineOptions
from docling.document_converter import DocumentConverter, PdfFormatOption
from docling_core.types.doc.labels import DocItemLabel

logger = logging.getLogger(__name__)

_TEXT_LABELS = {
    DocItemLabel.TITLE,
    DocItemLabel.SECTION_HEADER,
    DocItemLabel.TEXT,
    DocItemLabel.LIST_ITEM,
    DocItemLabel.CAPTION,
    DocItemLabel.FOOTNOTE,
}


class TextExtractionError(Exception):
    """The PDF could not be read or converted."""


_converter: DocumentConverter | None = None


def _get_converter() -> DocumentConverter:
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    if _converter is None:
        logger.info("Initializing Docling DocumentConverter (first use)")
        pipeline_options = PdfPipelineOptions()
        pipeline_options.do_table_structure = True
        pipeline_options.do_ocr = True

        _converter = DocumentConverter(
            format_options={
                InputFormat.PDF: PdfFormatOption(pipeline_options=pipeline_options),
            }
        )
    return _converter


def _terminate(block: str) -> str:
    return block if block[-1] in ".!?" else block + "."


def extract_text(file_path: str | Path) -> str:
    """
    Extract the text of a PDF in reading order.

    Raises:
        FileNotFoundError: If the file does not exist.
        TextExtractionError: If Docling cannot convert the document.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"PDF not found: {file_path}")

    try:
        result = _get_converter().convert(str(path))
    except Exception as exc:
        raise TextExtractionError(
            f"Failed to extract text from '{path.name}': {exc}"
        ) from exc

    blocks: list[str] = []
    for item, _level in result.document.iterate_items():
        label = getattr(item, "label", None)

        if label in _TEXT_LABELS:
            text = getattr(item, "text", "").strip()
            if text:
                blocks.append(_terminate(text))
        elif label == DocItemLabel.TABLE:
            table_md = item.export_to_markdown(doc=result.document).strip()
            if table_md:
                blocks.append(table_md)

    text = "\n\n".join(blocks)
    logger.info(
        "Extracted %d characters (%d blocks) from %s",
        len(text), len(blocks), path.name,
    )
    return text


async def extract_text_async(file_path: str | Path) -> str:
    """extract_text() in a worker thread, for use from request handlers."""
    return await asyncio.to_thread(extract_text, file_path)
