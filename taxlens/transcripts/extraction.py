"""Text-extraction contract and bounded-concurrency extraction.

The PDF-to-text step is an external collaborator: it receives document
bytes and returns plain text plus optional section hints. This module
defines that contract, a pass-through extractor for documents that are
already text, and the fan-out that runs extraction for a batch with
bounded concurrency.

Example:
    >>> texts = await extract_documents([pdf_a, pdf_b], extractor=my_service)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from taxlens.core.config import settings
from taxlens.core.logging import get_logger
from taxlens.transcripts.models import TranscriptSection

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExtractedText:
    """Plain text for one document plus optional section boundaries."""

    text: str
    sections: list[TranscriptSection] | None = field(default=None)


@runtime_checkable
class TextExtractor(Protocol):
    """Converts one document buffer to text."""

    async def extract(self, document: bytes) -> ExtractedText: ...


class PlainTextExtractor:
    """Extractor for documents that are already UTF-8 text."""

    async def extract(self, document: bytes) -> ExtractedText:
        return ExtractedText(text=document.decode("utf-8", errors="replace"))


async def extract_documents(
    documents: Sequence[bytes | str],
    extractor: TextExtractor | None = None,
    concurrency: int | None = None,
) -> list[ExtractedText]:
    """Extract text from every document with bounded concurrency.

    String documents are taken as already-extracted text. Results keep the
    input order. The first extraction failure propagates to the caller;
    nothing is retried here.

    Args:
        documents: Document buffers or text.
        extractor: Extraction collaborator; plain text decoding when omitted.
        concurrency: Maximum concurrent extractions; defaults to settings.

    Returns:
        One ExtractedText per document.
    """
    extractor = extractor or PlainTextExtractor()
    semaphore = asyncio.Semaphore(max(1, concurrency or settings.extraction_concurrency))

    async def _run(index: int, document: bytes | str) -> ExtractedText:
        if isinstance(document, str):
            return ExtractedText(text=document)
        async with semaphore:
            logger.debug("document_extraction_started", index=index, size=len(document))
            return await extractor.extract(document)

    results = await asyncio.gather(*(_run(i, doc) for i, doc in enumerate(documents)))
    logger.info("documents_extracted", count=len(results))
    return list(results)
