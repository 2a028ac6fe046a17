"""Text-vs-image classification for text-bearing documents (PDF)."""

from __future__ import annotations

import logging
from pathlib import Path

from .models import TextClassification

logger = logging.getLogger(__name__)

# Confidence increments; see classify_text.
_MIN_CHARS = 50
_MIN_WORDS = 10
_MIN_AVG_WORD_LENGTH = 2
_MIN_CHARS_PER_PAGE = 25
_IMAGE_CONFIDENCE_CEILING = 0.3


def classify_text(text: str, page_count: int | None = None) -> TextClassification:
    """Score how likely ``text`` is usable embedded text.

    Confidence accumulates from heuristic increments. The document is treated
    as image-based only when confidence is at most 0.3 and there are no
    characters or no words at all.
    """
    content = text.strip()
    char_count = len(content)
    words = content.split()
    word_count = len(words)

    confidence = 0.0
    if char_count > _MIN_CHARS:
        confidence += 0.25
    if word_count > _MIN_WORDS:
        confidence += 0.25
    if word_count and sum(len(w) for w in words) / word_count > _MIN_AVG_WORD_LENGTH:
        confidence += 0.15
    if " " in content or "\n" in content:
        confidence += 0.15
    if page_count and char_count / page_count > _MIN_CHARS_PER_PAGE:
        confidence += 0.2
    confidence = round(min(confidence, 1.0), 4)

    image_based = confidence <= _IMAGE_CONFIDENCE_CEILING and (
        char_count == 0 or word_count == 0
    )
    if char_count > 0 and word_count == 0:
        logger.warning("%d chars but 0 words, possible encoding issue", char_count)

    return TextClassification(
        has_text=not image_based,
        confidence=confidence,
        word_count=word_count,
        char_count=char_count,
    )


def extract_pdf_text(path: str | Path) -> tuple[str, int]:
    """Return the embedded text of a PDF and its page count.

    Unreadable PDFs yield ``("", 0)``; the caller then treats the document as
    image-based rather than failing the run.
    """
    try:
        import fitz  # PyMuPDF
    except ImportError:
        raise ImportError("PyMuPDF is required: pip install pymupdf") from None

    try:
        with fitz.open(str(path)) as doc:
            page_count = len(doc)
            text = "\n".join(page.get_text() for page in doc)
    except Exception as e:  # fitz raises several unrelated types for bad files
        logger.warning("Could not read text from %s: %s", path, e)
        return "", 0
    return text, page_count


def classify_pdf(path: str | Path) -> TextClassification:
    text, page_count = extract_pdf_text(path)
    result = classify_text(text, page_count=page_count)
    logger.info(
        "PDF %s: pages=%d chars=%d words=%d confidence=%.2f -> %s",
        Path(path).name,
        page_count,
        result.char_count,
        result.word_count,
        result.confidence,
        "text" if result.has_text else "image",
    )
    return result
