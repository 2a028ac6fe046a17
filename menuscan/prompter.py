"""Build extraction prompts and issue completion requests in batches."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .backends import ModelBackend
from .errors import ExtractionRequestError
from .models import FetchedDocument, RemoteFileHandle, TextClassification
from .vocabulary import DEFAULT_SIZE, Vocabulary

logger = logging.getLogger(__name__)

_PROMPT = """\
You are a menu extraction expert. Extract ALL menu items from the attached document(s).

AVAILABLE CATEGORIES: {categories}
AVAILABLE SIZES: {sizes}

Rules:
- "category" MUST be exactly one of the available categories.
- Every size label MUST be exactly one of the available sizes. If the menu uses a size
  that is not listed (e.g. "Half", "Pint", "8 pc"), do NOT put it in "sizes"; add it as an
  option of a modifier group named "Size Options" instead, with its price, e.g. "Half (+$6)".
- If an item has a single price and no size, use the size "{default_size}".
- Put add-ons, substitutions, sauce choices, cooking preferences and other customizations
  in "modifierGroups". Keep any price in the option text, e.g. "Bacon +$1.50".
- Use an empty string for a missing description.

{documents}
Return ONLY a JSON array, no commentary, like this:
[
  {{
    "name": "Caesar Salad",
    "description": "Romaine, parmesan and croutons",
    "category": "Salads",
    "section": "Lunch",
    "sizes": [{{"size": "Regular", "price": "8.99"}}, {{"size": "Large", "price": "12.99"}}],
    "modifierGroups": [
      {{"name": "Add Protein", "options": ["Grilled Chicken +$4", "Shrimp (+$6)"]}},
      {{"name": "Dressing Choice", "options": ["Caesar", "Ranch"]}}
    ]
  }}
]
"""


@dataclass
class CompletionResult:
    text: str
    document_ids: list[str] = field(default_factory=list)
    tier: str = ""


def _document_lines(
    documents: list[FetchedDocument],
    classifications: dict[str, TextClassification],
) -> str:
    lines = ["DOCUMENTS:"]
    for doc in documents:
        hint = ""
        classification = classifications.get(doc.document_id)
        if doc.kind == "image":
            hint = " (photo or scan: read the text from the image)"
        elif classification is not None and classification.is_image_based:
            hint = " (scanned PDF with no embedded text: read the text from the page images)"
        elif classification is not None:
            hint = " (PDF with embedded text)"
        lines.append(f"- {doc.name}{hint}")
    return "\n".join(lines) + "\n"


def build_prompt(
    vocabulary: Vocabulary,
    documents: list[FetchedDocument],
    classifications: dict[str, TextClassification] | None = None,
) -> str:
    """Render the extraction prompt for one batch of documents."""
    return _PROMPT.format(
        categories=", ".join(vocabulary.categories),
        sizes=", ".join(vocabulary.sizes),
        default_size=DEFAULT_SIZE,
        documents=_document_lines(documents, classifications or {}),
    )


def plan_batches(
    documents: list[FetchedDocument], batch_size: int, max_batch_bytes: int
) -> list[list[FetchedDocument]]:
    """Split documents into request batches bounded by count and total bytes.

    A document larger than ``max_batch_bytes`` is sent alone.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    batches: list[list[FetchedDocument]] = []
    current: list[FetchedDocument] = []
    current_bytes = 0
    for doc in documents:
        if current and (
            len(current) >= batch_size or current_bytes + doc.size > max_batch_bytes
        ):
            batches.append(current)
            current, current_bytes = [], 0
        current.append(doc)
        current_bytes += doc.size
    if current:
        batches.append(current)
    return batches


class ExtractionPrompter:
    """Issues one completion request per batch of uploaded documents."""

    def __init__(
        self,
        backend: ModelBackend,
        vocabulary: Vocabulary | None = None,
        *,
        max_output_tokens: int = 8000,
        temperature: float = 0.1,
        batch_size: int = 3,
        max_batch_bytes: int = 20_000_000,
        request_timeout: float = 180.0,
    ) -> None:
        self._backend = backend
        self._vocabulary = vocabulary or Vocabulary()
        self._max_output_tokens = max_output_tokens
        self._temperature = temperature
        self._batch_size = batch_size
        self._max_batch_bytes = max_batch_bytes
        self._request_timeout = request_timeout

    async def extract(
        self,
        documents: list[FetchedDocument],
        handles: dict[str, RemoteFileHandle],
        classifications: dict[str, TextClassification] | None = None,
    ) -> list[CompletionResult]:
        """Run the completion requests for ``documents`` in order.

        ``handles`` maps logical document id to its remote file.

        Raises:
            ExtractionRequestError: If any request fails or times out.
        """
        batches = plan_batches(documents, self._batch_size, self._max_batch_bytes)
        results: list[CompletionResult] = []
        for index, batch in enumerate(batches, start=1):
            document_ids = [doc.document_id for doc in batch]
            logger.info(
                "Completion request %d/%d for %s", index, len(batches), document_ids
            )
            prompt = build_prompt(self._vocabulary, batch, classifications)
            files = [handles[doc_id] for doc_id in document_ids]
            text = await self._request(prompt, files, document_ids)
            logger.debug("Request %d returned %d chars", index, len(text))
            results.append(
                CompletionResult(
                    text=text, document_ids=document_ids, tier=self._backend.tier
                )
            )
        return results

    async def _request(
        self, prompt: str, files: list[RemoteFileHandle], document_ids: list[str]
    ) -> str:
        try:
            text = await asyncio.wait_for(
                self._backend.generate(
                    prompt,
                    files,
                    max_output_tokens=self._max_output_tokens,
                    temperature=self._temperature,
                ),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionRequestError(
                f"Completion request timed out after {self._request_timeout:g}s",
                document_ids=document_ids,
            ) from e
        except ExtractionRequestError:
            raise
        except ImportError:
            raise
        except Exception as e:
            raise ExtractionRequestError(
                f"Completion request failed: {e}", document_ids=document_ids
            ) from e

        if text is None:
            raise ExtractionRequestError(
                "Completion request returned no text", document_ids=document_ids
            )
        return text
