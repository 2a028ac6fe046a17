"""Extraction run orchestration.

:class:`ExtractionPipeline` is the composition root: it owns (or is handed) the
backend, the remote file cache, the stores and the progress reporter, and runs
one job's documents through fetch, classify, upload, prompt, parse, normalize
and persist. Every run ends with the job in ``complete`` or ``failed``.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections import Counter
from typing import TYPE_CHECKING

import httpx

from .backends import ModelBackend, create_backend
from .classifier import classify_pdf
from .cost import ExtractionMetrics, calculate_extraction_cost
from .db import JobsDB, MenuItemsDB
from .errors import ExtractionError, ParseError, PersistenceError
from .fetcher import DocumentFetcher
from .models import (
    DocumentRef,
    ExtractionOutcome,
    FetchedDocument,
    NormalizedBatch,
    NormalizedItem,
    TextClassification,
)
from .normalizer import Normalizer
from .parser import parse_response
from .progress import LoggingProgressReporter, ProgressEvent, ProgressReporter, safe_report
from .prompter import ExtractionPrompter
from .spreadsheet import parse_spreadsheet
from .uploader import RemoteFileCache

if TYPE_CHECKING:
    from .config import ExtractionConfig, MenuScanConfig
    from .schema import ExtractedItem
    from .vocabulary import Vocabulary

logger = logging.getLogger(__name__)


def extraction_mode(
    documents: list[FetchedDocument], classifications: dict[str, TextClassification]
) -> str:
    """Label how a run's documents were read: text, image, spreadsheet or mixed."""
    modes = set()
    for doc in documents:
        match doc.kind:
            case "spreadsheet":
                modes.add("spreadsheet")
            case "image":
                modes.add("image")
            case "pdf":
                classification = classifications.get(doc.document_id)
                if classification is not None and classification.is_image_based:
                    modes.add("image")
                else:
                    modes.add("text")
            case _:
                modes.add("document")
    if not modes:
        return "unknown"
    if len(modes) > 1:
        return "mixed"
    return modes.pop()


def _item_payload(item: NormalizedItem, item_id: int) -> dict:
    return {
        "id": item_id,
        "name": item.name,
        "description": item.description,
        "category": item.subcategory,
        "section": item.menus,
        "sizes": [{"size": s.size, "price": str(s.price)} for s in item.sizes],
        "modifierGroups": [
            {"name": g.name, "options": [o.to_dict() for o in g.options]}
            for g in item.modifier_groups
        ],
    }


class ExtractionPipeline:
    """Runs extraction for one job at a time; instances may run jobs concurrently."""

    def __init__(
        self,
        cache: RemoteFileCache,
        jobs: JobsDB,
        items: MenuItemsDB,
        *,
        settings: ExtractionConfig,
        vocabulary: Vocabulary | None = None,
        progress: ProgressReporter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._cache = cache
        self._jobs = jobs
        self._items = items
        self._settings = settings
        self._normalizer = Normalizer(vocabulary)
        self._vocabulary = vocabulary
        self._prompter = ExtractionPrompter(
            cache.backend,
            vocabulary,
            max_output_tokens=settings.max_output_tokens,
            temperature=settings.temperature,
            batch_size=settings.batch_size,
            max_batch_bytes=settings.max_batch_bytes,
            request_timeout=settings.request_timeout,
        )
        self._progress = progress or LoggingProgressReporter()
        self._http_client = http_client

    @classmethod
    def from_config(
        cls,
        config: MenuScanConfig,
        *,
        backend: ModelBackend | None = None,
        cache: RemoteFileCache | None = None,
        progress: ProgressReporter | None = None,
    ) -> ExtractionPipeline:
        """Wire a pipeline from configuration.

        Pass ``cache`` to share remote uploads between pipelines; otherwise a
        new cache is created around ``backend`` (or the configured backend).
        """
        if cache is None:
            cache = RemoteFileCache(
                backend or create_backend(config),
                upload_timeout=config.extraction.upload_timeout,
            )
        return cls(
            cache,
            JobsDB(config.database.path),
            MenuItemsDB(config.database.path),
            settings=config.extraction,
            vocabulary=config.vocabulary.build(),
            progress=progress,
        )

    @property
    def cache(self) -> RemoteFileCache:
        return self._cache

    @property
    def jobs(self) -> JobsDB:
        return self._jobs

    @property
    def items(self) -> MenuItemsDB:
        return self._items

    def close(self) -> None:
        self._jobs.close()
        self._items.close()

    async def _report(
        self, job_id: str, stage: str, message: str = "", completed: int = 0, total: int = 0
    ) -> None:
        event = ProgressEvent(job_id, stage, message, completed=completed, total=total)
        if self._progress.performs_io:
            await asyncio.to_thread(safe_report, self._progress, event)
        else:
            safe_report(self._progress, event)

    async def run(self, job_id: str, documents: list[DocumentRef]) -> ExtractionOutcome:
        """Extract, normalize and persist the menu items in ``documents``.

        Stage errors never escape: they end the run with status ``failed``.
        Cancellation also marks the job failed and is then re-raised.
        """
        await asyncio.to_thread(self._jobs.set_status, job_id, "processing")
        await self._report(job_id, "accepted", f"{len(documents)} documents")

        stage = "fetch"
        mode = "unknown"
        held: list[str] = []
        try:
            if not documents:
                raise ExtractionError("No documents to extract")

            async with DocumentFetcher(
                self._settings.scratch_dir,
                timeout=self._settings.fetch_timeout,
                client=self._http_client,
            ) as fetcher:
                await self._report(job_id, "fetch", total=len(documents))
                fetched = await fetcher.fetch_all(job_id, documents)

                stage = "classify"
                await self._report(job_id, "classify", total=len(fetched))
                classifications = await self._classify(fetched)
                mode = extraction_mode(fetched, classifications)

                model_docs = [d for d in fetched if d.kind != "spreadsheet"]
                sheet_docs = [d for d in fetched if d.kind == "spreadsheet"]

                completions = []
                if model_docs:
                    held = [d.document_id for d in model_docs]
                    self._cache.acquire(held)
                    stage = "upload"
                    await self._report(job_id, "upload", total=len(model_docs))
                    handles = await self._cache.upload_all_documents(model_docs)

                    stage = "prompt"
                    await self._report(job_id, "prompt", total=len(model_docs))
                    completions = await self._prompter.extract(
                        model_docs,
                        {h.document_id: h for h in handles},
                        classifications,
                    )

                stage = "parse"
                await self._report(job_id, "parse", total=len(completions) + len(sheet_docs))
                extracted: list[ExtractedItem] = []
                for completion in completions:
                    extracted.extend(parse_response(completion.text))
                for doc in sheet_docs:
                    extracted.extend(await self._parse_spreadsheet(doc))

            stage = "normalize"
            await self._report(job_id, "normalize", total=len(extracted))
            existing = await asyncio.to_thread(self._items.list_existing_names, job_id)
            batch = self._normalizer.prepare(extracted, existing)

            stage = "persist"
            await self._report(job_id, "persist", total=len(batch.items))
            inserted = await self._persist(job_id, batch)

            results = self._success_payload(
                fetched, classifications, completions, extracted, batch, inserted, mode
            )
            await asyncio.to_thread(self._jobs.set_status, job_id, "complete", results)
            await self._report(job_id, "complete", f"{len(inserted)} items inserted")
            logger.info(
                "Job %s complete: %d items extracted, %d inserted, cost %s (estimated)",
                job_id, len(extracted), len(inserted), results["totalCost"],
            )
            return ExtractionOutcome(job_id=job_id, success=True, results=results)

        except asyncio.CancelledError:
            logger.warning("Job %s cancelled during %s", job_id, stage)
            await self._fail(job_id, stage, "Extraction cancelled", mode)
            raise
        except ExtractionError as e:
            failed_stage = e.stage if e.stage != "extract" else stage
            logger.error("Job %s failed during %s: %s", job_id, failed_stage, e.message)
            return await self._fail(job_id, failed_stage, e.message, mode, e.details())
        except Exception as e:
            logger.exception("Job %s failed unexpectedly during %s", job_id, stage)
            return await self._fail(job_id, stage, str(e) or type(e).__name__, mode)
        finally:
            if held:
                self._cache.release(held)
                if self._settings.drain_remote_files:
                    await self._cache.delete_files(held)

    async def _classify(
        self, documents: list[FetchedDocument]
    ) -> dict[str, TextClassification]:
        classifications: dict[str, TextClassification] = {}
        for doc in documents:
            if doc.kind == "pdf":
                classifications[doc.document_id] = await asyncio.to_thread(
                    classify_pdf, doc.path
                )
        return classifications

    async def _parse_spreadsheet(self, doc: FetchedDocument) -> list[ExtractedItem]:
        try:
            return await asyncio.to_thread(
                parse_spreadsheet, doc.path, self._vocabulary, doc.mime_type
            )
        except ImportError:
            raise
        except Exception as e:
            raise ParseError(f"Could not read spreadsheet {doc.name}: {e}") from e

    async def _persist(self, job_id: str, batch: NormalizedBatch) -> dict[str, int]:
        """Write items, then sizes, then modifier groups.

        Returns:
            Mapping of ``name_key`` to new item ID.

        Raises:
            PersistenceError: Naming the failed sub-stage and the items already
                committed.
        """
        try:
            inserted = await asyncio.to_thread(
                self._items.insert_items, job_id, batch.items
            )
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to insert menu items: {e}", sub_stage="items"
            ) from e

        item_ids = list(inserted.values())
        new_items = [item for item in batch.items if item.name_key in inserted]

        size_rows = [
            (inserted[item.name_key], size) for item in new_items for size in item.sizes
        ]
        try:
            await asyncio.to_thread(self._items.insert_sizes, size_rows)
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to insert item sizes: {e}",
                sub_stage="sizes",
                inserted_item_ids=item_ids,
            ) from e

        group_rows = [
            (inserted[item.name_key], group)
            for item in new_items
            for group in item.modifier_groups
        ]
        try:
            await asyncio.to_thread(self._items.insert_modifier_groups, group_rows)
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to insert item modifiers: {e}",
                sub_stage="modifiers",
                inserted_item_ids=item_ids,
            ) from e

        logger.info(
            "Persisted %d items, %d sizes, %d modifier groups",
            len(item_ids), len(size_rows), len(group_rows),
        )
        return inserted

    def _success_payload(
        self,
        fetched: list[FetchedDocument],
        classifications: dict[str, TextClassification],
        completions: list,
        extracted: list[ExtractedItem],
        batch: NormalizedBatch,
        inserted: dict[str, int],
        mode: str,
    ) -> dict:
        image_count = sum(
            1
            for doc in fetched
            if doc.kind == "image"
            or (
                doc.document_id in classifications
                and classifications[doc.document_id].is_image_based
            )
        )
        api_calls = Counter(c.tier for c in completions)
        metrics = ExtractionMetrics(
            document_count=len(fetched),
            image_count=image_count,
            item_count=len(extracted),
            api_calls=dict(api_calls),
            has_complex_analysis=any(item.modifier_groups for item in batch.items),
        )
        cost = calculate_extraction_cost(metrics)

        new_items = [item for item in batch.items if item.name_key in inserted]
        categories = Counter(item.subcategory for item in new_items)
        backstop_skips = len(batch.items) - len(new_items)

        return {
            "success": True,
            "totalItems": len(extracted),
            "insertedItems": len(new_items),
            "skippedDuplicates": len(batch.skipped_duplicates) + backstop_skips,
            "totalDocuments": len(fetched),
            "totalCost": cost.total,
            "costBreakdown": cost.to_dict(),
            "processedFiles": [doc.name for doc in fetched],
            "extractionMode": mode,
            "summary": {"categories": dict(categories)},
            "items": [_item_payload(item, inserted[item.name_key]) for item in new_items],
        }

    async def _fail(
        self,
        job_id: str,
        stage: str,
        message: str,
        mode: str,
        details: dict | None = None,
    ) -> ExtractionOutcome:
        results = {
            "success": False,
            "error": message,
            "stage": stage,
            "extractionMode": mode,
            **(details or {}),
        }
        await asyncio.to_thread(self._jobs.set_status, job_id, "failed", results)
        await self._report(job_id, "failed", f"{stage}: {message}")
        return ExtractionOutcome(job_id=job_id, success=False, results=results)
