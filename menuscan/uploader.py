"""Upload documents to the model's file store, once per logical document."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass

from .backends import ModelBackend
from .errors import UploadError
from .models import FetchedDocument, RemoteFileHandle

logger = logging.getLogger(__name__)


@dataclass
class DeleteSummary:
    deleted: int = 0
    failed: int = 0


class RemoteFileCache:
    """Handles of uploaded documents, keyed by logical document id.

    At most one upload per document id is in flight: concurrent callers await
    the same task. Entries live until evicted by :meth:`delete_old_files`,
    :meth:`delete_files` or :meth:`delete_all_files`. One instance is shared by
    every run in the process; pipelines receive it from their owner rather than
    a module global.

    Runs :meth:`acquire` the ids they reference and :meth:`release` them when
    done. Age-based and per-run eviction skip ids that are still acquired.
    """

    def __init__(
        self,
        backend: ModelBackend,
        *,
        upload_timeout: float = 120.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._upload_timeout = upload_timeout
        self._clock = clock
        self._files: dict[str, RemoteFileHandle] = {}
        self._pending: dict[str, asyncio.Task] = {}
        self._users: Counter[str] = Counter()

    @property
    def backend(self) -> ModelBackend:
        return self._backend

    def acquire(self, document_ids: list[str]) -> None:
        """Mark ``document_ids`` as referenced by a run."""
        self._users.update(document_ids)

    def release(self, document_ids: list[str]) -> None:
        self._users.subtract(document_ids)
        for document_id in document_ids:
            if self._users[document_id] <= 0:
                self._users.pop(document_id, None)

    def in_use(self, document_id: str) -> bool:
        return self._users[document_id] > 0

    def get_uploaded_file(self, document_id: str) -> RemoteFileHandle | None:
        return self._files.get(document_id)

    def get_all_uploaded_files(self) -> dict[str, RemoteFileHandle]:
        return dict(self._files)

    async def upload_document(self, doc: FetchedDocument) -> RemoteFileHandle:
        """Return the remote handle for ``doc``, uploading it if needed.

        Raises:
            UploadError: If the provider rejects the file or the upload times out.
        """
        cached = self._files.get(doc.document_id)
        if cached is not None:
            logger.debug("Remote file cache hit: %s", doc.document_id)
            return cached

        task = self._pending.get(doc.document_id)
        if task is None:
            task = asyncio.create_task(self._upload(doc))
            self._pending[doc.document_id] = task
            task.add_done_callback(
                lambda t, key=doc.document_id: self._forget_pending(key, t)
            )
        else:
            logger.debug("Waiting for in-flight upload: %s", doc.document_id)

        # A cancelled caller must not cancel the upload other callers share.
        return await asyncio.shield(task)

    def _forget_pending(self, document_id: str, task: asyncio.Task) -> None:
        if self._pending.get(document_id) is task:
            del self._pending[document_id]

    async def _upload(self, doc: FetchedDocument) -> RemoteFileHandle:
        logger.info("Uploading %s (%d bytes)", doc.name, doc.size)
        try:
            remote = await asyncio.wait_for(
                self._backend.upload_file(doc.path, doc.mime_type, doc.name),
                timeout=self._upload_timeout,
            )
        except asyncio.TimeoutError as e:
            raise UploadError(
                f"Timed out uploading {doc.name} after {self._upload_timeout:g}s",
                document_id=doc.document_id,
            ) from e
        except UploadError as e:
            e.document_id = e.document_id or doc.document_id
            raise
        except ImportError:
            raise
        except Exception as e:
            raise UploadError(
                f"Upload failed for {doc.name}: {e}", document_id=doc.document_id
            ) from e

        handle = RemoteFileHandle(
            document_id=doc.document_id,
            uri=remote.uri,
            name=remote.name,
            mime_type=remote.mime_type or doc.mime_type,
            uploaded_at=self._clock(),
            size=remote.size or doc.size,
        )
        self._files[doc.document_id] = handle
        logger.debug("Uploaded %s: %s", doc.document_id, handle.uri)
        return handle

    async def upload_all_documents(
        self, docs: list[FetchedDocument]
    ) -> list[RemoteFileHandle]:
        """Upload every document concurrently and wait for all of them.

        Raises:
            UploadError: The first failure, after every upload has settled.
        """
        results = await asyncio.gather(
            *(self.upload_document(doc) for doc in docs), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        logger.info("Uploaded %d documents (%d cached)", len(results), len(self._files))
        return list(results)

    async def delete_file(self, document_id: str) -> bool:
        """Delete one remote file; failures are logged and reported as False."""
        handle = self._files.get(document_id)
        if handle is None:
            logger.warning("Cannot delete %s: not in cache", document_id)
            return False
        try:
            await self._backend.delete_file(handle.name)
        except Exception as e:
            logger.warning("Failed to delete remote file %s: %s", document_id, e)
            return False
        self._files.pop(document_id, None)
        return True

    async def _delete_many(self, document_ids: list[str]) -> DeleteSummary:
        summary = DeleteSummary()
        for document_id in document_ids:
            if await self.delete_file(document_id):
                summary.deleted += 1
            else:
                summary.failed += 1
        return summary

    async def delete_old_files(self, max_age_seconds: float) -> DeleteSummary:
        """Evict remote files uploaded more than ``max_age_seconds`` ago."""
        now = self._clock()
        stale = [
            document_id
            for document_id, handle in self._files.items()
            if now - handle.uploaded_at > max_age_seconds
            and not self.in_use(document_id)
        ]
        summary = await self._delete_many(stale)
        if stale:
            logger.info(
                "Deleted %d old remote files, %d failed", summary.deleted, summary.failed
            )
        return summary

    async def delete_files(self, document_ids: list[str]) -> DeleteSummary:
        """Delete the given remote files unless another run still uses them."""
        idle = [
            document_id
            for document_id in dict.fromkeys(document_ids)
            if document_id in self._files and not self.in_use(document_id)
        ]
        summary = await self._delete_many(idle)
        logger.info(
            "Deleted %d of %d run files, %d failed",
            summary.deleted, len(document_ids), summary.failed,
        )
        return summary

    async def delete_all_files(self) -> DeleteSummary:
        """Delete every cached remote file, including ones a run still uses."""
        summary = await self._delete_many(list(self._files))
        logger.info("Deleted %d remote files, %d failed", summary.deleted, summary.failed)
        return summary

    def clear_cache(self) -> None:
        """Forget every handle without deleting remote files."""
        self._files.clear()

    def get_stats(self) -> dict:
        files = list(self._files.values())
        total_size = sum(f.size for f in files)
        return {
            "totalFiles": len(files),
            "totalSize": total_size,
            "averageSize": total_size / len(files) if files else 0,
            "pendingUploads": len(self._pending),
        }
