"""Download job documents to a scratch directory."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from pathlib import Path

import httpx

from .errors import FetchError
from .models import DocumentRef, FetchedDocument, resolve_mime_type

logger = logging.getLogger(__name__)


def logical_document_id(name: str, data: bytes) -> str:
    """Stable id from the document name and a hash of its bytes."""
    path = Path(name)
    stem = path.stem or "document"
    extension = path.suffix.lstrip(".").lower() or "bin"
    digest = hashlib.md5(data).hexdigest()[:8]
    return f"{stem}-{extension}-{digest}"


class DocumentFetcher:
    """Fetches documents for one run and removes them afterwards.

    Use as an async context manager so scratch files are removed on every exit
    path, including cancellation::

        async with DocumentFetcher(scratch_dir) as fetcher:
            docs = await fetcher.fetch_all(job_id, refs)
    """

    def __init__(
        self,
        scratch_dir: str | Path = "/tmp/menuscan",
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._scratch_dir = Path(scratch_dir).expanduser()
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._paths: list[Path] = []

    async def __aenter__(self) -> DocumentFetcher:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout), follow_redirects=True
            )
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.cleanup()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def scratch_paths(self) -> list[Path]:
        return list(self._paths)

    async def fetch(self, job_id: str, ordinal: int, ref: DocumentRef) -> FetchedDocument:
        """Download one document.

        Raises:
            FetchError: If the URL is missing, unreachable, times out, or
                answers with a non-success status.
        """
        if not ref.url:
            raise FetchError(f"Document {ref.name or '?'} has no URL", name=ref.name)
        if not ref.name:
            raise FetchError("Document has no name", url=ref.url)
        if self._client is None:
            raise RuntimeError("DocumentFetcher must be used as an async context manager")

        logger.info("Downloading %s from %s", ref.name, ref.url)
        try:
            response = await self._client.get(ref.url, timeout=self._timeout)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Timed out downloading {ref.name}", name=ref.name, url=ref.url
            ) from e
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"Failed to download {ref.name}: HTTP {e.response.status_code}",
                name=ref.name,
                url=ref.url,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                f"Failed to download {ref.name}: {e}", name=ref.name, url=ref.url
            ) from e

        data = response.content
        extension = Path(ref.name).suffix.lstrip(".").lower() or "bin"
        stamp = int(time.time() * 1000)
        path = self._scratch_dir / f"{job_id}-{ordinal}-{stamp}.{extension}"
        self._scratch_dir.mkdir(parents=True, exist_ok=True)
        self._paths.append(path)
        await asyncio.to_thread(path.write_bytes, data)

        doc = FetchedDocument(
            document_id=logical_document_id(ref.name, data),
            ref=ref,
            path=path,
            mime_type=resolve_mime_type(ref.mime_type, ref.name),
            size=len(data),
        )
        logger.debug("Downloaded %s -> %s (%d bytes)", ref.name, path, doc.size)
        return doc

    async def fetch_all(self, job_id: str, refs: list[DocumentRef]) -> list[FetchedDocument]:
        """Download every document; the first failure aborts the whole set."""
        return [await self.fetch(job_id, i, ref) for i, ref in enumerate(refs)]

    def cleanup(self) -> int:
        """Delete scratch files written by this fetcher.

        Returns:
            Number of files removed.
        """
        removed = 0
        for path in self._paths:
            try:
                path.unlink(missing_ok=True)
                removed += 1
            except OSError as e:
                logger.warning("Failed to delete scratch file %s: %s", path, e)
        self._paths.clear()
        return removed
