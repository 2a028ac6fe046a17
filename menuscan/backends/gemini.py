"""Gemini API backend using the google-generativeai File API."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import UploadError
from . import ModelBackend, RemoteFile

if TYPE_CHECKING:
    from ..models import RemoteFileHandle

logger = logging.getLogger(__name__)


class GeminiBackend(ModelBackend):
    """Extract menus with Google Gemini over files stored in the Gemini File API."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.5-flash",
        *,
        poll_interval: float = 2.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._poll_interval = poll_interval
        self._genai = None
        self.tier = "flash" if "flash" in model else "pro"

    def _client(self):
        if self._genai is not None:
            return self._genai
        if not self._api_key:
            raise ValueError(
                "Gemini API key is not set. "
                "Check the config file or the GEMINI_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        self._genai = genai
        return genai

    async def upload_file(
        self, path: str | Path, mime_type: str, display_name: str
    ) -> RemoteFile:
        genai = self._client()
        file = await asyncio.to_thread(
            genai.upload_file,
            path=str(path),
            mime_type=mime_type,
            display_name=display_name,
        )

        # Uploaded files are unusable until the service finishes processing them.
        while file.state.name == "PROCESSING":
            logger.debug("Waiting for %s to finish processing", file.name)
            await asyncio.sleep(self._poll_interval)
            file = await asyncio.to_thread(genai.get_file, file.name)

        if file.state.name == "FAILED":
            raise UploadError(f"Gemini failed to process {display_name}")

        return RemoteFile(
            uri=file.uri,
            name=file.name,
            mime_type=getattr(file, "mime_type", None) or mime_type,
            size=int(getattr(file, "size_bytes", 0) or 0),
        )

    async def delete_file(self, name: str) -> None:
        genai = self._client()
        await asyncio.to_thread(genai.delete_file, name)

    async def generate(
        self,
        prompt: str,
        files: list[RemoteFileHandle],
        *,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        genai = self._client()
        model = genai.GenerativeModel(
            self._model,
            generation_config=genai.GenerationConfig(
                max_output_tokens=max_output_tokens,
                temperature=temperature,
            ),
        )

        parts: list = [prompt]
        for handle in files:
            parts.append(
                {"file_data": {"mime_type": handle.mime_type, "file_uri": handle.uri}}
            )

        response = await model.generate_content_async(parts)
        return response.text
