"""Claude API backend using the Anthropic Files API."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from . import ModelBackend, RemoteFile

if TYPE_CHECKING:
    from ..models import RemoteFileHandle

_FILES_BETA = "files-api-2025-04-14"


class ClaudeBackend(ModelBackend):
    """Extract menus with Claude over files stored in the Anthropic Files API."""

    tier = "claude"

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model
        self._client_instance = None

    def _client(self):
        if self._client_instance is not None:
            return self._client_instance
        if not self._api_key:
            raise ValueError(
                "Anthropic API key is not set. "
                "Check the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        self._client_instance = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client_instance

    async def upload_file(
        self, path: str | Path, mime_type: str, display_name: str
    ) -> RemoteFile:
        client = self._client()
        data = await asyncio.to_thread(Path(path).read_bytes)
        meta = await client.beta.files.upload(file=(display_name, data, mime_type))
        return RemoteFile(
            uri=meta.id,
            name=meta.id,
            mime_type=mime_type,
            size=len(data),
        )

    async def delete_file(self, name: str) -> None:
        client = self._client()
        await client.beta.files.delete(name)

    async def generate(
        self,
        prompt: str,
        files: list[RemoteFileHandle],
        *,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        client = self._client()

        content: list[dict] = []
        for handle in files:
            block_type = "image" if handle.mime_type.startswith("image/") else "document"
            content.append(
                {"type": block_type, "source": {"type": "file", "file_id": handle.uri}}
            )
        content.append({"type": "text", "text": prompt})

        response = await client.beta.messages.create(
            model=self._model,
            max_tokens=max_output_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": content}],
            betas=[_FILES_BETA],
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
