"""Multimodal model backend base class, data types, and factory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import MenuScanConfig
    from ..models import RemoteFileHandle


@dataclass
class RemoteFile:
    """What the provider's file store returns for one upload."""

    uri: str
    name: str  # resource name used for deletion
    mime_type: str
    size: int = 0


class ModelBackend(ABC):
    """Abstract base for a hosted multimodal completion API with a file store."""

    # Pricing tier reported to the cost estimator.
    tier: str = "flash"

    @abstractmethod
    async def upload_file(
        self, path: str | Path, mime_type: str, display_name: str
    ) -> RemoteFile:
        """Upload a local file and return once the provider can use it."""
        ...

    @abstractmethod
    async def delete_file(self, name: str) -> None:
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        files: list[RemoteFileHandle],
        *,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        """Run one completion over ``prompt`` plus the referenced files.

        Returns:
            The raw response text.
        """
        ...


def create_backend(config: MenuScanConfig) -> ModelBackend:
    """Create a model backend based on configuration."""
    backend_name = config.model.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiBackend

            return GeminiBackend(
                api_key=config.model.gemini.api_key,
                model=config.model.gemini.model,
            )
        case "claude":
            from .claude import ClaudeBackend

            return ClaudeBackend(
                api_key=config.model.claude.api_key,
                model=config.model.claude.model,
            )
        case _:
            raise ValueError(
                f"Unknown model backend: {backend_name!r} "
                f"(choose gemini or claude)"
            )
