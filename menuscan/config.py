"""TOML configuration loader for menuscan."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .vocabulary import Vocabulary

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class GeminiModelConfig:
    api_key: str = ""
    model: str = "gemini-2.5-flash"


@dataclass
class ClaudeModelConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class ModelConfig:
    backend: str = "gemini"
    gemini: GeminiModelConfig = field(default_factory=GeminiModelConfig)
    claude: ClaudeModelConfig = field(default_factory=ClaudeModelConfig)


@dataclass
class ExtractionConfig:
    max_output_tokens: int = 8000
    temperature: float = 0.1
    batch_size: int = 3
    max_batch_bytes: int = 20_000_000
    fetch_timeout: float = 30.0
    upload_timeout: float = 120.0
    request_timeout: float = 180.0
    scratch_dir: str = "/tmp/menuscan"
    drain_remote_files: bool = False


@dataclass
class CacheConfig:
    max_age_seconds: float = 3600.0
    sweep_schedule: str = "*/15 * * * *"


@dataclass
class WorkerConfig:
    poll_schedule: str = "* * * * *"
    max_requests_per_poll: int = 5


@dataclass
class DatabaseConfig:
    path: str = "~/.config/menuscan/menuscan.db"


@dataclass
class VocabularyConfig:
    categories: list[str] = field(default_factory=list)
    sizes: list[str] = field(default_factory=list)

    def build(self) -> Vocabulary:
        return Vocabulary.with_extras(self.categories, self.sizes)


@dataclass
class MenuScanConfig:
    model: ModelConfig = field(default_factory=ModelConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    vocabulary: VocabularyConfig = field(default_factory=VocabularyConfig)


def load_config(path: str | Path | None = None) -> MenuScanConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys can be overridden via environment variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    mdl = raw.get("model", {})
    ext = raw.get("extraction", {})
    cch = raw.get("cache", {})
    wrk = raw.get("worker", {})
    dbs = raw.get("database", {})
    voc = raw.get("vocabulary", {})

    gemini_cfg = mdl.get("gemini", {})
    claude_cfg = mdl.get("claude", {})

    # Resolve API keys: config file → environment variable
    gemini_api_key = (
        gemini_cfg.get("api_key", "")
        or os.environ.get("GEMINI_API_KEY", "")
        or os.environ.get("GOOGLE_AI_API_KEY", "")
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )

    defaults = ExtractionConfig()

    return MenuScanConfig(
        model=ModelConfig(
            backend=mdl.get("backend", "gemini"),
            gemini=GeminiModelConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.5-flash"),
            ),
            claude=ClaudeModelConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        extraction=ExtractionConfig(
            max_output_tokens=ext.get("max_output_tokens", defaults.max_output_tokens),
            temperature=ext.get("temperature", defaults.temperature),
            batch_size=ext.get("batch_size", defaults.batch_size),
            max_batch_bytes=ext.get("max_batch_bytes", defaults.max_batch_bytes),
            fetch_timeout=ext.get("fetch_timeout", defaults.fetch_timeout),
            upload_timeout=ext.get("upload_timeout", defaults.upload_timeout),
            request_timeout=ext.get("request_timeout", defaults.request_timeout),
            scratch_dir=ext.get("scratch_dir", defaults.scratch_dir),
            drain_remote_files=ext.get("drain_remote_files", defaults.drain_remote_files),
        ),
        cache=CacheConfig(
            max_age_seconds=cch.get("max_age_seconds", 3600.0),
            sweep_schedule=cch.get("sweep_schedule", "*/15 * * * *"),
        ),
        worker=WorkerConfig(
            poll_schedule=wrk.get("poll_schedule", "* * * * *"),
            max_requests_per_poll=wrk.get("max_requests_per_poll", 5),
        ),
        database=DatabaseConfig(
            path=dbs.get("path", "~/.config/menuscan/menuscan.db"),
        ),
        vocabulary=VocabularyConfig(
            categories=list(voc.get("categories", [])),
            sizes=list(voc.get("sizes", [])),
        ),
    )
