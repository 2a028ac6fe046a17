"""Structured menu extraction from uploaded menu documents."""

from .backends import ModelBackend, create_backend
from .config import MenuScanConfig, load_config
from .errors import (
    ExtractionError,
    ExtractionRequestError,
    FetchError,
    ParseError,
    PersistenceError,
    UploadError,
)
from .models import DocumentRef, ExtractionOutcome
from .pipeline import ExtractionPipeline
from .uploader import RemoteFileCache
from .vocabulary import Vocabulary

__version__ = "0.1.0"

__all__ = [
    "DocumentRef",
    "ExtractionError",
    "ExtractionOutcome",
    "ExtractionPipeline",
    "ExtractionRequestError",
    "FetchError",
    "MenuScanConfig",
    "ModelBackend",
    "ParseError",
    "PersistenceError",
    "RemoteFileCache",
    "UploadError",
    "Vocabulary",
    "create_backend",
    "load_config",
]
