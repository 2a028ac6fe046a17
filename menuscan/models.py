"""Data types shared across the extraction pipeline stages."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

SPREADSHEET_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

_EXTENSION_TYPES = {
    ".pdf": "application/pdf",
    ".csv": "text/csv",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xls": "application/vnd.ms-excel",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def resolve_mime_type(declared: str, name: str) -> str:
    """Use the declared MIME type unless it is missing or generic."""
    declared = (declared or "").split(";")[0].strip().lower()
    if declared and declared != "application/octet-stream":
        return declared
    suffix = Path(name).suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    return mimetypes.guess_type(name)[0] or "application/octet-stream"


def document_kind(mime_type: str) -> str:
    """Classify a MIME type as ``pdf``, ``image``, ``spreadsheet`` or ``other``."""
    if mime_type == "application/pdf":
        return "pdf"
    if mime_type.startswith("image/"):
        return "image"
    if mime_type in SPREADSHEET_TYPES:
        return "spreadsheet"
    return "other"


@dataclass
class DocumentRef:
    """An uploaded menu document as supplied by the job's document store."""

    url: str
    name: str
    mime_type: str = ""


@dataclass
class FetchedDocument:
    """A document downloaded to the scratch directory for this run."""

    document_id: str  # logical id: <stem>-<ext>-<md5[:8]>
    ref: DocumentRef
    path: Path
    mime_type: str
    size: int

    @property
    def name(self) -> str:
        return self.ref.name

    @property
    def kind(self) -> str:
        return document_kind(self.mime_type)


@dataclass
class RemoteFileHandle:
    """A document stored in the model provider's file store."""

    document_id: str
    uri: str
    name: str  # provider resource name, used for deletion
    mime_type: str
    uploaded_at: float  # epoch seconds
    size: int


@dataclass
class TextClassification:
    has_text: bool
    confidence: float
    word_count: int
    char_count: int

    @property
    def is_image_based(self) -> bool:
        return not self.has_text


@dataclass
class ModifierOption:
    name: str
    price: str | None = None

    def to_dict(self) -> dict:
        if self.price is None:
            return {"name": self.name}
        return {"name": self.name, "price": self.price}


@dataclass
class NormalizedSize:
    size: str
    price: Decimal
    active: bool = True


@dataclass
class NormalizedModifierGroup:
    name: str
    options: list[ModifierOption] = field(default_factory=list)


@dataclass
class NormalizedItem:
    """An item ready to be written as a MenuItem with its sizes and modifiers."""

    name: str
    name_key: str
    description: str
    subcategory: str
    menus: str
    sizes: list[NormalizedSize] = field(default_factory=list)
    modifier_groups: list[NormalizedModifierGroup] = field(default_factory=list)


@dataclass
class NormalizedBatch:
    items: list[NormalizedItem] = field(default_factory=list)
    skipped_duplicates: list[str] = field(default_factory=list)


@dataclass
class ExtractionOutcome:
    """Terminal result of one run, mirrored into the job's results payload."""

    job_id: str
    success: bool
    results: dict = field(default_factory=dict)

    @property
    def status(self) -> str:
        return "complete" if self.success else "failed"
