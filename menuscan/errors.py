"""Error taxonomy for extraction runs.

Every stage raises a subclass of :class:`ExtractionError`; the pipeline converts
them into the job's ``failed`` terminal state.
"""

from __future__ import annotations


class ExtractionError(Exception):
    """Base class for stage-local failures of an extraction run."""

    stage = "extract"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict:
        """Diagnostic fields merged into the failure payload."""
        return {}


class FetchError(ExtractionError):
    stage = "fetch"

    def __init__(self, message: str, *, name: str = "", url: str = "") -> None:
        super().__init__(message)
        self.name = name
        self.url = url


class UploadError(ExtractionError):
    stage = "upload"

    def __init__(self, message: str, *, document_id: str = "") -> None:
        super().__init__(message)
        self.document_id = document_id


class ExtractionRequestError(ExtractionError):
    stage = "prompt"

    def __init__(self, message: str, *, document_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.document_ids = list(document_ids or [])


class ParseError(ExtractionError):
    """Model output could not be parsed or repaired into the item schema."""

    stage = "parse"

    def __init__(self, message: str, *, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text

    def details(self) -> dict:
        return {"rawText": self.raw_text}


class PersistenceError(ExtractionError):
    """A write of items, sizes or modifiers failed.

    ``inserted_item_ids`` lists menu items that were already committed when the
    failure happened.
    """

    stage = "persist"

    def __init__(
        self,
        message: str,
        *,
        sub_stage: str,
        inserted_item_ids: list[int] | None = None,
    ) -> None:
        super().__init__(message)
        self.sub_stage = sub_stage
        self.inserted_item_ids = list(inserted_item_ids or [])

    def details(self) -> dict:
        return {
            "subStage": self.sub_stage,
            "insertedItemIds": self.inserted_item_ids,
        }
