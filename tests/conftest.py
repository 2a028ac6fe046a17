"""Shared fixtures: an in-process model backend and document helpers."""

import asyncio
import json
from pathlib import Path

import pytest

from menuscan.backends import ModelBackend, RemoteFile
from menuscan.fetcher import logical_document_id
from menuscan.models import DocumentRef, FetchedDocument, resolve_mime_type


class FakeBackend(ModelBackend):
    """Records calls and answers completions from a list of canned responses."""

    tier = "flash"

    def __init__(
        self,
        responses=None,
        *,
        upload_delay: float = 0.0,
        generate_delay: float = 0.0,
        upload_error: Exception | None = None,
        generate_error: Exception | None = None,
        delete_error_names=(),
    ) -> None:
        self.responses = list(responses or ["[]"])
        self.upload_delay = upload_delay
        self.generate_delay = generate_delay
        self.upload_error = upload_error
        self.generate_error = generate_error
        self.delete_error_names = set(delete_error_names)
        self.uploads: list[str] = []
        self.deleted: list[str] = []
        self.prompts: list[str] = []
        self.generate_files: list[list] = []
        self.generate_kwargs: list[dict] = []

    async def upload_file(self, path, mime_type, display_name):
        self.uploads.append(display_name)
        if self.upload_delay:
            await asyncio.sleep(self.upload_delay)
        if self.upload_error is not None:
            raise self.upload_error
        n = len(self.uploads)
        return RemoteFile(
            uri=f"https://files.example/{n}",
            name=f"files/{n}",
            mime_type=mime_type,
            size=Path(path).stat().st_size,
        )

    async def delete_file(self, name):
        if name in self.delete_error_names:
            raise RuntimeError(f"cannot delete {name}")
        self.deleted.append(name)

    async def generate(self, prompt, files, *, max_output_tokens, temperature):
        self.prompts.append(prompt)
        self.generate_files.append(list(files))
        self.generate_kwargs.append(
            {"max_output_tokens": max_output_tokens, "temperature": temperature}
        )
        if self.generate_delay:
            await asyncio.sleep(self.generate_delay)
        if self.generate_error is not None:
            raise self.generate_error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def make_document(tmp_path, name: str, data: bytes, mime_type: str = "") -> FetchedDocument:
    """Write ``data`` to ``tmp_path`` and wrap it as a fetched document."""
    path = tmp_path / name
    path.write_bytes(data)
    return FetchedDocument(
        document_id=logical_document_id(name, data),
        ref=DocumentRef(url=f"https://docs.example/{name}", name=name, mime_type=mime_type),
        path=path,
        mime_type=resolve_mime_type(mime_type, name),
        size=len(data),
    )


def make_pdf(text: str) -> bytes:
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


MENU_TEXT = (
    "Lunch Menu\n"
    "Caesar Salad  romaine, parmesan and croutons  $8.99\n"
    "Margherita Pizza  tomato, mozzarella and basil  12 inch $14.00\n"
    "Cheeseburger  with fries  $11.50 add bacon +$2\n"
)

MENU_RESPONSE = json.dumps([
    {
        "name": "Caesar Salad",
        "description": "Romaine, parmesan and croutons",
        "category": "Salads",
        "section": "Lunch",
        "sizes": [{"size": "Regular", "price": "8.99"}],
        "modifierGroups": [
            {"name": "Add Protein", "options": ["Grilled Chicken (+$4)", "No croutons"]}
        ],
    },
    {
        "name": "Margherita Pizza",
        "description": "Tomato, mozzarella and basil",
        "category": "Pizza",
        "section": "Lunch",
        "sizes": [{"size": '12"', "price": "14.00"}],
        "modifierGroups": [],
    },
    {
        "name": "Cheeseburger",
        "description": "With fries",
        "category": "Burgers",
        "section": "Lunch",
        "sizes": [{"size": "Regular", "price": "$11.50"}],
        "modifierGroups": [{"name": "Add-ons", "options": ["Bacon +$2"]}],
    },
])


@pytest.fixture
def fake_backend():
    return FakeBackend([MENU_RESPONSE])


@pytest.fixture
def menu_pdf():
    return make_pdf(MENU_TEXT)
