"""Direct menu extraction from CSV and XLSX files (no model call)."""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .schema import ExtractedItem, ExtractedSize
from .vocabulary import DEFAULT_SIZE, FALLBACK_CATEGORY, Vocabulary

logger = logging.getLogger(__name__)

_COLUMN_PATTERNS: dict[str, list[str]] = {
    "name": ["name", "item", "product", "menu item", "dish", "title"],
    "description": ["description", "desc", "details", "ingredients"],
    "price": ["price", "cost", "amount", "$"],
    "category": ["category", "type", "group", "classification"],
    "section": ["section", "menu", "area", "division"],
    "size": ["size", "portion", "serving"],
}

_CSV_TYPES = ("text/csv", "application/csv")
_LEGACY_EXCEL_TYPE = "application/vnd.ms-excel"
_OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_ZIP_MAGIC = b"PK"

_CATEGORY_ALIASES: dict[str, str] = {
    "taco": "Entrees",
    "tacos": "Entrees",
    "burrito": "Entrees",
    "burritos": "Entrees",
    "quesadilla": "Entrees",
    "quesadillas": "Entrees",
    "main": "Entrees",
    "main course": "Entrees",
    "entree": "Entrees",
    "appetizer": "Appetizers",
    "starter": "Appetizers",
    "starters": "Appetizers",
    "salad": "Salads",
    "side": "Sides",
    "dessert": "Desserts",
}


@dataclass
class Sheet:
    headers: list[str]
    rows: list[list[str]]
    name: str


def read_csv(path: str | Path) -> Sheet:
    with open(path, newline="", encoding="utf-8-sig") as f:
        rows = [
            [cell.strip() for cell in row]
            for row in csv.reader(f)
            if any(cell.strip() for cell in row)
        ]
    if not rows:
        raise ValueError(f"CSV file {Path(path).name} contains no data")
    return Sheet(headers=rows[0], rows=rows[1:], name=Path(path).name)


def read_xlsx(path: str | Path) -> Sheet:
    """Read the first worksheet of an XLSX workbook."""
    try:
        import openpyxl
    except ImportError:
        raise ImportError("openpyxl is required: pip install openpyxl") from None

    workbook = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        rows: list[list[str]] = []
        for values in sheet.iter_rows(values_only=True):
            cells = ["" if v is None else str(v).strip() for v in values]
            if any(cells):
                rows.append(cells)
        title = sheet.title
    finally:
        workbook.close()

    if not rows:
        raise ValueError(f"XLSX file {Path(path).name} contains no data")
    headers = [h or f"Column_{i + 1}" for i, h in enumerate(rows[0])]
    return Sheet(headers=headers, rows=rows[1:], name=title)


def detect_columns(headers: list[str]) -> dict[str, int]:
    """Map logical fields to column indexes by header keywords."""
    lowered = [h.lower() for h in headers]
    mapping: dict[str, int] = {}
    for field_name, patterns in _COLUMN_PATTERNS.items():
        for index, header in enumerate(lowered):
            if index in mapping.values():
                continue
            if any(p in header for p in patterns):
                mapping[field_name] = index
                break
    if "name" not in mapping and headers:
        mapping["name"] = 0
    return mapping


def _words(text: str) -> list[str]:
    return re.findall(r"[a-z0-9]+", text.lower())


def _has_word(words: set[str], word: str) -> bool:
    return word in words or f"{word}s" in words or word.rstrip("s") in words


def normalize_category(label: str, vocabulary: Vocabulary) -> str:
    """Map a spreadsheet category cell onto the vocabulary.

    Tries aliases, then an exact match, then a category whose every word
    appears as a whole word in the label ("House Salads & Bowls" is Salads).
    """
    if not label:
        return FALLBACK_CATEGORY
    alias = _CATEGORY_ALIASES.get(label.strip().lower())
    if alias:
        return alias
    exact = vocabulary.match_category(label)
    if exact is not None:
        return exact
    words = set(_words(label))
    for category in vocabulary.categories:
        category_words = _words(category)
        if category_words and all(_has_word(words, w) for w in category_words):
            return category
    return FALLBACK_CATEGORY


def parse_price_cell(value: str) -> str:
    cleaned = re.sub(r"[^0-9.]", "", value)
    try:
        return f"{float(cleaned):.2f}"
    except ValueError:
        return "0.00"


def sheet_to_items(sheet: Sheet, vocabulary: Vocabulary | None = None) -> list[ExtractedItem]:
    vocabulary = vocabulary or Vocabulary()
    columns = detect_columns(sheet.headers)
    header_row = [h.lower() for h in sheet.headers]

    def cell(row: list[str], field_name: str) -> str:
        index = columns.get(field_name)
        if index is None or index >= len(row):
            return ""
        return row[index]

    items: list[ExtractedItem] = []
    for row in sheet.rows:
        if [c.lower() for c in row[: len(header_row)]] == header_row:
            continue  # header repeated inside the data
        name = cell(row, "name")
        if not name:
            continue
        sizes = []
        price = cell(row, "price")
        if price:
            sizes.append(
                ExtractedSize(
                    size=cell(row, "size") or DEFAULT_SIZE,
                    price=parse_price_cell(price),
                )
            )
        items.append(
            ExtractedItem(
                name=name,
                category=normalize_category(cell(row, "category"), vocabulary),
                description=cell(row, "description"),
                section=cell(row, "section"),
                sizes=sizes,
            )
        )

    logger.info("Parsed %d items from spreadsheet %s", len(items), sheet.name)
    return items


def parse_spreadsheet(
    path: str | Path,
    vocabulary: Vocabulary | None = None,
    mime_type: str = "",
) -> list[ExtractedItem]:
    """Extract menu items from a CSV or XLSX file.

    Legacy ``.xls`` workbooks are rejected with a message asking for XLSX or
    CSV. Files declared as ``application/vnd.ms-excel`` that are not workbooks
    are read as CSV, which is how Windows labels CSV uploads.

    Raises:
        ValueError: If the file is a legacy workbook or holds no rows.
    """
    path = Path(path)
    is_csv = path.suffix.lower() == ".csv" or mime_type in _CSV_TYPES
    if not is_csv:
        with open(path, "rb") as f:
            head = f.read(len(_OLE_MAGIC))
        if head == _OLE_MAGIC:
            raise ValueError(
                f"{path.name} is a legacy Excel (.xls) workbook; save it as .xlsx or .csv"
            )
        is_csv = not head.startswith(_ZIP_MAGIC) and mime_type == _LEGACY_EXCEL_TYPE
    sheet = read_csv(path) if is_csv else read_xlsx(path)
    return sheet_to_items(sheet, vocabulary)
