"""Parse and repair JSON menu output from the model."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from pydantic import ValidationError

from .errors import ParseError
from .schema import ExtractedItem

logger = logging.getLogger(__name__)

_CLOSERS = {"{": "}", "[": "]"}


@dataclass
class RepairResult:
    """Outcome of :func:`salvage_truncated_array`.

    ``text`` is the repaired JSON when ``repaired`` is true, otherwise None.
    """

    repaired: bool
    text: str | None = None
    kept_elements: int = 0


def strip_code_fences(text: str) -> str:
    """Remove a leading ```/```json fence line and a trailing ``` fence."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        newline = cleaned.find("\n")
        cleaned = cleaned[newline + 1:] if newline != -1 else cleaned[3:]
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    cleaned = cleaned.strip()
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def salvage_truncated_array(text: str) -> RepairResult:
    """Cut a truncated item array back to its last complete element.

    Scans the text once, tracking string literals and bracket nesting. The
    item array is either a top-level array or the array under the top-level
    ``items`` key; arrays nested elsewhere are ignored. Each time an element
    of that array closes, the scanner records the position and the containers
    still open around it. The repaired text ends at the last such element
    followed by the closers for those containers.
    """
    stack: list[str] = []
    target_depth: int | None = None
    in_string = False
    escaped = False
    string_start = -1
    last_key: str | None = None
    last_end = -1
    open_at_last_end: list[str] = []
    kept = 0

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                if stack == ["{"]:
                    last_key = text[string_start + 1:i]
            continue

        if ch == '"':
            in_string = True
            string_start = i
        elif ch in "{[":
            if ch == "[" and target_depth is None:
                if not stack or (stack == ["{"] and last_key == "items"):
                    target_depth = len(stack) + 1
            stack.append(ch)
        elif ch in "}]":
            if not stack or _CLOSERS[stack[-1]] != ch:
                # Mismatched closer: the rest of the text is not trustworthy.
                break
            stack.pop()
            if target_depth is None:
                continue
            if len(stack) < target_depth:
                # The item array itself closed; nothing was truncated inside it.
                break
            if len(stack) == target_depth and ch == "}":
                last_end = i
                open_at_last_end = list(stack)
                kept += 1

    if last_end == -1:
        return RepairResult(repaired=False)

    closers = "".join(_CLOSERS[c] for c in reversed(open_at_last_end))
    return RepairResult(
        repaired=True,
        text=text[: last_end + 1] + closers,
        kept_elements=kept,
    )


def _load(text: str) -> object:
    return json.loads(text)


def _item_list(data: object, raw_text: str) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("items"), list):
        return data["items"]
    raise ParseError(
        "Model output is neither an item array nor an object with an 'items' array",
        raw_text=raw_text,
    )


def parse_response(text: str) -> list[ExtractedItem]:
    """Parse raw model output into validated items.

    Raises:
        ParseError: If the output cannot be parsed, repaired, or validated.
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise ParseError("Model returned an empty response", raw_text=text)

    try:
        data = _load(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Model output is not valid JSON (%s), attempting repair", e)
        repair = salvage_truncated_array(cleaned)
        if not repair.repaired:
            raise ParseError(
                f"Unparseable model output: {e}", raw_text=text
            ) from e
        try:
            data = _load(repair.text)
        except json.JSONDecodeError as e2:
            raise ParseError(
                f"Model output could not be repaired: {e2}", raw_text=text
            ) from e2
        logger.info(
            "Recovered %d complete items from truncated output", repair.kept_elements
        )

    raw_items = _item_list(data, text)
    items: list[ExtractedItem] = []
    for index, raw in enumerate(raw_items):
        try:
            items.append(ExtractedItem.model_validate(raw))
        except ValidationError as e:
            raise ParseError(
                f"Item {index} does not match the menu item schema: {e}",
                raw_text=text,
            ) from e
    return items
