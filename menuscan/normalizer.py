"""Map extracted items onto the persisted shape and drop duplicates."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation

from .models import (
    ModifierOption,
    NormalizedBatch,
    NormalizedItem,
    NormalizedModifierGroup,
    NormalizedSize,
)
from .schema import ExtractedItem
from .vocabulary import DEFAULT_SIZE, Vocabulary

logger = logging.getLogger(__name__)

# "+$2", "(+$2.50)", "($3)", "+1.50"; a sign or currency marker is required so
# that "12 oz" or "2 eggs" are not read as prices.
_PRICE_TOKEN = r"\(?\s*(?:\+\s*\$?|\$)\s*(\d+(?:\.\d+)?)\s*\)?"
_TRAILING_PRICE = re.compile(r"\s*" + _PRICE_TOKEN + r"\s*$")
_LEADING_PRICE = re.compile(r"^\s*" + _PRICE_TOKEN + r"\s*")

UNLISTED_SIZES_GROUP = "Size Options"

_CENT = Decimal("0.01")


def normalize_name(name: str) -> str:
    """Dedup key: trimmed, lowercased, inner whitespace collapsed."""
    return " ".join(name.split()).lower()


def parse_modifier_option(option: str) -> ModifierOption:
    """Split a raw option like ``"Extra cheese (+$2)"`` into name and price."""
    text = option.strip()
    match = _TRAILING_PRICE.search(text) or _LEADING_PRICE.search(text)
    if match is None:
        return ModifierOption(name=text)
    name = (text[: match.start()] + text[match.end():]).strip()
    return ModifierOption(name=name or text, price=match.group(1))


def parse_modifier_options(options: Iterable[str]) -> list[ModifierOption]:
    return [parse_modifier_option(o) for o in options]


def parse_price(value: str | None) -> Decimal:
    """Parse a price string, degrading to 0.00 when it is not a number."""
    if value is None:
        return Decimal("0.00")
    cleaned = re.sub(r"[$,\s]", "", str(value))
    try:
        price = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0.00")
    if not price.is_finite() or price < 0:
        return Decimal("0.00")
    return price.quantize(_CENT)


class Normalizer:
    """Turns :class:`ExtractedItem` objects into rows for one job."""

    def __init__(self, vocabulary: Vocabulary | None = None) -> None:
        self._vocabulary = vocabulary or Vocabulary()

    def prepare(
        self, items: Iterable[ExtractedItem], existing_names: Iterable[str]
    ) -> NormalizedBatch:
        """Normalize ``items``, skipping names already present for the job.

        ``existing_names`` are the names already persisted for the job; they
        are compared after :func:`normalize_name`. Items repeated within
        ``items`` collapse to the first occurrence.
        """
        seen = {normalize_name(n) for n in existing_names}
        batch = NormalizedBatch()
        for item in items:
            key = normalize_name(item.name)
            if not key or key in seen:
                batch.skipped_duplicates.append(item.name)
                continue
            seen.add(key)
            batch.items.append(self.normalize_item(item, key))

        if batch.skipped_duplicates:
            logger.info(
                "Skipped %d duplicate items already present for the job",
                len(batch.skipped_duplicates),
            )
        return batch

    def normalize_item(self, item: ExtractedItem, key: str | None = None) -> NormalizedItem:
        subcategory = self._vocabulary.resolve_category(item.category)
        if subcategory.lower() != item.category.strip().lower():
            logger.warning(
                "Category %r for %r is not in the vocabulary, using %r",
                item.category, item.name, subcategory,
            )

        sizes: list[NormalizedSize] = []
        unlisted: list[ModifierOption] = []
        for size in item.sizes:
            label = self._vocabulary.match_size(size.size) if size.size else DEFAULT_SIZE
            price = parse_price(size.price)
            if label is None:
                # Sizes outside the vocabulary become modifier options.
                unlisted.append(
                    ModifierOption(name=size.size, price=str(price))
                )
                continue
            sizes.append(NormalizedSize(size=label, price=price))

        groups = [
            NormalizedModifierGroup(
                name=group.name, options=parse_modifier_options(group.options)
            )
            for group in item.modifier_groups
        ]
        if unlisted:
            groups.append(NormalizedModifierGroup(name=UNLISTED_SIZES_GROUP, options=unlisted))

        return NormalizedItem(
            name=" ".join(item.name.split()),
            name_key=key or normalize_name(item.name),
            description=item.description,
            subcategory=subcategory,
            menus=item.section or "General",
            sizes=sizes,
            modifier_groups=groups,
        )
