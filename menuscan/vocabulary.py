"""Constrained category and size vocabularies used by prompts and normalization."""

from __future__ import annotations

from dataclasses import dataclass, field

FALLBACK_CATEGORY = "Open Food"
DEFAULT_SIZE = "Regular"

DEFAULT_CATEGORIES: list[str] = [
    # Food
    "Appetizers", "Soups", "Salads", "Sandwiches", "Burgers", "Pizza", "Pasta",
    "Entrees", "Desserts", "Sides", "Kids Menu",
    # Cocktails
    "Classic Cocktails", "Signature Cocktails", "Martinis", "Margaritas",
    "Mojitos", "Shots",
    # Beer
    "Draft Beer", "Bottled Beer", "Canned Beer", "Cider", "RTDs (Ready-to-Drink)",
    # Wine
    "Red Wine", "White Wine", "Rosé Wine", "Sparkling Wine",
    # Liquor
    "Whiskey", "Vodka", "Gin", "Rum", "Tequila", "Liqueurs",
    # N/A
    "Coffee", "Tea", "Juice", "Soda", "Mocktails",
    # Merchandise
    "Apparel", "Glassware", "Other",
    FALLBACK_CATEGORY,
]

DEFAULT_SIZES: list[str] = [
    "Regular", "Small", "Medium", "Large", "Side", '12"', '16"', "Glass", "Bottle",
]


def _merge(defaults: list[str], extra: list[str]) -> list[str]:
    merged = list(defaults)
    seen = {v.lower() for v in merged}
    for value in extra:
        if value.lower() not in seen:
            merged.append(value)
            seen.add(value.lower())
    return merged


@dataclass
class Vocabulary:
    """The fixed label sets the model is instructed to use exclusively."""

    categories: list[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    sizes: list[str] = field(default_factory=lambda: list(DEFAULT_SIZES))

    @classmethod
    def with_extras(
        cls, categories: list[str] | None = None, sizes: list[str] | None = None
    ) -> Vocabulary:
        """Build a vocabulary with custom entries appended after the defaults."""
        return cls(
            categories=_merge(DEFAULT_CATEGORIES, categories or []),
            sizes=_merge(DEFAULT_SIZES, sizes or []),
        )

    def match_category(self, label: str | None) -> str | None:
        """Return the vocabulary spelling of ``label`` or None if it is not listed."""
        if not label:
            return None
        wanted = label.strip().lower()
        for category in self.categories:
            if category.lower() == wanted:
                return category
        return None

    def resolve_category(self, label: str | None) -> str:
        """Case-insensitive vocabulary match, falling back to Open Food."""
        return self.match_category(label) or FALLBACK_CATEGORY

    def match_size(self, label: str | None) -> str | None:
        if not label:
            return None
        wanted = label.strip().lower()
        for size in self.sizes:
            if size.lower() == wanted:
                return size
        return None
