"""Strict schema for menu items returned by the model.

Parsed JSON is validated against these models right after parsing; anything
that does not fit is rejected as a :class:`~menuscan.errors.ParseError`.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractedSize(BaseModel):
    """One size/price pair as written by the model."""

    model_config = ConfigDict(extra="ignore")

    size: Optional[str] = Field(None, description="Size label from the size vocabulary")
    price: Optional[str] = Field(None, description="Raw price text, parsed later")

    @field_validator("size", mode="before")
    @classmethod
    def coerce_size(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return str(v).strip() or None

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, bool):
            return None
        return str(v).strip()


class ExtractedModifierGroup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, description="Modifier group name, e.g. 'Toppings'")
    options: list[str] = Field(default_factory=list, description="Raw option strings")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("options", mode="before")
    @classmethod
    def coerce_options(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, list):
            return v
        options: list[str] = []
        for option in v:
            if isinstance(option, dict) and option.get("name"):
                # {"name": "Bacon", "price": "1.50"} -> "Bacon (+$1.50)"
                text = str(option["name"]).strip()
                if option.get("price") not in (None, ""):
                    text = f"{text} (+${option['price']})"
                options.append(text)
            elif option is not None:
                options.append(str(option).strip())
        return [o for o in options if o]


class ExtractedItem(BaseModel):
    """A raw menu item before normalization."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(..., min_length=1)
    category: str = Field(..., description="Category from the category vocabulary")
    description: str = ""
    section: str = Field("", description="Menu/section label, e.g. 'Dinner'")
    sizes: list[ExtractedSize] = Field(default_factory=list)
    modifier_groups: list[ExtractedModifierGroup] = Field(
        default_factory=list, alias="modifierGroups"
    )

    @field_validator("name", "category", mode="before")
    @classmethod
    def strip_required(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", "section", mode="before")
    @classmethod
    def coerce_optional_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("sizes", "modifier_groups", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v
