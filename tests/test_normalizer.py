"""Tests for item normalization and duplicate suppression."""

from decimal import Decimal

from menuscan.normalizer import (
    UNLISTED_SIZES_GROUP,
    Normalizer,
    normalize_name,
    parse_modifier_option,
    parse_modifier_options,
    parse_price,
)
from menuscan.parser import parse_response
from menuscan.schema import ExtractedItem
from menuscan.vocabulary import FALLBACK_CATEGORY, Vocabulary

from conftest import MENU_RESPONSE


def _item(**kwargs) -> ExtractedItem:
    data = {"name": "Soup", "category": "Soups"}
    data.update(kwargs)
    return ExtractedItem.model_validate(data)


def test_normalize_name():
    assert normalize_name("  Caesar   SALAD ") == "caesar salad"


def test_modifier_option_prices():
    options = parse_modifier_options(["Extra cheese (+$2)", "No onions", "Bacon +$1.50"])
    assert [(o.name, o.price) for o in options] == [
        ("Extra cheese", "2"),
        ("No onions", None),
        ("Bacon", "1.50"),
    ]


def test_modifier_option_leading_price():
    option = parse_modifier_option("+$3 Avocado")
    assert option.name == "Avocado"
    assert option.price == "3"


def test_modifier_option_quantities_are_not_prices():
    assert parse_modifier_option("12 oz").price is None
    assert parse_modifier_option("2 eggs").to_dict() == {"name": "2 eggs"}


def test_parse_price():
    assert parse_price("$11.50") == Decimal("11.50")
    assert parse_price("1,200") == Decimal("1200.00")
    assert parse_price("market price") == Decimal("0.00")
    assert parse_price(None) == Decimal("0.00")
    assert parse_price("-4") == Decimal("0.00")


def test_prepare_menu_response():
    batch = Normalizer().prepare(parse_response(MENU_RESPONSE), [])

    assert [i.name for i in batch.items] == ["Caesar Salad", "Margherita Pizza", "Cheeseburger"]
    salad, pizza, burger = batch.items
    assert salad.subcategory == "Salads"
    assert salad.menus == "Lunch"
    assert salad.sizes[0].size == "Regular"
    assert salad.sizes[0].price == Decimal("8.99")
    assert salad.modifier_groups[0].options[0].to_dict() == {"name": "Grilled Chicken", "price": "4"}
    assert pizza.sizes[0].size == '12"'
    assert burger.sizes[0].price == Decimal("11.50")
    assert burger.modifier_groups[0].options[0].price == "2"
    assert batch.skipped_duplicates == []


def test_prepare_skips_existing_names_case_insensitively():
    items = [_item(name="Tomato Soup"), _item(name="Onion Soup")]
    batch = Normalizer().prepare(items, ["  tomato   soup"])
    assert [i.name for i in batch.items] == ["Onion Soup"]
    assert batch.skipped_duplicates == ["Tomato Soup"]


def test_prepare_collapses_repeats_within_batch():
    items = [_item(name="Chili"), _item(name="CHILI "), _item(name="Chili")]
    batch = Normalizer().prepare(items, [])
    assert len(batch.items) == 1
    assert batch.items[0].name_key == "chili"
    assert len(batch.skipped_duplicates) == 2


def test_item_without_sizes_has_no_size_rows():
    normalized = Normalizer().normalize_item(_item(sizes=[]))
    assert normalized.sizes == []


def test_missing_size_label_and_bad_price_degrade():
    normalized = Normalizer().normalize_item(
        _item(sizes=[{"size": None, "price": "MP"}])
    )
    assert len(normalized.sizes) == 1
    assert normalized.sizes[0].size == "Regular"
    assert normalized.sizes[0].price == Decimal("0.00")


def test_unknown_category_falls_back():
    normalized = Normalizer().normalize_item(_item(category="Chef's Whims"))
    assert normalized.subcategory == FALLBACK_CATEGORY


def test_category_containing_short_vocabulary_word_falls_back():
    batch = Normalizer().prepare(
        parse_response(
            '[{"name": "Ribeye", "category": "Steaks"},'
            ' {"name": "Crostini", "category": "Beginnings"}]'
        ),
        [],
    )
    assert [(i.name, i.subcategory) for i in batch.items] == [
        ("Ribeye", FALLBACK_CATEGORY),
        ("Crostini", FALLBACK_CATEGORY),
    ]


def test_category_uses_vocabulary_spelling():
    normalized = Normalizer().normalize_item(_item(category="draft beer"))
    assert normalized.subcategory == "Draft Beer"


def test_custom_vocabulary_category():
    vocab = Vocabulary.with_extras(categories=["Brunch"])
    normalized = Normalizer(vocab).normalize_item(_item(category="Brunch"))
    assert normalized.subcategory == "Brunch"


def test_unlisted_sizes_become_modifier_options():
    normalized = Normalizer().normalize_item(
        _item(sizes=[{"size": "Cup", "price": "4"}, {"size": "large", "price": "7.5"}])
    )
    assert [(s.size, s.price) for s in normalized.sizes] == [("Large", Decimal("7.50"))]
    group = normalized.modifier_groups[-1]
    assert group.name == UNLISTED_SIZES_GROUP
    assert [o.to_dict() for o in group.options] == [{"name": "Cup", "price": "4.00"}]


def test_missing_section_defaults_to_general():
    assert Normalizer().normalize_item(_item()).menus == "General"
