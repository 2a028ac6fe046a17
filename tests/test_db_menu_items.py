"""Tests for MenuItemsDB writes and reads."""

import json
from decimal import Decimal

import pytest

from menuscan.db import JobsDB, MenuItemsDB
from menuscan.models import (
    ModifierOption,
    NormalizedItem,
    NormalizedModifierGroup,
    NormalizedSize,
)


@pytest.fixture
def db(tmp_path):
    """Create a temporary MenuItemsDB with one job."""
    path = tmp_path / "test.db"
    jobs = JobsDB(db_path=path)
    jobs.create_job("job-1")
    jobs.close()
    items = MenuItemsDB(db_path=path)
    yield items
    items.close()


def _item(name: str, subcategory: str = "Soups") -> NormalizedItem:
    return NormalizedItem(
        name=name,
        name_key=name.lower(),
        description=f"{name} of the day",
        subcategory=subcategory,
        menus="Lunch",
    )


def test_insert_items_returns_ids(db):
    ids = db.insert_items("job-1", [_item("Tomato Soup"), _item("Onion Soup")])

    assert set(ids) == {"tomato soup", "onion soup"}
    assert all(isinstance(i, int) for i in ids.values())
    assert db.count_items("job-1") == 2
    assert sorted(db.list_existing_names("job-1")) == ["Onion Soup", "Tomato Soup"]


def test_insert_items_skips_existing_name_keys(db):
    db.insert_items("job-1", [_item("Tomato Soup")])
    ids = db.insert_items("job-1", [_item("Tomato Soup"), _item("Chili")])

    assert list(ids) == ["chili"]
    assert db.count_items("job-1") == 2


def test_sizes_and_modifiers_round_trip(db):
    ids = db.insert_items("job-1", [_item("Burger", "Burgers")])
    item_id = ids["burger"]

    db.insert_sizes([
        (item_id, NormalizedSize(size="Regular", price=Decimal("11.50"))),
        (item_id, NormalizedSize(size="Large", price=Decimal("14.00"), active=False)),
    ])
    db.insert_modifier_groups([
        (
            item_id,
            NormalizedModifierGroup(
                name="Add-ons",
                options=[ModifierOption("Bacon", "2"), ModifierOption("No pickles")],
            ),
        ),
    ])

    [item] = db.list_items("job-1")
    assert item["name"] == "Burger"
    assert item["subcategory"] == "Burgers"
    assert item["menus"] == "Lunch"
    assert item["created_by"] == "extraction"
    assert item["sizes"] == [{"size": "Regular", "price": "11.50"}]
    assert item["modifier_groups"] == [
        {"name": "Add-ons", "options": [{"name": "Bacon", "price": "2"}, {"name": "No pickles"}]}
    ]


def test_modifier_options_stored_as_json(db):
    item_id = db.insert_items("job-1", [_item("Wings")])["wings"]
    db.insert_modifier_groups([
        (item_id, NormalizedModifierGroup(name="Sauce", options=[ModifierOption("Buffalo")]))
    ])

    row = db._get_conn().execute("SELECT options_json FROM item_modifiers").fetchone()
    assert json.loads(row["options_json"]) == [{"name": "Buffalo"}]


def test_items_are_scoped_to_job(db, tmp_path):
    jobs = JobsDB(db_path=tmp_path / "test.db")
    jobs.create_job("job-2")
    jobs.close()

    db.insert_items("job-1", [_item("Soup")])
    db.insert_items("job-2", [_item("Soup")])

    assert db.count_items("job-1") == 1
    assert db.count_items("job-2") == 1
    assert db.list_items("job-3") == []
