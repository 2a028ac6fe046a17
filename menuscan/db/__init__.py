"""SQLite database module for jobs, menu items and queued extraction requests."""

from .jobs import JobsDB
from .menu_items import MenuItemsDB
from .requests import RequestQueueDB
from .schema import ensure_schema

__all__ = [
    "JobsDB",
    "MenuItemsDB",
    "RequestQueueDB",
    "ensure_schema",
]
