"""Data models for the workshop watcher."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional


@dataclass(frozen=True)
class ItemRecord:
    """A single workshop item as observed in one polling cycle.

    ``title``, ``url`` and ``last_updated`` are ``None`` when the detail page
    could not be fetched this cycle.
    """

    id: str
    title: Optional[str] = None
    url: Optional[str] = None
    last_updated: Optional[datetime] = None

    @classmethod
    def placeholder(cls, item_id: str) -> "ItemRecord":
        return cls(id=item_id)

    @property
    def is_complete(self) -> bool:
        return self.title is not None


@dataclass(frozen=True)
class Reminder:
    """A broadcast sent every day at a fixed wall-clock time."""

    at: time
    message: str
