from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Identity:
    """The locally signed-in user."""

    id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class Partner:
    id: str
    display_name: str
