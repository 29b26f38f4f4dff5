# src/collab_tracker/core/patch.py

from __future__ import annotations

"""
Partial-update helpers.

Update dataclasses default every field to UNSET. A field set to None means
"clear it"; a field left UNSET means "do not touch it".
"""

from dataclasses import fields
from typing import Any


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def is_set(value: Any) -> bool:
    return value is not UNSET


def present_fields(update: Any) -> dict[str, Any]:
    """Return {name: value} for every dataclass field that was explicitly provided."""
    return {f.name: getattr(update, f.name) for f in fields(update) if is_set(getattr(update, f.name))}
