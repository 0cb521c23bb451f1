"""Dotted-path lookup into decoded JSON documents."""

from __future__ import annotations

from typing import Any, Final


class _Missing:
    """Marker returned when a path does not resolve."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing()


def get_value_by_path(data: Any, path: str | None) -> Any:
    """Return the value at ``path`` (e.g. ``"items.0.full_name"``) or ``MISSING``.

    Numeric segments index into lists; on mappings every segment is a key.
    An empty path returns ``data`` unchanged.
    """

    if not path:
        return data
    current = data
    for segment in (part for part in path.split(".") if part):
        if current is None or current is MISSING:
            return MISSING
        if isinstance(current, list):
            if not segment.isdigit():
                return MISSING
            index = int(segment)
            if index >= len(current):
                return MISSING
            current = current[index]
            continue
        if isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
            continue
        return MISSING
    return current


__all__ = ["MISSING", "get_value_by_path"]
