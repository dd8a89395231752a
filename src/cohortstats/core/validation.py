"""Input validation for values interpolated into generated SQL.

Cohort and concept ids are the only caller values written into SQL text;
they are checked to be real integers first, so the interpolation is safe.
Observation values are always passed as bound parameters instead.
"""

from collections.abc import Iterable


def validate_id(value: object, name: str = "id") -> int:
    """Return ``value`` if it is an integer id.

    Raises:
        ValueError: If ``value`` is not an int (bools are rejected too)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def validate_id_list(values: Iterable[object] | None, name: str = "ids") -> list[int]:
    """Validate every id in ``values``; None is treated as an empty list."""
    if values is None:
        return []
    if isinstance(values, (str, bytes)):
        raise ValueError(f"{name} must be a list of integers, got a string")
    return [validate_id(v, f"each of {name}") for v in values]


def format_id_list(ids: Iterable[int]) -> str:
    """Render validated ids for an ``IN (...)`` clause."""
    return ", ".join(str(i) for i in ids)
