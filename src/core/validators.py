from typing import Any

from . import exceptions


def require_any_field(data: Any, fields: list[str]) -> Any:
    """Partial updates must name at least one of ``fields``; explicit nulls count."""
    if not isinstance(data, dict) or not any(field in data for field in fields):
        raise exceptions.NoFieldsProvidedError(fields)
    return data


def check_length(value: str, label: str, max_length: int, min_length: int = 1) -> str:
    if min_length > 1 and not (min_length <= len(value) <= max_length):
        raise ValueError(f"{label} must be between {min_length} and {max_length} characters")
    if not value.strip():
        raise ValueError(f"{label} is required")
    if len(value) > max_length:
        raise ValueError(f"{label} must not exceed {max_length} characters")
    return value
