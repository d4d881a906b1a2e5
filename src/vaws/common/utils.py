"""Utility functions for vaws."""

from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535


def validate_port(port: int, port_name: str = "Port", allow_zero: bool = False) -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages
        allow_zero: Accept 0, meaning "let the OS pick an ephemeral port"

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    lower = 0 if allow_zero else MIN_PORT
    if not isinstance(port, int) or isinstance(port, bool) or not (lower <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {lower} and {MAX_PORT}")


def validate_non_empty_string(value: str, field_name: str) -> str:
    """Validate that a string is not empty or only whitespace.

    Args:
        value: String value to validate
        field_name: Name of the field for error messages

    Returns:
        Stripped string value

    Raises:
        ValueError: If string is empty or only whitespace
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()


def sort_by_name(items: Iterable[T], name_of: Callable[[T], str]) -> list[T]:
    """Sort items by case-insensitive display name.

    ``sorted`` is stable, so items with equal names keep their arrival order.
    """
    return sorted(items, key=lambda item: name_of(item).lower())


def name_from_url(url: str) -> str:
    """Extract the trailing path segment of a resource URL.

    Queue URLs look like ``https://sqs.{region}.amazonaws.com/{account}/{name}``.
    """
    return url.rstrip("/").rsplit("/", 1)[-1] or url


def parse_tag_filter(tag: str) -> tuple[str, str | None]:
    """Split a ``Key=Value`` tag filter; a bare ``Key`` matches on presence only."""
    key, sep, value = tag.partition("=")
    key = validate_non_empty_string(key, "Tag key")
    return key, (value.strip() if sep else None)
