from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from kubernetes.utils import parse_quantity

from src.common.errors import ManifestDecodeError

_BINARY_SUFFIXES = (("Ei", 2**60), ("Pi", 2**50), ("Ti", 2**40), ("Gi", 2**30), ("Mi", 2**20), ("Ki", 2**10))


def parse(value: Optional[Union[str, int, float]]) -> Decimal:
    """Parse a resource quantity; a missing value counts as zero."""

    if value is None or value == "":
        return Decimal(0)
    try:
        return Decimal(parse_quantity(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ManifestDecodeError(f"invalid resource quantity {value!r}") from exc


def format_cpu(cores: Decimal) -> str:
    millis = cores * 1000
    if millis == millis.to_integral_value():
        millis_int = int(millis)
        if millis_int % 1000 == 0:
            return str(millis_int // 1000)
        return f"{millis_int}m"
    return _plain(cores)


def format_memory(size: Decimal) -> str:
    if size != size.to_integral_value():
        return _plain(size)
    size_int = int(size)
    if size_int == 0:
        return "0"
    for suffix, base in _BINARY_SUFFIXES:
        if size_int % base == 0:
            return f"{size_int // base}{suffix}"
    return str(size_int)


def _plain(value: Decimal) -> str:
    return format(value.normalize(), "f")


__all__ = ["format_cpu", "format_memory", "parse"]
