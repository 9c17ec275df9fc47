"""
Kubernetes quantity helpers.

CPU is handled in cores and memory/storage in GiB, both as ``Decimal`` so
callers can sum them without float drift.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

__all__ = [
    "parse_cpu",
    "parse_memory_gib",
    "format_cpu",
    "format_memory",
    "compose_memory_to_quantity",
]

_BINARY = {
    "Ki": Decimal(1024) ** 1,
    "Mi": Decimal(1024) ** 2,
    "Gi": Decimal(1024) ** 3,
    "Ti": Decimal(1024) ** 4,
}
_DECIMAL = {
    "k": Decimal(1000) ** 1,
    "K": Decimal(1000) ** 1,
    "M": Decimal(1000) ** 2,
    "G": Decimal(1000) ** 3,
    "T": Decimal(1000) ** 4,
}
_GIB = Decimal(1024) ** 3

_QUANTITY_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([A-Za-z]*)\s*$")
_COMPOSE_MEMORY_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([bkmgt]?)b?\s*$", re.I)


def parse_cpu(value: str | int | float) -> Decimal:
    """
    Parse a CPU quantity into cores.

    Args:
        value: ``"500m"``, ``"0.5"``, ``2`` ...

    Returns:
        Number of cores

    Raises:
        ValueError: If the value is not a CPU quantity
    """
    text = str(value).strip()
    try:
        if text.endswith("m"):
            return Decimal(text[:-1]) / Decimal(1000)
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid CPU quantity: {value!r}") from exc


def parse_memory_gib(value: str | int | float) -> Decimal:
    """
    Parse a memory/storage quantity into GiB.

    Plain numbers are bytes, as in Kubernetes.

    Raises:
        ValueError: If the value is not a quantity
    """
    match = _QUANTITY_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid memory quantity: {value!r}")
    number, suffix = Decimal(match.group(1)), match.group(2)
    if suffix in _BINARY:
        return number * _BINARY[suffix] / _GIB
    if suffix in _DECIMAL:
        return number * _DECIMAL[suffix] / _GIB
    if suffix == "":
        return number / _GIB
    raise ValueError(f"Unknown memory unit in {value!r}")


def format_cpu(cores: Decimal) -> str:
    """Format cores as a quantity; positive values never round to zero."""
    millis = int((cores * 1000).to_integral_value())
    if cores > 0:
        millis = max(millis, 1)
    if millis % 1000 == 0:
        return str(millis // 1000)
    return f"{millis}m"


def format_memory(gib: Decimal) -> str:
    """Format GiB as ``Gi`` or ``Mi``; positive values never round to zero."""
    mib = int((gib * 1024).to_integral_value())
    if gib > 0:
        mib = max(mib, 1)
    if mib % 1024 == 0:
        return f"{mib // 1024}Gi"
    return f"{mib}Mi"


def compose_memory_to_quantity(value: str | int) -> str:
    """
    Convert a compose byte value (``512m``, ``1g``, ``1.5gb``, ``268435456``)
    into a Kubernetes quantity.

    Raises:
        ValueError: If the value is not a compose byte value
    """
    if isinstance(value, int):
        return format_memory(Decimal(value) / _GIB)
    match = _COMPOSE_MEMORY_RE.match(value)
    if not match:
        # already a Kubernetes quantity (e.g. "512Mi")
        parse_memory_gib(value)
        return value.strip()
    number, unit = Decimal(match.group(1)), match.group(2).lower()
    factor = {"": 1, "b": 1, "k": 1024, "m": 1024**2, "g": 1024**3, "t": 1024**4}[
        unit
    ]
    return format_memory(number * factor / _GIB)
