"""Unit tests for quantity parsing and formatting helpers."""

from __future__ import annotations

from decimal import Decimal

import pytest

from compose2kube.core.common.quantities import (
    compose_memory_to_quantity,
    format_cpu,
    format_memory,
    parse_cpu,
    parse_memory_gib,
)


class TestCpu:
    @pytest.mark.parametrize(
        "value, cores",
        [("500m", Decimal("0.5")), ("2", Decimal("2")), (0.25, Decimal("0.25"))],
    )
    def test_parse(self, value, cores) -> None:
        assert parse_cpu(value) == cores

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValueError, match="Invalid CPU quantity"):
            parse_cpu("lots")

    def test_format_whole_and_fractional_cores(self) -> None:
        assert format_cpu(Decimal("2")) == "2"
        assert format_cpu(Decimal("0.25")) == "250m"

    def test_tiny_cpu_rounds_up_to_one_millicore(self) -> None:
        assert format_cpu(Decimal("0.0001")) == "1m"
        assert format_cpu(Decimal("0")) == "0"


class TestMemory:
    def test_binary_and_decimal_suffixes(self) -> None:
        assert parse_memory_gib("512Mi") == Decimal("0.5")
        assert parse_memory_gib("2Gi") == Decimal("2")
        assert parse_memory_gib("1G") == Decimal(1000**3) / Decimal(1024**3)

    def test_plain_number_is_bytes(self) -> None:
        assert parse_memory_gib(str(1024**3)) == Decimal("1")

    def test_unknown_unit(self) -> None:
        with pytest.raises(ValueError):
            parse_memory_gib("12parsecs")

    def test_format_memory_prefers_gi(self) -> None:
        assert format_memory(Decimal("1")) == "1Gi"
        assert format_memory(Decimal("0.25")) == "256Mi"


class TestComposeMemory:
    @pytest.mark.parametrize(
        "value, expected",
        [("512m", "512Mi"), ("1g", "1Gi"), ("1.5gb", "1536Mi"), (268435456, "256Mi")],
    )
    def test_compose_units(self, value, expected) -> None:
        assert compose_memory_to_quantity(value) == expected

    def test_tiny_values_round_up_to_one_mebibyte(self) -> None:
        assert compose_memory_to_quantity("100k") == "1Mi"
        assert compose_memory_to_quantity(1) == "1Mi"

    def test_kubernetes_quantity_passes_through(self) -> None:
        assert compose_memory_to_quantity(" 256Mi ") == "256Mi"
