"""Unit tests for BaseSourceFileParser abstract class."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from compose2kube.core.common.base_parser import BaseSourceFileParser
from compose2kube.exceptions import ParseError
from compose2kube.ir.models import ComposeModel, ImageRef, ServiceSpec

# -------- Concrete fakes for testing --------


class ConcreteTestParser(BaseSourceFileParser):
    """Reads ``name=image`` lines, one service per line."""

    def get_supported_extensions(self) -> list[str]:
        return [".svc", ".svc.txt"]

    def _parse_content(self, content: str) -> Mapping[str, Any]:
        if content.strip() == "invalid":
            raise ValueError("Test parsing error")
        pairs = (line.split("=", 1) for line in content.splitlines() if line)
        return {name: image for name, image in pairs}

    def _normalize(self, data: Mapping[str, Any]) -> ComposeModel:
        services = {
            name: ServiceSpec(id=name, image=ImageRef.parse(image))
            for name, image in data.items()
        }
        return ComposeModel(services=services)


class EmptyExtensionsParser(ConcreteTestParser):
    """Parser with no supported extensions (accept all files)."""

    def get_supported_extensions(self) -> list[str]:
        return []


# ------------------------- Tests -------------------------


class TestBaseSourceFileParser:
    @pytest.fixture
    def parser(self) -> ConcreteTestParser:
        return ConcreteTestParser()

    @pytest.fixture
    def temp_file(self, tmp_path: Path) -> Path:
        f = tmp_path / "sample.svc"
        f.write_text("web=nginx:1.25\n")
        return f

    # --- capabilities & can_parse ---

    def test_supported_extensions(self, parser: ConcreteTestParser) -> None:
        assert parser.get_supported_extensions() == [".svc", ".svc.txt"]

    def test_can_parse_valid_extension(
        self, parser: ConcreteTestParser, temp_file: Path
    ) -> None:
        assert parser.can_parse(temp_file) is True

    def test_can_parse_invalid_extension(
        self, parser: ConcreteTestParser, tmp_path: Path
    ) -> None:
        f = tmp_path / "x.invalid"
        f.write_text("content")
        assert parser.can_parse(f) is False

    def test_can_parse_multi_part_extension(
        self, parser: ConcreteTestParser, tmp_path: Path
    ) -> None:
        f = tmp_path / "main.svc.txt"
        f.write_text("content")
        assert parser.can_parse(f) is True

    def test_can_parse_nonexistent_file(
        self, parser: ConcreteTestParser, tmp_path: Path
    ) -> None:
        assert parser.can_parse(tmp_path / "missing.svc") is False

    def test_empty_extension_list_accepts_any_file(self, tmp_path: Path) -> None:
        f = tmp_path / "anything.bin"
        f.write_text("x")
        assert EmptyExtensionsParser().can_parse(f) is True

    # --- validate_file ---

    def test_validate_file_success(
        self, parser: ConcreteTestParser, temp_file: Path
    ) -> None:
        parser.validate_file(temp_file)  # should not raise

    def test_validate_file_not_found(
        self, parser: ConcreteTestParser, tmp_path: Path
    ) -> None:
        with pytest.raises(FileNotFoundError):
            parser.validate_file(tmp_path / "missing.svc")

    def test_validate_file_directory(
        self, parser: ConcreteTestParser, tmp_path: Path
    ) -> None:
        with pytest.raises(ValueError, match="Path is not a file"):
            parser.validate_file(tmp_path)

    def test_validate_file_unsupported_extension(
        self, parser: ConcreteTestParser, tmp_path: Path
    ) -> None:
        f = tmp_path / "x.invalid"
        f.write_text("x")
        with pytest.raises(ValueError, match="Unsupported file extension"):
            parser.validate_file(f)

    # --- I/O & parse workflow ---

    def test_read_file_success(
        self, parser: ConcreteTestParser, temp_file: Path
    ) -> None:
        assert parser._read_file(temp_file) == "web=nginx:1.25\n"

    def test_read_file_encoding_error(
        self, parser: ConcreteTestParser, tmp_path: Path
    ) -> None:
        f = tmp_path / "bad.svc"
        f.write_bytes(b"\x80\x81\x82")
        with pytest.raises(UnicodeDecodeError):
            parser._read_file(f)

    def test_parse_file_success(
        self,
        parser: ConcreteTestParser,
        temp_file: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        caplog.set_level(logging.INFO)
        model = parser.parse_file(temp_file)
        assert model.service_ids == ["web"]
        assert model.services["web"].image.tag == "1.25"
        assert any("Parsing file" in r.message for r in caplog.records)

    def test_parse_accepts_loaded_mapping(self, parser: ConcreteTestParser) -> None:
        model = parser.parse({"db": "postgres:16"})
        assert model.services["db"].image.name == "postgres"

    def test_parse_file_missing_raises_parse_error(
        self, parser: ConcreteTestParser, tmp_path: Path
    ) -> None:
        with pytest.raises(ParseError, match="Cannot read"):
            parser.parse_file(tmp_path / "missing.svc")

    def test_parse_wraps_content_errors(
        self, parser: ConcreteTestParser, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.ERROR)
        with pytest.raises(ParseError, match="Test parsing error") as exc_info:
            parser.parse("invalid")
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert any("Failed to parse document" in r.message for r in caplog.records)

    def test_parse_keeps_parse_error_unwrapped(
        self, parser: ConcreteTestParser, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        original = ParseError("bad input")

        def boom(_data: Mapping[str, Any]) -> ComposeModel:
            raise original

        monkeypatch.setattr(parser, "_normalize", boom)
        with pytest.raises(ParseError) as exc_info:
            parser.parse({"web": "nginx"})
        assert exc_info.value is original
