"""Base implementation for source document parsers."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from compose2kube.exceptions import ParseError
from compose2kube.ir.models import ComposeModel

from ..protocols import SourceParser

logger = logging.getLogger(__name__)


class BaseSourceFileParser(SourceParser, ABC):
    """
    Abstract base class for source document parsers.

    Provides file validation, reading and error wrapping, while the
    format-specific steps stay abstract.

    Subclasses must implement:
    - get_supported_extensions(): Define which file extensions are supported
    - _parse_content(): Turn raw text into a plain mapping
    - _normalize(): Turn the mapping into a ComposeModel

    Subclasses can optionally override:
    - validate_file(): Custom file validation logic
    - _read_file(): Custom file reading logic
    - _handle_parse_error(): Custom error handling
    """

    def __init__(self, encoding: str = "utf-8"):
        """
        Initialize the parser.

        Args:
            encoding: Default file encoding to use when reading files
        """
        self.encoding = encoding
        self._logger = logger.getChild(self.__class__.__name__)

    @abstractmethod
    def get_supported_extensions(self) -> list[str]:
        """
        Returns a list of file extensions this parser supports.

        Returns:
            List of file extensions (e.g., ['.yml', '.yaml'])
        """
        pass

    @abstractmethod
    def _parse_content(self, content: str) -> Mapping[str, Any]:
        """
        Parse raw document text into a mapping.

        Args:
            content: The raw document text

        Returns:
            Parsed data as a mapping

        Raises:
            ParseError: If the text is not a well-formed document
        """
        pass

    @abstractmethod
    def _normalize(self, data: Mapping[str, Any]) -> ComposeModel:
        """
        Normalize parsed data into the IR.

        Args:
            data: Mapping produced by ``_parse_content`` or passed in directly

        Returns:
            The immutable ComposeModel

        Raises:
            ParseError: If required fields are missing or malformed
        """
        pass

    def parse(self, document: str | Mapping[str, Any]) -> ComposeModel:
        """
        Normalize an in-memory document into the IR.

        Args:
            document: Document text or an already-loaded mapping

        Returns:
            The normalized ComposeModel

        Raises:
            ParseError: For any malformed input
        """
        try:
            data = (
                document
                if isinstance(document, Mapping)
                else self._parse_content(document)
            )
            model = self._normalize(data)
            self._logger.debug(f"Normalized {len(model.services)} service(s)")
            return model

        except Exception as e:
            return self._handle_parse_error(e)

    def parse_file(self, file_path: Path) -> ComposeModel:
        """
        Read and normalize a document stored on disk.

        Args:
            file_path: Path to the file to parse

        Returns:
            The normalized ComposeModel

        Raises:
            ParseError: If the file is missing, unsupported or malformed
        """
        self._logger.info(f"Parsing file: {file_path}")

        try:
            self.validate_file(file_path)
            content = self._read_file(file_path)
        except (OSError, ValueError) as e:
            raise ParseError(f"Cannot read {file_path}: {e}") from e

        return self.parse(content)

    def validate_file(self, file_path: Path) -> None:
        """
        Validate that the file exists and has a supported extension.

        Args:
            file_path: Path to the file to validate

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the path is not a file or has an unsupported extension
        """
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        if not file_path.is_file():
            raise ValueError(f"Path is not a file: {file_path}")

        supported_extensions = self.get_supported_extensions()
        if supported_extensions and file_path.suffix not in supported_extensions:
            raise ValueError(
                f"Unsupported file extension '{file_path.suffix}'. "
                f"Supported extensions: {supported_extensions}"
            )

    def _read_file(self, file_path: Path) -> str:
        """
        Reads the file content as text.

        Raises:
            UnicodeDecodeError: If decoding fails.
            OSError: If reading the file fails.
        """
        try:
            return file_path.read_text(encoding=self.encoding)
        except UnicodeDecodeError:
            self._logger.error(
                f"Failed to decode file {file_path} with encoding {self.encoding}"
            )
            raise
        except OSError as e:
            self._logger.error(f"Failed to read file {file_path}: {e}")
            raise

    def _handle_parse_error(self, error: Exception) -> ComposeModel:
        """
        Turn any failure into a ParseError carrying a reason.

        Subclasses can override this to attempt recovery.

        Raises:
            ParseError: Always
        """
        self._logger.error(f"Failed to parse document: {error}")
        if isinstance(error, ParseError):
            raise error
        raise ParseError(f"Malformed document: {error}") from error

    def can_parse(self, file_path: Path) -> bool:
        """
        Check if this parser can handle the given file.

        Args:
            file_path: Path to the file to check

        Returns:
            True if this parser can handle the file, False otherwise
        """
        if not (file_path.exists() and file_path.is_file()):
            return False

        supported_extensions = self.get_supported_extensions()
        if not supported_extensions:
            return True

        return any(file_path.name.endswith(ext) for ext in supported_extensions)
