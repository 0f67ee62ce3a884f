from abc import ABC, abstractmethod

from gometa.checker import TypeInfo
from gometa.models import SourceFile
from gometa.syntax import ParsedFile


class BaseParser(ABC):
    """Abstract base class for language-specific declaration extractors."""

    @abstractmethod
    def parse(self, source_code: str | bytes, file_path: str) -> ParsedFile:
        """Parse source code into a syntax tree.

        Args:
            source_code: The source code to parse
            file_path: Path reported in the model and in parse errors

        Returns:
            The parsed file

        Raises:
            ParseError: If the source is malformed
        """
        pass

    @abstractmethod
    def extract_source(self, parsed: ParsedFile, info: TypeInfo | None = None, with_comments: bool = True) -> SourceFile:
        """Build the source model of a parsed file.

        Args:
            parsed: File returned by ``parse``
            info: Resolved type information, or None for syntax-only extraction
            with_comments: Whether doc comments are collected

        Returns:
            SourceFile holding every exported declaration of the file
        """
        pass
