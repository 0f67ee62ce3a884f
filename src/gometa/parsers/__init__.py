from pathlib import Path

from gometa.parsers.base import BaseParser
from gometa.parsers.go_parser import GoParser


def get_parser_for_file(file_path: Path) -> BaseParser | None:
    """Return the parser for a file based on its extension, or None if unsupported."""
    if file_path.suffix.lower() == ".go":
        return GoParser()
    return None
