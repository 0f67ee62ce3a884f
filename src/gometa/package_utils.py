"""Utilities for locating the source files of a Go package."""

from pathlib import Path

from gometa.buildctx import BuildContext


def is_go_source(path: Path) -> bool:
    """Check if a path is a Go source file that belongs to a package.

    Hidden files and files starting with an underscore are ignored by the Go
    toolchain, so they are not package sources.

    Args:
        path: Path to check

    Returns:
        True if path is a Go source file, False otherwise
    """
    if not path.is_file() or path.suffix != ".go":
        return False
    return not path.name.startswith((".", "_"))


def is_go_package(path: Path) -> bool:
    """Check if a directory directly contains Go source files."""
    if not path.is_dir():
        return False
    return any(is_go_source(child) for child in path.iterdir())


def get_package_files(
    package_path: Path,
    context: BuildContext | None = None,
    include_tests: bool = False,
) -> list[Path]:
    """Get the sorted Go source files of a package directory.

    Args:
        package_path: Path to the package directory
        context: Build context to filter by; None keeps every file
        include_tests: Whether ``_test.go`` files are kept

    Returns:
        Sorted list of source file paths
    """
    if not package_path.is_dir():
        return []

    files = []
    for child in package_path.iterdir():
        if not is_go_source(child):
            continue
        if child.name.endswith("_test.go") and not include_tests:
            continue
        if context is not None and not context.match(child.name, child.read_bytes()):
            continue
        files.append(child)

    return sorted(files)


def get_package_mtime(package_path: Path) -> float:
    """Newest modification time among a package's Go source files.

    Returns:
        The newest mtime, or 0.0 when the directory has no Go files
    """
    if not package_path.is_dir():
        return 0.0

    mtimes = [child.stat().st_mtime for child in package_path.iterdir() if is_go_source(child)]
    return max(mtimes, default=0.0)
