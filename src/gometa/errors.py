"""Exception hierarchy for parsing, checking and dependency acquisition."""


class GoMetaError(Exception):
    """Base class for all gometa errors."""


class ParseError(GoMetaError):
    """Raised when Go source cannot be parsed.

    Attributes:
        path: File the error was found in
        line: 1-based line of the first syntax error
        column: 1-based column of the first syntax error
    """

    def __init__(self, path: str, line: int, column: int, message: str = "syntax error"):
        self.path = path
        self.line = line
        self.column = column
        self.message = message
        super().__init__(f"{path}:{line}:{column}: {message}")


class CheckError(GoMetaError):
    """Raised by a semantic checker that reported one or more diagnostics."""

    def __init__(self, diagnostics: list[str]):
        self.diagnostics = list(diagnostics)
        super().__init__("; ".join(self.diagnostics) if self.diagnostics else "type checking failed")


class UnresolvedImportError(CheckError):
    """A checker diagnostic saying an imported package could not be found.

    Carries the import path as data so callers never need to scrape the
    message text.
    """

    def __init__(self, import_path: str, reason: str = ""):
        self.import_path = import_path
        self.reason = reason
        message = f"could not import {import_path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__([message])


class TypeCheckFailedError(GoMetaError):
    """Fatal type checking failure surfaced to the caller."""

    def __init__(self, diagnostic: str):
        self.diagnostic = diagnostic
        super().__init__(f"errors type checking source file. error: {diagnostic}")


class RetryBudgetExhaustedError(TypeCheckFailedError):
    """Imports were still unresolved after every acquisition attempt."""


class ImportResolutionError(GoMetaError):
    """Base class for import resolver stage failures."""

    def __init__(self, import_path: str, message: str):
        self.import_path = import_path
        super().__init__(message)


class PackageNotFoundError(ImportResolutionError):
    """A resolver stage has no candidate location for the import path."""

    def __init__(self, import_path: str, reason: str):
        self.reason = reason
        super().__init__(import_path, f"package {import_path} not found: {reason}")


class PackageLoadError(ImportResolutionError):
    """A package was located but loading it produced diagnostics.

    Every diagnostic is kept, not just the first one.
    """

    def __init__(self, import_path: str, diagnostics: list[str]):
        self.diagnostics = list(diagnostics)
        lines = "\n".join(f"  {d}" for d in self.diagnostics)
        super().__init__(import_path, f"package {import_path} has errors:\n{lines}")


class FetcherError(GoMetaError):
    """The external dependency fetcher exited unsuccessfully.

    Attributes:
        command: Full command line that was run
        exit_code: Process exit code, or None when the process never started
        output: Combined stdout/stderr of the process
    """

    def __init__(self, command: list[str], exit_code: int | None, output: str, target: str = ""):
        self.command = list(command)
        self.exit_code = exit_code
        self.output = output
        self.target = target
        super().__init__(
            f"failed to execute {' '.join(self.command)} to import Go library: {target}.\n"
            f"Exit Code: {exit_code}\nOutput: {output}"
        )


class ImportPathNotFoundError(FileNotFoundError):
    """The file whose import path was requested does not exist.

    ``path`` holds the original, unmodified path.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}")
