"""Dependency acquisition around semantic checking.

Checking a package may fail because one of its imports is not available
locally yet. When that happens the missing package is fetched and the check
retried, within a small retry budget.
"""

import logging
from contextlib import ExitStack
from typing import Protocol

from gometa.checker import CheckedPackage, SemanticChecker
from gometa.errors import CheckError, RetryBudgetExhaustedError, TypeCheckFailedError, UnresolvedImportError
from gometa.syntax import ParsedFile

logger = logging.getLogger(__name__)

DEFAULT_RETRY_BUDGET = 2

MISSING_IMPORT_MARKER = "could not import "


class Fetcher(Protocol):
    def temporary_manifest(self, target: str = ""):
        ...

    def fetch(self, import_path: str) -> str:
        ...


class Forgetful(Protocol):
    def forget(self, import_path: str) -> None:
        ...


def missing_import_path(message: str) -> str | None:
    """Extract the import path from a "could not import" diagnostic.

    The path runs from the end of the marker to the next space. Returns None
    when the message does not have that shape.
    """
    start = message.find(MISSING_IMPORT_MARKER)
    if start == -1:
        return None
    start += len(MISSING_IMPORT_MARKER)
    end = message.find(" ", start)
    if end == -1:
        return None
    return message[start:end]


class TextDiagnosticChecker(SemanticChecker):
    """Adapts a checker that reports failures only as text.

    A ``CheckError`` whose first diagnostic reads like a missing import is
    re-raised as ``UnresolvedImportError`` so the acquisition loop can act on it.
    """

    def __init__(self, checker: SemanticChecker):
        self.checker = checker

    def check(self, package_name: str, files: list[ParsedFile]) -> CheckedPackage:
        try:
            return self.checker.check(package_name, files)
        except UnresolvedImportError:
            raise
        except CheckError as e:
            import_path = missing_import_path(str(e.diagnostics[0]) if e.diagnostics else str(e))
            if import_path is None:
                raise
            raise UnresolvedImportError(import_path) from e


def check_with_acquisition(
    checker: SemanticChecker,
    package_name: str,
    files: list[ParsedFile],
    fetcher: Fetcher,
    retry_budget: int = DEFAULT_RETRY_BUDGET,
    resolver: Forgetful | None = None,
) -> CheckedPackage:
    """Check a package, fetching unresolved imports between attempts.

    Every failed check spends one unit of the budget. An unresolved import
    with budget left is fetched once and the check repeated; any other
    diagnostic is fatal straight away.

    Args:
        checker: Semantic checker to run
        package_name: Name of the package being checked
        files: Parsed files of the package
        fetcher: Dependency fetcher used for unresolved imports
        retry_budget: Number of check attempts
        resolver: Import resolver whose memo of a fetched path must be dropped

    Returns:
        The checked package

    Raises:
        RetryBudgetExhaustedError: If the last allowed attempt still had an unresolved import
        TypeCheckFailedError: For diagnostics that are not unresolved imports
        FetcherError: If fetching a dependency fails
    """
    with ExitStack() as cleanup:
        budget = retry_budget
        while True:
            budget -= 1
            try:
                return checker.check(package_name, files)
            except UnresolvedImportError as e:
                if budget <= 0:
                    raise RetryBudgetExhaustedError(str(e)) from e
                import_path = e.import_path
            except CheckError as e:
                raise TypeCheckFailedError(str(e)) from e

            logger.info(f"Acquiring missing dependency {import_path}")
            cleanup.enter_context(fetcher.temporary_manifest(import_path))
            fetcher.fetch(import_path)
            if resolver is not None:
                resolver.forget(import_path)
