"""Extraction entry points: single files, directories and in-memory source."""

import logging
from pathlib import Path
from typing import Callable

from gometa.acquisition import check_with_acquisition
from gometa.cache import PackageCache
from gometa.checker import GoChecker, SemanticChecker
from gometa.config import ExtractConfig
from gometa.fetcher import DependencyFetcher
from gometa.importer import ImportResolver
from gometa.models import SourceFile
from gometa.parsers.go_parser import GoParser
from gometa.syntax import ParsedFile

logger = logging.getLogger(__name__)

FileFilter = Callable[[Path], bool]


class Extractor:
    """Builds source models, optionally with resolved type information.

    Resolved extraction type-checks each package through the import
    resolver, fetching missing dependencies when needed. Syntax-only
    extraction never touches the resolver, the cache or the network.
    """

    def __init__(
        self,
        config: ExtractConfig | None = None,
        checker: SemanticChecker | None = None,
        fetcher: DependencyFetcher | None = None,
    ):
        self.config = config or ExtractConfig()
        self.parser = GoParser()
        self.cache: PackageCache | None = None
        self.resolver: ImportResolver | None = None
        self._checker = checker
        self.fetcher = fetcher or DependencyFetcher(self.config.work_dir, self.config.go_binary)

    @property
    def checker(self) -> SemanticChecker:
        """The semantic checker, created with its resolver and cache on first use."""
        if self._checker is None:
            cache_path = self.config.cache_path
            if cache_path is not None:
                self.cache = PackageCache(cache_path)
            self.resolver = ImportResolver(self.config, self.cache, self.parser)
            self._checker = GoChecker(self.resolver)
        return self._checker

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()
            self.cache = None

    def __enter__(self) -> "Extractor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _with_comments(self, with_comments: bool | None) -> bool:
        return self.config.with_comments if with_comments is None else with_comments

    def extract_files(self, parsed_files: list[ParsedFile], with_comments: bool | None = None, resolve: bool = True) -> list[SourceFile]:
        """Extract parsed files, checking them package by package.

        Results are returned in the order of ``parsed_files``.

        Raises:
            TypeCheckFailedError: If a package fails to type check
            RetryBudgetExhaustedError: If imports stay unresolved
            FetcherError: If a missing dependency cannot be fetched
        """
        with_comments = self._with_comments(with_comments)
        if not resolve:
            return [self.parser.extract_source(p, None, with_comments) for p in parsed_files]

        packages: dict[str, list[ParsedFile]] = {}
        for parsed in parsed_files:
            packages.setdefault(parsed.package, []).append(parsed)

        checker = self.checker
        infos = {}
        for package_name, files in packages.items():
            checked = check_with_acquisition(
                checker,
                package_name,
                files,
                self.fetcher,
                self.config.retry_budget,
                self.resolver,
            )
            for parsed in files:
                infos[parsed.path] = checked.info_for(parsed.path)

        if self.resolver is not None:
            self.resolver.flush()

        return [self.parser.extract_source(p, infos[p.path], with_comments) for p in parsed_files]

    def parse_single_file(self, path: str | Path, with_comments: bool | None = None, resolve: bool = True) -> SourceFile:
        """Extract one Go file.

        Raises:
            OSError: If the file cannot be read
            ParseError: If the file is malformed
        """
        parsed = self.parser.parse(Path(path).read_bytes(), str(path))
        return self.extract_files([parsed], with_comments, resolve)[0]

    def parse_dir(
        self,
        path: str | Path,
        with_comments: bool | None = None,
        file_filter: FileFilter | None = None,
        resolve: bool = True,
    ) -> list[SourceFile]:
        """Extract every Go file of a directory, in lexical file order.

        Args:
            path: Directory to extract
            with_comments: Whether doc comments are collected; None uses the config
            file_filter: Predicate selecting which .go files to include
            resolve: Whether to type check for resolved signatures

        Raises:
            OSError: If the directory or a file cannot be read
            ParseError: If any file is malformed
        """
        directory = Path(path)
        files = sorted(
            child for child in directory.iterdir()
            if child.is_file() and child.suffix == ".go" and (file_filter is None or file_filter(child))
        )
        parsed_files = [self.parser.parse(f.read_bytes(), str(f)) for f in files]
        logger.info(f"Extracting {len(parsed_files)} files from {directory}")
        return self.extract_files(parsed_files, with_comments, resolve)

    def parse_source(self, source: str, path: str, with_comments: bool | None = None, resolve: bool = True) -> SourceFile:
        """Extract in-memory source text reported under a virtual path."""
        parsed = self.parser.parse(source, path)
        return self.extract_files([parsed], with_comments, resolve)[0]


def parse_single_file(path: str | Path, with_comments: bool = True, config: ExtractConfig | None = None, resolve: bool = True) -> SourceFile:
    with Extractor(config) as extractor:
        return extractor.parse_single_file(path, with_comments, resolve)


def parse_dir(
    path: str | Path,
    with_comments: bool = True,
    file_filter: FileFilter | None = None,
    config: ExtractConfig | None = None,
    resolve: bool = True,
) -> list[SourceFile]:
    with Extractor(config) as extractor:
        return extractor.parse_dir(path, with_comments, file_filter, resolve)


def parse_source(source: str, path: str, with_comments: bool = True, config: ExtractConfig | None = None, resolve: bool = True) -> SourceFile:
    with Extractor(config) as extractor:
        return extractor.parse_source(source, path, with_comments, resolve)
