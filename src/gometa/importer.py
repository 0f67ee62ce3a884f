"""Import resolution for the semantic checker.

``ImportResolver.import_package`` turns an import path into a type-checked
``Package`` by trying, in order:

1. the package cache (export data of previously loaded packages),
2. the enclosing Go module workspace (module packages, vendor/ and local
   replace directives),
3. the package source under GOROOT, the module cache or GOPATH/src,
4. a probe of fixed installation roots, when explicitly enabled.

Cache and workspace failures are errors; the source stages are lenient and
report a missing package as None.
"""

import logging
import re
from pathlib import Path

from gometa.buildctx import BuildContext
from gometa.cache import CachedPackage, PackageCache
from gometa.checker import build_package
from gometa.codec import decode_package, encode_package
from gometa.config import ExtractConfig
from gometa.errors import ImportResolutionError, PackageLoadError, PackageNotFoundError, ParseError
from gometa.gotypes import UNSAFE, Package
from gometa.modpath import escape_module_path
from gometa.package_utils import get_package_files, get_package_mtime, is_go_package
from gometa.parsers.go_parser import GoParser
from gometa.workspace import load_workspace

logger = logging.getLogger(__name__)


class PackageLoader:
    """Parses a package directory and builds a lazily checked package."""

    def __init__(self, parser: GoParser, context: BuildContext, import_package):
        self.parser = parser
        self.context = context
        self.import_package = import_package

    def load(self, import_path: str, directory: Path, include_tests: bool = False) -> Package:
        """Load the package in ``directory``.

        Files of an external ``_test`` package are never mixed in.

        Raises:
            PackageNotFoundError: If the directory holds no buildable Go files
            PackageLoadError: With every diagnostic, if files fail to parse or
                declare different packages
        """
        files = get_package_files(directory, self.context, include_tests)
        if not files:
            raise PackageNotFoundError(import_path, f"no buildable Go source files in {directory}")

        parsed = []
        diagnostics = []
        for path in files:
            try:
                parsed.append(self.parser.parse(path.read_bytes(), str(path)))
            except ParseError as e:
                diagnostics.append(str(e))

        sources = [p for p in parsed if not p.path.endswith("_test.go")]
        name = sources[0].package if sources else (parsed[0].package.removesuffix("_test") if parsed else "")
        package_files = []
        for p in parsed:
            if p.package == name:
                package_files.append(p)
            elif not (p.path.endswith("_test.go") and p.package == name + "_test"):
                diagnostics.append(f"found packages {name} and {p.package} ({Path(p.path).name}) in {directory}")

        if diagnostics:
            raise PackageLoadError(import_path, diagnostics)

        logger.debug(f"Loaded {import_path} from {directory} ({len(package_files)} files)")
        return build_package(import_path, name, package_files, self.import_package)


_SEMVER = re.compile(r"v(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?")


def _version_key(directory: Path) -> tuple:
    """Semantic version ordering of a ``module@version`` directory.

    A release sorts above its pre-releases; pre-release identifiers compare
    numerically when numeric, otherwise as text, numeric ones first.
    Pseudo-versions order by their timestamp. Unparsable versions sort last.
    """
    match = _SEMVER.fullmatch(directory.name.rpartition("@")[2])
    if match is None:
        return (-1,)
    major, minor, patch, prerelease = match.groups()
    release = (int(major), int(minor), int(patch))
    if prerelease is None:
        return release + (1, ())
    identifiers = tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in prerelease.split(".")
    )
    return release + (0, identifiers)


class ImportResolver:
    """Resolves import paths to packages through an ordered chain of stages."""

    def __init__(self, config: ExtractConfig, cache: PackageCache | None = None, parser: GoParser | None = None):
        self.config = config
        self.cache = cache
        self.context = BuildContext(config.goos, config.goarch)
        self.workspace = load_workspace(config.work_dir)
        self.loader = PackageLoader(parser or GoParser(), self.context, self.import_package)
        self._packages: dict[str, Package | None] = {}
        self._loaded: dict[str, tuple[Path, Package]] = {}

    def import_package(self, path: str) -> Package | None:
        """Resolve an import path.

        Returns:
            The package, or None when no stage could find it

        Raises:
            ImportResolutionError: If the cache or workspace stage fails and
                the source stage is disabled
        """
        if path == "unsafe":
            return UNSAFE
        if path in self._packages:
            return self._packages[path]

        package = self._resolve(path)
        self._packages[path] = package
        return package

    def forget(self, path: str) -> None:
        """Drop the memoized result for ``path`` so the next import retries."""
        self._packages.pop(path, None)

    def _resolve(self, path: str) -> Package | None:
        package = self._from_cache(path)
        if package is not None:
            return package

        try:
            return self._from_workspace(path)
        except ImportResolutionError as e:
            if not self.config.source_fallback:
                raise
            logger.debug(f"Workspace could not resolve {path}: {e}")

        package = self._from_source(path)
        if package is None and self.config.legacy_probe:
            package = self._from_legacy_probe(path)
        return package

    def _from_cache(self, path: str) -> Package | None:
        if self.cache is None:
            return None

        entry = self.cache.get(path)
        if entry is None:
            return None

        directory = Path(entry.directory)
        if get_package_mtime(directory) != entry.mtime:
            logger.debug(f"Cached export data for {path} is stale")
            return None

        try:
            return decode_package(entry.payload, self.import_package)
        except (ValueError, KeyError) as e:
            logger.warning(f"Discarding unreadable cache entry for {path}: {e}")
            self.cache.delete(path)
            return None

    def _from_workspace(self, path: str) -> Package:
        if self.workspace is None:
            raise PackageNotFoundError(path, f"no go.mod found from {self.config.work_dir}")

        directory = self.workspace.directory_for(path)
        if directory is None or not directory.is_dir():
            raise PackageNotFoundError(path, f"not provided by module {self.workspace.path}")

        return self._load(path, directory, self.config.include_tests)

    def _from_source(self, path: str) -> Package | None:
        if not self.config.source_fallback:
            return None

        directory = self.source_directory(path)
        if directory is None:
            logger.warning(f"Could not find source for package {path}")
            return None

        try:
            return self._load(path, directory)
        except ImportResolutionError as e:
            logger.warning(f"Could not load package {path} from source: {e}")
            return None

    def _from_legacy_probe(self, path: str) -> Package | None:
        for root in self.config.legacy_roots:
            candidate = Path(root) / path
            if not candidate.is_dir():
                continue
            if not is_go_package(candidate):
                entries = sorted(candidate.iterdir())
                if not entries:
                    continue
                candidate = entries[0]
            try:
                return self._load(path, candidate)
            except ImportResolutionError as e:
                logger.warning(f"Legacy probe could not load {path} from {candidate}: {e}")
        return None

    def source_directory(self, path: str) -> Path | None:
        """Locate the source directory of ``path`` outside the workspace."""
        if self.config.toolchain_root:
            std = Path(self.config.toolchain_root) / "src"
            for candidate in (std / path, std / "vendor" / path):
                if is_go_package(candidate):
                    return candidate

        if self.config.dependency_root:
            root = Path(self.config.dependency_root)
            directory = self._module_cache_directory(root / "pkg" / "mod", path)
            if directory is not None:
                return directory
            candidate = root / "src" / path
            if is_go_package(candidate):
                return candidate

        return None

    def _module_cache_directory(self, mod_root: Path, path: str) -> Path | None:
        segments = path.split("/")
        # The longest module path that is a prefix of the import path wins.
        for i in range(len(segments), 0, -1):
            module = escape_module_path("/".join(segments[:i]))
            parent = (mod_root / module).parent
            if not parent.is_dir():
                continue
            base = module.rsplit("/", 1)[-1]
            versions = sorted(parent.glob(f"{base}@*"), key=_version_key, reverse=True)
            for version_dir in versions:
                candidate = version_dir.joinpath(*segments[i:])
                if is_go_package(candidate):
                    return candidate
        return None

    def _load(self, path: str, directory: Path, include_tests: bool = False) -> Package:
        package = self.loader.load(path, directory, include_tests)
        self._loaded[path] = (directory, package)
        return package

    def flush(self) -> None:
        """Write packages loaded from source since the last flush to the cache."""
        if self.cache is None:
            self._loaded.clear()
            return

        with self.cache.transaction():
            while self._loaded:
                path, (directory, package) = self._loaded.popitem()
                self.cache.put(CachedPackage(
                    import_path=path,
                    name=package.name,
                    directory=str(directory),
                    mtime=get_package_mtime(directory),
                    payload=encode_package(package),
                ))
