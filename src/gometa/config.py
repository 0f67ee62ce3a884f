"""Configuration management for gometa extraction."""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from gometa.buildctx import host_goarch, host_goos

logger = logging.getLogger(__name__)

DEFAULT_LEGACY_ROOTS = ("/usr/local/go/src", "/usr/lib/go/src", "/usr/local/opt/go/libexec/src")


def default_dependency_root() -> str:
    """GOPATH, falling back to the toolchain default of ~/go."""
    return os.environ.get("GOPATH") or str(Path.home() / "go")


def default_toolchain_root(go_binary: str = "go") -> str | None:
    """GOROOT, else the installation the go binary on PATH belongs to."""
    if os.environ.get("GOROOT"):
        return os.environ["GOROOT"]
    binary = shutil.which(go_binary)
    if binary is None:
        return None
    # <GOROOT>/bin/go, possibly behind a symlink such as /usr/local/bin/go
    return str(Path(binary).resolve().parent.parent)


@dataclass
class ExtractConfig:
    """Configuration for extraction and import resolution.

    Attributes:
        dependency_root: Root of the external dependency tree (GOPATH). Used
            for import-path inference and the module cache lookup.
        toolchain_root: Go installation root (GOROOT); its src directory
            holds the standard library.
        go_binary: Go command used to fetch missing dependencies.
        retry_budget: Number of type-checking attempts per package.
        include_tests: Whether same-package _test.go files are loaded with
            workspace packages.
        source_fallback: Whether packages may be loaded from source outside
            the workspace. When off, workspace failures are fatal.
        legacy_probe: Enable probing of fixed installation roots.
        legacy_roots: Roots probed when legacy_probe is on.
        cache_dir: Directory of the package cache, None to disable it.
        with_comments: Whether doc comments are extracted.
        goos: Target operating system for build constraints.
        goarch: Target architecture for build constraints.
        work_dir: Directory dependencies are fetched into and where the
            enclosing module is looked up.
    """
    dependency_root: str | None = field(default_factory=default_dependency_root)
    toolchain_root: str | None = None
    go_binary: str = "go"
    retry_budget: int = 2
    include_tests: bool = True
    source_fallback: bool = True
    legacy_probe: bool = False
    legacy_roots: list[str] = field(default_factory=lambda: list(DEFAULT_LEGACY_ROOTS))
    cache_dir: str | None = ".gometa-cache"
    with_comments: bool = True
    goos: str = field(default_factory=host_goos)
    goarch: str = field(default_factory=host_goarch)
    work_dir: Path = field(default_factory=Path.cwd)

    def __post_init__(self):
        if self.toolchain_root is None:
            self.toolchain_root = default_toolchain_root(self.go_binary)
        self.work_dir = Path(self.work_dir)

    @property
    def cache_path(self) -> Path | None:
        """Absolute cache directory, or None when caching is disabled."""
        if not self.cache_dir:
            return None
        path = Path(self.cache_dir)
        return path if path.is_absolute() else self.work_dir / path


_KEYS = (
    "dependency_root",
    "toolchain_root",
    "go_binary",
    "retry_budget",
    "include_tests",
    "source_fallback",
    "legacy_probe",
    "legacy_roots",
    "cache_dir",
    "with_comments",
    "goos",
    "goarch",
)


def load_extract_config(repo_root: Path | None = None) -> ExtractConfig:
    """Load extraction configuration from a .gometa file in the repository root.

    Args:
        repo_root: Path to repository root. If None, uses current directory.

    Returns:
        ExtractConfig object with loaded or default values.

    Notes:
        If .gometa file doesn't exist or can't be parsed, returns default config.
        Expected YAML structure:

        ```yaml
        extract:
          dependency_root: /home/me/go
          retry_budget: 2
          source_fallback: true
          cache_dir: .gometa-cache
        ```
    """
    if repo_root is None:
        repo_root = Path.cwd()

    config_path = repo_root / ".gometa"

    if not config_path.exists():
        return ExtractConfig(work_dir=repo_root)

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            return ExtractConfig(work_dir=repo_root)

        extract_config = data.get("extract", {})
        if not isinstance(extract_config, dict):
            return ExtractConfig(work_dir=repo_root)

        values = {key: extract_config[key] for key in _KEYS if key in extract_config}
        return ExtractConfig(work_dir=repo_root, **values)
    except (yaml.YAMLError, OSError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring invalid configuration in {config_path}: {e}")
        return ExtractConfig(work_dir=repo_root)
