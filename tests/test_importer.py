import os
from pathlib import Path
from unittest.mock import patch

import pytest

from gometa.buildctx import BuildContext
from gometa.cache import CachedPackage, PackageCache
from gometa.config import ExtractConfig
from gometa.errors import PackageLoadError, PackageNotFoundError
from gometa.gotypes import UNSAFE
from gometa.importer import ImportResolver, PackageLoader, _version_key
from gometa.parsers.go_parser import GoParser


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def layout(tmp_path):
    """A module workspace plus GOROOT and GOPATH trees."""
    work = tmp_path / "work"
    _write(work / "go.mod", "module example.com/app\n\ngo 1.22\n")
    _write(work / "models" / "user.go", "package models\n\ntype User struct{ Name string }\n")
    _write(work / "models" / "user_test.go", "package models\n\ntype fixture int\n")
    _write(work / "models" / "user_ext_test.go", "package models_test\n\ntype External int\n")

    goroot = tmp_path / "goroot"
    _write(goroot / "src" / "strings" / "builder.go", "package strings\n\ntype Builder struct{}\n")

    gopath = tmp_path / "gopath"
    mod = gopath / "pkg" / "mod" / "github.com" / "!burnt!sushi"
    _write(mod / "toml@v1.2.0" / "decode.go", "package toml\n\ntype Old int\n")
    _write(mod / "toml@v1.10.0" / "decode.go", "package toml\n\ntype Newest int\n")
    _write(gopath / "src" / "example.com" / "legacy" / "lib.go", "package legacy\n\ntype Thing int\n")
    return tmp_path


def _config(root: Path, **overrides) -> ExtractConfig:
    values = dict(
        dependency_root=str(root / "gopath"),
        toolchain_root=str(root / "goroot"),
        cache_dir=None,
        goos="linux",
        goarch="amd64",
        work_dir=root / "work",
    )
    values.update(overrides)
    return ExtractConfig(**values)


class TestStages:
    def test_unsafe_is_builtin(self, layout):
        assert ImportResolver(_config(layout)).import_package("unsafe") is UNSAFE

    def test_workspace_package(self, layout):
        package = ImportResolver(_config(layout)).import_package("example.com/app/models")

        assert package.name == "models"
        assert package.path == "example.com/app/models"
        assert package.lookup("User") is not None

    def test_workspace_includes_same_package_tests_only(self, layout):
        package = ImportResolver(_config(layout)).import_package("example.com/app/models")

        assert package.lookup("fixture") is not None
        assert package.lookup("External") is None

    def test_workspace_tests_can_be_excluded(self, layout):
        package = ImportResolver(_config(layout, include_tests=False)).import_package("example.com/app/models")

        assert package.lookup("fixture") is None

    def test_standard_library(self, layout):
        package = ImportResolver(_config(layout)).import_package("strings")

        assert package.lookup("Builder") is not None

    def test_module_cache_prefers_newest_version(self, layout):
        package = ImportResolver(_config(layout)).import_package("github.com/BurntSushi/toml")

        assert package.lookup("Newest") is not None
        assert package.lookup("Old") is None

    def test_gopath_src(self, layout):
        package = ImportResolver(_config(layout)).import_package("example.com/legacy")

        assert package.name == "legacy"

    def test_missing_package_is_none_and_memoized(self, layout):
        resolver = ImportResolver(_config(layout))

        with patch.object(resolver, "_resolve", wraps=resolver._resolve) as resolve:
            assert resolver.import_package("example.com/nowhere") is None
            assert resolver.import_package("example.com/nowhere") is None

        assert resolve.call_count == 1

    def test_forget_retries_resolution(self, layout):
        resolver = ImportResolver(_config(layout))
        assert resolver.import_package("example.com/fetched") is None

        _write(layout / "gopath" / "src" / "example.com" / "fetched" / "f.go", "package fetched\n")
        resolver.forget("example.com/fetched")

        assert resolver.import_package("example.com/fetched").name == "fetched"

    def test_workspace_errors_are_fatal_without_fallback(self, layout):
        resolver = ImportResolver(_config(layout, source_fallback=False))

        with pytest.raises(PackageNotFoundError) as exc_info:
            resolver.import_package("strings")

        assert exc_info.value.import_path == "strings"

    def test_no_workspace_without_fallback(self, layout):
        empty = layout / "empty"
        empty.mkdir()
        resolver = ImportResolver(_config(layout, source_fallback=False, work_dir=empty))

        with pytest.raises(PackageNotFoundError, match="no go.mod"):
            resolver.import_package("example.com/app/models")

    def test_legacy_probe_takes_first_entry(self, layout):
        legacy_root = layout / "legacy"
        _write(legacy_root / "example.com" / "probe" / "v1" / "p.go", "package probe\n\ntype V1 int\n")
        _write(legacy_root / "example.com" / "probe" / "v2" / "p.go", "package probe\n\ntype V2 int\n")
        config = _config(layout, legacy_probe=True, legacy_roots=[str(legacy_root)])

        package = ImportResolver(config).import_package("example.com/probe")

        assert package.lookup("V1") is not None

    def test_legacy_probe_is_off_by_default(self, layout):
        legacy_root = layout / "legacy"
        _write(legacy_root / "example.com" / "probe" / "p.go", "package probe\n")

        resolver = ImportResolver(_config(layout, legacy_roots=[str(legacy_root)]))

        assert resolver.import_package("example.com/probe") is None


class TestLoader:
    def _loader(self):
        return PackageLoader(GoParser(), BuildContext(goos="linux", goarch="amd64"), lambda path: None)

    def test_empty_directory(self, tmp_path):
        with pytest.raises(PackageNotFoundError, match="no buildable Go source files"):
            self._loader().load("example.com/empty", tmp_path)

    def test_all_diagnostics_are_reported(self, tmp_path):
        _write(tmp_path / "a.go", "package a\n")
        _write(tmp_path / "b.go", "package b\n")
        _write(tmp_path / "c.go", "package a\n\nfunc (\n")

        with pytest.raises(PackageLoadError) as exc_info:
            self._loader().load("example.com/mixed", tmp_path)

        assert len(exc_info.value.diagnostics) == 2
        assert any("found packages a and b" in d for d in exc_info.value.diagnostics)
        assert any(d.startswith(str(tmp_path / "c.go")) for d in exc_info.value.diagnostics)

    def test_files_excluded_by_build_constraints(self, tmp_path):
        _write(tmp_path / "a.go", "package a\n\ntype A int\n")
        _write(tmp_path / "a_windows.go", "package a\n\ntype Win int\n")

        package = self._loader().load("example.com/a", tmp_path)

        assert package.lookup("A") is not None
        assert package.lookup("Win") is None


class TestCache:
    @pytest.fixture
    def cache(self, tmp_path):
        db = PackageCache(tmp_path / "cache")
        yield db
        db.close()

    def test_flush_stores_loaded_packages(self, layout, cache):
        resolver = ImportResolver(_config(layout), cache)
        resolver.import_package("strings")

        resolver.flush()

        entry = cache.get("strings")
        assert entry.name == "strings"
        assert entry.directory == str(layout / "goroot" / "src" / "strings")
        assert entry.mtime == os.stat(layout / "goroot" / "src" / "strings" / "builder.go").st_mtime

    def test_cached_package_skips_loading(self, layout, cache):
        first = ImportResolver(_config(layout), cache)
        first.import_package("strings")
        first.flush()

        second = ImportResolver(_config(layout), cache)
        with patch.object(second.loader, "load") as load:
            package = second.import_package("strings")

        load.assert_not_called()
        assert str(package.lookup("Builder").type) == "strings.Builder"

    def test_stale_entry_is_reloaded(self, layout, cache):
        first = ImportResolver(_config(layout), cache)
        first.import_package("strings")
        first.flush()
        source = layout / "goroot" / "src" / "strings" / "builder.go"
        stat = source.stat()
        os.utime(source, (stat.st_atime, stat.st_mtime + 10))

        second = ImportResolver(_config(layout), cache)
        with patch.object(second.loader, "load", wraps=second.loader.load) as load:
            second.import_package("strings")

        load.assert_called_once()

    def test_unreadable_entry_is_discarded(self, layout, cache):
        directory = layout / "goroot" / "src" / "strings"
        cache.put(CachedPackage("strings", "strings", str(directory), os.stat(directory / "builder.go").st_mtime, "{}"))

        package = ImportResolver(_config(layout), cache).import_package("strings")

        assert package.lookup("Builder") is not None
        assert cache.get("strings") is None

    def test_flush_without_cache_is_harmless(self, layout):
        resolver = ImportResolver(_config(layout))
        resolver.import_package("strings")

        resolver.flush()


class TestModuleVersions:
    @pytest.mark.parametrize("older,newer", [
        ("v1.9.0", "v1.10.0"),
        ("v1.2.3-rc1", "v1.2.3"),
        ("v1.2.3-rc.2", "v1.2.3-rc.10"),
        ("v1.2.3-alpha", "v1.2.3-beta"),
        ("v1.2.3-1", "v1.2.3-alpha"),
        ("v0.0.0-20200101120000-abcdef123456", "v0.0.0-20210101120000-123456abcdef"),
        ("v2.0.0+incompatible", "v2.0.1+incompatible"),
        ("not-a-version", "v0.0.1"),
    ])
    def test_version_ordering(self, older, newer):
        assert _version_key(Path(f"toml@{older}")) < _version_key(Path(f"toml@{newer}"))

    def test_release_preferred_over_its_prerelease(self, layout):
        mod = layout / "gopath" / "pkg" / "mod" / "example.com"
        _write(mod / "lib@v1.11.0" / "lib.go", "package lib\n\ntype Release int\n")
        _write(mod / "lib@v1.11.0-rc.1" / "lib.go", "package lib\n\ntype Candidate int\n")

        package = ImportResolver(_config(layout)).import_package("example.com/lib")

        assert package.lookup("Release") is not None
        assert package.lookup("Candidate") is None
