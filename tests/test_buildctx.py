import pytest

from gometa.buildctx import BuildContext, host_goarch, host_goos


@pytest.fixture
def linux():
    return BuildContext(goos="linux", goarch="amd64")


@pytest.mark.parametrize("name,expected", [
    ("server.go", True),
    ("linux.go", True),
    ("file_linux.go", True),
    ("file_windows.go", False),
    ("file_amd64.go", True),
    ("file_arm64.go", False),
    ("file_linux_amd64.go", True),
    ("file_linux_arm64.go", False),
    ("file_windows_test.go", False),
    ("file_linux_test.go", True),
    ("some_helper.go", True),
])
def test_match_file_name(linux, name, expected):
    assert linux.match_file_name(name) is expected


@pytest.mark.parametrize("header,expected", [
    (b"package a\n", True),
    (b"//go:build linux\n\npackage a\n", True),
    (b"//go:build windows\n\npackage a\n", False),
    (b"//go:build !windows\n\npackage a\n", True),
    (b"//go:build linux && (arm64 || amd64)\n\npackage a\n", True),
    (b"//go:build linux && !amd64\n\npackage a\n", False),
    (b"//go:build unix\n\npackage a\n", True),
    (b"//go:build go1.18\n\npackage a\n", True),
    (b"//go:build go1.99\n\npackage a\n", False),
    (b"//go:build cgo\n\npackage a\n", False),
    (b"//go:build ignore\n\npackage a\n", False),
    (b"// +build linux darwin\n\npackage a\n", True),
    (b"// +build windows\n\npackage a\n", False),
    (b"// +build linux,!amd64\n\npackage a\n", False),
    (b"// +build linux\n// +build amd64\n\npackage a\n", True),
    (b"// Copyright notice.\n\n//go:build linux\n\npackage a\n", True),
    (b"/* block\n comment */\n//go:build windows\n\npackage a\n", False),
])
def test_match_source(linux, header, expected):
    assert linux.match_source(header) is expected


def test_go_build_line_wins_over_plus_build(linux):
    source = b"//go:build linux\n// +build windows\n\npackage a\n"

    assert linux.match_source(source) is True


def test_constraints_after_package_clause_are_ignored(linux):
    source = b"package a\n\n//go:build windows\n"

    assert linux.match_source(source) is True


def test_malformed_expression_does_not_match(linux):
    assert linux.match_source(b"//go:build (linux\n\npackage a\n") is False
    assert linux.match_source(b"//go:build linux &&\n\npackage a\n") is False


def test_implied_operating_systems():
    android = BuildContext(goos="android", goarch="arm64")

    assert android.satisfied("linux")
    assert android.satisfied("unix")
    assert not BuildContext(goos="windows", goarch="amd64").satisfied("unix")


def test_extra_tags():
    context = BuildContext(goos="linux", goarch="amd64", tags=frozenset({"integration"}))

    assert context.match_source(b"//go:build integration\n\npackage a\n")


def test_match_combines_name_and_source(linux):
    assert linux.match("a_linux.go", b"//go:build amd64\n\npackage a\n")
    assert not linux.match("a_linux.go", b"//go:build arm\n\npackage a\n")


def test_host_defaults_are_known_values():
    assert host_goos() in {"linux", "darwin", "windows", "freebsd"}
    assert host_goarch()
