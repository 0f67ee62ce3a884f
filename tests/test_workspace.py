from pathlib import Path

import pytest

from gometa.workspace import GoModule, find_module_root, load_workspace, parse_go_mod

GO_MOD = """module example.com/app // the app

go 1.22

require (
	github.com/acme/lib v1.2.3
)

replace github.com/acme/local => ../local

replace (
	github.com/acme/forked v1.0.0 => ./third_party/forked
	github.com/acme/remote => github.com/other/remote v1.1.0
)
"""


def test_parse_module_path_and_local_replacements(tmp_path):
    module = parse_go_mod(GO_MOD, tmp_path)

    assert module.path == "example.com/app"
    assert module.root == tmp_path
    assert module.replacements == {
        "github.com/acme/local": (tmp_path / "../local").resolve(),
        "github.com/acme/forked": (tmp_path / "third_party/forked").resolve(),
    }


def test_parse_quoted_module_path(tmp_path):
    assert parse_go_mod('module "example.com/quoted"\n', tmp_path).path == "example.com/quoted"


def test_parse_without_module_directive(tmp_path):
    with pytest.raises(ValueError, match="no module directive"):
        parse_go_mod("go 1.22\n", tmp_path)


def test_directory_for_module_packages(tmp_path):
    module = GoModule(path="example.com/app", root=tmp_path)

    assert module.directory_for("example.com/app") == tmp_path
    assert module.directory_for("example.com/app/internal/db") == tmp_path / "internal" / "db"
    assert module.directory_for("example.com/application") is None


def test_directory_for_vendored_package(tmp_path):
    vendored = tmp_path / "vendor" / "github.com" / "acme" / "lib"
    vendored.mkdir(parents=True)
    module = GoModule(path="example.com/app", root=tmp_path)

    assert module.directory_for("github.com/acme/lib") == vendored
    assert module.directory_for("github.com/acme/missing") is None


def test_directory_for_replaced_module(tmp_path):
    local = tmp_path / "local"
    module = GoModule(path="example.com/app", root=tmp_path, replacements={"github.com/acme/local": local})

    assert module.directory_for("github.com/acme/local/sub") == local / "sub"


def test_find_module_root_walks_up(tmp_path):
    (tmp_path / "go.mod").write_text("module example.com/app\n")
    nested = tmp_path / "cmd" / "server"
    nested.mkdir(parents=True)

    assert find_module_root(nested) == tmp_path.resolve()


def test_load_workspace(tmp_path):
    (tmp_path / "go.mod").write_text(GO_MOD)

    module = load_workspace(tmp_path)

    assert module.path == "example.com/app"


def test_load_workspace_with_invalid_go_mod(tmp_path):
    (tmp_path / "go.mod").write_text("go 1.22\n")

    assert load_workspace(tmp_path) is None


def test_load_workspace_outside_module(tmp_path, monkeypatch):
    monkeypatch.setattr("gometa.workspace.find_module_root", lambda start: None)

    assert load_workspace(Path(tmp_path)) is None
