import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from gometa.errors import FetcherError
from gometa.fetcher import TEMPORARY_MODULE, DependencyFetcher


def _completed(returncode=0, stdout=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout)


@pytest.fixture
def fetcher(tmp_path):
    return DependencyFetcher(tmp_path, go_binary="go")


def test_fetch_runs_go_get(fetcher, tmp_path):
    with patch("gometa.fetcher.subprocess.run", return_value=_completed(stdout="go: added x")) as run:
        output = fetcher.fetch("github.com/acme/x")

    assert output == "go: added x"
    run.assert_called_once()
    args, kwargs = run.call_args
    assert args[0] == ["go", "get", "-v", "github.com/acme/x"]
    assert kwargs["cwd"] == tmp_path
    assert kwargs["stderr"] == subprocess.STDOUT


def test_fetch_failure_reports_command_and_output(fetcher):
    with patch("gometa.fetcher.subprocess.run", return_value=_completed(1, "module not found")):
        with pytest.raises(FetcherError) as exc_info:
            fetcher.fetch("github.com/acme/x")

    error = exc_info.value
    assert error.command == ["go", "get", "-v", "github.com/acme/x"]
    assert error.exit_code == 1
    assert error.output == "module not found"
    assert "github.com/acme/x" in str(error)
    assert "Exit Code: 1" in str(error)


def test_missing_go_binary(tmp_path):
    fetcher = DependencyFetcher(tmp_path, go_binary="no-such-go")

    with patch("gometa.fetcher.subprocess.run", side_effect=FileNotFoundError("no-such-go")):
        with pytest.raises(FetcherError) as exc_info:
            fetcher.fetch("github.com/acme/x")

    assert exc_info.value.exit_code is None


def test_temporary_manifest_is_created_and_removed(fetcher, tmp_path):
    def fake_run(command, **kwargs):
        if command[1:3] == ["mod", "init"]:
            (tmp_path / "go.mod").write_text(f"module {command[3]}\n")
        elif command[1] == "get":
            (tmp_path / "go.sum").write_text("")
        return _completed()

    with patch("gometa.fetcher.subprocess.run", side_effect=fake_run) as run:
        with fetcher.temporary_manifest("github.com/acme/x"):
            assert (tmp_path / "go.mod").read_text() == f"module {TEMPORARY_MODULE}\n"
            fetcher.fetch("github.com/acme/x")

    assert run.call_args_list[0].args[0] == ["go", "mod", "init", TEMPORARY_MODULE]
    assert not (tmp_path / "go.mod").exists()
    assert not (tmp_path / "go.sum").exists()


def test_existing_manifest_is_left_alone(fetcher, tmp_path):
    (tmp_path / "go.mod").write_text("module example.com/app\n")
    run = Mock(return_value=_completed())

    with patch("gometa.fetcher.subprocess.run", run):
        with fetcher.temporary_manifest():
            pass

    run.assert_not_called()
    assert (tmp_path / "go.mod").read_text() == "module example.com/app\n"


def test_manifest_removed_when_block_raises(fetcher, tmp_path):
    def fake_run(command, **kwargs):
        (tmp_path / "go.mod").write_text("module tempmod\n")
        return _completed()

    with patch("gometa.fetcher.subprocess.run", side_effect=fake_run):
        with pytest.raises(RuntimeError):
            with fetcher.temporary_manifest():
                raise RuntimeError("boom")

    assert not (tmp_path / "go.mod").exists()


def test_manifest_path(tmp_path):
    assert DependencyFetcher(tmp_path).manifest_path == Path(tmp_path) / "go.mod"
