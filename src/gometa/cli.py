import fnmatch
import json
import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from gometa import __version__
from gometa.cache import PackageCache
from gometa.config import load_extract_config
from gometa.errors import GoMetaError
from gometa.extract import Extractor
from gometa.models import SourceFile

app = typer.Typer(
    help="gometa - extract structured metadata from Go source code",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.command()
def extract(
    path: Path,
    syntax_only: bool = typer.Option(False, "--syntax-only", help="Use verbatim source types, skip type checking"),
    no_comments: bool = typer.Option(False, "--no-comments", help="Do not extract doc comments"),
    pattern: Optional[str] = typer.Option(None, "--pattern", help="Only include files matching this glob (directories)"),
    exclude_tests: bool = typer.Option(False, "--exclude-tests", help="Skip _test.go files (directories)"),
    verbose: bool = typer.Option(False, "--verbose", help="Log progress to stderr"),
):
    """Extract the exported declarations of a Go file or directory as JSON.

    Args:
        path: A .go file or a directory of .go files

    Examples:
        gometa extract server.go
        gometa extract ./pkg/api --exclude-tests
    """
    _configure_logging(verbose)

    config = load_extract_config()
    if syntax_only:
        config = replace(config, cache_dir=None)
    with_comments = config.with_comments and not no_comments

    def file_filter(file_path: Path) -> bool:
        if exclude_tests and file_path.name.endswith("_test.go"):
            return False
        return pattern is None or fnmatch.fnmatch(file_path.name, pattern)

    try:
        with Extractor(config) as extractor:
            if path.is_dir():
                files = extractor.parse_dir(path, with_comments, file_filter, resolve=not syntax_only)
                output = [asdict(f) for f in files]
            else:
                output = asdict(extractor.parse_single_file(path, with_comments, resolve=not syntax_only))
    except (GoMetaError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)

    typer.echo(json.dumps(output, indent=2))


@app.command()
def import_path(file: Path):
    """Infer the import path of the package a Go file belongs to.

    Args:
        file: Path to a .go file
    """
    config = load_extract_config()
    try:
        inferred, external = SourceFile(path=str(file), package="").import_path(config.dependency_root)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps({"import_path": inferred, "external": external}, indent=2))


@app.command()
def clear_cache():
    """Remove all cached package export data."""
    config = load_extract_config()
    cache_path = config.cache_path
    if cache_path is None:
        typer.echo("Package cache is disabled")
        return

    with PackageCache(cache_path) as cache:
        removed = cache.clear()
    typer.echo(f"Removed {removed} cached packages")


def _version_callback(value: bool):
    """Show version and exit."""
    if value:
        console.print(f"gometa version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    )):
    pass
