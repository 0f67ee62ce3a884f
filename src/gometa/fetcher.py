"""Fetches missing Go dependencies with the go toolchain."""

import logging
import subprocess
from contextlib import contextmanager
from pathlib import Path

from gometa.errors import FetcherError

logger = logging.getLogger(__name__)

TEMPORARY_MODULE = "tempmod"


class DependencyFetcher:
    """Runs ``go get`` in a working directory to materialise dependencies.

    ``go get`` only works inside a module, so ``temporary_manifest`` creates a
    throwaway ``go.mod`` for workspaces that have none.
    """

    def __init__(self, work_dir: Path, go_binary: str = "go"):
        self.work_dir = work_dir
        self.go_binary = go_binary

    @property
    def manifest_path(self) -> Path:
        return self.work_dir / "go.mod"

    def _run(self, args: list[str], target: str) -> str:
        command = [self.go_binary, *args]
        logger.info(" ".join(command))
        try:
            result = subprocess.run(
                command,
                cwd=self.work_dir,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise FetcherError(command, None, str(e), target) from e

        logger.debug(f"Execution: {result.stdout}")
        if result.returncode != 0:
            raise FetcherError(command, result.returncode, result.stdout, target)
        return result.stdout

    @contextmanager
    def temporary_manifest(self, target: str = ""):
        """Ensure a go.mod exists for the duration of the block.

        A manifest created here is removed on exit together with the go.sum
        that ``go get`` writes next to it. An existing manifest is left alone.

        Raises:
            FetcherError: If ``go mod init`` fails
        """
        if self.manifest_path.exists():
            yield
            return

        self._run(["mod", "init", TEMPORARY_MODULE], target)
        try:
            yield
        finally:
            for name in ("go.mod", "go.sum"):
                (self.work_dir / name).unlink(missing_ok=True)

    def fetch(self, import_path: str) -> str:
        """Download ``import_path`` into the module cache.

        Returns:
            Combined output of the go command

        Raises:
            FetcherError: If the command exits non-zero or cannot be started
        """
        logger.info(f"Importing {import_path}")
        return self._run(["get", "-v", import_path], import_path)
