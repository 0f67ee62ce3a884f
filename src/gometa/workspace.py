"""Discovery of the Go module enclosing a working directory."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class GoModule:
    """The parts of a go.mod file needed to map import paths to directories."""
    path: str
    root: Path
    replacements: dict[str, Path] = field(default_factory=dict)

    def directory_for(self, import_path: str) -> Path | None:
        """Directory holding ``import_path`` inside this workspace, if any."""
        relative = _relative_to(import_path, self.path)
        if relative is not None:
            return self.root / relative

        vendored = self.root / "vendor" / import_path
        if vendored.is_dir():
            return vendored

        for old, local in self.replacements.items():
            relative = _relative_to(import_path, old)
            if relative is not None:
                return local / relative
        return None


def _relative_to(import_path: str, prefix: str) -> str | None:
    if import_path == prefix:
        return ""
    if import_path.startswith(prefix + "/"):
        return import_path[len(prefix) + 1:]
    return None


def find_module_root(start: Path) -> Path | None:
    """Walk up from ``start`` to the nearest directory holding a go.mod."""
    current = start.resolve()
    for directory in (current, *current.parents):
        if (directory / "go.mod").is_file():
            return directory
    return None


def parse_go_mod(text: str, root: Path) -> GoModule:
    """Parse the module path and local replace directives of a go.mod file.

    Raises:
        ValueError: If the file has no module directive
    """
    module_path = None
    replacements: dict[str, Path] = {}
    block = None

    for raw in text.splitlines():
        line = raw.split("//", 1)[0].strip()
        if not line:
            continue

        if block is not None:
            if line == ")":
                block = None
            elif block == "replace":
                _add_replacement(line, root, replacements)
            continue

        verb, _, rest = line.partition(" ")
        rest = rest.strip()
        if rest == "(":
            block = verb
        elif verb == "module":
            module_path = rest.strip('"')
        elif verb == "replace":
            _add_replacement(rest, root, replacements)

    if module_path is None:
        raise ValueError(f"no module directive in {root / 'go.mod'}")
    return GoModule(path=module_path, root=root, replacements=replacements)


def _add_replacement(spec: str, root: Path, replacements: dict[str, Path]) -> None:
    old, arrow, new = spec.partition("=>")
    if not arrow:
        return
    old_path = old.split()[0] if old.split() else ""
    new_parts = new.split()
    # Only directory replacements map to source on disk; module replacements
    # are resolved through the module cache like any other requirement.
    if old_path and new_parts and new_parts[0].startswith(("./", "../", "/")):
        replacements[old_path] = (root / new_parts[0]).resolve()


def load_workspace(work_dir: Path) -> GoModule | None:
    """Load the module enclosing ``work_dir``, or None outside any module."""
    root = find_module_root(work_dir)
    if root is None:
        return None
    try:
        return parse_go_mod((root / "go.mod").read_text(), root)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable go.mod in {root}: {e}")
        return None
