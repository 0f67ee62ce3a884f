"""Go build constraint evaluation.

Decides whether a source file takes part in a build for a given GOOS/GOARCH,
from its ``_GOOS``/``_GOARCH`` file name suffixes and its ``//go:build`` (or
legacy ``// +build``) lines.
"""

import platform
import re
import sys
from dataclasses import dataclass, field

KNOWN_OS = frozenset({
    "aix", "android", "darwin", "dragonfly", "freebsd", "hurd", "illumos", "ios", "js",
    "linux", "nacl", "netbsd", "openbsd", "plan9", "solaris", "wasip1", "windows", "zos",
})

KNOWN_ARCH = frozenset({
    "386", "amd64", "amd64p32", "arm", "armbe", "arm64", "arm64be", "loong64", "mips",
    "mipsle", "mips64", "mips64le", "mips64p32", "mips64p32le", "ppc", "ppc64", "ppc64le",
    "riscv", "riscv64", "s390", "s390x", "sparc", "sparc64", "wasm",
})

UNIX_OS = frozenset({
    "aix", "android", "darwin", "dragonfly", "freebsd", "hurd", "illumos", "ios",
    "linux", "netbsd", "openbsd", "solaris",
})

# Release tags go1.1 through this minor version are satisfied.
LATEST_GO_MINOR = 23

_PYTHON_TO_GOARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}


def host_goos() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform.startswith("freebsd"):
        return "freebsd"
    return "linux"


def host_goarch() -> str:
    return _PYTHON_TO_GOARCH.get(platform.machine().lower(), "amd64")


@dataclass
class BuildContext:
    """Target platform and extra tags files are matched against."""
    goos: str = field(default_factory=host_goos)
    goarch: str = field(default_factory=host_goarch)
    tags: frozenset[str] = frozenset()

    def satisfied(self, tag: str) -> bool:
        if tag in (self.goos, self.goarch, "gc") or tag in self.tags:
            return True
        if tag == "unix":
            return self.goos in UNIX_OS
        # android implies linux, illumos implies solaris, ios implies darwin
        if (tag, self.goos) in (("linux", "android"), ("solaris", "illumos"), ("darwin", "ios")):
            return True
        match = re.fullmatch(r"go1\.(\d+)", tag)
        return match is not None and int(match.group(1)) <= LATEST_GO_MINOR

    def match_file_name(self, name: str) -> bool:
        """Apply the ``*_GOOS``, ``*_GOARCH`` and ``*_GOOS_GOARCH`` naming rules."""
        stem = name.removesuffix(".go").removesuffix("_test")
        index = stem.find("_")
        if index < 0:
            return True
        parts = stem[index:].split("_")
        n = len(parts)
        if n >= 2 and parts[n - 2] in KNOWN_OS and parts[n - 1] in KNOWN_ARCH:
            return self.satisfied(parts[n - 2]) and self.satisfied(parts[n - 1])
        if n >= 1 and parts[n - 1] in KNOWN_OS:
            return self.satisfied(parts[n - 1])
        if n >= 1 and parts[n - 1] in KNOWN_ARCH:
            return self.satisfied(parts[n - 1])
        return True

    def match_source(self, source: bytes) -> bool:
        """Evaluate the build constraint lines in a file's header."""
        go_build = None
        plus_build = []
        for line in _header_lines(source):
            if line.startswith("//go:build"):
                if go_build is None:
                    go_build = line[len("//go:build"):].strip()
            elif line.startswith("// +build"):
                plus_build.append(line[len("// +build"):].strip())

        if go_build is not None:
            return _ExpressionParser(go_build, self.satisfied).parse()
        return all(self._match_plus_build(line) for line in plus_build)

    def _match_plus_build(self, line: str) -> bool:
        for option in line.split():
            terms = option.split(",")
            if all(self._match_term(term) for term in terms):
                return True
        return False

    def _match_term(self, term: str) -> bool:
        if term.startswith("!"):
            return not self.satisfied(term[1:])
        return self.satisfied(term)

    def match(self, name: str, source: bytes) -> bool:
        return self.match_file_name(name) and self.match_source(source)


def _header_lines(source: bytes):
    """Lines of the leading comment block, before the package clause."""
    in_block = False
    for raw in source.decode("utf8", errors="replace").splitlines():
        line = raw.strip()
        if in_block:
            if "*/" in line:
                in_block = False
            continue
        if not line:
            continue
        if line.startswith("/*"):
            in_block = "*/" not in line
            continue
        if not line.startswith("//"):
            return
        yield line


_TOKEN = re.compile(r"\s*(\|\||&&|!|\(|\)|[\w.]+)")


class _ExpressionParser:
    """Recursive descent evaluator for ``//go:build`` expressions."""

    def __init__(self, text: str, satisfied):
        self.tokens = _TOKEN.findall(text)
        self.position = 0
        self.satisfied = satisfied

    def parse(self) -> bool:
        if not self.tokens:
            return True
        try:
            result = self._or()
        except IndexError:
            return False
        return result if self.position == len(self.tokens) else False

    def _peek(self) -> str | None:
        return self.tokens[self.position] if self.position < len(self.tokens) else None

    def _next(self) -> str:
        token = self.tokens[self.position]
        self.position += 1
        return token

    def _or(self) -> bool:
        result = self._and()
        while self._peek() == "||":
            self._next()
            right = self._and()
            result = result or right
        return result

    def _and(self) -> bool:
        result = self._not()
        while self._peek() == "&&":
            self._next()
            right = self._not()
            result = result and right
        return result

    def _not(self) -> bool:
        token = self._next()
        if token == "!":
            return not self._not()
        if token == "(":
            result = self._or()
            if self._next() != ")":
                raise IndexError("unbalanced parenthesis")
            return result
        return self.satisfied(token)
