"""Module cache path escaping.

The Go module cache stores upper-case letters as ``!`` followed by the
lower-case letter so paths stay unique on case-insensitive file systems.
"""

ESCAPE_MARKER = "!"


def escape_module_path(path: str) -> str:
    """Escape a module path for use as a module cache directory name."""
    return "".join(ESCAPE_MARKER + ch.lower() if ch.isupper() else ch for ch in path)


def unescape_module_path(path: str) -> str:
    """Reverse module cache escaping: ``!c!orlov`` becomes ``COrlov``.

    The string is scanned once; each marker is consumed and upper-cases the
    character that follows it.
    """
    if ESCAPE_MARKER not in path:
        return path

    chars = []
    upper_next = False
    for ch in path:
        if ch == ESCAPE_MARKER:
            upper_next = True
        elif upper_next:
            chars.append(ch.upper())
            upper_next = False
        else:
            chars.append(ch)
    return "".join(chars)
