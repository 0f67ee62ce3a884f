"""Go string literal unquoting and struct tag lookup.

Implements the conventional ``key:"value"`` struct tag grammar: optionally
space separated pairs, each key a run of non-control, non-space characters
other than quote and colon, each value a double-quoted Go string.
"""

_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
}

_HEX_ESCAPE_WIDTHS = {"x": 2, "u": 4, "U": 8}


def unquote(literal: str) -> str:
    """Unquote a Go string literal (interpreted or raw).

    Args:
        literal: Literal text including its delimiters

    Returns:
        The string value

    Raises:
        ValueError: If the literal is malformed
    """
    if len(literal) < 2:
        raise ValueError(f"invalid string literal: {literal!r}")

    quote = literal[0]
    if quote != literal[-1]:
        raise ValueError(f"invalid string literal: {literal!r}")

    body = literal[1:-1]
    if quote == "`":
        if "`" in body:
            raise ValueError(f"invalid raw string literal: {literal!r}")
        return body.replace("\r", "")

    if quote != '"':
        raise ValueError(f"invalid string literal: {literal!r}")

    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == '"' or ch == "\n":
            raise ValueError(f"invalid string literal: {literal!r}")
        if ch != "\\":
            out.append(ch)
            i += 1
            continue

        if i + 1 >= len(body):
            raise ValueError(f"invalid escape in {literal!r}")
        esc = body[i + 1]
        if esc in _SIMPLE_ESCAPES and esc != "'":
            out.append(_SIMPLE_ESCAPES[esc])
            i += 2
        elif esc in _HEX_ESCAPE_WIDTHS:
            width = _HEX_ESCAPE_WIDTHS[esc]
            digits = body[i + 2:i + 2 + width]
            if len(digits) != width:
                raise ValueError(f"invalid escape in {literal!r}")
            out.append(chr(int(digits, 16)))
            i += 2 + width
        elif esc in "01234567":
            digits = body[i + 1:i + 4]
            if len(digits) != 3 or any(d not in "01234567" for d in digits):
                raise ValueError(f"invalid escape in {literal!r}")
            out.append(chr(int(digits, 8)))
            i += 4
        else:
            raise ValueError(f"invalid escape in {literal!r}")

    return "".join(out)


def lookup_tag(tag: str, key: str) -> tuple[str, bool]:
    """Look up ``key`` in a struct tag string without its backticks.

    Returns:
        Tuple of (value, found). Scanning stops at the first malformed pair.
    """
    while tag:
        tag = tag.lstrip(" ")
        if not tag:
            break

        i = 0
        while i < len(tag) and tag[i] > " " and tag[i] not in ':"' and tag[i] != "\x7f":
            i += 1
        if i == 0 or i + 1 >= len(tag) or tag[i] != ":" or tag[i + 1] != '"':
            break
        name = tag[:i]
        tag = tag[i + 1:]

        # Scan the quoted value, honouring backslash escapes.
        i = 1
        while i < len(tag) and tag[i] != '"':
            if tag[i] == "\\":
                i += 1
            i += 1
        if i >= len(tag):
            break
        quoted = tag[:i + 1]
        tag = tag[i + 1:]

        if name == key:
            try:
                return unquote(quoted), True
            except ValueError:
                break

    return "", False
