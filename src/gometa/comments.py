"""Doc comment discovery and flattening."""

_DELIMITERS = ("//", "/*", "*/")

# Statement terminators show up as anonymous siblings between declarations.
_TERMINATORS = frozenset({"\n", ";", "\0"})


def _previous(node):
    sibling = node.prev_sibling
    while sibling is not None and not sibling.is_named and sibling.type in _TERMINATORS:
        sibling = sibling.prev_sibling
    return sibling


def leading_comments(node) -> list:
    """Return the comment group that documents ``node``.

    A group is a run of comments on consecutive lines, the last of which ends
    on the line right above the node. A comment trailing code on its own line
    belongs to that code and is never part of the group.
    """
    comments = []
    expected_row = node.start_point[0] - 1
    sibling = _previous(node)
    while sibling is not None and sibling.type == "comment" and sibling.end_point[0] == expected_row:
        comments.insert(0, sibling)
        expected_row = sibling.start_point[0] - 1
        sibling = _previous(sibling)

    if comments and sibling is not None and sibling.end_point[0] == comments[0].start_point[0]:
        comments.pop(0)
    return comments


def extract_comment(texts: list[str]) -> str:
    """Flatten raw comment texts into a single line of documentation.

    Delimiters are stripped and the text trimmed after every comment is
    appended; line breaks are not reinserted.
    """
    text = ""
    for comment in texts:
        text += comment
        for delimiter in _DELIMITERS:
            text = text.replace(delimiter, "")
        text = text.strip()
    return text
