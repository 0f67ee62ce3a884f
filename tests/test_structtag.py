import pytest

from gometa.structtag import lookup_tag, unquote


@pytest.mark.parametrize("literal,expected", [
    ('"plain"', "plain"),
    ('"tab\\there"', "tab\there"),
    ('"quote \\" inside"', 'quote " inside'),
    ('"\\x41\\u00e9\\U0001F600"', "Aé\U0001F600"),
    ('"\\101"', "A"),
    ("`raw \\n text`", "raw \\n text"),
    ('""', ""),
])
def test_unquote(literal, expected):
    assert unquote(literal) == expected


@pytest.mark.parametrize("literal", [
    '"unterminated',
    "'c'",
    '"bad \\q escape"',
    '"short \\x4"',
    '"',
    "`nested ` tick`",
])
def test_unquote_rejects_malformed_literals(literal):
    with pytest.raises(ValueError):
        unquote(literal)


def test_lookup_first_matching_key():
    assert lookup_tag('json:"a" json:"b"', "json") == ("a", True)


def test_lookup_skips_extra_spaces():
    assert lookup_tag('  json:"a"   xml:"b"', "xml") == ("b", True)


def test_lookup_empty_tag():
    assert lookup_tag("", "json") == ("", False)


def test_lookup_stops_at_unterminated_value():
    assert lookup_tag('json:"a', "json") == ("", False)


def test_lookup_value_with_escaped_quote():
    assert lookup_tag('doc:"a \\"b\\"" json:"c"', "json") == ("c", True)
