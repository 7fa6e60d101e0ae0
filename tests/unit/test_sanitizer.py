"""
Tests for the legacy Markdown sanitizer.
"""

import pytest

from chatdigest.markup import escape, make_safe_user_name, repair, smart_escape, strip


ARRANGEMENTS = [
    "*_`[\\",
    "\\[`_*",
    "_*\\`[",
    "[[**__``\\\\",
    "`*`_`[`\\`",
]


class TestEscape:
    """Tests for escape()."""

    def test_escapes_reserved_characters(self):
        assert escape("a*b_c`d[e") == "a\\*b\\_c\\`d\\[e"

    def test_escapes_backslash_first(self):
        assert escape("C:\\path_x") == "C:\\\\path\\_x"

    def test_plain_text_unchanged(self):
        assert escape("hello world") == "hello world"

    def test_non_string_passthrough(self):
        assert escape(None) is None
        assert escape(42) == 42


class TestStrip:
    """Tests for strip()."""

    def test_removes_markers(self):
        assert strip("*bold* _italic_ `code`") == "bold italic code"

    def test_keeps_link_text(self):
        assert strip("see [the docs](https://example.com) now") == "see the docs now"

    def test_removes_headings_and_quotes(self):
        assert strip("## Title\n> quoted") == "Title\nquoted"

    def test_keeps_escaped_bracket_literal(self):
        assert strip("\\[note]") == "[note]"

    @pytest.mark.parametrize("arrangement", ARRANGEMENTS)
    def test_strip_of_escaped_text_has_no_markers(self, arrangement):
        text = f"x{arrangement}y {arrangement}"
        result = strip(escape(text))
        for marker in ('*', '_', '`'):
            assert marker not in result


class TestRepair:
    """Tests for repair()."""

    def test_balanced_text_unchanged(self):
        text = "*Title*\nsome _italic_ text"
        assert repair(text) == text

    def test_escapes_last_unpaired_asterisk(self):
        assert repair("*bold* and 2*3") == "*bold* and 2\\*3"

    def test_escapes_unpaired_underscore(self):
        assert repair("snake_case word") == "snake\\_case word"

    def test_collapses_double_markers(self):
        assert repair("**important**") == "*important*"

    def test_collapses_nested_markers(self):
        assert repair("*_nested_*") == "*nested*"

    def test_bullets_are_not_markers(self):
        text = "* first item\n* second item\n*bold*"
        assert repair(text) == text

    def test_markers_inside_code_are_ignored(self):
        text = "`a*b` and *bold*"
        assert repair(text) == text

    def test_escapes_unclosed_code_span(self):
        assert repair("run `make") == "run \\`make"

    def test_escapes_stray_bracket(self):
        assert repair("list[0] and [link](http://x.y)") == "list\\[0] and [link](http://x.y)"

    @pytest.mark.parametrize("text", [
        "*_`[\\",
        "a_b*c`d[e]f\\g",
        "**x** __y__ [z](u)",
        "snake_case * star ` tick [ bracket",
    ])
    def test_repair_on_escaped_text_is_noop(self, text):
        escaped = escape(text)
        assert repair(escaped) == escaped
        assert repair(repair(escaped)) == escaped

    @pytest.mark.parametrize("value", ["", None, 3, "*", "_", "`", "[", "\\", "*_*_`[[[", "\\*"])
    def test_never_raises(self, value):
        repair(value)


class TestSmartEscape:
    """Tests for smart_escape()."""

    def test_keeps_titles_bold(self):
        assert smart_escape("*Main topics*\nuse snake_case") == "*Main topics*\nuse snake\\_case"

    def test_escapes_inside_title(self):
        assert smart_escape("*my_title*") == "*my\\_title*"

    def test_unpaired_asterisk_escaped(self):
        assert smart_escape("5 * 3") == "5 \\* 3"


class TestMakeSafeUserName:
    """Tests for make_safe_user_name()."""

    def test_replaces_reserved_characters(self):
        assert make_safe_user_name("john_doe*[x]`") == "john-doe·(x)'"

    def test_none_gives_empty_string(self):
        assert make_safe_user_name(None) == ""
