"""Tests for :mod:`bpf2go.flags`."""

from __future__ import annotations

import pytest

from bpf2go.errors import ConfigurationError, FlagParseError
from bpf2go.flags import (
    CTypeNames,
    assemble_cflags,
    is_go_identifier,
    split_arguments,
    split_cflags_from_args,
)


class TestSplitArguments:
    """Quoted flag splitting."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("", []),
            ("   ", []),
            ("-O2 -Wall", ["-O2", "-Wall"]),
            ('foo "bar baz"', ["foo", "bar baz"]),
            ("'single quoted'  tail", ["single quoted", "tail"]),
            (r"escaped\ space", ["escaped space"]),
            (r'"a \" quote"', ['a " quote']),
            ('""', [""]),
            ("-I'a b'c", ["-Ia bc"]),
            ("-O2\t-Wall\n-g", ["-O2", "-Wall", "-g"]),
        ],
    )
    def test_splits(self, text: str, expected: list[str]) -> None:
        """Whitespace separates arguments outside of quotes."""
        assert split_arguments(text) == expected

    def test_unterminated_quote(self) -> None:
        """A missing closing quote names the quote character."""
        with pytest.raises(FlagParseError, match='missing `"`'):
            split_arguments('foo "bar')

    def test_trailing_backslash(self) -> None:
        """A backslash at the very end is an unfinished escape."""
        with pytest.raises(FlagParseError, match="unfinished escape"):
            split_arguments("foo\\")


def test_split_cflags_from_args_splits_on_first_separator() -> None:
    """Everything after the first ``--`` is a C flag."""
    args, cflags = split_cflags_from_args(["bar", "bar.c", "--", "-I.", "--", "-x"])

    assert args == ["bar", "bar.c"]
    assert cflags == ["-I.", "--", "-x"]


def test_split_cflags_from_args_without_separator() -> None:
    """Without ``--`` there are no C flags."""
    assert split_cflags_from_args(["bar", "bar.c"]) == (["bar", "bar.c"], [])


class TestAssembleCflags:
    """Merging ``--cflags`` with trailing flags."""

    def test_trailing_flags_come_last(self) -> None:
        """Flags after ``--`` follow the quoted ones."""
        flags = assemble_cflags("-O1 '-DNAME=a b'", ["-O3"])

        assert flags == ["-O1", "-DNAME=a b", "-O3"]

    def test_no_flags(self) -> None:
        """Nothing in, nothing out."""
        assert assemble_cflags(None) == []

    @pytest.mark.parametrize(
        ("quoted", "trailing"), [("-MD", []), (None, ["-I.", "-MF", "x.d"])]
    )
    def test_dependency_flags_are_rejected(
        self, quoted: str | None, trailing: list[str]
    ) -> None:
        """``-M`` flags would clash with the depinfo the tool requests."""
        with pytest.raises(ConfigurationError, match="use --makebase instead"):
            assemble_cflags(quoted, trailing)

    def test_parse_errors_propagate(self) -> None:
        """Unterminated quotes surface as flag parse errors."""
        with pytest.raises(FlagParseError):
            assemble_cflags("'-I.")


@pytest.mark.parametrize(
    ("name", "valid"),
    [
        ("bar", True),
        ("Bar", True),
        ("_private", True),
        ("counter2", True),
        ("2counter", False),
        ("foo-bar", False),
        ("func", False),
        ("", False),
    ],
)
def test_is_go_identifier(name: str, valid: bool) -> None:  # noqa: FBT001
    """Identifiers follow Go's rules and exclude keywords."""
    assert is_go_identifier(name) is valid


class TestCTypeNames:
    """The sorted ``--type`` collection."""

    def test_names_are_kept_sorted(self) -> None:
        """Insertion order does not matter."""
        names = CTypeNames(["event", "config", "stats"])

        assert list(names) == ["config", "event", "stats"]
        assert len(names) == 3
        assert "event" in names

    def test_duplicates_are_rejected(self) -> None:
        """Adding a name twice fails."""
        names = CTypeNames(["event"])

        with pytest.raises(ConfigurationError, match="duplicate type 'event'"):
            names.add("event")

    @pytest.mark.parametrize("name", ["struct event", "ev-ent", ""])
    def test_invalid_characters_are_rejected(self, name: str) -> None:
        """Only letters, digits and underscores are accepted."""
        with pytest.raises(ConfigurationError, match="characters outside of"):
            CTypeNames([name])

    def test_equality(self) -> None:
        """Collections compare by content."""
        assert CTypeNames(["b", "a"]) == CTypeNames(["a", "b"])
        assert CTypeNames(["a"]) != CTypeNames(["b"])
