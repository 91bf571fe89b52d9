"""Assemble compiler flags and validate names supplied on the command line."""

from __future__ import annotations

import bisect
import re
import typing as typ

from .errors import ConfigurationError, FlagParseError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "CFLAGS_SEPARATOR",
    "CTypeNames",
    "assemble_cflags",
    "is_go_identifier",
    "split_arguments",
    "split_cflags_from_args",
]

CFLAGS_SEPARATOR: typ.Final = "--"
DEPENDENCY_FLAG_PREFIX: typ.Final = "-M"

VALID_CTYPE_CHARS: typ.Final = "[a-z0-9_]"
_VALID_CTYPE = re.compile(rf"^{VALID_CTYPE_CHARS}+$", re.IGNORECASE)

_GO_KEYWORDS = frozenset(
    {
        "break",
        "case",
        "chan",
        "const",
        "continue",
        "default",
        "defer",
        "else",
        "fallthrough",
        "for",
        "func",
        "go",
        "goto",
        "if",
        "import",
        "interface",
        "map",
        "package",
        "range",
        "return",
        "select",
        "struct",
        "switch",
        "type",
        "var",
    }
)


def is_go_identifier(name: str) -> bool:
    """Return ``True`` when ``name`` is a valid, non-keyword Go identifier."""
    return name.isidentifier() and name not in _GO_KEYWORDS


def split_cflags_from_args(
    argv: cabc.Sequence[str],
) -> tuple[list[str], list[str]]:
    """Split ``argv`` at the first ``--`` into arguments and C flags."""
    try:
        index = list(argv).index(CFLAGS_SEPARATOR)
    except ValueError:
        return list(argv), []
    return list(argv[:index]), list(argv[index + 1 :])


def split_arguments(text: str) -> list[str]:
    """Split ``text`` into arguments honouring quotes and backslash escapes.

    Examples
    --------
    >>> split_arguments('foo "bar baz"')
    ['foo', 'bar baz']
    >>> split_arguments("-I'a b' ''")
    ['-Ia b', '']

    Raises
    ------
    FlagParseError
        Raised for an unterminated quote or a trailing backslash.
    """
    result: list[str] = []
    current: list[str] = []
    quote: str | None = None
    escaped = False
    pending = False

    for char in text.strip():
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif quote is not None:
            if char == quote:
                quote = None
            else:
                current.append(char)
        elif char in "\"'":
            quote = char
            pending = True
        elif char.isspace():
            if current or pending:
                result.append("".join(current))
            current.clear()
            pending = False
        else:
            current.append(char)

    if quote is not None:
        msg = f"missing `{quote}`"
        raise FlagParseError(msg)
    if escaped:
        msg = "unfinished escape"
        raise FlagParseError(msg)
    if current or pending:
        result.append("".join(current))
    return result


def assemble_cflags(
    quoted: str | None, trailing: cabc.Sequence[str] = ()
) -> list[str]:
    """Merge ``--cflags`` text with the flags given after ``--``.

    Flags from ``trailing`` come last so that they take precedence when the
    compiler applies later flags over earlier ones.

    Raises
    ------
    FlagParseError
        Raised when ``quoted`` cannot be split.
    ConfigurationError
        Raised for flags starting with ``-M``; depinfo is requested through
        ``--makebase`` instead.
    """
    flags = [*(split_arguments(quoted) if quoted else []), *trailing]
    for flag in flags:
        if flag.startswith(DEPENDENCY_FLAG_PREFIX):
            raise ConfigurationError.dependency_flag(flag)
    return flags


class CTypeNames:
    """Sorted, duplicate-free collection of C type names.

    Only a restricted character set is accepted so that the ``--type`` syntax
    can be extended later.
    """

    __slots__ = ("_names",)

    def __init__(self, names: cabc.Iterable[str] = ()) -> None:
        self._names: list[str] = []
        for name in names:
            self.add(name)

    def add(self, name: str) -> None:
        """Insert ``name`` at its sorted position.

        Raises
        ------
        ConfigurationError
            Raised when ``name`` has invalid characters or is already present.
        """
        if not _VALID_CTYPE.match(name):
            msg = f"{name!r} contains characters outside of {VALID_CTYPE_CHARS}"
            raise ConfigurationError(msg)
        index = bisect.bisect_left(self._names, name)
        if index < len(self._names) and self._names[index] == name:
            msg = f"duplicate type {name!r}"
            raise ConfigurationError(msg)
        self._names.insert(index, name)

    def __iter__(self) -> cabc.Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CTypeNames):
            return self._names == other._names
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"CTypeNames({self._names!r})"
