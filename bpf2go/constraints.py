"""Build constraint expressions for generated Go files.

Expressions are a tiny tree of :class:`Tag`, :class:`Not`, :class:`And` and
:class:`Or` nodes. :func:`synthesize` combines the GOARCH aliases of a target
with the user's ``--tags`` and :meth:`Expr.render` prints the result in
``//go:build`` syntax.

Examples
--------
>>> synthesize(["amd64", "arm64"], parse_build_tags("linux")).render()
'(amd64 || arm64) && linux'
"""

from __future__ import annotations

import dataclasses
import re
import typing as typ

from .errors import ConfigurationError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "And",
    "Expr",
    "Not",
    "Or",
    "Tag",
    "and_constraints",
    "go_build_line",
    "or_constraints",
    "parse_build_tags",
    "synthesize",
]

_VALID_TAG = re.compile(r"^[A-Za-z0-9_.]+$")


@dataclasses.dataclass(frozen=True, slots=True)
class Tag:
    """A single build tag."""

    name: str

    def render(self) -> str:
        return self.name


@dataclasses.dataclass(frozen=True, slots=True)
class Not:
    """Negation of an expression."""

    operand: Expr

    def render(self) -> str:
        text = self.operand.render()
        if isinstance(self.operand, And | Or):
            text = f"({text})"
        return f"!{text}"


@dataclasses.dataclass(frozen=True, slots=True)
class And:
    """Conjunction of two expressions."""

    left: Expr
    right: Expr

    def render(self) -> str:
        return f"{_and_operand(self.left)} && {_and_operand(self.right)}"


@dataclasses.dataclass(frozen=True, slots=True)
class Or:
    """Disjunction of two expressions."""

    left: Expr
    right: Expr

    def render(self) -> str:
        return f"{_or_operand(self.left)} || {_or_operand(self.right)}"


Expr = Tag | Not | And | Or


def _and_operand(expr: Expr) -> str:
    text = expr.render()
    return f"({text})" if isinstance(expr, Or) else text


def _or_operand(expr: Expr) -> str:
    text = expr.render()
    return f"({text})" if isinstance(expr, And) else text


def or_constraints(left: Expr | None, right: Expr | None) -> Expr | None:
    """Return ``left || right``, treating ``None`` as absent."""
    if left is None:
        return right
    if right is None:
        return left
    return Or(left, right)


def and_constraints(left: Expr | None, right: Expr | None) -> Expr | None:
    """Return ``left && right``, treating ``None`` as absent."""
    if left is None:
        return right
    if right is None:
        return left
    return And(left, right)


def synthesize(aliases: cabc.Iterable[str], user_tags: Expr | None) -> Expr | None:
    """Return ``(alias1 || alias2 || ...) && user_tags``.

    The OR subtree is omitted for an empty alias list, in which case the user
    expression is returned unchanged (``None`` when that is absent too).
    """
    arch_constraint: Expr | None = None
    for alias in aliases:
        arch_constraint = or_constraints(arch_constraint, Tag(alias))
    return and_constraints(arch_constraint, user_tags)


def _parse_term(term: str, value: str) -> Expr:
    negated = term.startswith("!")
    name = term.removeprefix("!")
    if not _VALID_TAG.match(name):
        msg = f"invalid build tag {term!r} in {value!r}"
        raise ConfigurationError(msg)
    tag = Tag(name)
    return Not(tag) if negated else tag


def parse_build_tags(value: str | None) -> Expr | None:
    """Parse ``value`` written in the legacy ``+build`` syntax.

    Whitespace separates alternatives, commas join required tags and a
    leading ``!`` negates a tag. Blank input yields ``None``.

    Raises
    ------
    ConfigurationError
        Raised when a term is empty or contains characters outside
        ``[A-Za-z0-9_.]``.
    """
    if value is None:
        return None

    result: Expr | None = None
    for option in value.split():
        clause: Expr | None = None
        for term in option.split(","):
            clause = and_constraints(clause, _parse_term(term, value))
        result = or_constraints(result, clause)
    return result


def go_build_line(expr: Expr | None) -> str:
    """Return the ``//go:build`` line for ``expr`` or ``""`` when absent."""
    if expr is None:
        return ""
    return f"//go:build {expr.render()}"
