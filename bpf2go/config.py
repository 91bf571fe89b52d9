"""Validated configuration for a bpf2go invocation.

:func:`load_config` checks every input before any compiler runs, so that
mistakes in ``go:generate`` directives are reported without leaving partial
output behind.
"""

from __future__ import annotations

import dataclasses
import os
import typing as typ
from pathlib import Path

from .constraints import parse_build_tags
from .errors import ConfigurationError
from .flags import CTypeNames, assemble_cflags, is_go_identifier

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .constraints import Expr

__all__ = ["DEFAULT_TARGETS", "Bpf2GoConfig", "load_config", "split_targets"]

DEFAULT_TARGETS: typ.Final = "bpfel,bpfeb"


@dataclasses.dataclass(slots=True)
class Bpf2GoConfig:
    """Concrete configuration produced by :func:`load_config`."""

    package: str
    ident: str
    source: Path
    output_dir: Path
    cc: str = "clang"
    cflags: list[str] = dataclasses.field(default_factory=list)
    targets: list[str] = dataclasses.field(default_factory=lambda: ["bpfel", "bpfeb"])
    tags: Expr | None = None
    strip: Path | str | None = None
    disable_stripping: bool = False
    make_base: Path | None = None
    c_types: CTypeNames = dataclasses.field(default_factory=CTypeNames)
    skip_global_types: bool = False
    output_stem: str | None = None

    @property
    def stem(self) -> str:
        """Prefix shared by every generated file name."""
        return self.output_stem or self.ident.lower()


def split_targets(value: str) -> list[str]:
    """Split a comma separated ``--target`` value.

    Raises
    ------
    ConfigurationError
        Raised when no target remains after splitting.
    """
    targets = [token.strip() for token in value.split(",") if token.strip()]
    if not targets:
        raise ConfigurationError.no_targets()
    return targets


def _validate_output_stem(stem: str | None) -> str | None:
    if not stem:
        return None
    separators = {os.sep, "/"} | ({os.altsep} if os.altsep else set())
    if any(separator in stem for separator in separators):
        raise ConfigurationError.invalid_output_stem(stem)
    return stem


def _validate_source(source: Path | str) -> Path:
    path = Path(source)
    if not path.exists():
        raise ConfigurationError.missing_source(path)
    return path.absolute()


def load_config(
    *,
    package: str | None,
    ident: str,
    source: Path | str,
    cc: str = "clang",
    cflags: str | None = None,
    trailing_cflags: cabc.Sequence[str] = (),
    target: str = DEFAULT_TARGETS,
    tags: str | None = None,
    strip: str | None = None,
    disable_stripping: bool = False,
    make_base: Path | str | None = None,
    c_types: cabc.Iterable[str] = (),
    skip_global_types: bool = False,
    output_stem: str | None = None,
    output_dir: Path | str | None = None,
) -> Bpf2GoConfig:
    """Validate raw command line inputs and return a :class:`Bpf2GoConfig`.

    Parameters
    ----------
    package
        Go package of the generated files, normally ``$GOPACKAGE``.
    ident
        Go identifier used as the stem of generated types and functions.
    source
        C file to compile.
    cflags
        Quoted flag string; may hold several flags.
    trailing_cflags
        Flags given after ``--``; they take precedence over ``cflags``.
    target
        Comma separated target tokens.
    tags
        Extra build constraint in ``+build`` syntax.
    make_base
        Directory that depinfo paths are made relative to; enables ``.d``
        output.
    output_dir
        Directory receiving generated files, default the working directory.

    Returns
    -------
    Bpf2GoConfig
        Configuration with absolute paths and parsed flags, tags and types.

    Raises
    ------
    ConfigurationError
        Raised for the first invalid input.
    """
    if not package:
        raise ConfigurationError.missing_package()
    if not cc:
        raise ConfigurationError.missing_compiler()

    merged_cflags = assemble_cflags(cflags, trailing_cflags)

    if not is_go_identifier(ident):
        raise ConfigurationError.invalid_identifier(ident)

    return Bpf2GoConfig(
        package=package,
        ident=ident,
        source=_validate_source(source),
        output_dir=Path(output_dir).absolute() if output_dir else Path.cwd(),
        cc=cc,
        cflags=merged_cflags,
        targets=split_targets(target),
        tags=parse_build_tags(tags),
        strip=strip or None,
        disable_stripping=disable_stripping,
        make_base=Path(make_base).absolute() if make_base else None,
        c_types=CTypeNames(c_types),
        skip_global_types=skip_global_types,
        output_stem=_validate_output_stem(output_stem),
    )
