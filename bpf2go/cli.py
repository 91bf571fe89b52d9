"""Command-line entry point for bpf2go.

Examples
--------
Typically invoked from a ``go:generate`` directive::

    //go:generate bpf2go --type event counter counter.c -- -I../headers

which compiles ``counter.c`` for both endiannesses and writes
``counter_bpfel.go`` and ``counter_bpfeb.go`` next to the directive.
"""

from __future__ import annotations

import logging
import sys
import typing as typ
from pathlib import Path

import cyclopts
import typer
from cyclopts import App, Parameter

from .config import DEFAULT_TARGETS, load_config
from .errors import Bpf2GoError, UnsupportedTargetError
from .flags import split_cflags_from_args
from .pipeline import Bpf2Go, default_collaborators
from .targets import format_supported_targets, resolve_targets
from .toolchain import find_strip

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = ["app", "main", "run"]

app: App = App(
    name="bpf2go",
    help_format="plaintext",
    config=cyclopts.config.Env("BPF2GO_", command=False),
)


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.default
def main(
    ident: str,
    source: Path,
    /,
    *,
    go_package: typ.Annotated[str | None, Parameter(env_var="GOPACKAGE")] = None,
    cc: str = "clang",
    strip: str | None = None,
    no_strip: typ.Annotated[bool, Parameter(negative=())] = False,
    cflags: str | None = None,
    tags: str | None = None,
    target: str = DEFAULT_TARGETS,
    makebase: Path | None = None,
    type_: typ.Annotated[list[str] | None, Parameter(name="--type")] = None,
    no_global_types: typ.Annotated[bool, Parameter(negative=())] = False,
    output_stem: str | None = None,
    output_dir: Path | None = None,
    verbose: bool = False,
    trailing_cflags: typ.Annotated[list[str] | None, Parameter(parse=False)] = None,
) -> None:
    """Compile a C source file into eBPF and generate Go bindings for it.

    IDENT is used as the stem of all generated Go types and functions and
    must be a valid Go identifier. SOURCE is a single C file compiled with
    the chosen compiler (usually some version of clang). Flags after a
    literal ``--`` are passed to the compiler and take precedence over
    ``--cflags``, whose value may contain quoted arguments: ``--cflags
    'foo "bar baz"'`` passes ``foo`` and ``bar baz``.

    Parameters
    ----------
    ident
        Go identifier for generated names.
    source
        C source file.
    go_package
        Package of the generated files; set by ``go generate``.
    cc
        Binary used to compile C to BPF.
    strip
        Binary used to strip DWARF (default ``llvm-strip``).
    no_strip
        Disable stripping of DWARF.
    cflags
        Flags passed to the compiler, may contain quoted arguments.
    tags
        Go build tags to include in generated files (``+build`` syntax).
    target
        Comma separated clang targets: ``bpf``, ``bpfel``, ``bpfeb``,
        ``native`` or a GOARCH.
    makebase
        Write make compatible depinfo files relative to this directory.
    type_
        Name of a C type to generate a Go declaration for; may be repeated.
    no_global_types
        Skip generating types for map keys and values and global variables.
    output_stem
        Alternative stem for names of generated files (defaults to ident).
    output_dir
        Directory receiving generated files (defaults to the working
        directory).
    verbose
        Log executed commands and pipeline steps to stderr.
    trailing_cflags
        Flags found after ``--``.
    """
    _configure_logging(verbose=verbose)
    config = load_config(
        package=go_package,
        ident=ident,
        source=source,
        cc=cc,
        cflags=cflags,
        trailing_cflags=trailing_cflags or (),
        target=target,
        tags=tags,
        strip=strip,
        disable_stripping=no_strip,
        make_base=makebase,
        c_types=type_ or (),
        skip_global_types=no_global_types,
        output_stem=output_stem,
        output_dir=output_dir,
    )

    targets = resolve_targets(config.targets)

    if not config.disable_stripping:
        config.strip = find_strip(config.cc, typ.cast("str | None", config.strip))

    Bpf2Go(config, collaborators=default_collaborators()).run(targets)


def _fail(message: str, *, code: int = 1) -> typ.NoReturn:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise SystemExit(code)


def run(argv: cabc.Sequence[str] | None = None) -> None:
    """Execute the CLI, mapping bpf2go errors to a single error line."""
    tokens = list(sys.argv[1:] if argv is None else argv)
    args, trailing_cflags = split_cflags_from_args(tokens)
    try:
        command, bound, ignored = app.parse_args(args)
        extra = {"trailing_cflags": trailing_cflags} if "trailing_cflags" in ignored else {}
        command(*bound.args, **bound.kwargs, **extra)
    except UnsupportedTargetError as exc:
        typer.echo(format_supported_targets())
        _fail(str(exc))
    except Bpf2GoError as exc:
        _fail(str(exc))
