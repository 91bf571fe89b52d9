"""Compiler and strip invocations used by the per-target pipeline."""

from __future__ import annotations

import json
import os
import tempfile
import typing as typ
from pathlib import Path

import typer
from plumbum import local
from plumbum.commands.processes import CommandNotFound

from .cmd_utils import run_cmd
from .errors import CompileError, ConfigurationError, StripError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .cmd_utils import RunResult

__all__ = ["DEFAULT_STRIP", "compile_object", "find_strip", "strip_object"]

DEFAULT_STRIP: typ.Final = "llvm-strip"

# Placed before user flags so that those can override them.
_OVERRIDE_FLAGS: tuple[str, ...] = ("-O2", "-mcpu=v1")

_TARGET_MISSING = (
    'GCC error "The eBPF is using target specific macros, '
    'please provide -target that is not bpf, bpfel or bpfeb"'
)


def _relay_stderr(result: RunResult) -> None:
    if result.stderr:
        typer.echo(result.stderr, err=True, nl=not result.stderr.endswith("\n"))


def compile_object(
    *,
    cc: str,
    cflags: cabc.Sequence[str],
    target: str,
    workdir: Path,
    source: Path,
    dest: Path,
) -> bytes:
    """Compile ``source`` into ``dest`` for the clang ``target``.

    Parameters
    ----------
    cc
        Compiler binary, usually some version of clang.
    cflags
        User supplied flags, placed after the built-in defaults.
    target
        Value passed to ``-target`` (``bpf``, ``bpfel`` or ``bpfeb``).
    workdir
        Directory the compiler runs in; debug info paths are made relative
        to it.
    source
        Absolute path of the C file.
    dest
        Object file to write.

    Returns
    -------
    bytes
        Make-style dependency information emitted by the compiler.

    Raises
    ------
    CompileError
        Raised when the compiler is missing or exits unsuccessfully.
    """
    source_dir = source.parent
    relative_source_dir = os.path.relpath(source_dir, workdir)

    with tempfile.TemporaryDirectory(prefix="bpf2go") as scratch:
        dep_file = Path(scratch) / "depinfo.d"
        args = [
            *_OVERRIDE_FLAGS,
            *cflags,
            "-target",
            target,
            "-c",
            str(source),
            "-o",
            str(dest),
            # Keep the clang version out of the object.
            "-fno-ident",
            f"-fdebug-prefix-map={source_dir}={relative_source_dir}",
            "-fdebug-compilation-dir",
            ".",
            # BTF is derived from debug info.
            "-g",
            f"-D__BPF_TARGET_MISSING={json.dumps(_TARGET_MISSING)}",
            "-MD",
            # Phony targets for headers.
            "-MP",
            f"-MF{dep_file}",
        ]
        try:
            command = local[cc][args]
        except CommandNotFound as exc:
            msg = f"{cc}: compiler not found"
            raise CompileError(msg) from exc

        try:
            result = run_cmd(command, cwd=workdir)
        except OSError as exc:
            msg = f"{cc}: {exc}"
            raise CompileError(msg) from exc
        _relay_stderr(result)
        if result.returncode != 0:
            msg = f"{cc}: exit status {result.returncode}"
            raise CompileError(msg)

        try:
            return dep_file.read_bytes()
        except OSError as exc:
            msg = f"error reading dependency file: {exc}"
            raise CompileError(msg) from exc


def strip_object(binary: Path | str, obj: Path) -> None:
    """Remove DWARF from ``obj`` in place, keeping BTF intact.

    Raises
    ------
    StripError
        Raised when the strip binary exits unsuccessfully.
    """
    try:
        command = local[str(binary)]["-g", str(obj)]
    except CommandNotFound as exc:
        msg = f"{binary}: strip binary not found"
        raise StripError(msg) from exc

    try:
        result = run_cmd(command)
    except OSError as exc:
        msg = f"{binary}: {exc}"
        raise StripError(msg) from exc
    _relay_stderr(result)
    if result.returncode != 0:
        msg = f"{binary}: exit status {result.returncode}"
        raise StripError(msg)


def find_strip(cc: str, strip: str | None = None) -> Path:
    """Locate the strip binary, deriving a version suffix from ``cc``.

    ``clang-17`` pairs with ``llvm-strip-17`` unless ``strip`` names a binary
    explicitly.

    Raises
    ------
    ConfigurationError
        Raised when the binary cannot be found on ``PATH``.
    """
    name = strip or DEFAULT_STRIP
    if not strip and cc.startswith("clang"):
        name += cc.removeprefix("clang")
    try:
        return Path(str(local.which(name)))
    except CommandNotFound as exc:
        msg = f"strip binary {name!r} not found in PATH"
        raise ConfigurationError(msg) from exc
