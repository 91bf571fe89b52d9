r"""Utilities for running plumbum command invocations.

:func:`run_cmd` executes a plumbum command, optionally from another working
directory, and returns a :class:`RunResult` regardless of the exit status.
Each invocation is logged before execution.

Examples
--------
    >>> from plumbum import local
    >>> run_cmd(local["echo"]["hello"]).stdout
    'hello\n'
    >>> run_cmd(local["false"]).returncode
    1
"""

from __future__ import annotations

import collections.abc as cabc
import contextlib
import logging
import shlex
import typing as typ

from plumbum import local

if typ.TYPE_CHECKING:
    from pathlib import Path

__all__ = ["RunResult", "coerce_run_result", "format_command", "run_cmd"]

logger = logging.getLogger(__name__)


class RunResult(typ.NamedTuple):
    """Structured representation of plumbum ``run`` results."""

    returncode: int
    stdout: str
    stderr: str


@typ.runtime_checkable
class SupportsFormulate(typ.Protocol):
    """Objects that expose a shell representation via ``formulate``."""

    def formulate(self) -> cabc.Sequence[str]:  # pragma: no cover - protocol
        ...


def _ensure_text(value: str | bytes | None) -> str:
    """Return ``value`` as a decoded ``str`` replacing undecodable bytes."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return value.decode("utf-8", errors="replace")


def coerce_run_result(result: RunResult | cabc.Sequence[object]) -> RunResult:
    """Normalise *result* into a :class:`RunResult`."""
    if isinstance(result, RunResult):
        return result
    try:
        returncode_obj, stdout_obj, stderr_obj = result  # type: ignore[misc]
    except ValueError as exc:
        msg = "plumbum run() results must unpack into (returncode, stdout, stderr)"
        raise TypeError(msg) from exc
    return RunResult(
        int(typ.cast("int", returncode_obj)),
        _ensure_text(typ.cast("str | bytes | None", stdout_obj)),
        _ensure_text(typ.cast("str | bytes | None", stderr_obj)),
    )


def format_command(cmd: SupportsFormulate) -> str:
    """Return a shell-quoted rendering of ``cmd`` for logs and errors."""
    return shlex.join(str(part) for part in cmd.formulate())


def run_cmd(
    cmd: object,
    *,
    cwd: Path | str | None = None,
    **run_kwargs: object,
) -> RunResult:
    """Execute ``cmd`` after logging it and return its :class:`RunResult`.

    A non-zero exit status is reported through ``returncode`` rather than
    raised, unless ``retcode`` is passed through ``run_kwargs``.
    """
    if not isinstance(cmd, SupportsFormulate):
        msg = "run_cmd requires a plumbum command invocation"
        raise TypeError(msg)

    logger.info("$ %s", format_command(cmd))

    workdir = local.cwd(cwd) if cwd is not None else contextlib.nullcontext()
    run_options = {"retcode": None, **run_kwargs}
    with workdir:
        raw_result = typ.cast("typ.Any", cmd).run(**run_options)
    return coerce_run_result(typ.cast("cabc.Sequence[object]", raw_result))
