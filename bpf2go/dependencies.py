"""Read and rewrite make-style dependency information emitted by clang."""

from __future__ import annotations

import dataclasses
import os
import typing as typ

from .errors import DependencyError

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

__all__ = ["DependencyRecord", "adjust_dependencies", "parse_dependencies"]


@dataclasses.dataclass(slots=True)
class DependencyRecord:
    """A make rule: ``file`` depends on each of ``prerequisites``."""

    file: str
    prerequisites: list[str] = dataclasses.field(default_factory=list)


def _absolute(base_dir: Path | str, path: str) -> str:
    if os.path.isabs(path):
        return os.path.normpath(path)
    return os.path.normpath(os.path.join(base_dir, path))


def parse_dependencies(base_dir: Path | str, data: bytes) -> list[DependencyRecord]:
    """Parse ``data`` into rules with paths made absolute against ``base_dir``.

    Backslash-newline sequences continue a rule on the next line. The first
    record describes the compiled source itself.

    Raises
    ------
    DependencyError
        Raised when a rule lacks a colon or no rules are present.
    """
    text = data.decode("utf-8", errors="replace").replace("\\\r\n", " ")
    text = text.replace("\\\n", " ")

    records: list[DependencyRecord] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        target, sep, prereqs = line.partition(":")
        if not sep:
            msg = f"line {line!r}: missing colon"
            raise DependencyError(msg)
        records.append(
            DependencyRecord(
                _absolute(base_dir, target.strip()),
                [_absolute(base_dir, prereq) for prereq in prereqs.split()],
            )
        )

    if not records:
        msg = "empty dependency file"
        raise DependencyError(msg)
    return records


def _relative(base_dir: Path | str, path: str) -> str:
    try:
        return os.path.relpath(path, base_dir)
    except ValueError as exc:
        msg = f"can't make {path} relative to {base_dir}: {exc}"
        raise DependencyError(msg) from exc


def adjust_dependencies(
    base_dir: Path | str, records: cabc.Iterable[DependencyRecord]
) -> bytes:
    """Render ``records`` as a make fragment relative to ``base_dir``."""
    chunks: list[str] = []
    for record in records:
        file = _relative(base_dir, record.file)
        if not record.prerequisites:
            chunks.append(f"{file}:\n\n")
            continue
        prereqs = " \\\n ".join(
            _relative(base_dir, prereq) for prereq in record.prerequisites
        )
        chunks.append(f"{file}: \\\n {prereqs}\n\n")
    return "".join(chunks).encode("utf-8")
