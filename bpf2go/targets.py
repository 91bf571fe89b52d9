"""Resolve target tokens to canonical eBPF compilation targets.

A target is an instruction-set family (``bpfel`` or ``bpfeb``) paired with
the ``__TARGET_ARCH_*`` define used by libbpf headers. Several GOARCH values
share one target, so a single compiled object serves all of them and the
generated file is gated by a build constraint listing every sibling.

Examples
--------
>>> resolve_targets(["arm64"])
{Target(family='bpfel', define='arm64'): ['arm64']}
>>> sorted(resolve_targets(["bpfeb"])[Target("bpfeb")])[:3]
['arm64be', 'armbe', 'mips']
"""

from __future__ import annotations

import platform
import struct
import typing as typ

from .errors import UnsupportedTargetError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "FAMILY_TOKENS",
    "NATIVE_TOKEN",
    "TARGET_BY_GOARCH",
    "Target",
    "format_supported_targets",
    "native_goarch",
    "resolve_targets",
]


class Target(typ.NamedTuple):
    """Canonical compilation target; an empty ``define`` is family-only."""

    family: str
    define: str = ""

    @property
    def is_concrete(self) -> bool:
        """Return ``True`` when the target can be compiled for directly."""
        return bool(self.define)


# Entries without a define can't be requested directly and only take part in
# the generic family targets.
TARGET_BY_GOARCH: typ.Final[cabc.Mapping[str, Target]] = {
    "386": Target("bpfel", "x86"),
    "amd64": Target("bpfel", "x86"),
    "amd64p32": Target("bpfel"),
    "arm": Target("bpfel", "arm"),
    "arm64": Target("bpfel", "arm64"),
    "loong64": Target("bpfel"),
    "mipsle": Target("bpfel"),
    "mips64le": Target("bpfel"),
    "mips64p32le": Target("bpfel"),
    "ppc64le": Target("bpfel", "powerpc"),
    "riscv64": Target("bpfel"),
    "armbe": Target("bpfeb", "arm"),
    "arm64be": Target("bpfeb", "arm64"),
    "mips": Target("bpfeb"),
    "mips64": Target("bpfeb"),
    "mips64p32": Target("bpfeb"),
    "ppc64": Target("bpfeb", "powerpc"),
    "s390": Target("bpfeb", "s390"),
    "s390x": Target("bpfeb", "s390"),
    "sparc": Target("bpfeb", "sparc"),
    "sparc64": Target("bpfeb", "sparc"),
}

FAMILY_TOKENS: typ.Final = ("bpf", "bpfel", "bpfeb")
NATIVE_TOKEN: typ.Final = "native"

_MACHINE_TO_GOARCH: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "aarch64_be": "arm64be",
    "armv6l": "arm",
    "armv7l": "arm",
    "armv8l": "arm",
    "arm": "arm",
    "ppc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "s390": "s390",
    "riscv64": "riscv64",
    "loongarch64": "loong64",
    "mips": "mips",
    "mipsel": "mipsle",
    "mips64": "mips64",
    "mips64el": "mips64le",
    "sparc64": "sparc64",
}

# 32-bit userland on a 64-bit kernel.
_NARROW_GOARCH: dict[str, str] = {"amd64": "386", "arm64": "arm"}


def native_goarch(
    machine: str | None = None, *, pointer_size: int | None = None
) -> str:
    """Return the GOARCH of this process, or of ``machine`` when given.

    ``platform.machine()`` names the host hardware, so a 32-bit interpreter
    on an x86_64 or aarch64 kernel is mapped to ``386`` or ``arm`` using the
    interpreter's pointer size (``pointer_size`` overrides it).
    """
    raw = (machine if machine is not None else platform.machine()).strip().lower()
    goarch = _MACHINE_TO_GOARCH.get(raw, raw)
    if (pointer_size or struct.calcsize("P")) == 4:
        return _NARROW_GOARCH.get(goarch, goarch)
    return goarch


def _aliases_where(
    table: cabc.Mapping[str, Target],
    predicate: cabc.Callable[[Target], bool],
) -> list[str]:
    return sorted(alias for alias, target in table.items() if predicate(target))


def _resolve_concrete(
    token: str, table: cabc.Mapping[str, Target]
) -> tuple[Target, list[str]]:
    target = table.get(token)
    if target is None or not target.is_concrete:
        raise UnsupportedTargetError(token)
    return target, _aliases_where(table, lambda candidate: candidate == target)


def resolve_targets(
    tokens: cabc.Iterable[str],
    *,
    native_arch: str | None = None,
    table: cabc.Mapping[str, Target] = TARGET_BY_GOARCH,
) -> dict[Target, list[str]]:
    """Map ``tokens`` onto targets and the GOARCH aliases that select them.

    Parameters
    ----------
    tokens
        Family tokens (``bpf``, ``bpfel``, ``bpfeb``), ``native`` or GOARCH
        names from ``table``.
    native_arch
        GOARCH substituted for ``native``; defaults to :func:`native_goarch`.
    table
        Alias table to resolve against.

    Returns
    -------
    dict[Target, list[str]]
        Each target with its sorted list of sibling aliases. Tokens that
        resolve to the same target are merged.

    Raises
    ------
    UnsupportedTargetError
        Raised for the first token that is unknown or not buildable. Nothing
        is returned in that case.
    """
    result: dict[Target, list[str]] = {}
    for token in tokens:
        if token in FAMILY_TOKENS:
            family = token
            result[Target(family)] = _aliases_where(
                table, lambda candidate: candidate.family == family
            )
            continue

        if token == NATIVE_TOKEN:
            token = native_arch or native_goarch()  # noqa: PLW2901

        target, aliases = _resolve_concrete(token, table)
        result[target] = aliases
    return result


def format_supported_targets(
    table: cabc.Mapping[str, Target] = TARGET_BY_GOARCH,
) -> str:
    """Return the human readable list of targets accepted by ``--target``."""
    buildable = _aliases_where(table, lambda candidate: candidate.is_concrete)
    names = (*FAMILY_TOKENS, *buildable)
    return "Supported targets:\n" + "".join(f"\t{name}\n" for name in names)
