"""Tests for :mod:`bpf2go.targets`."""

from __future__ import annotations

import pytest

from bpf2go.errors import UnsupportedTargetError
from bpf2go.targets import (
    TARGET_BY_GOARCH,
    Target,
    format_supported_targets,
    native_goarch,
    resolve_targets,
)

SMALL_TABLE = {
    "amd64": Target("bpfel", "x86"),
    "arm64": Target("bpfel", "arm64"),
    "riscv64": Target("bpfel"),
    "s390x": Target("bpfeb", "s390"),
}


class TestResolveTargets:
    """Resolution of ``--target`` tokens."""

    def test_family_token_collects_every_alias_of_that_endianness(self) -> None:
        """``bpfel`` carries all little-endian GOARCH values, sorted."""
        result = resolve_targets(["bpfel"], table=SMALL_TABLE)

        assert result == {Target("bpfel"): ["amd64", "arm64", "riscv64"]}

    def test_bpf_token_has_no_aliases(self) -> None:
        """No table entry uses the plain ``bpf`` family."""
        assert resolve_targets(["bpf"]) == {Target("bpf"): []}

    def test_concrete_goarch_with_custom_table(self) -> None:
        """A GOARCH resolves to its target and the aliases that share it."""
        result = resolve_targets(["amd64"], table=SMALL_TABLE)

        assert result == {Target("bpfel", "x86"): ["amd64"]}

    def test_concrete_goarch_merges_siblings(self) -> None:
        """386 and amd64 share the x86 target in the full table."""
        result = resolve_targets(["amd64"])

        assert result == {Target("bpfel", "x86"): ["386", "amd64"]}

    def test_sibling_tokens_are_merged(self) -> None:
        """Requesting two siblings yields a single target."""
        result = resolve_targets(["386", "amd64"])

        assert list(result) == [Target("bpfel", "x86")]

    def test_native_uses_supplied_goarch(self) -> None:
        """``native`` resolves through the detected architecture."""
        result = resolve_targets(["native"], native_arch="arm64")

        assert result == {Target("bpfel", "arm64"): ["arm64"]}

    def test_native_on_unknown_architecture(self) -> None:
        """An unknown native GOARCH fails instead of returning earlier targets."""
        with pytest.raises(UnsupportedTargetError, match="unsupported target") as info:
            resolve_targets(["bpfel", "native"], native_arch="weird")

        assert info.value.target == "weird"

    @pytest.mark.parametrize("token", ["riscv64", "mips", "nonsense"])
    def test_rejects_unbuildable_tokens(self, token: str) -> None:
        """Tokens without a define or absent from the table are errors."""
        with pytest.raises(UnsupportedTargetError, match="unsupported target") as info:
            resolve_targets(["bpfel", token])

        assert info.value.target == token

    def test_family_and_concrete_targets_are_distinct(self) -> None:
        """A family target and a concrete target sharing a family coexist."""
        result = resolve_targets(["bpfel", "arm64"], table=SMALL_TABLE)

        assert set(result) == {Target("bpfel"), Target("bpfel", "arm64")}


def test_every_concrete_target_resolves() -> None:
    """Each buildable alias resolves to its own table entry."""
    for alias, target in TARGET_BY_GOARCH.items():
        if not target.is_concrete:
            continue
        resolved = resolve_targets([alias])
        assert alias in resolved[target]
        assert resolved[target] == sorted(set(resolved[target]))


@pytest.mark.parametrize(
    ("machine", "expected"),
    [
        ("x86_64", "amd64"),
        ("AARCH64", "arm64"),
        ("i686", "386"),
        ("ppc64le", "ppc64le"),
        ("weird", "weird"),
    ],
)
def test_native_goarch_maps_machine_names(machine: str, expected: str) -> None:
    """Machine names are translated to GOARCH values."""
    assert native_goarch(machine, pointer_size=8) == expected


@pytest.mark.parametrize(
    ("machine", "expected"),
    [("x86_64", "386"), ("aarch64", "arm"), ("i686", "386"), ("ppc64le", "ppc64le")],
)
def test_native_goarch_on_32bit_interpreter(machine: str, expected: str) -> None:
    """A 32-bit process on a 64-bit x86 or arm host uses the 32-bit GOARCH."""
    assert native_goarch(machine, pointer_size=4) == expected


def test_format_supported_targets_lists_families_then_buildable_aliases() -> None:
    """The help listing starts with the families and omits family-only GOARCHes."""
    text = format_supported_targets(SMALL_TABLE)

    assert text == (
        "Supported targets:\n\tbpf\n\tbpfel\n\tbpfeb\n\tamd64\n\tarm64\n\ts390x\n"
    )


def test_format_supported_targets_default_table() -> None:
    """The full listing includes sorted concrete aliases only."""
    lines = format_supported_targets().splitlines()

    assert lines[:4] == ["Supported targets:", "\tbpf", "\tbpfel", "\tbpfeb"]
    aliases = [line.strip() for line in lines[4:]]
    assert aliases == sorted(aliases)
    assert "amd64" in aliases
    assert "riscv64" not in aliases
