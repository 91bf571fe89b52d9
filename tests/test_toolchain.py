"""Tests for :mod:`bpf2go.toolchain` using stand-in compiler scripts."""

from __future__ import annotations

import sys
import typing as typ

import pytest
from plumbum import local

from bpf2go.errors import CompileError, ConfigurationError, StripError
from bpf2go.toolchain import compile_object, find_strip, strip_object

if typ.TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="stand-in tools are shell scripts"
)

FAKE_CLANG = """\
#!/bin/sh
printf '%s\\n' "$@" > "{log}"
prev=""
for arg in "$@"; do
    case "$arg" in
        -MF*) dep="${{arg#-MF}}" ;;
    esac
    if [ "$prev" = "-o" ]; then
        out="$arg"
    fi
    prev="$arg"
done
printf 'obj' > "$out"
printf 'x.o: x.c\\n' > "$dep"
echo "warning: something" >&2
exit {code}
"""

FAKE_STRIP = """\
#!/bin/sh
printf '%s\\n' "$@" > "{log}"
exit {code}
"""


def _script(path: Path, template: str, *, code: int = 0) -> Path:
    log = path.with_suffix(".log")
    path.write_text(template.format(log=log, code=code), encoding="utf-8")
    path.chmod(0o755)
    return path


def _logged_args(script: Path) -> list[str]:
    return script.with_suffix(".log").read_text(encoding="utf-8").splitlines()


class TestCompileObject:
    """Compiler invocation."""

    def test_arguments_and_depinfo(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Defaults precede user flags and depinfo is returned."""
        clang = _script(tmp_path / "clang", FAKE_CLANG)
        source_dir = tmp_path / "src"
        source_dir.mkdir()
        source = source_dir / "x.c"
        source.write_text("", encoding="utf-8")
        dest = tmp_path / "x.o"

        depinfo = compile_object(
            cc=str(clang),
            cflags=["-Iinc", "-O3"],
            target="bpfel",
            workdir=tmp_path,
            source=source,
            dest=dest,
        )

        assert depinfo == b"x.o: x.c\n"
        assert dest.read_bytes() == b"obj"
        args = _logged_args(clang)
        assert args[:4] == ["-O2", "-mcpu=v1", "-Iinc", "-O3"]
        assert args[args.index("-target") + 1] == "bpfel"
        assert args[args.index("-c") + 1] == str(source)
        assert f"-fdebug-prefix-map={source_dir}=src" in args
        assert "-g" in args
        assert "-fno-ident" in args
        assert any(arg.startswith("-D__BPF_TARGET_MISSING=") for arg in args)
        assert args[-3:-1] == ["-MD", "-MP"]
        assert args[-1].startswith("-MF")
        assert "warning: something" in capsys.readouterr().err

    def test_non_zero_exit(self, tmp_path: Path) -> None:
        """A failing compiler reports its exit status."""
        clang = _script(tmp_path / "clang", FAKE_CLANG, code=3)
        source = tmp_path / "x.c"
        source.write_text("", encoding="utf-8")

        with pytest.raises(CompileError, match="exit status 3"):
            compile_object(
                cc=str(clang),
                cflags=[],
                target="bpf",
                workdir=tmp_path,
                source=source,
                dest=tmp_path / "x.o",
            )

    def test_missing_compiler(self, tmp_path: Path) -> None:
        """An unknown compiler is a compile error."""
        with pytest.raises(CompileError, match="compiler not found"):
            compile_object(
                cc="bpf2go-no-such-clang",
                cflags=[],
                target="bpf",
                workdir=tmp_path,
                source=tmp_path / "x.c",
                dest=tmp_path / "x.o",
            )


class TestStripObject:
    """Strip invocation."""

    def test_strips_debug_info(self, tmp_path: Path) -> None:
        """Only DWARF is removed."""
        strip = _script(tmp_path / "llvm-strip", FAKE_STRIP)
        obj = tmp_path / "x.o"

        strip_object(strip, obj)

        assert _logged_args(strip) == ["-g", str(obj)]

    def test_failure(self, tmp_path: Path) -> None:
        """A failing strip binary raises."""
        strip = _script(tmp_path / "llvm-strip", FAKE_STRIP, code=1)

        with pytest.raises(StripError, match="exit status 1"):
            strip_object(strip, tmp_path / "x.o")


class TestFindStrip:
    """Locating the strip binary on ``PATH``."""

    def test_version_suffix_follows_compiler(self, tmp_path: Path) -> None:
        """``clang-17`` pairs with ``llvm-strip-17``."""
        expected = _script(tmp_path / "llvm-strip-17", FAKE_STRIP)

        with local.env(PATH=str(tmp_path)):
            assert find_strip("clang-17") == expected

    def test_explicit_binary(self, tmp_path: Path) -> None:
        """An explicit name is not suffixed."""
        expected = _script(tmp_path / "my-strip", FAKE_STRIP)

        with local.env(PATH=str(tmp_path)):
            assert find_strip("clang-17", "my-strip") == expected

    def test_not_found(self, tmp_path: Path) -> None:
        """A missing binary is a configuration error."""
        with (
            local.env(PATH=str(tmp_path)),
            pytest.raises(ConfigurationError, match="not found in PATH"),
        ):
            find_strip("clang")
