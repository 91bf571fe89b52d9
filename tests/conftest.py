"""Shared fixtures for the bpf2go tests."""

from __future__ import annotations

import dataclasses
import typing as typ
from pathlib import Path

import pytest

from bpf2go.config import load_config
from bpf2go.dependencies import adjust_dependencies, parse_dependencies
from bpf2go.errors import CompileError, GenerateError, StripError
from bpf2go.pipeline import Collaborators

if typ.TYPE_CHECKING:
    from bpf2go.config import Bpf2GoConfig

DEPINFO = b"/ignored/object.o: bar.c \\\n headers/common.h\n\nheaders/common.h:\n"


@dataclasses.dataclass
class FakeToolchain:
    """Record pipeline steps and optionally fail one of them."""

    calls: list[tuple[str, dict[str, object]]] = dataclasses.field(
        default_factory=list
    )
    depinfo: bytes = DEPINFO
    fail_on: str | None = None
    fail_after: int = 0

    def _maybe_fail(self, step: str, error: type[Exception]) -> None:
        if self.fail_on != step:
            return
        seen = sum(1 for name, _ in self.calls if name == step)
        if seen > self.fail_after:
            msg = f"{step} failed"
            raise error(msg)

    def compile(self, **kwargs: object) -> bytes:
        self.calls.append(("compile", kwargs))
        self._maybe_fail("compile", CompileError)
        Path(typ.cast("Path", kwargs["dest"])).write_bytes(b"\x7fELF")
        return self.depinfo

    def strip(self, binary: Path | str, obj: Path) -> None:
        self.calls.append(("strip", {"binary": binary, "obj": obj}))
        self._maybe_fail("strip", StripError)

    def generate(self, *, out: typ.TextIO, **kwargs: object) -> None:
        self.calls.append(("generate", kwargs))
        out.write(f"package {kwargs['package']}\n")
        self._maybe_fail("generate", GenerateError)

    def steps(self) -> list[str]:
        return [name for name, _ in self.calls]

    def collaborators(self) -> Collaborators:
        return Collaborators(
            compile=self.compile,
            strip=self.strip,
            generate=self.generate,
            parse_dependencies=parse_dependencies,
            adjust_dependencies=adjust_dependencies,
        )


@pytest.fixture
def fake_toolchain() -> FakeToolchain:
    """Return a fresh recording toolchain."""
    return FakeToolchain()


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    """Create an empty C source inside ``tmp_path``."""
    path = tmp_path / "bar.c"
    path.write_text("// empty\n", encoding="utf-8")
    return path


@pytest.fixture
def make_config(
    tmp_path: Path, source_file: Path
) -> typ.Callable[..., Bpf2GoConfig]:
    """Return a factory for configurations rooted in ``tmp_path``."""

    def factory(**overrides: object) -> Bpf2GoConfig:
        options: dict[str, typ.Any] = {
            "package": "main",
            "ident": "bar",
            "source": source_file,
            "output_dir": tmp_path,
        }
        options.update(overrides)
        return load_config(**options)

    return factory
