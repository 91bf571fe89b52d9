"""Per-target compile, strip, generate and depinfo pipeline."""

from __future__ import annotations

import dataclasses
import logging
import typing as typ
from pathlib import Path

import typer

from . import dependencies, output, toolchain
from .constraints import synthesize
from .errors import DependencyError, GenerateError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .config import Bpf2GoConfig
    from .constraints import Expr
    from .dependencies import DependencyRecord
    from .targets import Target

__all__ = [
    "TARGET_ARCH_DEFINE_PREFIX",
    "Bpf2Go",
    "Collaborators",
    "PipelineArtifacts",
    "default_collaborators",
]

logger = logging.getLogger(__name__)

TARGET_ARCH_DEFINE_PREFIX: typ.Final = "__TARGET_ARCH"


class Collaborators(typ.NamedTuple):
    """External steps driven by :class:`Bpf2Go`."""

    compile: cabc.Callable[..., bytes]
    strip: cabc.Callable[[Path | str, Path], None]
    generate: cabc.Callable[..., None]
    parse_dependencies: cabc.Callable[[Path, bytes], list[DependencyRecord]]
    adjust_dependencies: cabc.Callable[[Path, list[DependencyRecord]], bytes]


def default_collaborators() -> Collaborators:
    """Return collaborators backed by clang, llvm-strip and the Go renderer."""
    return Collaborators(
        compile=toolchain.compile_object,
        strip=toolchain.strip_object,
        generate=output.generate,
        parse_dependencies=dependencies.parse_dependencies,
        adjust_dependencies=dependencies.adjust_dependencies,
    )


@dataclasses.dataclass(slots=True)
class PipelineArtifacts:
    """Files written for one target by :meth:`Bpf2Go.convert`."""

    target: Target
    aliases: list[str]
    object_file: Path
    go_file: Path
    constraints: Expr | None = None
    dependency_info: bytes = b""
    dependency_file: Path | None = None


class Bpf2Go:
    """Compile a C file for each resolved target and write Go bindings.

    Targets are processed one at a time; the first failure aborts the run.
    Outputs of targets that already completed are left in place.
    """

    def __init__(
        self,
        config: Bpf2GoConfig,
        *,
        collaborators: Collaborators | None = None,
        stdout: typ.TextIO | None = None,
        workdir: Path | None = None,
    ) -> None:
        self.config = config
        self._steps = collaborators or default_collaborators()
        self._stdout = stdout
        self._workdir = workdir or Path.cwd()

    def _echo(self, message: str) -> None:
        typer.echo(message, file=self._stdout)

    def run(self, targets: cabc.Mapping[Target, list[str]]) -> list[PipelineArtifacts]:
        """Convert every entry of ``targets`` in turn."""
        return [self.convert(target, aliases) for target, aliases in targets.items()]

    def file_stem(self, target: Target) -> str:
        """Return ``<stem>_<family>[_<define>]`` for ``target``."""
        parts = [self.config.stem, target.family]
        if target.is_concrete:
            parts.append(target.define)
        return "_".join(parts)

    def convert(self, target: Target, aliases: list[str]) -> PipelineArtifacts:
        """Run compile, strip, generate and depinfo steps for ``target``.

        Raises
        ------
        PipelineError
            Raised by the first failing step. A Go file created by a failed
            generate step is removed; object files are kept.
        """
        config = self.config
        stem = self.file_stem(target)
        artifacts = PipelineArtifacts(
            target=target,
            aliases=list(aliases),
            object_file=config.output_dir / f"{stem}.o",
            go_file=config.output_dir / f"{stem}.go",
            constraints=synthesize(aliases, config.tags),
        )
        logger.debug("Building %s for %s", stem, ", ".join(aliases) or "no GOARCH")

        cflags = list(config.cflags)
        if target.is_concrete:
            cflags.append(f"-D{TARGET_ARCH_DEFINE_PREFIX}_{target.define}")

        artifacts.dependency_info = self._steps.compile(
            cc=config.cc,
            cflags=cflags,
            target=target.family,
            workdir=self._workdir,
            source=config.source,
            dest=artifacts.object_file,
        )
        self._echo(f"Compiled {artifacts.object_file}")

        if not config.disable_stripping:
            strip = config.strip or toolchain.DEFAULT_STRIP
            self._steps.strip(strip, artifacts.object_file)
            self._echo(f"Stripped {artifacts.object_file}")

        self._write_go(artifacts)
        self._echo(f"Wrote {artifacts.go_file}")

        if config.make_base is None:
            return artifacts

        artifacts.dependency_file = self._write_dependencies(
            artifacts.go_file, artifacts.dependency_info, config.make_base
        )
        self._echo(f"Wrote {artifacts.dependency_file}")
        return artifacts

    def _write_go(self, artifacts: PipelineArtifacts) -> None:
        config = self.config
        go_file = artifacts.go_file
        try:
            with go_file.open("w", encoding="utf-8") as handle:
                self._steps.generate(
                    package=config.package,
                    ident=config.ident,
                    c_types=list(config.c_types),
                    skip_global_types=config.skip_global_types,
                    constraints=artifacts.constraints,
                    obj=artifacts.object_file,
                    out=handle,
                )
        except Exception as exc:
            go_file.unlink(missing_ok=True)
            raise GenerateError.cannot_write(go_file, exc) from exc

    def _write_dependencies(self, go_file: Path, info: bytes, make_base: Path) -> Path:
        try:
            records = self._steps.parse_dependencies(self._workdir, info)
        except DependencyError as exc:
            msg = f"can't read dependency information: {exc}"
            raise DependencyError(msg) from exc

        # The first rule always describes the compiled source.
        records[0].file = str(go_file)
        try:
            content = self._steps.adjust_dependencies(make_base, records)
        except DependencyError as exc:
            msg = f"can't adjust dependency information: {exc}"
            raise DependencyError(msg) from exc

        dep_file = go_file.with_name(f"{go_file.name}.d")
        try:
            dep_file.write_bytes(content)
        except OSError as exc:
            msg = f"can't write dependency file: {exc}"
            raise DependencyError(msg) from exc
        return dep_file
