"""Error types shared across the bpf2go package."""

from __future__ import annotations

__all__ = [
    "Bpf2GoError",
    "CompileError",
    "ConfigurationError",
    "DependencyError",
    "FlagParseError",
    "GenerateError",
    "PipelineError",
    "StripError",
    "UnsupportedTargetError",
]


class Bpf2GoError(RuntimeError):
    """Base class for errors reported by bpf2go."""


class ConfigurationError(Bpf2GoError):
    """Raised when inputs are rejected before any pipeline runs."""

    @classmethod
    def missing_package(cls) -> ConfigurationError:
        """Return an error describing an absent Go package name."""
        return cls("missing package, are you running via go generate?")

    @classmethod
    def missing_compiler(cls) -> ConfigurationError:
        """Return an error indicating the compiler input was empty."""
        return cls("no compiler specified")

    @classmethod
    def invalid_identifier(cls, ident: str) -> ConfigurationError:
        """Return an error describing an identifier Go would not accept."""
        return cls(f"{ident!r} is not a valid identifier")

    @classmethod
    def missing_source(cls, source: object) -> ConfigurationError:
        """Return an error describing a missing C source file."""
        return cls(f"file {source} doesn't exist")

    @classmethod
    def invalid_output_stem(cls, stem: str) -> ConfigurationError:
        """Return an error for an output stem containing path separators."""
        return cls(f"--output-stem {stem!r} must not contain path separation characters")

    @classmethod
    def dependency_flag(cls, flag: str) -> ConfigurationError:
        """Return an error for a C flag that would clash with depinfo output."""
        return cls(f"use --makebase instead of {flag!r}")

    @classmethod
    def no_targets(cls) -> ConfigurationError:
        """Return an error indicating the target list was empty."""
        return cls("no targets specified")


class FlagParseError(ConfigurationError):
    """Raised when a quoted flag string cannot be split into arguments."""


class UnsupportedTargetError(Bpf2GoError, ValueError):
    """Raised when a target token does not name a buildable target."""

    def __init__(self, target: str) -> None:
        super().__init__(f"{target!r}: unsupported target")
        self.target = target


class PipelineError(Bpf2GoError):
    """Raised when a per-target pipeline step fails."""


class CompileError(PipelineError):
    """Raised when the C compiler exits unsuccessfully."""


class StripError(PipelineError):
    """Raised when stripping DWARF from an object fails."""


class GenerateError(PipelineError):
    """Raised when Go source cannot be generated from an object."""

    @classmethod
    def cannot_write(cls, path: object, reason: object) -> GenerateError:
        """Return an error wrapping a generator failure for ``path``."""
        return cls(f"can't write {path}: {reason}")


class DependencyError(PipelineError):
    """Raised when make-style dependency information cannot be produced."""
