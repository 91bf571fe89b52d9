"""Compile C sources to eBPF objects and generate Go bindings for them."""

from __future__ import annotations

from .config import Bpf2GoConfig, load_config
from .errors import (
    Bpf2GoError,
    CompileError,
    ConfigurationError,
    DependencyError,
    FlagParseError,
    GenerateError,
    PipelineError,
    StripError,
    UnsupportedTargetError,
)
from .pipeline import Bpf2Go, Collaborators, PipelineArtifacts, default_collaborators
from .targets import TARGET_BY_GOARCH, Target, resolve_targets

__all__ = [
    "TARGET_BY_GOARCH",
    "Bpf2Go",
    "Bpf2GoConfig",
    "Bpf2GoError",
    "Collaborators",
    "CompileError",
    "ConfigurationError",
    "DependencyError",
    "FlagParseError",
    "GenerateError",
    "PipelineArtifacts",
    "PipelineError",
    "StripError",
    "Target",
    "UnsupportedTargetError",
    "default_collaborators",
    "load_config",
    "resolve_targets",
]
