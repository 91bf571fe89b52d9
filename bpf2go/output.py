"""Render Go bindings for a compiled eBPF object.

The object is inspected with pyelftools: global functions in executable
sections other than ``.text`` are programs, objects in ``.maps`` (or legacy
``maps``) are maps and global objects in ``.data``, ``.rodata`` and ``.bss``
are variables. Requested C types are looked up in the ``.BTF`` section and
emitted as Go declarations with the same memory layout.
"""

from __future__ import annotations

import dataclasses
import logging
import typing as typ
from pathlib import Path

from elftools.common.exceptions import ELFError
from elftools.elf.constants import SH_FLAGS
from elftools.elf.elffile import ELFFile

from .btf import INT_BOOL, BtfError, BtfSpec, BtfType, Kind
from .constraints import go_build_line
from .errors import GenerateError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .constraints import Expr

__all__ = [
    "ObjectSummary",
    "collect_types",
    "generate",
    "go_identifier",
    "inspect_object",
    "render_go",
]

logger = logging.getLogger(__name__)

_MAP_SECTIONS = (".maps", "maps")
_VARIABLE_SECTIONS = (".data", ".rodata", ".bss")
_DECLARABLE_KINDS = frozenset(
    {Kind.STRUCT, Kind.UNION, Kind.ENUM, Kind.ENUM64, Kind.TYPEDEF}
)


@dataclasses.dataclass(slots=True)
class ObjectSummary:
    """Programs, maps and variables found in an object file."""

    programs: list[str] = dataclasses.field(default_factory=list)
    maps: list[str] = dataclasses.field(default_factory=list)
    variables: list[str] = dataclasses.field(default_factory=list)
    btf: BtfSpec | None = None


def go_identifier(name: str) -> str:
    """Convert a C name such as ``foo_bar`` into the Go name ``FooBar``.

    Characters that can't appear in an identifier are dropped and an
    underscore following a lower case letter or digit starts a new word.
    """
    result: list[str] = []
    prev: str | None = None
    for char in name:
        if char.isalpha():
            if prev is None:
                char = char.upper()  # noqa: PLW2901
        elif char == "_":
            if prev is None or prev.isdigit() or (prev.isalpha() and prev.islower()):
                prev = None
                continue
        elif not char.isdigit():
            continue
        result.append(char)
        prev = char
    return "".join(result)


def _upper_first(name: str) -> str:
    return name[:1].upper() + name[1:]


def _section_kind(section: typ.Any) -> str | None:  # noqa: ANN401 - pyelftools section
    name = section.name
    if name in _MAP_SECTIONS or name.startswith("maps/"):
        return "map"
    if name.startswith(_VARIABLE_SECTIONS):
        return "variable"
    if section["sh_flags"] & SH_FLAGS.SHF_EXECINSTR and name != ".text":
        return "program"
    return None


def inspect_object(path: Path) -> ObjectSummary:
    """Return the programs, maps, variables and BTF of the object at ``path``.

    Raises
    ------
    GenerateError
        Raised when ``path`` is not a valid ELF file or its BTF is malformed.
    """
    summary = ObjectSummary()
    try:
        with path.open("rb") as handle:
            elf = ELFFile(handle)
            btf_section = elf.get_section_by_name(".BTF")
            if btf_section is not None:
                summary.btf = BtfSpec.parse(
                    btf_section.data(), little_endian=elf.little_endian
                )
            symtab = elf.get_section_by_name(".symtab")
            symbols = symtab.iter_symbols() if symtab is not None else ()
            for symbol in symbols:
                index = symbol["st_shndx"]
                if not isinstance(index, int) or not symbol.name:
                    continue
                if symbol["st_info"]["bind"] != "STB_GLOBAL":
                    continue
                kind = _section_kind(elf.get_section(index))
                sym_type = symbol["st_info"]["type"]
                if kind == "program" and sym_type == "STT_FUNC":
                    summary.programs.append(symbol.name)
                elif kind == "map" and sym_type == "STT_OBJECT":
                    summary.maps.append(symbol.name)
                elif kind == "variable" and sym_type == "STT_OBJECT":
                    summary.variables.append(symbol.name)
    except (ELFError, BtfError) as exc:
        msg = f"can't read {path}: {exc}"
        raise GenerateError(msg) from exc

    summary.programs = sorted(set(summary.programs))
    summary.maps = sorted(set(summary.maps))
    summary.variables = sorted(set(summary.variables))
    logger.debug(
        "Found %d program(s), %d map(s), %d variable(s) in %s",
        len(summary.programs),
        len(summary.maps),
        len(summary.variables),
        path,
    )
    return summary


def _global_types(spec: BtfSpec) -> cabc.Iterator[BtfType]:
    """Yield named map key/value and global variable types."""
    for btf_type in spec:
        if btf_type.kind is not Kind.DATASEC:
            continue
        for entry in btf_type.members:
            var = spec[entry.type_id]
            if var.kind is not Kind.VAR:
                continue
            if btf_type.name == ".maps":
                map_def = spec.underlying(var.ref)
                for member in map_def.members:
                    pointer = spec.skip_qualifiers(member.type_id)
                    if member.name in ("key", "value") and pointer.kind is Kind.PTR:
                        yield spec.skip_qualifiers(pointer.ref)
            elif btf_type.name.startswith(_VARIABLE_SECTIONS):
                yield spec.skip_qualifiers(var.ref)


def collect_types(
    summary: ObjectSummary,
    ident: str,
    c_types: cabc.Iterable[str],
    *,
    skip_global_types: bool,
) -> dict[int, str]:
    """Return BTF type IDs to declare, mapped to their Go names.

    Raises
    ------
    GenerateError
        Raised when a requested type is absent from the object's BTF.
    """
    spec = summary.btf
    declared: dict[int, str] = {}
    for name in c_types:
        found = spec.find(name) if spec is not None else None
        if found is None:
            msg = f"type {name!r} not found in BTF"
            raise GenerateError(msg)
        declared[found.type_id] = ident + go_identifier(name)

    if skip_global_types or spec is None:
        return declared

    taken = set(declared.values())
    for candidate in _global_types(spec):
        if not candidate.name or candidate.kind not in _DECLARABLE_KINDS:
            continue
        go_name = ident + go_identifier(candidate.name)
        if candidate.type_id in declared or go_name in taken:
            continue
        declared[candidate.type_id] = go_name
        taken.add(go_name)
    return declared


class _TypeRenderer:
    def __init__(self, spec: BtfSpec, declared: dict[int, str]) -> None:
        self._spec = spec
        self._declared = declared

    def scalar(self, btf_type: BtfType) -> str | None:
        kind, size = btf_type.kind, btf_type.size
        prefix = "int" if btf_type.signed else "uint"
        if kind is Kind.INT:
            if btf_type.encoding & INT_BOOL and size == 1:
                return "bool"
            return f"{prefix}{size * 8}" if size in (1, 2, 4, 8) else None
        if kind in (Kind.ENUM, Kind.ENUM64):
            return f"{prefix}{size * 8}" if size in (1, 2, 4, 8) else None
        if kind is Kind.FLOAT:
            return f"float{size * 8}" if size in (4, 8) else None
        if kind is Kind.PTR:
            return "uint64"
        return None

    def field_type(self, type_id: int) -> str:
        named = self._spec.skip_qualifiers(type_id)
        if (go_name := self._declared.get(named.type_id)) is not None:
            return go_name
        btf_type = self._spec.underlying(type_id)
        if (go_name := self._declared.get(btf_type.type_id)) is not None:
            return go_name
        if btf_type.kind is Kind.ARRAY:
            return f"[{btf_type.nelems}]{self.field_type(btf_type.ref)}"
        if (scalar := self.scalar(btf_type)) is not None:
            return scalar
        return f"[{self._spec.size_of(type_id)}]byte"

    def struct_body(self, btf_type: BtfType) -> list[str]:
        members = btf_type.members
        if btf_type.kind is Kind.UNION:
            members = members[:1]
        lines: list[str] = []
        cursor = 0
        for member in members:
            if member.size or member.offset % 8:
                # Bitfields are covered by padding.
                continue
            start = member.offset // 8
            if start < cursor:
                continue
            if start > cursor:
                lines.append(f"\t_ [{start - cursor}]byte")
            name = go_identifier(member.name) or "_"
            lines.append(f"\t{name} {self.field_type(member.type_id)}")
            cursor = start + self._spec.size_of(member.type_id)
        if btf_type.size > cursor:
            lines.append(f"\t_ [{btf_type.size - cursor}]byte")
        return lines

    def declaration(self, type_id: int, go_name: str) -> list[str]:
        original = self._spec[type_id]
        btf_type = self._spec.underlying(type_id)
        header = f"// {go_name} mirrors the C type {original.name!r}."
        if btf_type.kind in (Kind.STRUCT, Kind.UNION):
            return [
                header,
                f"type {go_name} struct {{",
                *self.struct_body(btf_type),
                "}",
            ]
        if (scalar := self.scalar(btf_type)) is not None:
            lines = [header, f"type {go_name} {scalar}"]
            if btf_type.kind in (Kind.ENUM, Kind.ENUM64) and btf_type.members:
                lines.append("")
                lines.append("const (")
                lines.extend(
                    f"\t{go_name}{go_identifier(member.name)} {go_name} = {member.value}"
                    for member in btf_type.members
                )
                lines.append(")")
            return lines
        return [header, f"type {go_name} [{self._spec.size_of(type_id)}]byte"]


def _struct_block(
    comment: str, name: str, go_type: str, entries: cabc.Iterable[str]
) -> list[str]:
    fields = [
        f'\t{go_identifier(entry)} *ebpf.{go_type} `ebpf:"{entry}"`' for entry in entries
    ]
    return [f"// {comment}", f"type {name} struct {{", *fields, "}", ""]


def _close_method(receiver: str, name: str, closer: str, fields: list[str]) -> list[str]:
    return [
        f"func ({receiver} *{name}) Close() error {{",
        f"\treturn {closer}(",
        *(f"\t\t{field}," for field in fields),
        "\t)",
        "}",
        "",
    ]


def render_go(
    *,
    package: str,
    ident: str,
    summary: ObjectSummary,
    types: dict[int, str],
    constraints: Expr | None,
    obj_name: str,
) -> str:
    """Return Go source embedding ``obj_name`` and describing ``summary``."""
    exported = ident[:1].isupper()

    def name(value: str) -> str:
        return _upper_first(value) if exported else value

    upper = _upper_first(ident)
    load = name(f"load{upper}")
    load_objects = name(f"load{upper}Objects")
    specs = name(f"{ident}Specs")
    program_specs = name(f"{ident}ProgramSpecs")
    map_specs = name(f"{ident}MapSpecs")
    variable_specs = name(f"{ident}VariableSpecs")
    objects = name(f"{ident}Objects")
    programs = name(f"{ident}Programs")
    maps = name(f"{ident}Maps")
    variables = name(f"{ident}Variables")
    closer = f"_{upper}Close"
    blob = f"_{upper}Bytes"

    lines = ["// Code generated by bpf2go; DO NOT EDIT."]
    if build_line := go_build_line(constraints):
        lines.append(build_line)
    lines += [
        "",
        f"package {package}",
        "",
        "import (",
        '\t"bytes"',
        '\t_ "embed"',
        '\t"fmt"',
        '\t"io"',
        "",
        '\t"github.com/cilium/ebpf"',
        ")",
        "",
    ]

    if types and summary.btf is not None:
        renderer = _TypeRenderer(summary.btf, types)
        for type_id, go_name in sorted(types.items(), key=lambda item: item[1]):
            lines += [*renderer.declaration(type_id, go_name), ""]

    lines += [
        f"// {load} returns the embedded CollectionSpec for {ident}.",
        f"func {load}() (*ebpf.CollectionSpec, error) {{",
        f"\treader := bytes.NewReader({blob})",
        "\tspec, err := ebpf.LoadCollectionSpecFromReader(reader)",
        "\tif err != nil {",
        f'\t\treturn nil, fmt.Errorf("can\'t load {ident}: %w", err)',
        "\t}",
        "",
        "\treturn spec, err",
        "}",
        "",
        f"// {load_objects} loads {ident} and converts it into a struct.",
        "//",
        "// The following types are suitable as obj argument:",
        "//",
        f"//\t*{objects}",
        f"//\t*{programs}",
        f"//\t*{maps}",
        "//",
        "// See ebpf.CollectionSpec.LoadAndAssign documentation for details.",
        f"func {load_objects}(obj interface{{}}, opts *ebpf.CollectionOptions) error {{",
        f"\tspec, err := {load}()",
        "\tif err != nil {",
        "\t\treturn err",
        "\t}",
        "",
        "\treturn spec.LoadAndAssign(obj, opts)",
        "}",
        "",
        f"// {specs} contains maps and programs before they are loaded into the kernel.",
        "//",
        "// It can be passed ebpf.CollectionSpec.Assign.",
        f"type {specs} struct {{",
        f"\t{program_specs}",
        f"\t{map_specs}",
        f"\t{variable_specs}",
        "}",
        "",
    ]
    lines += _struct_block(
        f"{program_specs} contains programs before they are loaded into the kernel.",
        program_specs,
        "ProgramSpec",
        summary.programs,
    )
    lines += _struct_block(
        f"{map_specs} contains maps before they are loaded into the kernel.",
        map_specs,
        "MapSpec",
        summary.maps,
    )
    lines += _struct_block(
        f"{variable_specs} contains global variables before they are loaded "
        "into the kernel.",
        variable_specs,
        "VariableSpec",
        summary.variables,
    )
    lines += [
        f"// {objects} contains all objects after they have been loaded into "
        "the kernel.",
        "//",
        f"// It can be passed to {load_objects} or ebpf.CollectionSpec.LoadAndAssign.",
        f"type {objects} struct {{",
        f"\t{programs}",
        f"\t{maps}",
        f"\t{variables}",
        "}",
        "",
    ]
    lines += _close_method("o", objects, closer, [f"&o.{programs}", f"&o.{maps}"])
    lines += _struct_block(
        f"{maps} contains all maps after they have been loaded into the kernel.",
        maps,
        "Map",
        summary.maps,
    )
    lines += _close_method(
        "m", maps, closer, [f"m.{go_identifier(entry)}" for entry in summary.maps]
    )
    lines += _struct_block(
        f"{variables} contains all global variables after they have been "
        "loaded into the kernel.",
        variables,
        "Variable",
        summary.variables,
    )
    lines += _struct_block(
        f"{programs} contains all programs after they have been loaded into "
        "the kernel.",
        programs,
        "Program",
        summary.programs,
    )
    lines += _close_method(
        "p", programs, closer, [f"p.{go_identifier(entry)}" for entry in summary.programs]
    )
    lines += [
        f"func {closer}(closers ...io.Closer) error {{",
        "\tfor _, closer := range closers {",
        "\t\tif err := closer.Close(); err != nil {",
        "\t\t\treturn err",
        "\t\t}",
        "\t}",
        "\treturn nil",
        "}",
        "",
        "// Do not access this directly.",
        "//",
        f"//go:embed {obj_name}",
        f"var {blob} []byte",
    ]
    return "\n".join(lines) + "\n"


def generate(
    *,
    package: str,
    ident: str,
    c_types: cabc.Iterable[str],
    skip_global_types: bool,
    constraints: Expr | None,
    obj: Path,
    out: typ.TextIO,
) -> None:
    """Write Go bindings for ``obj`` to ``out``.

    Raises
    ------
    GenerateError
        Raised when the object can't be inspected or a requested type is
        missing.
    """
    obj = Path(obj)
    summary = inspect_object(obj)
    types = collect_types(summary, ident, c_types, skip_global_types=skip_global_types)
    try:
        source = render_go(
            package=package,
            ident=ident,
            summary=summary,
            types=types,
            constraints=constraints,
            obj_name=obj.name,
        )
    except BtfError as exc:
        raise GenerateError(str(exc)) from exc
    out.write(source)
