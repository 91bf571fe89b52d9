"""Minimal reader for the BPF Type Format (``.BTF``) section.

Only the parts the Go generator needs are decoded: names, sizes, members,
enum values and references between types. Line info and ``.BTF.ext`` are
ignored.
"""

from __future__ import annotations

import dataclasses
import enum
import struct
import typing as typ

__all__ = ["BTF_MAGIC", "BtfError", "BtfMember", "BtfSpec", "BtfType", "Kind"]

BTF_MAGIC: typ.Final = 0xEB9F
_HEADER_FORMAT = "HBBIIIII"

INT_SIGNED: typ.Final = 1 << 0
INT_BOOL: typ.Final = 1 << 2

POINTER_SIZE: typ.Final = 8


class BtfError(ValueError):
    """Raised when BTF data is malformed."""


class Kind(enum.IntEnum):
    """BTF type kinds."""

    VOID = 0
    INT = 1
    PTR = 2
    ARRAY = 3
    STRUCT = 4
    UNION = 5
    ENUM = 6
    FWD = 7
    TYPEDEF = 8
    VOLATILE = 9
    CONST = 10
    RESTRICT = 11
    FUNC = 12
    FUNC_PROTO = 13
    VAR = 14
    DATASEC = 15
    FLOAT = 16
    DECL_TAG = 17
    TYPE_TAG = 18
    ENUM64 = 19


_SIZED_KINDS = frozenset(
    {
        Kind.INT,
        Kind.STRUCT,
        Kind.UNION,
        Kind.ENUM,
        Kind.ENUM64,
        Kind.FLOAT,
        Kind.DATASEC,
    }
)
_QUALIFIERS = frozenset({Kind.VOLATILE, Kind.CONST, Kind.RESTRICT, Kind.TYPE_TAG})


@dataclasses.dataclass(frozen=True, slots=True)
class BtfMember:
    """Struct/union member, enum value or datasec entry.

    ``offset`` is in bits for struct and union members and in bytes for
    datasec entries. ``value`` is only meaningful for enums.
    """

    name: str
    type_id: int = 0
    offset: int = 0
    size: int = 0
    value: int = 0


@dataclasses.dataclass(frozen=True, slots=True)
class BtfType:
    """A decoded BTF type record."""

    type_id: int
    kind: Kind
    name: str
    size: int = 0
    ref: int = 0
    kind_flag: bool = False
    encoding: int = 0
    nelems: int = 0
    members: tuple[BtfMember, ...] = ()

    @property
    def signed(self) -> bool:
        """Return ``True`` for signed integers and enums."""
        if self.kind is Kind.INT:
            return bool(self.encoding & INT_SIGNED)
        return self.kind in (Kind.ENUM, Kind.ENUM64) and self.kind_flag


_VOID = BtfType(0, Kind.VOID, "")


class _Reader:
    def __init__(self, data: bytes, offset: int, end: int, order: str) -> None:
        self._data = data
        self._offset = offset
        self._end = end
        self._order = order

    @property
    def exhausted(self) -> bool:
        return self._offset >= self._end

    def read(self, fmt: str) -> tuple[int, ...]:
        layout = struct.Struct(self._order + fmt)
        if self._offset + layout.size > self._end:
            msg = "type section truncated"
            raise BtfError(msg)
        values = layout.unpack_from(self._data, self._offset)
        self._offset += layout.size
        return values


class BtfSpec:
    """Types decoded from a ``.BTF`` section, addressable by ID and name."""

    def __init__(self, types: typ.Iterable[BtfType]) -> None:
        self._types: dict[int, BtfType] = {0: _VOID}
        for btf_type in types:
            self._types[btf_type.type_id] = btf_type

    @classmethod
    def parse(cls, data: bytes, *, little_endian: bool | None = None) -> BtfSpec:
        """Decode ``data``; byte order is detected from the magic by default."""
        order = _detect_order(data, little_endian)
        header = struct.Struct(order + _HEADER_FORMAT)
        if len(data) < header.size:
            msg = "BTF header truncated"
            raise BtfError(msg)
        _, _, _, hdr_len, type_off, type_len, str_off, str_len = header.unpack_from(
            data
        )
        strings = data[hdr_len + str_off : hdr_len + str_off + str_len]
        start = hdr_len + type_off
        reader = _Reader(data, start, start + type_len, order)

        types: list[BtfType] = []
        type_id = 1
        while not reader.exhausted:
            types.append(_read_type(reader, type_id, strings))
            type_id += 1
        return cls(types)

    def __getitem__(self, type_id: int) -> BtfType:
        try:
            return self._types[type_id]
        except KeyError as exc:
            msg = f"unknown type id {type_id}"
            raise BtfError(msg) from exc

    def __iter__(self) -> typ.Iterator[BtfType]:
        return (self._types[key] for key in sorted(self._types) if key)

    def find(self, name: str) -> BtfType | None:
        """Return the first named data type called ``name``."""
        for btf_type in self:
            if btf_type.name != name:
                continue
            if btf_type.kind in (Kind.FUNC, Kind.VAR, Kind.DATASEC, Kind.DECL_TAG):
                continue
            return btf_type
        return None

    def skip_qualifiers(self, type_id: int) -> BtfType:
        """Follow const/volatile/restrict/type-tag references."""
        btf_type = self[type_id]
        while btf_type.kind in _QUALIFIERS:
            btf_type = self[btf_type.ref]
        return btf_type

    def underlying(self, type_id: int) -> BtfType:
        """Follow qualifiers and typedefs to the concrete type."""
        btf_type = self.skip_qualifiers(type_id)
        while btf_type.kind is Kind.TYPEDEF:
            btf_type = self.skip_qualifiers(btf_type.ref)
        return btf_type

    def size_of(self, type_id: int) -> int:
        """Return the size of ``type_id`` in bytes."""
        btf_type = self.underlying(type_id)
        if btf_type.kind in _SIZED_KINDS:
            return btf_type.size
        if btf_type.kind is Kind.PTR:
            return POINTER_SIZE
        if btf_type.kind is Kind.ARRAY:
            return btf_type.nelems * self.size_of(btf_type.ref)
        if btf_type.kind is Kind.VAR:
            return self.size_of(btf_type.ref)
        label = btf_type.name or btf_type.type_id
        msg = f"type {label} ({btf_type.kind.name}) has no size"
        raise BtfError(msg)


def _detect_order(data: bytes, little_endian: bool | None) -> str:
    if little_endian is not None:
        return "<" if little_endian else ">"
    if data[:2] == BTF_MAGIC.to_bytes(2, "little"):
        return "<"
    if data[:2] == BTF_MAGIC.to_bytes(2, "big"):
        return ">"
    msg = "not a BTF blob: bad magic"
    raise BtfError(msg)


def _name(strings: bytes, offset: int) -> str:
    if offset >= len(strings):
        if offset:
            msg = f"string offset {offset} out of bounds"
            raise BtfError(msg)
        return ""
    end = strings.find(b"\0", offset)
    raw = strings[offset:] if end == -1 else strings[offset:end]
    return raw.decode("utf-8", errors="replace")


def _read_type(reader: _Reader, type_id: int, strings: bytes) -> BtfType:
    name_off, info, size_or_type = reader.read("III")
    vlen = info & 0xFFFF
    kind_flag = bool(info >> 31)
    try:
        kind = Kind((info >> 24) & 0x1F)
    except ValueError as exc:
        msg = f"type id {type_id}: unknown kind {(info >> 24) & 0x1F}"
        raise BtfError(msg) from exc
    name = _name(strings, name_off)
    base = {"type_id": type_id, "kind": kind, "name": name, "kind_flag": kind_flag}

    if kind is Kind.INT:
        (raw,) = reader.read("I")
        return BtfType(**base, size=size_or_type, encoding=(raw >> 24) & 0x0F)
    if kind is Kind.ARRAY:
        elem, _index, nelems = reader.read("III")
        return BtfType(**base, ref=elem, nelems=nelems)
    if kind in (Kind.STRUCT, Kind.UNION):
        members = []
        for _ in range(vlen):
            m_name, m_type, m_offset = reader.read("III")
            # With kind_flag set the top byte holds the bitfield size.
            offset = m_offset & 0xFFFFFF if kind_flag else m_offset
            bits = m_offset >> 24 if kind_flag else 0
            members.append(
                BtfMember(_name(strings, m_name), m_type, offset, size=bits)
            )
        return BtfType(**base, size=size_or_type, members=tuple(members))
    if kind is Kind.ENUM:
        members = []
        for _ in range(vlen):
            off, raw = reader.read("II")
            value = raw - (1 << 32) if kind_flag and raw >= 1 << 31 else raw
            members.append(BtfMember(_name(strings, off), value=value))
        return BtfType(**base, size=size_or_type, members=tuple(members))
    if kind is Kind.ENUM64:
        members = []
        for _ in range(vlen):
            off, lo, hi = reader.read("III")
            value = (hi << 32) | lo
            if kind_flag and value >= 1 << 63:
                value -= 1 << 64
            members.append(BtfMember(_name(strings, off), value=value))
        return BtfType(**base, size=size_or_type, members=tuple(members))
    if kind is Kind.FUNC_PROTO:
        params = [reader.read("II") for _ in range(vlen)]
        members = tuple(BtfMember(_name(strings, off), t) for off, t in params)
        return BtfType(**base, ref=size_or_type, members=members)
    if kind is Kind.VAR:
        reader.read("I")
        return BtfType(**base, ref=size_or_type)
    if kind is Kind.DATASEC:
        entries = [reader.read("III") for _ in range(vlen)]
        members = tuple(
            BtfMember("", var, offset, size) for var, offset, size in entries
        )
        return BtfType(**base, size=size_or_type, members=members)
    if kind is Kind.DECL_TAG:
        reader.read("i")
        return BtfType(**base, ref=size_or_type)
    if kind is Kind.FLOAT:
        return BtfType(**base, size=size_or_type)
    return BtfType(**base, ref=size_or_type)
