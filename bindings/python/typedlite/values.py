"""Value model shared by the binder, the decoder and the engine.

A ``BindValue`` is what the binder hands to the engine once an argument has
been checked against its placeholder; a ``ColumnValue`` is what the engine
hands back when a column is read. Both carry one of the engine's storage
classes as their tag.
"""
from __future__ import annotations

import dataclasses
import enum
import types
import typing
from typing import Any, Optional


# Tag values match SQLite's fundamental datatype codes (SQLITE_INTEGER, ...).
class ValueKind(enum.IntEnum):
    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


@dataclasses.dataclass(frozen=True)
class BindValue:
    kind: ValueKind
    payload: Any = None

    @classmethod
    def null(cls) -> "BindValue":
        return cls(ValueKind.NULL)


@dataclasses.dataclass(frozen=True)
class ColumnValue:
    kind: ValueKind
    payload: Any = None

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL


INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_INT_RANGES = {
    "i8": (-(2 ** 7), 2 ** 7 - 1),
    "i16": (-(2 ** 15), 2 ** 15 - 1),
    "i32": (-(2 ** 31), 2 ** 31 - 1),
    "i64": (INT64_MIN, INT64_MAX),
    "int": (INT64_MIN, INT64_MAX),
    "integer": (INT64_MIN, INT64_MAX),
    "u8": (0, 2 ** 8 - 1),
    "u16": (0, 2 ** 16 - 1),
    "u32": (0, 2 ** 32 - 1),
    "u64": (0, 2 ** 64 - 1),
    "usize": (0, 2 ** 64 - 1),
}

_FLOAT_NAMES = {"f32": True, "f64": False, "float": False, "real": False}
_TEXT_NAMES = {"text", "str"}
_BLOB_NAMES = {"blob", "bytes"}


@dataclasses.dataclass(frozen=True)
class DeclaredType:
    """The type a placeholder or a result field was declared with."""

    kind: ValueKind
    name: str
    optional: bool = False
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    single_precision: bool = False
    is_bool: bool = False
    enum_type: Optional[type] = None

    def as_optional(self) -> "DeclaredType":
        return dataclasses.replace(self, optional=True)

    def __str__(self):
        return ("?" if self.optional else "") + self.name


def enum_base_kind(enum_type) -> ValueKind:
    """Storage class an enum is serialized through.

    int-based enums are stored as their integer value, str-based enums as their
    string value and every other enum as its member name.
    """
    if issubclass(enum_type, int):
        return ValueKind.INTEGER
    return ValueKind.TEXT


def enum_to_payload(member):
    enum_type = type(member)
    if issubclass(enum_type, int):
        return int(member.value)
    if issubclass(enum_type, str):
        return str(member.value)
    return member.name


def declared_type_from_name(name: str) -> DeclaredType:
    """Parse a template type name such as ``i64``, ``text`` or ``?f32``."""
    raw = name.strip()
    optional = raw.startswith("?")
    if optional:
        raw = raw[1:].strip()
    key = raw.lower()

    if key == "bool":
        declared = DeclaredType(ValueKind.INTEGER, "bool", min_value=0, max_value=1, is_bool=True)
    elif key in _INT_RANGES:
        lo, hi = _INT_RANGES[key]
        declared = DeclaredType(ValueKind.INTEGER, key, min_value=lo, max_value=hi)
    elif key in _FLOAT_NAMES:
        declared = DeclaredType(ValueKind.FLOAT, key, single_precision=_FLOAT_NAMES[key])
    elif key in _TEXT_NAMES:
        declared = DeclaredType(ValueKind.TEXT, "text")
    elif key in _BLOB_NAMES:
        declared = DeclaredType(ValueKind.BLOB, "blob")
    else:
        raise ValueError(f"Unknown placeholder type {name!r}")

    return declared.as_optional() if optional else declared


def declared_type_from_annotation(annotation) -> Optional[DeclaredType]:
    """Map a Python annotation onto a DeclaredType.

    Returns None for annotations that declare nothing (``Any`` or missing), in
    which case values are accepted as whatever bindable type they are.
    """
    if annotation is None or annotation is Any or annotation is dataclasses.MISSING:
        return None

    origin = typing.get_origin(annotation)
    if origin is typing.Union or (hasattr(types, "UnionType") and origin is types.UnionType):
        members = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(members) != 1:
            raise TypeError(f"Unsupported union annotation {annotation!r}")
        inner = declared_type_from_annotation(members[0])
        if inner is None:
            return None
        return inner.as_optional()

    if typing.get_origin(annotation) is typing.Annotated:
        # Annotated[int, "u8"] narrows an int to a sized integer type.
        base, *extras = typing.get_args(annotation)
        for extra in extras:
            if isinstance(extra, str):
                return declared_type_from_name(extra)
        return declared_type_from_annotation(base)

    if isinstance(annotation, type):
        if issubclass(annotation, enum.Enum):
            return DeclaredType(enum_base_kind(annotation), annotation.__name__, enum_type=annotation)
        if annotation is bool:
            return declared_type_from_name("bool")
        if annotation is int:
            return declared_type_from_name("i64")
        if annotation is float:
            return declared_type_from_name("f64")
        if annotation is str:
            return declared_type_from_name("text")
        if annotation in (bytes, bytearray, memoryview):
            return declared_type_from_name("blob")

    raise TypeError(f"Unsupported annotation {annotation!r}")
