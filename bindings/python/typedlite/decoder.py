"""Decoding result rows into caller-declared shapes.

Supported shapes:

* a scalar annotation (``int``, ``Optional[str]``, an Enum, ...) for
  single-column results;
* a dataclass, whose fields are matched to columns by name;
* a ``typing.NamedTuple`` or ``tuple[int, str]``, matched positionally;
* bare ``dict`` / ``tuple`` for undeclared values keyed by name / position.

The only conversion applied is INTEGER -> float widening; every other
mismatch raises ``DecodeError``.
"""
from __future__ import annotations

import dataclasses
import functools
import typing
from typing import Any, Callable, List, Optional, Sequence

from .errors import DecodeError
from .values import (
    ColumnValue,
    DeclaredType,
    ValueKind,
    declared_type_from_annotation,
)


def decode_value(cv: ColumnValue, declared: Optional[DeclaredType], where: str = "column"):
    if cv.is_null:
        if declared is None or declared.optional:
            return None
        raise DecodeError(f"{where}: NULL for non-optional {declared}")

    if declared is None:
        return cv.payload

    def mismatch():
        return DecodeError(f"{where}: cannot decode {cv.kind.name} into {declared}")

    if declared.enum_type is not None:
        if cv.kind is not declared.kind:
            raise mismatch()
        enum_type = declared.enum_type
        try:
            if issubclass(enum_type, (int, str)):
                return enum_type(cv.payload)
            return enum_type[cv.payload]
        except (KeyError, ValueError):
            raise DecodeError(f"{where}: {cv.payload!r} is not a member of {enum_type.__name__}") from None

    if declared.is_bool:
        if cv.kind is not ValueKind.INTEGER or cv.payload not in (0, 1):
            raise mismatch()
        return bool(cv.payload)

    if declared.kind is ValueKind.INTEGER:
        if cv.kind is not ValueKind.INTEGER:
            raise mismatch()
        if declared.min_value is not None and cv.payload < declared.min_value:
            raise DecodeError(f"{where}: {cv.payload} is below the range of {declared}")
        if declared.max_value is not None and cv.payload > declared.max_value:
            raise DecodeError(f"{where}: {cv.payload} is above the range of {declared}")
        return cv.payload

    if declared.kind is ValueKind.FLOAT:
        if cv.kind is ValueKind.INTEGER:
            return float(cv.payload)
        if cv.kind is not ValueKind.FLOAT:
            raise mismatch()
        return cv.payload

    if cv.kind is not declared.kind:
        raise mismatch()
    return cv.payload


@dataclasses.dataclass(frozen=True)
class Shape:
    """A compiled row shape: how many columns, which types, how to build the result."""

    fields: Optional[Sequence[str]]  # None: any number of columns
    declared: Sequence[Optional[DeclaredType]]
    by_name: bool
    build: Callable[[List[str], List[Any]], Any]
    description: str

    def decode(self, names: List[str], columns: List[ColumnValue]):
        if self.fields is None:
            values = [decode_value(cv, None, f"column {names[i]!r}") for i, cv in enumerate(columns)]
            return self.build(names, values)

        if len(columns) != len(self.fields):
            raise DecodeError(
                f"{self.description} expects {len(self.fields)} column(s), query returned {len(columns)}"
            )

        if not self.by_name:
            values = [
                decode_value(cv, declared, f"column {i} ({names[i]!r})")
                for i, (cv, declared) in enumerate(zip(columns, self.declared))
            ]
            return self.build(names, values)

        positions = {name: i for i, name in enumerate(names)}
        values = []
        for field_name, declared in zip(self.fields, self.declared):
            if field_name not in positions:
                raise DecodeError(f"{self.description}: no column named {field_name!r} in {names}")
            cv = columns[positions[field_name]]
            values.append(decode_value(cv, declared, f"field {field_name!r}"))
        return self.build(list(self.fields), values)


def _declared(annotation, where):
    try:
        return declared_type_from_annotation(annotation)
    except TypeError as e:
        raise DecodeError(f"{where}: {e}") from None


@functools.lru_cache(maxsize=128)
def compile_shape(shape) -> Shape:
    if shape is dict:
        return Shape(None, (), True, lambda names, values: dict(zip(names, values)), "dict")
    if shape is tuple:
        return Shape(None, (), False, lambda names, values: tuple(values), "tuple")

    if isinstance(shape, type) and dataclasses.is_dataclass(shape):
        hints = typing.get_type_hints(shape, include_extras=True)
        fields = [f.name for f in dataclasses.fields(shape) if f.init]
        declared = [_declared(hints.get(name), f"{shape.__name__}.{name}") for name in fields]
        return Shape(
            tuple(fields),
            tuple(declared),
            True,
            lambda names, values: shape(**dict(zip(names, values))),
            shape.__name__,
        )

    if isinstance(shape, type) and issubclass(shape, tuple) and hasattr(shape, "_fields"):
        hints = typing.get_type_hints(shape, include_extras=True)
        fields = list(shape._fields)
        declared = [_declared(hints.get(name), f"{shape.__name__}.{name}") for name in fields]
        return Shape(
            tuple(fields),
            tuple(declared),
            False,
            lambda names, values: shape(*values),
            shape.__name__,
        )

    if typing.get_origin(shape) is tuple:
        members = typing.get_args(shape)
        if len(members) == 2 and members[1] is Ellipsis:
            raise DecodeError(f"Variable-length tuple shapes are not supported: {shape!r}")
        declared = [_declared(m, f"{shape!r}[{i}]") for i, m in enumerate(members)]
        return Shape(
            tuple(f"_{i}" for i in range(len(members))),
            tuple(declared),
            False,
            lambda names, values: tuple(values),
            repr(shape),
        )

    declared = _declared(shape, repr(shape))
    return Shape(("value",), (declared,), False, lambda names, values: values[0], repr(shape))


def read_row(engine, stmt, names: List[str]) -> List[ColumnValue]:
    row = []
    for i, name in enumerate(names):
        try:
            row.append(engine.column_value(stmt, i))
        except UnicodeDecodeError as e:
            raise DecodeError(f"column {i} ({name!r}): TEXT is not valid UTF-8: {e.reason}") from None
    return row


def column_names(engine, stmt) -> List[str]:
    return [engine.column_name(stmt, i) for i in range(engine.column_count(stmt))]
