"""Typed query templates and the argument validation pass.

A template is ordinary SQL whose placeholders may carry a declared type::

    INSERT INTO user(name, id, age) VALUES(?{text}, ?{usize}, ?{?u32})
    SELECT * FROM user WHERE name = :name{text} OR nickname = :name{text}

Before anything reaches the engine, each argument is checked against the
declared type of its placeholder and turned into a ``BindValue``. A mismatch
raises ``BindError``; nothing is coerced.
"""
from __future__ import annotations

import collections.abc
import dataclasses
import enum
import functools
import struct
import typing
from typing import Any, List, Optional, Tuple

from .errors import BindError
from .values import (
    INT64_MAX,
    INT64_MIN,
    BindValue,
    DeclaredType,
    ValueKind,
    declared_type_from_annotation,
    declared_type_from_name,
    enum_to_payload,
)


@dataclasses.dataclass(frozen=True)
class Placeholder:
    index: int  # 1-based parameter number in the rewritten SQL
    name: Optional[str]
    declared: Optional[DeclaredType]


@dataclasses.dataclass(frozen=True)
class Query:
    template: str
    sql: str
    placeholders: Tuple[Placeholder, ...]
    named: bool

    @property
    def parameter_count(self) -> int:
        return len(self.placeholders)


def _is_ident_start(ch):
    return ch.isalpha() or ch == "_"


def _is_ident_char(ch):
    return ch.isalnum() or ch == "_"


def _read_type(template, pos):
    """Read a ``{type}`` suffix starting at ``pos``. Returns (declared, new_pos)."""
    if pos >= len(template) or template[pos] != "{":
        return None, pos
    end = template.find("}", pos)
    if end < 0:
        raise BindError(f"Unterminated placeholder type at offset {pos}: {template!r}")
    name = template[pos + 1:end]
    try:
        declared = declared_type_from_name(name)
    except ValueError as e:
        raise BindError(f"{e} at offset {pos}") from None
    return declared, end + 1


@functools.lru_cache(maxsize=256)
def parse_template(template: str) -> Query:
    """Rewrite a typed template into plain SQL with numbered parameters."""
    out = []
    placeholders: List[Placeholder] = []
    by_name = {}
    styles = set()
    i = 0
    n = len(template)

    while i < n:
        ch = template[i]

        # Quoted strings and identifiers are copied verbatim.
        if ch in ("'", '"', "`"):
            end = i + 1
            while end < n:
                if template[end] == ch:
                    if end + 1 < n and template[end + 1] == ch:
                        end += 2
                        continue
                    break
                end += 1
            out.append(template[i:end + 1])
            i = end + 1
            continue
        if ch == "[":
            end = template.find("]", i)
            end = n - 1 if end < 0 else end
            out.append(template[i:end + 1])
            i = end + 1
            continue

        # Comments
        if template.startswith("--", i):
            end = template.find("\n", i)
            end = n if end < 0 else end
            out.append(template[i:end])
            i = end
            continue
        if template.startswith("/*", i):
            end = template.find("*/", i + 2)
            end = n if end < 0 else end + 2
            out.append(template[i:end])
            i = end
            continue

        if ch == "?":
            if i + 1 < n and template[i + 1].isdigit():
                raise BindError("Numbered placeholders (?NNN) are not supported; use ? or :name")
            declared, i = _read_type(template, i + 1)
            styles.add("positional")
            ph = Placeholder(len(placeholders) + 1, None, declared)
            placeholders.append(ph)
            out.append(f"?{ph.index}")
            continue

        if ch == ":" and i + 1 < n and _is_ident_start(template[i + 1]):
            end = i + 1
            while end < n and _is_ident_char(template[end]):
                end += 1
            name = template[i + 1:end]
            declared, i = _read_type(template, end)
            styles.add("named")
            if name in by_name:
                ph = by_name[name]
                if declared is not None and ph.declared is not None and declared != ph.declared:
                    raise BindError(
                        f"Placeholder :{name} declared as both {ph.declared} and {declared}"
                    )
                if declared is not None and ph.declared is None:
                    ph = dataclasses.replace(ph, declared=declared)
                    by_name[name] = ph
                    placeholders[ph.index - 1] = ph
            else:
                ph = Placeholder(len(placeholders) + 1, name, declared)
                by_name[name] = ph
                placeholders.append(ph)
            out.append(f"?{ph.index}")
            continue

        out.append(ch)
        i += 1

    if len(styles) > 1:
        raise BindError("Mixed parameter styles are not supported: use either ? or :name placeholders")

    return Query(template, "".join(out), tuple(placeholders), named="named" in styles)


def is_blank_sql(sql: str) -> bool:
    """True when ``sql`` holds nothing but whitespace, semicolons and comments."""
    i = 0
    n = len(sql)
    while i < n:
        if sql[i].isspace() or sql[i] == ";":
            i += 1
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            if end < 0:
                return True
            i = end + 1
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            if end < 0:
                return True
            i = end + 2
        else:
            return False
    return True


def _to_single_precision(value: float) -> float:
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        raise BindError(f"{value!r} does not fit in a 32-bit float") from None


def _infer(value, where) -> BindValue:
    # No declared type: accept any bindable value as what it is.
    if isinstance(value, enum.Enum):
        kind = ValueKind.INTEGER if isinstance(value, int) else ValueKind.TEXT
        return BindValue(kind, enum_to_payload(value))
    if isinstance(value, bool):
        return BindValue(ValueKind.INTEGER, int(value))
    if isinstance(value, int):
        if value < INT64_MIN or value > INT64_MAX:
            raise BindError(f"{where}: integer {value} does not fit in a signed 64-bit column")
        return BindValue(ValueKind.INTEGER, value)
    if isinstance(value, float):
        return BindValue(ValueKind.FLOAT, value)
    if isinstance(value, str):
        return BindValue(ValueKind.TEXT, value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BindValue(ValueKind.BLOB, bytes(value))
    raise BindError(f"{where}: unsupported type {type(value).__name__}")


def to_bind_value(value, declared: Optional[DeclaredType], where: str = "parameter") -> BindValue:
    """Check ``value`` against ``declared`` and produce its BindValue."""
    if value is None:
        if declared is None or declared.optional:
            return BindValue.null()
        raise BindError(f"{where}: None given for non-optional {declared}")

    if declared is None:
        return _infer(value, where)

    def mismatch():
        return BindError(f"{where}: expected {declared}, got {type(value).__name__}")

    if declared.enum_type is not None:
        if not isinstance(value, declared.enum_type):
            raise mismatch()
        return BindValue(declared.kind, enum_to_payload(value))

    if declared.is_bool:
        if not isinstance(value, bool):
            raise mismatch()
        return BindValue(ValueKind.INTEGER, int(value))

    if declared.kind is ValueKind.INTEGER:
        if isinstance(value, bool) or not isinstance(value, int):
            raise mismatch()
        number = int(value)
        if declared.min_value is not None and number < declared.min_value:
            raise BindError(f"{where}: {number} is below the range of {declared}")
        if declared.max_value is not None and number > declared.max_value:
            raise BindError(f"{where}: {number} is above the range of {declared}")
        if number > INT64_MAX:
            raise BindError(f"{where}: {number} does not fit in a signed 64-bit column")
        return BindValue(ValueKind.INTEGER, number)

    if declared.kind is ValueKind.FLOAT:
        if not isinstance(value, float):
            raise mismatch()
        if declared.single_precision:
            value = _to_single_precision(value)
        return BindValue(ValueKind.FLOAT, float(value))

    if declared.kind is ValueKind.TEXT:
        if not isinstance(value, str):
            raise mismatch()
        if isinstance(value, enum.Enum):
            value = value.value
        return BindValue(ValueKind.TEXT, str(value))

    if declared.kind is ValueKind.BLOB:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise mismatch()
        return BindValue(ValueKind.BLOB, bytes(value))

    raise mismatch()


def _dataclass_hints(obj):
    try:
        return typing.get_type_hints(type(obj), include_extras=True)
    except (NameError, TypeError):
        return {f.name: f.type for f in dataclasses.fields(obj)}


def _field_declared(hints, name, where):
    try:
        return declared_type_from_annotation(hints.get(name))
    except TypeError as e:
        raise BindError(f"{where}: {e}") from None


def bind_args(query: Query, args: Any = None) -> List[BindValue]:
    """Validate ``args`` against ``query`` and return one BindValue per parameter.

    ``args`` may be a sequence (positional placeholders), a mapping (named
    placeholders) or a dataclass instance (either style, using its field
    annotations as the declared type of untyped placeholders).
    """
    if args is None:
        args = ()

    count = query.parameter_count

    if dataclasses.is_dataclass(args) and not isinstance(args, type):
        hints = _dataclass_hints(args)
        if query.named:
            values = []
            for ph in query.placeholders:
                where = f"parameter :{ph.name}"
                if not hasattr(args, ph.name):
                    raise BindError(f"Missing parameter '{ph.name}' on {type(args).__name__}")
                declared = ph.declared or _field_declared(hints, ph.name, where)
                values.append(to_bind_value(getattr(args, ph.name), declared, where))
            return values

        fields = dataclasses.fields(args)
        if len(fields) != count:
            raise BindError(
                f"Incorrect number of parameters: expected {count}, got {len(fields)} fields on {type(args).__name__}"
            )
        values = []
        for ph, f in zip(query.placeholders, fields):
            where = f"parameter {ph.index} ({f.name})"
            declared = ph.declared or _field_declared(hints, f.name, where)
            values.append(to_bind_value(getattr(args, f.name), declared, where))
        return values

    if isinstance(args, collections.abc.Mapping):
        if count and not query.named:
            raise BindError("Mixed parameter styles are not supported: got named parameters with ? placeholders")
        values = []
        for ph in query.placeholders:
            if ph.name not in args:
                raise BindError(f"Missing parameter '{ph.name}'")
            values.append(to_bind_value(args[ph.name], ph.declared, f"parameter :{ph.name}"))
        return values

    if isinstance(args, (str, bytes, bytearray)) or not isinstance(args, collections.abc.Sequence):
        raise BindError(f"Parameters must be a sequence, a mapping or a dataclass, got {type(args).__name__}")
    if query.named:
        raise BindError("Mixed parameter styles are not supported: got positional parameters with named placeholders")
    if len(args) != count:
        raise BindError(f"Incorrect number of parameters: expected {count}, got {len(args)}")
    return [
        to_bind_value(value, ph.declared, f"parameter {ph.index}")
        for ph, value in zip(query.placeholders, args)
    ]
