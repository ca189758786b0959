"""Diagnostics and result-code translation.

Every numeric result code coming out of the engine is mapped onto an
``ErrorKind`` here before it reaches a caller; exceptions carry the resulting
``DetailedError`` so callers can branch on ``exc.kind`` without knowing the
engine's numbering.
"""
from __future__ import annotations

import dataclasses
import enum
import json
from typing import Optional, Sequence

from . import native
from .values import BindValue, ValueKind


class ErrorKind(enum.Enum):
    ERROR = "ERROR"
    INTERNAL = "INTERNAL"
    PERM = "PERM"
    ABORT = "ABORT"
    BUSY = "BUSY"
    LOCKED = "LOCKED"
    NOMEM = "NOMEM"
    READONLY = "READONLY"
    INTERRUPT = "INTERRUPT"
    IOERR = "IOERR"
    CORRUPT = "CORRUPT"
    NOTFOUND = "NOTFOUND"
    FULL = "FULL"
    CANTOPEN = "CANTOPEN"
    PROTOCOL = "PROTOCOL"
    EMPTY = "EMPTY"
    SCHEMA = "SCHEMA"
    TOOBIG = "TOOBIG"
    CONSTRAINT = "CONSTRAINT"
    CONSTRAINT_CHECK = "CONSTRAINT_CHECK"
    CONSTRAINT_COMMITHOOK = "CONSTRAINT_COMMITHOOK"
    CONSTRAINT_FOREIGNKEY = "CONSTRAINT_FOREIGNKEY"
    CONSTRAINT_FUNCTION = "CONSTRAINT_FUNCTION"
    CONSTRAINT_NOTNULL = "CONSTRAINT_NOTNULL"
    CONSTRAINT_PRIMARYKEY = "CONSTRAINT_PRIMARYKEY"
    CONSTRAINT_TRIGGER = "CONSTRAINT_TRIGGER"
    CONSTRAINT_UNIQUE = "CONSTRAINT_UNIQUE"
    CONSTRAINT_VTAB = "CONSTRAINT_VTAB"
    CONSTRAINT_ROWID = "CONSTRAINT_ROWID"
    CONSTRAINT_PINNED = "CONSTRAINT_PINNED"
    CONSTRAINT_DATATYPE = "CONSTRAINT_DATATYPE"
    MISMATCH = "MISMATCH"
    MISUSE = "MISUSE"
    NOLFS = "NOLFS"
    AUTH = "AUTH"
    FORMAT = "FORMAT"
    RANGE = "RANGE"
    NOTADB = "NOTADB"
    NOTICE = "NOTICE"
    WARNING = "WARNING"
    UNKNOWN = "UNKNOWN"

    @property
    def is_constraint(self) -> bool:
        return self.value.startswith("CONSTRAINT")


_PRIMARY_KINDS = {
    native.SQLITE_ERROR: ErrorKind.ERROR,
    native.SQLITE_INTERNAL: ErrorKind.INTERNAL,
    native.SQLITE_PERM: ErrorKind.PERM,
    native.SQLITE_ABORT: ErrorKind.ABORT,
    native.SQLITE_BUSY: ErrorKind.BUSY,
    native.SQLITE_LOCKED: ErrorKind.LOCKED,
    native.SQLITE_NOMEM: ErrorKind.NOMEM,
    native.SQLITE_READONLY: ErrorKind.READONLY,
    native.SQLITE_INTERRUPT: ErrorKind.INTERRUPT,
    native.SQLITE_IOERR: ErrorKind.IOERR,
    native.SQLITE_CORRUPT: ErrorKind.CORRUPT,
    native.SQLITE_NOTFOUND: ErrorKind.NOTFOUND,
    native.SQLITE_FULL: ErrorKind.FULL,
    native.SQLITE_CANTOPEN: ErrorKind.CANTOPEN,
    native.SQLITE_PROTOCOL: ErrorKind.PROTOCOL,
    native.SQLITE_EMPTY: ErrorKind.EMPTY,
    native.SQLITE_SCHEMA: ErrorKind.SCHEMA,
    native.SQLITE_TOOBIG: ErrorKind.TOOBIG,
    native.SQLITE_CONSTRAINT: ErrorKind.CONSTRAINT,
    native.SQLITE_MISMATCH: ErrorKind.MISMATCH,
    native.SQLITE_MISUSE: ErrorKind.MISUSE,
    native.SQLITE_NOLFS: ErrorKind.NOLFS,
    native.SQLITE_AUTH: ErrorKind.AUTH,
    native.SQLITE_FORMAT: ErrorKind.FORMAT,
    native.SQLITE_RANGE: ErrorKind.RANGE,
    native.SQLITE_NOTADB: ErrorKind.NOTADB,
    native.SQLITE_NOTICE: ErrorKind.NOTICE,
    native.SQLITE_WARNING: ErrorKind.WARNING,
}

_EXTENDED_KINDS = {
    native.SQLITE_CONSTRAINT_CHECK: ErrorKind.CONSTRAINT_CHECK,
    native.SQLITE_CONSTRAINT_COMMITHOOK: ErrorKind.CONSTRAINT_COMMITHOOK,
    native.SQLITE_CONSTRAINT_FOREIGNKEY: ErrorKind.CONSTRAINT_FOREIGNKEY,
    native.SQLITE_CONSTRAINT_FUNCTION: ErrorKind.CONSTRAINT_FUNCTION,
    native.SQLITE_CONSTRAINT_NOTNULL: ErrorKind.CONSTRAINT_NOTNULL,
    native.SQLITE_CONSTRAINT_PRIMARYKEY: ErrorKind.CONSTRAINT_PRIMARYKEY,
    native.SQLITE_CONSTRAINT_TRIGGER: ErrorKind.CONSTRAINT_TRIGGER,
    native.SQLITE_CONSTRAINT_UNIQUE: ErrorKind.CONSTRAINT_UNIQUE,
    native.SQLITE_CONSTRAINT_VTAB: ErrorKind.CONSTRAINT_VTAB,
    native.SQLITE_CONSTRAINT_ROWID: ErrorKind.CONSTRAINT_ROWID,
    native.SQLITE_CONSTRAINT_PINNED: ErrorKind.CONSTRAINT_PINNED,
    native.SQLITE_CONSTRAINT_DATATYPE: ErrorKind.CONSTRAINT_DATATYPE,
}


def kind_from_code(code: int) -> ErrorKind:
    """Map a primary or extended result code to its ErrorKind."""
    if code in _EXTENDED_KINDS:
        return _EXTENDED_KINDS[code]
    return _PRIMARY_KINDS.get(code & 0xFF, ErrorKind.UNKNOWN)


@dataclasses.dataclass(frozen=True)
class DetailedError:
    kind: ErrorKind
    code: int
    message: str
    offset: Optional[int] = None

    def __str__(self):
        return f"{{code: {self.code}, kind: {self.kind.value}, message: {self.message}}}"


@dataclasses.dataclass
class Diagnostics:
    """Optional sink populated by a failing call.

    Owned by the caller; a connection never keeps a reference to it past the
    call it was passed to.
    """

    message: str = ""
    err: Optional[DetailedError] = None

    def populate(self, message: str = "", err: Optional[DetailedError] = None):
        self.message = message
        self.err = err

    def reset(self):
        self.populate()

    @property
    def is_empty(self) -> bool:
        return not self.message and self.err is None

    def __str__(self):
        if self.err is not None:
            if self.message:
                return f"{{message: {self.message}, detailed error: {self.err}}}"
            return str(self.err)
        if self.message:
            return self.message
        return "none"


def detailed_error_from_connection(engine, db) -> DetailedError:
    """Read the last error off a live handle."""
    code, extended, message, offset = engine.last_error(db)
    # An engine without extended codes may report 0 here.
    extended = extended or code
    return DetailedError(
        kind=kind_from_code(extended),
        code=extended,
        message=message,
        offset=offset if offset is not None and offset >= 0 else None,
    )


def detailed_error_from_code(code: int, engine=None) -> DetailedError:
    """Fallback for failures with no handle to read from."""
    if engine is not None:
        message = engine.errstr(code)
    else:
        message = kind_from_code(code).value.lower().replace("_", " ")
    return DetailedError(kind=kind_from_code(code), code=code, message=message)


# Exceptions
class Error(Exception):
    def __init__(self, message, detail: Optional[DetailedError] = None):
        super().__init__(message)
        self.detail = detail

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.detail.kind if self.detail is not None else None


class OpenError(Error):
    pass


class ThreadSafetyError(Error):
    pass


class MisuseError(Error):
    pass


class BindError(Error):
    pass


class DecodeError(Error):
    pass


class ExecError(Error):
    pass


class ConstraintError(ExecError):
    pass


class BusyError(ExecError):
    pass


class LockedError(ExecError):
    pass


class ReadOnlyError(ExecError):
    pass


_EXEC_CLASSES = {
    ErrorKind.BUSY: BusyError,
    ErrorKind.LOCKED: LockedError,
    ErrorKind.READONLY: ReadOnlyError,
}


def _bound_for_context(value: BindValue, *, max_text=200, max_blob=64):
    """A JSON-friendly rendering of one bound value, capped in size."""
    kind = value.kind
    if kind is ValueKind.NULL:
        return None
    if kind is ValueKind.TEXT:
        text = value.payload
        return text if len(text) <= max_text else text[:max_text] + "…"
    if kind is ValueKind.BLOB:
        blob = bytes(value.payload)
        return {"blob": blob[:max_blob].hex(), "len": len(blob), "truncated": len(blob) > max_blob}
    return value.payload


def _params_for_context(values: Optional[Sequence[BindValue]], *, max_items=50):
    if values is None:
        return None
    rendered = [_bound_for_context(v) for v in values[:max_items]]
    if len(values) > max_items:
        rendered.append(f"<{len(values) - max_items} more>")
    return rendered


def error_from_result_code(code: int, detail: Optional[DetailedError] = None, *, opening=False, sql=None, params=None) -> Error:
    """Build the exception for a failed native call.

    ``detail`` supplies the message and the extended code when available;
    ``opening`` selects OpenError for failures of the open call itself.
    """
    if detail is None:
        detail = detailed_error_from_code(code)
    kind = detail.kind

    if opening:
        cls = OpenError
    elif kind.is_constraint:
        cls = ConstraintError
    else:
        cls = _EXEC_CLASSES.get(kind, ExecError)

    msg = detail.message or kind.value
    if sql is not None:
        ctx = {
            "native_code": int(detail.code),
            "kind": kind.value,
            "sql": sql,
            "params": _params_for_context(params),
        }
        if detail.offset is not None:
            ctx["offset"] = detail.offset
        msg = msg + "\nContext: " + json.dumps(ctx, ensure_ascii=False)
    return cls(msg, detail)
