import ctypes
import ctypes.util
import os
from ctypes import c_int, c_int64, c_double, c_char_p, c_void_p, POINTER

from .engine import Engine
from .log import get_logger
from .values import ValueKind, ColumnValue

# Result codes (must match sqlite3.h).
SQLITE_OK = 0
SQLITE_ERROR = 1
SQLITE_INTERNAL = 2
SQLITE_PERM = 3
SQLITE_ABORT = 4
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_NOMEM = 7
SQLITE_READONLY = 8
SQLITE_INTERRUPT = 9
SQLITE_IOERR = 10
SQLITE_CORRUPT = 11
SQLITE_NOTFOUND = 12
SQLITE_FULL = 13
SQLITE_CANTOPEN = 14
SQLITE_PROTOCOL = 15
SQLITE_EMPTY = 16
SQLITE_SCHEMA = 17
SQLITE_TOOBIG = 18
SQLITE_CONSTRAINT = 19
SQLITE_MISMATCH = 20
SQLITE_MISUSE = 21
SQLITE_NOLFS = 22
SQLITE_AUTH = 23
SQLITE_FORMAT = 24
SQLITE_RANGE = 25
SQLITE_NOTADB = 26
SQLITE_NOTICE = 27
SQLITE_WARNING = 28
SQLITE_ROW = 100
SQLITE_DONE = 101

# Extended constraint codes: primary code in the low byte, detail above it.
SQLITE_CONSTRAINT_CHECK = SQLITE_CONSTRAINT | (1 << 8)
SQLITE_CONSTRAINT_COMMITHOOK = SQLITE_CONSTRAINT | (2 << 8)
SQLITE_CONSTRAINT_FOREIGNKEY = SQLITE_CONSTRAINT | (3 << 8)
SQLITE_CONSTRAINT_FUNCTION = SQLITE_CONSTRAINT | (4 << 8)
SQLITE_CONSTRAINT_NOTNULL = SQLITE_CONSTRAINT | (5 << 8)
SQLITE_CONSTRAINT_PRIMARYKEY = SQLITE_CONSTRAINT | (6 << 8)
SQLITE_CONSTRAINT_TRIGGER = SQLITE_CONSTRAINT | (7 << 8)
SQLITE_CONSTRAINT_UNIQUE = SQLITE_CONSTRAINT | (8 << 8)
SQLITE_CONSTRAINT_VTAB = SQLITE_CONSTRAINT | (9 << 8)
SQLITE_CONSTRAINT_ROWID = SQLITE_CONSTRAINT | (10 << 8)
SQLITE_CONSTRAINT_PINNED = SQLITE_CONSTRAINT | (11 << 8)
SQLITE_CONSTRAINT_DATATYPE = SQLITE_CONSTRAINT | (12 << 8)

# sqlite3_open_v2 flags
SQLITE_OPEN_READONLY = 0x00000001
SQLITE_OPEN_READWRITE = 0x00000002
SQLITE_OPEN_CREATE = 0x00000004
SQLITE_OPEN_URI = 0x00000040
SQLITE_OPEN_MEMORY = 0x00000080
SQLITE_OPEN_NOMUTEX = 0x00008000
SQLITE_OPEN_FULLMUTEX = 0x00010000
SQLITE_OPEN_SHAREDCACHE = 0x00020000

# Destructor sentinel telling the engine to copy text/blob buffers before returning.
SQLITE_TRANSIENT = c_void_p(-1)

log = get_logger("native")

_lib = None


def _candidate_paths():
    lib_path = os.environ.get("TYPEDLITE_NATIVE_LIB")
    if lib_path:
        return [lib_path]

    candidates = []
    found = ctypes.util.find_library("sqlite3")
    if found:
        candidates.append(found)

    # Common sonames across platforms
    candidates.extend([
        "libsqlite3.so.0",
        "libsqlite3.so",
        "libsqlite3.dylib",
        "sqlite3.dll",
    ])

    # Last resort: the interpreter's own sqlite3 extension links the engine,
    # either statically or as a dependency, so its symbols resolve through it.
    try:
        import _sqlite3
        candidates.append(_sqlite3.__file__)
    except ImportError:
        pass

    return candidates


def load_library():
    global _lib
    if _lib is not None:
        return _lib

    errors = []
    lib = None
    for path in _candidate_paths():
        try:
            candidate = ctypes.CDLL(path)
        except OSError as e:
            errors.append(f"{path}: {e}")
            continue
        if not hasattr(candidate, "sqlite3_open_v2"):
            errors.append(f"{path}: no sqlite3_open_v2 symbol")
            continue
        lib = candidate
        log.debug("library_loaded", path=path)
        break

    if lib is None:
        raise RuntimeError(
            "Could not find the sqlite3 native library. Set TYPEDLITE_NATIVE_LIB env var. "
            + "; ".join(errors)
        )

    # Define signatures

    lib.sqlite3_threadsafe.argtypes = []
    lib.sqlite3_threadsafe.restype = c_int

    lib.sqlite3_libversion.argtypes = []
    lib.sqlite3_libversion.restype = c_char_p

    lib.sqlite3_open_v2.argtypes = [c_char_p, POINTER(c_void_p), c_int, c_char_p]
    lib.sqlite3_open_v2.restype = c_int

    lib.sqlite3_close.argtypes = [c_void_p]
    lib.sqlite3_close.restype = c_int

    # Errors
    lib.sqlite3_errcode.argtypes = [c_void_p]
    lib.sqlite3_errcode.restype = c_int

    lib.sqlite3_extended_errcode.argtypes = [c_void_p]
    lib.sqlite3_extended_errcode.restype = c_int

    lib.sqlite3_errmsg.argtypes = [c_void_p]
    lib.sqlite3_errmsg.restype = c_char_p

    lib.sqlite3_errstr.argtypes = [c_int]
    lib.sqlite3_errstr.restype = c_char_p

    # sqlite3_error_offset only exists in 3.38+
    if hasattr(lib, "sqlite3_error_offset"):
        lib.sqlite3_error_offset.argtypes = [c_void_p]
        lib.sqlite3_error_offset.restype = c_int

    # Statements
    lib.sqlite3_prepare_v2.argtypes = [c_void_p, c_void_p, c_int, POINTER(c_void_p), POINTER(c_void_p)]
    lib.sqlite3_prepare_v2.restype = c_int

    lib.sqlite3_finalize.argtypes = [c_void_p]
    lib.sqlite3_finalize.restype = c_int

    lib.sqlite3_reset.argtypes = [c_void_p]
    lib.sqlite3_reset.restype = c_int

    lib.sqlite3_clear_bindings.argtypes = [c_void_p]
    lib.sqlite3_clear_bindings.restype = c_int

    lib.sqlite3_step.argtypes = [c_void_p]
    lib.sqlite3_step.restype = c_int

    # Bindings
    lib.sqlite3_bind_parameter_count.argtypes = [c_void_p]
    lib.sqlite3_bind_parameter_count.restype = c_int

    lib.sqlite3_bind_null.argtypes = [c_void_p, c_int]
    lib.sqlite3_bind_null.restype = c_int

    lib.sqlite3_bind_int64.argtypes = [c_void_p, c_int, c_int64]
    lib.sqlite3_bind_int64.restype = c_int

    lib.sqlite3_bind_double.argtypes = [c_void_p, c_int, c_double]
    lib.sqlite3_bind_double.restype = c_int

    lib.sqlite3_bind_text.argtypes = [c_void_p, c_int, c_char_p, c_int, c_void_p]
    lib.sqlite3_bind_text.restype = c_int

    lib.sqlite3_bind_blob.argtypes = [c_void_p, c_int, c_char_p, c_int, c_void_p]
    lib.sqlite3_bind_blob.restype = c_int

    lib.sqlite3_bind_zeroblob.argtypes = [c_void_p, c_int, c_int]
    lib.sqlite3_bind_zeroblob.restype = c_int

    # Columns
    lib.sqlite3_column_count.argtypes = [c_void_p]
    lib.sqlite3_column_count.restype = c_int

    lib.sqlite3_column_name.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_name.restype = c_char_p

    lib.sqlite3_column_type.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_type.restype = c_int

    lib.sqlite3_column_int64.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_int64.restype = c_int64

    lib.sqlite3_column_double.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_double.restype = c_double

    # Returned as raw pointers: the engine reports the length separately and
    # text may contain NUL bytes.
    lib.sqlite3_column_text.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_text.restype = c_void_p

    lib.sqlite3_column_blob.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_blob.restype = c_void_p

    lib.sqlite3_column_bytes.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_bytes.restype = c_int

    # Rows Affected
    lib.sqlite3_changes.argtypes = [c_void_p]
    lib.sqlite3_changes.restype = c_int

    lib.sqlite3_last_insert_rowid.argtypes = [c_void_p]
    lib.sqlite3_last_insert_rowid.restype = c_int64

    _lib = lib
    return _lib


def library_version() -> str:
    return load_library().sqlite3_libversion().decode("ascii")


class NativeEngine(Engine):
    """ctypes implementation of ``Engine`` over libsqlite3."""

    def __init__(self, lib=None):
        self._lib = lib if lib is not None else load_library()

    def threadsafe(self):
        return self._lib.sqlite3_threadsafe()

    def open(self, filename, flags):
        db = c_void_p()
        rc = self._lib.sqlite3_open_v2(filename, ctypes.byref(db), flags, None)
        return rc, (db if db.value else None)

    def close(self, db):
        return self._lib.sqlite3_close(db)

    def prepare(self, db, sql, offset=0):
        buf = ctypes.create_string_buffer(sql, len(sql) + 1)
        base = ctypes.addressof(buf)
        stmt = c_void_p()
        tail = c_void_p()
        rc = self._lib.sqlite3_prepare_v2(
            db,
            base + offset,
            len(sql) - offset,
            ctypes.byref(stmt),
            ctypes.byref(tail),
        )
        tail_offset = (tail.value - base) if tail.value else len(sql)
        return rc, (stmt if stmt.value else None), tail_offset

    def bind_parameter_count(self, stmt):
        return self._lib.sqlite3_bind_parameter_count(stmt)

    def bind(self, stmt, index, value):
        kind = value.kind
        if kind is ValueKind.NULL:
            return self._lib.sqlite3_bind_null(stmt, index)
        if kind is ValueKind.INTEGER:
            return self._lib.sqlite3_bind_int64(stmt, index, value.payload)
        if kind is ValueKind.FLOAT:
            return self._lib.sqlite3_bind_double(stmt, index, value.payload)
        if kind is ValueKind.TEXT:
            b = value.payload.encode("utf-8")
            return self._lib.sqlite3_bind_text(stmt, index, b, len(b), SQLITE_TRANSIENT)
        if kind is ValueKind.BLOB:
            b = bytes(value.payload)
            if not b:
                # A NULL data pointer would bind SQL NULL instead of an empty blob.
                return self._lib.sqlite3_bind_zeroblob(stmt, index, 0)
            return self._lib.sqlite3_bind_blob(stmt, index, b, len(b), SQLITE_TRANSIENT)
        raise ValueError(f"Unknown value kind {kind!r}")

    def step(self, stmt):
        return self._lib.sqlite3_step(stmt)

    def reset(self, stmt):
        if stmt is None:
            return SQLITE_OK
        self._lib.sqlite3_clear_bindings(stmt)
        return self._lib.sqlite3_reset(stmt)

    def column_count(self, stmt):
        return self._lib.sqlite3_column_count(stmt)

    def column_name(self, stmt, index):
        name = self._lib.sqlite3_column_name(stmt, index)
        return name.decode("utf-8") if name else ""

    def column_value(self, stmt, index):
        lib = self._lib
        kind = lib.sqlite3_column_type(stmt, index)
        if kind == ValueKind.INTEGER:
            return ColumnValue(ValueKind.INTEGER, int(lib.sqlite3_column_int64(stmt, index)))
        if kind == ValueKind.FLOAT:
            return ColumnValue(ValueKind.FLOAT, float(lib.sqlite3_column_double(stmt, index)))
        if kind == ValueKind.TEXT:
            # Pointer first, then length: the length is only valid after the conversion.
            ptr = lib.sqlite3_column_text(stmt, index)
            n = lib.sqlite3_column_bytes(stmt, index)
            raw = ctypes.string_at(ptr, n) if ptr and n > 0 else b""
            return ColumnValue(ValueKind.TEXT, raw.decode("utf-8"))
        if kind == ValueKind.BLOB:
            ptr = lib.sqlite3_column_blob(stmt, index)
            n = lib.sqlite3_column_bytes(stmt, index)
            raw = ctypes.string_at(ptr, n) if ptr and n > 0 else b""
            return ColumnValue(ValueKind.BLOB, raw)
        return ColumnValue(ValueKind.NULL)

    def finalize(self, stmt):
        return self._lib.sqlite3_finalize(stmt)

    def last_error(self, db):
        lib = self._lib
        code = lib.sqlite3_errcode(db)
        extended = lib.sqlite3_extended_errcode(db)
        msg = lib.sqlite3_errmsg(db)
        # Native messages should be UTF-8, but don't crash if not.
        message = msg.decode("utf-8", errors="replace") if msg else ""
        offset = -1
        if hasattr(lib, "sqlite3_error_offset"):
            offset = lib.sqlite3_error_offset(db)
        return code, extended, message, offset

    def errstr(self, code):
        msg = self._lib.sqlite3_errstr(code)
        return msg.decode("utf-8", errors="replace") if msg else f"Unknown error {code}"

    def changes(self, db):
        return self._lib.sqlite3_changes(db)

    def last_insert_rowid(self, db):
        return self._lib.sqlite3_last_insert_rowid(db)


_default_engine = None


def default_engine() -> NativeEngine:
    global _default_engine
    if _default_engine is None:
        _default_engine = NativeEngine()
    return _default_engine
