"""typedlite: typed SQLite bindings.

    import typedlite
    from typedlite import InitOptions, Mode, OpenFlags

    with typedlite.open(InitOptions(mode=Mode.memory(), open_flags=OpenFlags(write=True))) as conn:
        conn.exec("CREATE TABLE user(name text, id integer PRIMARY KEY, age integer)")
        conn.exec("INSERT INTO user(name, id, age) VALUES(?{text}, ?{usize}, ?{usize})", args=("Vincent", 20, 33))
        count = conn.one(int, "SELECT COUNT(*) FROM user")
"""
from .binder import Placeholder, Query, bind_args, parse_template, to_bind_value
from .connection import (
    Connection,
    ExecOptions,
    InitOptions,
    Mode,
    OpenFlags,
    ThreadingMode,
    is_thread_safe,
    open,
)
from .decoder import compile_shape, decode_value
from .engine import Engine
from .errors import (
    BindError,
    BusyError,
    ConstraintError,
    DecodeError,
    DetailedError,
    Diagnostics,
    Error,
    ErrorKind,
    ExecError,
    LockedError,
    MisuseError,
    OpenError,
    ReadOnlyError,
    ThreadSafetyError,
    detailed_error_from_code,
    detailed_error_from_connection,
    error_from_result_code,
    kind_from_code,
)
from .log import get_logger, setup_logging
from .native import NativeEngine, library_version, load_library
from .statement import Statement
from .values import BindValue, ColumnValue, DeclaredType, ValueKind

__version__ = "0.1.0"
