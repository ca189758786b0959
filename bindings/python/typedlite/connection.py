"""Opening, using and closing a database connection.

    # File database
    conn = typedlite.open(InitOptions(
        mode=Mode.file("/tmp/data.db"),
        open_flags=OpenFlags(write=True, create=True),
    ))

    # In memory database
    conn = typedlite.open(InitOptions(mode=Mode.memory(), open_flags=OpenFlags(write=True)))
"""
from __future__ import annotations

import dataclasses
import enum
import os
from typing import Any, List, Optional

from . import native
from .binder import bind_args, is_blank_sql, parse_template
from .engine import Engine
from .errors import (
    BindError,
    Diagnostics,
    MisuseError,
    ThreadSafetyError,
    detailed_error_from_code,
    detailed_error_from_connection,
    error_from_result_code,
)
from .log import get_logger
from .statement import Statement

log = get_logger("connection")

MEMORY_PATH = ":memory:"


class ThreadingMode(enum.Enum):
    """Threading mode used by the engine. See https://sqlite.org/threadsafe.html"""

    # Unsafe to use from more than a single thread at once.
    SINGLE_THREAD = "single_thread"
    # Safe from several threads provided a single connection is not used by
    # more than one thread at once. Not enforced here.
    MULTI_THREAD = "multi_thread"
    # Safe from several threads with no restriction.
    SERIALIZED = "serialized"


@dataclasses.dataclass(frozen=True)
class Mode:
    """Where the database lives: a file path, or memory when ``path`` is None."""

    path: Optional[str] = None

    @classmethod
    def file(cls, path) -> "Mode":
        return cls(os.fspath(path))

    @classmethod
    def memory(cls) -> "Mode":
        return cls(None)

    @property
    def is_memory(self) -> bool:
        return self.path is None


@dataclasses.dataclass(frozen=True)
class OpenFlags:
    """Access flags.

    * write=False, create=False: read only
    * write=True,  create=False: read write
    * write=True,  create=True:  read write, creating the database if missing
    """

    write: bool = False
    create: bool = False

    def __post_init__(self):
        if self.create and not self.write:
            raise ValueError("OpenFlags(create=True) requires write=True")

    def to_native(self) -> int:
        flags = native.SQLITE_OPEN_READWRITE if self.write else native.SQLITE_OPEN_READONLY
        if self.create:
            flags |= native.SQLITE_OPEN_CREATE
        return flags


@dataclasses.dataclass
class InitOptions:
    # Defaults to an in-memory database.
    mode: Mode = dataclasses.field(default_factory=Mode.memory)
    # Defaults to a read only database.
    open_flags: OpenFlags = dataclasses.field(default_factory=OpenFlags)
    threading_mode: ThreadingMode = ThreadingMode.SERIALIZED
    # Whether concurrent connections share the same page cache.
    shared_cache: bool = False
    # If provided, populated in case of failures.
    diags: Optional[Diagnostics] = None
    # Defaults to the libsqlite3 engine.
    engine: Optional[Engine] = None


@dataclasses.dataclass
class ExecOptions:
    # If provided, populated in case of failures.
    diags: Optional[Diagnostics] = None


def is_thread_safe(engine: Optional[Engine] = None) -> bool:
    engine = engine if engine is not None else native.default_engine()
    return engine.threadsafe() > 0


def open_flags_for(options: InitOptions) -> int:
    """Effective flag set passed to the engine's open call."""
    flags = native.SQLITE_OPEN_URI | options.open_flags.to_native()
    if options.shared_cache:
        flags |= native.SQLITE_OPEN_SHAREDCACHE
    if options.threading_mode is ThreadingMode.MULTI_THREAD:
        flags |= native.SQLITE_OPEN_NOMUTEX
    elif options.threading_mode is ThreadingMode.SERIALIZED:
        flags |= native.SQLITE_OPEN_FULLMUTEX
    if options.mode.is_memory:
        flags |= native.SQLITE_OPEN_MEMORY
    return flags


def open(options: Optional[InitOptions] = None) -> "Connection":
    """Open a connection with the provided options."""
    options = options if options is not None else InitOptions()
    engine = options.engine if options.engine is not None else native.default_engine()

    # Validate the threading mode before touching the engine.
    if options.threading_mode is not ThreadingMode.SINGLE_THREAD and not is_thread_safe(engine):
        if options.diags is not None:
            options.diags.populate("the linked sqlite build is not thread safe")
        raise ThreadSafetyError(
            f"Threading mode {options.threading_mode.name} requires a thread safe sqlite build"
        )

    flags = open_flags_for(options)
    path = MEMORY_PATH if options.mode.is_memory else options.mode.path
    rc, handle = engine.open(os.fsencode(path), flags)

    if rc != native.SQLITE_OK or handle is None:
        if handle is not None:
            detail = detailed_error_from_connection(engine, handle)
            # A handle is returned for most failures; it still has to be released.
            engine.close(handle)
        else:
            detail = detailed_error_from_code(rc, engine)
        if options.diags is not None:
            options.diags.populate(f"unable to open database {path!r}", detail)
        log.warning("open_failed", path=path, code=detail.code, kind=detail.kind.value)
        raise error_from_result_code(rc, detail, opening=True)

    log.debug("connection_opened", path=path, flags=flags, threading_mode=options.threading_mode.name)
    return Connection(engine, handle, options.mode, options.open_flags, options.threading_mode)


class Connection:
    """An open database handle.

    Owned by whoever opened it and closed exactly once, either explicitly or
    by leaving a ``with`` block.
    """

    def __init__(self, engine: Engine, handle, mode: Mode, open_flags: OpenFlags, threading_mode: ThreadingMode):
        self._engine = engine
        self._db = handle
        self.mode = mode
        self.open_flags = open_flags
        self.threading_mode = threading_mode
        self._statements: List[Statement] = []

    @property
    def is_open(self) -> bool:
        return self._db is not None

    def _check_open(self):
        if self._db is None:
            raise MisuseError("Connection is closed")

    def _raise_exec_error(self, diags, context, sql, values):
        detail = detailed_error_from_connection(self._engine, self._db)
        if diags is not None:
            diags.populate(context, detail)
        log.debug("statement_failed", sql=sql, code=detail.code, kind=detail.kind.value)
        raise error_from_result_code(detail.code, detail, sql=sql, params=values)

    def _forget_statement(self, stmt: Statement):
        if stmt in self._statements:
            self._statements.remove(stmt)

    def _compile(self, template: str, diags):
        try:
            return parse_template(template)
        except BindError as e:
            if diags is not None:
                diags.populate(str(e))
            raise

    def _prepare_query(self, query, diags) -> Statement:
        sql = query.sql.encode("utf-8")
        rc, stmt, tail = self._engine.prepare(self._db, sql)
        if rc != native.SQLITE_OK:
            if stmt is not None:
                self._engine.finalize(stmt)
            self._raise_exec_error(diags, "unable to prepare statement", query.sql, None)
        if not is_blank_sql(sql[tail:].decode("utf-8")):
            if stmt is not None:
                self._engine.finalize(stmt)
            e = BindError("Template holds more than one statement; use exec_multi for scripts")
            if diags is not None:
                diags.populate(str(e))
            raise e
        statement = Statement(self, query, stmt)
        self._statements.append(statement)
        return statement

    def prepare(self, template: str, options: Optional[ExecOptions] = None) -> Statement:
        """Compile ``template`` once for repeated use."""
        self._check_open()
        diags = options.diags if options is not None else None
        return self._prepare_query(self._compile(template, diags), diags)

    def exec(self, template: str, options: Optional[ExecOptions] = None, args: Any = None) -> int:
        """Execute a single statement and return the number of rows it changed.

        Arguments are validated against the template's placeholders before the
        statement is compiled; the statement is finalized whatever happens.
        """
        self._check_open()
        diags = options.diags if options is not None else None
        query = self._compile(template, diags)
        try:
            values = bind_args(query, args)
        except BindError as e:
            if diags is not None:
                diags.populate(str(e))
            raise
        with self._prepare_query(query, diags) as stmt:
            return stmt._execute(values, diags)

    def exec_multi(self, script: str, options: Optional[ExecOptions] = None) -> None:
        """Execute every statement of ``script`` in order. No parameters."""
        self._check_open()
        diags = options.diags if options is not None else None
        sql = script.encode("utf-8")
        offset = 0
        while offset < len(sql):
            rc, stmt, tail = self._engine.prepare(self._db, sql, offset)
            if rc != native.SQLITE_OK:
                if stmt is not None:
                    self._engine.finalize(stmt)
                self._raise_exec_error(diags, "unable to prepare statement", script, None)
            if stmt is None:
                if tail <= offset:
                    break
                offset = tail
                continue
            try:
                while True:
                    rc = self._engine.step(stmt)
                    if rc == native.SQLITE_ROW:
                        continue
                    if rc != native.SQLITE_DONE:
                        self._raise_exec_error(diags, "unable to step statement", script, None)
                    break
            finally:
                self._engine.finalize(stmt)
            offset = tail

    def one(self, shape, template: str, options: Optional[ExecOptions] = None, args: Any = None):
        """Return the first row decoded into ``shape``, or None."""
        with self.prepare(template, options) as stmt:
            return stmt.one(shape, args, options)

    def all(self, shape, template: str, options: Optional[ExecOptions] = None, args: Any = None) -> list:
        """Return every row decoded into ``shape``."""
        with self.prepare(template, options) as stmt:
            return stmt.all(shape, args, options)

    def rows_affected(self) -> int:
        """Rows changed by the most recent INSERT/UPDATE/DELETE on this connection."""
        self._check_open()
        return self._engine.changes(self._db)

    def last_insert_rowid(self) -> int:
        self._check_open()
        return self._engine.last_insert_rowid(self._db)

    def detailed_error(self):
        """The engine's last error on this connection."""
        self._check_open()
        return detailed_error_from_connection(self._engine, self._db)

    def close(self):
        self._check_open()
        for stmt in list(self._statements):
            stmt.finalize()
        self._engine.close(self._db)
        self._db = None
        log.debug("connection_closed", path=self.mode.path or MEMORY_PATH)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.is_open:
            self.close()

    def __repr__(self):
        state = "open" if self.is_open else "closed"
        return f"<Connection {state} path={self.mode.path or MEMORY_PATH!r}>"
