"""Capability interface the binding needs from an embedded SQL engine.

The connection manager, binder and decoder only ever talk to an ``Engine``.
``typedlite.native.NativeEngine`` implements it over libsqlite3; any other
implementation honoring the same result codes can be dropped in through
``InitOptions(engine=...)``.

Handles (``db`` and ``stmt``) are opaque to the rest of the package.
"""
import abc


class Engine(abc.ABC):
    @abc.abstractmethod
    def threadsafe(self) -> int:
        """Non-zero when the linked build can be used from several threads."""

    @abc.abstractmethod
    def open(self, filename: bytes, flags: int):
        """Open a database. Returns ``(rc, db)``; ``db`` may be set even on failure."""

    @abc.abstractmethod
    def close(self, db) -> int:
        pass

    @abc.abstractmethod
    def prepare(self, db, sql: bytes, offset: int = 0):
        """Compile the first statement of ``sql[offset:]``.

        Returns ``(rc, stmt, tail)`` where ``tail`` is the byte offset just past
        the compiled statement. ``stmt`` is None for empty input.
        """

    @abc.abstractmethod
    def bind_parameter_count(self, stmt) -> int:
        pass

    @abc.abstractmethod
    def bind(self, stmt, index: int, value) -> int:
        """Bind a ``BindValue`` to the 1-based parameter ``index``."""

    @abc.abstractmethod
    def step(self, stmt) -> int:
        pass

    @abc.abstractmethod
    def reset(self, stmt) -> int:
        pass

    @abc.abstractmethod
    def column_count(self, stmt) -> int:
        pass

    @abc.abstractmethod
    def column_name(self, stmt, index: int) -> str:
        pass

    @abc.abstractmethod
    def column_value(self, stmt, index: int):
        """Read column ``index`` of the current row as a ``ColumnValue``."""

    @abc.abstractmethod
    def finalize(self, stmt) -> int:
        pass

    @abc.abstractmethod
    def last_error(self, db):
        """Returns ``(code, extended_code, message, offset)`` for the last failure on ``db``."""

    @abc.abstractmethod
    def errstr(self, code: int) -> str:
        pass

    @abc.abstractmethod
    def changes(self, db) -> int:
        pass

    @abc.abstractmethod
    def last_insert_rowid(self, db) -> int:
        pass
