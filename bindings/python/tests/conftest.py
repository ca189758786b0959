import pytest
import typedlite
from typedlite import native
from typedlite import InitOptions, Mode, OpenFlags


class CountingEngine(native.NativeEngine):
    """The real engine, counting handles so tests can check nothing leaks.

    ``threadsafe`` overrides what the linked build reports.
    """

    def __init__(self, threadsafe=None):
        super().__init__()
        self._threadsafe = threadsafe
        self.open_calls = []
        self.opened = 0
        self.closed = 0
        self.prepared = 0
        self.finalized = 0

    def threadsafe(self):
        if self._threadsafe is not None:
            return self._threadsafe
        return super().threadsafe()

    def open(self, filename, flags):
        self.open_calls.append((filename, flags))
        rc, db = super().open(filename, flags)
        if db is not None:
            self.opened += 1
        return rc, db

    def close(self, db):
        self.closed += 1
        return super().close(db)

    def prepare(self, db, sql, offset=0):
        rc, stmt, tail = super().prepare(db, sql, offset)
        if stmt is not None:
            self.prepared += 1
        return rc, stmt, tail

    def finalize(self, stmt):
        self.finalized += 1
        return super().finalize(stmt)

    @property
    def live_handles(self):
        return self.opened - self.closed

    @property
    def live_statements(self):
        return self.prepared - self.finalized


class NoHandleEngine(CountingEngine):
    """Fails every open before a handle exists, like an allocation failure."""

    def open(self, filename, flags):
        self.open_calls.append((filename, flags))
        return native.SQLITE_NOMEM, None


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture
def engine():
    return CountingEngine()


@pytest.fixture
def no_handle_engine():
    return NoHandleEngine()


@pytest.fixture
def make_engine():
    return CountingEngine


@pytest.fixture
def conn(engine):
    c = typedlite.open(InitOptions(
        mode=Mode.memory(),
        open_flags=OpenFlags(write=True, create=True),
        engine=engine,
    ))
    yield c
    if c.is_open:
        c.close()


@pytest.fixture
def user_table(conn):
    conn.exec_multi("""
        DROP TABLE IF EXISTS user;
        DROP TABLE IF EXISTS article;
        CREATE TABLE user(
            name text,
            id integer PRIMARY KEY,
            age integer,
            weight real,
            favorite_color text
        );
        CREATE TABLE article(
            id integer PRIMARY KEY,
            author_id integer,
            data text,
            is_published integer,
            FOREIGN KEY(author_id) REFERENCES user(id)
        );
    """)
    return conn
