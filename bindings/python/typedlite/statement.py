from __future__ import annotations

from typing import Any, Iterator, List, Optional

from . import native
from .binder import Query, bind_args
from .decoder import column_names, compile_shape, read_row
from .errors import BindError, DecodeError, MisuseError
from .values import BindValue


def _diags(options):
    return options.diags if options is not None else None


class Statement:
    """A compiled template, reusable with different arguments.

    Obtained from ``Connection.prepare``. Finalize it (or use it as a context
    manager) when done; the connection finalizes whatever is left on close.
    """

    def __init__(self, connection, query: Query, stmt):
        self._connection = connection
        self._engine = connection._engine
        self.query = query
        self._stmt = stmt
        self._finalized = False

    @property
    def sql(self) -> str:
        return self.query.sql

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    def _check(self):
        if self._finalized:
            raise MisuseError("Statement is finalized")
        self._connection._check_open()

    def _validate(self, args, diags) -> List[BindValue]:
        try:
            return bind_args(self.query, args)
        except BindError as e:
            if diags is not None:
                diags.populate(str(e))
            raise

    def _bind(self, values: List[BindValue], diags):
        if self._stmt is None:
            return
        expected = self._engine.bind_parameter_count(self._stmt)
        if expected != len(values):
            e = BindError(
                f"Statement has {expected} parameter(s) but the template declares {len(values)}; "
                "only ? and :name placeholders are supported"
            )
            if diags is not None:
                diags.populate(str(e))
            raise e
        for index, value in enumerate(values, start=1):
            rc = self._engine.bind(self._stmt, index, value)
            if rc != native.SQLITE_OK:
                self._connection._raise_exec_error(
                    diags, f"unable to bind parameter {index}", self.sql, values
                )

    def _step(self, values, diags) -> bool:
        """Advance one row. Returns False once the statement is done."""
        rc = self._engine.step(self._stmt)
        if rc == native.SQLITE_ROW:
            return True
        if rc == native.SQLITE_DONE:
            return False
        self._connection._raise_exec_error(diags, "unable to step statement", self.sql, values)

    def _execute(self, values: List[BindValue], diags) -> int:
        if self._stmt is None:
            # Empty statement (whitespace or comments only)
            return 0
        self._engine.reset(self._stmt)
        self._bind(values, diags)
        try:
            while self._step(values, diags):
                pass
        finally:
            self._release()
        return self._connection.rows_affected()

    def _release(self):
        # Finalize (directly or through Connection.close) drops the handle.
        if self._stmt is not None:
            self._engine.reset(self._stmt)

    def _rows(self, values: List[BindValue], compiled, diags) -> Iterator[Any]:
        if self._stmt is None:
            return
        self._engine.reset(self._stmt)
        self._bind(values, diags)
        try:
            names = column_names(self._engine, self._stmt)
            while self._step(values, diags):
                try:
                    row = compiled.decode(names, read_row(self._engine, self._stmt, names))
                except DecodeError as e:
                    if diags is not None:
                        diags.populate(str(e))
                    raise
                yield row
                if self._finalized:
                    raise MisuseError("Statement was finalized while its rows were being read")
        finally:
            self._release()

    def exec(self, args=None, options=None) -> int:
        """Run the statement to completion and return the rows it changed."""
        self._check()
        diags = _diags(options)
        return self._execute(self._validate(args, diags), diags)

    def iterate(self, shape, args=None, options=None) -> Iterator[Any]:
        """Yield each row decoded into ``shape``.

        Arguments are validated immediately; rows are read lazily.
        """
        self._check()
        diags = _diags(options)
        values = self._validate(args, diags)
        return self._rows(values, compile_shape(shape), diags)

    def one(self, shape, args=None, options=None) -> Optional[Any]:
        rows = self.iterate(shape, args, options)
        try:
            return next(rows, None)
        finally:
            rows.close()

    def all(self, shape, args=None, options=None) -> List[Any]:
        return list(self.iterate(shape, args, options))

    def reset(self):
        self._check()
        if self._stmt is not None:
            self._engine.reset(self._stmt)

    def finalize(self):
        if self._finalized:
            return
        if self._stmt is not None:
            self._engine.finalize(self._stmt)
            self._stmt = None
        self._finalized = True
        self._connection._forget_statement(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finalize()

    def __repr__(self):
        state = "finalized" if self._finalized else "ready"
        return f"<Statement {state} sql={self.sql!r}>"
