import dataclasses
import enum
from typing import Optional

import pytest
import typedlite
from typedlite import (
    BindError,
    BindValue,
    Diagnostics,
    ExecOptions,
    ValueKind,
    parse_template,
    to_bind_value,
)
from typedlite.binder import is_blank_sql
from typedlite.values import declared_type_from_name


class Color(str, enum.Enum):
    red = "red"
    violet = "violet"
    green = "green"


class Level(enum.IntEnum):
    low = 1
    high = 2


class Shape(enum.Enum):
    circle = object()
    square = object()


@dataclasses.dataclass
class User:
    name: str
    id: int
    age: int
    weight: float
    favorite_color: Color


def test_parse_positional_typed():
    q = parse_template("INSERT INTO user(name, id) VALUES(?{text}, ?{usize})")
    assert q.sql == "INSERT INTO user(name, id) VALUES(?1, ?2)"
    assert [p.declared.name for p in q.placeholders] == ["text", "usize"]
    assert not q.named


def test_parse_named_reuse_maps_to_one_parameter():
    q = parse_template("SELECT id FROM foo WHERE id = :target{i64} OR parent = :target")
    assert q.sql == "SELECT id FROM foo WHERE id = ?1 OR parent = ?1"
    assert q.parameter_count == 1
    assert q.placeholders[0].declared.name == "i64"
    assert q.named


def test_parse_ignores_literals_and_comments():
    q = parse_template("SELECT '?', \"a:b\", ? -- what?\n/* :skip */ FROM t WHERE x = 'it''s ?'")
    assert q.parameter_count == 1
    assert q.sql == "SELECT '?', \"a:b\", ?1 -- what?\n/* :skip */ FROM t WHERE x = 'it''s ?'"


def test_parse_optional_type():
    q = parse_template("SELECT ?{?text}")
    assert q.placeholders[0].declared.optional
    assert q.placeholders[0].declared.kind is ValueKind.TEXT


def test_parse_rejects_mixed_styles():
    with pytest.raises(BindError):
        parse_template("SELECT * FROM foo WHERE id = ? AND val = :val")


def test_parse_rejects_unknown_type():
    with pytest.raises(BindError):
        parse_template("SELECT ?{decimal}")


def test_parse_rejects_conflicting_named_types():
    with pytest.raises(BindError):
        parse_template("SELECT :a{text}, :a{i64}")


def test_to_bind_value_strict():
    text = declared_type_from_name("text")
    i64 = declared_type_from_name("i64")
    f64 = declared_type_from_name("f64")
    blob = declared_type_from_name("blob")

    assert to_bind_value("x", text) == BindValue(ValueKind.TEXT, "x")
    assert to_bind_value(3, i64) == BindValue(ValueKind.INTEGER, 3)
    assert to_bind_value(1.5, f64) == BindValue(ValueKind.FLOAT, 1.5)
    assert to_bind_value(bytearray(b"\x00"), blob) == BindValue(ValueKind.BLOB, b"\x00")

    with pytest.raises(BindError):
        to_bind_value(3, text)
    with pytest.raises(BindError):
        to_bind_value("3", i64)
    with pytest.raises(BindError):
        to_bind_value(True, i64)
    with pytest.raises(BindError):
        to_bind_value(1, f64)
    with pytest.raises(BindError):
        to_bind_value("abc", blob)


def test_integer_ranges():
    u8 = declared_type_from_name("u8")
    i32 = declared_type_from_name("i32")
    u64 = declared_type_from_name("u64")

    assert to_bind_value(255, u8).payload == 255
    with pytest.raises(BindError):
        to_bind_value(256, u8)
    with pytest.raises(BindError):
        to_bind_value(-1, u8)
    with pytest.raises(BindError):
        to_bind_value(2 ** 31, i32)
    assert to_bind_value(2 ** 63 - 1, u64).payload == 2 ** 63 - 1
    # The engine stores signed 64-bit integers.
    with pytest.raises(BindError):
        to_bind_value(2 ** 63, u64)
    with pytest.raises(BindError):
        to_bind_value(2 ** 64, None)


def test_f32_rounds_through_single_precision():
    f32 = declared_type_from_name("f32")
    bound = to_bind_value(85.4, f32)
    assert bound.payload != 85.4
    assert abs(bound.payload - 85.4) < 1e-5
    with pytest.raises(BindError):
        to_bind_value(1e300, f32)


def test_none_requires_optional():
    with pytest.raises(BindError):
        to_bind_value(None, declared_type_from_name("text"))
    assert to_bind_value(None, declared_type_from_name("?text")).kind is ValueKind.NULL
    assert to_bind_value(None, None).kind is ValueKind.NULL


def test_enum_base_representation():
    assert to_bind_value(Color.violet, None) == BindValue(ValueKind.TEXT, "violet")
    assert to_bind_value(Level.high, None) == BindValue(ValueKind.INTEGER, 2)
    assert to_bind_value(Shape.square, None) == BindValue(ValueKind.TEXT, "square")
    # A str-based enum satisfies a text placeholder through its value.
    assert to_bind_value(Color.red, declared_type_from_name("text")) == BindValue(ValueKind.TEXT, "red")


def test_mismatch_fails_before_prepare(conn, engine):
    conn.exec("CREATE TABLE foo (id INTEGER, name TEXT)")
    prepared = engine.prepared
    diags = Diagnostics()

    with pytest.raises(BindError):
        conn.exec(
            "INSERT INTO foo (id, name) VALUES (?{i64}, ?{text})",
            ExecOptions(diags=diags),
            ("1", "alice"),
        )

    assert engine.prepared == prepared
    assert "expected i64" in diags.message
    assert diags.err is None
    assert conn.one(int, "SELECT COUNT(*) FROM foo") == 0


def test_parameter_count_mismatch(conn):
    with pytest.raises(BindError):
        conn.exec("SELECT ?{i64}, ?{i64}", args=(1,))
    with pytest.raises(BindError):
        conn.exec("SELECT ?{i64}", args=(1, 2))


def test_sequence_args_required_for_positional(conn):
    with pytest.raises(BindError):
        conn.exec("SELECT ?", args={"a": 1})
    with pytest.raises(BindError):
        conn.exec("SELECT ?", args="a")
    with pytest.raises(BindError):
        conn.exec("SELECT :a", args=(1,))


def test_missing_named_parameter_is_not_skipped(conn):
    conn.exec("CREATE TABLE foo (id INTEGER, val TEXT)")
    with pytest.raises(BindError):
        conn.exec("INSERT INTO foo VALUES (:id, :val)", args={"id": 1})
    assert conn.one(int, "SELECT COUNT(*) FROM foo") == 0


def test_named_parameters(conn):
    conn.exec("CREATE TABLE foo (id INTEGER, val TEXT)")
    conn.exec("INSERT INTO foo VALUES (:id{i64}, :val{?text})", args={"id": 1, "val": None})
    conn.exec("INSERT INTO foo VALUES (:id{i64}, :val{?text})", args={"id": 2, "val": "b"})
    rows = conn.all(tuple, "SELECT id, val FROM foo ORDER BY id")
    assert rows == [(1, None), (2, "b")]


def test_dataclass_args_positional(user_table):
    user = User(name="Vincent", id=20, age=33, weight=85.5, favorite_color=Color.violet)
    user_table.exec(
        "INSERT INTO user(name, id, age, weight, favorite_color) VALUES(?{text}, ?{usize}, ?{usize}, ?{f64}, ?)",
        args=user,
    )
    row = user_table.one(tuple, "SELECT name, id, age, weight, favorite_color FROM user")
    assert row == ("Vincent", 20, 33, 85.5, "violet")


def test_dataclass_args_named(user_table):
    user = User(name="Julien", id=40, age=35, weight=100.25, favorite_color=Color.green)
    user_table.exec(
        "INSERT INTO user(name, id, age, weight, favorite_color) VALUES(:name, :id, :age, :weight, :favorite_color)",
        args=user,
    )
    assert user_table.one(str, "SELECT favorite_color FROM user WHERE id = :id{i64}", args={"id": 40}) == "green"


def test_dataclass_annotation_declares_untyped_placeholder(user_table):
    @dataclasses.dataclass
    class Partial:
        name: str
        id: int

    with pytest.raises(BindError):
        user_table.exec("INSERT INTO user(name, id) VALUES(?, ?)", args=Partial(name=1, id=20))
    with pytest.raises(BindError):
        user_table.exec("INSERT INTO user(name, id) VALUES(?, ?)", args=Partial(name="x", id=None))


def test_optional_dataclass_field_binds_null(conn):
    @dataclasses.dataclass
    class Row:
        id: int
        note: Optional[str]

    conn.exec("CREATE TABLE notes (id INTEGER, note TEXT)")
    conn.exec("INSERT INTO notes VALUES (?, ?)", args=Row(1, None))
    assert conn.one(Optional[str], "SELECT note FROM notes") is None
    assert conn.one(int, "SELECT COUNT(*) FROM notes WHERE note IS NULL") == 1


def test_text_round_trip_empty_and_null(conn):
    conn.exec("CREATE TABLE t (id INTEGER, v TEXT)")
    values = ["", "hello", "José", "nul\x00inside", None]
    for i, v in enumerate(values):
        conn.exec("INSERT INTO t VALUES (?{i64}, ?{?text})", args=(i, v))

    rows = conn.all(Optional[str], "SELECT v FROM t ORDER BY id")
    assert rows == values
    assert rows[0] == "" and rows[0] is not None
    assert conn.one(int, "SELECT COUNT(*) FROM t WHERE v IS NULL") == 1
    assert conn.one(int, "SELECT COUNT(*) FROM t WHERE v = ''") == 1
    assert conn.one(int, "SELECT length(CAST(v AS BLOB)) FROM t WHERE id = 3") == len("nul\x00inside")


def test_blob_round_trip_empty_and_null(conn):
    conn.exec("CREATE TABLE b (id INTEGER, data BLOB)")
    blobs = [b"", b"\x00", b"\xde\xad\xbe\xef", bytes(range(256)), None]
    for i, b in enumerate(blobs):
        conn.exec("INSERT INTO b VALUES (?{i64}, ?{?blob})", args=(i, b))

    rows = conn.all(Optional[bytes], "SELECT data FROM b ORDER BY id")
    assert rows == blobs
    assert conn.one(int, "SELECT COUNT(*) FROM b WHERE data IS NULL") == 1
    assert conn.one(str, "SELECT typeof(data) FROM b WHERE id = 0") == "blob"


def test_bool_placeholder(conn):
    conn.exec("CREATE TABLE flags (v INTEGER)")
    conn.exec("INSERT INTO flags VALUES (?{bool})", args=(True,))
    with pytest.raises(BindError):
        conn.exec("INSERT INTO flags VALUES (?{bool})", args=(1,))
    assert conn.one(bool, "SELECT v FROM flags") is True


def test_unsupported_type(conn):
    with pytest.raises(BindError):
        conn.exec("SELECT ?", args=(object(),))


def test_unrecognised_placeholder_style(conn):
    with pytest.raises(BindError):
        conn.exec("SELECT @a", args=())


def test_exec_rejects_several_statements(conn, engine):
    conn.exec("CREATE TABLE t (v INTEGER)")
    diags = Diagnostics()
    with pytest.raises(BindError) as excinfo:
        conn.exec("INSERT INTO t VALUES (1); INSERT INTO t VALUES (2)", ExecOptions(diags=diags))
    assert "exec_multi" in str(excinfo.value)
    assert diags.message == str(excinfo.value)
    assert conn.one(int, "SELECT COUNT(*) FROM t") == 0
    assert engine.live_statements == 0

    with pytest.raises(BindError):
        conn.prepare("SELECT 1; SELECT 2")


def test_exec_allows_trailing_semicolon_and_comments(conn):
    conn.exec("CREATE TABLE t (v INTEGER);")
    assert conn.exec("INSERT INTO t VALUES (?{i64}); -- one row\n/* done */ ;", args=(1,)) == 1
    assert conn.one(int, "SELECT COUNT(*) FROM t;  ") == 1


def test_is_blank_sql():
    assert is_blank_sql("")
    assert is_blank_sql(" ;\n -- trailing\n /* block */ ;")
    assert is_blank_sql("-- unterminated")
    assert not is_blank_sql("; SELECT 2")
    assert not is_blank_sql("/* x */ DELETE FROM t")
