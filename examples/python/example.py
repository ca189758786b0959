"""Example: basic typedlite usage.

Uses the system libsqlite3. Point TYPEDLITE_NATIVE_LIB at another build to
override it, then run:
    python example.py
"""

import dataclasses
import os
import tempfile
from typing import Optional

import typedlite
from typedlite import Diagnostics, ExecOptions, InitOptions, Mode, OpenFlags


@dataclasses.dataclass
class User:
    id: int
    name: str
    email: Optional[str]


def main():
    typedlite.setup_logging()

    # Create a temporary database file for this example.
    db_path = os.path.join(tempfile.gettempdir(), "typedlite_example.db")

    conn = typedlite.open(InitOptions(
        mode=Mode.file(db_path),
        open_flags=OpenFlags(write=True, create=True),
    ))

    conn.exec_multi("""
        DROP TABLE IF EXISTS users;
        CREATE TABLE users (
            id    INTEGER PRIMARY KEY,
            name  TEXT NOT NULL,
            email TEXT UNIQUE
        );
    """)

    # Typed positional placeholders are checked before the statement runs.
    users = [
        ("Alice", "alice@example.com"),
        ("Bob", "bob@example.com"),
        ("Carol", None),
    ]
    with conn.prepare("INSERT INTO users (name, email) VALUES (?{text}, ?{?text})") as stmt:
        for user in users:
            stmt.exec(user)

    print("All users:")
    for user in conn.all(User, "SELECT id, name, email FROM users ORDER BY id"):
        print(f"  id={user.id}  name={user.name}  email={user.email}")

    # Named placeholders.
    name = conn.one(str, "SELECT name FROM users WHERE email = :email{text}", args={"email": "bob@example.com"})
    print(f"\nLookup by email: {name}")

    # Transaction example.
    conn.exec("BEGIN")
    conn.exec("INSERT INTO users (name, email) VALUES (?{text}, ?{text})", args=("Dave", "dave@example.com"))
    conn.exec("COMMIT")

    count = conn.one(int, "SELECT count(*) FROM users")
    print(f"\nTotal users after transaction: {count}")

    # Constraint failures carry the engine's diagnostics.
    diags = Diagnostics()
    try:
        conn.exec(
            "INSERT INTO users (name, email) VALUES (?{text}, ?{text})",
            ExecOptions(diags=diags),
            ("Eve", "alice@example.com"),
        )
    except typedlite.ConstraintError as e:
        print(f"\nRejected ({e.kind.name}): {diags}")

    conn.close()

    # Clean up.
    for suffix in ("", "-journal"):
        try:
            os.unlink(db_path + suffix)
        except FileNotFoundError:
            pass

    print("\nDone.")


if __name__ == "__main__":
    main()
