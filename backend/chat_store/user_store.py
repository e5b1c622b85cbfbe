from __future__ import annotations

import sqlite3
import uuid
from typing import Any

from .database import SQLiteChatDB
from .errors import DuplicateUserError
from .passwords import hash_password
from .time_utils import to_iso, utc_now


def _user_from_row(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "email": row["email"],
        "password": row["password"],
        "fullName": row["full_name"],
        "isActive": bool(row["is_active"]),
        "createdAt": row["created_at"],
    }


def public_user(user: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in user.items() if key != "password"}


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class UserStore:
    def __init__(self, db: SQLiteChatDB) -> None:
        self._db = db

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ? LIMIT 1",
                (normalize_email(email),),
            ).fetchone()
        return _user_from_row(row) if row else None

    def create(self, *, email: str, password: str, full_name: str) -> dict[str, Any]:
        user_id = str(uuid.uuid4())
        now = to_iso(utc_now())
        with self._db.connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, email, password, full_name, is_active, created_at)
                    VALUES (?, ?, ?, ?, 1, ?)
                    """,
                    (user_id, normalize_email(email), hash_password(password), full_name.strip(), now),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateUserError("User already exists with this email") from exc
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _user_from_row(row)

    def set_active(self, user_id: str, active: bool) -> None:
        with self._db.connection() as conn:
            conn.execute("UPDATE users SET is_active = ? WHERE id = ?", (1 if active else 0, user_id))
