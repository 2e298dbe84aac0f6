"""Kullanıcı kaydı, girişi ve bearer belirteci çözümlemesi.

Parolalar SHA-256 hex özeti olarak saklanır. Her başarılı giriş öncekinin
yerini alan yeni rastgele bir belirteç üretir; bir kullanıcının en fazla bir
açık oturumu olur. İstemciler bunu ``Authorization: Bearer <token>`` olarak gönderir.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import sqlite3
from typing import Optional, Tuple

from database import Database
from errors import BadRequestError, ConflictError, ForbiddenError, UnauthorizedError
from identifiers import UserId, new_id, to_iso, utcnow
from user import ROLES, User
from utils.validators import FieldValidator

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24  # 192 bit


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class CredentialStore:
    """Tek bir bağlantı üzerinden kullanıcı tablosuna satır düzeyinde erişim."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def insert(self, user: User) -> None:
        self.conn.execute(
            """
            INSERT INTO users (id, name, email, password, role, token, last_login, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user.user_id, user.name, user.email, user.password, user.role, user.token,
                to_iso(user.last_login), to_iso(user.created_at),
            ),
        )

    def get_by_email(self, email: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return User.from_row(row) if row else None

    def get_by_token(self, token: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE token = ?", (token,)).fetchone()
        return User.from_row(row) if row else None

    def set_token(self, user_id: UserId, token: str, when) -> None:
        self.conn.execute(
            "UPDATE users SET token = ?, last_login = ? WHERE id = ?",
            (token, to_iso(when), user_id),
        )

    def clear_token(self, token: str) -> bool:
        cursor = self.conn.execute("UPDATE users SET token = NULL WHERE token = ?", (token,))
        return cursor.rowcount > 0


class AuthService:
    def __init__(self, db: Database) -> None:
        self.db = db

    def signup(self, name: Optional[str], email: Optional[str], password: Optional[str],
               role: Optional[str] = None, allow_admin: bool = True) -> User:
        FieldValidator.require({"name": name, "email": email, "password": password}, "name", "email", "password")
        role = (role or "member").strip().lower()
        if role not in ROLES:
            raise BadRequestError(f"role must be one of: {', '.join(ROLES)}")
        if role == "admin" and not allow_admin:
            raise ForbiddenError("Admin role required")
        user = User(
            user_id=UserId(new_id()),
            name=name.strip(),
            email=FieldValidator.normalize_email(email),
            password=hash_password(password),
            role=role,
            created_at=utcnow(),
        )
        try:
            with self.db.transaction() as conn:
                store = CredentialStore(conn)
                if store.get_by_email(user.email):
                    raise ConflictError("User exists")
                store.insert(user)
        except sqlite3.IntegrityError as exc:
            raise ConflictError("User exists") from exc
        logger.info(f"User signed up: {user.user_id} <{user.email}> role={user.role}")
        return user

    def login(self, email: Optional[str], password: Optional[str]) -> Tuple[str, User]:
        """Kimlik bilgilerini doğrular ve yeni belirteç verir. Hatalı giriş hiçbir şeyi değiştirmez."""
        if not email or not password:
            raise UnauthorizedError("Invalid credentials")
        with self.db.connection() as conn:
            store = CredentialStore(conn)
            user = store.get_by_email(FieldValidator.normalize_email(email))
            if user is None or not hmac.compare_digest(user.password, hash_password(password)):
                logger.info(f"Failed login for <{email}>")
                raise UnauthorizedError("Invalid credentials")
            token = secrets.token_hex(TOKEN_BYTES)
            now = utcnow()
            store.set_token(user.user_id, token, now)
        user.token = token
        user.last_login = now
        logger.info(f"User logged in: {user.user_id}")
        return token, user

    def user_for_token(self, token: Optional[str]) -> Optional[User]:
        if not token:
            return None
        with self.db.connection() as conn:
            return CredentialStore(conn).get_by_token(token)

    def logout(self, token: Optional[str]) -> bool:
        if not token:
            return False
        with self.db.connection() as conn:
            return CredentialStore(conn).clear_token(token)
