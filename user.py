from __future__ import annotations

from datetime import datetime

from identifiers import UserId, from_iso, to_iso

ROLES = ("admin", "member")


class User:
    """Bir giriş kimliği. password alanı yalnızca özet tutar."""

    def __init__(self, user_id: UserId, name: str, email: str, password: str, role: str = "member",
                 token: str | None = None, last_login: datetime | None = None,
                 created_at: datetime | None = None) -> None:
        self.user_id = user_id
        self.name = name
        self.email = email
        self.password = password
        self.role = role
        self.token = token
        self.last_login = last_login
        self.created_at = created_at

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def public_fields(self) -> dict:
        return {"name": self.name, "email": self.email, "role": self.role, "id": self.user_id}

    def to_dict(self) -> dict:
        data = self.public_fields()
        data["lastLogin"] = to_iso(self.last_login)
        data["createdAt"] = to_iso(self.created_at)
        return data

    @staticmethod
    def from_row(row) -> "User":
        return User(
            user_id=UserId(row["id"]),
            name=row["name"],
            email=row["email"],
            password=row["password"],
            role=row["role"],
            token=row["token"],
            last_login=from_iso(row["last_login"]),
            created_at=from_iso(row["created_at"]),
        )
