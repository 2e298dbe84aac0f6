from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional

from identifiers import BookId, MemberId, from_iso, to_iso

DEFAULT_MEMBER_ROLE = "student"


class BorrowedItem:
    """Üye tarafından görülen tek bir açık ödünç."""

    def __init__(self, book_id: BookId, borrowed_on: datetime, due_date: datetime) -> None:
        self.book_id = book_id
        self.borrowed_on = borrowed_on
        self.due_date = due_date

    def to_dict(self) -> dict:
        return {
            "bookId": self.book_id,
            "borrowedOn": to_iso(self.borrowed_on),
            "dueDate": to_iso(self.due_date),
        }

    @staticmethod
    def from_dict(data: dict) -> "BorrowedItem":
        return BorrowedItem(
            book_id=BookId(data["bookId"]),
            borrowed_on=from_iso(data.get("borrowedOn")),
            due_date=from_iso(data.get("dueDate")),
        )


class Member:
    def __init__(self, member_id: MemberId, name: str, email: str, role: str | None = None,
                 borrowed_books: Optional[List[BorrowedItem]] = None,
                 created_at: datetime | None = None) -> None:
        self.member_id = member_id
        self.name = name.strip()
        self.email = email
        self.role = role or DEFAULT_MEMBER_ROLE
        self.borrowed_books = borrowed_books or []
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - basit metin biçimlendirme
        return f"{self.name} <{self.email}>"

    def to_dict(self) -> dict:
        return {
            "id": self.member_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "borrowedBooks": [item.to_dict() for item in self.borrowed_books],
            "createdAt": to_iso(self.created_at),
        }

    @staticmethod
    def dump_borrowed(items: List[BorrowedItem]) -> str:
        return json.dumps([item.to_dict() for item in items])

    @staticmethod
    def from_row(row) -> "Member":
        # borrowed_books JSON dizisi olarak saklanır
        raw = row["borrowed_books"]
        try:
            items = json.loads(raw) if raw else []
        except json.JSONDecodeError:
            items = []
        return Member(
            member_id=MemberId(row["id"]),
            name=row["name"],
            email=row["email"],
            role=row["role"],
            borrowed_books=[BorrowedItem.from_dict(item) for item in items],
            created_at=from_iso(row["created_at"]),
        )
