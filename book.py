from __future__ import annotations

from datetime import datetime
from enum import Enum

from identifiers import BookId, MemberId, from_iso, to_iso


class BookStatus(str, Enum):
    AVAILABLE = "Available"
    BORROWED = "Borrowed"


DEFAULT_GENRE = "Unknown"


class Book:
    """Tek bir katalog kaydını ve güncel ödünç durumunu temsil eder."""

    def __init__(self, book_id: BookId, title: str, author: str, genre: str | None = None,
                 year: int | None = None, isbn: str | None = None, cover: str | None = None,
                 status: BookStatus = BookStatus.AVAILABLE,
                 borrowed_by: MemberId | None = None, due_date: datetime | None = None,
                 borrow_count: int = 0, created_at: datetime | None = None) -> None:
        self.book_id = book_id
        self.title = title.strip()
        self.author = author.strip()
        self.genre = genre or DEFAULT_GENRE
        self.year = year
        self.isbn = isbn
        self.cover = cover
        self.status = BookStatus(status)
        self.borrowed_by = borrowed_by
        self.due_date = due_date
        self.borrow_count = borrow_count
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - basit metin biçimlendirme
        return f"{self.title} by {self.author} ({self.status.value})"

    @property
    def is_borrowed(self) -> bool:
        return self.status is BookStatus.BORROWED

    def to_dict(self) -> dict:
        return {
            "id": self.book_id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "year": self.year,
            "isbn": self.isbn,
            "cover": self.cover,
            "status": self.status.value,
            "borrowedBy": self.borrowed_by,
            "dueDate": to_iso(self.due_date),
            "borrowCount": self.borrow_count,
            "createdAt": to_iso(self.created_at),
        }

    @staticmethod
    def from_row(row) -> "Book":
        return Book(
            book_id=BookId(row["id"]),
            title=row["title"],
            author=row["author"],
            genre=row["genre"],
            year=row["year"],
            isbn=row["isbn"],
            cover=row["cover"],
            status=BookStatus(row["status"]),
            borrowed_by=MemberId(row["borrowed_by"]) if row["borrowed_by"] else None,
            due_date=from_iso(row["due_date"]),
            borrow_count=row["borrow_count"] or 0,
            created_at=from_iso(row["created_at"]),
        )
