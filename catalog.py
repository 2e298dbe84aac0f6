import logging
import sqlite3
from typing import Any, Dict, List, Optional

from book import DEFAULT_GENRE, Book, BookStatus
from config import Settings, settings as default_settings
from covers import CoverStore
from database import Database
from errors import ConflictError, MissingFieldError, NotFoundError
from identifiers import BookId, MemberId, new_id, to_iso, utcnow
from utils.validators import FieldValidator, ISBNValidator

logger = logging.getLogger(__name__)

# İstemcinin değiştirebileceği alanlar; durum ve ödünç alanları ödünç servisine aittir
EDITABLE_FIELDS = ("title", "author", "genre", "year", "isbn", "cover")


class BookStore:
    """Tek bir bağlantı üzerinden kitap tablosuna satır düzeyinde erişim."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def insert(self, book: Book) -> None:
        self.conn.execute(
            """
            INSERT INTO books (
                id, title, author, genre, year, isbn, cover, status,
                borrowed_by, due_date, borrow_count, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                book.book_id, book.title, book.author, book.genre, book.year, book.isbn,
                book.cover, book.status.value, book.borrowed_by, to_iso(book.due_date),
                book.borrow_count, to_iso(book.created_at),
            ),
        )

    def get(self, book_id: BookId) -> Optional[Book]:
        row = self.conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        return Book.from_row(row) if row else None

    def list_newest_first(self) -> List[Book]:
        rows = self.conn.execute("SELECT * FROM books ORDER BY created_at DESC, rowid DESC").fetchall()
        return [Book.from_row(row) for row in rows]

    def most_borrowed(self, limit: int) -> List[Book]:
        # Eşitlikte rowid ekleme sırasını korur
        rows = self.conn.execute(
            "SELECT * FROM books ORDER BY borrow_count DESC, rowid ASC LIMIT ?", (limit,)
        ).fetchall()
        return [Book.from_row(row) for row in rows]

    def update_fields(self, book_id: BookId, fields: Dict[str, Any]) -> bool:
        columns = [name for name in fields if name in EDITABLE_FIELDS]
        if not columns:
            return self.get(book_id) is not None
        assignments = ", ".join(f"{name} = ?" for name in columns)
        values = [fields[name] for name in columns]
        cursor = self.conn.execute(f"UPDATE books SET {assignments} WHERE id = ?", (*values, book_id))
        return cursor.rowcount > 0

    def delete(self, book_id: BookId) -> bool:
        cursor = self.conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        return cursor.rowcount > 0

    def mark_borrowed(self, book_id: BookId, member_id: MemberId, due_date) -> bool:
        """Available -> Borrowed karşılaştır-ve-ata. Kitap Available değilse False."""
        cursor = self.conn.execute(
            """
            UPDATE books
               SET status = ?, borrowed_by = ?, due_date = ?, borrow_count = borrow_count + 1
             WHERE id = ? AND status = ?
            """,
            (BookStatus.BORROWED.value, member_id, to_iso(due_date), book_id, BookStatus.AVAILABLE.value),
        )
        return cursor.rowcount == 1

    def mark_available(self, book_id: BookId) -> bool:
        """Borrowed -> Available karşılaştır-ve-ata; borrow_count ömür boyu sayaçtır, değişmez."""
        cursor = self.conn.execute(
            """
            UPDATE books
               SET status = ?, borrowed_by = NULL, due_date = NULL
             WHERE id = ? AND status = ?
            """,
            (BookStatus.AVAILABLE.value, book_id, BookStatus.BORROWED.value),
        )
        return cursor.rowcount == 1


class CatalogService:
    """Kitap kataloğunu ve kapak ilişkisini yönetir."""

    def __init__(self, db: Database, covers: CoverStore, config: Optional[Settings] = None) -> None:
        self.db = db
        self.covers = covers
        self.config = config or default_settings

    # ------------------------- Temel İşlemler ------------------------- #
    def add_book(self, fields: Dict[str, Any]) -> Book:
        """İstemci alanlarından kitap oluşturur. title ve author zorunludur."""
        FieldValidator.require(fields, "title", "author")
        book = Book(
            book_id=BookId(new_id()),
            title=str(fields["title"]),
            author=str(fields["author"]),
            genre=self._clean_text(fields.get("genre")),
            year=FieldValidator.coerce_year(fields.get("year")),
            isbn=ISBNValidator.normalize_isbn(fields.get("isbn")),
            cover=self._clean_text(fields.get("cover")) or self.config.default_cover,
            created_at=utcnow(),
        )
        with self.db.connection() as conn:
            BookStore(conn).insert(book)
        logger.info(f"Book added: {book.book_id} {book.title!r}")
        return book

    def list_books(self) -> List[Book]:
        """Tüm kitaplar, en son eklenen önce."""
        with self.db.connection() as conn:
            return BookStore(conn).list_newest_first()

    def get_book(self, book_id: Optional[str]) -> Book:
        if not book_id:
            raise MissingFieldError("Missing required field(s): id")
        with self.db.connection() as conn:
            book = BookStore(conn).get(BookId(book_id))
        if book is None:
            raise NotFoundError("Book not found")
        return book

    def update_book(self, book_id: Optional[str], fields: Dict[str, Any]) -> Book:
        """Yalnızca gönderilen alanları kitaba işler; diğerlerine dokunulmaz."""
        if not book_id:
            raise MissingFieldError("Missing required field(s): id")
        changes = self._clean_changes(fields)
        replaced_cover: Optional[str] = None
        with self.db.transaction() as conn:
            store = BookStore(conn)
            current = store.get(BookId(book_id))
            if current is None:
                raise NotFoundError("Book not found")
            if "cover" in changes and changes["cover"] != current.cover:
                replaced_cover = current.cover
            store.update_fields(current.book_id, changes)
            updated = store.get(current.book_id)
        if replaced_cover:
            self.covers.discard(replaced_cover)
        logger.info(f"Book updated: {book_id} fields={sorted(changes)}")
        return updated

    def remove_book(self, book_id: Optional[str]) -> None:
        """Kitabı ve mümkünse yüklenen kapağını siler. Ödünçteki kitaplar silinmez."""
        if not book_id:
            raise MissingFieldError("Missing required field(s): id")
        with self.db.transaction() as conn:
            store = BookStore(conn)
            book = store.get(BookId(book_id))
            if book is None:
                raise NotFoundError("Book not found")
            if book.is_borrowed:
                raise ConflictError("Book is currently borrowed")
            cover = book.cover
            store.delete(book.book_id)
        self.covers.discard(cover)
        logger.info(f"Book removed: {book_id}")

    # ------------------------- Yardımcılar ------------------------- #
    def _clean_changes(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        for name in EDITABLE_FIELDS:
            if name not in fields or fields[name] is None:
                continue
            value = fields[name]
            if name in ("title", "author"):
                text = self._clean_text(value)
                if not text:
                    raise MissingFieldError(f"{name} cannot be empty")
                changes[name] = text
            elif name == "year":
                changes[name] = FieldValidator.coerce_year(value)
            elif name == "isbn":
                changes[name] = ISBNValidator.normalize_isbn(value)
            elif name == "cover":
                cover = self._clean_text(value)
                if cover:
                    changes[name] = cover
            elif name == "genre":
                changes[name] = self._clean_text(value) or DEFAULT_GENRE
        return changes

    @staticmethod
    def _clean_text(value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None
