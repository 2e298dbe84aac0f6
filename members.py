import logging
import sqlite3
from typing import Any, Dict, List, Optional

from database import Database
from errors import ConflictError, MissingFieldError, NotFoundError
from identifiers import BookId, MemberId, new_id, to_iso, utcnow
from member import BorrowedItem, Member
from utils.validators import FieldValidator

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "email", "role")


class MemberStore:
    """Tek bir bağlantı üzerinden üye tablosuna satır düzeyinde erişim."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def insert(self, member: Member) -> None:
        self.conn.execute(
            "INSERT INTO members (id, name, email, role, borrowed_books, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (
                member.member_id, member.name, member.email, member.role,
                Member.dump_borrowed(member.borrowed_books), to_iso(member.created_at),
            ),
        )

    def get(self, member_id: MemberId) -> Optional[Member]:
        row = self.conn.execute("SELECT * FROM members WHERE id = ?", (member_id,)).fetchone()
        return Member.from_row(row) if row else None

    def get_by_email(self, email: str) -> Optional[Member]:
        row = self.conn.execute("SELECT * FROM members WHERE email = ?", (email,)).fetchone()
        return Member.from_row(row) if row else None

    def list_all(self) -> List[Member]:
        rows = self.conn.execute("SELECT * FROM members ORDER BY rowid").fetchall()
        return [Member.from_row(row) for row in rows]

    def update_fields(self, member_id: MemberId, fields: Dict[str, Any]) -> bool:
        columns = [name for name in fields if name in EDITABLE_FIELDS]
        if not columns:
            return self.get(member_id) is not None
        assignments = ", ".join(f"{name} = ?" for name in columns)
        values = [fields[name] for name in columns]
        cursor = self.conn.execute(f"UPDATE members SET {assignments} WHERE id = ?", (*values, member_id))
        return cursor.rowcount > 0

    def delete(self, member_id: MemberId) -> bool:
        cursor = self.conn.execute("DELETE FROM members WHERE id = ?", (member_id,))
        return cursor.rowcount > 0

    def push_borrowed(self, member_id: MemberId, item: BorrowedItem) -> bool:
        member = self.get(member_id)
        if member is None:
            return False
        member.borrowed_books.append(item)
        self._save_borrowed(member)
        return True

    def pull_borrowed(self, member_id: MemberId, book_id: BookId) -> bool:
        """``book_id`` için tüm borrowedBooks kayıtlarını çıkarır. Eşleşme yoksa False."""
        member = self.get(member_id)
        if member is None:
            return False
        kept = [item for item in member.borrowed_books if item.book_id != book_id]
        if len(kept) == len(member.borrowed_books):
            return False
        member.borrowed_books = kept
        self._save_borrowed(member)
        return True

    def _save_borrowed(self, member: Member) -> None:
        self.conn.execute(
            "UPDATE members SET borrowed_books = ? WHERE id = ?",
            (Member.dump_borrowed(member.borrowed_books), member.member_id),
        )


class MembershipService:
    """Kütüphane üyeleri için CRUD işlemleri."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def add_member(self, fields: Dict[str, Any]) -> Member:
        FieldValidator.require(fields, "name", "email")
        member = Member(
            member_id=MemberId(new_id()),
            name=str(fields["name"]),
            email=FieldValidator.normalize_email(fields["email"]),
            role=(str(fields.get("role") or "").strip() or None),
            created_at=utcnow(),
        )
        try:
            with self.db.transaction() as conn:
                store = MemberStore(conn)
                if store.get_by_email(member.email):
                    raise ConflictError("Email already registered")
                store.insert(member)
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Email already registered") from exc
        logger.info(f"Member added: {member.member_id} <{member.email}>")
        return member

    def list_members(self) -> List[Member]:
        with self.db.connection() as conn:
            return MemberStore(conn).list_all()

    def get_member(self, member_id: Optional[str]) -> Member:
        if not member_id:
            raise MissingFieldError("Missing required field(s): id")
        with self.db.connection() as conn:
            member = MemberStore(conn).get(MemberId(member_id))
        if member is None:
            raise NotFoundError("Member not found")
        return member

    def update_member(self, member_id: Optional[str], fields: Dict[str, Any]) -> Member:
        """name, email ve role alanlarını kısmen günceller."""
        if not member_id:
            raise MissingFieldError("Missing required field(s): id")
        changes: Dict[str, Any] = {}
        for name in EDITABLE_FIELDS:
            value = fields.get(name)
            if value is None:
                continue
            text = str(value).strip()
            if not text:
                raise MissingFieldError(f"{name} cannot be empty")
            changes[name] = FieldValidator.normalize_email(text) if name == "email" else text
        try:
            with self.db.transaction() as conn:
                store = MemberStore(conn)
                current = store.get(MemberId(member_id))
                if current is None:
                    raise NotFoundError("Member not found")
                if "email" in changes and changes["email"] != current.email:
                    if store.get_by_email(changes["email"]):
                        raise ConflictError("Email already registered")
                store.update_fields(current.member_id, changes)
                updated = store.get(current.member_id)
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Email already registered") from exc
        logger.info(f"Member updated: {member_id} fields={sorted(changes)}")
        return updated

    def remove_member(self, member_id: Optional[str]) -> None:
        # Açık ödünçler silmeyi engellemez; raporlar bu üyeleri null gösterir
        if not member_id:
            raise MissingFieldError("Missing required field(s): id")
        with self.db.connection() as conn:
            if not MemberStore(conn).delete(MemberId(member_id)):
                raise NotFoundError("Member not found")
        logger.info(f"Member removed: {member_id}")
