"""Ödünç verme ve iade akışları.

Her akış üç koleksiyona dokunur (kitap, üyenin borrowedBooks listesi ve
ödünç defteri) ve bunu tek bir yazma işlemi içinde yapar; yarıda kalan
bir hata hiçbirini değiştirmez.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from catalog import BookStore
from config import Settings, settings as default_settings
from database import Database
from errors import BadRequestError, ConflictError, MissingFieldError, NotFoundError
from identifiers import BookId, LoanId, MemberId, new_id, utcnow
from ledger import LoanLedger
from loan import LoanRecord
from member import BorrowedItem
from members import MemberStore
from utils.validators import FieldValidator

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def compute_fine(due_date: Optional[datetime], now: datetime, per_day: int) -> int:
    """Yukarı yuvarlanmış gecikme günü çarpı günlük ceza. Zamanında iade ücretsizdir."""
    if due_date is None or now <= due_date:
        return 0
    late_days = math.ceil((now - due_date).total_seconds() / SECONDS_PER_DAY)
    return late_days * per_day


class CirculationService:
    def __init__(self, db: Database, config: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        self.db = db
        self.config = config or default_settings
        self.clock = clock or utcnow

    def borrow(self, book_id: Optional[str], member_id: Optional[str], days: Any = None) -> datetime:
        """Bir kitabı ``days`` günlüğüne üyeye verir. Son iade tarihini döndürür."""
        FieldValidator.require({"bookId": book_id, "memberId": member_id}, "bookId", "memberId")
        loan_days = FieldValidator.coerce_loan_days(
            days, default=self.config.default_loan_days, maximum=self.config.max_loan_days
        )
        now = self.clock()
        try:
            due_date = now + timedelta(days=loan_days)
        except OverflowError as exc:
            raise BadRequestError("days is out of range") from exc
        book_id, member_id = BookId(book_id), MemberId(member_id)

        with self.db.transaction() as conn:
            books, members = BookStore(conn), MemberStore(conn)
            book = books.get(book_id)
            if book is None or members.get(member_id) is None:
                raise NotFoundError("Book or member not found")
            if not books.mark_borrowed(book_id, member_id, due_date):
                raise ConflictError("Book already borrowed")
            members.push_borrowed(member_id, BorrowedItem(book_id, now, due_date))
            LoanLedger(conn).append(LoanRecord(
                loan_id=LoanId(new_id()),
                book_id=book_id,
                member_id=member_id,
                borrowed_on=now,
                due_date=due_date,
            ))

        logger.info(f"Book {book_id} borrowed by {member_id} for {loan_days} day(s), due {due_date.isoformat()}")
        return due_date

    def return_book(self, book_id: Optional[str], member_id: Optional[str]) -> int:
        """Kitabı geri alır ve ödüncü kapatır. Kesilen cezayı döndürür."""
        FieldValidator.require({"bookId": book_id, "memberId": member_id}, "bookId", "memberId")
        now = self.clock()
        book_id, member_id = BookId(book_id), MemberId(member_id)

        with self.db.transaction() as conn:
            books = BookStore(conn)
            book = books.get(book_id)
            if book is None:
                raise NotFoundError("Book not found")
            if not book.is_borrowed:
                raise ConflictError("Book is not currently borrowed")
            fine = compute_fine(book.due_date, now, self.config.fine_per_day)
            if not books.mark_available(book_id):
                raise ConflictError("Book is not currently borrowed")
            if not MemberStore(conn).pull_borrowed(member_id, book_id):
                logger.warning(f"Member {member_id} had no borrowed entry for book {book_id}")
            if not LoanLedger(conn).close_open(book_id, member_id, now, fine):
                logger.warning(f"No open loan for book {book_id} and member {member_id}; ledger unchanged")

        logger.info(f"Book {book_id} returned by {member_id}, fine {fine}")
        return fine

    def loans(self, member_id: Optional[str] = None, open_only: bool = False) -> List[LoanRecord]:
        with self.db.connection() as conn:
            return LoanLedger(conn).list(MemberId(member_id) if member_id else None, open_only)

    def loans_for_member(self, member_id: Optional[str]) -> List[LoanRecord]:
        """Üyenin ödünç geçmişi, en eskiden yeniye."""
        if not member_id:
            raise MissingFieldError("Missing required field(s): memberId")
        return self.loans(member_id)
