from __future__ import annotations

from datetime import datetime

from identifiers import BookId, LoanId, MemberId, from_iso, to_iso


class LoanRecord:
    """Bir defter satırı. returned_on None iken açıktır."""

    def __init__(self, loan_id: LoanId, book_id: BookId, member_id: MemberId,
                 borrowed_on: datetime, due_date: datetime,
                 returned_on: datetime | None = None, fine: int = 0) -> None:
        self.loan_id = loan_id
        self.book_id = book_id
        self.member_id = member_id
        self.borrowed_on = borrowed_on
        self.due_date = due_date
        self.returned_on = returned_on
        self.fine = fine

    @property
    def is_open(self) -> bool:
        return self.returned_on is None

    def to_dict(self) -> dict:
        return {
            "id": self.loan_id,
            "bookId": self.book_id,
            "memberId": self.member_id,
            "borrowedOn": to_iso(self.borrowed_on),
            "dueDate": to_iso(self.due_date),
            "returnedOn": to_iso(self.returned_on),
            "fine": self.fine,
        }

    @staticmethod
    def from_row(row) -> "LoanRecord":
        return LoanRecord(
            loan_id=LoanId(row["id"]),
            book_id=BookId(row["book_id"]),
            member_id=MemberId(row["member_id"]),
            borrowed_on=from_iso(row["borrowed_on"]),
            due_date=from_iso(row["due_date"]),
            returned_on=from_iso(row["returned_on"]),
            fine=row["fine"] or 0,
        )
