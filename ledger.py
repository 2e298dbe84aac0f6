import sqlite3
from datetime import datetime
from typing import List, Optional, Tuple

from identifiers import BookId, MemberId, to_iso
from loan import LoanRecord


class LoanLedger:
    """Ödünçlerin ekle/kapat defteri. Satırlar asla silinmez."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def append(self, loan: LoanRecord) -> None:
        self.conn.execute(
            """
            INSERT INTO loans (id, book_id, member_id, borrowed_on, due_date, returned_on, fine)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                loan.loan_id, loan.book_id, loan.member_id, to_iso(loan.borrowed_on),
                to_iso(loan.due_date), to_iso(loan.returned_on), loan.fine,
            ),
        )

    def find_open(self, book_id: BookId, member_id: MemberId) -> Optional[LoanRecord]:
        row = self.conn.execute(
            """
            SELECT * FROM loans
             WHERE book_id = ? AND member_id = ? AND returned_on IS NULL
             ORDER BY rowid LIMIT 1
            """,
            (book_id, member_id),
        ).fetchone()
        return LoanRecord.from_row(row) if row else None

    def close_open(self, book_id: BookId, member_id: MemberId, returned_on: datetime, fine: int) -> bool:
        """Çiftin açık ödüncünü kapatır. Açık ödünç yoksa False."""
        loan = self.find_open(book_id, member_id)
        if loan is None:
            return False
        self.conn.execute(
            "UPDATE loans SET returned_on = ?, fine = ? WHERE id = ?",
            (to_iso(returned_on), fine, loan.loan_id),
        )
        return True

    def list(self, member_id: Optional[MemberId] = None, open_only: bool = False) -> List[LoanRecord]:
        clauses, params = [], []
        if member_id:
            clauses.append("member_id = ?")
            params.append(member_id)
        if open_only:
            clauses.append("returned_on IS NULL")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.conn.execute(f"SELECT * FROM loans {where} ORDER BY rowid", params).fetchall()
        return [LoanRecord.from_row(row) for row in rows]

    def counts_by_member(self, limit: int) -> List[Tuple[MemberId, int]]:
        """(member_id, ödünç sayısı) çiftleri, en yoğun önce; eşitlikte ilk görünen önce."""
        rows = self.conn.execute(
            """
            SELECT member_id, COUNT(*) AS borrow_count, MIN(rowid) AS first_seen
              FROM loans
             GROUP BY member_id
             ORDER BY borrow_count DESC, first_seen ASC
             LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [(MemberId(row["member_id"]), row["borrow_count"]) for row in rows]
