from typing import List, Optional

from book import Book
from catalog import BookStore
from config import Settings, settings as default_settings
from database import Database
from errors import BadRequestError
from identifiers import MemberId
from ledger import LoanLedger
from member import Member
from members import MemberStore

MAX_REPORT_LIMIT = 100


class ActiveMember:
    """Aktif üyeler raporunun bir satırı. Üye silinmişse ``member`` None olur."""

    def __init__(self, member_id: MemberId, borrow_count: int, member: Optional[Member]) -> None:
        self.member_id = member_id
        self.borrow_count = borrow_count
        self.member = member

    def to_dict(self) -> dict:
        return {
            "memberId": self.member_id,
            "borrowCount": self.borrow_count,
            "member": self.member.to_dict() if self.member else None,
        }


class ReportingService:
    """Kitaplar ve ödünç defteri üzerinde salt okunur toplamalar."""

    def __init__(self, db: Database, config: Optional[Settings] = None) -> None:
        self.db = db
        self.config = config or default_settings

    def most_borrowed(self, limit: Optional[int] = None) -> List[Book]:
        with self.db.connection() as conn:
            return BookStore(conn).most_borrowed(self._limit(limit))

    def active_members(self, limit: Optional[int] = None) -> List[ActiveMember]:
        with self.db.connection() as conn:
            counts = LoanLedger(conn).counts_by_member(self._limit(limit))
            members = MemberStore(conn)
            return [ActiveMember(member_id, count, members.get(member_id)) for member_id, count in counts]

    def _limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.config.report_limit
        if not 1 <= limit <= MAX_REPORT_LIMIT:
            raise BadRequestError(f"limit must be between 1 and {MAX_REPORT_LIMIT}")
        return limit
