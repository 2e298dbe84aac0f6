from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import NewType, Optional

# Kimlikler depolar arasında değer olarak taşınır; ayrı tür adları bir üye
# kimliğinin kitap kimliği beklenen yere geçirilmesini önler.
BookId = NewType("BookId", str)
MemberId = NewType("MemberId", str)
UserId = NewType("UserId", str)
LoanId = NewType("LoanId", str)


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Saklanan zaman damgasını çözer; saat dilimsiz değerler UTC sayılır."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
