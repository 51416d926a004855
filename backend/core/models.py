"""
Term Record Data Model

One record per cohort. Advancing a cohort rewrites its record in place,
so there is no history of past terms.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Dict, Optional


MIN_TERM_NUMBER = 1
MAX_TERM_NUMBER = 10
TERM_NUMBERS = range(MIN_TERM_NUMBER, MAX_TERM_NUMBER + 1)


@dataclass
class TermRecord:
    """Data structure for a cohort's current term."""
    cohort_key: str
    term_number: int
    start_date: date
    end_date: date
    is_current: bool = True
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"Semester {self.term_number}"

    @property
    def cohort_year(self) -> Optional[int]:
        """Admission year encoded in the cohort key, or None if it isn't a year."""
        key = (self.cohort_key or "").strip()
        if len(key) == 4 and key.isdigit():
            return int(key)
        return None

    def copy(self, **changes) -> "TermRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for Firestore storage."""
        return {
            "cohort_key": self.cohort_key,
            "term_number": self.term_number,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "is_current": self.is_current,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "modified_at": self.modified_at.isoformat() if self.modified_at else None,
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], record_id: Optional[str] = None) -> "TermRecord":
        """Build a record from a stored Firestore document."""
        return cls(
            id=record_id or data.get("id"),
            cohort_key=str(data["cohort_key"]),
            term_number=int(data["term_number"]),
            start_date=_as_date(data["start_date"]),
            end_date=_as_date(data["end_date"]),
            is_current=bool(data.get("is_current", False)),
            created_at=_as_datetime(data.get("created_at")),
            modified_at=_as_datetime(data.get("modified_at")),
            created_by=data.get("created_by"),
        )


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
