"""
Cohort Term Service

Administrative operations on term records: listing (with expiry progression),
create, update, delete and window previews. Every write that touches a term
number runs the uniqueness guard inside the same atomic unit as the write.
"""

from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from core.exceptions import ValidationError
from core.models import MAX_TERM_NUMBER, MIN_TERM_NUMBER, TermRecord
from core.semester import TermCalendar
from services.allocator import AllocationRequest, AllocationResult, TermAllocator
from services.progression import ProgressionEngine, ProgressionOutcome
from services.repository import TermRepository, TermStore, get_term_repository
from services.uniqueness import UniquenessGuard


def _require_cohort_key(cohort_key: Optional[str]) -> str:
    if cohort_key is None or not str(cohort_key).strip():
        raise ValidationError("cohort_key is required", field="cohort_key")
    return str(cohort_key).strip()


def _require_term_number(term_number) -> int:
    if not TermCalendar.is_valid_term_number(term_number):
        raise ValidationError(
            f"term_number must be between {MIN_TERM_NUMBER} and {MAX_TERM_NUMBER}",
            field="term_number"
        )
    return term_number


def _require_window(start: date, end: date) -> None:
    if end < start:
        raise ValidationError("end_date must not be before start_date", field="end_date")


class TermService:
    """Service for managing cohort term records."""

    def __init__(self, repository: Optional[TermRepository] = None):
        self.repository = repository or get_term_repository()
        self.allocator = TermAllocator(self.repository)
        self.engine = ProgressionEngine(self.repository)

    # --- Reads ---

    def list_terms(
        self,
        cohort_key: Optional[str] = None,
        current_only: bool = False,
        now: Optional[datetime] = None
    ) -> Tuple[List[TermRecord], List[ProgressionOutcome]]:
        """
        List term records, advancing any that have expired first.

        Returns:
            Tuple of (records, progression outcomes). Records are ordered by
            cohort key then start date, newest first.
        """
        now = now or datetime.utcnow()

        if cohort_key:
            records = self.repository.list_by_cohort(cohort_key)
        else:
            records = self.repository.list_all()

        outcomes = self.engine.advance_all(records, now)
        refreshed = [o.record for o in outcomes]

        if current_only:
            refreshed = [r for r in refreshed if r.is_current]

        refreshed.sort(key=lambda r: (r.cohort_key, r.start_date), reverse=True)
        return refreshed, outcomes

    def current_term(self, cohort_key: str, now: Optional[datetime] = None) -> Optional[TermRecord]:
        """Current term for a cohort after progression, or None."""
        cohort_key = _require_cohort_key(cohort_key)
        records, _ = self.list_terms(cohort_key, current_only=True, now=now)
        return records[0] if records else None

    @staticmethod
    def preview_window(term_number: int, cohort_year: int) -> Tuple[date, date]:
        """Window a term number would get for a cohort year."""
        _require_term_number(term_number)
        return TermCalendar.compute_window(term_number, cohort_year)

    # --- Writes ---

    @staticmethod
    def _unset_current_siblings(store: TermStore, siblings: Iterable[TermRecord], keep_id: Optional[str]) -> None:
        for sibling in siblings:
            if sibling.id != keep_id and sibling.is_current:
                store.update(sibling.id, {"is_current": False})

    def create_term(
        self,
        cohort_key: str,
        term_number: int,
        start_date: date,
        end_date: date,
        is_current: bool = False,
        created_by: Optional[str] = None
    ) -> TermRecord:
        """
        Create a term record.

        Dates are moved off weekends before saving. When the new record is
        current, other records of the same cohort stop being current.

        Raises:
            ValidationError: On missing or out-of-range input
            ConflictError: If another record holds term_number
        """
        cohort_key = _require_cohort_key(cohort_key)
        _require_term_number(term_number)
        if start_date is None or end_date is None:
            raise ValidationError("start_date and end_date are required")

        start = TermCalendar.adjust_for_weekend(start_date)
        end = TermCalendar.adjust_for_weekend(end_date)
        _require_window(start, end)

        def _create(store: TermStore) -> TermRecord:
            siblings = store.list_by_cohort(cohort_key) if is_current else []
            UniquenessGuard(store).check(term_number)
            self._unset_current_siblings(store, siblings, None)
            return store.create(TermRecord(
                cohort_key=cohort_key,
                term_number=term_number,
                start_date=start,
                end_date=end,
                is_current=bool(is_current),
                created_by=created_by
            ))

        record = self.repository.atomically(_create)
        print(f"[TERMS] Created {record.display_name} for cohort {cohort_key} ({record.id})")
        return record

    def update_term(
        self,
        record_id: str,
        cohort_key: Optional[str] = None,
        term_number: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        is_current: Optional[bool] = None
    ) -> TermRecord:
        """
        Update fields of an existing term record.

        Raises:
            NotFoundError: If record_id is unknown
            ValidationError: If the merged record would be invalid
            ConflictError: If the new term_number is held by another record
        """
        if not record_id:
            raise ValidationError("Semester ID is required", field="id")

        patch = {}
        if cohort_key is not None:
            patch["cohort_key"] = _require_cohort_key(cohort_key)
        if term_number is not None:
            patch["term_number"] = _require_term_number(term_number)
        if start_date is not None:
            patch["start_date"] = TermCalendar.adjust_for_weekend(start_date)
        if end_date is not None:
            patch["end_date"] = TermCalendar.adjust_for_weekend(end_date)
        if is_current is not None:
            patch["is_current"] = bool(is_current)

        def _update(store: TermStore) -> TermRecord:
            current = store.get(record_id)
            if current is None:
                # Let the store raise its NotFoundError
                return store.update(record_id, patch)

            merged = current.copy(**patch)
            _require_window(merged.start_date, merged.end_date)

            if merged.term_number != current.term_number:
                UniquenessGuard(store).check(merged.term_number, exclude_record_id=record_id)

            siblings = store.list_by_cohort(merged.cohort_key) if patch.get("is_current") else []
            self._unset_current_siblings(store, siblings, record_id)
            return store.update(record_id, patch)

        record = self.repository.atomically(_update)
        print(f"[TERMS] Updated {record.display_name} for cohort {record.cohort_key} ({record.id})")
        return record

    def delete_term(self, record_id: str) -> None:
        """
        Delete a term record and release its term number.

        Raises:
            NotFoundError: If record_id is unknown
        """
        if not record_id:
            raise ValidationError("Semester ID is required", field="id")
        self.repository.atomically(lambda store: store.delete(record_id))
        print(f"[TERMS] Deleted term record {record_id}")

    def allocate_missing(
        self,
        requests: Iterable[AllocationRequest],
        today: Optional[date] = None,
        created_by: Optional[str] = None
    ) -> List[AllocationResult]:
        """Allocate initial terms for cohorts that have none."""
        return self.allocator.allocate_missing(requests, today, created_by)


_term_service: Optional[TermService] = None


def get_term_service() -> TermService:
    """Get singleton instance of TermService."""
    global _term_service
    if _term_service is None:
        _term_service = TermService()
    return _term_service
