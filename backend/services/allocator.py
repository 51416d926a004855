"""
Initial Term Allocation

Gives a cohort that has no term record the lowest term number nobody holds.
The read of used numbers and the write of the new record happen in one
atomic unit; a writer that loses a race retries with a fresh candidate.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Set, Tuple, Union

from core import config
from core.exceptions import ConflictError, TermError, ValidationError
from core.models import MAX_TERM_NUMBER, MIN_TERM_NUMBER, TermRecord
from core.semester import TermCalendar
from services.repository import TermRepository, TermStore


def next_free_number(used: Set[int], after: int = MIN_TERM_NUMBER - 1) -> Optional[int]:
    """Smallest term number greater than `after` that is not in `used`."""
    for number in range(max(after + 1, MIN_TERM_NUMBER), MAX_TERM_NUMBER + 1):
        if number not in used:
            return number
    return None


@dataclass
class NoneAvailable:
    """Every term number is taken; the cohort is left without a record."""
    cohort_key: str
    used_numbers: List[int] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"No free semester number for cohort {self.cohort_key}"


@dataclass
class AllocationRequest:
    cohort_key: str
    candidate_year: Optional[int] = None

    def resolve_year(self) -> int:
        """Candidate year, defaulting to the year encoded in the cohort key."""
        if self.candidate_year is not None:
            return self.candidate_year
        key = (self.cohort_key or "").strip()
        if len(key) == 4 and key.isdigit():
            return int(key)
        raise ValidationError(
            f"Cohort {self.cohort_key!r} is not a year; candidate_year is required",
            field="candidate_year"
        )


@dataclass
class AllocationResult:
    """Per-cohort outcome of a batch allocation."""
    cohort_key: str
    status: str  # allocated | existing | exhausted | error
    record: Optional[TermRecord] = None
    error: Optional[str] = None


class TermAllocator:
    """Assigns initial term numbers to cohorts."""

    def __init__(self, repository: TermRepository, max_retries: Optional[int] = None):
        self.repository = repository
        self.max_retries = max_retries if max_retries is not None else config.TERM_CLAIM_RETRIES

    @staticmethod
    def _validate(cohort_key: str, candidate_year: int) -> str:
        if not cohort_key or not str(cohort_key).strip():
            raise ValidationError("cohort_key is required", field="cohort_key")
        if not isinstance(candidate_year, int) or isinstance(candidate_year, bool):
            raise ValidationError("candidate_year must be an integer", field="candidate_year")
        return str(cohort_key).strip()

    def _allocate(self, store: TermStore, cohort_key: str, candidate_year: int,
                  today: date, created_by: Optional[str]) -> Tuple[Union[TermRecord, NoneAvailable], bool]:
        existing = store.list_by_cohort(cohort_key)
        if existing:
            current = [r for r in existing if r.is_current]
            return (current or existing)[0], False

        used = store.used_numbers()
        number = next_free_number(used)
        if number is None:
            return NoneAvailable(cohort_key, sorted(used)), False

        start, end = TermCalendar.compute_window(number, candidate_year)
        record = store.create(TermRecord(
            cohort_key=cohort_key,
            term_number=number,
            start_date=start,
            end_date=end,
            is_current=TermCalendar.is_within(today, start, end),
            created_by=created_by
        ))
        return record, True

    def _claim(self, cohort_key: str, candidate_year: int, today: date,
               created_by: Optional[str]) -> Tuple[Union[TermRecord, NoneAvailable], bool]:
        last_error: Optional[ConflictError] = None
        attempts = max(self.max_retries, 1)

        for attempt in range(attempts):
            try:
                outcome, created = self.repository.atomically(
                    lambda store: self._allocate(store, cohort_key, candidate_year, today, created_by)
                )
            except ConflictError as e:
                last_error = e
                print(f"[TERMS] Allocation race for cohort {cohort_key} "
                      f"(attempt {attempt + 1}/{attempts}): {e}")
                continue

            if isinstance(outcome, NoneAvailable):
                print(f"[TERMS] {outcome.message}")
            elif created:
                print(f"[TERMS] Cohort {cohort_key} allocated {outcome.display_name} "
                      f"({outcome.start_date} - {outcome.end_date})")
            return outcome, created

        raise last_error

    def allocate_initial(
        self,
        cohort_key: str,
        candidate_year: int,
        today: Optional[date] = None,
        created_by: Optional[str] = None
    ) -> Union[TermRecord, NoneAvailable]:
        """
        Allocate the first free term number to a cohort with no record.

        Args:
            cohort_key: Admission-year key of the cohort
            candidate_year: Base year used for the calendar window
            today: Date used to decide whether the new term is current
            created_by: Audit user id

        Returns:
            The cohort's record (new, or existing if it already had one),
            or NoneAvailable when all numbers are taken
        """
        cohort_key = self._validate(cohort_key, candidate_year)
        outcome, _ = self._claim(cohort_key, candidate_year, today or date.today(), created_by)
        return outcome

    def allocate_missing(
        self,
        requests: Iterable[AllocationRequest],
        today: Optional[date] = None,
        created_by: Optional[str] = None
    ) -> List[AllocationResult]:
        """
        Allocate initial terms for a batch of cohorts.

        Each cohort is handled independently; a failure for one is recorded
        in its result and does not stop the rest.
        """
        today = today or date.today()
        results = []

        for request in requests:
            try:
                candidate_year = request.resolve_year()
                cohort_key = self._validate(request.cohort_key, candidate_year)
                outcome, created = self._claim(cohort_key, candidate_year, today, created_by)
            except TermError as e:
                print(f"[TERMS] Allocation failed for cohort {request.cohort_key}: {e}")
                results.append(AllocationResult(request.cohort_key, "error", error=str(e)))
                continue

            if isinstance(outcome, NoneAvailable):
                results.append(AllocationResult(cohort_key, "exhausted", error=outcome.message))
            else:
                status = "allocated" if created else "existing"
                results.append(AllocationResult(cohort_key, status, record=outcome))

        return results
