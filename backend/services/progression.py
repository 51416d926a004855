"""
Term Progression Engine

Moves a cohort to its next term once the current one has ended. There is no
clock driving this: expiry is checked whenever records are read.

States:
- active: the term has not ended (or the record is not current)
- advanced: the record now holds the next free term number
- exhausted: no higher term number is free; the record is left as it was
- skipped: the record could not be evaluated (deleted, key is not a year,
  or a concurrent writer kept winning)
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional, Union

from core import config
from core.exceptions import ConflictError
from core.models import TermRecord
from core.semester import TermCalendar
from services.allocator import next_free_number
from services.repository import TermRepository, TermStore


class ProgressionState(str, Enum):
    ACTIVE = "active"
    ADVANCED = "advanced"
    EXHAUSTED = "exhausted"
    SKIPPED = "skipped"


@dataclass
class ProgressionOutcome:
    """Result of evaluating one record for expiry."""
    record: TermRecord
    state: ProgressionState
    previous_number: int
    reason: Optional[str] = None

    @property
    def new_number(self) -> int:
        return self.record.term_number

    def to_dict(self) -> dict:
        return {
            "id": self.record.id,
            "cohort_key": self.record.cohort_key,
            "state": self.state.value,
            "previous_number": self.previous_number,
            "new_number": self.new_number,
            "reason": self.reason,
        }


def _as_day(now: Union[date, datetime]) -> date:
    return now.date() if isinstance(now, datetime) else now


class ProgressionEngine:
    """Advances expired cohort terms in place."""

    def __init__(self, repository: TermRepository, max_retries: Optional[int] = None):
        self.repository = repository
        self.max_retries = max_retries if max_retries is not None else config.TERM_CLAIM_RETRIES

    @staticmethod
    def is_expired(record: TermRecord, now: Union[date, datetime]) -> bool:
        """Only current records expire."""
        return record.is_current and _as_day(now) > record.end_date

    def _step(self, store: TermStore, record: TermRecord, today: date) -> ProgressionOutcome:
        fresh = store.get(record.id)
        if fresh is None:
            return ProgressionOutcome(
                record, ProgressionState.SKIPPED, record.term_number, reason="Record was deleted"
            )

        if not self.is_expired(fresh, today):
            # Another request advanced it first
            return ProgressionOutcome(fresh, ProgressionState.ACTIVE, fresh.term_number)

        if fresh.cohort_year is None:
            # Cohort key was changed to a non-year since the caller read it
            return ProgressionOutcome(
                fresh, ProgressionState.SKIPPED, fresh.term_number,
                reason="Cohort key is not an admission year"
            )

        next_number = next_free_number(store.used_numbers(), after=fresh.term_number)
        if next_number is None:
            return ProgressionOutcome(
                fresh, ProgressionState.EXHAUSTED, fresh.term_number,
                reason="No free semester number above the current one"
            )

        start, end = TermCalendar.compute_window(next_number, fresh.cohort_year)
        updated = store.update(fresh.id, {
            "term_number": next_number,
            "start_date": start,
            "end_date": end,
            "is_current": True,
        })
        return ProgressionOutcome(updated, ProgressionState.ADVANCED, fresh.term_number)

    def advance(self, record: TermRecord, now: Union[date, datetime]) -> ProgressionOutcome:
        """
        Evaluate one record and advance it if its term has ended.

        Args:
            record: Record as fetched by the caller (re-read inside the atomic unit)
            now: Current instant supplied by the caller

        Returns:
            ProgressionOutcome describing what happened
        """
        if not self.is_expired(record, now):
            return ProgressionOutcome(record, ProgressionState.ACTIVE, record.term_number)

        if record.cohort_year is None:
            print(f"[TERMS] Cohort {record.cohort_key!r} is not a year; cannot advance")
            return ProgressionOutcome(
                record, ProgressionState.SKIPPED, record.term_number,
                reason="Cohort key is not an admission year"
            )

        today = _as_day(now)
        attempts = max(self.max_retries, 1)

        for attempt in range(attempts):
            try:
                outcome = self.repository.atomically(
                    lambda store: self._step(store, record, today)
                )
            except ConflictError as e:
                print(f"[TERMS] Advance race for cohort {record.cohort_key} "
                      f"(attempt {attempt + 1}/{attempts}): {e}")
                continue

            if outcome.state == ProgressionState.ADVANCED:
                print(f"[TERMS] Cohort {record.cohort_key} advanced: Semester "
                      f"{outcome.previous_number} -> {outcome.new_number} "
                      f"({outcome.record.start_date} - {outcome.record.end_date})")
            elif outcome.state == ProgressionState.EXHAUSTED:
                print(f"[TERMS] Cohort {record.cohort_key} exhausted at Semester "
                      f"{outcome.previous_number}; record left unchanged")
            return outcome

        return ProgressionOutcome(
            record, ProgressionState.SKIPPED, record.term_number,
            reason="Lost the race for a free semester number"
        )

    def advance_all(self, records: Iterable[TermRecord],
                    now: Union[date, datetime]) -> List[ProgressionOutcome]:
        """Evaluate each record independently."""
        return [self.advance(record, now) for record in records]
