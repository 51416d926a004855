"""
Unit test fixtures
"""

import pytest
import sys
from datetime import date
from pathlib import Path

# Add backend to path for imports
backend_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(backend_dir))

from core.models import TermRecord
from core.semester import TermCalendar
from services.repository import InMemoryTermRepository


@pytest.fixture
def repo():
    """Empty in-memory term store"""
    return InMemoryTermRepository()


@pytest.fixture
def make_record():
    """Factory for term records with calendar-correct windows"""
    def _make_record(cohort_key: str, term_number: int, is_current: bool = True,
                     cohort_year: int = None, **overrides) -> TermRecord:
        year = cohort_year if cohort_year is not None else int(cohort_key)
        start, end = TermCalendar.compute_window(term_number, year)
        fields = dict(
            cohort_key=cohort_key,
            term_number=term_number,
            start_date=start,
            end_date=end,
            is_current=is_current,
        )
        fields.update(overrides)
        return TermRecord(**fields)
    return _make_record


@pytest.fixture
def fill_numbers(repo):
    """Occupy the given term numbers with placeholder cohorts"""
    def _fill(numbers):
        records = []
        for n in numbers:
            key = f"X{n:02d}"
            records.append(repo.create(TermRecord(
                cohort_key=key,
                term_number=n,
                start_date=date(2030, 7, 1),
                end_date=date(2030, 11, 29),
                is_current=True,
            )))
        return records
    return _fill
