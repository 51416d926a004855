"""
Semester Window Calculation

Window Logic:
- Odd semesters run Jul 1 to Nov 30
- Even semesters run Dec 1 to Mar 31 (of the following year)
- Each pair of semesters moves the base year forward by one:
  base_year = cohort_year + (semester - 1) // 2

Boundary dates never fall on a weekend:
- Saturday moves forward 2 days
- Sunday moves forward 1 day
"""

from datetime import date, timedelta
from typing import Tuple

from .models import MIN_TERM_NUMBER, MAX_TERM_NUMBER


class TermCalendar:
    """Maps semester numbers to calendar windows"""

    # (month, day) boundaries
    ODD_TERM_START = (7, 1)      # July 1st
    ODD_TERM_END = (11, 30)      # November 30th
    EVEN_TERM_START = (12, 1)    # December 1st
    EVEN_TERM_END = (3, 31)      # March 31st, following year

    SATURDAY = 5
    SUNDAY = 6

    @staticmethod
    def base_year(term_number: int, cohort_year: int) -> int:
        """Calendar year in which the given semester starts"""
        return cohort_year + (term_number - 1) // 2

    @staticmethod
    def raw_window(term_number: int, cohort_year: int) -> Tuple[date, date]:
        """Window for a semester before weekend adjustment"""
        year = TermCalendar.base_year(term_number, cohort_year)

        if term_number % 2 == 1:
            start = date(year, *TermCalendar.ODD_TERM_START)
            end = date(year, *TermCalendar.ODD_TERM_END)
        else:
            start = date(year, *TermCalendar.EVEN_TERM_START)
            end = date(year + 1, *TermCalendar.EVEN_TERM_END)

        return start, end

    @staticmethod
    def adjust_for_weekend(day: date) -> date:
        """Move a Saturday or Sunday forward to the following Monday"""
        weekday = day.weekday()
        if weekday == TermCalendar.SATURDAY:
            return day + timedelta(days=2)
        if weekday == TermCalendar.SUNDAY:
            return day + timedelta(days=1)
        return day

    @staticmethod
    def compute_window(term_number: int, cohort_year: int) -> Tuple[date, date]:
        """
        Compute the weekday-adjusted window for a semester.

        Args:
            term_number: Semester number (1-10)
            cohort_year: Admission year of the cohort

        Returns:
            Tuple of (start_date, end_date)
        """
        start, end = TermCalendar.raw_window(term_number, cohort_year)
        return TermCalendar.adjust_for_weekend(start), TermCalendar.adjust_for_weekend(end)

    @staticmethod
    def is_within(day: date, start: date, end: date) -> bool:
        """Check if a day falls inside a window (inclusive)"""
        return start <= day <= end

    @staticmethod
    def is_valid_term_number(term_number) -> bool:
        return (
            isinstance(term_number, int)
            and not isinstance(term_number, bool)
            and MIN_TERM_NUMBER <= term_number <= MAX_TERM_NUMBER
        )


def compute_window(term_number: int, cohort_year: int) -> Tuple[date, date]:
    """Convenience function for TermCalendar.compute_window"""
    return TermCalendar.compute_window(term_number, cohort_year)


def adjust_for_weekend(day: date) -> date:
    """Convenience function for TermCalendar.adjust_for_weekend"""
    return TermCalendar.adjust_for_weekend(day)
