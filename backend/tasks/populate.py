"""
Initial Term Allocation Script

Gives each listed cohort its first term record when it has none. Cohorts
that already have a record are left alone.

Usage:
    python -m tasks.populate 2024 2025                # Base year = cohort key
    python -m tasks.populate 2024 --year 2023         # Explicit base year
"""

import argparse
from datetime import date
from typing import List, Optional

from services.allocator import AllocationRequest, AllocationResult
from services.terms import get_term_service


def populate_terms(cohorts: List[str], year: Optional[int] = None,
                   today: Optional[date] = None) -> List[AllocationResult]:
    """
    Allocate initial terms for the given cohorts.

    Args:
        cohorts: Cohort keys (admission years)
        year: Base year for every cohort. If None, each cohort key is used.
        today: Date used to decide whether new terms are current
    """
    print("=" * 60)
    print("Cohort Term Allocation")
    print("=" * 60)

    requests = [AllocationRequest(cohort_key=c, candidate_year=year) for c in cohorts]
    results = get_term_service().allocate_missing(requests, today=today)

    for result in results:
        if result.record:
            print(f"  - {result.cohort_key}: {result.status} -> {result.record.display_name} "
                  f"({result.record.start_date} - {result.record.end_date})")
        else:
            print(f"  - {result.cohort_key}: {result.status} ({result.error})")

    print("=" * 60)
    return results


def main():
    parser = argparse.ArgumentParser(description="Allocate initial cohort terms")
    parser.add_argument("cohorts", nargs="+", help="Cohort keys, e.g. 2024")
    parser.add_argument("--year", type=int, default=None,
                        help="Base year for the window. Defaults to each cohort key.")

    args = parser.parse_args()
    populate_terms(args.cohorts, args.year)


if __name__ == "__main__":
    main()
