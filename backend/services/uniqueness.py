"""
Term Number Uniqueness Guard

No two records may hold the same term number at the same time. The guard
reports the owning cohort on a conflict and never picks another number on
the caller's behalf.
"""

from dataclasses import dataclass
from typing import Optional

from core.exceptions import ConflictError
from services.repository import TermStore


@dataclass
class UniquenessResult:
    """Outcome of a uniqueness check."""
    ok: bool
    term_number: int
    owner_cohort_key: Optional[str] = None
    owner_record_id: Optional[str] = None

    def to_error(self) -> ConflictError:
        return ConflictError.for_number(self.term_number, self.owner_cohort_key, self.owner_record_id)


class UniquenessGuard:
    """Validates that a term number is free for a given record."""

    def __init__(self, store: TermStore):
        self.store = store

    def validate(self, term_number: int, exclude_record_id: Optional[str] = None) -> UniquenessResult:
        """
        Check whether any other record already holds term_number.

        Args:
            term_number: The term number being claimed
            exclude_record_id: The record doing the claiming (ignored as an owner)

        Returns:
            UniquenessResult with ok=False and the owner when taken
        """
        owner = self.store.find_by_number(term_number)
        if owner is None or owner.id == exclude_record_id:
            return UniquenessResult(ok=True, term_number=term_number)

        return UniquenessResult(
            ok=False,
            term_number=term_number,
            owner_cohort_key=owner.cohort_key,
            owner_record_id=owner.id
        )

    def check(self, term_number: int, exclude_record_id: Optional[str] = None) -> None:
        """Like validate(), but raises ConflictError when the number is taken."""
        result = self.validate(term_number, exclude_record_id)
        if not result.ok:
            raise result.to_error()
