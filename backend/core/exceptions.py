"""
Term management errors.

Validation, conflict and not-found errors are recoverable by the caller.
StoreError wraps persistence failures and is fatal for the current operation.
Running out of term numbers is not an error; it is reported as a result value.
"""

from typing import Any, Dict, Optional


class TermError(Exception):
    """Base class for term management errors."""
    status_code = 500

    def to_dict(self) -> Dict[str, Any]:
        return {"error": str(self)}


class ValidationError(TermError):
    """Raised when term input is malformed or out of range."""
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class ConflictError(TermError):
    """Raised when a term number is already held by another record."""
    status_code = 409

    def __init__(
        self,
        message: str,
        term_number: Optional[int] = None,
        owner_cohort_key: Optional[str] = None,
        owner_record_id: Optional[str] = None
    ):
        super().__init__(message)
        self.term_number = term_number
        self.owner_cohort_key = owner_cohort_key
        self.owner_record_id = owner_record_id

    @classmethod
    def for_number(cls, term_number: int, owner_cohort_key: Optional[str] = None,
                   owner_record_id: Optional[str] = None) -> "ConflictError":
        if owner_cohort_key:
            message = f"Semester {term_number} is already assigned to cohort {owner_cohort_key}"
        else:
            message = f"Semester {term_number} is already assigned to another cohort"
        return cls(message, term_number, owner_cohort_key, owner_record_id)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["term_number"] = self.term_number
        data["owner_cohort_key"] = self.owner_cohort_key
        return data


class NotFoundError(TermError):
    """Raised when a term record id does not exist."""
    status_code = 404

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id


class StoreError(TermError):
    """Raised when the underlying store fails."""
    status_code = 500

    def to_dict(self) -> Dict[str, Any]:
        return {"error": "Internal storage error"}
