"""
Term Record Storage

Every sequence that reads the used term numbers and then writes one must run
inside `atomically`, so two writers can never both claim the same number.

Two stores are provided:
- FirestoreTermRepository: records live in `term_records`; each held term
  number has a claim document `term_claims/{n}` written in the same Firestore
  transaction as the record. The claim documents are the uniqueness constraint.
- InMemoryTermRepository: a lock-guarded dict with a unique index on
  term_number. Used for local development (TERM_STORE=memory) and tests.
"""

import copy
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Set, TypeVar

from firebase_admin import firestore

from core import config
from core.config import get_firestore_client, initialize_firebase
from core.exceptions import ConflictError, NotFoundError, StoreError, TermError
from core.models import TERM_NUMBERS, TermRecord


T = TypeVar("T")

# Fields an update patch may change
PATCHABLE_FIELDS = {"cohort_key", "term_number", "start_date", "end_date", "is_current", "modified_at"}


class TermStore(ABC):
    """Read and write operations on term records."""

    @abstractmethod
    def list_all(self) -> List[TermRecord]:
        ...

    @abstractmethod
    def list_by_cohort(self, cohort_key: str) -> List[TermRecord]:
        ...

    @abstractmethod
    def get(self, record_id: str) -> Optional[TermRecord]:
        ...

    @abstractmethod
    def find_by_number(self, term_number: int) -> Optional[TermRecord]:
        ...

    @abstractmethod
    def used_numbers(self) -> Set[int]:
        """Term numbers currently held by any record."""
        ...

    @abstractmethod
    def create(self, record: TermRecord) -> TermRecord:
        ...

    @abstractmethod
    def update(self, record_id: str, patch: Dict[str, Any]) -> TermRecord:
        ...

    @abstractmethod
    def delete(self, record_id: str) -> None:
        ...


class TermRepository(TermStore):
    """A term store that can run a function as one atomic unit."""

    @abstractmethod
    def atomically(self, fn: Callable[[TermStore], T]) -> T:
        """
        Run fn(store) atomically.

        Either every write made through `store` is applied or none is.
        """
        ...

    def ping(self) -> bool:
        """Check that the store is reachable."""
        self.used_numbers()
        return True


def _clean_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown term fields: {', '.join(sorted(unknown))}")
    cleaned = dict(patch)
    cleaned.setdefault("modified_at", datetime.utcnow())
    return cleaned


# In-memory store

class InMemoryTermRepository(TermRepository):
    """Thread-safe in-process term store."""

    def __init__(self, records: Optional[List[TermRecord]] = None):
        self._lock = threading.RLock()
        self._records: Dict[str, TermRecord] = {}
        for record in records or []:
            self.create(record)

    def list_all(self) -> List[TermRecord]:
        with self._lock:
            return [r.copy() for r in self._records.values()]

    def list_by_cohort(self, cohort_key: str) -> List[TermRecord]:
        with self._lock:
            return [r.copy() for r in self._records.values() if r.cohort_key == cohort_key]

    def get(self, record_id: str) -> Optional[TermRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.copy() if record else None

    def find_by_number(self, term_number: int) -> Optional[TermRecord]:
        with self._lock:
            for record in self._records.values():
                if record.term_number == term_number:
                    return record.copy()
            return None

    def used_numbers(self) -> Set[int]:
        with self._lock:
            return {r.term_number for r in self._records.values()}

    def _check_unique(self, term_number: int, record_id: Optional[str]) -> None:
        owner = self.find_by_number(term_number)
        if owner and owner.id != record_id:
            raise ConflictError.for_number(term_number, owner.cohort_key, owner.id)

    def create(self, record: TermRecord) -> TermRecord:
        with self._lock:
            self._check_unique(record.term_number, None)
            now = datetime.utcnow()
            stored = record.copy(
                id=record.id or uuid.uuid4().hex,
                created_at=record.created_at or now,
                modified_at=record.modified_at or now,
            )
            if stored.id in self._records:
                raise ConflictError(f"Term record {stored.id} already exists")
            self._records[stored.id] = stored
            return stored.copy()

    def update(self, record_id: str, patch: Dict[str, Any]) -> TermRecord:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise NotFoundError("Semester not found", record_id)
            patch = _clean_patch(patch)
            if "term_number" in patch:
                self._check_unique(patch["term_number"], record_id)
            updated = current.copy(**patch)
            self._records[record_id] = updated
            return updated.copy()

    def delete(self, record_id: str) -> None:
        with self._lock:
            if record_id not in self._records:
                raise NotFoundError("Semester not found", record_id)
            del self._records[record_id]

    def atomically(self, fn: Callable[[TermStore], T]) -> T:
        with self._lock:
            snapshot = copy.deepcopy(self._records)
            try:
                return fn(self)
            except BaseException:
                self._records = snapshot
                raise


# Firestore store

def _serialize(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class _FirestoreUnit(TermStore):
    """
    Term store bound to one Firestore transaction.

    Firestore requires all reads to happen before the first write, so the
    claim documents are read when the unit is created and callers read the
    records they need before writing.
    """

    def __init__(self, repository: "FirestoreTermRepository", transaction=None):
        self._repo = repository
        self._transaction = transaction
        self._records: Dict[str, Optional[TermRecord]] = {}
        refs = [repository.claim_ref(n) for n in TERM_NUMBERS]
        self._claims: Dict[int, Dict[str, Any]] = {}
        for snapshot in repository.db.get_all(refs, transaction=transaction):
            if snapshot.exists:
                self._claims[int(snapshot.id)] = snapshot.to_dict()

    def _remember(self, record: TermRecord) -> TermRecord:
        self._records[record.id] = record
        return record

    def list_all(self) -> List[TermRecord]:
        docs = self._repo.records.stream(transaction=self._transaction)
        return [self._remember(TermRecord.from_dict(doc.to_dict(), doc.id)) for doc in docs]

    def list_by_cohort(self, cohort_key: str) -> List[TermRecord]:
        docs = self._repo.records.where("cohort_key", "==", cohort_key).stream(
            transaction=self._transaction
        )
        return [self._remember(TermRecord.from_dict(doc.to_dict(), doc.id)) for doc in docs]

    def get(self, record_id: str) -> Optional[TermRecord]:
        if record_id in self._records:
            return self._records[record_id]
        snapshot = self._repo.records.document(record_id).get(transaction=self._transaction)
        record = TermRecord.from_dict(snapshot.to_dict(), snapshot.id) if snapshot.exists else None
        self._records[record_id] = record
        return record

    def find_by_number(self, term_number: int) -> Optional[TermRecord]:
        claim = self._claims.get(term_number)
        if not claim:
            return None
        return self.get(claim["record_id"])

    def used_numbers(self) -> Set[int]:
        return set(self._claims)

    def _check_claim(self, term_number: int, record_id: Optional[str]) -> None:
        claim = self._claims.get(term_number)
        if claim and claim.get("record_id") != record_id:
            raise ConflictError.for_number(term_number, claim.get("cohort_key"), claim.get("record_id"))

    def _write_claim(self, term_number: int, record_id: str, cohort_key: str) -> None:
        claim = {
            "record_id": record_id,
            "cohort_key": cohort_key,
            "claimed_at": datetime.utcnow().isoformat(),
        }
        self._transaction.set(self._repo.claim_ref(term_number), claim)
        self._claims[term_number] = claim

    def _release_claim(self, term_number: int, record_id: str) -> None:
        claim = self._claims.get(term_number)
        if claim and claim.get("record_id") == record_id:
            self._transaction.delete(self._repo.claim_ref(term_number))
            del self._claims[term_number]

    def create(self, record: TermRecord) -> TermRecord:
        self._check_claim(record.term_number, None)

        now = datetime.utcnow()
        doc_ref = self._repo.records.document(record.id) if record.id else self._repo.records.document()
        stored = record.copy(
            id=doc_ref.id,
            created_at=record.created_at or now,
            modified_at=record.modified_at or now,
        )

        self._transaction.set(doc_ref, stored.to_dict())
        self._write_claim(stored.term_number, stored.id, stored.cohort_key)
        return self._remember(stored)

    def update(self, record_id: str, patch: Dict[str, Any]) -> TermRecord:
        current = self.get(record_id)
        if current is None:
            raise NotFoundError("Semester not found", record_id)

        patch = _clean_patch(patch)
        updated = current.copy(**patch)

        if updated.term_number != current.term_number:
            self._check_claim(updated.term_number, record_id)
            self._release_claim(current.term_number, record_id)
            self._write_claim(updated.term_number, record_id, updated.cohort_key)
        elif updated.cohort_key != current.cohort_key:
            self._write_claim(updated.term_number, record_id, updated.cohort_key)

        self._transaction.update(
            self._repo.records.document(record_id),
            {key: _serialize(value) for key, value in patch.items()}
        )
        return self._remember(updated)

    def delete(self, record_id: str) -> None:
        current = self.get(record_id)
        if current is None:
            raise NotFoundError("Semester not found", record_id)

        self._transaction.delete(self._repo.records.document(record_id))
        self._release_claim(current.term_number, record_id)
        self._records[record_id] = None


class FirestoreTermRepository(TermRepository):
    """Term store backed by Firestore transactions."""

    def __init__(self, db=None, records_collection: Optional[str] = None,
                 claims_collection: Optional[str] = None):
        self.db = db or get_firestore_client()
        self.records_collection = records_collection or config.TERM_RECORDS_COLLECTION
        self.claims_collection = claims_collection or config.TERM_CLAIMS_COLLECTION

    @property
    def records(self):
        return self.db.collection(self.records_collection)

    def claim_ref(self, term_number: int):
        return self.db.collection(self.claims_collection).document(str(term_number))

    def _read(self, fn: Callable[[TermStore], T]) -> T:
        try:
            return fn(_FirestoreUnit(self))
        except TermError:
            raise
        except Exception as e:
            print(f"[TERMS] Firestore read failed: {e}")
            raise StoreError("Failed to read term records") from e

    def list_all(self) -> List[TermRecord]:
        return self._read(lambda store: store.list_all())

    def list_by_cohort(self, cohort_key: str) -> List[TermRecord]:
        return self._read(lambda store: store.list_by_cohort(cohort_key))

    def get(self, record_id: str) -> Optional[TermRecord]:
        return self._read(lambda store: store.get(record_id))

    def find_by_number(self, term_number: int) -> Optional[TermRecord]:
        return self._read(lambda store: store.find_by_number(term_number))

    def used_numbers(self) -> Set[int]:
        return self._read(lambda store: store.used_numbers())

    def create(self, record: TermRecord) -> TermRecord:
        return self.atomically(lambda store: store.create(record))

    def update(self, record_id: str, patch: Dict[str, Any]) -> TermRecord:
        return self.atomically(lambda store: store.update(record_id, patch))

    def delete(self, record_id: str) -> None:
        return self.atomically(lambda store: store.delete(record_id))

    def atomically(self, fn: Callable[[TermStore], T]) -> T:
        @firestore.transactional
        def _run(transaction):
            return fn(_FirestoreUnit(self, transaction))

        try:
            return _run(self.db.transaction())
        except TermError:
            raise
        except Exception as e:
            print(f"[TERMS] Firestore transaction failed: {e}")
            raise StoreError("Failed to write term records") from e


_term_repository: Optional[TermRepository] = None


def get_term_repository() -> TermRepository:
    """Get singleton instance of the configured term repository."""
    global _term_repository
    if _term_repository is None:
        if config.TERM_STORE == "memory":
            print("[TERMS] Using in-memory term store")
            _term_repository = InMemoryTermRepository()
        else:
            initialize_firebase()
            _term_repository = FirestoreTermRepository()
    return _term_repository
