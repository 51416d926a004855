from .repository import (
    TermRepository,
    TermStore,
    FirestoreTermRepository,
    InMemoryTermRepository,
    get_term_repository,
)
from .uniqueness import UniquenessGuard, UniquenessResult
from .allocator import TermAllocator, NoneAvailable, AllocationRequest, AllocationResult
from .progression import ProgressionEngine, ProgressionOutcome, ProgressionState
from .terms import TermService, get_term_service
