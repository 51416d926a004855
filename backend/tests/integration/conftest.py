"""
Integration test fixtures and configuration

These tests hit a real Firestore project using throwaway collections.
They are slower and require network access plus Firebase credentials.

Run integration tests with: pytest tests/integration -m integration
Skip integration tests with: pytest -m "not integration"
"""

import pytest
import uuid
from pathlib import Path

# Add backend to path for imports
import sys
backend_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(backend_dir))


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may be slow, requires network)"
    )
    config.addinivalue_line(
        "markers", "firebase: marks tests that require Firebase connection"
    )


@pytest.fixture
def firestore_repo():
    """
    FirestoreTermRepository bound to uniquely named collections.

    Every document written during the test is deleted afterwards.
    """
    from core.config import initialize_firebase
    from services.repository import FirestoreTermRepository

    db = initialize_firebase()
    suffix = uuid.uuid4().hex[:8]
    repo = FirestoreTermRepository(
        db=db,
        records_collection=f"test_term_records_{suffix}",
        claims_collection=f"test_term_claims_{suffix}"
    )

    yield repo

    for name in (repo.records_collection, repo.claims_collection):
        for doc in db.collection(name).stream():
            doc.reference.delete()
