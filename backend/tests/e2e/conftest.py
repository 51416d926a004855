"""
E2E test fixtures and configuration

These tests verify the full application pipeline:
- Server startup and API endpoints
- Auth and role checks on term writes
- Allocation, uniqueness and expiry progression through HTTP

Run e2e tests with: pytest tests/e2e -m e2e
"""

import pytest
import sys
import time
from pathlib import Path
from contextlib import contextmanager

# Add backend to path for imports
backend_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(backend_dir))


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "e2e: marks tests as end-to-end tests (full pipeline)"
    )


class Timer:
    """Simple timer for measuring execution time"""

    def __init__(self):
        self.start_time = None
        self.end_time = None
        self.elapsed_ms = None

    def start(self):
        self.start_time = time.perf_counter()
        return self

    def stop(self):
        self.end_time = time.perf_counter()
        self.elapsed_ms = (self.end_time - self.start_time) * 1000
        return self.elapsed_ms

    @contextmanager
    def measure(self, label: str = ""):
        """Context manager for timing a block of code"""
        self.start()
        yield self
        elapsed = self.stop()
        if label:
            print(f"\n  [{label}] {elapsed:.2f}ms")


@pytest.fixture
def timer():
    """Provide a timer instance for tests"""
    return Timer()


@pytest.fixture
def timed_request(timer):
    """Factory for making timed HTTP requests"""
    def _timed_request(client, method: str, url: str, **kwargs):
        timer.start()
        response = client.request(method.upper(), url, **kwargs)
        elapsed = timer.stop()
        print(f"\n  [{method.upper()} {url}] {elapsed:.2f}ms - Status: {response.status_code}")
        return response, elapsed
    return _timed_request


@pytest.fixture
def term_payload():
    """Valid create-term body for the 2024 cohort's first semester"""
    return {
        "cohort_key": "2024",
        "term_number": 1,
        "start_date": "2024-07-01",
        "end_date": "2024-11-29",
        "is_current": True
    }
