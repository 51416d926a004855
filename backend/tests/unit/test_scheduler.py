"""
Tests for tasks/scheduler.py and tasks/populate.py - Background jobs
"""

import asyncio
from datetime import date, datetime
from unittest.mock import patch

from services.terms import TermService
from tasks.populate import populate_terms
from tasks.scheduler import TermSweeper, run_sweep


class TestRunSweep:
    """Tests for run_sweep"""

    def test_counts_states(self, repo, make_record, fill_numbers):
        fill_numbers([3, 4, 5, 6, 7, 8, 9, 10])
        repo.create(make_record("2024", 1))
        repo.create(make_record("2023", 2, is_current=False))

        counts = run_sweep(TermService(repo), now=datetime(2024, 12, 5))

        # 2024 is blocked: every number above 1 is held
        assert counts == {"active": 9, "exhausted": 1}
        assert repo.list_by_cohort("2024")[0].term_number == 1

    def test_advances_expired_records(self, repo, make_record):
        record = repo.create(make_record("2024", 1))

        counts = run_sweep(TermService(repo), now=datetime(2024, 12, 5))

        assert counts == {"advanced": 1}
        assert repo.get(record.id).term_number == 2

    def test_empty_store(self, repo):
        assert run_sweep(TermService(repo), now=datetime(2024, 12, 5)) == {}


class TestTermSweeper:
    """Tests for TermSweeper"""

    def test_disabled_when_zero(self, repo):
        sweeper = TermSweeper(minutes=0, service=TermService(repo))
        assert sweeper.enabled is False

        asyncio.run(sweeper.start())

        assert sweeper.scheduler.get_jobs() == []

    def test_sweep_runs_once(self, repo, make_record):
        record = repo.create(make_record("2020", 1))
        sweeper = TermSweeper(minutes=15, service=TermService(repo))

        asyncio.run(sweeper.sweep())

        assert repo.get(record.id).term_number == 2

    def test_sweep_failure_is_logged(self, capsys):
        sweeper = TermSweeper(minutes=15)

        with patch('tasks.scheduler.run_sweep', side_effect=RuntimeError("store down")):
            asyncio.run(sweeper.sweep())

        assert "Term sweep failed" in capsys.readouterr().out


class TestPopulateTerms:
    """Tests for populate_terms"""

    def test_allocates_listed_cohorts(self, repo, make_record):
        repo.create(make_record("2024", 1))

        with patch('tasks.populate.get_term_service', return_value=TermService(repo)):
            results = populate_terms(["2024", "2025"], today=date(2025, 8, 1))

        assert [r.status for r in results] == ["existing", "allocated"]
        assert repo.list_by_cohort("2025")[0].term_number == 2

    def test_explicit_year(self, repo):
        with patch('tasks.populate.get_term_service', return_value=TermService(repo)):
            results = populate_terms(["evening"], year=2026, today=date(2026, 8, 3))

        assert results[0].status == "allocated"
        assert results[0].record.start_date == date(2026, 7, 1)
