"""
Tests for services/terms.py and services/uniqueness.py - Administrative term operations
"""

import pytest
from datetime import date, datetime

from core.exceptions import ConflictError, NotFoundError, ValidationError
from services.terms import TermService
from services.uniqueness import UniquenessGuard


@pytest.fixture
def service(repo):
    return TermService(repo)


class TestUniquenessGuard:
    """Tests for UniquenessGuard"""

    def test_free_number_ok(self, repo):
        assert UniquenessGuard(repo).validate(4).ok is True

    def test_taken_number_reports_owner(self, repo, make_record):
        owner = repo.create(make_record("2022", 4))
        result = UniquenessGuard(repo).validate(4)

        assert result.ok is False
        assert result.owner_cohort_key == "2022"
        assert result.owner_record_id == owner.id

    def test_own_record_excluded(self, repo, make_record):
        owner = repo.create(make_record("2022", 4))
        assert UniquenessGuard(repo).validate(4, exclude_record_id=owner.id).ok is True

    def test_check_raises_conflict(self, repo, make_record):
        repo.create(make_record("2022", 4))
        with pytest.raises(ConflictError) as exc_info:
            UniquenessGuard(repo).check(4)
        assert exc_info.value.owner_cohort_key == "2022"
        assert exc_info.value.term_number == 4


class TestCreateTerm:
    """Tests for TermService.create_term"""

    def test_create_adjusts_weekend_dates(self, service):
        record = service.create_term(
            "2024", 1, date(2024, 6, 29), date(2024, 11, 30), is_current=True, created_by="u1"
        )

        assert record.start_date == date(2024, 7, 1)
        assert record.end_date == date(2024, 12, 2)
        assert record.created_by == "u1"
        assert record.created_at is not None

    def test_conflict_leaves_records_unchanged(self, repo, service):
        first = service.create_term("2023", 3, date(2024, 7, 1), date(2024, 11, 29))

        with pytest.raises(ConflictError) as exc_info:
            service.create_term("2024", 3, date(2024, 7, 1), date(2024, 11, 29))

        assert exc_info.value.owner_cohort_key == "2023"
        assert repo.list_all() == [first]

    def test_current_unsets_siblings(self, repo, service):
        old = service.create_term("2024", 1, date(2024, 7, 1), date(2024, 11, 29), is_current=True)
        new = service.create_term("2024", 2, date(2024, 12, 2), date(2025, 3, 31), is_current=True)

        assert repo.get(old.id).is_current is False
        assert repo.get(new.id).is_current is True

    def test_conflict_does_not_unset_siblings(self, repo, service):
        old = service.create_term("2024", 1, date(2024, 7, 1), date(2024, 11, 29), is_current=True)
        service.create_term("2023", 2, date(2024, 12, 2), date(2025, 3, 31))

        with pytest.raises(ConflictError):
            service.create_term("2024", 2, date(2024, 12, 2), date(2025, 3, 31), is_current=True)

        assert repo.get(old.id).is_current is True

    @pytest.mark.parametrize("term_number", [0, 11, -3])
    def test_out_of_range_rejected(self, service, term_number):
        with pytest.raises(ValidationError) as exc_info:
            service.create_term("2024", term_number, date(2024, 7, 1), date(2024, 11, 29))
        assert exc_info.value.field == "term_number"

    def test_end_before_start_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_term("2024", 1, date(2024, 11, 29), date(2024, 7, 1))

    def test_missing_cohort_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_term("  ", 1, date(2024, 7, 1), date(2024, 11, 29))


class TestUpdateTerm:
    """Tests for TermService.update_term"""

    def test_unknown_id(self, service):
        with pytest.raises(NotFoundError):
            service.update_term("missing", term_number=2)

    def test_change_number(self, repo, service, make_record):
        record = repo.create(make_record("2024", 1))
        updated = service.update_term(record.id, term_number=5)

        assert updated.term_number == 5
        assert repo.find_by_number(1) is None
        assert repo.find_by_number(5).id == record.id

    def test_change_to_taken_number(self, repo, service, make_record):
        a = repo.create(make_record("2024", 1))
        b = repo.create(make_record("2023", 3))

        with pytest.raises(ConflictError) as exc_info:
            service.update_term(a.id, term_number=3)

        assert exc_info.value.owner_cohort_key == "2023"
        assert repo.get(a.id) == a
        assert repo.get(b.id) == b

    def test_keep_same_number(self, repo, service, make_record):
        record = repo.create(make_record("2024", 1))
        updated = service.update_term(record.id, term_number=1, end_date=date(2024, 12, 14))

        assert updated.term_number == 1
        # Dec 14 2024 is a Saturday
        assert updated.end_date == date(2024, 12, 16)

    def test_merged_dates_validated(self, repo, service, make_record):
        record = repo.create(make_record("2024", 1))
        with pytest.raises(ValidationError):
            service.update_term(record.id, end_date=date(2024, 6, 3))
        assert repo.get(record.id) == record

    def test_set_current_unsets_siblings(self, repo, service, make_record):
        a = repo.create(make_record("2024", 1))
        b = repo.create(make_record("2024", 2, is_current=False))

        service.update_term(b.id, is_current=True)

        assert repo.get(a.id).is_current is False
        assert repo.get(b.id).is_current is True

    def test_modified_at_refreshed(self, repo, service, make_record):
        record = repo.create(make_record("2024", 1, modified_at=datetime(2020, 1, 1)))
        updated = service.update_term(record.id, cohort_key="2024")
        assert updated.modified_at > datetime(2020, 1, 1)


class TestDeleteTerm:

    def test_delete_releases_number(self, repo, service, make_record):
        record = repo.create(make_record("2024", 1))
        service.delete_term(record.id)

        assert repo.get(record.id) is None
        assert service.create_term("2025", 1, date(2025, 7, 1), date(2025, 12, 1)).term_number == 1

    def test_delete_unknown(self, service):
        with pytest.raises(NotFoundError):
            service.delete_term("missing")


class TestListTerms:
    """Tests for TermService.list_terms and current_term"""

    def test_list_runs_progression(self, repo, service, make_record):
        repo.create(make_record("2024", 1))

        records, outcomes = service.list_terms(now=datetime(2024, 12, 5))

        assert records[0].term_number == 2
        assert outcomes[0].state.value == "advanced"

    def test_order_and_filters(self, repo, service, make_record):
        repo.create(make_record("2023", 3))
        repo.create(make_record("2025", 1))
        repo.create(make_record("2024", 2, is_current=False))

        now = datetime(2024, 9, 1)
        records, _ = service.list_terms(now=now)
        assert [r.cohort_key for r in records] == ["2025", "2024", "2023"]

        current, _ = service.list_terms(current_only=True, now=now)
        assert [r.cohort_key for r in current] == ["2025", "2023"]

        only_2024, _ = service.list_terms(cohort_key="2024", now=now)
        assert [r.term_number for r in only_2024] == [2]

    def test_current_term(self, repo, service, make_record):
        repo.create(make_record("2024", 1))

        assert service.current_term("2024", now=datetime(2024, 12, 5)).term_number == 2
        assert service.current_term("2030", now=datetime(2024, 12, 5)) is None

    def test_preview_window(self):
        assert TermService.preview_window(2, 2025) == (date(2025, 12, 1), date(2026, 3, 31))
        with pytest.raises(ValidationError):
            TermService.preview_window(11, 2025)
