"""
Unit-of-work tests.

Tests cover:
- Nested calls share one transaction; only the outermost commits
- Store failures are translated into the ledger error taxonomy
- Retry of transient failures
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from backoffice.models import Customer, EntryType, LedgerEntry
from backoffice.services import ledger_service
from backoffice.services.concurrency import run_with_retry
from backoffice.services.persistence import (
    clamp_page,
    find_by_id,
    in_transaction,
    run_in_transaction,
    translate_integrity_error,
)
from backoffice.validation import (
    ConflictError,
    DocumentNumberConflict,
    NotFoundError,
    PersistenceError,
)


class _FakeOrig(Exception):
    pass


def _integrity(message):
    return IntegrityError("INSERT ...", {}, _FakeOrig(message))


class TestUnitOfWork:
    def test_nested_failure_rolls_back_everything(self, db_session, make_entry):
        def _outer():
            ledger_service.create_entry(EntryType.SALE, {"user_id": "u", "point_of_sale_id": "POS-1"})
            assert in_transaction()
            raise ConflictError("stop")

        with pytest.raises(ConflictError):
            run_in_transaction(_outer)

        assert not in_transaction()
        assert db_session.query(LedgerEntry).count() == 0

    def test_outermost_commits(self, db_session):
        def _outer():
            return run_in_transaction(lambda: db_session.add(Customer(id="c-9", first_name="Eva")) or "c-9")

        assert run_in_transaction(_outer) == "c-9"
        db_session.expunge_all()
        assert db_session.get(Customer, "c-9").first_name == "Eva"

    def test_duplicate_primary_key_is_conflict(self, db_session, customer):
        db_session.expunge_all()
        with pytest.raises(ConflictError) as exc:
            run_in_transaction(lambda: db_session.add(Customer(id="cust-1")))
        assert not isinstance(exc.value, DocumentNumberConflict)

    def test_driver_failure_is_persistence_error(self, db_session):
        def _boom():
            raise OperationalError("SELECT 1", {}, _FakeOrig("disk I/O error"))

        with pytest.raises(PersistenceError):
            run_in_transaction(_boom, retry=False)


class TestIntegrityTranslation:
    @pytest.mark.parametrize("message", [
        "UNIQUE constraint failed: ledger_entries.entry_type, ledger_entries.document_number",
        'duplicate key value violates unique constraint "uq_ledger_entries_type_number"',
        "UNIQUE constraint failed: document_sequences.entry_type",
    ])
    def test_document_number_collisions(self, message):
        assert isinstance(translate_integrity_error(_integrity(message)), DocumentNumberConflict)

    def test_open_session_collision(self):
        error = translate_integrity_error(_integrity("UNIQUE constraint failed: cash_sessions.point_of_sale_id"))
        assert type(error) is ConflictError
        assert str(error) == "Point of sale already has an open cash session"


class TestRetry:
    def test_retries_transient_failures(self, db_session):
        calls = []

        def _flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("UPDATE", {}, _FakeOrig("database is locked"))
            return "done"

        assert run_with_retry(_flaky, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, db_session):
        def _locked():
            raise OperationalError("UPDATE", {}, _FakeOrig("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(_locked, attempts=2, backoff_base=0)

    def test_document_conflict_retried_once(self, db_session):
        calls = []

        def _collide():
            calls.append(1)
            raise DocumentNumberConflict("taken")

        with pytest.raises(DocumentNumberConflict):
            run_with_retry(_collide)
        assert len(calls) == 2


class TestLookups:
    def test_find_by_id(self, db_session, customer):
        assert find_by_id(Customer, "cust-1") is customer
        assert find_by_id(Customer, "nope") is None
        with pytest.raises(NotFoundError) as exc:
            find_by_id(Customer, "nope", required=True, label="Customer")
        assert str(exc.value) == "Customer nope not found"

    @pytest.mark.parametrize("page,size,expected", [
        (None, None, (1, 25)),
        ("3", "10", (3, 10)),
        (0, 0, (1, 1)),
        ("x", 999, (1, 200)),
    ])
    def test_clamp_page(self, page, size, expected):
        assert clamp_page(page, size, default=25, maximum=200) == expected
