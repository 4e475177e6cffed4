# Overview: Pytest coverage for per-type document number allocation.

import pytest

from backoffice.models import DocumentSequence, EntryType, LedgerEntry
from backoffice.services import ledger_service
from backoffice.services.document_service import (
    format_document_number,
    next_document_number,
    parse_sequence,
    peek_next_document_number,
)
from backoffice.services.persistence import run_in_transaction


class TestNumberFormat:
    def test_format_and_parse(self):
        assert format_document_number("VTA-", 42) == "VTA-00000042"
        assert parse_sequence("VTA-00000042", "VTA-") == 42
        assert parse_sequence("LEGACY-7") == 7
        assert parse_sequence(None) == 0
        assert parse_sequence("no digits") == 0

    def test_deployment_prefix(self, app, db_session):
        app.config["DOCUMENT_NUMBER_PREFIX"] = "S1-"
        try:
            number = run_in_transaction(lambda: next_document_number(EntryType.SALE))
        finally:
            app.config["DOCUMENT_NUMBER_PREFIX"] = ""
        assert number == "S1-VTA-00000001"


class TestAllocation:
    def test_sequences_are_per_type_and_gapless(self, db_session, make_entry):
        numbers = [make_entry(EntryType.SALE, 10).document_number for _ in range(3)]
        assert numbers == ["VTA-00000001", "VTA-00000002", "VTA-00000003"]

        assert make_entry(EntryType.PURCHASE, 10).document_number == "REC-00000001"
        assert make_entry(EntryType.PAYMENT_OUT, 10).document_number == "PIS-00000001"

    def test_peek_does_not_allocate(self, db_session, make_entry):
        make_entry(EntryType.SALE, 10)
        assert peek_next_document_number(EntryType.SALE) == "VTA-00000002"
        assert peek_next_document_number(EntryType.SALE) == "VTA-00000002"
        assert make_entry(EntryType.SALE, 10).document_number == "VTA-00000002"

    def test_drafts_do_not_consume_numbers(self, db_session, make_entry):
        make_entry(EntryType.SALE, 10, confirm=False)
        assert make_entry(EntryType.SALE, 10).document_number == "VTA-00000001"

    def test_rolled_back_allocation_is_reused(self, db_session, make_entry):
        make_entry(EntryType.SALE, 10)

        def _allocate_then_fail():
            next_document_number(EntryType.SALE)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_in_transaction(_allocate_then_fail)

        assert make_entry(EntryType.SALE, 10).document_number == "VTA-00000002"

    def test_missing_counter_seeded_from_latest_entry(self, db_session, make_entry):
        """Entries imported before the counter existed keep numbering monotonic."""
        db_session.add(LedgerEntry(
            entry_type=EntryType.SALE,
            status="CONFIRMED",
            document_number="VTA-00000041",
            user_id="legacy",
            point_of_sale_id="POS-1",
        ))
        db_session.commit()

        assert make_entry(EntryType.SALE, 10).document_number == "VTA-00000042"
        counter = db_session.query(DocumentSequence).filter_by(entry_type=EntryType.SALE).one()
        assert counter.next_number == 43

    def test_duplicate_number_rejected_by_store(self, db_session, make_entry):
        from backoffice.validation import DocumentNumberConflict

        first = make_entry(EntryType.SALE, 10)

        def _duplicate():
            db_session.add(LedgerEntry(
                entry_type=EntryType.SALE,
                status="CONFIRMED",
                document_number=first.document_number,
                user_id="u-1",
                point_of_sale_id="POS-1",
            ))

        with pytest.raises(DocumentNumberConflict):
            run_in_transaction(_duplicate, retry=False)

    def test_confirm_uses_type_prefix(self, db_session, make_entry):
        order = make_entry(EntryType.PURCHASE_ORDER, 10, confirm=False)
        assert ledger_service.confirm_entry(order.id).document_number == "OC-00000001"

    def test_lagging_counter_skips_stored_numbers(self, db_session, make_entry):
        """A counter behind the stored rows must not hand out a number already in use."""
        db_session.add(LedgerEntry(
            entry_type=EntryType.SALE,
            status="CONFIRMED",
            document_number="VTA-00000005",
            user_id="legacy",
            point_of_sale_id="POS-1",
        ))
        db_session.add(DocumentSequence(entry_type=EntryType.SALE, next_number=5))
        db_session.commit()

        assert peek_next_document_number(EntryType.SALE) == "VTA-00000006"
        assert make_entry(EntryType.SALE, 10).document_number == "VTA-00000006"
        assert make_entry(EntryType.SALE, 10).document_number == "VTA-00000007"
        counter = db_session.query(DocumentSequence).filter_by(entry_type=EntryType.SALE).one()
        assert counter.next_number == 8

    def test_highest_number_wins_over_latest_created(self, db_session, make_entry):
        for number in ("VTA-00000009", "VTA-00000003"):
            db_session.add(LedgerEntry(
                entry_type=EntryType.SALE,
                status="CONFIRMED",
                document_number=number,
                user_id="legacy",
                point_of_sale_id="POS-1",
            ))
            db_session.commit()

        assert make_entry(EntryType.SALE, 10).document_number == "VTA-00000010"
