# Overview: Pytest coverage for ledger entry validation, confirmation and status transitions.

from decimal import Decimal

import pytest

from backoffice.models import EntryStatus, EntryType, LedgerEntry, PaymentMethod
from backoffice.services import cash_session_service, ledger_service
from backoffice.validation import InvalidStateError, NotFoundError, ValidationError


class TestEntryValidation:
    """create_entry rejects bad input before writing anything."""

    def test_balance_invariant_enforced(self, db_session):
        with pytest.raises(ValidationError) as exc:
            ledger_service.create_entry(EntryType.SALE, {
                "user_id": "u-1",
                "point_of_sale_id": "POS-1",
                "subtotal": "100",
                "discount_amount": "10",
                "tax_amount": "19",
                "total": "120",
            })
        assert "total 120.00 does not equal" in str(exc.value)
        assert db_session.query(LedgerEntry).count() == 0

    def test_total_within_tolerance_accepted(self, db_session):
        entry = ledger_service.create_entry(EntryType.SALE, {
            "user_id": "u-1",
            "point_of_sale_id": "POS-1",
            "subtotal": "100.00",
            "discount_amount": "10.00",
            "tax_amount": "19.00",
            "total": "109.01",
        })
        assert entry.total == Decimal("109.01")

    def test_total_computed_when_omitted(self, db_session):
        entry = ledger_service.create_entry(EntryType.SALE, {
            "user_id": "u-1",
            "point_of_sale_id": "POS-1",
            "subtotal": 100,
            "discount_amount": 5,
            "tax_amount": "1.5",
        })
        assert entry.total == Decimal("96.50")
        assert entry.status == EntryStatus.DRAFT
        assert entry.document_number is None

    def test_collects_every_violation(self, db_session):
        """All problems are reported together, not just the first one."""
        with pytest.raises(ValidationError) as exc:
            ledger_service.create_entry(EntryType.OPERATING_EXPENSE, {
                "subtotal": "-5",
                "payment_method": "BARTER",
            })
        errors = exc.value.errors
        assert "subtotal must not be negative" in errors
        assert "user_id is required for OPERATING_EXPENSE" in errors
        assert "expense_category_id is required for OPERATING_EXPENSE" in errors
        assert "cost_center_id is required for OPERATING_EXPENSE" in errors
        assert any(e.startswith("payment_method must be one of") for e in errors)
        assert str(exc.value) == "; ".join(errors)

    @pytest.mark.parametrize("entry_type,missing", [
        (EntryType.SALE, "point_of_sale_id"),
        (EntryType.PURCHASE, "storage_id"),
        (EntryType.PURCHASE_RETURN, "storage_id"),
        (EntryType.PURCHASE_ORDER, "supplier_id"),
    ])
    def test_required_associations(self, db_session, entry_type, missing):
        with pytest.raises(ValidationError) as exc:
            ledger_service.create_entry(entry_type, {"user_id": "u-1", "total": 0})
        assert f"{missing} is required for {entry_type}" in exc.value.errors

    def test_unknown_type_and_fields_rejected(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.create_entry("REFUND", {"user_id": "u-1"})
        with pytest.raises(ValidationError) as exc:
            ledger_service.create_entry(EntryType.PAYMENT_OUT, {"user_id": "u-1", "colour": "red"})
        assert "unknown fields: colour" in exc.value.errors

    def test_related_entry_must_be_inverse_type(self, db_session, make_entry):
        sale = make_entry(EntryType.SALE, 100)
        with pytest.raises(ValidationError) as exc:
            make_entry(EntryType.PURCHASE_RETURN, 100, related_entry_id=sale.id)
        assert "PURCHASE_RETURN may only reference PURCHASE entries, not SALE" in exc.value.errors

        sale_return = make_entry(EntryType.SALE_RETURN, 100, related_entry_id=sale.id)
        assert sale_return.related_entry_id == sale.id

    def test_related_entry_not_allowed_for_expense(self, db_session, make_entry):
        sale = make_entry(EntryType.SALE, 100)
        with pytest.raises(ValidationError) as exc:
            make_entry(EntryType.OPERATING_EXPENSE, 10, related_entry_id=sale.id)
        assert "OPERATING_EXPENSE entries cannot reference another entry" in exc.value.errors

    def test_missing_related_entry(self, db_session, make_entry):
        with pytest.raises(ValidationError) as exc:
            make_entry(EntryType.SALE_RETURN, 10, related_entry_id="nope")
        assert "related entry nope does not exist" in exc.value.errors

    def test_cash_session_must_be_open(self, db_session, make_entry, cash_session):
        cash_session_service.close_session(cash_session.id, user_id="u-1", closing_amount=10000)
        with pytest.raises(ValidationError) as exc:
            make_entry(EntryType.SALE, 100, cash_session_id=cash_session.id)
        assert f"cash session {cash_session.id} is CLOSED, not OPEN" in exc.value.errors

    def test_quota_schedule_must_match_total(self, db_session, make_entry):
        with pytest.raises(ValidationError) as exc:
            make_entry(
                EntryType.SALE,
                100,
                payment_method=PaymentMethod.INTERNAL_CREDIT,
                metadata={"subPayments": [
                    {"amount": 50, "dueDate": "2024-01-01"},
                    {"amount": 40, "dueDate": "2024-02-01"},
                ]},
            )
        assert any("must add up to total" in e for e in exc.value.errors)

    def test_quota_schedule_shape(self, db_session, make_entry):
        with pytest.raises(ValidationError) as exc:
            make_entry(
                EntryType.SALE,
                100,
                payment_method=PaymentMethod.INTERNAL_CREDIT,
                metadata={"internalCreditQuotas": [{"amount": "abc"}]},
            )
        joined = " ".join(exc.value.errors)
        assert "quota 1 amount must be a number" in joined
        assert "quota 1 dueDate is required" in joined


class TestEntryLines:
    def test_totals_are_sums_of_lines(self, db_session):
        entry = ledger_service.create_entry(EntryType.SALE, {
            "user_id": "u-1",
            "point_of_sale_id": "POS-1",
            "lines": [
                {"product_id": "p-1", "quantity": 2, "unit_price": "150", "tax_amount": "57"},
                {"product_id": "p-2", "quantity": "0.5", "unit_price": "100", "discount_amount": "10"},
            ],
        })
        assert entry.subtotal == Decimal("350.00")
        assert entry.discount_amount == Decimal("10.00")
        assert entry.tax_amount == Decimal("57.00")
        assert entry.total == Decimal("397.00")
        assert [line.line_number for line in entry.lines] == [1, 2]
        assert entry.lines[0].total == Decimal("357.00")

    def test_declared_subtotal_must_match_lines(self, db_session):
        with pytest.raises(ValidationError) as exc:
            ledger_service.create_entry(EntryType.SALE, {
                "user_id": "u-1",
                "point_of_sale_id": "POS-1",
                "subtotal": "999",
                "lines": [{"product_id": "p-1", "quantity": 1, "unit_price": "100"}],
            })
        assert "subtotal 999.00 does not match the sum of its lines (100.00)" in exc.value.errors

    def test_line_quantity_must_be_positive(self, db_session):
        with pytest.raises(ValidationError) as exc:
            ledger_service.create_entry(EntryType.SALE, {
                "user_id": "u-1",
                "point_of_sale_id": "POS-1",
                "lines": [{"product_id": "p-1", "quantity": 0, "unit_price": "100"}],
            })
        assert "line 1 quantity must be positive" in exc.value.errors


class TestConfirmation:
    def test_confirm_assigns_number(self, db_session, make_entry):
        draft = make_entry(EntryType.SALE, 100, confirm=False)
        assert draft.document_number is None

        confirmed = ledger_service.confirm_entry(draft.id)
        assert confirmed.status == EntryStatus.CONFIRMED
        assert confirmed.document_number == "VTA-00000001"

    def test_confirm_twice_rejected_and_number_kept(self, db_session, make_entry):
        draft = make_entry(EntryType.SALE, 100, confirm=False)
        ledger_service.confirm_entry(draft.id)

        with pytest.raises(InvalidStateError):
            ledger_service.confirm_entry(draft.id)

        entry = db_session.get(LedgerEntry, draft.id)
        assert entry.document_number == "VTA-00000001"

    def test_confirm_missing_entry(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.confirm_entry("missing")

    def test_confirm_draft_in_closed_session_rejected(self, db_session, make_entry, cash_session):
        draft = make_entry(EntryType.SALE, 100, confirm=False, cash_session_id=cash_session.id)
        cash_session_service.close_session(cash_session.id, user_id="u-1", closing_amount=10000)

        with pytest.raises(InvalidStateError):
            ledger_service.confirm_entry(draft.id)
        assert db_session.get(LedgerEntry, draft.id).status == EntryStatus.DRAFT

    def test_create_confirmed_directly(self, db_session, make_entry):
        entry = make_entry(EntryType.OPERATING_EXPENSE, 250)
        assert entry.status == EntryStatus.CONFIRMED
        assert entry.document_number == "GOP-00000001"


class TestStatusMachine:
    def test_generic_family(self, db_session, make_entry):
        sale = make_entry(EntryType.SALE, 100)
        with pytest.raises(InvalidStateError):
            ledger_service.transition_status(sale, EntryStatus.RECEIVED)
        with pytest.raises(InvalidStateError):
            ledger_service.transition_status(sale, EntryStatus.DRAFT)
        ledger_service.transition_status(sale, EntryStatus.CANCELLED)
        with pytest.raises(InvalidStateError):
            ledger_service.transition_status(sale, EntryStatus.CONFIRMED)

    def test_purchase_family(self, db_session, make_entry):
        purchase = make_entry(EntryType.PURCHASE, 100)
        ledger_service.transition_status(purchase, EntryStatus.PARTIALLY_RECEIVED)
        ledger_service.transition_status(purchase, EntryStatus.RECEIVED)
        ledger_service.transition_status(purchase, EntryStatus.CANCELLED)
        assert purchase.status == EntryStatus.CANCELLED

    def test_draft_cannot_be_cancelled(self, db_session, make_entry):
        draft = make_entry(EntryType.PURCHASE, 100, confirm=False)
        assert not draft.can_transition_to(EntryStatus.CANCELLED)


class TestMetadataAndQueries:
    def test_metadata_round_trips(self, db_session, make_entry):
        metadata = {
            "subPayments": [
                {"id": "q-a", "amount": 60, "dueDate": "2024-03-01"},
                {"id": "q-b", "amount": 40.5, "dueDate": "2024-04-01"},
            ],
            "purchaseOrderNumber": None,
            "custom": {"nested": [1, 2, 3]},
        }
        entry = make_entry(
            EntryType.SALE,
            "100.50",
            payment_method=PaymentMethod.INTERNAL_CREDIT,
            metadata=metadata,
        )
        db_session.expire_all()
        reloaded = ledger_service.get_entry(entry.id)
        assert reloaded["metadata"] == metadata

    def test_get_entry_includes_lines(self, db_session):
        entry = ledger_service.create_entry(EntryType.SALE, {
            "user_id": "u-1",
            "point_of_sale_id": "POS-1",
            "lines": [{"product_id": "p-1", "quantity": 3, "unit_price": "10"}],
        })
        data = ledger_service.get_entry(entry.id)
        assert data["total"] == "30.00"
        assert data["lines"][0]["quantity"] == "3"

    def test_get_entry_missing(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.get_entry("nope")

    def test_list_entries_filters(self, db_session, make_entry):
        make_entry(EntryType.SALE, 100)
        make_entry(EntryType.SALE, 200, payment_method=PaymentMethod.TRANSFER)
        make_entry(EntryType.OPERATING_EXPENSE, 50, external_reference="INV-77")

        sales = ledger_service.list_entries({"entry_type": EntryType.SALE})
        assert sales["total"] == 2
        assert [row["document_number"] for row in sales["rows"]] == ["VTA-00000002", "VTA-00000001"]

        transfers = ledger_service.list_entries({"payment_method": PaymentMethod.TRANSFER})
        assert transfers["total"] == 1

        by_reference = ledger_service.list_entries({"search": "inv-77"})
        assert by_reference["rows"][0]["entry_type"] == EntryType.OPERATING_EXPENSE

    def test_list_entries_paging(self, db_session, make_entry):
        for _ in range(5):
            make_entry(EntryType.PAYMENT_OUT, 10)
        page = ledger_service.list_entries({}, page=2, page_size=2)
        assert page["total"] == 5
        assert len(page["rows"]) == 2
        assert page["page"] == 2
