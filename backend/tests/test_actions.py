# Overview: Pytest coverage for the mutation boundary; every action reports {success, error?, data?}.

from backoffice import actions
from backoffice.models import EntryType, PaymentMethod


class TestMutationResults:
    def test_success_carries_plain_data(self, db_session):
        result = actions.create_entry(
            EntryType.SALE,
            {"user_id": "u-1", "point_of_sale_id": "POS-1", "total": "10", "subtotal": "10"},
            confirm=True,
        )
        assert result.success
        assert result.to_dict() == {"success": True, "data": result.data}
        assert result.data["document_number"] == "VTA-00000001"
        assert result.data["total"] == "10.00"
        assert result.data["lines"] == []

    def test_validation_failure(self, db_session):
        result = actions.create_entry(EntryType.SALE, {"total": "-1"})
        assert not result.success
        assert result.error_code == "validation"
        body = result.to_dict()
        assert body["success"] is False
        assert "total must not be negative" in body["errors"]
        assert body["error"] == "; ".join(body["errors"])

    def test_state_failure(self, db_session, cash_session):
        actions.close_cash_session(cash_session.id, user_id="cashier-1", closing_amount=10000)
        result = actions.close_cash_session(cash_session.id, user_id="cashier-1", closing_amount=10000)
        assert result.to_dict()["error_code"] == "invalid_state"
        assert "errors" not in result.to_dict()

    def test_conflict_failure(self, db_session, cash_session):
        result = actions.open_cash_session(point_of_sale_id="POS-1", user_id="u-2", opening_amount=0)
        assert result.error_code == "conflict"

    def test_unexpected_error_is_contained(self, db_session, monkeypatch):
        from backoffice.services import ledger_service

        def _explode(*args, **kwargs):
            raise RuntimeError("driver crashed")

        monkeypatch.setattr(ledger_service, "confirm_entry", _explode)
        result = actions.confirm_entry("anything")
        assert result.to_dict() == {"success": False, "error": "Internal error", "error_code": "internal"}


class TestActionPayloads:
    def test_close_includes_summary(self, db_session, cash_session, make_entry):
        make_entry(EntryType.SALE, 5000, cash_session_id=cash_session.id)
        result = actions.close_cash_session(cash_session.id, user_id="cashier-1", closing_amount="15000")
        assert result.data["status"] == "CLOSED"
        assert result.data["difference"] == "0.00"
        assert result.data["summary"]["expected_balance"] == "15000.00"

    def test_pay_quota_reports_payments(self, db_session, make_entry, cash_session, customer):
        sale = make_entry(
            EntryType.SALE, 500, payment_method=PaymentMethod.INTERNAL_CREDIT, customer_id=customer.id
        )
        result = actions.pay_quota(
            quota_id=f"{sale.id}-1",
            source_entry_id=sale.id,
            cash_session_id=cash_session.id,
            user_id="cashier-1",
            payments=[{"payment_method": PaymentMethod.CASH, "amount": 500}],
        )
        assert result.success, result.error
        assert result.data["quota_id"] == f"{sale.id}-1"
        assert [p["entry_type"] for p in result.data["payments"]] == [EntryType.PAYMENT_IN]

    def test_cancel_reception_returns_both_sides(self, db_session, make_entry):
        purchase = make_entry(EntryType.PURCHASE, 100)
        result = actions.cancel_reception(purchase.id, user_id="u-1", reason="duplicate entry")
        assert result.data["original"]["status"] == "CANCELLED"
        assert result.data["reversal"]["entry_type"] == EntryType.PURCHASE_RETURN

    def test_cancel_reception_needs_reason(self, db_session, make_entry):
        purchase = make_entry(EntryType.PURCHASE, 100)
        result = actions.cancel_reception(purchase.id, user_id="u-1", reason="")
        assert result.error_code == "validation"
