"""
Accounts receivable listing tests.

Rows are quotas; paging counts credit entries.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from backoffice.models import Customer, EntryStatus, EntryType, LedgerEntry, PaymentMethod
from backoffice.services import receivables_service
from backoffice.validation import ValidationError

NOW = datetime(2024, 6, 1)


def _credit_sale(make_entry, total, customer_id=None, schedule=None, **fields):
    metadata = {"subPayments": schedule} if schedule else None
    return make_entry(
        EntryType.SALE,
        total,
        payment_method=PaymentMethod.INTERNAL_CREDIT,
        customer_id=customer_id,
        metadata=metadata,
        **fields,
    )


class TestAccountsReceivable:
    def test_rows_are_quotas(self, db_session, make_entry, customer):
        _credit_sale(make_entry, 300, customer.id, schedule=[
            {"amount": 100, "dueDate": "2024-01-01"},
            {"amount": 100, "dueDate": "2024-07-01"},
            {"amount": 100, "dueDate": "2024-08-01"},
        ])

        result = receivables_service.list_accounts_receivable(now=NOW)
        assert result["total"] == 1
        assert [row["status"] for row in result["rows"]] == ["OVERDUE", "PENDING", "PENDING"]
        assert {row["customer_name"] for row in result["rows"]} == {"Ana Rojas"}
        assert result["page_size"] == 25

    def test_customer_name_fallbacks(self, db_session, make_entry):
        db_session.add(Customer(id="biz", first_name="Luis", business_name="Ferreteria Sur"))
        db_session.commit()
        _credit_sale(make_entry, 10, "biz")
        _credit_sale(make_entry, 20, "ghost")
        _credit_sale(make_entry, 30)

        rows = receivables_service.list_accounts_receivable(now=NOW)["rows"]
        names = {row["total_entry_amount"]: row["customer_name"] for row in rows}
        assert names == {
            "10.00": "Ferreteria Sur",
            "20.00": "Sin Nombre",
            "30.00": "Consumidor Final",
        }

    def test_paid_quotas_hidden_unless_requested(self, db_session, make_entry, customer):
        sale = _credit_sale(make_entry, 200, customer.id, schedule=[
            {"id": "a", "amount": 100, "dueDate": "2024-05-01"},
            {"id": "b", "amount": 100, "dueDate": "2024-06-01"},
        ])
        make_entry(
            EntryType.PAYMENT_IN, 100, customer_id=customer.id, related_entry_id=sale.id,
            metadata={"paidQuotaId": "a"},
        )

        open_rows = receivables_service.list_accounts_receivable(now=NOW)["rows"]
        assert [row["id"] for row in open_rows] == ["b"]

        all_rows = receivables_service.list_accounts_receivable({"include_paid": "true"}, now=NOW)["rows"]
        assert [(row["id"], row["status"]) for row in all_rows] == [("a", "PAID"), ("b", "PENDING")]

    def test_search_by_name_number_and_amount(self, db_session, make_entry, customer):
        first = _credit_sale(make_entry, 1234.5, customer.id)
        _credit_sale(make_entry, 99, "other")

        by_name = receivables_service.list_accounts_receivable({"search": "rojas"}, now=NOW)
        assert by_name["total"] == 1
        by_number = receivables_service.list_accounts_receivable(
            {"search": first.document_number}, now=NOW
        )
        assert by_number["rows"][0]["source_entry_id"] == first.id
        by_amount = receivables_service.list_accounts_receivable({"search": "1,234.50"}, now=NOW)
        assert by_amount["total"] == 1

    def test_customer_filter_and_paging(self, db_session, make_entry, customer):
        for amount in (10, 20, 30):
            _credit_sale(make_entry, amount, customer.id)
        _credit_sale(make_entry, 40, "other")

        page = receivables_service.list_accounts_receivable(
            {"customer_id": customer.id}, page=2, page_size=2, now=NOW
        )
        assert page["total"] == 3
        assert page["page"] == 2
        assert len(page["rows"]) == 1

    def test_page_size_is_capped(self, db_session):
        result = receivables_service.list_accounts_receivable(page_size=10000, now=NOW)
        assert result["page_size"] == 200
        assert result["rows"] == []


class TestStoredSchedules:
    def test_malformed_schedule_does_not_hide_other_rows(self, db_session, make_entry, customer):
        """Legacy credit rows with a broken schedule still list, next to everyone else."""
        legacy = LedgerEntry(
            entry_type=EntryType.PAYMENT_IN,
            status=EntryStatus.CONFIRMED,
            document_number="PIE-00000099",
            user_id="legacy",
            point_of_sale_id="POS-1",
            payment_method=PaymentMethod.INTERNAL_CREDIT,
            customer_id="old-customer",
            subtotal=Decimal("150"),
            total=Decimal("150"),
            created_at=datetime(2024, 5, 1),
            entry_metadata={"subPayments": [
                {"amount": 100, "dueDate": None},
                {"amount": "n/a", "dueDate": "2024-09-01"},
                {"amount": 50, "dueDate": "2024-09-01"},
            ]},
        )
        db_session.add(legacy)
        db_session.commit()
        _credit_sale(make_entry, 300, customer.id, schedule=[{"amount": 300, "dueDate": "2024-07-01"}])

        rows = receivables_service.list_accounts_receivable(now=NOW)["rows"]
        by_entry = {}
        for row in rows:
            by_entry.setdefault(row["source_entry_id"], []).append(row)

        assert len(by_entry) == 2
        legacy_rows = by_entry[legacy.id]
        assert [(r["quota_number"], r["amount"], r["due_date"]) for r in legacy_rows] == [
            (1, "100.00", "2024-05-01"),
            (3, "50.00", "2024-09-01"),
        ]
        assert {r["status"] for r in legacy_rows} == {"OVERDUE", "PENDING"}
        assert all(r["total_quotas"] == 3 for r in legacy_rows)

    def test_strict_validation_still_applies_on_write(self, db_session, make_entry, customer):
        with pytest.raises(ValidationError):
            _credit_sale(make_entry, 100, customer.id, schedule=[{"amount": 100, "dueDate": None}])
