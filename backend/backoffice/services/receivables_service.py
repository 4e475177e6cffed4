# Overview: Service-layer operations for accounts receivable; pages credit entries and expands them into quota rows.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, LedgerEntry, entry_customer_name
from ..time_utils import end_of_day, start_of_day
from .persistence import clamp_page, find_many
from .quota_service import credit_candidate_filter, derive_quotas, load_paid_quotas


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _search_condition(search: str):
    pattern = f"%{search}%"
    conditions = [
        LedgerEntry.document_number.ilike(pattern),
        Customer.first_name.ilike(pattern),
        Customer.last_name.ilike(pattern),
        Customer.business_name.ilike(pattern),
    ]
    try:
        amount = Decimal(search.replace(",", ""))
    except InvalidOperation:
        amount = None
    if amount is not None and amount.is_finite():
        conditions.append(LedgerEntry.total == amount)
    return or_(*conditions)


def list_accounts_receivable(
    filters: dict | None = None,
    page=1,
    page_size=None,
    now: datetime | None = None,
) -> dict:
    """
    One page of credit-bearing entries expanded into quota rows.

    total counts candidate entries, not quotas; the paid filter runs after
    expansion, so a page may hold fewer rows than page_size entries produce.
    """
    filters = filters or {}
    config = current_app.config
    page, page_size = clamp_page(
        page,
        page_size,
        default=config.get("AR_DEFAULT_PAGE_SIZE", 25),
        maximum=config.get("AR_MAX_PAGE_SIZE", 200),
    )
    include_paid = _parse_bool(filters.get("include_paid"))

    query = (
        db.session.query(LedgerEntry, Customer)
        .outerjoin(Customer, Customer.id == LedgerEntry.customer_id)
        .filter(credit_candidate_filter())
    )
    if filters.get("customer_id"):
        query = query.filter(LedgerEntry.customer_id == filters["customer_id"])
    date_from = start_of_day(filters.get("date_from"))
    if date_from is not None:
        query = query.filter(LedgerEntry.created_at >= date_from)
    date_to = end_of_day(filters.get("date_to"))
    if date_to is not None:
        query = query.filter(LedgerEntry.created_at <= date_to)
    search = (filters.get("search") or "").strip()
    if search:
        query = query.filter(_search_condition(search))

    results, total = find_many(
        query,
        order_by=[LedgerEntry.created_at.desc(), LedgerEntry.id.desc()],
        page=page,
        page_size=page_size,
    )

    paid = load_paid_quotas(filters.get("customer_id"))
    rows = []
    for entry, customer in results:
        name = entry_customer_name(entry.customer_id, customer)
        for quota in derive_quotas(entry, paid, now, name):
            if include_paid or quota.is_open:
                rows.append(quota.to_dict())

    return {
        "rows": rows,
        "total": total,
        "page": page,
        "page_size": page_size,
    }
