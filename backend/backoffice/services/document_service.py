# Overview: Service-layer operations for document numbers; allocates per-type sequence numbers atomically.

from __future__ import annotations

import logging
import re

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import DEFAULT_TYPE_PREFIX, TYPE_PREFIXES, DocumentSequence, LedgerEntry

logger = logging.getLogger(__name__)

SEQUENCE_PAD = 8

_SUFFIX_RE = re.compile(r"(\d+)$")


def type_prefix(entry_type: str) -> str:
    """Full prefix for a type, including the deployment-wide prefix."""
    deployment = current_app.config.get("DOCUMENT_NUMBER_PREFIX") or ""
    return f"{deployment}{TYPE_PREFIXES.get(entry_type, DEFAULT_TYPE_PREFIX)}-"


def format_document_number(prefix: str, number: int) -> str:
    return f"{prefix}{number:0{SEQUENCE_PAD}d}"


def parse_sequence(document_number: str | None, prefix: str = "") -> int:
    """Numeric suffix of a document number, 0 when it has none."""
    if not document_number:
        return 0
    tail = document_number[len(prefix):] if prefix and document_number.startswith(prefix) else document_number
    match = _SUFFIX_RE.search(tail)
    return int(match.group(1)) if match else 0


def _last_used_number(entry_type: str, prefix: str) -> int:
    """Highest of the latest created number and the largest padded number under the prefix."""
    numbered = db.session.query(LedgerEntry.document_number).filter(
        LedgerEntry.entry_type == entry_type,
        LedgerEntry.document_number.isnot(None),
    )
    latest = numbered.order_by(LedgerEntry.created_at.desc()).first()
    highest = (
        numbered.filter(LedgerEntry.document_number.like(f"{prefix}%"))
        .order_by(LedgerEntry.document_number.desc())
        .first()
    )
    return max(parse_sequence(row[0] if row else None, prefix) for row in (latest, highest))


def next_document_number(entry_type: str) -> str:
    """
    Allocate the next document number for an entry type.

    Must run inside the caller's unit of work: the counter UPDATE holds the
    row lock until that transaction commits, and rolls back with it, so the
    sequence stays gapless under sequential use.

    A missing counter row is seeded from the most recently created entry of
    the type. If two transactions seed at once the loser fails on the unique
    constraint and its unit of work is retried.

    A counter that lags behind the stored numbers (rows imported or written
    around it) is moved past the latest one, so a retried unit of work never
    allocates the same colliding number twice.
    """
    prefix = type_prefix(entry_type)

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.entry_type == entry_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(entry_type=entry_type)
            .scalar()
        )
        number = current - 1
        floor = _last_used_number(entry_type, prefix) + 1
        if number < floor:
            logger.warning(
                "Counter for %s lags behind stored numbers (%s < %s), advancing",
                entry_type, number, floor,
            )
            number = floor
            db.session.execute(
                update(DocumentSequence)
                .where(DocumentSequence.entry_type == entry_type)
                .values(next_number=number + 1)
            )
    else:
        number = _last_used_number(entry_type, prefix) + 1
        db.session.add(DocumentSequence(entry_type=entry_type, next_number=number + 1))
        db.session.flush()

    return format_document_number(prefix, number)


def peek_next_document_number(entry_type: str) -> str:
    """Number the next confirmation would receive; allocates nothing."""
    prefix = type_prefix(entry_type)
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(entry_type=entry_type)
        .scalar()
    )
    floor = _last_used_number(entry_type, prefix) + 1
    return format_document_number(prefix, max(current or 0, floor))
