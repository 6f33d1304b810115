"""
Cash Register Session Service

WHY: Track till sessions and cash accountability for the shop counter.

DESIGN PRINCIPLES:
- At most one open session at any time (service check + partial unique index)
- Sessions are immutable once closed
- Every cash-in / cash-out is an immutable CashTransaction row written in
  the same transaction as the running total it changes
- expected = initial + sales + cash_in - cash_out, always recomputed
- Variance (counted - expected) is computed, never stored
"""

import logging

from sqlalchemy.exc import IntegrityError

from ..errors import (
    InvalidDescription,
    InvalidTransactionType,
    SessionAlreadyOpen,
    SessionNotFound,
    SessionNotOpen,
    ValidationError,
)
from ..extensions import db
from ..models import CashRegisterSession, CashTransaction
from ..money import Money, require_non_negative, require_positive
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry


logger = logging.getLogger(__name__)

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"

CASH_IN = "cash_in"
CASH_OUT = "cash_out"
TRANSACTION_TYPES = (CASH_IN, CASH_OUT)


# =============================================================================
# QUERIES
# =============================================================================

def get_open_session() -> CashRegisterSession | None:
    """The currently open session, if any. Never cache the result across operations."""
    return db.session.query(CashRegisterSession).filter_by(status=STATUS_OPEN).first()


def get_session(session_id: int) -> CashRegisterSession:
    session = db.session.get(CashRegisterSession, session_id)
    if session is None:
        raise SessionNotFound("Session not found", details={"session_id": session_id})
    return session


def list_sessions(*, status: str | None = None, limit: int = 50) -> list[CashRegisterSession]:
    query = db.session.query(CashRegisterSession)
    if status is not None:
        query = query.filter_by(status=status)
    return query.order_by(
        CashRegisterSession.opened_at.desc(),
        CashRegisterSession.id.desc(),
    ).limit(limit).all()


def list_transactions(session_id: int) -> list[CashTransaction]:
    get_session(session_id)
    return db.session.query(CashTransaction).filter_by(
        cash_register_id=session_id
    ).order_by(CashTransaction.created_at, CashTransaction.id).all()


def expected_amount(session_id: int) -> Money:
    """initial + sales + cash_in - cash_out."""
    return get_session(session_id).expected_amount


# =============================================================================
# LOCKED HELPERS (caller owns the transaction)
# =============================================================================

def load_open_session(session_id: int, *, lock: bool = True) -> CashRegisterSession:
    """
    Fetch a session that must be open.

    An unknown id is reported as SessionNotOpen: for a writer there is no
    difference between "never existed" and "not open".
    """
    query = db.session.query(CashRegisterSession).filter_by(id=session_id)
    if lock:
        query = lock_for_update(query)
    session = query.first()

    if session is None or session.status != STATUS_OPEN:
        raise SessionNotOpen(
            "Cash register session is not open",
            details={
                "session_id": session_id,
                "status": session.status if session else None,
            },
        )
    return session


def apply_sale(session: CashRegisterSession, amount: Money) -> None:
    """Credit sales_total on an already locked, open session."""
    require_non_negative(amount, "amount")
    session.sales_total_cents += amount.cents


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def open_session(*, initial_amount: Money, employee_id: str) -> CashRegisterSession:
    """
    Open the till.

    Check-and-create runs under the write lock; the partial unique index
    on status='open' backs it up on databases where the check alone could
    race.

    Raises:
        InvalidAmount: negative opening float
        SessionAlreadyOpen: another session is open
    """
    require_non_negative(initial_amount, "initial_amount")

    def _op():
        begin_write()
        existing = lock_for_update(
            db.session.query(CashRegisterSession).filter_by(status=STATUS_OPEN)
        ).first()
        if existing:
            raise SessionAlreadyOpen(
                f"Cash register already has an open session (session {existing.id})",
                details={"session_id": existing.id},
            )

        session = CashRegisterSession(
            status=STATUS_OPEN,
            opened_at=utcnow(),
            initial_amount_cents=initial_amount.cents,
            sales_total_cents=0,
            cash_in_total_cents=0,
            cash_out_total_cents=0,
            employee_id=employee_id,
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise SessionAlreadyOpen("Cash register already has an open session") from exc

        db.session.commit()
        logger.info(
            "Cash register session %s opened by %s with %s",
            session.id, employee_id, initial_amount,
        )
        return session

    return run_with_retry(_op)


def record_sale(*, session_id: int, amount: Money) -> CashRegisterSession:
    """
    Credit a sale amount to an open session.

    The sale builder uses apply_sale() inside its own transaction; this
    entry point exists for callers that only touch the till.
    """
    require_non_negative(amount, "amount")

    def _op():
        begin_write()
        session = load_open_session(session_id)
        apply_sale(session, amount)
        db.session.commit()
        return session

    return run_with_retry(_op)


def record_transaction(
    *,
    session_id: int,
    transaction_type: str,
    amount: Money,
    description: str,
    employee_id: str,
) -> CashTransaction:
    """
    Record a cash-in or cash-out on an open session.

    Raises:
        InvalidTransactionType: not cash_in / cash_out
        InvalidAmount: amount <= 0
        InvalidDescription: blank description
        SessionNotOpen: session missing or closed
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise InvalidTransactionType(
            f"transaction type must be one of {', '.join(TRANSACTION_TYPES)}",
            details={"type": transaction_type},
        )
    require_positive(amount, "amount")
    if description is not None and not isinstance(description, str):
        raise InvalidDescription("description must be a string", details={"type": type(description).__name__})
    description = (description or "").strip()
    if not description:
        raise InvalidDescription("description is required")
    if len(description) > 255:
        raise InvalidDescription("description exceeds max length 255")

    def _op():
        begin_write()
        session = load_open_session(session_id)

        if transaction_type == CASH_IN:
            session.cash_in_total_cents += amount.cents
        else:
            session.cash_out_total_cents += amount.cents

        transaction = CashTransaction(
            cash_register_id=session.id,
            type=transaction_type,
            amount_cents=amount.cents,
            description=description,
            employee_id=employee_id,
            created_at=utcnow(),
        )
        db.session.add(transaction)
        db.session.commit()
        logger.info(
            "Cash register session %s: %s of %s by %s",
            session_id, transaction_type, amount, employee_id,
        )
        return transaction

    return run_with_retry(_op)


def close_session(
    *,
    session_id: int,
    counted_amount: Money,
    employee_id: str | None = None,
    notes: str | None = None,
) -> CashRegisterSession:
    """
    Close a session with the counted cash.

    IMMUTABLE: once closed the session cannot be reopened or modified.
    Variance is exposed through CashRegisterSession.variance and the
    reconciliation report; it is not stored.

    Raises:
        InvalidAmount: negative counted amount
        SessionNotOpen: session missing or already closed
    """
    require_non_negative(counted_amount, "counted_amount")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string", details={"type": type(notes).__name__})

    def _op():
        begin_write()
        session = load_open_session(session_id)

        session.status = STATUS_CLOSED
        session.closed_at = utcnow()
        session.final_amount_cents = counted_amount.cents
        session.closed_by_employee_id = employee_id or session.employee_id
        session.closing_notes = notes

        expected = session.expected_amount
        db.session.commit()
        logger.info(
            "Cash register session %s closed: expected %s, counted %s, variance %s",
            session_id, expected, counted_amount, counted_amount - expected,
        )
        return session

    return run_with_retry(_op)
