# Overview: Invoice number allocation per business account, with a FIFO pool of reusable numbers.

"""
Invoice numbers look like "INV-0001": the account's prefix, a dash and the
counter zero-padded to four digits.

Allocation order:
1. the oldest number in the account's reusable pool, if any;
2. otherwise the account counter, claimed with one atomic
   UPDATE ... SET next_invoice_number = next_invoice_number + 1.

When an invoice is deleted its number is reclaimed: if it was the most
recently minted number the counter steps back by one, otherwise the number
joins the pool. A number is never both queued and re-minted.

All functions take the account id explicitly; every member of an account
shares one counter and one pool.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import delete, update

from ..extensions import db
from ..models import AccountSettings, Invoice, ReusableInvoiceNumber
from farmdesk.time_utils import utcnow
from .concurrency import run_in_transaction

DEFAULT_INVOICE_PREFIX = "INV"
DEFAULT_CURRENCY = "MYR"
DEFAULT_PAYMENT_TERMS = "Payment due within 30 days"
NUMBER_PAD = 4

RECLAIMED_QUEUED = "queued"
RECLAIMED_COUNTER = "counter"


def format_invoice_number(prefix: str, number: int) -> str:
    return f"{prefix}-{number:0{NUMBER_PAD}d}"


def ensure_settings(account_id: int) -> AccountSettings:
    """
    Return the account's settings row, provisioning the defaults on first use.

    Two requests racing to provision collide on the unique account_id; the
    loser's flush raises IntegrityError and the surrounding transaction is
    rolled back by the caller.
    """
    settings = db.session.query(AccountSettings).filter_by(account_id=account_id).first()
    if settings:
        return settings

    settings = AccountSettings(
        account_id=account_id,
        invoice_prefix=DEFAULT_INVOICE_PREFIX,
        next_invoice_number=1,
        currency=DEFAULT_CURRENCY,
        tax_rate_bps=0,
        payment_terms=DEFAULT_PAYMENT_TERMS,
    )
    db.session.add(settings)
    db.session.flush()
    return settings


def _oldest_reusable(account_id: int) -> ReusableInvoiceNumber | None:
    return (
        db.session.query(ReusableInvoiceNumber)
        .filter_by(account_id=account_id)
        .order_by(ReusableInvoiceNumber.created_at.asc(), ReusableInvoiceNumber.id.asc())
        .first()
    )


def _number_in_use(account_id: int, number: str) -> bool:
    return db.session.query(
        db.session.query(Invoice.id)
        .filter_by(account_id=account_id, invoice_number=number)
        .exists()
    ).scalar()


def peek_next_number(account_id: int) -> str:
    """Number the next allocation would return; nothing is consumed."""
    entry = _oldest_reusable(account_id)
    if entry:
        return entry.invoice_number

    settings = ensure_settings(account_id)
    return format_invoice_number(settings.invoice_prefix, settings.next_invoice_number)


def _pop_reusable(account_id: int) -> str | None:
    """
    Claim the oldest pooled number. The DELETE is guarded by id, so when two
    callers read the same head entry only one of them gets rowcount 1.
    """
    while True:
        entry = _oldest_reusable(account_id)
        if entry is None:
            return None
        number, entry_id = entry.invoice_number, entry.id
        result = db.session.execute(
            delete(ReusableInvoiceNumber)
            .where(ReusableInvoiceNumber.id == entry_id)
            .execution_options(synchronize_session=False)
        )
        db.session.expunge(entry)
        if result.rowcount:
            return number


def _claim_counter(account_id: int) -> str:
    settings = ensure_settings(account_id)
    db.session.flush()

    stmt = (
        update(AccountSettings)
        .where(AccountSettings.account_id == account_id)
        .values(next_invoice_number=AccountSettings.next_invoice_number + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
    db.session.refresh(settings)
    return format_invoice_number(settings.invoice_prefix, settings.next_invoice_number - 1)


def _allocate(account_id: int) -> str:
    while True:
        number = _pop_reusable(account_id)
        if number is None:
            number = _claim_counter(account_id)
        # The counter can be moved by hand in settings; never hand out a
        # number that a live invoice still carries.
        if not _number_in_use(account_id, number):
            return number


def allocate_number(account_id: int, *, commit: bool = True) -> str:
    """
    Consume and return the next invoice number for the account.

    With commit=False the caller owns the transaction (invoice generation
    allocates and inserts the invoice in one commit).
    """
    if not commit:
        return _allocate(account_id)
    return run_in_transaction(lambda: _allocate(account_id))


def _release(account_id: int, number: str) -> None:
    exists = (
        db.session.query(ReusableInvoiceNumber.id)
        .filter_by(account_id=account_id, invoice_number=number)
        .first()
    )
    if exists:
        return
    db.session.add(ReusableInvoiceNumber(
        account_id=account_id,
        invoice_number=number,
        created_at=utcnow(),
    ))
    db.session.flush()


def release_number(account_id: int, number: str, *, commit: bool = True) -> None:
    """Push a freed number onto the account's pool (no-op if already pooled)."""
    if not commit:
        _release(account_id, number)
        return
    run_in_transaction(lambda: _release(account_id, number))


def _reclaim(account_id: int, number: str) -> str:
    settings = ensure_settings(account_id)
    db.session.flush()
    latest_counter = settings.next_invoice_number - 1

    if latest_counter >= 1 and number == format_invoice_number(settings.invoice_prefix, latest_counter):
        # Guarded on the value we read: if another allocation slipped in,
        # the number is no longer the latest and goes to the pool instead.
        result = db.session.execute(
            update(AccountSettings)
            .where(
                AccountSettings.account_id == account_id,
                AccountSettings.next_invoice_number == latest_counter + 1,
            )
            .values(next_invoice_number=latest_counter)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(settings)
        if result.rowcount:
            current_app.logger.info(
                "Invoice number %s returned to counter for account %s", number, account_id
            )
            return RECLAIMED_COUNTER

    _release(account_id, number)
    current_app.logger.info("Invoice number %s queued for reuse in account %s", number, account_id)
    return RECLAIMED_QUEUED


def reclaim_number(account_id: int, number: str, *, commit: bool = True) -> str:
    """
    Give back the number of a deleted invoice. Returns "counter" when the
    counter was stepped back, "queued" when the number joined the pool.
    """
    if not commit:
        return _reclaim(account_id, number)
    return run_in_transaction(lambda: _reclaim(account_id, number))


def _reset_if_empty(account_id: int) -> bool:
    db.session.flush()
    remaining = db.session.query(Invoice.id).filter_by(account_id=account_id).count()
    if remaining:
        return False

    settings = ensure_settings(account_id)
    db.session.flush()
    db.session.execute(
        update(AccountSettings)
        .where(AccountSettings.account_id == account_id)
        .values(next_invoice_number=1)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        delete(ReusableInvoiceNumber)
        .where(ReusableInvoiceNumber.account_id == account_id)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(settings)
    current_app.logger.info("Invoice numbering reset for account %s (no invoices left)", account_id)
    return True


def reset_if_empty(account_id: int, *, commit: bool = True) -> bool:
    """
    When the account has no invoices left, restart numbering at 1 and drop
    the pool. Returns True when a reset happened.
    """
    if not commit:
        return _reset_if_empty(account_id)
    return run_in_transaction(lambda: _reset_if_empty(account_id))


def list_reusable_numbers(account_id: int) -> list[str]:
    rows = (
        db.session.query(ReusableInvoiceNumber.invoice_number)
        .filter_by(account_id=account_id)
        .order_by(ReusableInvoiceNumber.created_at.asc(), ReusableInvoiceNumber.id.asc())
        .all()
    )
    return [row.invoice_number for row in rows]
