"""
Account scoping helpers.

Every authenticated request carries g.account_id (set by @require_auth from
the session token). Services receive that id as a plain argument and use
these helpers to load records, so a record from another business account is
refused before anything is mutated.

USAGE:
    from farmdesk.services.tenant_service import get_owned_or_404

    sale = get_owned_or_404(Sale, sale_id, account_id, label="Sale")
"""

from flask import g

from ..extensions import db
from ..models import AccountMember
from ..validation import AccountAccessError, NotFoundError
from .concurrency import lock_for_update


def get_current_account_id() -> int:
    """
    Account id of the current request.

    Raises AccountAccessError if the request context was not established by
    @require_auth.
    """
    if not hasattr(g, 'account_id') or g.account_id is None:
        raise AccountAccessError("Account context not established")
    return g.account_id


def resolve_account_id(user_id: int) -> int | None:
    """Account a login operates on, or None if the user has no membership."""
    member = db.session.query(AccountMember).filter_by(user_id=user_id).first()
    return member.account_id if member else None


def shares_account(user_id_a: int, user_id_b: int) -> bool:
    """True when both logins are members of the same business account."""
    account_a = resolve_account_id(user_id_a)
    return account_a is not None and account_a == resolve_account_id(user_id_b)


def get_owned_or_404(model, record_id: int, account_id: int, *, label: str, lock: bool = False):
    """
    Load model[record_id] and require it to belong to account_id.

    Raises NotFoundError when the id does not resolve and AccountAccessError
    when it resolves inside another account.
    """
    query = db.session.query(model).filter_by(id=record_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record is None:
        raise NotFoundError(f"{label} not found", {f"{label.lower()}_id": record_id})
    if record.account_id != account_id:
        raise AccountAccessError(
            f"{label} belongs to another business account",
            {f"{label.lower()}_id": record_id},
        )
    return record
