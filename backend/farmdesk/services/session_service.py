# Overview: Bearer token issue and validation for logins vouched for by the identity provider.

"""
The identity provider authenticates people; this module only turns an
already-authenticated user into a bearer token and back.

- Tokens are 32 random bytes (64 hex chars), stored as SHA-256 hashes.
- The business account is captured when the token is issued.
- Tokens expire after SESSION_TTL_HOURS and can be revoked.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User, BusinessAccount
from farmdesk.time_utils import utcnow
from .tenant_service import resolve_account_id


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    account_id: int


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Issue a token for the user.

    Returns (session_record, plaintext_token); only the hash is stored.
    Raises ValueError if the user is unknown, inactive or has no account.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user or not user.is_active:
        raise ValueError("User not found or inactive")

    account_id = resolve_account_id(user.id)
    if account_id is None:
        raise ValueError("User is not a member of any business account")

    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        account_id=account_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Return the SessionContext for a valid token, or None when the token is
    unknown, expired, revoked, or its user/account was deactivated.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    account = db.session.query(BusinessAccount).filter_by(id=session.account_id).first()
    if not user or not user.is_active or not account or not account.is_active:
        session.is_revoked = True
        session.revoked_at = now
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, account_id=session.account_id)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
