from __future__ import annotations

from ..extensions import db
from ..models import AccountSettings, Invoice
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from . import invoice_number_service
from .concurrency import run_in_transaction

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={
        "invoice_prefix", "next_invoice_number", "currency", "tax_rate_bps",
        "payment_terms", "bank_details",
    },
)

MAX_TAX_RATE_BPS = 10_000


def get_settings(account_id: int) -> AccountSettings:
    settings = invoice_number_service.ensure_settings(account_id)
    db.session.commit()
    return settings


def _enforce_rules(patch: dict) -> None:
    if "next_invoice_number" in patch and patch["next_invoice_number"] < 1:
        raise ValidationError("next_invoice_number must be >= 1", {"field": "next_invoice_number"})
    if "tax_rate_bps" in patch and not 0 <= patch["tax_rate_bps"] <= MAX_TAX_RATE_BPS:
        raise ValidationError(
            f"tax_rate_bps must be between 0 and {MAX_TAX_RATE_BPS}",
            {"field": "tax_rate_bps"},
        )
    prefix = patch.get("invoice_prefix")
    if prefix is not None and "-" in prefix:
        raise ValidationError("invoice_prefix cannot contain '-'", {"field": "invoice_prefix"})


def update_settings(account_id: int, payload: dict) -> AccountSettings:
    """
    Patch the account's invoicing settings.

    Changing the prefix while invoices exist is refused: pooled numbers and
    the counter reclaim check are both written in the old prefix.
    """
    def _op() -> AccountSettings:
        patch = validate_payload(model=AccountSettings, payload=payload, policy=SETTINGS_POLICY, partial=True)
        _enforce_rules(patch)

        settings = invoice_number_service.ensure_settings(account_id)
        if "invoice_prefix" in patch and patch["invoice_prefix"] != settings.invoice_prefix:
            has_invoices = db.session.query(Invoice.id).filter_by(account_id=account_id).first()
            if has_invoices:
                raise ValidationError(
                    "invoice_prefix cannot change while invoices exist",
                    {"field": "invoice_prefix"},
                )

        for key, value in patch.items():
            setattr(settings, key, value)
        db.session.flush()
        return settings

    return run_in_transaction(_op)
