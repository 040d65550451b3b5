"""Stripe webhook verification and projection onto :class:`PaymentEvent`."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import stripe

from ..errors import BadRequest, Unauthorized

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300
PROVIDER_STATUSES = ("paid", "failed", "expired", "other")


@dataclass
class PaymentEvent:
    provider_event_id: str
    pay_id: str
    provider_status: str
    method: str | None = None
    pay_date: datetime | None = None


def verify_signature(payload: bytes, sig_header: str | None, secret: str | None) -> None:
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured, rejecting webhook")
        raise Unauthorized("webhook signature cannot be verified")
    if not sig_header:
        raise Unauthorized("missing Stripe-Signature header")
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), sig_header, secret, SIGNATURE_TOLERANCE_SECONDS
        )
    except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
        logger.warning("webhook signature rejected: %s", exc)
        raise Unauthorized("invalid webhook signature") from None


def _provider_status(event_type: str, payment_status: str) -> str:
    if payment_status == "paid":
        return "paid"
    if event_type.endswith(".expired"):
        return "expired"
    if event_type.endswith("failed"):
        return "failed"
    return "other"


def project(raw: dict) -> PaymentEvent:
    """Map a decoded Stripe event onto the fields the payment service needs."""
    if not isinstance(raw, dict):
        raise BadRequest("webhook payload must be a json object")
    data = raw.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise BadRequest("webhook payload has no data object")
    payment_status = obj.get("payment_status")
    if not isinstance(payment_status, str):
        raise BadRequest("webhook payload has no payment_status")
    metadata = obj.get("metadata") or {}
    pay_id = metadata.get("pay_id") if isinstance(metadata, dict) else None
    if not pay_id or not isinstance(pay_id, str):
        raise BadRequest("webhook metadata has no pay_id")
    event_id = raw.get("id")
    if not event_id or not isinstance(event_id, str):
        raise BadRequest("webhook payload has no event id")

    method_types = obj.get("payment_method_types")
    if not isinstance(method_types, list):
        method_types = []
    created = raw.get("created")
    pay_date = None
    if isinstance(created, (int, float)):
        pay_date = datetime.fromtimestamp(created, tz=timezone.utc).replace(tzinfo=None)

    return PaymentEvent(
        provider_event_id=event_id,
        pay_id=pay_id,
        provider_status=_provider_status(str(raw.get("type") or ""), payment_status),
        method=method_types[0] if method_types and isinstance(method_types[0], str) else None,
        pay_date=pay_date,
    )


def verify_and_parse(payload: bytes, sig_header: str | None, secret: str | None) -> PaymentEvent:
    verify_signature(payload, sig_header, secret)
    try:
        raw = json.loads(payload)
    except ValueError:
        raise BadRequest("webhook payload is not valid json") from None
    return project(raw)
