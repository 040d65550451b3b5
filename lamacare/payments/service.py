from __future__ import annotations

import logging
from datetime import datetime, timedelta

import stripe
from flask import current_app
from sqlalchemy import delete, select

from .. import clock
from ..bookings.lifecycle import start_if_due
from ..errors import Conflict, Forbidden, InternalError, NotFound, Unprocessable
from ..extensions import db
from ..models.payment import Payment, ProcessedWebhookEvent
from ..models.service import Service
from ..models.user import Owner, User
from ..repository import find_by_id, find_or_lock, month_floor, paginate, transaction
from . import lifecycle
from .webhook import PaymentEvent

logger = logging.getLogger(__name__)

ADMIN_PATCHABLE = ("status", "type", "pay_date")


def create_payment(requester: User, start: datetime, end: datetime, owner_id: str | None = None) -> Payment:
    """Open an ``unpaid`` payment and remember the intended reservation window."""
    if requester.role == "owner":
        owner_id = requester.id
    elif requester.role == "admin":
        if not owner_id:
            raise Unprocessable("owner_id is required for admin")
    else:
        raise Forbidden()
    if start is None or end is None:
        raise Unprocessable("reserve_date_start and reserve_date_end are required")
    if end < start:
        raise Unprocessable("reserve_date_end must not be before reserve_date_start")

    with transaction():
        if db.session.get(Owner, owner_id) is None:
            raise NotFound("owner not found")
        payment = Payment(owner_id=owner_id, status="unpaid")
        db.session.add(payment)
        db.session.flush()
        payment.envelope = {
            "pay_id": payment.id,
            "owner_id": owner_id,
            "reserve_date_start": clock.isoformat(start),
            "reserve_date_end": clock.isoformat(end),
        }
    logger.info("payment %s opened for owner %s", payment.id, owner_id)
    return payment


def get_payment(requester: User, payment_id: str) -> Payment:
    payment = find_by_id(Payment, payment_id, "payment")
    if requester.role != "admin" and payment.owner_id != requester.id:
        raise Forbidden("you do not own this payment")
    return payment


def list_payments(requester: User, month=None, year=None, page=None, limit=None):
    stmt = select(Payment)
    if requester.role == "owner":
        stmt = stmt.where(Payment.owner_id == requester.id)
    elif requester.role != "admin":
        raise Forbidden()

    floor = month_floor(month, year)
    if floor is not None:
        stmt = stmt.where(Payment.pay_date >= floor)
    stmt = stmt.order_by(Payment.created_at.asc(), Payment.id.asc())
    return paginate(stmt, page, limit)


def update_status(requester: User, payment_id: str, patch: dict) -> Payment:
    if requester.role != "admin":
        raise Forbidden()
    extra = sorted(set(patch) - set(ADMIN_PATCHABLE))
    if extra:
        raise Unprocessable(f"unknown fields: {', '.join(extra)}")

    with transaction():
        payment = find_or_lock(Payment, payment_id, "payment")
        status = patch.get("status") or payment.status
        pay_date = patch.get("pay_date")
        if status == "paid" and payment.status != "paid" and pay_date is None:
            raise Unprocessable("pay_date is required when status is paid")
        method = (patch.get("type") or "").strip() or None
        lifecycle.set_status(payment, status, pay_date=pay_date, method=method)
    logger.info("payment %s set to %s by admin %s", payment.id, payment.status, requester.id)
    return payment


def _purge_consumed_events(now: datetime) -> int:
    ttl = timedelta(days=current_app.config.get("WEBHOOK_EVENT_TTL_DAYS", 30))
    result = db.session.execute(
        delete(ProcessedWebhookEvent).where(ProcessedWebhookEvent.consumed_at < now - ttl)
    )
    return result.rowcount or 0


def purge_consumed_events(now: datetime | None = None) -> int:
    with transaction():
        removed = _purge_consumed_events(now or clock.utcnow())
    return removed


def apply_webhook(event: PaymentEvent, now: datetime | None = None) -> Payment | None:
    """Apply a provider event. Returns None when the event id was already consumed."""
    now = now or clock.utcnow()
    with transaction():
        if db.session.get(ProcessedWebhookEvent, event.provider_event_id) is not None:
            logger.info("webhook %s already applied, skipping", event.provider_event_id)
            return None

        payment = find_or_lock(Payment, event.pay_id, "payment")
        service = db.session.execute(
            select(Service)
            .where(Service.payment_id == payment.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if event.provider_status == "paid":
            if payment.status in ("paid", "refunded"):
                logger.warning(
                    "paid event %s for payment %s in status %s ignored",
                    event.provider_event_id,
                    payment.id,
                    payment.status,
                )
            else:
                lifecycle.set_status(
                    payment, "paid", pay_date=event.pay_date or now, method=event.method
                )
                if service is not None and start_if_due(service, now):
                    logger.info("service %s started on payment", service.id)
        elif event.provider_status in ("failed", "expired"):
            if payment.status in ("unpaid", "pending"):
                lifecycle.set_status(payment, "failed")
            else:
                logger.warning(
                    "%s event %s for payment %s in status %s ignored",
                    event.provider_status,
                    event.provider_event_id,
                    payment.id,
                    payment.status,
                )

        db.session.add(
            ProcessedWebhookEvent(
                provider_event_id=event.provider_event_id,
                payment_id=payment.id,
                consumed_at=now,
            )
        )
        _purge_consumed_events(now)

    logger.info(
        "webhook %s applied: payment %s is %s",
        event.provider_event_id,
        payment.id,
        payment.status,
    )
    return payment


def start_checkout(requester: User, payment_id: str) -> str:
    """Open a Stripe Checkout Session for the linked service and mark the payment ``pending``."""
    payment = get_payment(requester, payment_id)
    if payment.status not in ("unpaid", "failed"):
        raise Conflict(f"payment in status {payment.status} cannot be checked out")
    if payment.service is None:
        raise Conflict("payment is not linked to a service yet")

    config = current_app.config
    if not config.get("STRIPE_API_KEY"):
        raise InternalError("payment provider is not configured")
    stripe.api_key = config["STRIPE_API_KEY"]
    amount = int(payment.service.price * 100)
    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": config["STRIPE_CURRENCY"],
                        "unit_amount": amount,
                        "product_data": {"name": f"Lamacare service {payment.service.id}"},
                    },
                }
            ],
            metadata={"pay_id": payment.id},
            success_url=config["STRIPE_SUCCESS_URL"],
            cancel_url=config["STRIPE_CANCEL_URL"],
        )
    except stripe.StripeError as exc:
        logger.error("checkout session for payment %s failed: %s", payment.id, exc)
        raise InternalError("cannot start checkout") from exc

    with transaction():
        payment = find_or_lock(Payment, payment_id, "payment")
        lifecycle.set_status(payment, "pending")
        payment.envelope = {**(payment.envelope or {}), "checkout_session_id": session.id}
    logger.info("checkout session %s opened for payment %s", session.id, payment.id)
    return session.url
