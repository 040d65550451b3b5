"""Payment status changes and the owner spending they imply."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ..errors import Conflict, Unprocessable
from ..extensions import db
from ..models.payment import PAYMENT_STATUSES, Payment, can_transition
from ..models.user import Owner


def adjust_spending(owner_id: str | None, delta) -> None:
    if not owner_id or not delta:
        return
    owner = db.session.get(Owner, owner_id)
    if owner is None:
        return
    total = Decimal(owner.total_spending or 0) + Decimal(delta)
    owner.total_spending = max(total, Decimal(0))


def _linked_price(payment: Payment) -> int:
    return payment.service.price if payment.service is not None else 0


def set_status(
    payment: Payment,
    status: str,
    pay_date: datetime | None = None,
    method: str | None = None,
) -> bool:
    """Apply one transition. Returns False when nothing changed."""
    if status not in PAYMENT_STATUSES:
        raise Unprocessable(f"status must be one of: {', '.join(PAYMENT_STATUSES)}")
    if not can_transition(payment.status, status):
        raise Conflict(f"payment cannot move from {payment.status} to {status}")
    if status == "paid" and pay_date is None and payment.pay_date is None:
        raise Unprocessable("pay_date is required when status is paid")
    if status != "paid" and pay_date is not None:
        raise Unprocessable("pay_date can only be set when status is paid")

    if method:
        payment.type = method
    previous = payment.status
    if status == "paid":
        payment.pay_date = pay_date or payment.pay_date
    else:
        payment.pay_date = None
    payment.status = status

    if previous != "paid" and status == "paid":
        adjust_spending(payment.owner_id, _linked_price(payment))
    elif previous == "paid" and status == "refunded":
        adjust_spending(payment.owner_id, -_linked_price(payment))
    return previous != status


def refund(payment: Payment) -> bool:
    if payment.status == "refunded":
        return False
    return set_status(payment, "refunded")


def retire(payment: Payment) -> None:
    """Close out a payment whose owner is gone: anything not failed/refunded becomes refunded."""
    if payment.status in ("failed", "refunded"):
        return
    if payment.status == "paid":
        refund(payment)
        return
    payment.status = "refunded"
    payment.pay_date = None
