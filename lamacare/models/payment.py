from .. import clock
from ..extensions import db
from . import new_id

PAYMENT_STATUSES = ("unpaid", "pending", "paid", "failed", "refunded")

# status -> statuses it may move to
PAYMENT_TRANSITIONS = {
    "unpaid": {"pending", "paid", "failed"},
    "pending": {"paid", "failed", "unpaid"},
    "failed": {"pending", "paid"},
    "paid": {"refunded"},
    "refunded": set(),
}

TERMINAL_PAYMENT_STATUSES = ("failed", "refunded")


def can_transition(current: str, target: str) -> bool:
    return current == target or target in PAYMENT_TRANSITIONS.get(current, set())


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    # kept after the owner is deleted, hence nullable
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="unpaid")
    type = db.Column(db.String(40), nullable=True)
    pay_date = db.Column(db.DateTime, nullable=True, index=True)
    # intended reservation window and provider references
    envelope = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, nullable=False, default=clock.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=clock.utcnow, onupdate=clock.utcnow
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('unpaid', 'pending', 'paid', 'failed', 'refunded')",
            name="ck_payment_status",
        ),
        db.CheckConstraint(
            "(status = 'paid') = (pay_date IS NOT NULL)", name="ck_payment_pay_date_iff_paid"
        ),
    )

    service = db.relationship(
        "Service", uselist=False, back_populates="payment", passive_deletes=True
    )

    def to_dict(self) -> dict:
        return {
            "payment_id": self.id,
            "owner_id": self.owner_id,
            "status": self.status,
            "type": self.type,
            "pay_date": clock.isoformat(self.pay_date),
            "service_id": self.service.id if self.service is not None else None,
            "metadata": dict(self.envelope or {}),
        }


class ProcessedWebhookEvent(db.Model):
    __tablename__ = "processed_webhook_events"

    provider_event_id = db.Column(db.String(255), primary_key=True)
    payment_id = db.Column(db.String(36), nullable=True)
    consumed_at = db.Column(db.DateTime, nullable=False, default=clock.utcnow, index=True)
