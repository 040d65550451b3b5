from flask import Blueprint, current_app, request

from ..payments import service
from ..payments.webhook import verify_and_parse
from ..responses import respond

webhooks_bp = Blueprint("webhooks", __name__)


@webhooks_bp.post("/webhooks/payment")
def payment_webhook():
    """Stripe calls this; anything but 2xx makes it retry the delivery."""
    event = verify_and_parse(
        request.get_data(),
        request.headers.get("Stripe-Signature"),
        current_app.config.get("STRIPE_WEBHOOK_SECRET"),
    )
    payment = service.apply_webhook(event)
    if payment is None:
        return respond({"event_id": event.provider_event_id, "replayed": True}, message="ok")
    return respond(
        {"event_id": event.provider_event_id, "payment": payment.to_dict()}, message="ok"
    )
