from flask import Blueprint, request
from flask_login import current_user, login_required
from wtforms import StringField
from wtforms.validators import AnyOf, Length, Optional

from ..auth.decorators import roles_required
from ..forms import ApiForm, Present, RFC3339Field, validate_form
from ..models.payment import PAYMENT_STATUSES
from ..responses import page_payload, respond
from . import service

payments_bp = Blueprint("payments", __name__)


class PaymentForm(ApiForm):
    owner_id = StringField("Owner", validators=[Optional()])
    reserve_date_start = RFC3339Field("Start", validators=[Present()])
    reserve_date_end = RFC3339Field("End", validators=[Present()])


class PaymentStatusForm(ApiForm):
    status = StringField("Status", validators=[Optional(), AnyOf(PAYMENT_STATUSES)])
    type = StringField("Type", validators=[Optional(), Length(max=40)])
    pay_date = RFC3339Field("Pay date", validators=[Optional()])


@payments_bp.get("/payments")
@login_required
@roles_required("owner", "admin")
def list_payments():
    rows, total, page, limit = service.list_payments(
        current_user,
        month=request.args.get("month", type=int),
        year=request.args.get("year", type=int),
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
    )
    return respond(page_payload("payments", rows, total, page, limit))


@payments_bp.post("/payments")
@login_required
@roles_required("owner", "admin")
def create_payment():
    form = validate_form(PaymentForm)
    payment = service.create_payment(
        current_user,
        form.reserve_date_start.data,
        form.reserve_date_end.data,
        owner_id=form.owner_id.data or None,
    )
    return respond(payment.to_dict(), message="payment created", status=201)


@payments_bp.patch("/payments/<payment_id>")
@login_required
@roles_required("admin")
def update_payment(payment_id):
    form = validate_form(PaymentStatusForm)
    payment = service.update_status(current_user, payment_id, form.supplied())
    return respond(payment.to_dict(), message="payment updated")


@payments_bp.post("/payments/<payment_id>/checkout")
@login_required
@roles_required("owner", "admin")
def checkout(payment_id):
    url = service.start_checkout(current_user, payment_id)
    return respond({"payment_id": payment_id, "stripe_link": url}, message="checkout started")
