from flask import Blueprint, request
from flask_login import current_user, login_required
from wtforms import IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, NumberRange, Optional

from .. import clock
from ..auth.decorators import roles_required
from ..errors import BadRequest, Forbidden, NotFound
from ..extensions import db
from ..forms import ApiForm, Present, RFC3339Field, parse_instant, validate_form
from ..models.service import SERVICE_STATUSES
from ..models.user import Caretaker, Doctor
from ..repository import find_by_id
from ..responses import page_payload, respond
from . import availability, service

services_bp = Blueprint("services", __name__)

SERVICE_TYPES = ("cservice", "mservice")


class ServiceForm(ApiForm):
    owner_id = StringField("Owner", validators=[Optional()])
    pet_id = StringField("Pet", validators=[DataRequired()])
    payment_id = StringField("Payment", validators=[DataRequired()])
    service_type = StringField("Service type", validators=[DataRequired(), AnyOf(SERVICE_TYPES)])
    staff_id = StringField("Staff", validators=[Optional()])
    price = IntegerField("Price", validators=[Optional(), NumberRange(min=0)])
    status = StringField("Status", validators=[Optional(), AnyOf(("wait",))])
    reserve_date_start = RFC3339Field("Start", validators=[Present()])
    reserve_date_end = RFC3339Field("End", validators=[Present()])
    disease = StringField("Disease", validators=[Optional()])
    comment = StringField("Comment", validators=[Optional()])


class ServiceUpdateForm(ApiForm):
    pet_id = StringField("Pet", validators=[Optional()])
    payment_id = StringField("Payment", validators=[Optional()])
    price = IntegerField("Price", validators=[Optional(), NumberRange(min=0)])
    status = StringField("Status", validators=[Optional(), AnyOf(SERVICE_STATUSES)])
    reserve_date_start = RFC3339Field("Start", validators=[Optional()])
    reserve_date_end = RFC3339Field("End", validators=[Optional()])


class ReviewForm(ApiForm):
    score = IntegerField("Score", validators=[Optional(), NumberRange(min=1, max=5)])
    comment = StringField("Comment", validators=[Optional()])


def _booking_data(form: ServiceForm) -> dict:
    data = {
        "owner_id": form.owner_id.data or None,
        "pet_id": form.pet_id.data,
        "payment_id": form.payment_id.data,
        "price": form.price.data or 0,
        "status": form.status.data or "wait",
        "reserve_date_start": form.reserve_date_start.data,
        "reserve_date_end": form.reserve_date_end.data,
        "comment": form.comment.data,
    }
    if form.service_type.data == "cservice":
        data["caretaker"] = True
        data["caretaker_id"] = form.staff_id.data or None
    else:
        data["doctor_id"] = form.staff_id.data or None
        data["disease"] = form.disease.data or ""
    return data


def _window():
    start = parse_instant(request.args.get("start"), "start")
    end = parse_instant(request.args.get("end"), "end")
    return start, end


@services_bp.post("/services")
@login_required
@roles_required("owner", "admin")
def create_service():
    form = validate_form(ServiceForm)
    booking = service.create_service(current_user, _booking_data(form))
    return respond(booking.to_dict(), message="service created", status=201)


@services_bp.get("/services")
@login_required
def list_services():
    rows, total, page, limit = service.list_services(
        current_user,
        status=request.args.get("status"),
        month=request.args.get("month", type=int),
        year=request.args.get("year", type=int),
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
    )
    return respond(page_payload("services", rows, total, page, limit))


@services_bp.get("/services/staff")
@login_required
@roles_required("owner", "admin")
def available_staff():
    service_type = request.args.get("serviceType", "cservice")
    if service_type not in SERVICE_TYPES:
        raise BadRequest("serviceType must be cservice or mservice")
    start, end = _window()
    if service_type == "cservice":
        staff = availability.find_available_caretakers(start, end)
    else:
        staff = availability.find_available_doctors(start, end)
    return respond([row.user.to_dict() for row in staff])


@services_bp.get("/services/staff/<staff_id>/time")
@login_required
@roles_required("owner", "admin")
def busy_time(staff_id):
    start, end = _window()
    if db.session.get(Caretaker, staff_id) is not None:
        staff_type = "cservice"
    elif db.session.get(Doctor, staff_id) is not None:
        staff_type = "mservice"
    else:
        raise NotFound("staff not found")
    slots = availability.busy_time_slots(staff_type, staff_id, start, end)
    return respond(
        {
            "staff_id": staff_id,
            "busy": [
                {"start": clock.isoformat(s), "end": clock.isoformat(e)} for s, e in slots["busy"]
            ],
            "leavedays": [clock.isoformat(d) for d in slots["leavedays"]],
        }
    )


@services_bp.get("/services/staff/<staff_id>/score")
@login_required
@roles_required("owner", "admin", "caretaker")
def staff_score(staff_id):
    if current_user.role == "caretaker" and current_user.id != staff_id:
        raise Forbidden("caretakers can only see their own score")
    find_by_id(Caretaker, staff_id, "caretaker")
    average, reviews = service.score_and_reviews(staff_id)
    return respond(
        {
            "staff_id": staff_id,
            "score": average,
            "reviews": [
                {"service_id": r.service_id, "score": r.score, "comment": r.comment}
                for r in reviews
            ],
        }
    )


@services_bp.patch("/services/review/<service_id>")
@login_required
@roles_required("owner")
def review(service_id):
    form = validate_form(ReviewForm)
    booking = service.submit_review(
        current_user, service_id, score=form.score.data, comment=form.comment.data
    )
    return respond(booking.to_dict(), message="review saved")


@services_bp.get("/services/<service_id>")
@login_required
def get_service(service_id):
    return respond(service.get_service(current_user, service_id).to_dict())


@services_bp.patch("/services/<service_id>")
@login_required
@roles_required("owner", "admin")
def update_service(service_id):
    form = validate_form(ServiceUpdateForm)
    booking = service.update_service(current_user, service_id, form.supplied())
    return respond(booking.to_dict(), message="service updated")


@services_bp.delete("/services/<service_id>")
@login_required
@roles_required("owner", "admin")
def delete_service(service_id):
    return respond(service.delete_service(current_user, service_id), message="service deleted")


@services_bp.patch("/services/<service_id>/status/<status>")
@login_required
@roles_required("admin", "caretaker", "doctor")
def update_status(service_id, status):
    booking = service.update_status_by_staff(current_user, service_id, status)
    return respond(booking.to_dict(), message="status updated")
