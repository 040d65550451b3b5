from flask import Blueprint
from flask_login import current_user, login_required

from ..auth.decorators import roles_required
from ..forms import parse_day
from ..responses import respond
from . import service

leavedays_bp = Blueprint("leavedays", __name__)


@leavedays_bp.post("/leaveday/<day>")
@login_required
@roles_required("caretaker", "doctor")
def add_leaveday(day):
    leaveday = service.add_leaveday(current_user, parse_day(day))
    return respond(leaveday.to_dict(), message="leave day added", status=201)


@leavedays_bp.get("/leaveday")
@login_required
@roles_required("caretaker", "doctor")
def list_leavedays():
    return respond([row.to_dict() for row in service.list_leavedays(current_user)])


@leavedays_bp.delete("/leaveday/<day>")
@login_required
@roles_required("caretaker", "doctor")
def delete_leaveday(day):
    return respond(service.delete_leaveday(current_user, parse_day(day)), message="leave day removed")
