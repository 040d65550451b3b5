from flask import Blueprint, request
from flask_login import current_user, login_required
from wtforms import EmailField, PasswordField, StringField
from wtforms.validators import Email, Length, Optional

from ..auth.decorators import roles_required
from ..forms import ApiForm, DayField, TimeOfDayField, validate_form
from ..responses import page_payload, respond
from . import service

users_bp = Blueprint("users", __name__)


class ProfileForm(ApiForm):
    email = EmailField("Email", validators=[Optional(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[Optional(), Length(min=8)])
    name = StringField("Name", validators=[Optional(), Length(max=120)])
    birth_date = DayField("Birth date", validators=[Optional()])
    telephone_number = StringField("Telephone", validators=[Optional(), Length(max=20)])
    address = StringField("Address", validators=[Optional()])
    specialization = StringField("Specialization", validators=[Optional(), Length(max=255)])
    start_work_time = TimeOfDayField("Start work time", validators=[Optional()])
    end_work_time = TimeOfDayField("End work time", validators=[Optional()])
    license_number = StringField("License number", validators=[Optional(), Length(max=64)])
    start_date = DayField("Start date", validators=[Optional()])


@users_bp.get("/user/")
@login_required
def me():
    return respond(service.get_user(current_user.id).to_dict())


@users_bp.patch("/user/")
@login_required
def update_me():
    form = validate_form(ProfileForm)
    patch = form.supplied()
    if "telephone_number" in patch:
        patch["telephone"] = patch.pop("telephone_number")
    user = service.update_user(current_user, patch)
    return respond(user.to_dict(), message="Profile updated")


@users_bp.delete("/user/")
@login_required
def delete_me():
    return respond(service.delete_user(current_user.id), message="User deleted")


@users_bp.patch("/user/profile")
@login_required
def upload_profile_image():
    user = service.set_profile_image(current_user, request.files.get("file"))
    return respond(user.to_dict(), message="Profile image updated")


@users_bp.get("/admin/users")
@login_required
@roles_required("admin")
def list_users():
    rows, total, page, limit = service.list_users(
        request.args.get("role"),
        request.args.get("page", type=int),
        request.args.get("limit", type=int),
    )
    return respond(page_payload("users", rows, total, page, limit))


@users_bp.delete("/admin/users/<user_id>")
@login_required
@roles_required("admin")
def delete_user(user_id):
    return respond(service.delete_user(user_id), message="User deleted")
