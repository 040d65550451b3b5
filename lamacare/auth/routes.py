from flask import Blueprint, g
from flask_login import login_required
from wtforms import EmailField, PasswordField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional

from ..errors import Forbidden
from ..forms import ApiForm, DayField, Present, TimeOfDayField, validate_form
from ..responses import respond
from . import service
from .decorators import reset_token_from_request, roles_required

auth_bp = Blueprint("auth", __name__)


class RegisterForm(ApiForm):
    email = EmailField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=8)])
    name = StringField("Name", validators=[DataRequired(), Length(max=120)])
    birth_date = DayField("Birth date", validators=[Present()])
    telephone_number = StringField("Telephone", validators=[DataRequired(), Length(max=20)])
    address = StringField("Address", validators=[DataRequired()])
    specialization = StringField("Specialization", validators=[Optional(), Length(max=255)])
    start_work_time = TimeOfDayField("Start work time", validators=[Optional()])
    end_work_time = TimeOfDayField("End work time", validators=[Optional()])
    license_number = StringField("License number", validators=[Optional(), Length(max=64)])
    start_date = DayField("Start date", validators=[Optional()])


class LoginForm(ApiForm):
    email = EmailField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired()])


class ResetRequestForm(ApiForm):
    email = EmailField("Email", validators=[DataRequired(), Email()])
    role = StringField("Role", validators=[DataRequired()])


class ResetPasswordForm(ApiForm):
    password = PasswordField("Password", validators=[DataRequired(), Length(min=8)])


@auth_bp.get("/token")
@login_required
def check_token():
    return respond(g.token.to_dict(), message="Token is valid")


@auth_bp.post("/register/<role>")
def register(role):
    if role not in service.SELF_REGISTER_ROLES:
        raise Forbidden()
    form = validate_form(RegisterForm)
    details = service.register(role, form.data)
    return respond(details.to_dict(), message="Register successful")


@auth_bp.post("/login/<role>")
def login(role):
    form = validate_form(LoginForm)
    details = service.login(role, form.email.data, form.password.data)
    return respond(details.to_dict(), message="Login successful")


@auth_bp.post("/admin")
@login_required
@roles_required("admin")
def create_admin():
    form = validate_form(RegisterForm)
    user = service.create_user("admin", form.data)
    return respond(user.to_dict(), message="Admin created", status=201)


@auth_bp.post("/password/email")
def request_password_reset():
    form = validate_form(ResetRequestForm)
    service.request_password_reset(form.email.data, form.role.data)
    return respond(message="Reset link has been sent to your email")


@auth_bp.route("/password", methods=["PATCH", "POST"])
def reset_password():
    token = reset_token_from_request()
    form = validate_form(ResetPasswordForm)
    user = service.reset_password(token, form.password.data)
    return respond({"user_id": user.id}, message="Password has been reset")
