from __future__ import annotations

import logging
import secrets
from datetime import date

from flask import current_app
from sqlalchemy import select

from .. import clock, mailer
from ..errors import Conflict, Forbidden, NotFound, Unauthorized, Unprocessable
from ..extensions import db
from ..models.user import ROLE_MODELS, User
from ..repository import find_or_lock, transaction
from .tokens import ACCESS, RESET, TokenDetails, decode_token, issue_token

logger = logging.getLogger(__name__)

SELF_REGISTER_ROLES = ("owner", "caretaker", "doctor")
MIN_PASSWORD_LENGTH = 8
MIN_AGE_YEARS = 18


class AuthFailed(Unauthorized):
    default_message = "invalid email or password"


def is_adult(birth_date: date, today: date | None = None) -> bool:
    today = today or clock.today()
    return clock.add_years(birth_date, MIN_AGE_YEARS) <= today


def check_password_policy(password: str) -> None:
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        raise Unprocessable(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def find_by_email(email: str, role: str) -> User | None:
    return db.session.execute(
        select(User).where(User.email == email.strip().lower(), User.role == role)
    ).scalar_one_or_none()


def _role_row(role: str, user: User, payload: dict):
    model = ROLE_MODELS[role]
    if role == "caretaker":
        return model(
            user=user,
            specialization=payload.get("specialization"),
            start_work_time=payload.get("start_work_time"),
            end_work_time=payload.get("end_work_time"),
        )
    if role == "doctor":
        license_number = (payload.get("license_number") or "").strip()
        if not license_number:
            raise Unprocessable("license_number is required for doctor")
        return model(
            user=user,
            license_number=license_number,
            start_date=payload.get("start_date") or clock.today(),
            start_work_time=payload.get("start_work_time"),
            end_work_time=payload.get("end_work_time"),
        )
    return model(user=user)


def create_user(role: str, payload: dict) -> User:
    """Insert the user and its role row in one transaction."""
    if role not in ROLE_MODELS:
        raise Unprocessable(f"role must be one of: {', '.join(ROLE_MODELS)}")
    check_password_policy(payload.get("password"))
    birth_date = payload.get("birth_date")
    if birth_date is None or not is_adult(birth_date):
        raise Unprocessable("you must be at least 18 years old to register")

    email = payload["email"].strip().lower()
    with transaction():
        if find_by_email(email, role) is not None:
            raise Conflict("email is already registered for this role")
        user = User(
            email=email,
            role=role,
            name=payload["name"].strip(),
            birth_date=birth_date,
            telephone=payload["telephone_number"],
            address=payload["address"].strip(),
        )
        user.set_password(payload["password"])
        db.session.add(user)
        db.session.add(_role_row(role, user, payload))
        db.session.flush()
    logger.info("registered %s %s", role, user.id)
    return user


def register(role: str, payload: dict) -> TokenDetails:
    if role not in SELF_REGISTER_ROLES:
        raise Forbidden()
    user = create_user(role, payload)
    return issue_token(user.id, user.role, ACCESS)


def login(role: str, email: str, password: str) -> TokenDetails:
    if role not in ROLE_MODELS:
        raise Forbidden()
    user = find_by_email(email, role)
    if user is None or not user.check_password(password):
        raise AuthFailed()
    return issue_token(user.id, user.role, ACCESS)


def check_token(token: str) -> TokenDetails:
    details = decode_token(token, purpose=ACCESS)
    user = db.session.get(User, details.user_id)
    if user is None or user.role != details.role:
        raise Unauthorized()
    return details


def request_password_reset(email: str, role: str) -> TokenDetails:
    """Issue a single-use reset token and mail the link. Earlier reset tokens stop working."""
    user = find_by_email(email, role)
    if user is None:
        raise NotFound("user not found")
    nonce = secrets.token_urlsafe(24)
    with transaction():
        user.reset_nonce = nonce
    details = issue_token(user.id, user.role, RESET, nonce=nonce)

    link = current_app.config["RESET_PASSWORD_URL"] + details.token
    mailer.send_password_reset(user.email, link)
    return details


def reset_password(token: str, new_password: str) -> User:
    details = decode_token(token, purpose=RESET)
    check_password_policy(new_password)
    with transaction():
        try:
            user = find_or_lock(User, details.user_id, "user")
        except NotFound:
            raise Unauthorized() from None
        if user.role != details.role:
            raise Unauthorized()
        if not details.nonce or user.reset_nonce != details.nonce:
            logger.warning("reset token replayed or superseded for user %s", user.id)
            raise Unauthorized()
        user.set_password(new_password)
        user.reset_nonce = None
    logger.info("password reset for user %s", user.id)
    return user
