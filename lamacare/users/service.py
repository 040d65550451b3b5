from __future__ import annotations

import logging

from sqlalchemy import select

from .. import storage
from ..auth.service import check_password_policy, find_by_email, is_adult
from ..errors import BadRequest, Conflict, Forbidden, Unprocessable
from ..extensions import db
from ..models.payment import Payment
from ..models.service import CaretakerService, MedicalService, Service
from ..models.user import ROLES, User
from ..payments import lifecycle as payments
from ..repository import find_by_id, find_or_lock, paginate, transaction

logger = logging.getLogger(__name__)

USER_FIELDS = ("email", "password", "name", "birth_date", "telephone", "address")
ROLE_FIELDS = {
    "owner": (),
    "caretaker": ("specialization", "start_work_time", "end_work_time"),
    "doctor": ("license_number", "start_date", "start_work_time", "end_work_time"),
    "admin": (),
}


def get_user(user_id: str) -> User:
    return find_by_id(User, user_id, "user")


def update_user(user: User, patch: dict) -> User:
    """Apply a partial profile update to ``user`` and its role row."""
    allowed = USER_FIELDS + ROLE_FIELDS[user.role]
    extra = sorted(set(patch) - set(allowed))
    if extra:
        raise Forbidden(f"{user.role} cannot change: {', '.join(extra)}")
    if not patch:
        raise BadRequest("no fields to update")

    with transaction():
        user = find_or_lock(User, user.id, "user")
        if "email" in patch:
            email = (patch["email"] or "").strip().lower()
            if not email:
                raise Unprocessable("email: This field is required.")
            other = find_by_email(email, user.role)
            if other is not None and other.id != user.id:
                raise Conflict("email is already registered for this role")
            user.email = email
        if "password" in patch:
            check_password_policy(patch["password"])
            user.set_password(patch["password"])
        if "birth_date" in patch:
            if patch["birth_date"] is None or not is_adult(patch["birth_date"]):
                raise Unprocessable("you must be at least 18 years old")
            user.birth_date = patch["birth_date"]
        for name in ("name", "telephone", "address"):
            if name in patch:
                value = (patch[name] or "").strip()
                if not value:
                    raise Unprocessable(f"{name}: This field is required.")
                setattr(user, name, value)

        row = user.role_row
        for name in ROLE_FIELDS[user.role]:
            if name not in patch:
                continue
            value = patch[name]
            if name == "license_number":
                value = (value or "").strip()
                if not value:
                    raise Unprocessable("license_number: This field is required.")
            setattr(row, name, value)
    logger.info("user %s updated fields %s", user.id, ", ".join(sorted(patch)))
    return user


def _bookings_of(user: User):
    if user.role == "caretaker":
        return (
            select(Service.id)
            .join(CaretakerService, CaretakerService.service_id == Service.id)
            .where(CaretakerService.caretaker_id == user.id)
        )
    if user.role == "doctor":
        return (
            select(Service.id)
            .join(MedicalService, MedicalService.service_id == Service.id)
            .where(MedicalService.doctor_id == user.id)
        )
    return None


def delete_user(user_id: str) -> dict:
    """Delete a user together with everything that belongs to them.

    Pets, services and leave days go with the user through FK cascades. Payments are kept for
    bookkeeping with ``owner_id`` nulled; the ones still open are retired as refunded. Staff who
    still appear on any service, finished or cancelled ones included, cannot be deleted.
    """
    with transaction():
        user = find_or_lock(User, user_id, "user")
        snapshot = user.to_dict()

        bookings = _bookings_of(user)
        if bookings is not None:
            booked = db.session.execute(bookings.limit(1)).first()
            if booked is not None:
                raise Conflict("staff member is still referenced by services")

        if user.role == "owner":
            open_payments = db.session.execute(
                select(Payment)
                .where(
                    Payment.owner_id == user.id,
                    Payment.status.not_in(("failed", "refunded")),
                )
                .with_for_update()
            ).scalars().all()
            for payment in open_payments:
                payments.retire(payment)
            db.session.flush()

        db.session.delete(user)
    logger.info("deleted %s %s", snapshot["role"], user_id)
    return snapshot


def list_users(role: str | None = None, page=None, limit=None):
    stmt = select(User)
    if role:
        if role not in ROLES:
            raise BadRequest(f"role must be one of: {', '.join(ROLES)}")
        stmt = stmt.where(User.role == role)
    stmt = stmt.order_by(User.created_at.asc(), User.id.asc())
    return paginate(stmt, page, limit)


def set_profile_image(user: User, file_storage) -> User:
    if file_storage is None or not file_storage.filename:
        raise BadRequest("file is required")
    url = storage.upload_profile_image(user.id, file_storage)
    with transaction():
        user = find_or_lock(User, user.id, "user")
        user.profile_image_url = url
    return user
