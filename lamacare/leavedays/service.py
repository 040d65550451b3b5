from __future__ import annotations

import logging
from datetime import date, datetime, time

from sqlalchemy import select

from ..bookings.availability import lock_staff
from ..errors import Conflict, Forbidden, NotFound
from ..extensions import db
from ..models.leaveday import Leaveday
from ..models.service import ACTIVE_SERVICE_STATUSES, CaretakerService, MedicalService, Service
from ..models.user import Caretaker, Doctor, User
from ..repository import range_overlaps, transaction

logger = logging.getLogger(__name__)

STAFF_MODELS = {"caretaker": Caretaker, "doctor": Doctor}


def _require_staff(requester: User) -> None:
    if requester.role not in STAFF_MODELS:
        raise Forbidden()


def _booked_on(staff: User, day: date) -> bool:
    start, end = datetime.combine(day, time.min), datetime.combine(day, time.max)
    if staff.role == "caretaker":
        sub, sub_col = CaretakerService, CaretakerService.caretaker_id
    else:
        sub, sub_col = MedicalService, MedicalService.doctor_id
    stmt = (
        select(Service.id)
        .join(sub, sub.service_id == Service.id)
        .where(
            sub_col == staff.id,
            Service.status.in_(ACTIVE_SERVICE_STATUSES),
            range_overlaps(Service.reserve_date_start, Service.reserve_date_end, start, end),
        )
        .limit(1)
    )
    return db.session.execute(stmt).first() is not None


def add_leaveday(requester: User, day: date) -> Leaveday:
    """Record a day off. The staff row lock orders this against concurrent bookings."""
    _require_staff(requester)
    with transaction():
        lock_staff(STAFF_MODELS[requester.role], requester.id, requester.role)
        if _booked_on(requester, day):
            raise Conflict("you already have a booking on this day")
        leaveday = Leaveday(staff_type=requester.role, staff_id=requester.id, day=day)
        db.session.add(leaveday)
        db.session.flush()
    logger.info("%s %s on leave %s", requester.role, requester.id, day.isoformat())
    return leaveday


def list_leavedays(requester: User) -> list[Leaveday]:
    _require_staff(requester)
    return list(
        db.session.execute(
            select(Leaveday)
            .where(Leaveday.staff_type == requester.role, Leaveday.staff_id == requester.id)
            .order_by(Leaveday.day.asc())
        ).scalars()
    )


def delete_leaveday(requester: User, day: date) -> dict:
    _require_staff(requester)
    with transaction():
        lock_staff(STAFF_MODELS[requester.role], requester.id, requester.role)
        leaveday = db.session.execute(
            select(Leaveday).where(
                Leaveday.staff_type == requester.role,
                Leaveday.staff_id == requester.id,
                Leaveday.day == day,
            )
        ).scalar_one_or_none()
        if leaveday is None:
            raise NotFound("leave day not found")
        if _booked_on(requester, day):
            raise Conflict("a booking overlaps this leave day")
        snapshot = leaveday.to_dict()
        db.session.delete(leaveday)
    return snapshot
