"""Which staff members are free over a closed interval ``[start, end]``.

A caretaker is free when they have no leave day on any calendar day touched by the interval and
no wait/ongoing booking whose window intersects it. Doctors only need to be free of leave.
Binding a staff member locks their row and bumps ``booking_version`` before the final check,
so two transactions racing for the same person serialize (or one fails with a serialization
error under repeatable read).
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import exists, select

from ..errors import Conflict, NotFound, Unprocessable
from ..extensions import db
from ..models.leaveday import Leaveday
from ..models.service import ACTIVE_SERVICE_STATUSES, CaretakerService, MedicalService, Service
from ..models.user import Caretaker, Doctor
from ..repository import find_or_lock, no_leaveday_in, order_by_rating, range_overlaps


def _check_range(start: datetime, end: datetime) -> None:
    if start is None or end is None:
        raise Unprocessable("reserve_date_start and reserve_date_end are required")
    if end < start:
        raise Unprocessable("reserve_date_end must not be before reserve_date_start")


def _booked(staff_col, sub_model, sub_staff_col, start, end, exclude_service_id=None):
    conds = [
        sub_staff_col == staff_col,
        sub_model.service_id == Service.id,
        Service.status.in_(ACTIVE_SERVICE_STATUSES),
        range_overlaps(Service.reserve_date_start, Service.reserve_date_end, start, end),
    ]
    if exclude_service_id is not None:
        conds.append(Service.id != exclude_service_id)
    return exists().where(*conds)


def available_caretakers_stmt(start, end, exclude_service_id=None, caretaker_id=None):
    stmt = select(Caretaker).where(
        no_leaveday_in("caretaker", Caretaker.user_id, start, end),
        ~_booked(
            Caretaker.user_id,
            CaretakerService,
            CaretakerService.caretaker_id,
            start,
            end,
            exclude_service_id,
        ),
    )
    if caretaker_id is not None:
        stmt = stmt.where(Caretaker.user_id == caretaker_id)
    return stmt.order_by(*order_by_rating(Caretaker.rating, Caretaker.user_id))


def find_available_caretakers(start, end, exclude_service_id=None) -> list[Caretaker]:
    _check_range(start, end)
    return list(
        db.session.execute(available_caretakers_stmt(start, end, exclude_service_id)).scalars()
    )


def caretaker_is_available(caretaker_id, start, end, exclude_service_id=None) -> bool:
    stmt = available_caretakers_stmt(start, end, exclude_service_id, caretaker_id)
    return db.session.execute(stmt).first() is not None


def find_available_doctors(start, end) -> list[Doctor]:
    _check_range(start, end)
    stmt = (
        select(Doctor)
        .where(no_leaveday_in("doctor", Doctor.user_id, start, end))
        .order_by(Doctor.user_id.asc())
    )
    return list(db.session.execute(stmt).scalars())


def doctor_is_available(doctor_id, start, end) -> bool:
    stmt = select(Doctor.user_id).where(
        Doctor.user_id == doctor_id, no_leaveday_in("doctor", Doctor.user_id, start, end)
    )
    return db.session.execute(stmt).first() is not None


def lock_staff(model, staff_id: str, what: str):
    row = find_or_lock(model, staff_id, what)
    row.booking_version = (row.booking_version or 0) + 1
    db.session.flush()
    return row


def bind_caretaker(start, end, requested_id=None, exclude_service_id=None) -> Caretaker:
    """Pick (or verify) a caretaker for the window and hold their row lock."""
    _check_range(start, end)
    if requested_id:
        if db.session.get(Caretaker, requested_id) is None:
            raise NotFound("caretaker not found")
        chosen = requested_id
    else:
        candidates = find_available_caretakers(start, end, exclude_service_id)
        if not candidates:
            raise Conflict("no caretaker is available for the requested time")
        chosen = candidates[0].user_id

    caretaker = lock_staff(Caretaker, chosen, "caretaker")
    if not caretaker_is_available(chosen, start, end, exclude_service_id):
        raise Conflict("caretaker is not available for the requested time")
    return caretaker


def bind_doctor(doctor_id, start, end) -> Doctor:
    _check_range(start, end)
    if not doctor_id:
        raise Unprocessable("doctor_id is required for a medical service")
    if db.session.get(Doctor, doctor_id) is None:
        raise NotFound("doctor not found")
    doctor = lock_staff(Doctor, doctor_id, "doctor")
    if not doctor_is_available(doctor_id, start, end):
        raise Conflict("doctor is on leave during the requested time")
    return doctor


def busy_time_slots(staff_type: str, staff_id: str, start, end) -> dict:
    _check_range(start, end)
    if staff_type == "cservice":
        sub_model, sub_col, leave_type = CaretakerService, CaretakerService.caretaker_id, "caretaker"
    elif staff_type == "mservice":
        sub_model, sub_col, leave_type = MedicalService, MedicalService.doctor_id, "doctor"
    else:
        raise Unprocessable("serviceType must be cservice or mservice")

    services = db.session.execute(
        select(Service)
        .join(sub_model, sub_model.service_id == Service.id)
        .where(
            sub_col == staff_id,
            Service.status.in_(ACTIVE_SERVICE_STATUSES),
            range_overlaps(Service.reserve_date_start, Service.reserve_date_end, start, end),
        )
        .order_by(Service.reserve_date_start.asc())
    ).scalars()
    leave = db.session.execute(
        select(Leaveday.day)
        .where(
            Leaveday.staff_type == leave_type,
            Leaveday.staff_id == staff_id,
            Leaveday.day >= start.date(),
            Leaveday.day <= end.date(),
        )
        .order_by(Leaveday.day.asc())
    ).scalars()
    return {
        "busy": [(s.reserve_date_start, s.reserve_date_end) for s in services],
        "leavedays": list(leave),
    }
