from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import or_, select

from .. import clock
from ..errors import BadRequest, Conflict, Forbidden, NotFound, Unprocessable
from ..extensions import db
from ..models.payment import Payment
from ..models.pet import Pet
from ..models.service import (
    SERVICE_STATUSES,
    SERVICE_TRANSITIONS,
    CaretakerService,
    MedicalService,
    Service,
)
from ..models.user import Caretaker, Owner, User
from ..payments import lifecycle as payments
from ..repository import find_by_id, find_or_lock, month_floor, paginate, transaction
from . import availability

logger = logging.getLogger(__name__)

BOOKABLE_PAYMENT_STATUSES = ("unpaid", "paid")
OWNER_EDITABLE = ("reserve_date_start", "reserve_date_end", "pet_id", "payment_id")
ADMIN_EDITABLE = OWNER_EDITABLE + ("status", "price")


def _resolve_owner_id(requester: User, requested: str | None) -> str:
    if requester.role == "owner":
        if requested and requested != requester.id:
            raise Forbidden("owners can only book for themselves")
        return requester.id
    if requester.role == "admin":
        if not requested:
            raise BadRequest("owner_id is required for admin")
        return requested
    raise Forbidden()


def _check_pet(pet_id: str, owner_id: str) -> Pet:
    pet = find_by_id(Pet, pet_id, "pet")
    if pet.owner_id != owner_id:
        raise Forbidden("pet does not belong to this owner")
    return pet


def _claim_payment(payment_id: str, owner_id: str, service_id: str | None = None) -> Payment:
    payment = find_or_lock(Payment, payment_id, "payment")
    if payment.owner_id != owner_id:
        raise Forbidden("service owner and payment owner have to be the same person")
    if payment.status not in BOOKABLE_PAYMENT_STATUSES:
        raise Conflict(f"payment must be unpaid or paid, not {payment.status}")
    linked = db.session.execute(
        select(Service.id).where(Service.payment_id == payment_id)
    ).scalar_one_or_none()
    if linked is not None and linked != service_id:
        raise Conflict("payment is already linked to another service")
    return payment


def _check_reserved_window(payment: Payment, start, end) -> None:
    """A payment opened for a reservation window only backs bookings inside that window."""
    envelope = payment.envelope or {}
    if not envelope.get("reserve_date_start") or not envelope.get("reserve_date_end"):
        return
    reserved_start = clock.parse_rfc3339(envelope["reserve_date_start"])
    reserved_end = clock.parse_rfc3339(envelope["reserve_date_end"])
    if start < reserved_start or end > reserved_end:
        raise Conflict(
            "booking falls outside the window reserved on payment "
            f"({envelope['reserve_date_start']} - {envelope['reserve_date_end']})"
        )


def create_service(requester: User, data: dict) -> Service:
    """Insert a ``wait`` booking plus its sub-services; staff are bound inside the same
    transaction as the availability check."""
    owner_id = _resolve_owner_id(requester, data.get("owner_id"))
    status = data.get("status") or "wait"
    if status != "wait":
        raise Unprocessable("status must be wait when creating a service")
    start, end = data.get("reserve_date_start"), data.get("reserve_date_end")
    if start is None or end is None:
        raise Unprocessable("reserve_date_start and reserve_date_end are required")
    if end < start:
        raise Unprocessable("reserve_date_end must not be before reserve_date_start")
    wants_caretaker = bool(data.get("caretaker") or data.get("caretaker_id"))
    wants_doctor = bool(data.get("doctor_id") or data.get("disease"))
    if not (wants_caretaker or wants_doctor):
        raise Unprocessable("a service needs a caretaker or a medical sub-service")
    if wants_doctor and not (data.get("disease") or "").strip():
        raise Unprocessable("disease is required for a medical service")

    with transaction():
        if db.session.get(Owner, owner_id) is None:
            raise NotFound("owner not found")
        _check_pet(data.get("pet_id"), owner_id)
        payment = _claim_payment(data.get("payment_id"), owner_id)
        _check_reserved_window(payment, start, end)

        service = Service(
            owner_id=owner_id,
            pet_id=data["pet_id"],
            payment_id=payment.id,
            price=data.get("price") or 0,
            status="wait",
            reserve_date_start=start,
            reserve_date_end=end,
        )
        db.session.add(service)
        db.session.flush()

        if wants_caretaker:
            caretaker = availability.bind_caretaker(start, end, data.get("caretaker_id"))
            service.caretaker_service = CaretakerService(
                caretaker_id=caretaker.user_id,
                comment=(data.get("comment") or "").strip() or None,
            )
        if wants_doctor:
            doctor = availability.bind_doctor(data.get("doctor_id"), start, end)
            service.medical_service = MedicalService(
                doctor_id=doctor.user_id, disease=data["disease"].strip()
            )
        db.session.flush()

        if payment.status == "paid":
            payments.adjust_spending(owner_id, service.price)

    logger.info("service %s created for owner %s", service.id, owner_id)
    return service


def _can_view(requester: User, service: Service) -> bool:
    if requester.role == "admin":
        return True
    if requester.role == "owner":
        return service.owner_id == requester.id
    return requester.id in service.staff_ids()


def get_service(requester: User, service_id: str) -> Service:
    service = find_by_id(Service, service_id, "service")
    if not _can_view(requester, service):
        raise Forbidden("you do not have access to this service")
    return service


def _rebind_staff(service: Service) -> None:
    start, end = service.reserve_date_start, service.reserve_date_end
    if service.caretaker_service is not None:
        availability.bind_caretaker(
            start, end, service.caretaker_service.caretaker_id, exclude_service_id=service.id
        )
    if service.medical_service is not None:
        availability.bind_doctor(service.medical_service.doctor_id, start, end)


def _change_status(service: Service, target: str, by_admin: bool) -> None:
    if target not in SERVICE_STATUSES:
        raise Unprocessable(f"status must be one of: {', '.join(SERVICE_STATUSES)}")
    if target == service.status:
        return
    if target not in SERVICE_TRANSITIONS[service.status]:
        raise Conflict(f"service cannot move from {service.status} to {target}")
    if target == "ongoing" and service.payment.status != "paid":
        raise Conflict("service can only start once its payment is paid")
    service.status = target
    if target == "cancelled" and by_admin and service.payment.status == "paid":
        payments.refund(service.payment)


def update_service(requester: User, service_id: str, patch: dict) -> Service:
    if requester.role not in ("owner", "admin"):
        raise Forbidden()
    allowed = ADMIN_EDITABLE if requester.role == "admin" else OWNER_EDITABLE
    extra = sorted(set(patch) - set(allowed))
    if extra:
        raise Forbidden(f"{requester.role} cannot change: {', '.join(extra)}")
    if not patch:
        raise BadRequest("no fields to update")

    with transaction():
        service = find_or_lock(Service, service_id, "service")
        if requester.role == "owner" and service.owner_id != requester.id:
            raise Forbidden("you do not own this service")

        schedule_fields = set(patch) & set(OWNER_EDITABLE)
        if schedule_fields and service.status != "wait":
            raise Conflict("only waiting services can be rescheduled or relinked")

        if "pet_id" in patch:
            _check_pet(patch["pet_id"], service.owner_id)
            service.pet_id = patch["pet_id"]
        if "payment_id" in patch and patch["payment_id"] != service.payment_id:
            payment = _claim_payment(patch["payment_id"], service.owner_id, service.id)
            if service.payment.status == "paid":
                payments.adjust_spending(service.owner_id, -service.price)
            if payment.status == "paid":
                payments.adjust_spending(service.owner_id, service.price)
            service.payment = payment

        if "reserve_date_start" in patch or "reserve_date_end" in patch:
            start = patch.get("reserve_date_start") or service.reserve_date_start
            end = patch.get("reserve_date_end") or service.reserve_date_end
            if end < start:
                raise Unprocessable("reserve_date_end must not be before reserve_date_start")
            service.reserve_date_start = start
            service.reserve_date_end = end
            db.session.flush()
            _rebind_staff(service)
        if schedule_fields & {"payment_id", "reserve_date_start", "reserve_date_end"}:
            _check_reserved_window(
                service.payment, service.reserve_date_start, service.reserve_date_end
            )

        if "price" in patch:
            price = patch["price"]
            if price is None or price < 0:
                raise Unprocessable("price must be greater than or equal to 0")
            if service.payment.status == "paid":
                payments.adjust_spending(service.owner_id, price - service.price)
            service.price = price
        if "status" in patch:
            _change_status(service, patch["status"], by_admin=True)

    logger.info("service %s updated by %s %s", service.id, requester.role, requester.id)
    return service


def cancel_service(requester: User, service_id: str) -> Service:
    with transaction():
        service = find_or_lock(Service, service_id, "service")
        if requester.role == "owner":
            if service.owner_id != requester.id:
                raise Forbidden("you do not own this service")
        elif requester.role != "admin":
            raise Forbidden()
        if service.status != "wait":
            raise Conflict("only waiting services can be cancelled")
        _change_status(service, "cancelled", by_admin=requester.role == "admin")
    logger.info("service %s cancelled by %s", service.id, requester.id)
    return service


def delete_service(requester: User, service_id: str) -> dict:
    """Owners cancel their waiting booking; admins remove the booking and its sub-services."""
    if requester.role != "admin":
        return cancel_service(requester, service_id).to_dict()
    with transaction():
        service = find_or_lock(Service, service_id, "service")
        snapshot = service.to_dict()
        db.session.delete(service)
    logger.info("service %s deleted by admin %s", service_id, requester.id)
    return snapshot


def update_status_by_staff(requester: User, service_id: str, status: str) -> Service:
    with transaction():
        service = find_or_lock(Service, service_id, "service")
        if requester.role == "caretaker":
            bound = service.caretaker_service
            if bound is None or bound.caretaker_id != requester.id:
                raise Forbidden("caretaker can only update their own services")
        elif requester.role == "doctor":
            bound = service.medical_service
            if bound is None or bound.doctor_id != requester.id:
                raise Forbidden("doctor can only update their own services")
        elif requester.role != "admin":
            raise Forbidden()
        if status == "cancelled" and requester.role != "admin":
            raise Forbidden("only owners and admins can cancel a service")
        _change_status(service, status, by_admin=requester.role == "admin")
    return service


def list_services(requester: User, status=None, month=None, year=None, page=None, limit=None):
    stmt = select(Service)
    if requester.role == "owner":
        stmt = stmt.where(Service.owner_id == requester.id)
    elif requester.role == "caretaker":
        stmt = stmt.join(CaretakerService).where(CaretakerService.caretaker_id == requester.id)
    elif requester.role == "doctor":
        stmt = stmt.join(MedicalService).where(MedicalService.doctor_id == requester.id)

    if status and status != "all":
        if status not in SERVICE_STATUSES:
            raise BadRequest(f"status must be one of: all, {', '.join(SERVICE_STATUSES)}")
        stmt = stmt.where(Service.status == status)
    floor = month_floor(month, year)
    if floor is not None:
        stmt = stmt.where(Service.reserve_date_start >= floor)

    stmt = stmt.order_by(Service.reserve_date_start.asc(), Service.id.asc())
    return paginate(stmt, page, limit)


def submit_review(requester: User, service_id: str, score=None, comment=None) -> Service:
    if requester.role != "owner":
        raise Forbidden()
    comment = (comment or "").strip() or None
    if score is None and comment is None:
        raise BadRequest("no fields to update")
    if score is not None and not 1 <= score <= 5:
        raise Unprocessable("score must be between 1 and 5")

    with transaction():
        service = find_or_lock(Service, service_id, "service")
        if service.owner_id != requester.id:
            raise Forbidden("you do not own this service")
        if service.caretaker_service is None:
            raise BadRequest("only caretaker services can be reviewed")
        if service.status != "finish":
            raise Conflict("service must be finished to be reviewed")
        if score is not None:
            service.caretaker_service.score = score
        if comment is not None:
            service.caretaker_service.comment = comment
        db.session.flush()

        caretaker = find_or_lock(Caretaker, service.caretaker_service.caretaker_id, "caretaker")
        average, _ = score_and_reviews(caretaker.user_id)
        caretaker.rating = Decimal(str(average))
    return service


def score_and_reviews(caretaker_id: str) -> tuple[float, list[CaretakerService]]:
    rows = db.session.execute(
        select(CaretakerService)
        .where(
            CaretakerService.caretaker_id == caretaker_id,
            or_(CaretakerService.score.is_not(None), CaretakerService.comment.is_not(None)),
        )
        .order_by(CaretakerService.service_id.asc())
    ).scalars().all()

    scores = [row.score for row in rows if row.score is not None]
    reviews = [row for row in rows if row.comment and row.comment.strip()]
    if not scores:
        return 0.0, reviews
    return round(sum(scores) / len(scores), 1), reviews
