"""Time-driven booking transitions, shared by the periodic tick and the payment webhook."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select

from .. import clock
from ..extensions import db
from ..models.service import ACTIVE_SERVICE_STATUSES, Service
from ..repository import find_or_lock, transaction

logger = logging.getLogger(__name__)


def start_if_due(service: Service, now: datetime) -> bool:
    if (
        service.status == "wait"
        and now >= service.reserve_date_start
        and service.payment is not None
        and service.payment.status == "paid"
    ):
        service.status = "ongoing"
        return True
    return False


def finish_if_due(service: Service, now: datetime) -> bool:
    if service.status == "ongoing" and now >= service.reserve_date_end:
        service.status = "finish"
        return True
    return False


def advance(now: datetime | None = None) -> dict:
    """Move due bookings along ``wait -> ongoing -> finish``.

    Each row is handled in its own short transaction under ``FOR UPDATE SKIP LOCKED`` so
    concurrent ticks never block each other; running twice with the same ``now`` is a no-op.
    """
    now = now or clock.utcnow()
    due_ids = db.session.execute(
        select(Service.id)
        .where(
            Service.status.in_(ACTIVE_SERVICE_STATUSES),
            Service.reserve_date_start <= now,
        )
        .order_by(Service.reserve_date_start.asc())
    ).scalars().all()
    db.session.commit()

    counts = {"ongoing": 0, "finish": 0, "skipped": 0}
    for service_id in due_ids:
        with transaction():
            service = find_or_lock(Service, service_id, skip_locked=True)
            if service is None:
                counts["skipped"] += 1
                continue
            if start_if_due(service, now):
                counts["ongoing"] += 1
            if finish_if_due(service, now):
                counts["finish"] += 1

    if counts["ongoing"] or counts["finish"]:
        logger.info(
            "advance at %s: %d started, %d finished, %d skipped",
            now.isoformat(),
            counts["ongoing"],
            counts["finish"],
            counts["skipped"],
        )
    return counts
