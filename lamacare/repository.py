"""Persistence helpers shared by the feature services.

Every write goes through :func:`transaction` so a failure anywhere rolls the whole unit back.
Availability queries are composed from the small predicate builders at the bottom.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import MAXYEAR, MINYEAR, datetime

from sqlalchemy import and_, exists, func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from .errors import ApiError, BadRequest, NotFound, translate_db_error
from .extensions import db
from .models.leaveday import Leaveday

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 5
MAX_LIMIT = 100


@contextmanager
def transaction():
    """Commit on success; roll back and translate driver errors on failure."""
    try:
        yield db.session
        db.session.commit()
    except ApiError:
        db.session.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        db.session.rollback()
        mapped = translate_db_error(exc)
        if mapped is None:
            raise
        logger.info("transaction aborted: %s", mapped.message)
        raise mapped from exc
    except Exception:
        db.session.rollback()
        raise


def find_by_id(model, ident, what: str | None = None):
    if not ident:
        raise NotFound(f"{what or model.__tablename__} not found")
    row = db.session.get(model, ident)
    if row is None:
        raise NotFound(f"{what or model.__tablename__} not found")
    return row


def find_or_lock(model, ident, what: str | None = None, skip_locked: bool = False):
    """Load a row under ``SELECT ... FOR UPDATE``; the lock is released at transaction end.

    With ``skip_locked`` a row held by another worker yields ``None`` instead of blocking.
    """
    pk = model.__mapper__.primary_key[0]
    stmt = (
        select(model)
        .where(pk == ident)
        .with_for_update(skip_locked=skip_locked)
        .execution_options(populate_existing=True)
    )
    row = db.session.execute(stmt).scalar_one_or_none()
    if row is None and not skip_locked:
        raise NotFound(f"{what or model.__tablename__} not found")
    return row


def normalize_page(page, limit) -> tuple[int, int]:
    try:
        page = int(page) if page is not None else DEFAULT_PAGE
    except (TypeError, ValueError):
        page = DEFAULT_PAGE
    try:
        limit = int(limit) if limit is not None else DEFAULT_LIMIT
    except (TypeError, ValueError):
        limit = DEFAULT_LIMIT
    if page < 1:
        page = DEFAULT_PAGE
    if limit < 1:
        limit = DEFAULT_LIMIT
    return page, min(limit, MAX_LIMIT)


def paginate(stmt, page, limit) -> tuple[list, int, int, int]:
    """Run ``stmt`` for one page. Returns ``(rows, total, page, limit)``."""
    page, limit = normalize_page(page, limit)
    total = db.session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    rows = db.session.execute(stmt.offset((page - 1) * limit).limit(limit)).scalars().all()
    return rows, total, page, limit


def month_floor(month, year) -> datetime | None:
    """Lower bound for month/year filters; a year without a month starts in January."""
    if not year:
        return None
    try:
        year = int(year)
        month = int(month) if month else 1
    except (TypeError, ValueError):
        raise BadRequest("month and year must be integers") from None
    if not MINYEAR <= year <= MAXYEAR:
        raise BadRequest(f"year must be between {MINYEAR} and {MAXYEAR}")
    if not 1 <= month <= 12:
        month = 1
    return datetime(year, month, 1)


def range_overlaps(start_col, end_col, start: datetime, end: datetime):
    """Closed-interval intersection: ``start_col <= end AND end_col >= start``."""
    return and_(start_col <= end, end_col >= start)


def no_leaveday_in(staff_type: str, staff_id_col, start: datetime, end: datetime):
    return ~exists().where(
        Leaveday.staff_type == staff_type,
        Leaveday.staff_id == staff_id_col,
        Leaveday.day >= start.date(),
        Leaveday.day <= end.date(),
    )


def order_by_rating(rating_col, id_col):
    return (rating_col.asc(), id_col.asc())
