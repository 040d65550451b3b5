from __future__ import annotations

import logging

from sqlalchemy import select

from ..errors import BadRequest, Forbidden, NotFound, Unprocessable
from ..extensions import db
from ..models.pet import PET_SEXES, Pet
from ..models.user import Owner, User
from ..repository import find_or_lock, paginate, transaction

logger = logging.getLogger(__name__)

PET_FIELDS = ("kind", "breed", "name", "birth_date", "weight", "sex")


def _check_values(data: dict) -> None:
    if "weight" in data and (data["weight"] is None or data["weight"] <= 0):
        raise Unprocessable("weight must be greater than 0")
    if "sex" in data and data["sex"] not in PET_SEXES:
        raise Unprocessable(f"sex must be one of: {', '.join(PET_SEXES)}")
    if "kind" in data and not (data["kind"] or "").strip():
        raise Unprocessable("kind: This field is required.")
    if "birth_date" in data and data["birth_date"] is None:
        raise Unprocessable("birth_date: This field is required.")


def create_pet(requester: User, data: dict, owner_id: str | None = None) -> Pet:
    if requester.role == "owner":
        owner_id = requester.id
    elif requester.role == "admin":
        if not owner_id:
            raise BadRequest("owner_id is required for admin")
    else:
        raise Forbidden()
    data = {k: v for k, v in data.items() if k in PET_FIELDS}
    data.setdefault("sex", "unknown")
    _check_values(data)

    with transaction():
        if db.session.get(Owner, owner_id) is None:
            raise NotFound("owner not found")
        pet = Pet(
            owner_id=owner_id,
            kind=data["kind"].strip(),
            breed=(data.get("breed") or "").strip() or None,
            name=(data.get("name") or "").strip() or None,
            birth_date=data["birth_date"],
            weight=data["weight"],
            sex=data["sex"] or "unknown",
        )
        db.session.add(pet)
    logger.info("pet %s added for owner %s", pet.id, owner_id)
    return pet


def list_pets(requester: User, own: bool = False, page=None, limit=None):
    stmt = select(Pet)
    if own or requester.role != "admin":
        if requester.role != "owner":
            raise Forbidden()
        stmt = stmt.where(Pet.owner_id == requester.id)
    stmt = stmt.order_by(Pet.created_at.asc(), Pet.id.asc())
    return paginate(stmt, page, limit)


def _owned_pet(requester: User, pet_id: str) -> Pet:
    pet = find_or_lock(Pet, pet_id, "pet")
    if requester.role == "admin":
        return pet
    if requester.role != "owner" or pet.owner_id != requester.id:
        raise Forbidden("you do not own this pet")
    return pet


def update_pet(requester: User, pet_id: str, patch: dict) -> Pet:
    extra = sorted(set(patch) - set(PET_FIELDS))
    if extra:
        raise Forbidden(f"cannot change: {', '.join(extra)}")
    if not patch:
        raise BadRequest("no fields to update")
    _check_values(patch)

    with transaction():
        pet = _owned_pet(requester, pet_id)
        for name, value in patch.items():
            if name in ("breed", "name"):
                value = (value or "").strip() or None
            elif name == "kind":
                value = value.strip()
            setattr(pet, name, value)
    return pet


def delete_pet(requester: User, pet_id: str) -> dict:
    with transaction():
        pet = _owned_pet(requester, pet_id)
        snapshot = pet.to_dict()
        db.session.delete(pet)
    logger.info("pet %s deleted by %s", pet_id, requester.id)
    return snapshot
