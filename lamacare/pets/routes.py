from flask import Blueprint, request
from flask_login import current_user, login_required
from wtforms import DecimalField, StringField
from wtforms.validators import AnyOf, DataRequired, Length, NumberRange, Optional

from ..auth.decorators import roles_required
from ..forms import ApiForm, DayField, Present, validate_form
from ..models.pet import PET_SEXES
from ..responses import page_payload, respond
from . import service

pets_bp = Blueprint("pets", __name__)


class PetForm(ApiForm):
    owner_id = StringField("Owner", validators=[Optional()])
    kind = StringField("Kind", validators=[DataRequired(), Length(max=50)])
    breed = StringField("Breed", validators=[Optional(), Length(max=120)])
    name = StringField("Name", validators=[Optional(), Length(max=120)])
    birth_date = DayField("Birth date", validators=[Present()])
    weight = DecimalField(
        "Weight", places=2, validators=[Present(), NumberRange(min=0.01)]
    )
    sex = StringField("Sex", validators=[Optional(), AnyOf(PET_SEXES)])


class PetUpdateForm(ApiForm):
    kind = StringField("Kind", validators=[Optional(), Length(max=50)])
    breed = StringField("Breed", validators=[Optional(), Length(max=120)])
    name = StringField("Name", validators=[Optional(), Length(max=120)])
    birth_date = DayField("Birth date", validators=[Optional()])
    weight = DecimalField("Weight", places=2, validators=[Optional(), NumberRange(min=0.01)])
    sex = StringField("Sex", validators=[Optional(), AnyOf(PET_SEXES)])


@pets_bp.post("/pets")
@login_required
@roles_required("owner", "admin")
def create_pet():
    form = validate_form(PetForm)
    data = form.supplied()
    pet = service.create_pet(current_user, data, owner_id=data.pop("owner_id", None))
    return respond(pet.to_dict(), message="Pet created", status=201)


def _list(own: bool):
    rows, total, page, limit = service.list_pets(
        current_user,
        own=own,
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
    )
    return respond(page_payload("pets", rows, total, page, limit))


@pets_bp.get("/pets")
@login_required
@roles_required("admin")
def list_all_pets():
    return _list(own=False)


@pets_bp.get("/pets/owner")
@login_required
@roles_required("owner")
def list_my_pets():
    return _list(own=True)


@pets_bp.patch("/pets/<pet_id>")
@login_required
@roles_required("owner", "admin")
def update_pet(pet_id):
    form = validate_form(PetUpdateForm)
    pet = service.update_pet(current_user, pet_id, form.supplied())
    return respond(pet.to_dict(), message="Pet updated")


@pets_bp.delete("/pets/<pet_id>")
@login_required
@roles_required("owner", "admin")
def delete_pet(pet_id):
    return respond(service.delete_pet(current_user, pet_id), message="Pet deleted")
