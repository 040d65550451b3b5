from sqlalchemy import CheckConstraint

from .. import clock
from ..extensions import db
from . import new_id

PET_SEXES = ("male", "female", "unknown")


class Pet(db.Model):
    __tablename__ = "pets"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey("owners.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    kind = db.Column(db.String(50), nullable=False)
    breed = db.Column(db.String(120), nullable=True)
    name = db.Column(db.String(120), nullable=True)
    birth_date = db.Column(db.Date, nullable=False)
    weight = db.Column(db.Numeric(6, 2), nullable=False)
    sex = db.Column(db.String(10), nullable=False, default="unknown")

    created_at = db.Column(db.DateTime, nullable=False, default=clock.utcnow)

    __table_args__ = (
        CheckConstraint("weight > 0", name="ck_pet_weight_positive"),
        CheckConstraint("sex IN ('male', 'female', 'unknown')", name="ck_pet_sex"),
    )

    def to_dict(self) -> dict:
        return {
            "pet_id": self.id,
            "owner_id": self.owner_id,
            "kind": self.kind,
            "breed": self.breed,
            "name": self.name,
            "birth_date": clock.isoformat(self.birth_date),
            "weight": float(self.weight),
            "sex": self.sex,
        }
