from sqlalchemy import CheckConstraint

from .. import clock
from ..extensions import db
from . import new_id

SERVICE_STATUSES = ("wait", "ongoing", "finish", "cancelled")
ACTIVE_SERVICE_STATUSES = ("wait", "ongoing")

# status -> statuses reachable by an explicit update
SERVICE_TRANSITIONS = {
    "wait": {"ongoing", "cancelled"},
    "ongoing": {"finish"},
    "finish": set(),
    "cancelled": set(),
}


class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey("owners.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pet_id = db.Column(
        db.String(36),
        db.ForeignKey("pets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_id = db.Column(
        db.String(36),
        db.ForeignKey("payments.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    price = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="wait")

    # naive UTC
    reserve_date_start = db.Column(db.DateTime, nullable=False)
    reserve_date_end = db.Column(db.DateTime, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=clock.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=clock.utcnow, onupdate=clock.utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "reserve_date_end >= reserve_date_start", name="ck_service_end_not_before_start"
        ),
        CheckConstraint("price >= 0", name="ck_service_price_non_negative"),
        CheckConstraint(
            "status IN ('wait', 'ongoing', 'finish', 'cancelled')", name="ck_service_status"
        ),
        db.Index("ix_services_status_start", "status", "reserve_date_start"),
    )

    pet = db.relationship("Pet", backref=db.backref("services", passive_deletes=True))
    payment = db.relationship("Payment", back_populates="service")
    caretaker_service = db.relationship(
        "CaretakerService",
        uselist=False,
        back_populates="service",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    medical_service = db.relationship(
        "MedicalService",
        uselist=False,
        back_populates="service",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def staff_ids(self) -> set[str]:
        ids = set()
        if self.caretaker_service is not None:
            ids.add(self.caretaker_service.caretaker_id)
        if self.medical_service is not None:
            ids.add(self.medical_service.doctor_id)
        return ids

    def to_dict(self) -> dict:
        return {
            "service_id": self.id,
            "owner_id": self.owner_id,
            "pet_id": self.pet_id,
            "payment_id": self.payment_id,
            "price": self.price,
            "status": self.status,
            "reserve_date_start": clock.isoformat(self.reserve_date_start),
            "reserve_date_end": clock.isoformat(self.reserve_date_end),
            "cservice": self.caretaker_service.to_dict() if self.caretaker_service else None,
            "mservice": self.medical_service.to_dict() if self.medical_service else None,
        }


class CaretakerService(db.Model):
    __tablename__ = "caretaker_services"

    service_id = db.Column(
        db.String(36), db.ForeignKey("services.id", ondelete="CASCADE"), primary_key=True
    )
    caretaker_id = db.Column(
        db.String(36),
        db.ForeignKey("caretakers.user_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    score = db.Column(db.Integer, nullable=True)
    comment = db.Column(db.Text, nullable=True)

    __table_args__ = (
        CheckConstraint("score IS NULL OR (score >= 0 AND score <= 5)", name="ck_cservice_score"),
    )

    service = db.relationship("Service", back_populates="caretaker_service")

    def to_dict(self) -> dict:
        return {
            "staff_id": self.caretaker_id,
            "score": self.score,
            "comment": self.comment,
        }


class MedicalService(db.Model):
    __tablename__ = "medical_services"

    service_id = db.Column(
        db.String(36), db.ForeignKey("services.id", ondelete="CASCADE"), primary_key=True
    )
    doctor_id = db.Column(
        db.String(36),
        db.ForeignKey("doctors.user_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    disease = db.Column(db.Text, nullable=False)

    service = db.relationship("Service", back_populates="medical_service")

    def to_dict(self) -> dict:
        return {"staff_id": self.doctor_id, "disease": self.disease}
