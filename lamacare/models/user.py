from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from .. import clock
from ..extensions import db
from . import new_id

ROLES = ("owner", "caretaker", "doctor", "admin")
STAFF_ROLES = ("caretaker", "doctor")


def _num(value):
    return float(value) if value is not None else None


def _time(value):
    return value.strftime("%H:%M:%S") if value is not None else None


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    created_at = db.Column(db.DateTime, nullable=False, default=clock.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=clock.utcnow, onupdate=clock.utcnow
    )
    email = db.Column(db.String(255), nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    birth_date = db.Column(db.Date, nullable=False)
    telephone = db.Column(db.String(20), nullable=False)
    address = db.Column(db.Text, nullable=False)
    profile_image_url = db.Column(db.String(512), nullable=True)

    # outstanding password-reset nonce; cleared once consumed
    reset_nonce = db.Column(db.String(64), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("email", "role", name="uq_users_email_role"),
        db.CheckConstraint(
            "role IN ('owner', 'caretaker', 'doctor', 'admin')", name="ck_users_role"
        ),
    )

    owner = db.relationship(
        "Owner", uselist=False, back_populates="user", cascade="all, delete-orphan"
    )
    caretaker = db.relationship(
        "Caretaker", uselist=False, back_populates="user", cascade="all, delete-orphan"
    )
    doctor = db.relationship(
        "Doctor", uselist=False, back_populates="user", cascade="all, delete-orphan"
    )
    admin = db.relationship(
        "Admin", uselist=False, back_populates="user", cascade="all, delete-orphan"
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def role_row(self):
        return getattr(self, self.role, None)

    def to_dict(self) -> dict:
        data = {
            "user_id": self.id,
            "created_at": clock.isoformat(self.created_at),
            "updated_at": clock.isoformat(self.updated_at),
            "email": self.email,
            "role": self.role,
            "name": self.name,
            "birth_date": clock.isoformat(self.birth_date),
            "telephone_number": self.telephone,
            "address": self.address,
            "profile_image": self.profile_image_url,
        }
        row = self.role_row
        if row is not None:
            data.update(row.to_dict())
        return data


class Owner(db.Model):
    __tablename__ = "owners"

    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    total_spending = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint("total_spending >= 0", name="ck_owner_spending_non_negative"),
    )

    user = db.relationship("User", back_populates="owner")

    def to_dict(self) -> dict:
        return {"total_spending": _num(self.total_spending)}


class Caretaker(db.Model):
    __tablename__ = "caretakers"

    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    specialization = db.Column(db.String(255), nullable=True)
    start_work_time = db.Column(db.Time, nullable=True)
    end_work_time = db.Column(db.Time, nullable=True)
    rating = db.Column(db.Numeric(2, 1), nullable=False, default=0)
    # bumped under row lock whenever the caretaker is bound to a booking
    booking_version = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint("rating >= 0 AND rating <= 5", name="ck_caretaker_rating"),
    )

    user = db.relationship("User", back_populates="caretaker")

    def to_dict(self) -> dict:
        return {
            "specialization": self.specialization,
            "start_work_time": _time(self.start_work_time),
            "end_work_time": _time(self.end_work_time),
            "rating": _num(self.rating),
        }


class Doctor(db.Model):
    __tablename__ = "doctors"

    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    license_number = db.Column(db.String(64), nullable=False, unique=True)
    start_date = db.Column(db.Date, nullable=True)
    start_work_time = db.Column(db.Time, nullable=True)
    end_work_time = db.Column(db.Time, nullable=True)
    booking_version = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint("license_number <> ''", name="ck_doctor_license_not_empty"),
    )

    user = db.relationship("User", back_populates="doctor")

    def to_dict(self) -> dict:
        return {
            "license_number": self.license_number,
            "start_date": clock.isoformat(self.start_date),
            "start_work_time": _time(self.start_work_time),
            "end_work_time": _time(self.end_work_time),
        }


class Admin(db.Model):
    __tablename__ = "admins"

    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )

    user = db.relationship("User", back_populates="admin")

    def to_dict(self) -> dict:
        return {}


ROLE_MODELS = {"owner": Owner, "caretaker": Caretaker, "doctor": Doctor, "admin": Admin}
