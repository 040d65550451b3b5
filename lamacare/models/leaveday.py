from .. import clock
from ..extensions import db
from . import new_id


class Leaveday(db.Model):
    __tablename__ = "leavedays"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    staff_type = db.Column(db.String(20), nullable=False)
    staff_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day = db.Column(db.Date, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("staff_type", "staff_id", "day", name="uq_leaveday_staff_day"),
        db.CheckConstraint("staff_type IN ('caretaker', 'doctor')", name="ck_leaveday_staff_type"),
    )

    def to_dict(self) -> dict:
        return {
            "leaveday_id": self.id,
            "staff_type": self.staff_type,
            "staff_id": self.staff_id,
            "day": clock.isoformat(self.day),
        }
