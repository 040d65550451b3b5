"""WTForms plumbing for JSON request bodies.

``FlaskForm`` reads ``request.get_json()`` on its own; these helpers add the field types the
API speaks (RFC 3339 instants, ``YYYY-MM-DD`` days, ``HH:MM`` times) and the error policy.
"""
from datetime import date, datetime, time

from flask import request
from flask_wtf import FlaskForm
from wtforms import Field
from wtforms.validators import StopValidation

from . import clock
from .errors import BadRequest, Unprocessable


class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    def supplied(self) -> dict:
        """Data for the fields the client actually sent, for PATCH-style updates."""
        body = json_body()
        return {name: field.data for name, field in self._fields.items() if name in body}


class _ParsedField(Field):
    message = "Not a valid value."

    def parse(self, raw):
        raise NotImplementedError

    def process_formdata(self, valuelist):
        if not valuelist or valuelist[0] in (None, ""):
            self.data = None
            return
        try:
            self.data = self.parse(valuelist[0])
        except (TypeError, ValueError):
            self.data = None
            raise ValueError(self.gettext(self.message))

    def _value(self):
        return clock.isoformat(self.data) if self.data is not None else ""


class RFC3339Field(_ParsedField):
    message = "Not a valid RFC 3339 datetime."

    def parse(self, raw):
        return clock.parse_rfc3339(str(raw))


class DayField(_ParsedField):
    """Accepts ``YYYY-MM-DD`` or a full RFC 3339 timestamp."""

    message = "Not a valid date, expected YYYY-MM-DD."

    def parse(self, raw):
        raw = str(raw)
        if len(raw) == 10:
            return date.fromisoformat(raw)
        return clock.parse_rfc3339(raw).date()


class TimeOfDayField(_ParsedField):
    message = "Not a valid time, expected HH:MM or HH:MM:SS."

    def parse(self, raw):
        raw = str(raw)
        if "T" in raw:
            return clock.parse_rfc3339(raw).time()
        return time.fromisoformat(raw)


class Present:
    """Like ``InputRequired`` but lets falsy JSON values such as ``0`` through."""

    def __init__(self, message=None):
        self.message = message
        self.field_flags = {"required": True}

    def __call__(self, form, field):
        if not field.raw_data or field.raw_data[0] is None or field.raw_data[0] == "":
            field.errors[:] = []
            raise StopValidation(self.message or field.gettext("This field is required."))


def json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BadRequest("invalid json body")
    return body


def validate_form(form_cls, **kwargs):
    """Build ``form_cls`` from the JSON body and return it validated, else raise 422."""
    json_body()
    form = form_cls(**kwargs)
    if not form.validate():
        name, messages = next(iter(form.errors.items()))
        raise Unprocessable(f"{name}: {messages[0]}")
    return form


def parse_day(raw: str) -> date:
    """Path/query ``YYYY-MM-DD``; a wrong format is a 400."""
    try:
        return date.fromisoformat(raw)
    except (TypeError, ValueError):
        raise BadRequest("invalid date or date format, expected YYYY-MM-DD") from None


def parse_instant(raw: str, name: str) -> datetime:
    if not raw:
        raise BadRequest(f"{name} is required")
    try:
        if len(raw) == 10:
            return datetime.combine(date.fromisoformat(raw), time.min)
        return clock.parse_rfc3339(raw)
    except ValueError:
        raise BadRequest(f"{name} must be YYYY-MM-DD or RFC 3339") from None
