from __future__ import annotations

import time
from datetime import date, timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from . import clock
from .auth.service import create_user, find_by_email
from .bookings.lifecycle import advance
from .extensions import db
from .models.pet import Pet
from .payments.service import purge_consumed_events
from .repository import transaction


def _db_uri() -> str:
    return current_app.config.get("SQLALCHEMY_DATABASE_URI", "")


@click.command("init-db")
@with_appcontext
def init_db_cmd():
    click.echo(f"Creating tables on DB: {_db_uri()}")
    db.create_all()
    click.echo("Tables created.")


@click.command("reset-db")
@with_appcontext
@click.option("--force", is_flag=True, help="Drop + create (irreversible).")
def reset_db_cmd(force: bool):
    if not force:
        click.echo("Add --force to confirm dropping all tables.")
        return
    click.echo(f"Dropping & creating tables on DB: {_db_uri()}")
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@click.command("advance-services")
@with_appcontext
@click.option("--loop", is_flag=True, help="Keep running every --interval seconds.")
@click.option("--interval", type=int, default=None, help="Seconds between ticks.")
def advance_services_cmd(loop: bool, interval: int | None):
    """Start paid bookings that are due and finish the ones that are over."""
    interval = interval or current_app.config.get("ADVANCE_INTERVAL_SECONDS", 60)
    while True:
        counts = advance(clock.utcnow())
        click.echo(
            f"started={counts['ongoing']} finished={counts['finish']} skipped={counts['skipped']}"
        )
        if not loop:
            return
        time.sleep(interval)


@click.command("purge-webhook-events")
@with_appcontext
def purge_webhook_events_cmd():
    removed = purge_consumed_events()
    click.echo(f"Removed {removed} consumed webhook events.")


DEMO_USERS = [
    ("admin", "admin@lama.app", "Demo Admin", {}),
    ("owner", "owner@lama.app", "Demo Owner", {}),
    (
        "caretaker",
        "caretaker@lama.app",
        "Demo Caretaker",
        {"specialization": "dogs and cats"},
    ),
    ("doctor", "doctor@lama.app", "Demo Doctor", {"license_number": "VET-0001"}),
]


@click.command("seed-demo")
@with_appcontext
@click.option("--password", default="demo-pass", show_default=True)
def seed_demo_cmd(password: str):
    users = {}
    for role, email, name, extra in DEMO_USERS:
        user = find_by_email(email, role)
        if user is None:
            user = create_user(
                role,
                {
                    "email": email,
                    "password": password,
                    "name": name,
                    "birth_date": date(1990, 1, 1),
                    "telephone_number": "0800000000",
                    "address": "1 Demo Road",
                    **extra,
                },
            )
        users[role] = user

    owner = users["owner"]
    if not db.session.query(Pet).filter_by(owner_id=owner.id).first():
        with transaction():
            db.session.add(
                Pet(
                    owner_id=owner.id,
                    kind="dog",
                    breed="Mix",
                    name="Maca",
                    birth_date=clock.today() - timedelta(days=3 * 365),
                    weight=12.5,
                    sex="female",
                )
            )

    click.echo(
        "Seed done. Users: "
        + ", ".join(email for _, email, _, _ in DEMO_USERS)
        + f" (password: {password})"
    )
