from datetime import datetime

from lamacare.models.payment import Payment
from lamacare.models.service import Service


def test_leave_day_blocks_booking(client, owner, caretaker, book, frozen_now):
    frozen_now(datetime(2025, 6, 1))
    rv = client.post("/api/v1/leaveday/2025-06-10", headers=caretaker.headers)
    assert rv.status_code == 201

    rv = client.get(
        "/api/v1/services/staff",
        query_string={"serviceType": "cservice", "start": "2025-06-10T09:00:00Z", "end": "2025-06-10T17:00:00Z"},
        headers=owner.headers,
    )
    assert rv.status_code == 200
    assert rv.get_json()["data"] == []

    rv = book(owner, "2025-06-10T09:00:00Z", "2025-06-10T17:00:00Z")
    assert rv.status_code == 409


def test_same_caretaker_cannot_be_double_booked(client, owner, caretaker, book, make_user):
    rv = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T17:00:00Z", staff_id=caretaker.id)
    assert rv.status_code == 201
    assert rv.get_json()["data"]["cservice"]["staff_id"] == caretaker.id

    rv = book(owner, "2025-06-11T12:00:00Z", "2025-06-11T18:00:00Z", staff_id=caretaker.id)
    assert rv.status_code == 409

    # touching windows overlap under closed intervals
    rv = book(owner, "2025-06-11T17:00:00Z", "2025-06-11T19:00:00Z", staff_id=caretaker.id)
    assert rv.status_code == 409

    rv = client.get(
        "/api/v1/services/staff",
        query_string={"start": "2025-06-11T10:00:00Z", "end": "2025-06-11T11:00:00Z"},
        headers=owner.headers,
    )
    assert rv.get_json()["data"] == []


def test_auto_assignment_prefers_lowest_rating(client, owner, make_user, book, app):
    from lamacare.extensions import db
    from lamacare.models.user import Caretaker

    high = make_user("caretaker", "high@x.com")
    low = make_user("caretaker", "low@x.com")
    with app.app_context():
        db.session.get(Caretaker, high.id).rating = 4.5
        db.session.get(Caretaker, low.id).rating = 2.0
        db.session.commit()

    rv = client.get(
        "/api/v1/services/staff",
        query_string={"start": "2025-07-01", "end": "2025-07-01"},
        headers=owner.headers,
    )
    ids = [row["user_id"] for row in rv.get_json()["data"]]
    assert ids == [low.id, high.id]

    rv = book(owner, "2025-07-01T09:00:00Z", "2025-07-01T10:00:00Z")
    assert rv.status_code == 201
    assert rv.get_json()["data"]["cservice"]["staff_id"] == low.id

    rv = book(owner, "2025-07-01T09:30:00Z", "2025-07-01T10:30:00Z")
    assert rv.get_json()["data"]["cservice"]["staff_id"] == high.id


def test_availability_at_a_single_instant(client, owner, caretaker, book):
    book(owner, "2025-06-11T09:00:00Z", "2025-06-11T17:00:00Z", staff_id=caretaker.id)
    free_at = {"start": "2025-06-11T18:00:00Z", "end": "2025-06-11T18:00:00Z"}
    busy_at = {"start": "2025-06-11T17:00:00Z", "end": "2025-06-11T17:00:00Z"}

    rv = client.get("/api/v1/services/staff", query_string=free_at, headers=owner.headers)
    assert [row["user_id"] for row in rv.get_json()["data"]] == [caretaker.id]
    rv = client.get("/api/v1/services/staff", query_string=busy_at, headers=owner.headers)
    assert rv.get_json()["data"] == []


def test_booking_validation(client, owner, caretaker, book, make_payment, admin):
    rv = book(owner, "2025-06-11T17:00:00Z", "2025-06-11T09:00:00Z")
    assert rv.status_code == 422

    rv = book(owner, "2025-06-11T09:00:00Z", "not-a-date")
    assert rv.status_code == 422
    assert rv.get_json()["message"].startswith("reserve_date_end:")

    rv = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z", service_type="grooming")
    assert rv.status_code == 422

    rv = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z", staff_id="missing")
    assert rv.status_code == 404

    # payment belongs to someone else
    other_payment = make_payment(admin.id)
    rv = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z", payment_id=other_payment)
    assert rv.status_code == 403


def test_payment_can_back_only_one_booking(owner, caretaker, make_user, make_payment, book):
    payment_id = make_payment(owner.id)
    assert book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z", payment_id=payment_id).status_code == 201
    rv = book(owner, "2025-06-12T09:00:00Z", "2025-06-12T10:00:00Z", payment_id=payment_id)
    assert rv.status_code == 409


def test_medical_booking_needs_doctor_free_of_leave(client, owner, doctor, book):
    rv = book(
        owner,
        "2025-06-12T09:00:00Z",
        "2025-06-12T10:00:00Z",
        service_type="mservice",
        staff_id=doctor.id,
        disease="itchy ears",
    )
    assert rv.status_code == 201
    assert rv.get_json()["data"]["mservice"] == {"staff_id": doctor.id, "disease": "itchy ears"}

    rv = book(owner, "2025-06-13T09:00:00Z", "2025-06-13T10:00:00Z", service_type="mservice", staff_id=doctor.id)
    assert rv.status_code == 422

    client.post("/api/v1/leaveday/2025-06-14", headers=doctor.headers)
    rv = book(
        owner,
        "2025-06-14T09:00:00Z",
        "2025-06-14T10:00:00Z",
        service_type="mservice",
        staff_id=doctor.id,
        disease="limp",
    )
    assert rv.status_code == 409


def test_delete_service_owner_of_other_forbidden_admin_succeeds(
    client, owner, admin, caretaker, make_user, book, fetch
):
    stranger = make_user("owner", "mallory@x.com")
    service_id = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z").get_json()["data"]["service_id"]
    payment_id = fetch(Service, service_id)["payment_id"]

    rv = client.delete(f"/api/v1/services/{service_id}", headers=stranger.headers)
    assert rv.status_code == 403

    rv = client.delete(f"/api/v1/services/{service_id}", headers=admin.headers)
    assert rv.status_code == 200
    assert fetch(Service, service_id) is None
    assert fetch(Payment, payment_id) is not None


def test_owner_delete_cancels_waiting_booking(client, owner, caretaker, book, fetch):
    service_id = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z").get_json()["data"]["service_id"]
    rv = client.delete(f"/api/v1/services/{service_id}", headers=owner.headers)
    assert rv.status_code == 200
    assert fetch(Service, service_id)["status"] == "cancelled"

    # the caretaker is free again
    assert book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z", staff_id=caretaker.id).status_code == 201


def test_admin_cancel_refunds_paid_booking(client, owner, admin, caretaker, book, make_payment, fetch):
    payment_id = make_payment(owner.id, status="paid", pay_date=datetime(2025, 6, 1, 12))
    service_id = book(
        owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z", payment_id=payment_id
    ).get_json()["data"]["service_id"]
    assert client.get("/api/v1/user/", headers=owner.headers).get_json()["data"]["total_spending"] == 500

    rv = client.patch(f"/api/v1/services/{service_id}", json={"status": "cancelled"}, headers=admin.headers)
    assert rv.status_code == 200
    payment = fetch(Payment, payment_id)
    assert payment["status"] == "refunded"
    assert payment["pay_date"] is None
    assert client.get("/api/v1/user/", headers=owner.headers).get_json()["data"]["total_spending"] == 0


def test_owner_reschedule_rebinds_and_checks_conflicts(client, owner, caretaker, book):
    first = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z").get_json()["data"]["service_id"]
    book(owner, "2025-06-12T09:00:00Z", "2025-06-12T10:00:00Z")

    rv = client.patch(
        f"/api/v1/services/{first}",
        json={"reserve_date_start": "2025-06-11T09:30:00Z", "reserve_date_end": "2025-06-11T11:00:00Z"},
        headers=owner.headers,
    )
    assert rv.status_code == 200
    assert rv.get_json()["data"]["reserve_date_end"] == "2025-06-11T11:00:00Z"

    rv = client.patch(
        f"/api/v1/services/{first}",
        json={"reserve_date_start": "2025-06-12T09:30:00Z", "reserve_date_end": "2025-06-12T11:00:00Z"},
        headers=owner.headers,
    )
    assert rv.status_code == 409

    rv = client.patch(f"/api/v1/services/{first}", json={"price": 1}, headers=owner.headers)
    assert rv.status_code == 403


def test_staff_status_update_follows_state_machine(
    client, owner, caretaker, admin, book, make_payment, make_user, fetch
):
    unpaid = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z").get_json()["data"]["service_id"]
    rv = client.patch(f"/api/v1/services/{unpaid}/status/ongoing", headers=caretaker.headers)
    assert rv.status_code == 409

    payment_id = make_payment(owner.id, status="paid", pay_date=datetime(2025, 6, 1))
    paid = book(
        owner, "2025-06-12T09:00:00Z", "2025-06-12T10:00:00Z", payment_id=payment_id
    ).get_json()["data"]["service_id"]

    other = make_user("caretaker", "carol@x.com")
    assert client.patch(f"/api/v1/services/{paid}/status/ongoing", headers=other.headers).status_code == 403
    assert client.patch(f"/api/v1/services/{paid}/status/ongoing", headers=owner.headers).status_code == 403

    assert client.patch(f"/api/v1/services/{paid}/status/ongoing", headers=caretaker.headers).status_code == 200
    assert client.patch(f"/api/v1/services/{paid}/status/wait", headers=caretaker.headers).status_code == 409
    assert client.patch(f"/api/v1/services/{paid}/status/finish", headers=caretaker.headers).status_code == 200
    assert client.patch(f"/api/v1/services/{paid}/status/bogus", headers=admin.headers).status_code == 422
    assert fetch(Service, paid)["status"] == "finish"


def test_list_services_scoped_filtered_and_paginated(client, owner, caretaker, admin, make_user, book):
    other_owner = make_user("owner", "dave@x.com")
    for day in (10, 11, 12):
        book(owner, f"2025-06-{day}T09:00:00Z", f"2025-06-{day}T10:00:00Z")
    book(owner, "2025-05-02T09:00:00Z", "2025-05-02T10:00:00Z")
    book(other_owner, "2025-06-20T09:00:00Z", "2025-06-20T10:00:00Z")

    body = client.get("/api/v1/services", headers=owner.headers).get_json()["data"]
    assert body["amount"] == 4
    assert body["page"] == 1 and body["limit"] == 5

    body = client.get(
        "/api/v1/services", query_string={"month": 6, "year": 2025, "limit": 2, "page": 2}, headers=owner.headers
    ).get_json()["data"]
    assert body["amount"] == 3
    assert [s["reserve_date_start"] for s in body["services"]] == ["2025-06-12T09:00:00Z"]

    body = client.get("/api/v1/services", query_string={"page": 0, "limit": 0}, headers=admin.headers).get_json()["data"]
    assert (body["page"], body["limit"], body["amount"]) == (1, 5, 5)

    body = client.get("/api/v1/services", headers=caretaker.headers).get_json()["data"]
    assert body["amount"] == 5

    rv = client.get("/api/v1/services", query_string={"status": "nope"}, headers=owner.headers)
    assert rv.status_code == 400
    body = client.get("/api/v1/services", query_string={"status": "all"}, headers=owner.headers).get_json()["data"]
    assert body["amount"] == 4


def test_get_service_visibility(client, owner, caretaker, make_user, book):
    service_id = book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z").get_json()["data"]["service_id"]
    assert client.get(f"/api/v1/services/{service_id}", headers=owner.headers).status_code == 200
    assert client.get(f"/api/v1/services/{service_id}", headers=caretaker.headers).status_code == 200

    stranger = make_user("caretaker", "erin@x.com")
    assert client.get(f"/api/v1/services/{service_id}", headers=stranger.headers).status_code == 403
    assert client.get("/api/v1/services/missing", headers=owner.headers).status_code == 404


def test_busy_time_lists_bookings_and_leave(client, owner, caretaker, book):
    book(owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z")
    client.post("/api/v1/leaveday/2025-06-13", headers=caretaker.headers)

    rv = client.get(
        f"/api/v1/services/staff/{caretaker.id}/time",
        query_string={"start": "2025-06-10", "end": "2025-06-15"},
        headers=owner.headers,
    )
    assert rv.status_code == 200
    data = rv.get_json()["data"]
    assert data["busy"] == [{"start": "2025-06-11T09:00:00Z", "end": "2025-06-11T10:00:00Z"}]
    assert data["leavedays"] == ["2025-06-13"]


def test_review_updates_caretaker_rating(client, owner, caretaker, admin, book, make_payment):
    ids = []
    for day, score in ((11, 4), (12, 5)):
        payment_id = make_payment(owner.id, status="paid", pay_date=datetime(2025, 6, 1))
        service_id = book(
            owner, f"2025-06-{day}T09:00:00Z", f"2025-06-{day}T10:00:00Z", payment_id=payment_id
        ).get_json()["data"]["service_id"]
        ids.append((service_id, score))

    first_id, _ = ids[0]
    rv = client.patch(f"/api/v1/services/review/{first_id}", json={"score": 4}, headers=owner.headers)
    assert rv.status_code == 409

    for service_id, score in ids:
        client.patch(f"/api/v1/services/{service_id}/status/ongoing", headers=caretaker.headers)
        client.patch(f"/api/v1/services/{service_id}/status/finish", headers=caretaker.headers)
        rv = client.patch(
            f"/api/v1/services/review/{service_id}",
            json={"score": score, "comment": "lovely" if score == 5 else ""},
            headers=owner.headers,
        )
        assert rv.status_code == 200

    rv = client.patch(f"/api/v1/services/review/{first_id}", json={"score": 9}, headers=owner.headers)
    assert rv.status_code == 422

    rv = client.get(f"/api/v1/services/staff/{caretaker.id}/score", headers=admin.headers)
    data = rv.get_json()["data"]
    assert data["score"] == 4.5
    assert [r["comment"] for r in data["reviews"]] == ["lovely"]

    me = client.get("/api/v1/user/", headers=caretaker.headers).get_json()["data"]
    assert me["rating"] == 4.5


def _spending(client, owner):
    return client.get("/api/v1/user/", headers=owner.headers).get_json()["data"]["total_spending"]


def test_relinking_payment_moves_owner_spending(client, owner, caretaker, book, make_payment):
    paid = make_payment(owner.id, status="paid", pay_date=datetime(2025, 6, 1))
    unpaid = make_payment(owner.id)
    service_id = book(
        owner, "2025-06-11T09:00:00Z", "2025-06-11T10:00:00Z", payment_id=paid
    ).get_json()["data"]["service_id"]
    assert _spending(client, owner) == 500

    rv = client.patch(f"/api/v1/services/{service_id}", json={"payment_id": unpaid}, headers=owner.headers)
    assert rv.status_code == 200
    assert _spending(client, owner) == 0

    rv = client.patch(f"/api/v1/services/{service_id}", json={"payment_id": paid}, headers=owner.headers)
    assert rv.status_code == 200
    assert _spending(client, owner) == 500


def test_booking_must_fit_window_reserved_on_payment(client, owner, caretaker, book, fetch):
    rv = client.post(
        "/api/v1/payments",
        json={"reserve_date_start": "2025-06-11T09:00:00Z", "reserve_date_end": "2025-06-11T17:00:00Z"},
        headers=owner.headers,
    )
    payment_id = rv.get_json()["data"]["payment_id"]

    assert book(owner, "2025-06-11T08:00:00Z", "2025-06-11T10:00:00Z", payment_id=payment_id).status_code == 409
    rv = book(owner, "2025-06-11T10:00:00Z", "2025-06-11T12:00:00Z", payment_id=payment_id)
    assert rv.status_code == 201
    service_id = rv.get_json()["data"]["service_id"]

    rv = client.patch(
        f"/api/v1/services/{service_id}",
        json={"reserve_date_end": "2025-06-11T18:00:00Z"},
        headers=owner.headers,
    )
    assert rv.status_code == 409
    assert fetch(Service, service_id)["reserve_date_end"] == "2025-06-11T12:00:00Z"
