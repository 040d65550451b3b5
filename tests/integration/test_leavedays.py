def test_staff_adds_lists_and_removes_leave(client, caretaker, doctor):
    assert client.post("/api/v1/leaveday/2025-06-10", headers=caretaker.headers).status_code == 201
    assert client.post("/api/v1/leaveday/2025-06-12", headers=caretaker.headers).status_code == 201
    assert client.post("/api/v1/leaveday/2025-06-10", headers=doctor.headers).status_code == 201

    days = [row["day"] for row in client.get("/api/v1/leaveday", headers=caretaker.headers).get_json()["data"]]
    assert days == ["2025-06-10", "2025-06-12"]

    assert client.delete("/api/v1/leaveday/2025-06-10", headers=caretaker.headers).status_code == 200
    days = [row["day"] for row in client.get("/api/v1/leaveday", headers=caretaker.headers).get_json()["data"]]
    assert days == ["2025-06-12"]
    assert client.delete("/api/v1/leaveday/2025-06-10", headers=caretaker.headers).status_code == 404


def test_duplicate_leave_day_conflicts(client, caretaker):
    client.post("/api/v1/leaveday/2025-06-10", headers=caretaker.headers)
    assert client.post("/api/v1/leaveday/2025-06-10", headers=caretaker.headers).status_code == 409


def test_leave_day_format_and_role(client, caretaker, owner):
    rv = client.post("/api/v1/leaveday/10-06-2025", headers=caretaker.headers)
    assert rv.status_code == 400
    assert client.post("/api/v1/leaveday/2025-06-10", headers=owner.headers).status_code == 403


def test_leave_day_refused_over_active_booking(client, owner, caretaker, book):
    service_id = book(owner, "2025-06-10T22:00:00Z", "2025-06-11T02:00:00Z").get_json()["data"]["service_id"]
    assert client.post("/api/v1/leaveday/2025-06-11", headers=caretaker.headers).status_code == 409
    assert client.post("/api/v1/leaveday/2025-06-10", headers=caretaker.headers).status_code == 409

    client.delete(f"/api/v1/services/{service_id}", headers=owner.headers)
    assert client.post("/api/v1/leaveday/2025-06-11", headers=caretaker.headers).status_code == 201
