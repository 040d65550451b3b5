from lamacare.extensions import db
from lamacare.models.pet import Pet

PET = {"kind": "cat", "breed": "Street Queen", "name": "Roshlyo", "birth_date": "2018-04-01", "weight": 4.2, "sex": "female"}


def test_owner_creates_and_lists_own_pets(client, owner, make_user):
    rv = client.post("/api/v1/pets", json=PET, headers=owner.headers)
    assert rv.status_code == 201
    data = rv.get_json()["data"]
    assert (data["owner_id"], data["name"], data["weight"]) == (owner.id, "Roshlyo", 4.2)

    other = make_user("owner", "dave@x.com")
    client.post("/api/v1/pets", json=dict(PET, name="Rex"), headers=other.headers)

    body = client.get("/api/v1/pets/owner", headers=owner.headers).get_json()["data"]
    assert [p["name"] for p in body["pets"]] == ["Roshlyo"]


def test_pet_validation(client, owner, caretaker):
    assert client.post("/api/v1/pets", json=dict(PET, weight=0), headers=owner.headers).status_code == 422
    assert client.post("/api/v1/pets", json=dict(PET, sex="robot"), headers=owner.headers).status_code == 422
    rv = client.post("/api/v1/pets", json={k: v for k, v in PET.items() if k != "kind"}, headers=owner.headers)
    assert rv.status_code == 422
    assert rv.get_json()["message"].startswith("kind:")
    assert client.post("/api/v1/pets", json=PET, headers=caretaker.headers).status_code == 403


def test_admin_creates_for_owner_and_lists_all(client, owner, admin):
    assert client.post("/api/v1/pets", json=PET, headers=admin.headers).status_code == 400
    rv = client.post("/api/v1/pets", json=dict(PET, owner_id=owner.id), headers=admin.headers)
    assert rv.status_code == 201
    assert rv.get_json()["data"]["owner_id"] == owner.id

    body = client.get("/api/v1/pets", headers=admin.headers).get_json()["data"]
    assert body["amount"] == 1
    assert client.get("/api/v1/pets", headers=owner.headers).status_code == 403


def test_update_and_delete_pet_permissions(client, app, owner, admin, make_user):
    pet_id = client.post("/api/v1/pets", json=PET, headers=owner.headers).get_json()["data"]["pet_id"]
    stranger = make_user("owner", "mallory@x.com")

    assert client.patch(f"/api/v1/pets/{pet_id}", json={"name": "X"}, headers=stranger.headers).status_code == 403
    rv = client.patch(f"/api/v1/pets/{pet_id}", json={"weight": 5.5}, headers=owner.headers)
    assert rv.status_code == 200
    assert rv.get_json()["data"]["weight"] == 5.5
    assert rv.get_json()["data"]["name"] == "Roshlyo"

    assert client.delete(f"/api/v1/pets/{pet_id}", headers=stranger.headers).status_code == 403
    assert client.delete(f"/api/v1/pets/{pet_id}", headers=admin.headers).status_code == 200
    with app.app_context():
        assert db.session.get(Pet, pet_id) is None
    assert client.delete(f"/api/v1/pets/{pet_id}", headers=owner.headers).status_code == 404
