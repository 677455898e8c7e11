from conftest import auth_headers
from matching import assign_volunteer, complete_assignment, confirm_match, find_matches
from models import Assignment, Resource

API = "/api/v1"


def test_donor_registers_resource(client, make_user):
    donor = make_user("donor")
    payload = {"resource_type": "tents", "quantity": 5, "latitude": 10.0, "longitude": 20.0}

    r = client.post(f"{API}/resources", json=payload, headers=auth_headers(donor))

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["donor_id"] == donor.id
    assert data["status"] == "available"


def test_requester_cannot_register_resource(client, make_user):
    requester = make_user("aid_requester")
    payload = {"resource_type": "tents", "quantity": 5, "latitude": 10.0, "longitude": 20.0}

    r = client.post(f"{API}/resources", json=payload, headers=auth_headers(requester))

    assert r.status_code == 403


def test_my_resources(client, make_user, make_resource):
    donor = make_user("donor")
    make_resource(donor, resource_type="food")
    make_resource(make_user("donor"), resource_type="water")

    body = client.get(f"{API}/resources/my-resources", headers=auth_headers(donor)).json()

    assert [row["resource_type"] for row in body["data"]] == ["food"]


def test_listing_carries_donor_details(client, make_user, make_resource):
    donor = make_user("donor", email="giver@example.com")
    make_resource(donor, resource_type="Food")

    body = client.get(f"{API}/resources", params={"resource_type": "food"}).json()

    assert body["results"] == 1
    assert body["data"][0]["email"] == "giver@example.com"


def test_quantity_zero_marks_allocated(client, make_user, make_resource):
    donor = make_user("donor")
    resource = make_resource(donor, quantity=3)

    r = client.patch(f"{API}/resources/{resource.id}", json={"quantity": 0}, headers=auth_headers(donor))

    assert r.status_code == 200
    assert r.json()["data"]["status"] == "allocated"


def test_other_donor_cannot_edit(client, make_user, make_resource):
    resource = make_resource(make_user("donor"))
    other = make_user("donor")

    r = client.patch(f"{API}/resources/{resource.id}", json={"quantity": 1}, headers=auth_headers(other))

    assert r.status_code == 403


def test_delete_resource(client, session, make_user, make_resource):
    donor = make_user("donor")
    resource_id = make_resource(donor).id

    r = client.delete(f"{API}/resources/{resource_id}", headers=auth_headers(donor))

    assert r.status_code == 204
    session.expire_all()
    assert session.get(Resource, resource_id) is None


def test_cannot_delete_resource_with_open_assignment(client, session, make_user, make_request, make_resource):
    donor = make_user("donor")
    resource = make_resource(donor, quantity=5)
    req = make_request(make_user("aid_requester"), quantity=2)
    assign_volunteer(session, req.id, make_user("volunteer").id, resource_id=resource.id)

    r = client.delete(f"{API}/resources/{resource.id}", headers=auth_headers(donor))

    assert r.status_code == 400
    assert "open assignment" in r.json()["message"]


def test_delete_resource_keeps_fulfilled_history(client, session, make_user, make_request, make_resource):
    donor = make_user("donor")
    volunteer = make_user("volunteer")
    resource_id = make_resource(donor, quantity=5).id
    make_request(make_user("aid_requester"), quantity=2)
    match = find_matches(session, radius_km=50)[0]
    assignment = confirm_match(session, match.id, volunteer.id)
    complete_assignment(session, assignment, volunteer)
    assignment_id = assignment.id

    r = client.delete(f"{API}/resources/{resource_id}", headers=auth_headers(donor))

    assert r.status_code == 204
    session.expire_all()
    assert session.get(Resource, resource_id) is None
    kept = session.get(Assignment, assignment_id)
    assert kept is not None
    assert kept.status == "fulfilled"
    assert kept.resource_id is None
    assert kept.match_id is None
