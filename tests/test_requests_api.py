from sqlmodel import select

from conftest import auth_headers
from models import AidRequest, Match

API = "/api/v1"


def test_requester_creates_request(client, make_user):
    requester = make_user("aid_requester")
    payload = {"aid_type": "blankets", "quantity": 3, "urgency": "high", "latitude": 40.0, "longitude": -3.7}

    r = client.post(f"{API}/requests", json=payload, headers=auth_headers(requester))

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["status"] == "pending"
    assert data["requester_id"] == requester.id
    assert data["urgency"] == "high"


def test_donor_cannot_create_request(client, make_user):
    donor = make_user("donor")
    payload = {"aid_type": "food", "quantity": 1, "latitude": 0, "longitude": 0}

    r = client.post(f"{API}/requests", json=payload, headers=auth_headers(donor))

    assert r.status_code == 403
    assert r.json()["status"] == "fail"


def test_request_validation(client, make_user):
    requester = make_user("aid_requester")
    headers = auth_headers(requester)

    bad_urgency = {"aid_type": "food", "urgency": "extreme", "latitude": 0, "longitude": 0}
    assert client.post(f"{API}/requests", json=bad_urgency, headers=headers).status_code == 422

    bad_lat = {"aid_type": "food", "latitude": 91, "longitude": 0}
    r = client.post(f"{API}/requests", json=bad_lat, headers=headers)
    assert r.status_code == 422
    assert r.json()["message"].startswith("latitude")

    zero = {"aid_type": "food", "quantity": 0, "latitude": 0, "longitude": 0}
    assert client.post(f"{API}/requests", json=zero, headers=headers).status_code == 422


def test_my_requests_only_lists_own(client, make_user, make_request):
    mine = make_user("aid_requester")
    theirs = make_user("aid_requester")
    make_request(mine, aid_type="food")
    make_request(theirs, aid_type="water")

    r = client.get(f"{API}/requests/my-requests", headers=auth_headers(mine))

    body = r.json()
    assert body["results"] == 1
    assert body["data"][0]["aid_type"] == "food"


def test_public_listing_with_filters(client, make_user, make_request):
    alice = make_user("aid_requester", email="alice@example.com", first_name="Alice")
    bob = make_user("aid_requester", email="bob@example.com", first_name="Bob")
    make_request(alice, urgency="high")
    make_request(bob, urgency="low")

    everything = client.get(f"{API}/requests").json()
    assert everything["results"] == 2
    assert {row["email"] for row in everything["data"]} == {"alice@example.com", "bob@example.com"}

    high = client.get(f"{API}/requests", params={"urgency": "high"}).json()
    assert [row["email"] for row in high["data"]] == ["alice@example.com"]

    # the dashboard sends empty filters for "all"
    blank = client.get(f"{API}/requests", params={"urgency": "", "search": ""}).json()
    assert blank["results"] == 2

    by_name = client.get(f"{API}/requests", params={"search": "bob"}).json()
    assert [row["first_name"] for row in by_name["data"]] == ["Bob"]


def test_geo_listing_sorted_by_distance(client, make_user, make_request):
    requester = make_user("aid_requester")
    far = make_request(requester, latitude=0.3)
    near = make_request(requester, latitude=0.1)
    make_request(requester, latitude=2.0)

    r = client.get(f"{API}/requests", params={"latitude": 0, "longitude": 0, "radius": 50})

    rows = r.json()["data"]
    assert [row["id"] for row in rows] == [near.id, far.id]
    assert rows[0]["distance_km"] < rows[1]["distance_km"]


def test_geo_listing_needs_all_three_params(client):
    r = client.get(f"{API}/requests", params={"latitude": 0, "longitude": 0})
    assert r.status_code == 400


def test_owner_edits_pending_request(client, make_user, make_request):
    requester = make_user("aid_requester")
    req = make_request(requester, quantity=1)

    r = client.patch(
        f"{API}/requests/{req.id}",
        json={"quantity": 4, "urgency": "medium"},
        headers=auth_headers(requester),
    )

    assert r.status_code == 200
    assert r.json()["data"]["quantity"] == 4
    assert r.json()["data"]["urgency"] == "medium"


def test_edit_drops_pending_matches(client, session, make_user, make_request, make_resource):
    requester = make_user("aid_requester")
    req = make_request(requester)
    resource = make_resource(make_user("donor"))
    session.add(Match(request_id=req.id, resource_id=resource.id, distance_km=0.0))
    session.commit()

    client.patch(f"{API}/requests/{req.id}", json={"quantity": 2}, headers=auth_headers(requester))

    session.expire_all()
    assert session.get(AidRequest, req.id).quantity == 2
    assert session.exec(select(Match)).all() == []


def test_owner_cannot_edit_assigned_request(client, make_user, make_request):
    requester = make_user("aid_requester")
    req = make_request(requester, status="assigned")

    r = client.patch(f"{API}/requests/{req.id}", json={"quantity": 2}, headers=auth_headers(requester))

    assert r.status_code == 400


def test_admin_edits_any_request(client, make_user, make_request):
    req = make_request(make_user("aid_requester"), status="assigned")
    admin = make_user("admin")

    r = client.patch(f"{API}/requests/{req.id}", json={"aid_type": "medicine"}, headers=auth_headers(admin))

    assert r.status_code == 200
    assert r.json()["data"]["aid_type"] == "medicine"


def test_stranger_cannot_edit_or_delete(client, make_user, make_request):
    req = make_request(make_user("aid_requester"))
    stranger = make_user("aid_requester")
    headers = auth_headers(stranger)

    assert client.patch(f"{API}/requests/{req.id}", json={"quantity": 2}, headers=headers).status_code == 403
    assert client.delete(f"{API}/requests/{req.id}", headers=headers).status_code == 403


def test_owner_deletes_pending_request(client, session, make_user, make_request):
    requester = make_user("aid_requester")
    request_id = make_request(requester).id

    r = client.delete(f"{API}/requests/{request_id}", headers=auth_headers(requester))

    assert r.status_code == 204
    session.expire_all()
    assert session.get(AidRequest, request_id) is None


def test_cannot_delete_non_pending_request(client, make_user, make_request):
    requester = make_user("aid_requester")
    req = make_request(requester, status="fulfilled")

    r = client.delete(f"{API}/requests/{req.id}", headers=auth_headers(requester))

    assert r.status_code == 400
    assert r.json()["message"] == "Only pending requests can be deleted"


def test_missing_request(client):
    r = client.get(f"{API}/requests/999")
    assert r.status_code == 404
    assert r.json() == {"status": "fail", "message": "Aid request not found"}
