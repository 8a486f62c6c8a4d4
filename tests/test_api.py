import io

import pytest

from models import User, db
from services import users


@pytest.fixture()
def owner_client(client, signup):
    signup(client)
    return client


@pytest.fixture()
def band(owner_client):
    resp = owner_client.post("/bands", json={"name": "The Testers"})
    assert resp.status_code == 201
    return resp.get_json()["id"]


def test_healthz(client):
    assert client.get("/healthz").get_json() == {"ok": True, "db": "up"}


def test_register_login_logout(client, signup):
    user = signup(client)
    assert user["subscriptionStatus"] == "trialing"
    assert client.get("/auth/me").get_json()["user"]["email"] == "owner@example.com"

    assert client.post("/auth/logout").get_json() == {"ok": True}
    assert client.get("/auth/me").get_json()["user"] is None
    assert client.post("/auth/logout").status_code == 401

    bad = client.post("/auth/login", json={"email": "owner@example.com", "password": "nope"})
    assert bad.status_code == 401
    assert bad.get_json()["ok"] is False
    assert client.post("/auth/login", json={"email": "OWNER@example.com", "password": "password123"}).status_code == 200
    assert client.get("/auth/subscription").get_json()["subscription"]["isTrial"] is True


def test_register_errors_are_json(client, signup):
    signup(client)
    resp = client.post("/auth/register", json={"email": "owner@example.com", "password": "password123"})
    assert resp.status_code == 400
    assert resp.get_json() == {"ok": False, "error": "Email already registered."}


def test_update_profile(owner_client):
    resp = owner_client.patch("/auth/me", json={"patch": {"name": "Frontperson"}})
    assert resp.get_json()["user"]["name"] == "Frontperson"


def test_anonymous_mutation_is_401_and_query_is_empty(client):
    resp = client.post("/bands", json={"name": "Ghosts"})
    assert resp.status_code == 401
    assert resp.get_json() == {"ok": False, "error": "Not authenticated"}
    assert client.get("/bands").get_json() == {"ok": True, "bands": []}


def test_other_owner_is_forbidden(app, band, signup):
    other = app.test_client()
    signup(other, email="rival@example.com")
    assert other.get(f"/bands/{band}").get_json()["band"] is None
    assert other.get(f"/bands/{band}/songs").get_json()["songs"] == []
    resp = other.post(f"/bands/{band}/songs", json={"title": "Mine now"})
    assert resp.status_code == 403
    assert resp.get_json()["ok"] is False


def test_unknown_record_is_404(owner_client):
    resp = owner_client.delete("/songs/9999")
    assert resp.status_code == 404
    assert resp.get_json() == {"ok": False, "error": "Song not found."}
    assert owner_client.get("/no/such/route").get_json()["ok"] is False


def test_band_by_slug(owner_client, band):
    found = owner_client.get("/bands/by-slug/the-testers").get_json()["band"]
    assert found["id"] == band
    assert owner_client.get("/bands/by-slug/nobody").get_json()["band"] is None


def test_song_and_setlist_flow(owner_client, band):
    song = owner_client.post(f"/bands/{band}/songs", json={
        "title": "Valerie", "artist": "Amy Winehouse", "energyLevel": 5, "tempoBpm": 120,
    }).get_json()["id"]
    assert owner_client.get(f"/songs/{song}").get_json()["song"]["energyLevel"] == 5

    setlist = owner_client.post(f"/bands/{band}/setlists", json={
        "name": "Friday Gig", "setsConfig": [{"setIndex": 0, "songsPerSet": 3}],
    }).get_json()["id"]
    item = owner_client.post(f"/setlists/{setlist}/items", json={"songId": song, "setIndex": 0, "position": 0})
    assert item.status_code == 201

    body = owner_client.get(f"/setlists/{setlist}").get_json()
    assert body["setlist"]["setsConfig"] == [{"setIndex": 0, "songsPerSet": 3}]
    assert [(i["songId"], i["position"]) for i in body["items"]] == [(song, 0)]

    bad = owner_client.post(f"/items/{item.get_json()['id']}/move", json={"toSetIndex": "first"})
    assert bad.status_code == 400

    pdf = owner_client.get(f"/setlists/{setlist}/export.pdf?include_charts=false")
    assert pdf.status_code == 200
    assert pdf.mimetype == "application/pdf"
    assert 'filename="Friday_Gig.pdf"' in pdf.headers["Content-Disposition"]
    assert pdf.data.startswith(b"%PDF")


def test_csv_import(owner_client, band):
    csv_text = "Song Title,Artist,BPM,Length\nSeptember,Earth Wind & Fire,126,3:35\n,Nobody,,\n"
    resp = owner_client.post(
        f"/bands/{band}/songs/import",
        data={"file": (io.BytesIO(csv_text.encode()), "songs.csv")},
        content_type="multipart/form-data",
    )
    body = resp.get_json()
    assert [r["status"] for r in body["results"]] == ["inserted", "skipped"]
    song = owner_client.get(f"/songs/{body['results'][0]['id']}").get_json()["song"]
    assert (song["tempoBpm"], song["durationSec"]) == (126, 215)


def test_templates_round_trip_over_http(owner_client, band):
    template = owner_client.post(f"/bands/{band}/templates", json={
        "name": "Two sets", "setsConfig": [{"setIndex": 0, "songsPerSet": 2}, {"setIndex": 1, "songsPerSet": 1}],
    }).get_json()["id"]
    setlist = owner_client.post(f"/bands/{band}/setlists/from-template", json={
        "templateId": template, "name": "From template",
    }).get_json()["id"]
    items = owner_client.get(f"/setlists/{setlist}/items").get_json()["items"]
    assert [(i["setIndex"], i["position"], i["songId"]) for i in items] == [(0, 0, None), (0, 1, None), (1, 0, None)]

    copy = owner_client.post(f"/setlists/{setlist}/template", json={"name": "Copy"}).get_json()["id"]
    got = owner_client.get(f"/templates/{copy}").get_json()["template"]
    assert got["setsConfig"] == [
        {"setIndex": 0, "songsPerSet": 2, "pinnedSlots": []},
        {"setIndex": 1, "songsPerSet": 1, "pinnedSlots": []},
    ]


def test_storage_upload_and_download(owner_client):
    upload_url = owner_client.post("/storage/upload-url").get_json()["uploadUrl"]
    resp = owner_client.post(upload_url, data={"file": (io.BytesIO(b"%PDF-1.4 chart"), "chart.pdf")},
                             content_type="multipart/form-data")
    assert resp.status_code == 201
    file_id = resp.get_json()["storageId"]

    url = owner_client.get(f"/storage/url/{file_id}").get_json()["url"]
    download = owner_client.get(url)
    assert download.data == b"%PDF-1.4 chart"
    download.close()
    assert owner_client.post(upload_url, data={"file": (io.BytesIO(b"again"), "chart.pdf")},
                             content_type="multipart/form-data").status_code == 404
    assert owner_client.post("/storage/urls", json={"storageIds": [file_id]}).get_json()["urls"] == {
        str(file_id): url,
    }


def test_billing_webhook(app, client, signup):
    user = signup(client)
    event = {"type": "customer.subscription.deleted",
             "data": {"object": {"metadata": {"userId": user["id"]}}}}
    assert client.post("/billing/webhook", json=event).get_json() == {"ok": True, "received": True, "handled": True}
    with app.app_context():
        assert db.session.get(User, user["id"]).subscription_status == "expired"

    app.config["BILLING_WEBHOOK_TOKEN"] = "s3cret"
    assert client.post("/billing/webhook", json=event).status_code == 401
    resp = client.post("/billing/webhook", json=event, headers={"X-Webhook-Token": "s3cret"})
    assert resp.status_code == 200


def test_non_finite_numbers_are_400(owner_client, band):
    resp = owner_client.post(f"/bands/{band}/songs",
                             data='{"song": {"title": "X", "energyLevel": 1e400}}',
                             content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json()["ok"] is False

    csv_text = "title,artist,vocal\nOne,A,inf\nTwo,A,4\n"
    resp = owner_client.post(
        f"/bands/{band}/songs/import",
        data={"file": (io.BytesIO(csv_text.encode()), "songs.csv")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert [r["status"] for r in resp.get_json()["results"]] == ["skipped", "inserted"]


def test_password_reset_over_http(app, client, signup):
    signup(client)
    client.post("/auth/logout")
    assert client.post("/auth/forgot-password", json={"email": "ghost@example.com"}).get_json() == {"ok": True}
    assert client.post("/auth/forgot-password", json={"email": "owner@example.com"}).get_json() == {"ok": True}

    with app.app_context():
        token = users.request_password_reset("owner@example.com")
    mismatch = client.post("/auth/reset-password", json={
        "token": token, "password": "brand-new-pass", "password2": "other-pass",
    })
    assert mismatch.get_json() == {"ok": False, "error": "Passwords do not match."}
    resp = client.post("/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert resp.get_json()["user"]["email"] == "owner@example.com"
    assert client.get("/auth/me").get_json()["user"] is not None
    client.post("/auth/logout")
    assert client.post("/auth/login", json={"email": "owner@example.com", "password": "brand-new-pass"}).status_code == 200


def test_json_import_rejects_malformed_rows(owner_client, band):
    resp = owner_client.post(f"/bands/{band}/songs/import", json={"rows": ["Valerie"]})
    assert resp.status_code == 400
    resp = owner_client.post(f"/bands/{band}/songs/import", json={"rows": [{"title": 1999}, {"title": "1999"}]})
    assert resp.get_json()["summary"] == {"inserted": 1, "duplicate": 0, "skipped": 1}
