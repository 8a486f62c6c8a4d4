import pytest

from app import create_app
from authz import Owner
from models import db
from services import bands, setlists, songs, users


@pytest.fixture()
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SECRET_KEY": "test-secret",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "BILLING_WEBHOOK_TOKEN": None,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture()
def owner(ctx):
    user = users.register("owner@example.com", "password123", name="Owner")
    return Owner(user.id)


@pytest.fixture()
def stranger(ctx):
    user = users.register("stranger@example.com", "password123", name="Stranger")
    return Owner(user.id)


@pytest.fixture()
def band_id(owner):
    return bands.create(owner, "The Testers")


@pytest.fixture()
def make_song(owner, band_id):
    def _make(title, artist="", **fields):
        return songs.create(owner, band_id, {"title": title, "artist": artist, **fields})
    return _make


@pytest.fixture()
def make_setlist(owner, band_id):
    def _make(name="Friday Gig", sets=((0, 4), (1, 3))):
        config = [{"setIndex": i, "songsPerSet": n} for i, n in sets]
        return setlists.create(owner, band_id, name, config)
    return _make


@pytest.fixture()
def signup():
    def _signup(client, email="owner@example.com", password="password123"):
        resp = client.post("/auth/register", json={"email": email, "password": password, "name": "Owner"})
        assert resp.status_code == 201
        return resp.get_json()["user"]
    return _signup
