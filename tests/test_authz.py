import pytest

from authz import SETLIST_ITEMS, SONGS, BandMember, Owner, authorize, degrade_to, require_owner
from errors import NotAuthenticated, NotAuthorized, NotFound
from services import setlist_items


def test_require_owner():
    assert require_owner(Owner(7)) == 7
    with pytest.raises(NotAuthenticated):
        require_owner(None)
    with pytest.raises(NotAuthorized):
        require_owner(BandMember(member_id=1, band_id=2))


def test_authorize_walks_to_band_owner(owner, stranger, band_id):
    assert authorize(owner, band_id).id == band_id
    with pytest.raises(NotAuthorized):
        authorize(stranger, band_id)
    with pytest.raises(NotFound):
        authorize(owner, 9999)


def test_authorizer_loads_nested_records(owner, stranger, make_song, make_setlist):
    song_id = make_song("Valerie", "Amy Winehouse")
    setlist_id = make_setlist()
    item_id = setlist_items.add_song(owner, setlist_id, song_id, 0, 0)

    assert SONGS.load(owner, song_id).title == "Valerie"
    assert SETLIST_ITEMS.load(owner, item_id).song_id == song_id
    with pytest.raises(NotAuthorized):
        SETLIST_ITEMS.load(stranger, item_id)
    with pytest.raises(NotFound, match="Item not found"):
        SETLIST_ITEMS.load(owner, 4242)
    assert SONGS.find(stranger, song_id) is None


def test_degrade_to_returns_fresh_defaults():
    @degrade_to(list)
    def denied():
        raise NotAuthorized()

    @degrade_to(None)
    def missing():
        raise NotFound()

    first = denied()
    first.append("x")
    assert denied() == []
    assert missing() is None


def test_degrade_to_lets_other_errors_through():
    @degrade_to(list)
    def broken():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        broken()
