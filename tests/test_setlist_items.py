import pytest

from errors import NotAuthorized, ValidationFailed
from models import SetlistItem, db
from services import bands, setlist_items, setlists, songs, templates


def _slots(setlist_id):
    items = (SetlistItem.query.filter_by(setlist_id=setlist_id)
             .order_by(SetlistItem.set_index, SetlistItem.position).all())
    return [(i.set_index, i.position, i.song_id, i.is_pinned) for i in items]


@pytest.fixture()
def abc(make_song):
    return make_song("A"), make_song("B"), make_song("C")


def test_add_song_shift_inserts(owner, make_setlist, abc):
    a, b, c = abc
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, a, 0, 0)
    setlist_items.add_song(owner, setlist_id, b, 0, 1)
    setlist_items.add_song(owner, setlist_id, c, 0, 0)
    assert _slots(setlist_id) == [(0, 0, c, False), (0, 1, a, False), (0, 2, b, False)]


def test_add_song_fills_empty_slot(owner, band_id, make_song):
    song_id = make_song("Filler")
    template_id = templates.create(owner, band_id, "Blank", [{"setIndex": 0, "songsPerSet": 3}])
    setlist_id = setlists.create_from_template(owner, band_id, template_id, "Blank gig")
    setlist_items.add_song(owner, setlist_id, song_id, 0, 1)
    assert _slots(setlist_id) == [(0, 0, None, False), (0, 1, song_id, False), (0, 2, None, False)]


def test_add_song_rejections(owner, stranger, band_id, make_setlist, abc):
    a, _, _ = abc
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, a, 0, 0)
    with pytest.raises(ValidationFailed, match="already in this setlist"):
        setlist_items.add_song(owner, setlist_id, a, 1, 0)

    other_band = bands.create(owner, "Other Band")
    foreign = songs.create(owner, other_band, {"title": "Foreign"})
    with pytest.raises(ValidationFailed, match="doesn't belong"):
        setlist_items.add_song(owner, setlist_id, foreign, 0, 1)
    with pytest.raises(NotAuthorized):
        setlist_items.add_song(stranger, setlist_id, a, 0, 1)


def test_list_by_setlist_degrades(owner, stranger, make_setlist, abc):
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, abc[0], 0, 0)
    assert len(setlist_items.list_by_setlist(owner, setlist_id)) == 1
    assert setlist_items.list_by_setlist(stranger, setlist_id) == []


def test_update_item(owner, make_setlist, abc):
    setlist_id = make_setlist()
    item_id = setlist_items.add_song(owner, setlist_id, abc[0], 0, 0)
    setlist_items.update_item(owner, item_id, {"gig_notes": " key of G ", "is_pinned": True})
    item = db.session.get(SetlistItem, item_id)
    assert (item.gig_notes, item.is_pinned) == ("key of G", True)
    with pytest.raises(ValidationFailed):
        setlist_items.update_item(owner, item_id, {"position": 4})


def test_move_within_and_across_sets(owner, make_setlist, abc):
    a, b, c = abc
    setlist_id = make_setlist()
    ia = setlist_items.add_song(owner, setlist_id, a, 0, 0)
    setlist_items.add_song(owner, setlist_id, b, 0, 1)
    setlist_items.add_song(owner, setlist_id, c, 0, 2)

    setlist_items.move_item(owner, ia, 0, 2)
    assert _slots(setlist_id) == [(0, 0, b, False), (0, 1, c, False), (0, 2, a, False)]

    setlist_items.move_item(owner, ia, 1, 0)
    assert _slots(setlist_id) == [(0, 0, b, False), (0, 1, c, False), (1, 0, a, False)]


def test_remove_item_closes_gap(owner, make_setlist, abc):
    a, b, c = abc
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, a, 0, 0)
    ib = setlist_items.add_song(owner, setlist_id, b, 0, 1)
    setlist_items.add_song(owner, setlist_id, c, 0, 2)
    setlist_items.remove_item(owner, ib)
    assert _slots(setlist_id) == [(0, 0, a, False), (0, 1, c, False)]


def test_clear_set_keeps_pinned_renumbered(owner, make_setlist, abc):
    a, b, c = abc
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, a, 0, 0)
    setlist_items.add_song(owner, setlist_id, b, 0, 2, is_pinned=True)
    setlist_items.add_song(owner, setlist_id, c, 1, 0)

    setlist_items.clear_set(owner, setlist_id, 0, keep_pinned=True)
    assert _slots(setlist_id) == [(0, 0, b, True), (1, 0, c, False)]
    setlist_items.clear_set(owner, setlist_id, 0)
    assert _slots(setlist_id) == [(1, 0, c, False)]


def test_clear_all(owner, make_setlist, abc):
    a, b, c = abc
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, a, 0, 3, is_pinned=True)
    setlist_items.add_song(owner, setlist_id, b, 0, 0)
    setlist_items.add_song(owner, setlist_id, c, 1, 2, is_pinned=True)

    setlist_items.clear_all(owner, setlist_id, keep_pinned=True)
    assert _slots(setlist_id) == [(0, 0, a, True), (1, 0, c, True)]
    setlist_items.clear_all(owner, setlist_id)
    assert _slots(setlist_id) == []


def test_swap_song(owner, make_setlist, abc):
    a, b, c = abc
    setlist_id = make_setlist()
    ia = setlist_items.add_song(owner, setlist_id, a, 0, 0)
    setlist_items.add_song(owner, setlist_id, b, 0, 1)
    with pytest.raises(ValidationFailed, match="already in this setlist"):
        setlist_items.swap_song(owner, ia, b)
    setlist_items.swap_song(owner, ia, c)
    assert _slots(setlist_id)[0] == (0, 0, c, False)
