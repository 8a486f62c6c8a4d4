from datetime import datetime

import pytest

from errors import NotAuthorized, NotFound, ValidationFailed
from models import Setlist, SetlistItem, Song, db
from services import bands, setlist_items, setlists, templates


def _slots(setlist_id):
    items = (SetlistItem.query.filter_by(setlist_id=setlist_id)
             .order_by(SetlistItem.set_index, SetlistItem.position).all())
    return [(i.set_index, i.position, i.song_id) for i in items]


def test_create_stores_snake_case_config(owner, band_id):
    setlist_id = setlists.create(owner, band_id, " Friday ", [{"setIndex": 0, "songsPerSet": 12}],
                                 gig_date="2026-11-20T20:00:00Z", notes="  load in 6pm ")
    setlist = db.session.get(Setlist, setlist_id)
    assert setlist.name == "Friday"
    assert setlist.status == "draft"
    assert setlist.sets_config == [{"set_index": 0, "songs_per_set": 12}]
    assert setlist.gig_date == datetime(2026, 11, 20, 20, 0)
    assert setlist.notes == "load in 6pm"


@pytest.mark.parametrize("config", [
    [{"setIndex": 0, "songsPerSet": -1}],
    [{"setIndex": 0, "songsPerSet": 3}, {"setIndex": 0, "songsPerSet": 4}],
    "two sets please",
])
def test_create_rejects_bad_sets_config(owner, band_id, config):
    with pytest.raises(ValidationFailed):
        setlists.create(owner, band_id, "Bad", config)


def test_list_orders_dated_first(owner, band_id):
    undated = setlists.create(owner, band_id, "Someday", [])
    older = setlists.create(owner, band_id, "Older", [], gig_date="2026-01-01")
    newer = setlists.create(owner, band_id, "Newer", [], gig_date="2026-06-01")
    assert [s.id for s in setlists.list_setlists(owner, band_id)] == [newer, older, undated]


def test_list_filters_status_and_archived(owner, stranger, band_id, make_setlist):
    keep, gone = make_setlist("Keep"), make_setlist("Gone")
    setlists.archive(owner, gone, True)
    assert [s.id for s in setlists.list_setlists(owner, band_id)] == [keep]
    assert db.session.get(Setlist, gone).status == "archived"
    assert [s.id for s in setlists.list_setlists(owner, band_id, status="archived", include_archived=True)] == [gone]
    assert setlists.list_setlists(stranger, band_id) == []


def test_update_and_empty_patch(owner, stranger, make_setlist):
    setlist_id = make_setlist()
    before = db.session.get(Setlist, setlist_id).updated_at
    setlists.update(owner, setlist_id, {})
    assert db.session.get(Setlist, setlist_id).updated_at == before

    setlists.update(owner, setlist_id, {"name": "Saturday", "notes": None})
    assert db.session.get(Setlist, setlist_id).name == "Saturday"
    with pytest.raises(NotAuthorized):
        setlists.update(stranger, setlist_id, {"name": "x"})


def test_finalise_counts_plays(owner, make_song, make_setlist):
    a, b = make_song("A"), make_song("B")
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, a, 0, 0)
    setlist_items.add_song(owner, setlist_id, b, 1, 0)
    setlists.finalise(owner, setlist_id)
    assert db.session.get(Setlist, setlist_id).status == "finalised"
    assert [db.session.get(Song, i).play_count for i in (a, b)] == [1, 1]


def test_duplicate_copies_items(owner, band_id, make_song):
    song_id = make_song("A")
    setlist_id = setlists.create(owner, band_id, "Gig",
                                 [{"setIndex": 0, "songsPerSet": 3}], gig_date="2026-05-05")
    setlist_items.add_song(owner, setlist_id, song_id, 0, 2, is_pinned=True)

    copy_id = setlists.duplicate(owner, setlist_id)
    copy = db.session.get(Setlist, copy_id)
    assert copy.name == "Gig (copy)"
    assert copy.gig_date is None
    assert _slots(copy_id) == [(0, 2, song_id)]
    assert setlists.duplicate(owner, setlist_id, new_name="Encore") != copy_id


def test_duplicate_rejects_non_text_name(owner, make_setlist):
    setlist_id = make_setlist()
    with pytest.raises(ValidationFailed, match="Expected text."):
        setlists.duplicate(owner, setlist_id, new_name=12345)
    assert db.session.get(Setlist, setlists.duplicate(owner, setlist_id, new_name="  ")).name == "Friday Gig (copy)"


def test_out_of_range_gig_date_is_rejected(owner, band_id, make_setlist):
    with pytest.raises(ValidationFailed, match="Expected a date."):
        setlists.create(owner, band_id, "Far future", [{"setIndex": 0, "songsPerSet": 1}], gig_date=10**20)
    with pytest.raises(ValidationFailed, match="Expected a date."):
        setlists.update(owner, make_setlist(), {"gig_date": -(10**20)})


def test_remove_cascades_items(owner, make_song, make_setlist):
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, make_song("A"), 0, 0)
    setlists.remove(owner, setlist_id)
    assert SetlistItem.query.count() == 0
    with pytest.raises(NotFound):
        setlists.remove(owner, setlist_id)


def test_remove_set_shifts_later_sets(owner, make_song, make_setlist):
    a, b, c = make_song("A"), make_song("B"), make_song("C")
    setlist_id = make_setlist(sets=((1, 2), (2, 2), (3, 2)))
    setlist_items.add_song(owner, setlist_id, a, 1, 0)
    setlist_items.add_song(owner, setlist_id, b, 2, 0)
    setlist_items.add_song(owner, setlist_id, c, 3, 1)

    setlists.remove_set(owner, setlist_id, 2)
    assert db.session.get(Setlist, setlist_id).sets_config == [
        {"set_index": 1, "songs_per_set": 2}, {"set_index": 2, "songs_per_set": 2},
    ]
    assert _slots(setlist_id) == [(1, 0, a), (2, 1, c)]


def test_remove_set_refuses_last_set(owner, make_setlist):
    setlist_id = make_setlist(sets=((0, 5),))
    with pytest.raises(ValidationFailed, match="last set"):
        setlists.remove_set(owner, setlist_id, 0)


def test_create_from_template_checks_band(owner, band_id):
    other_band = bands.create(owner, "Side Project")
    template_id = templates.create(owner, other_band, "Other", [{"setIndex": 0, "songsPerSet": 2}])
    with pytest.raises(ValidationFailed, match="doesn't belong"):
        setlists.create_from_template(owner, band_id, template_id, "Mixed up")


def test_create_from_template_fills_pins(owner, band_id, make_song):
    song_id = make_song("Opener")
    template_id = templates.create(owner, band_id, "Night", [
        {"setIndex": 0, "songsPerSet": 3, "pinnedSlots": [{"position": 0, "songId": song_id}]},
    ])
    setlist_id = setlists.create_from_template(owner, band_id, template_id, "Tonight", gig_date="2026-12-31")
    assert _slots(setlist_id) == [(0, 0, song_id), (0, 1, None), (0, 2, None)]
    assert db.session.get(Setlist, setlist_id).gig_date == datetime(2026, 12, 31)


def test_generate_keeps_pins_and_fills_slots(owner, band_id, make_song, make_setlist):
    ids = [make_song(f"Song {n}", energy_level=(n % 5) + 1) for n in range(10)]
    setlist_id = make_setlist(sets=((0, 4), (1, 3)))
    setlist_items.add_song(owner, setlist_id, ids[0], 0, 2, is_pinned=True)

    warnings = setlists.generate(owner, setlist_id, flow_preset="steady-build",
                                 excluded_song_ids=[ids[1]], seed=42)

    slots = _slots(setlist_id)
    assert warnings == []
    assert [(s, p) for s, p, _ in slots] == [(0, 0), (0, 1), (0, 2), (0, 3), (1, 0), (1, 1), (1, 2)]
    assert (0, 2, ids[0]) in slots
    placed = [song for _, _, song in slots]
    assert ids[1] not in placed
    assert len(set(placed)) == len(placed)


def test_generate_warns_when_pool_runs_dry(owner, make_song, make_setlist):
    make_song("Only One")
    setlist_id = make_setlist(sets=((0, 2),))
    warnings = setlists.generate(owner, setlist_id, seed=1)
    assert warnings == ["Set 1: Not enough songs available for position 2"]
    assert len(_slots(setlist_id)) == 1


def test_export_pdf(owner, make_song, make_setlist):
    setlist_id = make_setlist("Friday Gig")
    setlist_items.add_song(owner, setlist_id, make_song("A", tempo_bpm=100), 0, 0, gig_notes="count in")
    filename, data = setlists.export_pdf(owner, setlist_id, include_charts=False)
    assert filename == "Friday_Gig.pdf"
    assert data.startswith(b"%PDF")
