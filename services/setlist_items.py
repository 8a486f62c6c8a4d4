"""Slots inside a setlist.

A slot is addressed by ``(set_index, position)`` and holds at most one song;
an empty slot keeps its place with ``song_id`` unset.  Every operation keeps
positions unique within a set by shifting neighbours.
"""
import logging

from authz import SETLIST_ITEMS, SETLISTS, SONGS, Actor, degrade_to
from errors import ValidationFailed
from models import SetlistItem, db, utcnow
from services.patches import PatchSchema, apply_patch, boolean, optional_text

logger = logging.getLogger(__name__)

ITEM_PATCH = PatchSchema(gig_notes=optional_text, is_pinned=boolean)


def _items(setlist_id: int) -> list[SetlistItem]:
    return (SetlistItem.query
            .filter_by(setlist_id=setlist_id)
            .order_by(SetlistItem.set_index.asc(), SetlistItem.position.asc(), SetlistItem.id.asc())
            .all())


def _check_song(actor: Actor, setlist, song_id: int, items: list[SetlistItem], exclude_id=None):
    song = SONGS.load(actor, song_id)
    if song.band_id != setlist.band_id:
        raise ValidationFailed("Song doesn't belong to this band.")
    if any(i.song_id == song_id and i.id != exclude_id for i in items):
        raise ValidationFailed("Song is already in this setlist")
    return song


@degrade_to(list)
def list_by_setlist(actor: Actor, setlist_id: int) -> list[SetlistItem]:
    SETLISTS.load(actor, setlist_id)
    return _items(setlist_id)


def add_song(actor: Actor, setlist_id: int, song_id: int, set_index: int, position: int,
             gig_notes: str | None = None, is_pinned: bool = False) -> int:
    """Put a song at ``(set_index, position)``.

    An empty slot at that address is filled in place; otherwise the slots at
    and after ``position`` move down one to make room.
    """
    setlist = SETLISTS.load(actor, setlist_id)
    if position < 0:
        raise ValidationFailed("position must be a non-negative integer.")
    items = _items(setlist_id)
    _check_song(actor, setlist, song_id, items)

    target = next((i for i in items if i.set_index == set_index and i.position == position), None)
    if target is not None and target.song_id is None:
        target.song_id = song_id
        target.gig_notes = optional_text(gig_notes)
        target.is_pinned = is_pinned
        db.session.commit()
        return target.id

    for item in items:
        if item.set_index == set_index and item.position >= position:
            item.position += 1
    item = SetlistItem(
        setlist_id=setlist_id,
        song_id=song_id,
        set_index=set_index,
        position=position,
        gig_notes=optional_text(gig_notes),
        is_pinned=is_pinned,
        created_at=utcnow(),
    )
    db.session.add(item)
    db.session.commit()
    return item.id


def update_item(actor: Actor, item_id: int, patch: dict) -> None:
    item = SETLIST_ITEMS.load(actor, item_id)
    if apply_patch(item, ITEM_PATCH.clean(patch)):
        db.session.commit()


def move_item(actor: Actor, item_id: int, to_set_index: int, to_position: int) -> None:
    item = SETLIST_ITEMS.load(actor, item_id)
    if to_position < 0:
        raise ValidationFailed("position must be a non-negative integer.")
    from_set, from_position = item.set_index, item.position
    others = [i for i in _items(item.setlist_id) if i.id != item.id]

    if from_set == to_set_index:
        for other in others:
            if other.set_index != from_set:
                continue
            if from_position < to_position and from_position < other.position <= to_position:
                other.position -= 1
            elif to_position < from_position and to_position <= other.position < from_position:
                other.position += 1
    else:
        for other in others:
            # Close the gap in the source set, open one in the target set
            if other.set_index == from_set and other.position > from_position:
                other.position -= 1
            elif other.set_index == to_set_index and other.position >= to_position:
                other.position += 1

    item.set_index = to_set_index
    item.position = to_position
    db.session.commit()


def remove_item(actor: Actor, item_id: int) -> None:
    item = SETLIST_ITEMS.load(actor, item_id)
    for other in _items(item.setlist_id):
        if other.id != item.id and other.set_index == item.set_index and other.position > item.position:
            other.position -= 1
    db.session.delete(item)
    db.session.commit()


def _renumber(items: list[SetlistItem]) -> None:
    for idx, item in enumerate(sorted(items, key=lambda i: i.position)):
        item.position = idx


def clear_set(actor: Actor, setlist_id: int, set_index: int, keep_pinned: bool = False) -> None:
    SETLISTS.load(actor, setlist_id)
    kept = []
    for item in _items(setlist_id):
        if item.set_index != set_index:
            continue
        if keep_pinned and item.is_pinned:
            kept.append(item)
        else:
            db.session.delete(item)
    if keep_pinned:
        _renumber(kept)
    db.session.commit()


def clear_all(actor: Actor, setlist_id: int, keep_pinned: bool = False) -> None:
    SETLISTS.load(actor, setlist_id)
    kept: dict[int, list[SetlistItem]] = {}
    for item in _items(setlist_id):
        if keep_pinned and item.is_pinned:
            kept.setdefault(item.set_index, []).append(item)
        else:
            db.session.delete(item)
    for set_items in kept.values():
        _renumber(set_items)
    db.session.commit()


def swap_song(actor: Actor, item_id: int, new_song_id: int) -> None:
    item = SETLIST_ITEMS.load(actor, item_id)
    _check_song(actor, item.setlist, new_song_id, _items(item.setlist_id), exclude_id=item.id)
    item.song_id = new_song_id
    db.session.commit()
