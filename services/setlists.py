import logging
import random
from datetime import datetime

from authz import SETLISTS, TEMPLATES, Actor, authorize, degrade_to
from errors import ValidationFailed
from models import Setlist, SetlistItem, Song, db, utcnow
from pdf_export import render_setlist_pdf, safe_filename
from services.generation import Slot, generate_setlist
from services.patches import PatchSchema, apply_patch, optional_text, sets_config, timestamp, trimmed_required

logger = logging.getLogger(__name__)

SETLIST_PATCH = PatchSchema(
    name=trimmed_required("Setlist name"),
    gig_date=timestamp,
    sets_config=sets_config,
    notes=optional_text,
)


def _ordered_items(setlist_id: int) -> list[SetlistItem]:
    return (SetlistItem.query
            .filter_by(setlist_id=setlist_id)
            .order_by(SetlistItem.set_index.asc(), SetlistItem.position.asc())
            .all())


@degrade_to(None)
def get(actor: Actor, setlist_id: int) -> Setlist | None:
    return SETLISTS.load(actor, setlist_id)


@degrade_to(list)
def list_setlists(actor: Actor, band_id: int, status: str | None = None,
                  include_archived: bool = False) -> list[Setlist]:
    """Upcoming gigs first: dated setlists newest first, then undated by creation."""
    authorize(actor, band_id)
    query = Setlist.query.filter_by(band_id=band_id)
    if status:
        query = query.filter_by(status=status)
    if not include_archived:
        query = query.filter(Setlist.archived_at.is_(None))
    setlists = query.all()
    dated = sorted((s for s in setlists if s.gig_date), key=lambda s: (s.gig_date, s.id), reverse=True)
    undated = sorted((s for s in setlists if not s.gig_date), key=lambda s: (s.created_at, s.id), reverse=True)
    return dated + undated


def create(actor: Actor, band_id: int, name: str, sets_config_value, gig_date=None,
           notes: str | None = None) -> int:
    authorize(actor, band_id)
    values = SETLIST_PATCH.clean({
        "name": name if name is not None else "",
        "sets_config": sets_config_value,
        "gig_date": gig_date,
        "notes": notes,
    })
    now = utcnow()
    setlist = Setlist(band_id=band_id, status="draft", created_at=now, updated_at=now, **values)
    db.session.add(setlist)
    db.session.commit()
    logger.info("Created setlist %s for band %s", setlist.id, band_id)
    return setlist.id


def update(actor: Actor, setlist_id: int, patch: dict) -> None:
    setlist = SETLISTS.load(actor, setlist_id)
    if apply_patch(setlist, SETLIST_PATCH.clean(patch)):
        setlist.updated_at = utcnow()
        db.session.commit()


def archive(actor: Actor, setlist_id: int, archived: bool) -> None:
    setlist = SETLISTS.load(actor, setlist_id)
    now = utcnow()
    setlist.archived_at = now if archived else None
    setlist.status = "archived" if archived else "draft"
    setlist.updated_at = now
    db.session.commit()


def finalise(actor: Actor, setlist_id: int) -> None:
    """Lock the setlist in and count a play for every song on it."""
    setlist = SETLISTS.load(actor, setlist_id)
    now = utcnow()
    song_ids = {item.song_id for item in setlist.items if item.song_id is not None}
    for song in Song.query.filter(Song.id.in_(song_ids)).all():
        song.play_count = (song.play_count or 0) + 1
        song.last_played_at = now
        song.updated_at = now
    setlist.status = "finalised"
    setlist.updated_at = now
    db.session.commit()
    logger.info("Finalised setlist %s (%d songs)", setlist.id, len(song_ids))


def duplicate(actor: Actor, setlist_id: int, new_name: str | None = None) -> int:
    original = SETLISTS.load(actor, setlist_id)
    name = optional_text(new_name) or f"{original.name} (copy)"
    now = utcnow()
    copy = Setlist(
        band_id=original.band_id,
        name=name,
        gig_date=None,
        status="draft",
        sets_config=[dict(c) for c in original.sets_config or []],
        notes=original.notes,
        created_at=now,
        updated_at=now,
    )
    db.session.add(copy)
    db.session.flush()
    for item in _ordered_items(original.id):
        db.session.add(SetlistItem(
            setlist_id=copy.id,
            song_id=item.song_id,
            set_index=item.set_index,
            position=item.position,
            gig_notes=item.gig_notes,
            is_pinned=item.is_pinned,
            created_at=now,
        ))
    db.session.commit()
    return copy.id


def remove(actor: Actor, setlist_id: int) -> None:
    setlist = SETLISTS.load(actor, setlist_id)
    db.session.delete(setlist)
    db.session.commit()
    logger.info("Deleted setlist %s", setlist_id)


def remove_set(actor: Actor, setlist_id: int, set_index: int) -> None:
    """Drop one set and close the gap so set indexes stay contiguous."""
    setlist = SETLISTS.load(actor, setlist_id)
    configs = sorted(setlist.sets_config or [], key=lambda c: c["set_index"])
    if len(configs) <= 1:
        raise ValidationFailed("Cannot remove the last set.")
    if not any(c["set_index"] == set_index for c in configs):
        raise ValidationFailed(f"Set {set_index} does not exist.")

    base = configs[0]["set_index"]
    remaining = [c for c in configs if c["set_index"] != set_index]
    remap = {c["set_index"]: base + i for i, c in enumerate(remaining)}

    for item in _ordered_items(setlist.id):
        if item.set_index == set_index:
            db.session.delete(item)
        elif item.set_index in remap:
            item.set_index = remap[item.set_index]

    setlist.sets_config = [
        {"set_index": remap[c["set_index"]], "songs_per_set": c["songs_per_set"]} for c in remaining
    ]
    setlist.updated_at = utcnow()
    db.session.commit()


def create_from_template(actor: Actor, band_id: int, template_id: int, name: str,
                         gig_date=None) -> int:
    """New setlist shaped like the template, pinned songs in place, every other slot empty."""
    authorize(actor, band_id)
    template = TEMPLATES.load(actor, template_id)
    if template.band_id != band_id:
        raise ValidationFailed("Template doesn't belong to this band.")
    name = trimmed_required("Setlist name")(name if name is not None else "")

    band_song_ids = {song_id for (song_id,) in db.session.query(Song.id).filter_by(band_id=band_id)}
    now = utcnow()
    setlist = Setlist(
        band_id=band_id,
        name=name,
        gig_date=timestamp(gig_date),
        status="draft",
        sets_config=[
            {"set_index": c["set_index"], "songs_per_set": c["songs_per_set"]}
            for c in template.sets_config or []
        ],
        created_at=now,
        updated_at=now,
    )
    db.session.add(setlist)
    db.session.flush()

    for config in sorted(template.sets_config or [], key=lambda c: c["set_index"]):
        pinned = {slot["position"]: slot.get("song_id") for slot in config.get("pinned_slots", [])}
        positions = set(range(config["songs_per_set"])) | set(pinned)
        for position in sorted(positions):
            song_id = pinned.get(position)
            if song_id is not None and song_id not in band_song_ids:
                song_id = None
            db.session.add(SetlistItem(
                setlist_id=setlist.id,
                song_id=song_id,
                set_index=config["set_index"],
                position=position,
                is_pinned=position in pinned,
                created_at=now,
            ))
    db.session.commit()
    logger.info("Created setlist %s from template %s", setlist.id, template.id)
    return setlist.id


def generate(actor: Actor, setlist_id: int, flow_preset: str = "classic",
             excluded_song_ids=(), seed: int | None = None,
             now: datetime | None = None) -> list[str]:
    """Refill every unpinned slot from the band's active songs; returns warnings."""
    setlist = SETLISTS.load(actor, setlist_id)
    songs = (Song.query
             .filter_by(band_id=setlist.band_id)
             .filter(Song.archived_at.is_(None))
             .all())
    items = _ordered_items(setlist.id)
    pinned = [Slot(i.set_index, i.position, i.song_id, True) for i in items if i.is_pinned]

    result = generate_setlist(
        songs,
        setlist.sets_config or [],
        pinned,
        excluded_song_ids=excluded_song_ids,
        flow_preset=flow_preset,
        rng=random.Random(seed),
        now=now,
    )

    for item in items:
        if not item.is_pinned:
            db.session.delete(item)
    created = utcnow()
    for slot in result.items:
        if slot.is_pinned:
            continue
        db.session.add(SetlistItem(
            setlist_id=setlist.id,
            song_id=slot.song_id,
            set_index=slot.set_index,
            position=slot.position,
            is_pinned=False,
            created_at=created,
        ))
    setlist.updated_at = created
    db.session.commit()
    logger.info("Generated setlist %s with preset %s (%d warnings)",
                setlist.id, flow_preset, len(result.warnings))
    return result.warnings


def export_pdf(actor: Actor, setlist_id: int, include_charts: bool = True,
               hide_notes: bool = False) -> tuple[str, bytes]:
    setlist = SETLISTS.load(actor, setlist_id)
    data = render_setlist_pdf(setlist, _ordered_items(setlist.id),
                              include_charts=include_charts, hide_notes=hide_notes)
    return safe_filename(setlist.name), data
