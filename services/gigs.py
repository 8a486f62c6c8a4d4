"""Gigs and the lineup answering for each one.

An owner books gigs for a band; every active member is put on the lineup
as ``pending`` and answers for themselves through their access session.
"""
import logging
from datetime import datetime

from authz import GIGS, Actor, BandMember, authorize, degrade_to
from errors import NotAuthenticated, NotAuthorized, NotFound, ValidationFailed
from models import GIG_MEMBER_STATUSES, GIG_STATUSES, Gig, GigMember, Member, Setlist, db, utcnow
from services.patches import (
    PatchSchema,
    apply_patch,
    choice,
    lowered_email,
    optional_int,
    optional_text,
    set_times,
    timestamp,
    trimmed_required,
)

logger = logging.getLogger(__name__)


def _optional_email(value) -> str | None:
    return None if value is None else (lowered_email(value) or None)


GIG_PATCH = PatchSchema(
    name=trimmed_required("Gig name"),
    date=timestamp,
    description=optional_text,
    load_in_time=optional_text,
    soundcheck_time=optional_text,
    start_time=optional_text,
    end_time=optional_text,
    set_times=set_times,
    venue_name=optional_text,
    venue_address=optional_text,
    venue_phone=optional_text,
    venue_email=_optional_email,
    venue_notes=optional_text,
    contact_name=optional_text,
    contact_phone=optional_text,
    contact_email=_optional_email,
    dress_code=optional_text,
    setlist_id=optional_int,
)

# (from, to) moves that are refused
BLOCKED_TRANSITIONS = {
    ("cancelled", "completed"): "Cannot mark a cancelled gig as completed.",
    ("completed", "enquiry"): "Cannot revert a completed gig to enquiry.",
}
OPEN_STATUSES = ("enquiry", "confirmed")

_gig_status = choice(*GIG_STATUSES)
_response_status = choice(*GIG_MEMBER_STATUSES)


def _check_setlist(band_id: int, values: dict) -> None:
    setlist_id = values.get("setlist_id")
    if setlist_id is None:
        return
    setlist = db.session.get(Setlist, setlist_id)
    if setlist is None or setlist.band_id != band_id:
        raise ValidationFailed("Setlist not found.")


@degrade_to(list)
def list_gigs(actor: Actor, band_id: int, include_archived: bool = False,
              status: str | None = None) -> list[Gig]:
    """Newest date first."""
    authorize(actor, band_id)
    query = Gig.query.filter_by(band_id=band_id)
    if not include_archived:
        query = query.filter(Gig.archived_at.is_(None))
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Gig.date.desc(), Gig.id.desc()).all()


@degrade_to(None)
def get(actor: Actor, gig_id: int) -> Gig | None:
    return GIGS.load(actor, gig_id)


@degrade_to(list)
def upcoming(actor: Actor, band_id: int, limit: int = 5, now: datetime | None = None) -> list[Gig]:
    """Open gigs from ``now`` on, soonest first."""
    authorize(actor, band_id)
    return (Gig.query
            .filter_by(band_id=band_id)
            .filter(Gig.archived_at.is_(None),
                    Gig.date >= (now or utcnow()),
                    Gig.status.in_(OPEN_STATUSES))
            .order_by(Gig.date, Gig.id)
            .limit(limit)
            .all())


def create(actor: Actor, band_id: int, fields: dict) -> int:
    authorize(actor, band_id)
    values = GIG_PATCH.clean({"name": "", **fields})
    if values.get("date") is None:
        raise ValidationFailed("Gig date is required")
    _check_setlist(band_id, values)

    now = utcnow()
    gig = Gig(band_id=band_id, status="enquiry", set_times=[], created_at=now, updated_at=now)
    apply_patch(gig, values)
    db.session.add(gig)
    db.session.flush()

    active = Member.query.filter_by(band_id=band_id).filter(Member.archived_at.is_(None))
    for member in active:
        db.session.add(GigMember(gig_id=gig.id, member_id=member.id, status="pending", created_at=now))
    db.session.commit()
    logger.info("Created gig %s for band %s", gig.id, band_id)
    return gig.id


def update(actor: Actor, gig_id: int, patch: dict) -> None:
    gig = GIGS.load(actor, gig_id)
    values = GIG_PATCH.clean(patch)
    if "date" in values and values["date"] is None:
        raise ValidationFailed("Gig date is required")
    _check_setlist(gig.band_id, values)
    if apply_patch(gig, values):
        gig.updated_at = utcnow()
        db.session.commit()


def update_status(actor: Actor, gig_id: int, status: str) -> None:
    gig = GIGS.load(actor, gig_id)
    status = _gig_status(status)
    blocked = BLOCKED_TRANSITIONS.get((gig.status, status))
    if blocked:
        raise ValidationFailed(blocked)
    gig.status = status
    gig.updated_at = utcnow()
    db.session.commit()
    logger.info("Gig %s is now %s", gig.id, status)


def archive(actor: Actor, gig_id: int, archived: bool) -> None:
    gig = GIGS.load(actor, gig_id)
    now = utcnow()
    gig.archived_at = now if archived else None
    gig.updated_at = now
    db.session.commit()


def remove(actor: Actor, gig_id: int) -> None:
    """Delete the gig and its lineup."""
    gig = GIGS.load(actor, gig_id)
    db.session.delete(gig)
    db.session.commit()
    logger.info("Deleted gig %s", gig_id)


# --- lineup ---

def _lineup_entry(gig: Gig, member_id) -> GigMember | None:
    return GigMember.query.filter_by(gig_id=gig.id, member_id=member_id).first()


@degrade_to(list)
def list_lineup(actor: Actor, gig_id: int) -> list[GigMember]:
    gig = GIGS.load(actor, gig_id)
    entries = GigMember.query.filter_by(gig_id=gig.id).all()
    return sorted(entries, key=lambda e: (e.member.name.lower(), e.id))


def add_member(actor: Actor, gig_id: int, member_id: int) -> int:
    gig = GIGS.load(actor, gig_id)
    member = db.session.get(Member, member_id) if member_id is not None else None
    if member is None or member.band_id != gig.band_id:
        raise NotFound("Member not found.")
    if _lineup_entry(gig, member.id) is not None:
        raise ValidationFailed("Member already added to this gig.")
    entry = GigMember(gig_id=gig.id, member_id=member.id, status="pending", created_at=utcnow())
    db.session.add(entry)
    db.session.commit()
    return entry.id


def remove_member(actor: Actor, gig_id: int, member_id: int) -> None:
    gig = GIGS.load(actor, gig_id)
    entry = _lineup_entry(gig, member_id)
    if entry is None:
        raise NotFound("Member not found in this gig.")
    db.session.delete(entry)
    db.session.commit()


def _record_response(entry: GigMember, status, note) -> None:
    status, note = _response_status(status), optional_text(note)
    entry.status, entry.note = status, note
    entry.responded_at = utcnow()
    db.session.commit()
    logger.info("Member %s answered %s for gig %s", entry.member_id, entry.status, entry.gig_id)


def respond(actor: Actor, gig_id: int, status: str, note: str | None = None) -> None:
    """A band member answers for themselves."""
    if actor is None:
        raise NotAuthenticated()
    if not isinstance(actor, BandMember):
        raise NotAuthorized()
    gig = db.session.get(Gig, gig_id) if gig_id is not None else None
    if gig is None or gig.band_id != actor.band_id:
        raise NotFound("Gig not found.")
    entry = _lineup_entry(gig, actor.member_id)
    if entry is None:
        raise ValidationFailed("Not a member of this gig.")
    _record_response(entry, status, note)


def set_response(actor: Actor, gig_id: int, member_id: int, status: str, note: str | None = None) -> None:
    """The owner records an answer on a member's behalf."""
    gig = GIGS.load(actor, gig_id)
    entry = _lineup_entry(gig, member_id)
    if entry is None:
        raise NotFound("Member not found in this gig.")
    _record_response(entry, status, note)
