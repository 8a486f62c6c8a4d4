import logging

from authz import Actor, authorize, degrade_to, require_owner
from errors import ValidationFailed
from models import Band, db, utcnow
from services.normalize import slugify

logger = logging.getLogger(__name__)


def _unique_slug(name: str, band_id: int | None = None) -> str:
    base = slugify(name) or "band"
    slug, counter = base, 1
    while True:
        existing = Band.query.filter_by(slug=slug).first()
        if existing is None or existing.id == band_id:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


def _required_name(name) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Band name is required")
    return name


@degrade_to(list)
def list_bands(actor: Actor, include_archived: bool = False) -> list[Band]:
    user_id = require_owner(actor)
    query = Band.query.filter_by(user_id=user_id)
    if not include_archived:
        query = query.filter(Band.archived_at.is_(None))
    return sorted(query.all(), key=lambda b: b.name.lower())


@degrade_to(None)
def get(actor: Actor, band_id: int) -> Band | None:
    return authorize(actor, band_id)


@degrade_to(None)
def get_by_slug(actor: Actor, slug: str) -> Band | None:
    band = Band.query.filter_by(slug=slug).first()
    if band is None:
        return None
    return authorize(actor, band.id)


def create(actor: Actor, name: str) -> int:
    user_id = require_owner(actor)
    name = _required_name(name)
    now = utcnow()
    band = Band(user_id=user_id, name=name, slug=_unique_slug(name), created_at=now, updated_at=now)
    db.session.add(band)
    db.session.commit()
    logger.info("Created band %s (%s) for user %s", band.id, band.slug, user_id)
    return band.id


def update(actor: Actor, band_id: int, name: str) -> None:
    band = authorize(actor, band_id)
    name = _required_name(name)
    # Slug follows the name only when the name changes meaningfully
    if slugify(name) != slugify(band.name):
        band.slug = _unique_slug(name, band_id=band.id)
    band.name = name
    band.updated_at = utcnow()
    db.session.commit()


def archive(actor: Actor, band_id: int, archived: bool) -> None:
    band = authorize(actor, band_id)
    now = utcnow()
    band.archived_at = now if archived else None
    band.updated_at = now
    db.session.commit()


def remove(actor: Actor, band_id: int) -> None:
    """Delete the band and everything it owns, gigs included."""
    band = authorize(actor, band_id)
    db.session.delete(band)
    db.session.commit()
    logger.info("Deleted band %s", band_id)
