"""Reusable setlist skeletons.

A template keeps the shape of a night (sets and how many songs each) and
the songs pinned to fixed positions.  :func:`create_from_setlist` derives
one from an existing setlist; ``services.setlists.create_from_template``
goes the other way.
"""
import logging

from authz import SETLISTS, TEMPLATES, Actor, authorize, degrade_to
from models import SetlistItem, Template, db, utcnow
from services.patches import PatchSchema, apply_patch, template_sets_config, trimmed_required

logger = logging.getLogger(__name__)

TEMPLATE_PATCH = PatchSchema(
    name=trimmed_required("Template name"),
    sets_config=template_sets_config,
)


@degrade_to(list)
def list_templates(actor: Actor, band_id: int) -> list[Template]:
    authorize(actor, band_id)
    templates = Template.query.filter_by(band_id=band_id).all()
    return sorted(templates, key=lambda t: (t.name.lower(), t.id))


@degrade_to(None)
def get(actor: Actor, template_id: int) -> Template | None:
    return TEMPLATES.load(actor, template_id)


def create(actor: Actor, band_id: int, name: str, sets_config) -> int:
    authorize(actor, band_id)
    values = TEMPLATE_PATCH.clean({"name": name if name is not None else "", "sets_config": sets_config})
    template = Template(band_id=band_id, created_at=utcnow(), **values)
    db.session.add(template)
    db.session.commit()
    logger.info("Created template %s for band %s", template.id, band_id)
    return template.id


def update(actor: Actor, template_id: int, patch: dict) -> None:
    template = TEMPLATES.load(actor, template_id)
    if apply_patch(template, TEMPLATE_PATCH.clean(patch)):
        db.session.commit()


def remove(actor: Actor, template_id: int) -> None:
    template = TEMPLATES.load(actor, template_id)
    db.session.delete(template)
    db.session.commit()
    logger.info("Deleted template %s", template_id)


def create_from_setlist(actor: Actor, setlist_id: int, name: str) -> int:
    """Capture a setlist's sets and its pinned slots as a new template.

    Sets keep their order and sizes; each set's pinned items become
    ``pinned_slots`` at their original positions.  Unpinned items are left out.
    """
    setlist = SETLISTS.load(actor, setlist_id)
    name = trimmed_required("Template name")(name if name is not None else "")
    items = SetlistItem.query.filter_by(setlist_id=setlist.id).all()

    sets_config = []
    for config in sorted(setlist.sets_config or [], key=lambda c: c["set_index"]):
        pinned = sorted(
            (i for i in items if i.set_index == config["set_index"] and i.is_pinned),
            key=lambda i: i.position,
        )
        sets_config.append({
            "set_index": config["set_index"],
            "songs_per_set": config["songs_per_set"],
            "pinned_slots": [{"position": i.position, "song_id": i.song_id} for i in pinned],
        })

    template = Template(band_id=setlist.band_id, name=name, sets_config=sets_config, created_at=utcnow())
    db.session.add(template)
    db.session.commit()
    logger.info("Created template %s from setlist %s", template.id, setlist.id)
    return template.id
