import logging
import secrets

from authz import MEMBERS, Actor, authorize, degrade_to
from models import Member, db, utcnow
from services.patches import PatchSchema, apply_patch, lowered_email, trimmed, trimmed_required

logger = logging.getLogger(__name__)

# No 0/O, 1/l/I: tokens get read out loud and typed on phones
TOKEN_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
TOKEN_LENGTH = 24

MEMBER_PATCH = PatchSchema(
    name=trimmed_required("Name"),
    email=lowered_email,
    role=trimmed,
)


def new_access_token() -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


@degrade_to(list)
def list_members(actor: Actor, band_id: int, include_archived: bool = False) -> list[Member]:
    authorize(actor, band_id)
    query = Member.query.filter_by(band_id=band_id)
    if not include_archived:
        query = query.filter(Member.archived_at.is_(None))
    return sorted(query.all(), key=lambda m: (m.name.lower(), m.id))


@degrade_to(None)
def get(actor: Actor, member_id: int) -> Member | None:
    return MEMBERS.load(actor, member_id)


def create(actor: Actor, band_id: int, name: str, email: str = "", role: str = "") -> int:
    authorize(actor, band_id)
    values = MEMBER_PATCH.clean({"name": name if name is not None else "",
                                 "email": email or "", "role": role or ""})
    member = Member(band_id=band_id, created_at=utcnow(), **values)
    db.session.add(member)
    db.session.commit()
    logger.info("Added member %s to band %s", member.id, band_id)
    return member.id


def update(actor: Actor, member_id: int, patch: dict) -> None:
    member = MEMBERS.load(actor, member_id)
    if apply_patch(member, MEMBER_PATCH.clean(patch)):
        db.session.commit()


def archive(actor: Actor, member_id: int, archived: bool) -> None:
    member = MEMBERS.load(actor, member_id)
    member.archived_at = utcnow() if archived else None
    db.session.commit()


def remove(actor: Actor, member_id: int) -> None:
    member = MEMBERS.load(actor, member_id)
    db.session.delete(member)
    db.session.commit()
    logger.info("Removed member %s", member_id)


def generate_access_token(actor: Actor, member_id: int) -> str:
    """Issue a fresh token; any previous one stops working."""
    member = MEMBERS.load(actor, member_id)
    token = new_access_token()
    while Member.query.filter_by(access_token=token).first() is not None:
        token = new_access_token()
    member.access_token = token
    db.session.commit()
    logger.info("Issued access token for member %s", member.id)
    return token


def revoke_access_token(actor: Actor, member_id: int) -> None:
    member = MEMBERS.load(actor, member_id)
    member.access_token = None
    db.session.commit()
    logger.info("Revoked access token for member %s", member.id)
