"""Who is calling, and may they touch this band's records.

Two kinds of caller exist: an :class:`Owner` signed in with a user account,
and a :class:`BandMember` holding an access token for one band.  Every
owner-side service takes the actor explicitly and resolves the chain
record -> band -> owner through :func:`authorize` or an :class:`Authorizer`.
Band members never pass these checks; their read-only views live in
``services.member_access`` and their gig answers in ``services.gigs.respond``.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from operator import attrgetter
from typing import Callable, Optional, Union

from errors import AccessDenied, NotAuthenticated, NotAuthorized, NotFound
from models import Band, Gig, Member, Setlist, SetlistItem, Song, Template, db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Owner:
    user_id: int


@dataclass(frozen=True)
class BandMember:
    member_id: int
    band_id: int


Actor = Optional[Union[Owner, BandMember]]


def require_owner(actor: Actor) -> int:
    """Return the user id behind ``actor`` or raise."""
    if actor is None:
        raise NotAuthenticated()
    if not isinstance(actor, Owner):
        raise NotAuthorized()
    return actor.user_id


def authorize(actor: Actor, band_id: int) -> Band:
    user_id = require_owner(actor)
    band = db.session.get(Band, band_id)
    if band is None:
        raise NotFound("Band not found.")
    if band.user_id != user_id:
        logger.warning("User %s denied access to band %s", user_id, band_id)
        raise NotAuthorized()
    return band


class Authorizer:
    """Loads a band-owned record and checks its owner.

    ``band_id_of`` maps a loaded record to the band that owns it, which lets
    nested records (setlist items) share the same check as top-level ones.
    """

    def __init__(self, model, label: str, band_id_of: Callable = attrgetter("band_id")):
        self.model = model
        self.label = label
        self.band_id_of = band_id_of

    def load(self, actor: Actor, record_id: int):
        require_owner(actor)
        record = db.session.get(self.model, record_id) if record_id is not None else None
        if record is None:
            raise NotFound(f"{self.label} not found.")
        authorize(actor, self.band_id_of(record))
        return record

    def find(self, actor: Actor, record_id: int):
        """Like :meth:`load` but answers ``None`` instead of raising."""
        try:
            return self.load(actor, record_id)
        except (AccessDenied, NotFound):
            return None


SONGS = Authorizer(Song, "Song")
SETLISTS = Authorizer(Setlist, "Setlist")
SETLIST_ITEMS = Authorizer(SetlistItem, "Item", band_id_of=lambda item: item.setlist.band_id)
TEMPLATES = Authorizer(Template, "Template")
MEMBERS = Authorizer(Member, "Member")
GIGS = Authorizer(Gig, "Gig")


def degrade_to(default):
    """Turn access and lookup failures of a query into an empty answer.

    ``default`` is returned as-is, or called when it is a factory such as
    ``list``, so listings never reveal whether another owner's band exists.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except (AccessDenied, NotFound) as exc:
                logger.debug("%s answered empty: %s", fn.__name__, exc.message)
                return default() if callable(default) else default

        return wrapper

    return decorator
