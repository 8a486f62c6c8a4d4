"""Read-only views for band members signed in with an access token.

Everything here is scoped to the band of the resolved session and degrades
to empty answers rather than raising.
"""
import hmac
import logging
from dataclasses import dataclass

from authz import BandMember
from models import Band, Gig, GigMember, Member, Setlist, SetlistItem, Song, db

logger = logging.getLogger(__name__)


@dataclass
class MemberSession:
    member: Member
    band: Band

    @property
    def actor(self) -> BandMember:
        return BandMember(member_id=self.member.id, band_id=self.band.id)

    def to_dict(self) -> dict:
        return {
            "member": {
                "id": self.member.id,
                "name": self.member.name,
                "email": self.member.email,
                "role": self.member.role,
            },
            "band": {"id": self.band.id, "name": self.band.name, "slug": self.band.slug},
        }


def resolve_session(token: str | None) -> MemberSession | None:
    """Member and band behind ``token``; None when it no longer grants access."""
    if not token or not isinstance(token, str):
        return None
    member = Member.query.filter_by(access_token=token).first()
    if member is None or not hmac.compare_digest(member.access_token, token):
        return None
    if member.archived_at is not None:
        logger.info("Archived member %s tried to sign in", member.id)
        return None
    band = db.session.get(Band, member.band_id)
    if band is None or band.archived_at is not None:
        return None
    return MemberSession(member=member, band=band)


def list_songs(session: MemberSession | None, search: str | None = None) -> list[Song]:
    if session is None:
        return []
    search = (search or "").strip().lower()
    songs = (Song.query
             .filter_by(band_id=session.band.id)
             .filter(Song.archived_at.is_(None))
             .all())
    if search:
        songs = [s for s in songs if search in s.title.lower() or search in s.artist.lower()]
    return sorted(songs, key=lambda s: (s.title.lower(), s.id))


def get_song(session: MemberSession | None, song_id: int) -> Song | None:
    if session is None:
        return None
    song = db.session.get(Song, song_id)
    if song is None or song.band_id != session.band.id or song.archived_at is not None:
        return None
    return song


def list_setlists(session: MemberSession | None) -> list[Setlist]:
    """Finalised setlists only, latest gig first, undated ones by name."""
    if session is None:
        return []
    setlists = (Setlist.query
                .filter_by(band_id=session.band.id, status="finalised")
                .filter(Setlist.archived_at.is_(None))
                .all())
    dated = sorted((s for s in setlists if s.gig_date), key=lambda s: s.gig_date, reverse=True)
    undated = sorted((s for s in setlists if not s.gig_date), key=lambda s: s.name.lower())
    return dated + undated


def get_setlist(session: MemberSession | None, setlist_id: int) -> Setlist | None:
    if session is None:
        return None
    setlist = db.session.get(Setlist, setlist_id)
    if setlist is None or setlist.band_id != session.band.id or setlist.archived_at is not None:
        return None
    return setlist


def get_setlist_items(session: MemberSession | None, setlist_id: int) -> list[SetlistItem]:
    if get_setlist(session, setlist_id) is None:
        return []
    return (SetlistItem.query
            .filter_by(setlist_id=setlist_id)
            .order_by(SetlistItem.set_index.asc(), SetlistItem.position.asc())
            .all())


def list_gigs(session: MemberSession | None) -> list[GigMember]:
    """The member's place on each live gig's lineup, soonest gig first."""
    if session is None:
        return []
    return (GigMember.query
            .join(Gig, GigMember.gig_id == Gig.id)
            .filter(GigMember.member_id == session.member.id,
                    Gig.band_id == session.band.id,
                    Gig.archived_at.is_(None),
                    Gig.status != "cancelled")
            .order_by(Gig.date, Gig.id)
            .all())
