"""Token login, read-only views and gig answers for band members."""
import logging
from functools import wraps

from flask import Blueprint, g, jsonify, request

from routes import (
    clear_member_cookies,
    current_member_session,
    json_body,
    member_token_from_request,
    ok,
    set_member_cookies,
)
from services import gigs, member_access

logger = logging.getLogger(__name__)

member_bp = Blueprint("member", __name__, url_prefix="/member")


def _denied(message: str):
    resp = jsonify({"ok": False, "error": message})
    resp.status_code = 401
    return clear_member_cookies(resp)


def member_session_required(view):
    """Resolve the cookie pair; a token that stopped working signs the member out."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        session = current_member_session()
        if session is None:
            if member_token_from_request():
                logger.info("Member token no longer valid, clearing cookies")
            return _denied("Invalid or expired access link.")
        g.member_session = session
        return view(*args, **kwargs)
    return wrapper


@member_bp.post("/login")
def login():
    token = json_body().get("token") or request.args.get("token") or ""
    if not isinstance(token, str):
        return _denied("Invalid access token.")
    token = token.strip()
    session = member_access.resolve_session(token)
    if session is None:
        return _denied("Invalid access token.")
    logger.info("Member %s signed in to band %s", session.member.id, session.band.id)
    return set_member_cookies(ok(**session.to_dict()), token)


@member_bp.post("/logout")
def logout():
    return clear_member_cookies(ok())


@member_bp.get("/session")
@member_session_required
def session_info():
    return ok(**g.member_session.to_dict())


@member_bp.get("/songs")
@member_session_required
def list_songs():
    found = member_access.list_songs(g.member_session, search=request.args.get("search"))
    return ok(songs=[s.to_dict() for s in found])


@member_bp.get("/songs/<int:song_id>")
@member_session_required
def get_song(song_id):
    song = member_access.get_song(g.member_session, song_id)
    return ok(song=song.to_dict() if song else None)


@member_bp.get("/setlists")
@member_session_required
def list_setlists():
    found = member_access.list_setlists(g.member_session)
    return ok(setlists=[s.to_dict() for s in found])


@member_bp.get("/setlists/<int:setlist_id>")
@member_session_required
def get_setlist(setlist_id):
    setlist = member_access.get_setlist(g.member_session, setlist_id)
    items = member_access.get_setlist_items(g.member_session, setlist_id)
    return ok(setlist=setlist.to_dict() if setlist else None, items=[i.to_dict() for i in items])


@member_bp.get("/gigs")
@member_session_required
def list_gigs():
    entries = member_access.list_gigs(g.member_session)
    return ok(gigs=[{"gig": e.gig.to_dict(), "response": e.to_dict()} for e in entries])


@member_bp.post("/gigs/<int:gig_id>/respond")
@member_session_required
def respond_to_gig(gig_id):
    data = json_body()
    gigs.respond(g.member_session.actor, gig_id, data.get("status"), note=data.get("note"))
    return ok()
