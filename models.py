from datetime import datetime, timezone
from pathlib import Path

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import check_password_hash, generate_password_hash

UPLOAD_DIR = Path("instance/uploads")  # placeholder, set in create_app

db = SQLAlchemy()

SUBSCRIPTION_STATUSES = ("none", "trialing", "active", "expired")
SETLIST_STATUSES = ("draft", "finalised", "archived")
GIG_STATUSES = ("enquiry", "confirmed", "completed", "cancelled")
GIG_MEMBER_STATUSES = ("pending", "confirmed", "declined")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# --- User model ---
class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    subscription_status = db.Column(db.String(20), nullable=False, default="none")
    trial_ends_at = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)
    billing_customer_id = db.Column(db.String(120), nullable=True, index=True)
    billing_subscription_id = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    bands = db.relationship("Band", backref="owner", lazy="dynamic")

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "subscriptionStatus": self.subscription_status,
            "trialEndsAt": _iso(self.trial_ends_at),
            "currentPeriodEnd": _iso(self.current_period_end),
        }


# --- Band (the tenant) ---
class Band(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(60), unique=True, nullable=False, index=True)
    archived_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    # Deleting a band removes everything it owns
    songs = db.relationship("Song", backref="band", cascade="all, delete-orphan", lazy="select")
    setlists = db.relationship("Setlist", backref="band", cascade="all, delete-orphan", lazy="select")
    templates = db.relationship("Template", backref="band", cascade="all, delete-orphan", lazy="select")
    members = db.relationship("Member", backref="band", cascade="all, delete-orphan", lazy="select")
    gigs = db.relationship("Gig", backref="band", cascade="all, delete-orphan", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "ownerId": self.user_id,
            "archivedAt": _iso(self.archived_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# --- Song model ---
class Song(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    band_id = db.Column(db.Integer, db.ForeignKey("band.id"), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    artist = db.Column(db.String(200), nullable=False, default="")
    vocal_intensity = db.Column(db.Integer, nullable=False, default=3)  # 1-5
    energy_level = db.Column(db.Integer, nullable=False, default=3)     # 1-5
    tags = db.Column(db.JSON, nullable=False, default=list)             # ["opener", "ballad", ...]
    notes = db.Column(db.Text, nullable=True)
    chart_file_id = db.Column(db.Integer, db.ForeignKey("stored_file.id"), nullable=True)
    youtube_url = db.Column(db.String(500), nullable=True)
    tempo_bpm = db.Column(db.Integer, nullable=True)
    musical_key = db.Column(db.String(20), nullable=True)
    duration_sec = db.Column(db.Integer, nullable=True)
    play_count = db.Column(db.Integer, nullable=False, default=0)
    last_played_at = db.Column(db.DateTime, nullable=True)

    # Denormalized for duplicate checks
    normalized_title = db.Column(db.String(200), nullable=False, default="", index=True)
    normalized_artist = db.Column(db.String(200), nullable=False, default="", index=True)

    archived_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    chart_file = db.relationship("StoredFile", foreign_keys=[chart_file_id], lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bandId": self.band_id,
            "title": self.title,
            "artist": self.artist,
            "vocalIntensity": self.vocal_intensity,
            "energyLevel": self.energy_level,
            "tags": list(self.tags or []),
            "notes": self.notes,
            "chartFileId": self.chart_file_id,
            "youtubeUrl": self.youtube_url,
            "tempoBpm": self.tempo_bpm,
            "musicalKey": self.musical_key,
            "durationSec": self.duration_sec,
            "playCount": self.play_count,
            "lastPlayedAt": _iso(self.last_played_at),
            "archivedAt": _iso(self.archived_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# --- Setlist + slots ---
class Setlist(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    band_id = db.Column(db.Integer, db.ForeignKey("band.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    gig_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="draft")
    # [{"set_index": 0, "songs_per_set": 12}, ...]
    sets_config = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text, nullable=True)
    archived_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    items = db.relationship("SetlistItem", backref="setlist", cascade="all, delete-orphan", lazy="select")
    # Deleting a setlist leaves its gigs without one
    gigs = db.relationship("Gig", backref="setlist", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bandId": self.band_id,
            "name": self.name,
            "gigDate": _iso(self.gig_date),
            "status": self.status,
            "setsConfig": [
                {"setIndex": c["set_index"], "songsPerSet": c["songs_per_set"]}
                for c in (self.sets_config or [])
            ],
            "notes": self.notes,
            "archivedAt": _iso(self.archived_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class SetlistItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    setlist_id = db.Column(db.Integer, db.ForeignKey("setlist.id"), nullable=False, index=True)
    # Empty slot when NULL
    song_id = db.Column(db.Integer, db.ForeignKey("song.id"), nullable=True, index=True)
    set_index = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False)
    gig_notes = db.Column(db.Text, nullable=True)
    # Pinned slots survive regeneration and are carried into templates
    is_pinned = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    song = db.relationship("Song", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "setlistId": self.setlist_id,
            "songId": self.song_id,
            "setIndex": self.set_index,
            "position": self.position,
            "gigNotes": self.gig_notes,
            "isPinned": self.is_pinned,
            "createdAt": _iso(self.created_at),
        }


# --- Templates ---
class Template(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    band_id = db.Column(db.Integer, db.ForeignKey("band.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    # [{"set_index", "songs_per_set", "pinned_slots": [{"position", "song_id"}]}]
    sets_config = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bandId": self.band_id,
            "name": self.name,
            "setsConfig": [
                {
                    "setIndex": c["set_index"],
                    "songsPerSet": c["songs_per_set"],
                    "pinnedSlots": [
                        {"position": slot["position"], "songId": slot.get("song_id")}
                        for slot in c.get("pinned_slots", [])
                    ],
                }
                for c in (self.sets_config or [])
            ],
            "createdAt": _iso(self.created_at),
        }


# --- Band members (token access, no account) ---
class Member(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    band_id = db.Column(db.Integer, db.ForeignKey("band.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, default="")
    role = db.Column(db.String(60), nullable=False, default="")  # vocals, guitar, drums...
    access_token = db.Column(db.String(64), unique=True, nullable=True, index=True)
    archived_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    gig_responses = db.relationship("GigMember", backref="member", cascade="all, delete-orphan", lazy="select")

    def to_dict(self, include_token: bool = False) -> dict:
        data = {
            "id": self.id,
            "bandId": self.band_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "hasAccessToken": bool(self.access_token),
            "archivedAt": _iso(self.archived_at),
            "createdAt": _iso(self.created_at),
        }
        if include_token:
            data["accessToken"] = self.access_token
        return data


# --- Gigs (bookings) and who is playing them ---
class Gig(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    band_id = db.Column(db.Integer, db.ForeignKey("band.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    date = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="enquiry")
    description = db.Column(db.Text, nullable=True)

    # Free-text times as the band writes them ("18:30", "after dinner")
    load_in_time = db.Column(db.String(40), nullable=True)
    soundcheck_time = db.Column(db.String(40), nullable=True)
    start_time = db.Column(db.String(40), nullable=True)
    end_time = db.Column(db.String(40), nullable=True)
    # [{"set_index": 0, "time": "20:00"}, ...]
    set_times = db.Column(db.JSON, nullable=False, default=list)

    venue_name = db.Column(db.String(200), nullable=True)
    venue_address = db.Column(db.String(500), nullable=True)
    venue_phone = db.Column(db.String(60), nullable=True)
    venue_email = db.Column(db.String(255), nullable=True)
    venue_notes = db.Column(db.Text, nullable=True)
    contact_name = db.Column(db.String(120), nullable=True)
    contact_phone = db.Column(db.String(60), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    dress_code = db.Column(db.String(200), nullable=True)

    setlist_id = db.Column(db.Integer, db.ForeignKey("setlist.id"), nullable=True)
    archived_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    lineup = db.relationship("GigMember", backref="gig", cascade="all, delete-orphan", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bandId": self.band_id,
            "name": self.name,
            "date": _iso(self.date),
            "status": self.status,
            "description": self.description,
            "loadInTime": self.load_in_time,
            "soundcheckTime": self.soundcheck_time,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "setTimes": [
                {"setIndex": t["set_index"], "time": t["time"]} for t in (self.set_times or [])
            ],
            "venueName": self.venue_name,
            "venueAddress": self.venue_address,
            "venuePhone": self.venue_phone,
            "venueEmail": self.venue_email,
            "venueNotes": self.venue_notes,
            "contactName": self.contact_name,
            "contactPhone": self.contact_phone,
            "contactEmail": self.contact_email,
            "dressCode": self.dress_code,
            "setlistId": self.setlist_id,
            "archivedAt": _iso(self.archived_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class GigMember(db.Model):
    __tablename__ = "gig_member"
    __table_args__ = (db.UniqueConstraint("gig_id", "member_id"),)

    id = db.Column(db.Integer, primary_key=True)
    gig_id = db.Column(db.Integer, db.ForeignKey("gig.id"), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey("member.id"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    note = db.Column(db.Text, nullable=True)
    responded_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gigId": self.gig_id,
            "memberId": self.member_id,
            "memberName": self.member.name,
            "memberEmail": self.member.email,
            "memberRole": self.member.role,
            "status": self.status,
            "note": self.note,
            "respondedAt": _iso(self.responded_at),
            "createdAt": _iso(self.created_at),
        }


# --- Uploaded files (charts) ---
class StoredFile(db.Model):
    __tablename__ = "stored_file"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True, index=True)
    upload_token = db.Column(db.String(64), unique=True, nullable=True)
    original_name = db.Column(db.String(255), nullable=True)
    stored_name = db.Column(db.String(255), unique=True, nullable=True)
    mimetype = db.Column(db.String(120), nullable=True)
    size_bytes = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @property
    def path(self) -> str:
        return str(UPLOAD_DIR / (self.stored_name or ""))

    @property
    def is_uploaded(self) -> bool:
        return bool(self.stored_name)

    @property
    def is_pdf(self) -> bool:
        return (self.mimetype or "").lower().startswith("application/pdf")

    def __repr__(self) -> str:
        return f"<StoredFile id={self.id} name={self.original_name!r}>"
