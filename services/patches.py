"""Field update sets.

A patch is a mapping whose keys are the fields to change.  Each entity
declares a :class:`PatchSchema` naming the fields it accepts and how each
value is coerced; anything else is rejected before a record is touched.
"""
import math
import re
from datetime import datetime, timezone

from errors import ValidationFailed

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PatchSchema:
    def __init__(self, **fields):
        self.fields = fields

    def clean(self, patch: dict | None) -> dict:
        patch = patch or {}
        unknown = sorted(set(patch) - set(self.fields))
        if unknown:
            raise ValidationFailed(f"Unknown field(s): {', '.join(unknown)}")
        cleaned = {}
        for name, value in patch.items():
            try:
                cleaned[name] = self.fields[name](value)
            except ValidationFailed:
                raise
            except (TypeError, ValueError, OverflowError) as exc:
                raise ValidationFailed(f"Invalid value for {name}: {exc}") from exc
        return cleaned


def apply_patch(record, cleaned: dict) -> bool:
    """Copy ``cleaned`` onto ``record``; False when there was nothing to write."""
    if not cleaned:
        return False
    for name, value in cleaned.items():
        setattr(record, name, value)
    return True


# --- coercers ---

def trimmed(value) -> str:
    if not isinstance(value, str):
        raise ValidationFailed("Expected text.")
    return value.strip()


def trimmed_required(label: str):
    def coerce(value) -> str:
        text = trimmed(value)
        if not text:
            raise ValidationFailed(f"{label} is required")
        return text
    return coerce


def optional_text(value) -> str | None:
    if value is None:
        return None
    return trimmed(value) or None


def lowered_email(value) -> str:
    email = trimmed(value).lower()
    if email and not EMAIL_RE.match(email):
        raise ValidationFailed("Invalid email address")
    return email


def bounded_int(lo: int, hi: int):
    """Clamp into [lo, hi] rather than reject."""
    def coerce(value) -> int:
        if isinstance(value, bool):
            raise ValidationFailed("Expected a number.")
        number = float(value)
        if not math.isfinite(number):
            raise ValidationFailed("Expected a number.")
        return min(hi, max(lo, int(round(number))))
    return coerce


def optional_int(value) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationFailed("Expected a number.")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationFailed("Expected a number.")
    return int(value)


def boolean(value) -> bool:
    if not isinstance(value, bool):
        raise ValidationFailed("Expected true or false.")
    return value


def choice(*options):
    def coerce(value) -> str:
        if value not in options:
            raise ValidationFailed(f"Expected one of: {', '.join(options)}")
        return value
    return coerce


def tag_list(value) -> list[str]:
    if not isinstance(value, (list, tuple)):
        raise ValidationFailed("Tags must be a list.")
    tags = []
    for tag in value:
        tag = trimmed(tag)
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def timestamp(value) -> datetime | None:
    """Accept a datetime, an ISO string, or epoch milliseconds."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            return timestamp(parsed)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValidationFailed("Expected a date.") from exc
    raise ValidationFailed("Expected a date.")


def _pick(entry: dict, *keys):
    for key in keys:
        if key in entry:
            return entry[key]
    return None


def _non_negative_int(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationFailed(f"{label} must be a non-negative integer.")
    return value


def sets_config(value) -> list[dict]:
    """``[{setIndex, songsPerSet}]`` from the wire into stored snake_case."""
    if not isinstance(value, (list, tuple)):
        raise ValidationFailed("setsConfig must be a list.")
    configs, seen = [], set()
    for entry in value:
        if not isinstance(entry, dict):
            raise ValidationFailed("setsConfig entries must be objects.")
        set_index = _non_negative_int(_pick(entry, "set_index", "setIndex"), "setIndex")
        songs_per_set = _non_negative_int(_pick(entry, "songs_per_set", "songsPerSet"), "songsPerSet")
        if set_index in seen:
            raise ValidationFailed(f"Duplicate setIndex {set_index}.")
        seen.add(set_index)
        configs.append({"set_index": set_index, "songs_per_set": songs_per_set})
    return configs


def template_sets_config(value) -> list[dict]:
    """Like :func:`sets_config` with ``pinnedSlots`` carried per set."""
    configs = sets_config(value)
    for config, entry in zip(configs, value):
        raw_slots = _pick(entry, "pinned_slots", "pinnedSlots") or []
        if not isinstance(raw_slots, (list, tuple)):
            raise ValidationFailed("pinnedSlots must be a list.")
        slots, positions = [], set()
        for slot in raw_slots:
            if not isinstance(slot, dict):
                raise ValidationFailed("pinnedSlots entries must be objects.")
            position = _non_negative_int(slot.get("position"), "position")
            if position in positions:
                raise ValidationFailed(
                    f"Set {config['set_index']} pins position {position} twice."
                )
            positions.add(position)
            song_id = optional_int(_pick(slot, "song_id", "songId"))
            slots.append({"position": position, "song_id": song_id})
        config["pinned_slots"] = slots
    return configs


def set_times(value) -> list[dict]:
    """``[{setIndex, time}]`` start times per set, one entry per set at most."""
    if not isinstance(value, (list, tuple)):
        raise ValidationFailed("setTimes must be a list.")
    times, seen = [], set()
    for entry in value:
        if not isinstance(entry, dict):
            raise ValidationFailed("setTimes entries must be objects.")
        set_index = _non_negative_int(_pick(entry, "set_index", "setIndex"), "setIndex")
        if set_index in seen:
            raise ValidationFailed(f"Duplicate setIndex {set_index}.")
        seen.add(set_index)
        times.append({"set_index": set_index, "time": trimmed(entry.get("time", ""))})
    return sorted(times, key=lambda t: t["set_index"])
