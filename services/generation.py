"""Fill a setlist's open slots from the band's catalogue.

Rules:
- Vocal pacing: avoid a third high-intensity (4-5) song in a row
- Energy curve: follows the selected flow preset
- Freshness: weight toward songs not played recently
- Pinned slots: kept where they are
- Excluded songs: never picked
- Tags: opener/closer tags favour first/last positions

Songs are duck-typed: anything with ``id``, ``title``, ``vocal_intensity``,
``energy_level``, ``tags``, ``play_count`` and ``last_played_at`` works, so
the ORM rows are passed straight in.
"""
import math
import random
from dataclasses import dataclass, field
from datetime import datetime

from models import utcnow

FLOW_PRESETS = {
    "clo": ("Clo's Flow", "Jazz opener → Soul groove → Party peak with ballad closer"),
    "steady-build": ("Steady Build", "Gradual energy increase across the entire night"),
    "party-starter": ("Party Starter", "High energy from the start, maintains momentum"),
    "dinner-dancing": ("Dinner to Dancing", "Background music early, dance floor energy later"),
    "vocal-saver": ("Vocal Saver", "Strategic pacing to preserve your voice all night"),
    "classic": ("Classic", "Each set builds independently"),
}

TOP_N = 3


@dataclass
class Slot:
    set_index: int
    position: int
    song_id: int | None
    is_pinned: bool


@dataclass
class GeneratedSetlist:
    items: list[Slot] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def target_energy(preset: str, set_no: int, ratio: float, total_sets: int, is_last_position: bool) -> float:
    """Energy the curve asks for. ``set_no`` is the 1-based rank of the set."""
    is_first_set = set_no == 1
    is_last_set = set_no == total_sets

    if preset == "clo":
        if is_first_set:
            return 1.5 + ratio
        if set_no == 2:
            return 3 + ratio
        if is_last_set:
            if is_last_position:
                return 2  # ballad closer
            peak = 0.7
            if ratio < peak:
                return 3 + (ratio / peak) * 2
            return 5 - ((ratio - peak) / (1 - peak))
        return 3.5

    if preset == "steady-build":
        progress = (set_no - 1) / max(1, total_sets - 1)
        return 2 + progress * 2 + ratio

    if preset == "party-starter":
        if is_first_set:
            return 3.5 + ratio
        if is_last_set:
            return 4.5 + ratio * 0.5
        return 4 + ratio

    if preset == "dinner-dancing":
        if is_first_set:
            return 1.5 + ratio * 0.5
        if set_no == 2:
            return 2.5 + ratio
        if is_last_set:
            return 4 + ratio
        return 2 + (set_no / total_sets) * 3

    if preset == "vocal-saver":
        wave = math.sin(ratio * math.pi * 2) * 0.5
        return max(2, min(5, 3 + (set_no - 1) * 0.3 + wave))

    # classic
    if set_no == 1:
        return 3 + ratio
    if set_no == 2:
        return 4
    peak = 0.6
    if ratio < peak:
        return 4 + ratio / peak
    return 5 - (ratio - peak) / (1 - peak)


def target_vocal_intensity(preset: str, set_no: int, ratio: float) -> float | None:
    """None means no target beyond the pacing rule."""
    if preset == "clo" and set_no == 1:
        return 2 + ratio * 0.5
    if preset == "vocal-saver":
        return 2.5 + math.sin(ratio * math.pi) * 1.5
    if preset == "dinner-dancing" and set_no == 1:
        return 2
    return None


def freshness(song, now: datetime) -> float:
    if not song.last_played_at:
        return 100
    days = (now - song.last_played_at).total_seconds() / 86400
    penalty = min((song.play_count or 0) * 2, 30)
    return min(100, days - penalty)


def score_song(song, set_no: int, position: int, total_positions: int, total_sets: int,
               previous: list, now: datetime, preset: str) -> float:
    ratio = position / (total_positions - 1) if total_positions > 1 else 0
    is_first_position = position == 0
    is_last_position = position == total_positions - 1
    is_first_set = set_no == 1
    is_last_set = set_no == total_sets
    tags = song.tags or []

    score = 100.0
    score -= abs(song.energy_level - target_energy(preset, set_no, ratio, total_sets, is_last_position)) * 10

    vocal = target_vocal_intensity(preset, set_no, ratio)
    if vocal is not None:
        score -= abs(song.vocal_intensity - vocal) * 8

    if song.vocal_intensity >= 4 and len([s for s in previous[-2:] if s.vocal_intensity >= 4]) >= 2:
        score -= 30

    if is_first_position and "opener" in tags:
        score += 35 if is_first_set else 10
    if is_last_position and "closer" in tags:
        score += 35 if is_last_set else 10

    if preset == "clo" and is_last_set and is_last_position and "ballad" in tags:
        score += 20
    if preset in ("clo", "dinner-dancing") and is_first_set and "party" in tags:
        score -= 15
    if preset == "clo" and is_first_set and "jazz" in tags:
        score += 15

    score += min(20, freshness(song, now) / 5)
    return score


def pacing_warnings(songs: list) -> list[str]:
    warnings = []
    for i in range(2, len(songs)):
        window = songs[i - 2:i + 1]
        if all(s.vocal_intensity >= 4 for s in window):
            titles = ", ".join(s.title for s in window)
            warnings.append(f"High vocal intensity: 3 songs in a row ({titles})")
    return warnings


def generate_setlist(songs: list, sets_config: list[dict], pinned_slots: list[Slot],
                     excluded_song_ids=(), flow_preset: str = "classic",
                     rng: random.Random | None = None, now: datetime | None = None) -> GeneratedSetlist:
    if flow_preset not in FLOW_PRESETS:
        flow_preset = "classic"
    rng = rng or random.Random()
    now = now or utcnow()
    by_id = {s.id: s for s in songs}
    excluded = set(excluded_song_ids)
    pinned_ids = {p.song_id for p in pinned_slots if p.song_id is not None}
    available = [s for s in songs if s.id not in excluded and s.id not in pinned_ids]

    result = GeneratedSetlist()
    ordered = sorted(sets_config, key=lambda c: c["set_index"])
    total_sets = len(ordered)

    for set_no, config in enumerate(ordered, start=1):
        set_index, songs_per_set = config["set_index"], config["songs_per_set"]
        set_items: dict[int, Slot] = {}
        placed: dict[int, object] = {}

        for pin in pinned_slots:
            if pin.set_index != set_index:
                continue
            set_items[pin.position] = Slot(set_index, pin.position, pin.song_id, True)
            if pin.song_id in by_id:
                placed[pin.position] = by_id[pin.song_id]

        for position in range(songs_per_set):
            if position in set_items:
                continue
            if not available:
                result.warnings.append(
                    f"Set {set_no}: Not enough songs available for position {position + 1}"
                )
                continue

            previous = [placed[p] for p in sorted(placed) if p < position]
            scored = sorted(
                available,
                key=lambda s: score_song(s, set_no, position, songs_per_set, total_sets,
                                         previous, now, flow_preset),
                reverse=True,
            )
            chosen = scored[rng.randrange(min(TOP_N, len(scored)))]
            set_items[position] = Slot(set_index, position, chosen.id, False)
            placed[position] = chosen
            available = [s for s in available if s.id != chosen.id]

        for warning in pacing_warnings([placed[p] for p in sorted(placed)]):
            result.warnings.append(f"Set {set_no}: {warning}")
        result.items.extend(set_items[p] for p in sorted(set_items))

    result.items.sort(key=lambda slot: (slot.set_index, slot.position))
    return result


def check_setlist_pacing(items, songs: list) -> dict[int, list[str]]:
    """Pacing warnings per set index for an existing arrangement."""
    by_id = {s.id: s for s in songs}
    by_set: dict[int, list] = {}
    for item in sorted(items, key=lambda i: (i.set_index, i.position)):
        if item.song_id in by_id:
            by_set.setdefault(item.set_index, []).append(by_id[item.song_id])
    warnings = {}
    for set_index, set_songs in by_set.items():
        found = pacing_warnings(set_songs)
        if found:
            warnings[set_index] = found
    return warnings
