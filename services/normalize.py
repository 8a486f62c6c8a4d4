import re
import unicodedata


def _fold(value: str | None) -> str:
    value = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    return value.lower()


def normalize_for_dedup(value: str | None) -> str:
    """Loose key: case, accents and punctuation ignored."""
    value = re.sub(r"[^a-z0-9]+", " ", _fold(value))
    return " ".join(value.split())


def normalize_for_dedup_tight(value: str | None) -> str:
    """Tight key: also ignores spacing and a leading article."""
    value = normalize_for_dedup(value)
    if value.startswith("the "):
        value = value[4:]
    return re.sub(r"[^a-z0-9]", "", value)


def slugify(name: str) -> str:
    value = re.sub(r"[^a-z0-9]+", "-", _fold(name)).strip("-")
    return value[:50].rstrip("-")
