import urllib.parse
from datetime import datetime, timezone
from typing import Iterable

IMAGE_CLASS_NAME = "plm.Image"
TAG_INDEX = "by_tag"


def get_utc_now() -> datetime:
    """Naive UTC timestamp, as stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """
    Strip whitespace, drop empty entries and collapse duplicates.
    Returns the tags in ascending order.
    """
    if not tags:
        return []
    return sorted({t.strip() for t in tags if isinstance(t, str) and t.strip()})


def escape_sql_like_string(s: str, escape: str = "!") -> tuple[str, str]:
    """Escapes %, _ and the escape char itself in a LIKE prefix.
    Returns (escaped_prefix, escape_char).
    """
    s = s.replace(escape, escape + escape)
    s = s.replace("%", escape + "%").replace("_", escape + "_")
    return s, escape


def build_image_url(host: str, port: int, db_name: str, oid: str, name: str) -> str:
    return "http://{}:{}/{}/{}/{}".format(
        host,
        port,
        urllib.parse.quote(db_name, safe=""),
        urllib.parse.quote(oid, safe=""),
        urllib.parse.quote(name, safe=""),
    )


def format_filesize(size_bytes: int) -> str:
    """Render a byte count as e.g. '486.3K' (base 1024, one decimal)."""
    if size_bytes < 0:
        raise ValueError(f"size must be non-negative, got {size_bytes}")
    if size_bytes < 1024:
        return f"{size_bytes}B"
    value = float(size_bytes)
    for unit in ("K", "M", "G"):
        value /= 1024
        if round(value, 1) < 1024 or unit == "G":
            break
    return f"{value:.1f}{unit}"
