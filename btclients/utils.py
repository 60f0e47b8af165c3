# btclients/utils.py - derived-field rules shared by the response normalizers
import math
from datetime import datetime, timezone

from .errors import ProtocolError, ValidationError


def share_ratio(uploaded, downloaded):
    """
    Upload/download ratio computed from cumulative byte counters.

    Nothing downloaded yet gives a non-finite value (inf, or nan when nothing
    was uploaded either) instead of raising; callers may depend on the raw value.
    Returns None when either counter is missing.
    """
    if uploaded is None or downloaded is None:
        return None
    if downloaded == 0:
        return math.nan if uploaded == 0 else math.inf
    return uploaded / downloaded


def clamp_progress(value) -> float:
    """Clamp a fractional progress value into [0, 1]."""
    if value is None or math.isnan(value):
        return 0.0
    return min(max(float(value), 0.0), 1.0)


def fraction(done, total) -> float:
    # An unknown total (e.g. magnet metadata not fetched yet) means no progress
    if not total:
        return 0.0
    return clamp_progress(done / total)


def to_iso8601(timestamp) -> str | None:
    """Unix seconds to an ISO 8601 UTC string (millisecond precision, 'Z' suffix)."""
    if timestamp is None:
        return None
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_ids(ids) -> list:
    """Turn a single id or an iterable of ids into a list."""
    if isinstance(ids, (str, int)):
        return [ids]
    ids = list(ids)
    if not ids:
        raise ValidationError("Empty id selector; pass None to select every torrent")
    return ids


def require(raw: dict, key: str):
    """Fetch a mandatory field from a raw daemon record."""
    try:
        return raw[key]
    except (KeyError, TypeError):
        raise ProtocolError(f"Missing field {key!r} in daemon response") from None
