"""
Backend-agnostic data model shared by every torrent client adapter.

Adapters translate their daemon's native records into these types, so a
caller never sees Transmission integers, qBittorrent state strings or
Download Station task blocks.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Mapping

from .errors import ValidationError


class TorrentState(str, Enum):
    UNKNOWN = "unknown"
    DOWNLOADING = "downloading"
    SEEDING = "seeding"
    PAUSED = "paused"
    QUEUED = "queued"
    CHECKING = "checking"
    ERROR = "error"


@dataclass(frozen=True)
class Torrent:
    """Canonical torrent record.

    Note: `id` is only meaningful to the adapter instance that produced it.
    Note: sizes are in bytes, speeds in bytes/second.
    Optional fields are None when the daemon did not report them.
    """

    id: int | str
    info_hash: str
    name: str
    state: TorrentState
    progress: float  # 0..1
    is_completed: bool
    ratio: float | None
    save_path: str | None = None
    label: str | None = None
    total_size: int | None = None
    upload_speed: int | None = None
    download_speed: int | None = None
    total_uploaded: int | None = None
    total_downloaded: int | None = None
    date_added: str | None = None  # ISO 8601

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data


@dataclass
class TorrentFilterRules:
    """Selector for get_torrents_by.

    `ids` may be a single id/hash or a list of them; None selects every
    torrent visible to the current credential.
    """

    ids: Any = None
    complete: bool = False


@dataclass
class AddTorrentOptions:
    save_path: str | None = None
    label: str | None = None
    # None leaves the daemon's own default in place
    add_at_paused: bool | None = None
    # Fetch the .torrent ourselves and upload its content instead of the link
    local_download: bool = False


@dataclass(frozen=True)
class TorrentClientConfig:
    type: str
    name: str
    uuid: str
    address: str
    username: str = ""
    password: str = ""
    timeout: float = 60.0  # seconds

    def merge(self, overrides: "Mapping[str, Any] | TorrentClientConfig | None") -> "TorrentClientConfig":
        """Return a copy with `overrides` shallow-merged on top."""
        if overrides is None:
            return self
        if isinstance(overrides, TorrentClientConfig):
            overrides = asdict(overrides)

        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValidationError(f"Unknown config option(s): {', '.join(sorted(unknown))}")

        values = {k: v for k, v in overrides.items() if v is not None}
        if "timeout" in values:
            values["timeout"] = float(values["timeout"])
        return replace(self, **values)


@dataclass(frozen=True)
class CustomPathFeature:
    allowed: bool
    description: str = ""


@dataclass(frozen=True)
class ClientMetaData:
    """Static capability descriptor shown by configuration screens."""

    description: str
    warnings: tuple[str, ...] = ()
    custom_path: CustomPathFeature = field(default_factory=lambda: CustomPathFeature(allowed=False))


CUSTOM_PATH_DESCRIPTION = (
    "Save paths are passed to the daemon as-is; they must exist on the "
    "daemon's host, not on the machine running this library."
)
