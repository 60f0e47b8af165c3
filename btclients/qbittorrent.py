# btclients/qbittorrent.py
import logging
import random
from dataclasses import dataclass

import httpx

from .base import TorrentClient
from .errors import AuthError, ProtocolError, TorrentClientError, TransportError
from .models import (
    CUSTOM_PATH_DESCRIPTION,
    ClientMetaData,
    CustomPathFeature,
    Torrent,
    TorrentClientConfig,
    TorrentFilterRules,
    TorrentState,
)
from .utils import clamp_progress, normalize_ids, require, share_ratio, to_iso8601


logger = logging.getLogger(__name__)

STATE_MAP = {
    "downloading": TorrentState.DOWNLOADING,
    "stalledDL": TorrentState.DOWNLOADING,
    "forcedDL": TorrentState.DOWNLOADING,
    "metaDL": TorrentState.DOWNLOADING,
    "forcedMetaDL": TorrentState.DOWNLOADING,
    "uploading": TorrentState.SEEDING,
    "stalledUP": TorrentState.SEEDING,
    "forcedUP": TorrentState.SEEDING,
    "pausedDL": TorrentState.PAUSED,
    "pausedUP": TorrentState.PAUSED,
    # qBittorrent 5.x renamed paused* to stopped*
    "stoppedDL": TorrentState.PAUSED,
    "stoppedUP": TorrentState.PAUSED,
    "queuedDL": TorrentState.QUEUED,
    "queuedUP": TorrentState.QUEUED,
    "allocating": TorrentState.QUEUED,
    "checkingDL": TorrentState.CHECKING,
    "checkingUP": TorrentState.CHECKING,
    "queuedForChecking": TorrentState.CHECKING,
    "checkingResumeData": TorrentState.CHECKING,
    "moving": TorrentState.CHECKING,
    "error": TorrentState.ERROR,
    "missingFiles": TorrentState.ERROR,
    # qBittorrent reports "unknown" when it cannot read the torrent's state
    "unknown": TorrentState.ERROR,
}


def _join_hashes(hashes) -> str:
    if hashes == "all":
        return "all"
    return "|".join(str(h) for h in normalize_ids(hashes))


def _bool_str(value: bool) -> str:
    return "true" if value else "false"


@dataclass
class QbittorrentFilterRules(TorrentFilterRules):
    """Filter rules with the extra server side options of /torrents/info."""

    category: str | None = None
    sort: str | None = None
    reverse: bool | None = None
    limit: int | None = None
    offset: int | None = None


class QBittorrentClient(TorrentClient):
    """
    Client for the qBittorrent Web API v2 (qBittorrent 4.1+).

    Logs in lazily on the first call and reuses the SID cookie afterwards.
    An expired cookie is not detected; the next call simply fails.
    """

    default_config = TorrentClientConfig(
        type="qBittorrent",
        name="qBittorrent",
        uuid="4c0f3c06-0b41-4828-9770-e8ef56da6a5c",
        address="http://localhost:9091/",
    )
    metadata = ClientMetaData(
        description="qBittorrent is a free cross-platform BitTorrent client with a Qt user interface.",
        warnings=(
            "Only qBittorrent v4.1+ is supported.",
            "Once a login has succeeded the session cookie is reused, so later connection "
            "tests report success even if the password has since changed.",
            "On qBittorrent 5.x pause and resume use the removed /torrents/pause and "
            "/torrents/resume endpoints and fail; listing and adding still work.",
        ),
        custom_path=CustomPathFeature(allowed=True, description=CUSTOM_PATH_DESCRIPTION),
    )
    filter_rules_class = QbittorrentFilterRules

    def __init__(self, options=None, *, transport=None):
        super().__init__(options, transport=transport)
        self.base_url = f"{self.config.address.rstrip('/')}/api/v2"
        self.session_cookies = {}
        # None until a login has been attempted and answered
        self.is_logged_in: bool | None = None

    @property
    def _headers(self) -> dict:
        # qBittorrent v4.1+ checks Referer against its own address (CSRF protection)
        return {"Referer": self.config.address}

    async def login(self) -> bool:
        """Authenticates with qBittorrent and stores session cookies."""
        try:
            async with self._http_client() as client:
                response = await client.post(
                    f"{self.base_url}/auth/login",
                    data={"username": self.config.username, "password": self.config.password},
                    headers=self._headers,
                )
        except httpx.RequestError as e:
            raise TransportError(f"Failed to connect to qBittorrent: {e}") from e

        if response.status_code == 403:
            raise AuthError("qBittorrent banned this client after too many failed logins")
        if response.is_error:
            raise TransportError(f"qBittorrent login returned HTTP {response.status_code}")

        if response.text == "Ok.":
            self.session_cookies = dict(response.cookies)
            return True
        return False

    async def ping(self) -> bool:
        try:
            self.is_logged_in = await self.login()
        except TorrentClientError as e:
            logger.debug(f"qBittorrent ping failed: {e}")
            return False
        return self.is_logged_in

    async def _request(self, method: str, path: str, params: dict | None = None,
                       files: dict | None = None) -> httpx.Response:
        if self.is_logged_in is None:
            # qBittorrent sessions last an hour by default, one login is enough
            await self.ping()

        try:
            async with self._http_client(cookies=self.session_cookies) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    params=params,
                    files=files,
                    headers=self._headers,
                )
        except httpx.RequestError as e:
            raise TransportError(f"Failed to communicate with qBittorrent: {e}") from e

        if response.status_code in (401, 403):
            raise AuthError(f"qBittorrent refused {path} (HTTP {response.status_code})")
        if response.is_error:
            raise TransportError(f"qBittorrent {path} returned HTTP {response.status_code}")
        return response

    async def _post_form(self, path: str, form: dict, torrent_file: tuple | None = None) -> httpx.Response:
        # Writes always go out as multipart/form-data, like the Web UI sends them
        files = {key: (None, str(value).encode()) for key, value in form.items()}
        if torrent_file is not None:
            files["torrents"] = torrent_file
        return await self._request("POST", path, files=files)

    async def add_torrent(self, url, options=None) -> bool:
        try:
            options = self._add_options(options)
            form = {}
            torrent_file = None
            if url.startswith("magnet:") or not options.local_download:
                form["urls"] = url
            else:
                content = await self._download_torrent(url)
                filename = f"{random.randint(0, 4096)}.torrent"
                torrent_file = (filename, content, "application/x-bittorrent")

            if options.save_path:
                form["savepath"] = options.save_path
            if options.label:
                form["category"] = options.label
            if options.add_at_paused is not None:
                form["paused"] = _bool_str(options.add_at_paused)
            # Automatic torrent management would override savepath
            form["useAutoTMM"] = "false"

            response = await self._post_form("/torrents/add", form, torrent_file)
        except TorrentClientError as e:
            return self._mutation_failed("add", e)

        if response.text == "Ok.":
            return True
        logger.warning(f"qBittorrent refused torrent: {response.text or 'no reason given'}")
        return False

    async def get_torrents_by(self, rules) -> list[Torrent]:
        rules = self._filter_rules(rules)
        params = {}
        if rules.ids is not None:
            params["hashes"] = _join_hashes(rules.ids)
        if rules.complete:
            params["filter"] = "completed"
        for key in ("category", "sort", "limit", "offset"):
            value = getattr(rules, key, None)
            if value is not None:
                params[key] = value
        if getattr(rules, "reverse", None) is not None:
            params["reverse"] = _bool_str(rules.reverse)

        response = await self._request("GET", "/torrents/info", params=params)
        try:
            raw_torrents = response.json()
        except ValueError as e:
            raise ProtocolError(f"Invalid JSON response from qBittorrent: {response.text[:200]}") from e
        if not isinstance(raw_torrents, list):
            raise ProtocolError(f"Unexpected /torrents/info response: {raw_torrents!r}")

        return [self._normalize_torrent(raw) for raw in raw_torrents]

    async def _hashes_action(self, action: str, form: dict) -> bool:
        try:
            await self._post_form(f"/torrents/{action}", form)
        except TorrentClientError as e:
            return self._mutation_failed(action, e)
        return True

    # The daemon accepts many hashes per call, but operating on one torrent at a time is safer
    async def pause_torrent(self, ids) -> bool:
        try:
            form = {"hashes": _join_hashes(ids)}
        except TorrentClientError as e:
            return self._mutation_failed("pause", e)
        return await self._hashes_action("pause", form)

    async def resume_torrent(self, ids) -> bool:
        try:
            form = {"hashes": _join_hashes(ids)}
        except TorrentClientError as e:
            return self._mutation_failed("resume", e)
        return await self._hashes_action("resume", form)

    async def remove_torrent(self, ids, remove_data: bool = False) -> bool:
        try:
            form = {"hashes": _join_hashes(ids), "deleteFiles": _bool_str(remove_data)}
        except TorrentClientError as e:
            return self._mutation_failed("delete", e)
        return await self._hashes_action("delete", form)

    def _normalize_torrent(self, raw: dict) -> Torrent:
        """Convert a /torrents/info entry to the canonical Torrent."""
        progress = clamp_progress(require(raw, "progress"))
        uploaded = raw.get("uploaded")
        downloaded = raw.get("downloaded")
        ratio = raw.get("ratio")
        if ratio is None:
            ratio = share_ratio(uploaded, downloaded)

        torrent_hash = require(raw, "hash")
        return Torrent(
            id=torrent_hash,
            info_hash=torrent_hash,
            name=require(raw, "name"),
            state=STATE_MAP.get(require(raw, "state"), TorrentState.UNKNOWN),
            progress=progress,
            is_completed=progress == 1,
            ratio=ratio,
            save_path=raw.get("save_path"),
            label=raw.get("category") or None,
            total_size=raw.get("total_size"),
            upload_speed=raw.get("upspeed"),
            download_speed=raw.get("dlspeed"),
            total_uploaded=uploaded,
            total_downloaded=downloaded,
            date_added=to_iso8601(raw.get("added_on")),
        )
