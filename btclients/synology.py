"""
Synology Download Station client.

Talks to the DSM Web API: every call goes to a fixed CGI under /webapi/ and is
dispatched by its api/version/method parameters. A login exchanges the account
credentials for a session id (sid) which is then sent as `_sid` on every call.

References:
    Synology_Download_Station_Web_API.pdf (DSM developer guide)
    https://github.com/kwent/syno/tree/master/definitions
"""

import json
import logging
from posixpath import basename
from urllib.parse import urlparse

import httpx

from .base import TorrentClient
from .errors import AuthError, ProtocolError, TorrentClientError, TransportError
from .models import ClientMetaData, CustomPathFeature, Torrent, TorrentClientConfig, TorrentState
from .utils import fraction, normalize_ids, require, share_ratio, to_iso8601


logger = logging.getLogger(__name__)

CGI_PATHS = {
    # info and download_station are reserved; every call goes through auth or entry
    "info": "query.cgi",                          # SYNO.API.Info
    "auth": "auth.cgi",                           # SYNO.API.Auth
    "download_station": "DownloadStation/task.cgi",  # SYNO.DownloadStation.*
    "entry": "entry.cgi",                         # SYNO.DownloadStation2.* and newer APIs
}

AUTH_API = "SYNO.API.Auth"
# Undocumented v2 API; it is what the Download Station web UI uses
TASK_API = "SYNO.DownloadStation2.Task"
SESSION_NAME = "DownloadStation"

STATUS_MAP = {
    "downloading": TorrentState.DOWNLOADING,
    "extracting": TorrentState.DOWNLOADING,
    "seeding": TorrentState.SEEDING,
    "finished": TorrentState.SEEDING,
    "finishing": TorrentState.SEEDING,
    "paused": TorrentState.PAUSED,
    "filehosting_waiting": TorrentState.QUEUED,
    "waiting": TorrentState.QUEUED,
    "hash_checking": TorrentState.CHECKING,
    "error": TorrentState.ERROR,
}

# SYNO.DownloadStation2.Task reports integers instead of the names above
NUMERIC_STATUS_MAP = {
    1: TorrentState.QUEUED,       # waiting
    2: TorrentState.DOWNLOADING,  # downloading
    3: TorrentState.PAUSED,       # paused
    4: TorrentState.SEEDING,      # finishing
    5: TorrentState.SEEDING,      # finished
    6: TorrentState.CHECKING,     # hash_checking
    8: TorrentState.SEEDING,      # seeding
    9: TorrentState.QUEUED,       # filehosting_waiting
    10: TorrentState.DOWNLOADING,  # extracting
}
NUMERIC_ERROR_STATUS = 101

# Common error codes that mean the sid is no longer usable
SESSION_ERROR_CODES = {105, 106, 107, 119}


def _task_status(status) -> TorrentState:
    if isinstance(status, str):
        return STATUS_MAP.get(status, TorrentState.UNKNOWN)
    if isinstance(status, int):
        if status >= NUMERIC_ERROR_STATUS:
            return TorrentState.ERROR
        return NUMERIC_STATUS_MAP.get(status, TorrentState.UNKNOWN)
    return TorrentState.UNKNOWN


def _form_value(value) -> str:
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _error_code(response: dict):
    error = response.get("error")
    return error.get("code") if isinstance(error, dict) else None


class SynologyDownloadStationClient(TorrentClient):
    default_config = TorrentClientConfig(
        type="synologyDownloadStation",
        name="Synology Download Station",
        uuid="37b3c655-fe0a-4078-b38b-d742f0c049bf",
        address="http://mysd.com:5000/",
    )
    metadata = ClientMetaData(
        description="Download Station is the web based download application shipped with Synology NAS.",
        warnings=("Do not enable 2-step verification for this account on DSM 4.2 and later.",),
        custom_path=CustomPathFeature(
            allowed=True,
            description=(
                "Save paths are relative to a shared folder: to store into /volume1/music/ "
                "when the share is /volume1/, use 'music'."
            ),
        ),
    )

    def __init__(self, options=None, *, transport=None):
        super().__init__(options, transport=transport)
        self.base_url = f"{self.config.address.rstrip('/')}/webapi"
        self.session_id: str | None = None

    async def _request(self, area: str, method: str = "GET", params: dict | None = None,
                       data: dict | None = None, files: dict | None = None) -> dict:
        url = f"{self.base_url}/{CGI_PATHS[area]}"
        try:
            async with self._http_client() as client:
                response = await client.request(method, url, params=params, data=data, files=files)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(f"Download Station returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error communicating with Download Station: {e}") from e

        try:
            result = response.json()
        except ValueError as e:
            raise ProtocolError(f"Invalid JSON response from Download Station: {response.text[:200]}") from e
        if not isinstance(result, dict) or "success" not in result:
            raise ProtocolError(f"Unexpected Download Station response: {result!r}")
        return result

    async def login(self) -> bool:
        """Exchanges the account credentials for a session id."""
        response = await self._request("auth", params={
            "api": AUTH_API,
            "version": 2,
            "method": "login",
            "account": self.config.username,
            "passwd": self.config.password,
            "session": SESSION_NAME,
            "format": "sid",
        })
        if not response["success"]:
            logger.debug(f"Download Station login failed with code {_error_code(response)}")
            return False

        self.session_id = require(require(response, "data"), "sid")
        return True

    async def _get_session_id(self) -> str:
        if self.session_id is None:
            if not await self.login():
                raise AuthError("Download Station rejected the account credentials")
        return self.session_id

    async def _request_entry(self, fields: dict, torrent_file: tuple | None = None) -> dict:
        """Calls entry.cgi with the current sid, as multipart when a file is attached."""
        fields = dict(fields, _sid=await self._get_session_id())
        form = {key: _form_value(value) for key, value in fields.items() if value is not None}

        if torrent_file is None:
            return await self._request("entry", "POST", data=form)

        files = {key: (None, value.encode()) for key, value in form.items()}
        files["torrent"] = torrent_file
        return await self._request("entry", "POST", files=files)

    def _raise_for_failure(self, response: dict, action: str) -> None:
        if response["success"]:
            return
        code = _error_code(response)
        if code in SESSION_ERROR_CODES:
            raise AuthError(f"Download Station session rejected during {action} (code {code})")
        raise ProtocolError(f"Download Station {action} failed (code {code})")

    async def ping(self) -> bool:
        try:
            return await self.login()
        except TorrentClientError as e:
            logger.debug(f"Download Station ping failed: {e}")
            return False

    async def add_torrent(self, url, options=None) -> bool:
        try:
            options = self._add_options(options)
            fields = {"api": TASK_API, "method": "create", "version": 2, "create_list": False}
            torrent_file = None
            if url.startswith("magnet:") or not options.local_download:
                task_type = "url"
                fields["url"] = [url]
            else:
                task_type = "file"
                fields["file"] = ["torrent"]
                content = await self._download_torrent(url)
                filename = basename(urlparse(url).path)
                if not filename.endswith(".torrent"):
                    filename = "file.torrent"
                torrent_file = (filename, content, "application/x-bittorrent")

            # create rejects these two unless they are JSON string literals
            fields["type"] = json.dumps(task_type)
            fields["destination"] = json.dumps(options.save_path or "")

            response = await self._request_entry(fields, torrent_file)
        except TorrentClientError as e:
            return self._mutation_failed("create", e)

        if not response["success"]:
            logger.warning(f"Download Station refused task: code {_error_code(response)}")
            return False

        # Tasks cannot be created paused, so pause right after creation
        task_ids = (response.get("data") or {}).get("task_id") or []
        if options.add_at_paused and task_ids:
            await self.pause_torrent(task_ids[0])
        return True

    async def get_torrents_by(self, rules) -> list[Torrent]:
        rules = self._filter_rules(rules)
        fields = {
            "api": TASK_API,
            "method": "list",
            "version": 2,
            "additional": ["detail", "transfer"],
        }
        if rules.ids is not None:
            fields["method"] = "get"
            fields["id"] = normalize_ids(rules.ids)

        response = await self._request_entry(fields)
        self._raise_for_failure(response, fields["method"])
        tasks = require(require(response, "data"), "task")

        # Download Station also runs http/ftp/nzb/emule tasks, only bt ones are torrents
        torrents = [self._normalize_task(task) for task in tasks if task.get("type") == "bt"]
        if rules.complete:
            torrents = [t for t in torrents if t.is_completed]
        return torrents

    async def _task_action(self, action: str, ids, **extra) -> bool:
        try:
            task_ids = ids if isinstance(ids, str) else normalize_ids(ids)
            response = await self._request_entry({
                "api": TASK_API,
                "method": action,
                "version": 2,
                "id": task_ids,
                **extra,
            })
        except TorrentClientError as e:
            return self._mutation_failed(action, e)

        if not response["success"]:
            logger.warning(f"Download Station {action} failed: code {_error_code(response)}")
        return response["success"]

    async def pause_torrent(self, ids) -> bool:
        return await self._task_action("pause", ids)

    async def resume_torrent(self, ids) -> bool:
        return await self._task_action("resume", ids)

    async def remove_torrent(self, ids, remove_data: bool = False) -> bool:
        # DSM only offers the combined delete, remove_data cannot be honoured
        if not remove_data:
            logger.debug("Download Station always deletes task data, remove_data=False is ignored")
        return await self._task_action("delete", ids, force_complete=False)

    def _normalize_task(self, task: dict) -> Torrent:
        additional = task.get("additional") or {}
        detail = additional.get("detail") or {}
        transfer = additional.get("transfer") or {}

        size = require(task, "size")
        downloaded = require(transfer, "size_downloaded")
        uploaded = transfer.get("size_uploaded")
        progress = fraction(downloaded, size)
        completed_time = detail.get("completed_time") or 0

        task_id = require(task, "id")
        return Torrent(
            id=task_id,
            # Download Station does not expose the info hash
            info_hash=task_id,
            name=require(task, "title"),
            state=_task_status(require(task, "status")),
            progress=progress,
            is_completed=completed_time > 0 or progress == 1,
            ratio=share_ratio(uploaded, downloaded),
            save_path=detail.get("destination"),
            total_size=size,
            upload_speed=transfer.get("speed_upload"),
            download_speed=transfer.get("speed_download"),
            total_uploaded=uploaded,
            total_downloaded=downloaded,
            date_added=to_iso8601(detail.get("created_time")),
        )
