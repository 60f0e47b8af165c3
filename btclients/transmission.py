# btclients/transmission.py
import base64
import json
import logging
import math

import httpx

from .base import TorrentClient
from .errors import AuthError, ProtocolError, TorrentClientError, TransportError
from .models import (
    CUSTOM_PATH_DESCRIPTION,
    ClientMetaData,
    CustomPathFeature,
    Torrent,
    TorrentClientConfig,
    TorrentState,
)
from .utils import clamp_progress, normalize_ids, require, share_ratio, to_iso8601


logger = logging.getLogger(__name__)

SESSION_ID_HEADER = "X-Transmission-Session-Id"

TORRENT_FIELDS = [
    "addedDate", "id", "hashString", "isFinished", "name", "percentDone",
    "uploadRatio", "downloadDir", "status", "totalSize", "leftUntilDone",
    "labels", "rateDownload", "rateUpload", "uploadedEver", "downloadedEver",
    "error",
]

# tr_torrent_activity
STATUS_MAP = {
    0: TorrentState.PAUSED,       # stopped
    1: TorrentState.CHECKING,     # check wait
    2: TorrentState.CHECKING,     # check
    3: TorrentState.QUEUED,       # download wait
    4: TorrentState.DOWNLOADING,  # download
    5: TorrentState.QUEUED,       # seed wait
    6: TorrentState.SEEDING,      # seed
}

TR_STAT_LOCAL_ERROR = 3
TR_RATIO_NA = -1
TR_RATIO_INF = -2


class TransmissionClient(TorrentClient):
    """
    Client for a Transmission RPC server.

    There is no login call: every request carries the last session id we saw,
    and a 409 answer hands us a fresh one. The request is then replayed once.
    """

    default_config = TorrentClientConfig(
        type="Transmission",
        name="Transmission",
        uuid="1cc694ef-7f64-4882-b33a-b578a76fd35c",
        address="http://localhost:9091/",
    )
    metadata = ClientMetaData(
        description="Transmission is a cross-platform BitTorrent client with a very small resource footprint.",
        warnings=(
            "Requests go to http://host:port/transmission/rpc unless the address already "
            "contains 'rpc'; check the rpc-url value in settings.json if the connection fails.",
        ),
        custom_path=CustomPathFeature(allowed=True, description=CUSTOM_PATH_DESCRIPTION),
    )

    def __init__(self, options=None, *, transport=None):
        super().__init__(options, transport=transport)
        address = self.config.address
        # Transmission needs the RPC endpoint path, add it if the user left it out
        if "rpc" not in address:
            address = f"{address.rstrip('/')}/transmission/rpc"
        self.address = address
        self.session_id: str | None = None

    async def _post(self, client: httpx.AsyncClient, body: str) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self.session_id:
            headers[SESSION_ID_HEADER] = self.session_id
        return await client.post(self.address, content=body, headers=headers)

    def _parse_response(self, response: httpx.Response) -> dict:
        if response.status_code == 409:
            raise AuthError("Transmission rejected the session id")
        if response.status_code in (401, 403):
            raise AuthError(f"Transmission rejected the credentials (HTTP {response.status_code})")
        if response.is_error:
            raise TransportError(f"Transmission returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(f"Invalid JSON response from Transmission: {response.text[:200]}") from e
        if not isinstance(data, dict) or "result" not in data:
            raise ProtocolError(f"Unexpected Transmission response: {data!r}")
        return data

    async def _rpc_request(self, method: str, arguments: dict | None = None) -> dict:
        """Performs an RPC call, renewing the session id once on 409."""
        body = json.dumps({"method": method, "arguments": arguments or {}})

        # Use Basic Auth if credentials are provided
        auth = None
        if self.config.username or self.config.password:
            auth = (self.config.username, self.config.password)

        try:
            async with self._http_client(auth=auth) as client:
                response = await self._post(client, body)
                if response.status_code != 409:
                    return self._parse_response(response)

                session_id = response.headers.get(SESSION_ID_HEADER)
                if not session_id:
                    raise AuthError("Transmission answered 409 without a session id")
                self.session_id = session_id
                logger.debug(f"Transmission session id renewed, retrying {method}")

                try:
                    response = await self._post(client, body)
                    return self._parse_response(response)
                except TorrentClientError as e:
                    e.retried = True
                    raise
                except httpx.RequestError as e:
                    raise TransportError(f"Network error communicating with Transmission: {e}", retried=True) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error communicating with Transmission: {e}") from e

    @staticmethod
    def _rpc_ids(ids):
        """Torrent ids as Transmission expects them; None means every torrent."""
        if ids == "all":
            return None
        if ids == "recently-active":
            return ids
        # Numeric strings (e.g. from a command line) are torrent ids, not hashes
        return [int(i) if isinstance(i, str) and i.isdigit() and len(i) < 40 else i for i in normalize_ids(ids)]

    def _id_arguments(self, ids) -> dict:
        rpc_ids = self._rpc_ids(ids)
        return {} if rpc_ids is None else {"ids": rpc_ids}

    async def add_torrent(self, url, options=None) -> bool:
        try:
            options = self._add_options(options)
            arguments = {}
            if options.local_download and not url.startswith("magnet:"):
                content = await self._download_torrent(url)
                arguments["metainfo"] = base64.b64encode(content).decode("ascii")
            else:
                arguments["filename"] = url

            if options.save_path:
                arguments["download-dir"] = options.save_path
            if options.add_at_paused is not None:
                arguments["paused"] = options.add_at_paused

            data = await self._rpc_request("torrent-add", arguments)
        except TorrentClientError as e:
            return self._mutation_failed("add", e)

        if data["result"] != "success":
            logger.warning(f"Transmission refused torrent-add: {data['result']}")
            return False

        if options.label:
            await self._set_label(data.get("arguments") or {}, options.label)
        return True

    async def _set_label(self, added: dict, label: str) -> None:
        # Labels need Transmission 3.0+, an older daemon just keeps the torrent unlabeled
        torrent = added.get("torrent-added") or added.get("torrent-duplicate") or {}
        if "id" not in torrent:
            return
        try:
            await self._rpc_request("torrent-set", {"ids": [torrent["id"]], "labels": [label]})
        except TorrentClientError as e:
            logger.debug(f"Could not label torrent {torrent['id']}: {e}")

    async def get_torrents_by(self, rules) -> list[Torrent]:
        rules = self._filter_rules(rules)
        arguments = {"fields": TORRENT_FIELDS}
        if rules.ids is not None:
            arguments.update(self._id_arguments(rules.ids))

        data = await self._rpc_request("torrent-get", arguments)
        if data["result"] != "success":
            raise ProtocolError(f"torrent-get failed: {data['result']}")
        try:
            raw_torrents = data["arguments"]["torrents"]
        except (KeyError, TypeError):
            raise ProtocolError("torrent-get response has no torrent list") from None

        torrents = [self._normalize_torrent(raw) for raw in raw_torrents]
        # No server side "completed" filter in Transmission
        if rules.complete:
            torrents = [t for t in torrents if t.is_completed]
        return torrents

    async def _torrent_action(self, method: str, arguments: dict) -> bool:
        try:
            data = await self._rpc_request(method, arguments)
        except TorrentClientError as e:
            return self._mutation_failed(method, e)
        return data["result"] == "success"

    async def pause_torrent(self, ids) -> bool:
        try:
            arguments = self._id_arguments(ids)
        except TorrentClientError as e:
            return self._mutation_failed("torrent-stop", e)
        return await self._torrent_action("torrent-stop", arguments)

    async def resume_torrent(self, ids) -> bool:
        try:
            arguments = self._id_arguments(ids)
        except TorrentClientError as e:
            return self._mutation_failed("torrent-start", e)
        return await self._torrent_action("torrent-start", arguments)

    async def remove_torrent(self, ids, remove_data: bool = False) -> bool:
        try:
            arguments = self._id_arguments(ids)
        except TorrentClientError as e:
            return self._mutation_failed("torrent-remove", e)
        arguments["delete-local-data"] = bool(remove_data)
        return await self._torrent_action("torrent-remove", arguments)

    async def ping(self) -> bool:
        try:
            data = await self._rpc_request("session-get")
        except TorrentClientError as e:
            logger.debug(f"Transmission ping failed: {e}")
            return False
        return data["result"] == "success"

    def _normalize_torrent(self, raw: dict) -> Torrent:
        """Convert a torrent-get record to the canonical Torrent."""
        state = STATUS_MAP.get(require(raw, "status"), TorrentState.UNKNOWN)
        if raw.get("error") == TR_STAT_LOCAL_ERROR:
            state = TorrentState.ERROR

        progress = clamp_progress(require(raw, "percentDone"))
        left_until_done = raw.get("leftUntilDone")
        is_completed = (left_until_done is not None and left_until_done < 1) or progress == 1

        uploaded = raw.get("uploadedEver")
        downloaded = raw.get("downloadedEver")
        ratio = raw.get("uploadRatio")
        if ratio == TR_RATIO_INF:
            ratio = math.inf
        elif ratio is None or ratio == TR_RATIO_NA:
            ratio = share_ratio(uploaded, downloaded)

        labels = raw.get("labels")
        return Torrent(
            id=require(raw, "id"),
            info_hash=require(raw, "hashString"),
            name=require(raw, "name"),
            state=state,
            progress=progress,
            is_completed=is_completed,
            ratio=ratio,
            save_path=raw.get("downloadDir"),
            label=labels[0] if labels else None,
            total_size=raw.get("totalSize"),
            upload_speed=raw.get("rateUpload"),
            download_speed=raw.get("rateDownload"),
            total_uploaded=uploaded,
            total_downloaded=downloaded,
            date_added=to_iso8601(raw.get("addedDate")),
        )
