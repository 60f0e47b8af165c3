# btclients/base.py
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

import httpx

from .errors import TorrentClientError, ValidationError
from .hashing import fetch_torrent_file
from .models import AddTorrentOptions, ClientMetaData, Torrent, TorrentClientConfig, TorrentFilterRules


logger = logging.getLogger(__name__)


class TorrentClient(ABC):
    """
    Uniform control surface over one remote torrent daemon.

    Subclasses own their session credential and translate every call into the
    daemon's wire format. Mutating calls report success as a bool; queries raise
    TorrentClientError subclasses so "empty" and "unreachable" stay distinct.
    """

    default_config: TorrentClientConfig
    metadata: ClientMetaData
    filter_rules_class: type[TorrentFilterRules] = TorrentFilterRules

    def __init__(self, options: Mapping[str, Any] | TorrentClientConfig | None = None, *,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.config = self.default_config.merge(options)
        self._transport = transport

    @property
    def display_name(self) -> str:
        """Returns the user-friendly display name of the client."""
        return self.config.name

    def _http_client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport, **kwargs)

    async def _download_torrent(self, url: str) -> bytes:
        return await fetch_torrent_file(url, timeout=self.config.timeout, transport=self._transport)

    def _add_options(self, options) -> AddTorrentOptions:
        if options is None:
            return AddTorrentOptions()
        if isinstance(options, AddTorrentOptions):
            return options
        try:
            return AddTorrentOptions(**options)
        except TypeError as e:
            raise ValidationError(f"Invalid add options: {e}") from e

    def _filter_rules(self, rules) -> TorrentFilterRules:
        if rules is None:
            return self.filter_rules_class()
        if isinstance(rules, TorrentFilterRules):
            return rules
        try:
            return self.filter_rules_class(**rules)
        except TypeError as e:
            raise ValidationError(f"Invalid filter rules: {e}") from e

    def _mutation_failed(self, action: str, error: TorrentClientError) -> bool:
        # A failed session renewal retry is the one failure callers must see
        if error.retried:
            raise error
        logger.warning(f"{self.display_name}: {action} failed: {error}")
        return False

    @abstractmethod
    async def add_torrent(self, url: str, options: AddTorrentOptions | Mapping[str, Any] | None = None) -> bool:
        """Adds a magnet link or .torrent URL."""

    async def get_all_torrents(self) -> list[Torrent]:
        return await self.get_torrents_by(None)

    async def get_torrent(self, torrent_id) -> Torrent | None:
        """Returns the first torrent matching the id, or None."""
        torrents = await self.get_torrents_by(self.filter_rules_class(ids=[torrent_id]))
        return torrents[0] if torrents else None

    @abstractmethod
    async def get_torrents_by(self, rules: TorrentFilterRules | Mapping[str, Any] | None) -> list[Torrent]:
        pass

    @abstractmethod
    async def pause_torrent(self, ids) -> bool:
        pass

    @abstractmethod
    async def resume_torrent(self, ids) -> bool:
        pass

    @abstractmethod
    async def remove_torrent(self, ids, remove_data: bool = False) -> bool:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Establishes or validates a session; never raises for daemon failures."""
