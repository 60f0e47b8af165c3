"""
btclients - one async control interface over several torrent daemons.

Supported backends: Transmission (RPC), qBittorrent (Web API v2) and
Synology Download Station (DSM Web API).
"""

from .base import TorrentClient
from .errors import AuthError, ProtocolError, TorrentClientError, TransportError, ValidationError
from .models import AddTorrentOptions, Torrent, TorrentClientConfig, TorrentFilterRules, TorrentState
from .qbittorrent import QBittorrentClient, QbittorrentFilterRules
from .synology import SynologyDownloadStationClient
from .transmission import TransmissionClient

__version__ = "0.1.0"

# Registry mapping lower-cased type tags to client classes
CLIENT_MAP = {
    "transmission": TransmissionClient,
    "qbittorrent": QBittorrentClient,
    "synologydownloadstation": SynologyDownloadStationClient,
}


def get_torrent_client(config, *, transport=None) -> TorrentClient:
    """
    Factory function to create the appropriate torrent client instance.

    `config` is a TorrentClientConfig or a mapping of overrides that includes
    the backend's `type` tag.
    """
    if isinstance(config, TorrentClientConfig):
        client_type = config.type
    else:
        client_type = config.get("type") or ""

    client_class = CLIENT_MAP.get(client_type.lower())
    if client_class:
        return client_class(config, transport=transport)

    raise ValueError(f"Unsupported torrent client type: {client_type}")


def get_client_display_name(client_type):
    """
    Retrieves the display name defined in the client class itself.
    """
    client_class = CLIENT_MAP.get((client_type or "").lower())
    if client_class:
        return client_class.default_config.name

    # Fallback to title case if class not found
    return (client_type or "").title()


def get_available_clients():
    """
    Returns a sorted list of dictionaries for configuration screens.
    Example: [{'id': 'qBittorrent', 'name': 'qBittorrent', ...}, ...]
    """
    options = []
    for client_class in CLIENT_MAP.values():
        options.append({
            "id": client_class.default_config.type,
            "name": client_class.default_config.name,
            "description": client_class.metadata.description,
            "warnings": list(client_class.metadata.warnings),
            "custom_path": client_class.metadata.custom_path.allowed,
        })

    # Sort alphabetically by display name
    return sorted(options, key=lambda x: x["name"].lower())


__all__ = [
    # Core interfaces and models
    "TorrentClient",
    "Torrent",
    "TorrentState",
    "TorrentFilterRules",
    "QbittorrentFilterRules",
    "AddTorrentOptions",
    "TorrentClientConfig",
    # Errors
    "TorrentClientError",
    "AuthError",
    "TransportError",
    "ProtocolError",
    "ValidationError",
    # Client implementations
    "TransmissionClient",
    "QBittorrentClient",
    "SynologyDownloadStationClient",
    # Registry and factory functions
    "CLIENT_MAP",
    "get_torrent_client",
    "get_client_display_name",
    "get_available_clients",
]
