# btclients/hashing.py - .torrent download and info hash utilities
import hashlib

import bencodepy
import httpx

from .errors import ProtocolError, TransportError


async def fetch_torrent_file(url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> bytes:
    """
    Downloads a .torrent file and makes sure it actually is bencoded metainfo.

    Args:
        url: The URL to download the .torrent file from
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests inject a mock here)

    Returns:
        The raw file content, ready to be re-uploaded to a daemon
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise TransportError(f"Failed to download torrent file {url}: HTTP {e.response.status_code}") from e
    except httpx.RequestError as e:
        raise TransportError(f"Failed to download torrent file {url}: {e}") from e

    content = response.content
    # Raises ProtocolError for anything that is not a torrent (login pages, 404 bodies...)
    calculate_info_hash(content)
    return content


def calculate_info_hash(content: bytes) -> str:
    """Returns the SHA1 hash of the torrent's info dictionary."""
    try:
        torrent_data = bencodepy.decode(content)
    except Exception as e:
        raise ProtocolError(f"Not a bencoded torrent file: {e}") from e

    if not isinstance(torrent_data, dict) or b"info" not in torrent_data:
        raise ProtocolError("Torrent file has no info dictionary")

    bencoded_info = bencodepy.encode(torrent_data[b"info"])
    return hashlib.sha1(bencoded_info).hexdigest()
