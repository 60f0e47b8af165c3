import hashlib

import bencodepy
import httpx
import pytest

from btclients import ProtocolError, TransportError
from btclients.hashing import calculate_info_hash, fetch_torrent_file
from conftest import FakeDaemon


def test_info_hash_covers_info_dict_only(torrent_bytes):
    info = bencodepy.decode(torrent_bytes)[b"info"]
    expected = hashlib.sha1(bencodepy.encode(info)).hexdigest()

    assert calculate_info_hash(torrent_bytes) == expected
    assert len(expected) == 40


@pytest.mark.parametrize("content", [
    b"<html>Please log in</html>",
    bencodepy.encode({b"announce": b"http://tracker.test/announce"}),
    bencodepy.encode([b"not", b"a", b"dict"]),
])
def test_not_a_torrent(content):
    with pytest.raises(ProtocolError):
        calculate_info_hash(content)


@pytest.mark.asyncio
async def test_fetch_follows_redirects(torrent_bytes):
    def handler(request):
        if request.url.path == "/dl":
            return httpx.Response(302, headers={"location": "http://cdn.test/file.torrent"})
        return httpx.Response(200, content=torrent_bytes)

    daemon = FakeDaemon(handler)
    content = await fetch_torrent_file("http://tracker.test/dl", transport=daemon.transport)

    assert content == torrent_bytes
    assert [str(r.url) for r in daemon.requests] == ["http://tracker.test/dl", "http://cdn.test/file.torrent"]


@pytest.mark.asyncio
async def test_fetch_http_error():
    daemon = FakeDaemon(lambda request: httpx.Response(404))
    with pytest.raises(TransportError, match="404"):
        await fetch_torrent_file("http://tracker.test/gone.torrent", transport=daemon.transport)


@pytest.mark.asyncio
async def test_fetch_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError):
        await fetch_torrent_file("http://tracker.test/a.torrent", transport=FakeDaemon(handler).transport)
