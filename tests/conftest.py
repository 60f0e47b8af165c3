"""Shared fixtures: fake daemons built on httpx.MockTransport."""

import re
from urllib.parse import parse_qs

import bencodepy
import httpx
import pytest


class FakeDaemon:
    """Records every request and answers it with `handler`."""

    def __init__(self, handler):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def multipart_fields(request: httpx.Request) -> dict[str, bytes]:
    """Parse a multipart/form-data body into {name: raw value}."""
    boundary = request.headers["content-type"].split("boundary=")[1].encode()
    fields = {}
    for part in request.content.split(b"--" + boundary):
        head, sep, value = part.partition(b"\r\n\r\n")
        if not sep:
            continue
        match = re.search(rb'name="([^"]+)"', head)
        if match:
            fields[match.group(1).decode()] = value[:-2] if value.endswith(b"\r\n") else value
    return fields


def multipart_filename(request: httpx.Request, name: str) -> str | None:
    match = re.search(rb'name="' + name.encode() + rb'"; filename="([^"]+)"', request.content)
    return match.group(1).decode() if match else None


def urlencoded_fields(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode(), keep_blank_values=True).items()}


@pytest.fixture
def torrent_bytes() -> bytes:
    return bencodepy.encode({
        b"announce": b"http://tracker.test/announce",
        b"info": {
            b"name": b"ubuntu.iso",
            b"length": 1024,
            b"piece length": 16384,
            b"pieces": b"\x00" * 20,
        },
    })
