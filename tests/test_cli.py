import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from btclients import AuthError, Torrent, TorrentState
from btclients import __main__ as cli
from btclients.config import FALLBACK_CONFIG


@pytest.fixture
def fake_client(monkeypatch):
    client = MagicMock()
    client.display_name = "Seedbox"
    client.ping = AsyncMock(return_value=True)
    client.add_torrent = AsyncMock(return_value=True)
    client.pause_torrent = AsyncMock(return_value=True)
    client.resume_torrent = AsyncMock(return_value=False)
    client.remove_torrent = AsyncMock(return_value=True)
    client.get_torrents_by = AsyncMock(return_value=[
        Torrent(id=1, info_hash="ab" * 20, name="ubuntu.iso", state=TorrentState.SEEDING,
                progress=1.0, is_completed=True, ratio=2.0),
    ])

    factory = MagicMock(return_value=client)
    monkeypatch.setattr(cli, "get_torrent_client", factory)
    monkeypatch.setattr(cli, "load_config", lambda path=None: dict(FALLBACK_CONFIG))
    client.factory = factory
    return client


def test_clients_command(capsys):
    assert cli.main(["clients"]) == 0
    names = [c["name"] for c in json.loads(capsys.readouterr().out)]
    assert names == ["qBittorrent", "Synology Download Station", "Transmission"]


def test_cli_args_override_environment(fake_client):
    assert cli.main(["--type", "Transmission", "--address", "http://nas:9091/", "--timeout", "5", "ping"]) == 0
    fake_client.factory.assert_called_once_with({"type": "Transmission", "address": "http://nas:9091/", "timeout": 5.0})


def test_list(fake_client, capsys):
    assert cli.main(["list", "--completed", "--id", "1"]) == 0

    rules = fake_client.get_torrents_by.await_args.args[0]
    assert rules.ids == ["1"]
    assert rules.complete is True
    listed = json.loads(capsys.readouterr().out)
    assert listed[0]["state"] == "seeding"
    assert listed[0]["name"] == "ubuntu.iso"


def test_add(fake_client, capsys):
    assert cli.main(["add", "magnet:?xt=urn:btih:abc", "--save-path", "/data", "--paused"]) == 0

    url, options = fake_client.add_torrent.await_args.args
    assert url == "magnet:?xt=urn:btih:abc"
    assert options.save_path == "/data"
    assert options.add_at_paused is True
    assert options.local_download is False
    assert json.loads(capsys.readouterr().out) == {"client": "Seedbox", "command": "add", "success": True}


def test_add_without_paused_flag_keeps_daemon_default(fake_client):
    cli.main(["add", "magnet:?xt=urn:btih:abc"])
    assert fake_client.add_torrent.await_args.args[1].add_at_paused is None


def test_remove_with_data(fake_client):
    assert cli.main(["remove", "a", "b", "--remove-data"]) == 0
    fake_client.remove_torrent.assert_awaited_once_with(["a", "b"], remove_data=True)


def test_false_result_exits_1(fake_client):
    assert cli.main(["resume", "a"]) == 1


def test_client_error_exits_2(fake_client):
    fake_client.get_torrents_by.side_effect = AuthError("bad password")
    assert cli.main(["list"]) == 2


def test_unknown_type_exits_2(monkeypatch):
    monkeypatch.setattr(cli, "load_config", lambda path=None: dict(FALLBACK_CONFIG))
    assert cli.main(["--type", "deluge", "ping"]) == 2
