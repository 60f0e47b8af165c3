# btclients/__main__.py - command line front end
import argparse
import asyncio
import json
import logging
import sys

from . import get_available_clients, get_torrent_client
from .config import client_options, load_config
from .errors import TorrentClientError
from .models import AddTorrentOptions, TorrentFilterRules


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr
    )

    # Silence noisy libraries
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="btclients", description="Control a torrent daemon.")
    parser.add_argument("--type", help="Backend type, e.g. Transmission, qBittorrent, synologyDownloadStation")
    parser.add_argument("--address", help="Daemon address, e.g. http://localhost:9091/")
    parser.add_argument("--username")
    parser.add_argument("--password")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--env-file", help="Load configuration from this .env file")
    parser.add_argument("-v", "--verbose", action="store_true")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("clients", help="List supported backends")
    commands.add_parser("ping", help="Check connectivity and credentials")

    list_parser = commands.add_parser("list", help="List torrents")
    list_parser.add_argument("--completed", action="store_true")
    list_parser.add_argument("--id", dest="ids", action="append")

    add_parser = commands.add_parser("add", help="Add a magnet link or .torrent URL")
    add_parser.add_argument("source")
    add_parser.add_argument("--save-path")
    add_parser.add_argument("--label")
    add_parser.add_argument("--paused", action="store_true", default=None)
    add_parser.add_argument("--local", action="store_true", help="Fetch the .torrent locally and upload it")

    for name in ("pause", "resume", "remove"):
        action_parser = commands.add_parser(name, help=f"{name.title()} torrents")
        action_parser.add_argument("ids", nargs="+")
        if name == "remove":
            action_parser.add_argument("--remove-data", action="store_true")

    return parser


def client_from_args(args):
    # Priority: CLI arg > environment (.env) > backend defaults
    options = client_options(load_config(args.env_file))
    for key in ("type", "address", "username", "password", "timeout"):
        value = getattr(args, key)
        if value is not None:
            options[key] = value
    return get_torrent_client(options)


async def run(args) -> int:
    if args.command == "clients":
        print(json.dumps(get_available_clients(), indent=2))
        return 0

    client = client_from_args(args)

    if args.command == "list":
        torrents = await client.get_torrents_by(TorrentFilterRules(ids=args.ids, complete=args.completed))
        print(json.dumps([t.to_dict() for t in torrents], indent=2))
        return 0

    if args.command == "ping":
        ok = await client.ping()
    elif args.command == "add":
        options = AddTorrentOptions(
            save_path=args.save_path,
            label=args.label,
            add_at_paused=args.paused,
            local_download=args.local,
        )
        ok = await client.add_torrent(args.source, options)
    elif args.command == "pause":
        ok = await client.pause_torrent(args.ids)
    elif args.command == "resume":
        ok = await client.resume_torrent(args.ids)
    else:
        ok = await client.remove_torrent(args.ids, remove_data=args.remove_data)

    print(json.dumps({"client": client.display_name, "command": args.command, "success": ok}))
    return 0 if ok else 1


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    try:
        return asyncio.run(run(args))
    except TorrentClientError as e:
        logging.getLogger("btclients").error(f"{type(e).__name__}: {e}")
        return 2
    except ValueError as e:
        logging.getLogger("btclients").error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
