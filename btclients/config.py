# btclients/config.py - environment based configuration
import os

from dotenv import find_dotenv, load_dotenv

from .errors import ValidationError


# Define fallback values
FALLBACK_CONFIG = {
    "TORRENT_CLIENT_TYPE": "qBittorrent",
    "TORRENT_CLIENT_NAME": None,
    "TORRENT_CLIENT_URL": None,
    "TORRENT_CLIENT_USERNAME": None,
    "TORRENT_CLIENT_PASSWORD": None,
    "TORRENT_CLIENT_TIMEOUT": None,
}

# Environment keys to TorrentClientConfig fields
OPTION_KEYS = {
    "TORRENT_CLIENT_TYPE": "type",
    "TORRENT_CLIENT_NAME": "name",
    "TORRENT_CLIENT_URL": "address",
    "TORRENT_CLIENT_USERNAME": "username",
    "TORRENT_CLIENT_PASSWORD": "password",
    "TORRENT_CLIENT_TIMEOUT": "timeout",
}


def load_config(dotenv_path=None) -> dict:
    """Fallbacks, overridden by a .env file, overridden by the real environment."""
    # Without an explicit path, look for .env from the working directory upwards
    load_dotenv(dotenv_path or find_dotenv(usecwd=True))
    config = FALLBACK_CONFIG.copy()
    env_config = {key: os.getenv(key) for key in config.keys() if os.getenv(key) is not None}
    config.update(env_config)
    return config


def client_options(config: dict) -> dict:
    """
    Converts a load_config() result into adapter overrides.

    Unset values are left out so each backend keeps its own defaults
    (address, display name...).
    """
    options = {}
    for key, field_name in OPTION_KEYS.items():
        value = config.get(key)
        if value is None or value == "":
            continue
        options[field_name] = value

    if "timeout" in options:
        try:
            options["timeout"] = float(options["timeout"])
        except ValueError:
            raise ValidationError(f"TORRENT_CLIENT_TIMEOUT must be a number of seconds, got {options['timeout']!r}") from None
    return options
