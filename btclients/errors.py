# btclients/errors.py


class TorrentClientError(Exception):
    """Base class for every failure raised by a torrent client adapter."""

    def __init__(self, message: str, *, retried: bool = False):
        super().__init__(message)
        # Set only by the one-shot session renewal retry of the RPC backend
        self.retried = retried


class AuthError(TorrentClientError):
    """Credentials rejected, session expired, or session renewal failed."""


class TransportError(TorrentClientError):
    """Network failure, timeout or an unexpected HTTP status."""


class ProtocolError(TorrentClientError):
    """The daemon answered, but not in the shape we expected."""


class ValidationError(TorrentClientError):
    """The caller supplied an incomplete or unknown option."""
