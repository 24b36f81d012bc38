"""sockonsole: drive one long-lived subprocess through three Unix sockets."""

from sockonsole.errors import SockonsoleError

__version__ = "0.1.0"

__all__ = ["SockonsoleError"]
