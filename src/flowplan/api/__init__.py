"""Flask REST + Socket.IO surface."""

from .server import ApiServer, create_server

__all__ = ["ApiServer", "create_server"]
