"""HTTP server for Herald."""

from herald.server.app import HeraldServer, create_app
from herald.server.runner import ServerRunner

__all__ = [
    "HeraldServer",
    "ServerRunner",
    "create_app",
]
