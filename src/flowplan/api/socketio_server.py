"""Socket.IO factory for the API server."""

from __future__ import annotations

from typing import Optional

from flask import Flask
from flask_socketio import SocketIO

from ..config.settings import Settings
from .common import cors_origins


def create_socketio(app: Flask, settings: Optional[Settings] = None) -> SocketIO:
    return SocketIO(
        app,
        cors_allowed_origins=cors_origins(settings),
        logger=False,
        engineio_logger=False,
        max_http_buffer_size=10 * 1024 * 1024,
        async_mode="threading",
        ping_interval=10,
        ping_timeout=60,
    )
