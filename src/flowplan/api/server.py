"""Composition of the Flask + Socket.IO API server."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from flask import Flask
from flask_socketio import SocketIO
from werkzeug.serving import BaseWSGIServer, make_server

from ..config.settings import Settings, get_settings
from ..storage.store import FlowchartStore
from ..sync.broadcaster import ChangeBroadcaster
from .app import create_app
from .routes import register_routes
from .socket_handlers import register_socket_handlers
from .socketio_server import create_socketio

logger = logging.getLogger("flowplan.api")


@dataclass
class ApiServer:
    app: Flask
    socketio: SocketIO
    store: FlowchartStore
    broadcaster: ChangeBroadcaster
    settings: Settings
    _http: Optional[BaseWSGIServer] = field(default=None, init=False, repr=False)

    def run(self, **kwargs) -> None:
        """Serve in the foreground (blocks)."""
        logger.info("Starting API server on %s:%s", self.settings.host, self.settings.port)
        self.socketio.run(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            allow_unsafe_werkzeug=True,
            **kwargs,
        )

    def start_background(self) -> threading.Thread:
        """Serve on a daemon thread without writing anything to stdout."""
        self._http = make_server(self.settings.host, self.settings.port, self.app, threaded=True)
        thread = threading.Thread(target=self._http.serve_forever, name="flowplan-api", daemon=True)
        thread.start()
        logger.info("API server listening on %s:%s", self.settings.host, self.settings.port)
        return thread

    def close(self) -> None:
        if self._http is not None:
            self._http.shutdown()
            self._http = None
        self.broadcaster.detach()
        self.store.close()


def create_server(
    settings: Optional[Settings] = None,
    *,
    store: Optional[FlowchartStore] = None,
) -> ApiServer:
    settings = settings or get_settings()
    app = create_app(settings)
    socketio = create_socketio(app, settings)
    store = store or FlowchartStore.from_settings(settings)

    broadcaster = ChangeBroadcaster()
    broadcaster.attach(store)

    register_routes(app, store=store)
    register_socket_handlers(socketio, broadcaster=broadcaster)
    return ApiServer(
        app=app,
        socketio=socketio,
        store=store,
        broadcaster=broadcaster,
        settings=settings,
    )
