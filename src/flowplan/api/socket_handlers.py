"""Socket handlers for the API server.

Clients only listen: every connection is subscribed to the change broadcaster
and receives `flowchart_update` envelopes on the default `message` event.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask import request
from flask_socketio import SocketIO

from ..sync.broadcaster import ChangeBroadcaster, SocketIOSubscriber

logger = logging.getLogger("flowplan.api")


def register_socket_handlers(socketio: SocketIO, *, broadcaster: ChangeBroadcaster) -> None:
    subscribers: Dict[str, SocketIOSubscriber] = {}

    @socketio.on("connect")
    def socket_connect() -> None:
        sid = request.sid
        subscriber = SocketIOSubscriber(socketio, sid)
        subscribers[sid] = subscriber
        broadcaster.subscribe(subscriber)
        logger.info("Socket connected sid=%s subscribers=%d", sid, broadcaster.subscriber_count)

    @socketio.on("disconnect")
    def socket_disconnect(*_args: Any) -> None:
        sid = request.sid
        subscriber = subscribers.pop(sid, None)
        if subscriber is not None:
            subscriber.close()
            broadcaster.unsubscribe(subscriber)
        logger.info("Socket disconnected sid=%s", sid)

    @socketio.on_error_default  # type: ignore[misc]
    def default_socket_error(exc: Exception) -> None:
        logger.exception("Socket error: %s", exc)
