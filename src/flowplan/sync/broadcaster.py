"""Fan-out of store change events to live subscribers."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..flowchart.model import FlowchartDocument

logger = logging.getLogger("flowplan.sync")

UPDATE_MESSAGE_TYPE = "flowchart_update"


class Subscriber(Protocol):
    def send(self, message: str) -> Any: ...


def build_update_message(flowchart_id: str, document: FlowchartDocument) -> Dict[str, Any]:
    return {"type": UPDATE_MESSAGE_TYPE, "id": flowchart_id, "data": document.to_dict()}


class SocketIOSubscriber:
    """Delivers broadcast messages to one Socket.IO client on the default `message` event."""

    def __init__(self, socketio: Any, sid: str):
        self.socketio = socketio
        self.sid = sid
        self.closed = False

    def send(self, message: str) -> None:
        self.socketio.send(message, to=self.sid)

    def close(self) -> None:
        self.closed = True

    def __repr__(self) -> str:
        return f"SocketIOSubscriber(sid={self.sid!r})"


class ChangeBroadcaster:
    """Relays `(flowchart_id, document)` changes to every open subscriber.

    Nothing is buffered: subscribers that join late fetch current state over REST.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self._detach: Optional[Callable[[], None]] = None

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def attach(self, store: Any) -> None:
        self.detach()
        self._detach = store.on_change(self.publish)

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)
        logger.debug("Subscriber added: %r", subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
        logger.debug("Subscriber removed: %r", subscriber)

    def publish(self, flowchart_id: str, document: FlowchartDocument) -> int:
        """Send the update envelope to all open subscribers; returns successful deliveries."""
        message = json.dumps(build_update_message(flowchart_id, document))
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        dropped: List[Subscriber] = []
        for subscriber in subscribers:
            if getattr(subscriber, "closed", False):
                dropped.append(subscriber)
                continue
            try:
                subscriber.send(message)
            except Exception as exc:
                logger.debug("Dropping subscriber %r after send failure: %s", subscriber, exc)
                dropped.append(subscriber)
                continue
            delivered += 1

        if dropped:
            with self._lock:
                self._subscribers = [s for s in self._subscribers if s not in dropped]

        logger.debug(
            "Broadcast flowchart id=%s version=%s delivered=%d dropped=%d",
            flowchart_id,
            document.version,
            delivered,
            len(dropped),
        )
        return delivered
