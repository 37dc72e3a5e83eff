"""Live sync: change broadcasting and client replicas."""

from .broadcaster import ChangeBroadcaster, SocketIOSubscriber, build_update_message
from .history import HistoryEntry, UndoHistory
from .replica import FlowchartReplica, RestFlowchartSaver, store_saver

__all__ = [
    "ChangeBroadcaster",
    "FlowchartReplica",
    "HistoryEntry",
    "RestFlowchartSaver",
    "SocketIOSubscriber",
    "UndoHistory",
    "build_update_message",
    "store_saver",
]
