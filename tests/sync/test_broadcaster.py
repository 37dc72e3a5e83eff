import json
from unittest.mock import MagicMock

from flowplan.sync.broadcaster import (
    ChangeBroadcaster,
    SocketIOSubscriber,
    build_update_message,
)


class RecordingSubscriber:
    def __init__(self):
        self.closed = False
        self.messages = []

    def send(self, message):
        self.messages.append(message)


class BrokenSubscriber:
    def send(self, message):
        raise ConnectionError("socket closed")


def test_update_envelope_shape(store):
    flowchart_id = store.create("Plan")
    document = store.read(flowchart_id)

    message = build_update_message(flowchart_id, document)

    assert message["type"] == "flowchart_update"
    assert message["id"] == flowchart_id
    assert message["data"]["version"] == 1


def test_publish_delivers_serialized_envelope_to_all(store):
    broadcaster = ChangeBroadcaster()
    first, second = RecordingSubscriber(), RecordingSubscriber()
    broadcaster.subscribe(first)
    broadcaster.subscribe(second)
    broadcaster.attach(store)

    flowchart_id = store.create("Plan")

    assert len(first.messages) == 1
    assert first.messages == second.messages
    payload = json.loads(first.messages[0])
    assert payload == {
        "type": "flowchart_update",
        "id": flowchart_id,
        "data": store.read(flowchart_id).to_dict(),
    }


def test_closed_and_failing_subscribers_are_dropped(store):
    broadcaster = ChangeBroadcaster()
    healthy, closed = RecordingSubscriber(), RecordingSubscriber()
    closed.closed = True
    broadcaster.subscribe(healthy)
    broadcaster.subscribe(closed)
    broadcaster.subscribe(BrokenSubscriber())

    delivered = broadcaster.publish("plan", store.read(store.create("Plan")))

    assert delivered == 1
    assert closed.messages == []
    assert broadcaster.subscriber_count == 1


def test_unsubscribe_and_detach(store):
    broadcaster = ChangeBroadcaster()
    subscriber = RecordingSubscriber()
    broadcaster.subscribe(subscriber)
    broadcaster.attach(store)

    store.create("One")
    broadcaster.detach()
    store.create("Two")
    broadcaster.attach(store)
    broadcaster.unsubscribe(subscriber)
    store.create("Three")

    assert [json.loads(m)["id"] for m in subscriber.messages] == ["one"]


def test_no_replay_for_late_subscribers(store):
    broadcaster = ChangeBroadcaster()
    broadcaster.attach(store)
    store.create("Early")

    late = RecordingSubscriber()
    broadcaster.subscribe(late)

    assert late.messages == []


def test_socketio_subscriber_sends_to_its_sid():
    socketio = MagicMock()
    subscriber = SocketIOSubscriber(socketio, "sid-1")

    subscriber.send('{"type": "flowchart_update"}')

    socketio.send.assert_called_once_with('{"type": "flowchart_update"}', to="sid-1")
    subscriber.close()
    assert subscriber.closed
