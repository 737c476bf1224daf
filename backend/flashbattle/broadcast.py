"""Fire-and-forget fan-out over Socket.IO.

No acknowledgment, no replay: members that are disconnected or join later
never see an earlier event.
"""
from flashbattle import socketio

NAMESPACE = '/ws'


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


def emit_to_room(room_id: str, event: str, payload) -> None:
    socketio.emit(event, payload, to=room_channel(room_id), namespace=NAMESPACE)


def emit_to_all(event: str, payload) -> None:
    socketio.emit(event, payload, namespace=NAMESPACE)


def close_room_channel(room_id: str) -> None:
    """Drop every member from the room's channel."""
    socketio.close_room(room_channel(room_id), namespace=NAMESPACE)
