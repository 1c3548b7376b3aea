"""
Message channel between foreground views and the background context.

Views never touch the alarm set directly. They post SET_ALARMS to the
background; the background broadcasts REFRESH_SCHEDULE to every connected
view when the day rolls over.
"""

import logging
import threading

logger = logging.getLogger(__name__)

SET_ALARMS = "SET_ALARMS"
REFRESH_SCHEDULE = "REFRESH_SCHEDULE"


class MessageError(ValueError):
    """A message did not have the expected shape."""


def set_alarms_message(alarms: list) -> dict:
    """Build a SET_ALARMS message from [{name, time}] pairs."""
    return {"kind": SET_ALARMS, "alarms": [{"name": a["name"], "time": a["time"]} for a in alarms]}


def refresh_message() -> dict:
    return {"kind": REFRESH_SCHEDULE}


def parse_alarms(message: dict) -> dict:
    """
    Validate a SET_ALARMS message and return {name: epoch_ms}.

    A later pair for the same name wins. Raises MessageError for anything
    malformed; nothing is returned from a partly valid batch.
    """
    alarms = message.get("alarms") if isinstance(message, dict) else None
    if not isinstance(alarms, list):
        raise MessageError("SET_ALARMS message has no alarms list")
    parsed = {}
    for entry in alarms:
        if not isinstance(entry, dict):
            raise MessageError(f"Alarm entry is not an object: {entry!r}")
        name = entry.get("name")
        when = entry.get("time")
        if not isinstance(name, str) or not name:
            raise MessageError(f"Alarm entry has no name: {entry!r}")
        if not isinstance(when, (int, float)) or isinstance(when, bool):
            raise MessageError(f"Alarm {name!r} has a non-numeric time: {when!r}")
        parsed[name] = int(when)
    return parsed


class ClientPort:
    """A connected foreground view's end of the channel."""

    def __init__(self, channel, on_message):
        self._channel = channel
        self.on_message = on_message

    def post(self, message: dict) -> None:
        self._channel.post_to_background(message)

    def close(self) -> None:
        self._channel._disconnect(self)


class MessageChannel:
    def __init__(self):
        self._lock = threading.Lock()
        self._clients: list = []
        self._background = None

    def attach_background(self, handler) -> None:
        """Route foreground posts to handler(message). Replaces any earlier handler."""
        with self._lock:
            self._background = handler

    def connect(self, on_message) -> ClientPort:
        port = ClientPort(self, on_message)
        with self._lock:
            self._clients.append(port)
        return port

    def _disconnect(self, port: ClientPort) -> None:
        with self._lock:
            if port in self._clients:
                self._clients.remove(port)

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def post_to_background(self, message: dict) -> None:
        with self._lock:
            handler = self._background
        if handler is None:
            raise RuntimeError("No background context is attached to the channel")
        handler(message)

    def broadcast(self, message: dict) -> int:
        """Deliver message to every connected view. Returns how many received it."""
        with self._lock:
            clients = list(self._clients)
        delivered = 0
        for port in clients:
            try:
                port.on_message(message)
            except Exception:
                logger.exception("View failed to handle %s", message.get("kind"))
                continue
            delivered += 1
        return delivered
