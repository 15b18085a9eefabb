"""
Control messages delivered to a running station by the live configuration channel
"""

import json
import queue
from dataclasses import dataclass
from typing import Any, Optional, Union

# Wire message types sent by the SatHub backend
MESSAGE_TYPE_PING = "ping"
MESSAGE_TYPE_PONG = "pong"
MESSAGE_TYPE_SETTINGS_UPDATE = "settings_update"
MESSAGE_TYPE_RESTART_COMMAND = "restart_command"


@dataclass(frozen=True)
class SettingsChanged:
    health_check_interval: int
    process_delay: int


@dataclass(frozen=True)
class RestartRequested:
    pass


@dataclass(frozen=True)
class StopRequested:
    reason: str = ""


ControlMessage = Union[SettingsChanged, RestartRequested, StopRequested]


class ControlMessageError(ValueError):
    """A control message could not be decoded."""


def parse_message(raw: Union[str, bytes, dict]) -> Optional[ControlMessage]:
    """
    Decode one wire message into a typed control message.

    Keep-alive and unknown message types return None. A settings update
    whose payload is missing or not made of positive integers raises
    ControlMessageError.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ControlMessageError(f"invalid control message: {e}") from e
    if not isinstance(raw, dict):
        raise ControlMessageError("control message is not a JSON object")

    message_type = raw.get('type')
    if message_type == MESSAGE_TYPE_SETTINGS_UPDATE:
        payload = raw.get('payload')
        if not isinstance(payload, dict):
            raise ControlMessageError("settings update without payload")
        return SettingsChanged(
            health_check_interval=_positive_int(payload, 'health_check_interval'),
            process_delay=_positive_int(payload, 'process_delay'),
        )
    if message_type == MESSAGE_TYPE_RESTART_COMMAND:
        return RestartRequested()
    return None


def _positive_int(payload: dict, key: str) -> int:
    value: Any = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ControlMessageError(f"settings update has invalid {key}: {value!r}")
    return value


class ControlChannel:
    """Queue of control messages consumed by the station's main loop."""

    def __init__(self):
        self._queue: "queue.Queue[ControlMessage]" = queue.Queue()

    def post(self, message: ControlMessage):
        self._queue.put(message)

    def post_raw(self, raw: Union[str, bytes, dict]) -> Optional[ControlMessage]:
        """Decode a wire message and post it if it means anything to the station."""
        message = parse_message(raw)
        if message is not None:
            self.post(message)
        return message

    def get(self, timeout: Optional[float] = None) -> Optional[ControlMessage]:
        """Next message, or None if nothing arrived within the timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
