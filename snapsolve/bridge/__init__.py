"""Bridge package: event stream and HTTP/WebSocket API for UI clients."""

from snapsolve.bridge.events import EventStream, EventType

__all__ = ["EventStream", "EventType"]
