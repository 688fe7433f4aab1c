"""
Stream Listener

Websocket log subscriptions and heuristic event classification.
"""

from .classifier import EventClassifier, LogClassifier
from .listener import StreamListener, backoff_delay
from .models import ClassifiedEvent, EventType, ListenerState

__all__ = [
    # Models
    "ClassifiedEvent",
    "EventType",
    "ListenerState",
    # Classification
    "EventClassifier",
    "LogClassifier",
    # Transport
    "StreamListener",
    "backoff_delay",
]
