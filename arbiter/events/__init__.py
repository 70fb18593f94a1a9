"""Deliberation event bus and message collection."""

from arbiter.events.bus import DeliberationEventBus, Subscription
from arbiter.events.collector import MessageCollector
from arbiter.events.models import DeliberationMessage, MessageContent, MessageMetadata

__all__ = [
    "DeliberationEventBus",
    "Subscription",
    "MessageCollector",
    "DeliberationMessage",
    "MessageContent",
    "MessageMetadata",
]
