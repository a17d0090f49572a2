"""Pub/sub publishing of capture session events."""

import logging
from pubsub import pub
from ..models.events import SessionEvent

logger = logging.getLogger(__name__)

SESSION_EVENTS_TOPIC = "session_events"

# Published on every animation frame; too chatty for the log
_UNLOGGED_EVENTS = {"levels"}


class SessionEventPublisher:
    """Publishes session status, tick and level events on a pubsub topic.

    Listeners are called as ``listener(event=SessionEvent)``.
    """

    def __init__(self, topic: str = SESSION_EVENTS_TOPIC):
        self.topic = topic
        logger.info(f"SessionEventPublisher initialized with topic: {topic}")

    def publish_session_event(self, event: SessionEvent) -> None:
        pub.sendMessage(self.topic, event=event)
        if event.event_type not in _UNLOGGED_EVENTS:
            logger.debug(f"Session {event.session_id} event: {event.event_type} {event.metadata}")
