"""Event publisher for pub/sub notifications."""

import logging
from typing import Any

from pubsub import pub

logger = logging.getLogger(__name__)

STATE_TOPIC = "ostt.session.state"
GAP_TOPIC = "ostt.audio.gap"


class EventPublisher:
    """Publishes events using pubsub.pub."""

    def __init__(self, topic: str):
        """Initialize event publisher.

        Args:
            topic: Pub/sub topic name
        """
        self.topic = topic
        logger.debug(f"EventPublisher initialized with topic: {topic}")

    def publish(self, event: Any) -> None:
        """Publish an event to the topic. Listeners run synchronously.

        Args:
            event: Event payload, delivered as the ``event`` keyword
        """
        pub.sendMessage(self.topic, event=event)
