"""
Realtime notifier - fans typed events out to subscribed clients.

Destinations:
- /topic/user-location-update            broadcast user record
- /user/{userId}/queue/users-nearby-update
- /topic/region-status-update            broadcast region record
- /topic/missile-launch                  {regionId, missileType}
- /user/{userId}/queue/social-rating-update
- /topic/supply-chain                    {depots, routes}

Delivery is fire-and-forget: no acknowledgement, no replay, and a failed
delivery never propagates to the publisher.
"""

import asyncio
import json
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Set

from ..logging import get_logger

logger = get_logger(__name__)

TOPIC_USER_LOCATION = "/topic/user-location-update"
TOPIC_REGION_STATUS = "/topic/region-status-update"
TOPIC_MISSILE_LAUNCH = "/topic/missile-launch"
TOPIC_SUPPLY_CHAIN = "/topic/supply-chain"
QUEUE_USERS_NEARBY = "/queue/users-nearby-update"
QUEUE_SOCIAL_RATING = "/queue/social-rating-update"

BROKER_PREFIXES = ("/topic", "/queue", "/user")

# Pending messages held per WebSocket session; newer messages are dropped beyond this
SESSION_QUEUE_SIZE = 256


def user_destination(user_id: str, queue: str) -> str:
    return f"/user/{user_id}{queue}"


@dataclass
class Message:
    """A message pushed to subscribers."""
    destination: str
    payload: Any
    sent_at: str

    def to_json(self) -> str:
        return json.dumps(
            {"destination": self.destination, "payload": self.payload, "sentAt": self.sent_at},
            default=str,
        )


class Subscriber:
    """Receives messages for the destinations it subscribed to."""

    def deliver(self, message: Message):
        raise NotImplementedError


class QueueSubscriber(Subscriber):
    """
    Hands messages to an asyncio queue owned by a WebSocket session.

    Publishers run on worker threads, so delivery goes through the
    session's event loop. A full queue drops the message.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[Message]"):
        self.loop = loop
        self.queue = queue
        self.dropped = 0

    def deliver(self, message: Message):
        self.loop.call_soon_threadsafe(self._enqueue, message)

    def _enqueue(self, message: Message):
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("message_dropped", destination=message.destination, dropped=self.dropped)


class CallbackSubscriber(Subscriber):
    """Calls a plain function for each message."""

    def __init__(self, callback: Callable[[Message], None]):
        self.callback = callback

    def deliver(self, message: Message):
        self.callback(message)


class Notifier:
    """
    Publishes events onto broadcast topics and per-user queues.

    Thread-safe; subscriptions may change while publishing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, Set[Subscriber]] = defaultdict(set)

    def subscribe(self, destination: str, subscriber: Subscriber):
        with self._lock:
            self._subscribers[destination].add(subscriber)

    def unsubscribe(self, destination: str, subscriber: Subscriber):
        with self._lock:
            subscribers = self._subscribers.get(destination)
            if subscribers is not None:
                subscribers.discard(subscriber)
                if not subscribers:
                    del self._subscribers[destination]

    def unsubscribe_all(self, subscriber: Subscriber):
        with self._lock:
            for destination in list(self._subscribers):
                self._subscribers[destination].discard(subscriber)
                if not self._subscribers[destination]:
                    del self._subscribers[destination]

    def subscriber_count(self, destination: str) -> int:
        with self._lock:
            return len(self._subscribers.get(destination, ()))

    def publish(self, destination: str, payload: Any) -> int:
        """
        Send a payload to every subscriber of a destination.

        Returns:
            Number of subscribers the message was handed to
        """
        message = Message(
            destination=destination,
            payload=payload,
            sent_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            targets: List[Subscriber] = list(self._subscribers.get(destination, ()))

        delivered = 0
        for subscriber in targets:
            try:
                subscriber.deliver(message)
                delivered += 1
            except Exception as e:
                logger.warning("push_delivery_failed", destination=destination, error=str(e))
        return delivered

    def send_to_user(self, user_id: str, queue: str, payload: Any) -> int:
        return self.publish(user_destination(user_id, queue), payload)

    # ============================================================
    # TYPED EVENTS
    # ============================================================

    def notify_user_location_update(self, user):
        self.publish(TOPIC_USER_LOCATION, user.to_dict())

    def notify_nearby_users_update(self, user_id: str, nearby_users):
        self.send_to_user(user_id, QUEUE_USERS_NEARBY, [u.to_dict() for u in nearby_users])

    def notify_region_status_update(self, region):
        self.publish(TOPIC_REGION_STATUS, region.to_dict())

    def notify_missile_launch(self, region_id: str, missile_type: str):
        self.publish(TOPIC_MISSILE_LAUNCH, {"regionId": region_id, "missileType": missile_type})

    def notify_social_rating_change(self, user_id: str, user):
        self.send_to_user(user_id, QUEUE_SOCIAL_RATING, user.to_dict())

    def notify_supply_chain_update(self, snapshot: Dict[str, Any]):
        self.publish(TOPIC_SUPPLY_CHAIN, snapshot)
