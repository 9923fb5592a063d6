"""Realtime push channel."""

from .notifier import (
    Notifier,
    Message,
    Subscriber,
    QueueSubscriber,
    CallbackSubscriber,
    TOPIC_USER_LOCATION,
    TOPIC_REGION_STATUS,
    TOPIC_MISSILE_LAUNCH,
    TOPIC_SUPPLY_CHAIN,
    QUEUE_USERS_NEARBY,
    QUEUE_SOCIAL_RATING,
    user_destination,
)

__all__ = [
    "Notifier",
    "Message",
    "Subscriber",
    "QueueSubscriber",
    "CallbackSubscriber",
    "TOPIC_USER_LOCATION",
    "TOPIC_REGION_STATUS",
    "TOPIC_MISSILE_LAUNCH",
    "TOPIC_SUPPLY_CHAIN",
    "QUEUE_USERS_NEARBY",
    "QUEUE_SOCIAL_RATING",
    "user_destination",
]
