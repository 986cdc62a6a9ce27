"""
Message bus module.
"""

from ordered_consumer.bus.base import MessageBus, settle
from ordered_consumer.bus.pubsub import PubSubMessageBus, setup_pubsub

__all__ = ["MessageBus", "settle", "PubSubMessageBus", "setup_pubsub"]
