"""
Streaming Module
"""
from .publisher import Publisher, KafkaPublisher, NullPublisher, PublishError, create_publisher

__all__ = [
    "Publisher",
    "KafkaPublisher",
    "NullPublisher",
    "PublishError",
    "create_publisher",
]
