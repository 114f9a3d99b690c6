"""
Kafka Publish Channel

Outbound, best-effort publishing of created properties and ingested
values. Callers log publish failures; nothing here retries.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import structlog
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from dcd_store.config import get_settings

logger = structlog.get_logger(__name__)


class PublishError(Exception):
    """Publishing to the outbound channel failed"""
    pass


class Publisher(ABC):
    """Outbound publish channel"""
    
    @abstractmethod
    async def publish(
        self,
        topic: str,
        messages: List[Any],
        partition_key: Optional[str] = None,
    ) -> None:
        """
        Publish messages to a topic.
        
        Raises:
            PublishError: The channel is unavailable or rejected the messages
        """
        pass


class NullPublisher(Publisher):
    """Publisher used when Kafka is disabled"""
    
    async def publish(
        self,
        topic: str,
        messages: List[Any],
        partition_key: Optional[str] = None,
    ) -> None:
        logger.debug("Kafka disabled, dropping messages", topic=topic, count=len(messages))


class KafkaPublisher(Publisher):
    """
    Kafka producer publishing JSON messages.
    
    Example:
        publisher = KafkaPublisher()
        await publisher.start()
        await publisher.publish("values", [message], partition_key="thing-1_light-ab12")
    """
    
    def __init__(
        self,
        bootstrap_servers: Optional[str] = None,
        max_batch_messages: Optional[int] = None,
    ):
        settings = get_settings().kafka
        self.bootstrap_servers = bootstrap_servers or settings.bootstrap_servers
        self.client_id = settings.client_id
        self.max_batch_messages = max_batch_messages or settings.max_batch_messages
        self._producer: Optional[AIOKafkaProducer] = None
    
    async def _create_producer(self) -> AIOKafkaProducer:
        """Create producer with JSON serialization"""
        producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            client_id=self.client_id,
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda k: k.encode("utf-8") if k else None,
        )
        return producer
    
    async def start(self) -> None:
        logger.info("Starting Kafka publisher", bootstrap_servers=self.bootstrap_servers)
        self._producer = await self._create_producer()
        try:
            await self._producer.start()
        except KafkaError as e:
            logger.error("Kafka connection error", error=str(e))
            self._producer = None
            raise PublishError("Kafka producer could not start") from e
    
    async def stop(self) -> None:
        if self._producer:
            await self._producer.stop()
            self._producer = None
        logger.info("Kafka publisher stopped")
    
    async def publish(
        self,
        topic: str,
        messages: List[Any],
        partition_key: Optional[str] = None,
    ) -> None:
        if self._producer is None:
            raise PublishError("Kafka producer not ready")
        
        try:
            for i in range(0, len(messages), self.max_batch_messages):
                chunk = messages[i:i + self.max_batch_messages]
                for message in chunk:
                    await self._producer.send(topic, value=message, key=partition_key)
                await self._producer.flush()
                logger.debug("Published messages", topic=topic, count=len(chunk), key=partition_key)
        except KafkaError as e:
            logger.error("Failed to publish", topic=topic, error=str(e))
            raise PublishError(f"Publishing to {topic} failed") from e


def create_publisher() -> Publisher:
    """Kafka publisher when enabled in settings, otherwise a no-op publisher"""
    if get_settings().kafka.enabled:
        return KafkaPublisher()
    return NullPublisher()
