"""
Unit Tests - Kafka Publisher
"""
import pytest
from aiokafka.errors import KafkaConnectionError

from dcd_store.streaming.publisher import (
    KafkaPublisher,
    NullPublisher,
    PublishError,
    create_publisher,
)

pytestmark = pytest.mark.asyncio


class FakeProducer:
    """Stands in for AIOKafkaProducer"""
    
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []
        self.flushes = 0
    
    async def send(self, topic, value=None, key=None):
        if self.fail:
            raise KafkaConnectionError()
        self.sent.append((topic, value, key))
    
    async def flush(self):
        self.flushes += 1
    
    async def stop(self):
        pass


class TestKafkaPublisher:
    """Tests for the Kafka publish channel"""
    
    async def test_publish_before_start(self):
        with pytest.raises(PublishError):
            await KafkaPublisher(bootstrap_servers="kafka:9092").publish("values", [{"id": "p"}])
    
    async def test_publish_in_chunks(self):
        publisher = KafkaPublisher(bootstrap_servers="kafka:9092", max_batch_messages=2)
        producer = publisher._producer = FakeProducer()
        
        await publisher.publish("values", [{"n": n} for n in range(5)], partition_key="E1_p")
        
        assert len(producer.sent) == 5
        assert producer.flushes == 3
        assert producer.sent[0] == ("values", {"n": 0}, "E1_p")
    
    async def test_kafka_error_wrapped(self):
        publisher = KafkaPublisher(bootstrap_servers="kafka:9092")
        publisher._producer = FakeProducer(fail=True)
        
        with pytest.raises(PublishError):
            await publisher.publish("properties", [{"id": "p"}])
    
    async def test_stop_releases_producer(self):
        publisher = KafkaPublisher(bootstrap_servers="kafka:9092")
        publisher._producer = FakeProducer()
        
        await publisher.stop()
        
        assert publisher._producer is None
    
    async def test_null_publisher_accepts_messages(self):
        await NullPublisher().publish("values", [{"id": "p"}])
    
    async def test_disabled_kafka_uses_null_publisher(self):
        assert isinstance(create_publisher(), NullPublisher)
