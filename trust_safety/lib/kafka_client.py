"""
Kafka message broker client for inbound safety events
"""
import os
import json
import logging
from typing import Dict, Any, Callable, Optional
from kafka import KafkaProducer, KafkaConsumer
from kafka.errors import KafkaError
import time

logger = logging.getLogger(__name__)

CHAT_TOPIC = 'chat-stream'
PROFILE_TOPIC = 'profile-stream'
REPORT_TOPIC = 'report-stream'
DLQ_TOPIC = 'dlq-stream'


class MessageBroker:
    """Kafka producer and consumer wrapper"""

    def __init__(self, bootstrap_servers: Optional[str] = None):
        self.bootstrap_servers = bootstrap_servers or os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'localhost:9092')
        self.producer = None
        self.consumers = {}
        self._running = True
        self._initialize_producer()

    def _initialize_producer(self):
        """Initialize Kafka producer"""
        try:
            self.producer = KafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                value_serializer=lambda v: json.dumps(v, default=str).encode('utf-8'),
                key_serializer=lambda k: k.encode('utf-8') if k else None,
                acks='all',
                retries=3,
                max_in_flight_requests_per_connection=1
            )
            logger.info(f"Kafka producer initialized: {self.bootstrap_servers}")
        except Exception as e:
            logger.error(f"Failed to initialize Kafka producer: {e}")
            raise

    def publish(self, topic: str, message: Dict[str, Any], key: Optional[str] = None) -> bool:
        """Publish message to topic"""
        try:
            future = self.producer.send(topic, value=message, key=key)
            record_metadata = future.get(timeout=10)
            logger.debug(f"Message sent to {topic} partition {record_metadata.partition} offset {record_metadata.offset}")
            return True
        except KafkaError as e:
            logger.error(f"Failed to send message to {topic}: {e}")
            return False

    def publish_chat(self, message: Dict[str, Any]) -> bool:
        # Keyed by user so one user's messages stay ordered on a partition
        return self.publish(CHAT_TOPIC, message, key=message.get('user_id'))

    def publish_profile(self, event: Dict[str, Any]) -> bool:
        return self.publish(PROFILE_TOPIC, event, key=event.get('user_id'))

    def publish_report(self, report: Dict[str, Any]) -> bool:
        return self.publish(REPORT_TOPIC, report, key=report.get('stream_id'))

    def publish_dlq(self, original_message: Dict[str, Any], error: str) -> bool:
        """Publish failed message to dead letter queue"""
        dlq_message = {
            'original_message': original_message,
            'error': error,
            'timestamp': time.time()
        }
        return self.publish(DLQ_TOPIC, dlq_message)

    def create_consumer(self,
                        topic: str,
                        group_id: str,
                        handler: Callable[[Dict[str, Any]], None],
                        auto_offset_reset: str = 'latest'):
        """Create a consumer and block dispatching messages to `handler`"""
        try:
            consumer = KafkaConsumer(
                topic,
                bootstrap_servers=self.bootstrap_servers,
                group_id=group_id,
                value_deserializer=lambda m: json.loads(m.decode('utf-8')),
                auto_offset_reset=auto_offset_reset,
                enable_auto_commit=True,
                auto_commit_interval_ms=1000
            )
        except Exception as e:
            logger.error(f"Failed to create consumer: {e}")
            raise

        self.consumers[f"{topic}_{group_id}"] = consumer
        logger.info(f"Consumer created for topic {topic} with group {group_id}")

        for message in consumer:
            if not self._running:
                break
            try:
                handler(message.value)
            except Exception as e:
                logger.error(f"Error processing message from {topic}: {e}")
                self.publish_dlq(message.value, str(e))

    def consume_chat_stream(self, handler: Callable):
        self.create_consumer(CHAT_TOPIC, 'safety-chat', handler)

    def consume_profile_stream(self, handler: Callable):
        self.create_consumer(PROFILE_TOPIC, 'safety-profile', handler)

    def consume_report_stream(self, handler: Callable):
        self.create_consumer(REPORT_TOPIC, 'safety-reports', handler)

    def close(self):
        """Close producer and all consumers"""
        self._running = False
        if self.producer:
            self.producer.close()
        for consumer in self.consumers.values():
            consumer.close()
        logger.info("Kafka connections closed")
