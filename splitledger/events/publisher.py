import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import pika
from pika.exceptions import AMQPError

logger = logging.getLogger(__name__)

EXPENSE_CREATED = "expense.created"
EXPENSE_DELETED = "expense.deleted"
DEBT_SETTLED = "debt.settled"


class EventPublisher:
    """
    Capability handed to the request layer for fanning ledger changes out.

    Publishing happens after the ledger transaction committed and is best
    effort: implementations log failures and return False instead of raising.
    """

    def publish(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullEventPublisher(EventPublisher):
    """Publisher used when no message bus is configured"""

    def publish(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        logger.debug(f"No event bus configured, dropping {routing_key} event")
        return True


class RabbitMQEventPublisher(EventPublisher):
    """Publishes ledger events to a RabbitMQ topic exchange"""

    def __init__(self, url: str, exchange: str):
        self.url = url
        self.exchange = exchange
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None

    def connect(self) -> None:
        """Establish connection to RabbitMQ and declare the exchange"""
        try:
            self.connection = pika.BlockingConnection(pika.URLParameters(self.url))
            self.channel = self.connection.channel()
            self.channel.exchange_declare(exchange=self.exchange, exchange_type="topic", durable=True)
            logger.info(f"RabbitMQ publisher connected to exchange {self.exchange}")
        except AMQPError as e:
            logger.error(f"Failed to connect RabbitMQ publisher: {e}")
            raise

    def close(self) -> None:
        """Close RabbitMQ connection"""
        if self.channel and not self.channel.is_closed:
            self.channel.close()
        if self.connection and not self.connection.is_closed:
            self.connection.close()
        logger.info("RabbitMQ publisher disconnected")

    def publish(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        """
        Publish one event

        Args:
            routing_key: Event name, e.g. "expense.created"
            payload: JSON-serialisable event body

        Returns:
            bool: True if message published successfully, False otherwise
        """
        message = {
            "event": routing_key,
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            if not self.connection or self.connection.is_closed:
                self.connect()

            self.channel.basic_publish(
                exchange=self.exchange,
                routing_key=routing_key,
                body=json.dumps(message, default=str),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Make message persistent
                    content_type="application/json",
                ),
            )
            logger.info(f"Published {routing_key} event")
            return True

        except AMQPError as e:
            logger.error(f"Failed to publish {routing_key} event: {e}")
            return False


def build_event_publisher(rabbitmq_url: Optional[str], exchange: str) -> EventPublisher:
    if not rabbitmq_url:
        return NullEventPublisher()
    return RabbitMQEventPublisher(rabbitmq_url, exchange)
