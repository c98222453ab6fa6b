"""
RabbitMQ Event Publisher
"""
import pika
import json
import logging
import uuid
from typing import Dict

from shopcore.config import settings
from shopcore.utils import utcnow

logger = logging.getLogger(__name__)


class EventPublisher:
    """Publisher for sending domain events to RabbitMQ (fire-and-forget)"""

    def __init__(self):
        self.rabbitmq_url = settings.RABBITMQ_URL
        self.exchange = settings.RABBITMQ_EXCHANGE
        self.enabled = settings.EVENTS_ENABLED

    def _publish(self, event_type: str, routing_key: str, data: Dict) -> bool:
        """
        Publish one event to the topic exchange

        Args:
            event_type: Event name, e.g. OrderCreated
            routing_key: Topic routing key
            data: JSON-serializable payload

        Returns:
            True if published successfully, False otherwise
        """
        if not self.enabled:
            return False

        event = {
            "event_type": event_type,
            "event_id": str(uuid.uuid4()),
            "event_version": "1.0",
            "timestamp": utcnow().isoformat(),
            "source": settings.SERVICE_NAME,
            "data": data
        }

        try:
            connection = pika.BlockingConnection(
                pika.URLParameters(self.rabbitmq_url)
            )
            try:
                channel = connection.channel()
                channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type='topic',
                    durable=True
                )
                # Enable publisher confirms
                channel.confirm_delivery()
                channel.basic_publish(
                    exchange=self.exchange,
                    routing_key=routing_key,
                    body=json.dumps(event, default=str),
                    properties=pika.BasicProperties(
                        delivery_mode=2,  # Persistent message
                        content_type='application/json',
                        correlation_id=event["event_id"]
                    )
                )
            finally:
                connection.close()

            logger.info("Event published: %s (ID: %s)", event_type, event["event_id"])
            return True

        except (pika.exceptions.AMQPError, OSError) as e:
            logger.warning("Error publishing %s event: %s", event_type, e)
            return False

    def publish_order_created(self, order_data: Dict) -> bool:
        """Publish OrderCreated event"""
        return self._publish("OrderCreated", "order.created", order_data)

    def publish_order_status_changed(self, order_data: Dict) -> bool:
        """Publish OrderStatusChanged event (order id, old and new status)"""
        return self._publish("OrderStatusChanged", "order.status.changed", order_data)

    def publish_refund_status_changed(self, refund_data: Dict) -> bool:
        """Publish RefundStatusChanged event"""
        return self._publish("RefundStatusChanged", "refund.status.changed", refund_data)

    def publish_stock_low(self, alert_data: Dict) -> bool:
        """Publish StockLow event for a product/variant that crossed its threshold"""
        return self._publish("StockLow", "stock.low", alert_data)
