"""
RabbitMQ Consumer for payment status events
"""
import pika
import json
import logging
import sys

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from shopcore.config import settings
from shopcore.database import SessionLocal
from shopcore.errors import ShopCoreError
from shopcore.schemas.order import PaymentStatusUpdate
from shopcore.services.order_service import OrderService

logger = logging.getLogger(__name__)


def handle_event(db, event: dict) -> None:
    """Apply one payment status event to its order"""
    update = PaymentStatusUpdate.model_validate(event.get("data", event))
    OrderService(db).mark_payment_status(update.order_id, update.status)


def callback(ch, method, properties, body):
    """
    Callback function to process payment status events

    Malformed or unprocessable messages are rejected without requeue.

    Args:
        ch: Channel
        method: Method
        properties: Properties
        body: Message body (JSON string)
    """
    db = SessionLocal()

    try:
        event = json.loads(body)
        if not isinstance(event, dict):
            raise ValueError(f"expected a JSON object, got {type(event).__name__}")
        event_id = event.get("event_id")
        logger.info("Received event: %s (ID: %s)", event.get("event_type"), event_id)

        handle_event(db, event)

        ch.basic_ack(delivery_tag=method.delivery_tag)
        logger.info("Event %s processed successfully", event_id)

    except (ValueError, ValidationError) as e:
        logger.error("Invalid payment event: %s", e)
        ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
    except (ShopCoreError, SQLAlchemyError) as e:
        logger.error("Error processing payment event: %s", e)
        ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
    finally:
        db.close()


def start_consumer():
    """
    Start RabbitMQ consumer

    Connects to RabbitMQ and starts consuming payment status events
    """
    connection = None
    try:
        logger.info("Connecting to RabbitMQ: %s", settings.RABBITMQ_URL)
        connection = pika.BlockingConnection(
            pika.URLParameters(settings.RABBITMQ_URL)
        )
        channel = connection.channel()

        channel.exchange_declare(
            exchange=settings.RABBITMQ_EXCHANGE,
            exchange_type='topic',
            durable=True
        )
        channel.queue_declare(
            queue=settings.RABBITMQ_PAYMENT_QUEUE,
            durable=True
        )
        channel.queue_bind(
            exchange=settings.RABBITMQ_EXCHANGE,
            queue=settings.RABBITMQ_PAYMENT_QUEUE,
            routing_key=settings.RABBITMQ_PAYMENT_ROUTING_KEY
        )
        logger.info(
            "Queue %s bound to %s with routing key %s",
            settings.RABBITMQ_PAYMENT_QUEUE, settings.RABBITMQ_EXCHANGE, settings.RABBITMQ_PAYMENT_ROUTING_KEY
        )

        # Set prefetch count (QoS)
        channel.basic_qos(prefetch_count=10)

        channel.basic_consume(
            queue=settings.RABBITMQ_PAYMENT_QUEUE,
            on_message_callback=callback,
            auto_ack=False  # Manual acknowledgement
        )

        logger.info("%s payment consumer started", settings.SERVICE_NAME)
        channel.start_consuming()

    except KeyboardInterrupt:
        logger.info("Consumer stopped by user")
        if connection is not None and connection.is_open:
            connection.close()
        sys.exit(0)
    except (pika.exceptions.AMQPError, OSError) as e:
        logger.error("Error starting consumer: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    start_consumer()
