"""
Run the payment status consumer
"""
import logging

from shopcore.config import settings
from shopcore.consumers.payment_consumer import start_consumer

if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    start_consumer()
