"""
Dramatiq broker configuration.

Redis-based message broker for the ledger job queue.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from yieldcycle.config.operational_constants import DEFAULT_MAX_RETRIES
from yieldcycle.config.settings import settings
from yieldcycle.utils.redis_utils import get_redis_url_masked


redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password if settings.redis_password else None,
    db=settings.redis_db,
)

# ShutdownNotifications: lets long accrual runs stop cleanly
# Retries: exponential backoff; every job is idempotent, so redelivery is safe
redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        max_retries=DEFAULT_MAX_RETRIES,
        min_backoff=1000,  # 1 second
        max_backoff=60000,  # 1 minute
    )
)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(f"Dramatiq broker initialized: {get_redis_url_masked()}")
