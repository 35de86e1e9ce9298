"""
Celery configuration for background tasks
"""
from celery import Celery
from kombu import Queue, Exchange
import os
import logging

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_MAX_CONNECTIONS = int(os.getenv("CELERY_REDIS_MAX_CONNECTIONS", "50"))

celery_app = Celery(
    "findmyevent",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=[
        "services.registration.tasks.notification_tasks",
    ]
)

default_exchange = Exchange("default", type="direct")

# E-mails are the only background work
celery_app.conf.task_queues = (
    Queue("default", default_exchange, routing_key="default"),
)

celery_app.conf.task_routes = {
    "send_registration_confirmation": {"queue": "default"},
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    timezone="Asia/Kolkata",
    enable_utc=True,

    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,

    worker_prefetch_multiplier=1,
    broker_pool_limit=REDIS_MAX_CONNECTIONS,
    redis_max_connections=REDIS_MAX_CONNECTIONS,
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,
    broker_heartbeat=30,

    # Acknowledge only when the task finishes
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    result_expires=3600,
    worker_concurrency=4,
    worker_max_tasks_per_child=1000,

    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",

    task_annotations={
        "send_registration_confirmation": {"rate_limit": "30/m"},
    },

    # CELERY_ALWAYS_EAGER=true runs tasks inline (tests, local dev)
    task_always_eager=os.getenv("CELERY_ALWAYS_EAGER", "false").lower() == "true",
)

logger.info(
    "Celery configured - Broker: %s, Pool limit: %d, Concurrency: %d",
    REDIS_URL.split("@")[-1] if "@" in REDIS_URL else REDIS_URL,
    REDIS_MAX_CONNECTIONS,
    celery_app.conf.worker_concurrency
)
