from celery import Celery
from config import config

# A broker (Redis/Valkey or RabbitMQ) must be running for METRICS_ASYNC
BROKER_URL = config.celery_broker_url
BACKEND_URL = config.celery_backend_url

celery_app = Celery(
    "metric_tasks",
    broker=BROKER_URL,
    backend=BACKEND_URL,
    # This ensures the tasks are loaded when the worker starts
    include=["celery_tasks.metric_tasks"]
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # === Producer-Side (Sending Message) Retry Settings ===
    # Retries publishing when the client cannot reach the broker
    task_publish_retry=True,
    task_publish_retry_policy={
        'max_retries': 10,
        'interval_start': 0.5,
        'interval_step': 0.5,
        'interval_max': 5,
    },
)

celery_app.conf.task_routes = {
    'celery_tasks.metric_tasks.*': {'queue': 'default'},
}
