from celery_config import celery_app
from data.database import SessionLocal
from services.cache import get_cache_client
from services.errors import StoreError
from services.metrics import record_metric
from services.store import ExperimentStore
from typing import Any
import logging

logger = logging.getLogger(__name__)


# Nobody reads the task result, so don't store it
@celery_app.task(bind=True, max_retries=3, default_retry_delay=30, ignore_result=True)
def record_metric_task(self, metric_data: dict[str, Any]):
    """
    Appends a metric observation outside of the request.
    The task owns its database session.
    """
    db = SessionLocal()
    try:
        store = ExperimentStore(db=db, cache=get_cache_client())
        result = record_metric(
            store,
            experiment_id=metric_data['experiment_id'],
            user_id=metric_data['user_id'],
            metric_name=metric_data['metric_name'],
            value=metric_data['value']
        )
        logger.info("Task %s[%s]. Recorded metric %s for user %s.",
                    self.name, self.request.id, metric_data['metric_name'], result.user_id)
        return result.id
    except StoreError as exc:
        logger.error("Store failed in metric task. Retrying...")
        raise self.retry(exc=exc)
    finally:
        db.close()
