from datetime import datetime
from data.database import ExperimentResult
from services.store import ExperimentStore
import logging

logger = logging.getLogger(__name__)


def record_metric(store: ExperimentStore, experiment_id: int, user_id: str, metric_name: str,
                  value: float, now: datetime | None = None) -> ExperimentResult:
    """
    Appends one metric observation to the user's result.

    Metrics are a time series: repeated names are kept, never overwritten.
    A metric that arrives before the user was assigned creates a bare
    result which the first assignment later claims.
    """
    # Raises NotFoundError for unknown experiments
    store.get_experiment(experiment_id)

    result = store.append_metric(experiment_id, user_id, metric_name, value, recorded_at=now)
    logger.info("Recorded metric %s=%s for user %s (EID %d).", metric_name, value, user_id, experiment_id)
    return result
