from datetime import datetime
from data.database import ROLLOUT_TYPES, as_naive_utc, utcnow
from models.experiments import UserProfile
from services import bucketing
from services.assignment import get_or_create_result
from services.store import ExperimentStore
import logging

logger = logging.getLogger(__name__)


def is_enabled(store: ExperimentStore, user_id: str, feature_name: str,
               profile: UserProfile | None = None, now: datetime | None = None) -> bool:
    """
    Whether the gradual rollout `feature_name` is on for the user.

    Features without an active rollout are off. The first answer is stored
    as the user's result and read back afterwards, so a user does not flip
    when the percentage or the target groups are changed mid-rollout.
    """
    now = as_naive_utc(now) or utcnow()

    experiment = store.find_active_experiment_by_name(feature_name, experiment_types=ROLLOUT_TYPES, now=now)
    if experiment is None:
        logger.debug("No active rollout for %s, feature disabled.", feature_name)
        return False

    if not experiment.variants and experiment.rollout_percentage is None:
        logger.warning("Rollout %s has neither variants nor a percentage, feature disabled.", feature_name)
        return False

    result = get_or_create_result(store, experiment, user_id, profile=profile, now=now)
    enabled_label, _ = bucketing.rollout_labels(experiment)
    return result.variant == enabled_label


def check_feature_flags(store: ExperimentStore, user_id: str, feature_names: list[str],
                        profile: UserProfile | None = None, now: datetime | None = None) -> dict[str, bool]:
    """Batched is_enabled, one entry per distinct feature name."""
    flags: dict[str, bool] = {}
    for feature_name in feature_names:
        if feature_name in flags:
            continue
        flags[feature_name] = is_enabled(store, user_id, feature_name, profile=profile, now=now)
    return flags
