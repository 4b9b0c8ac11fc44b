from datetime import datetime
from data.database import Experiment, ExperimentResult, as_naive_utc, utcnow
from models.experiments import UserProfile
from services import bucketing
from services.errors import InvalidExperimentError, NotFoundError
from services.store import ExperimentStore
import random
import logging

logger = logging.getLogger(__name__)


def choose_ab_variant(experiment: Experiment) -> str:
    """Weighted random pick: draw in [0, total weight) and take the first cumulative weight above it."""
    if not experiment.variants:
        raise InvalidExperimentError(f"Experiment {experiment.name} has no variants.")

    total = bucketing.total_weight(experiment.variants)
    if total <= 0:
        raise InvalidExperimentError(f"Experiment {experiment.name} has no variant with a positive weight.")

    draw = random.random() * total
    return bucketing.select_variant(experiment.variants, draw).name


def choose_rollout_variant(experiment: Experiment, user_id: str, profile: UserProfile | None, now: datetime) -> str:
    """Deterministic: the same user lands on the same label until the stored result exists."""
    if not experiment.variants and experiment.rollout_percentage is None:
        raise InvalidExperimentError(f"Experiment {experiment.name} has neither variants nor a rollout percentage.")

    enabled_label, disabled_label = bucketing.rollout_labels(experiment)
    if bucketing.rollout_enabled(experiment, user_id, profile, now):
        return enabled_label
    return disabled_label


def get_or_create_result(store: ExperimentStore, experiment: Experiment, user_id: str,
                         profile: UserProfile | None = None, now: datetime | None = None) -> ExperimentResult:
    """
    Retrieves the user's sticky result or computes and stores a new one.

    The stored variant always wins: once written it is returned unchanged,
    even if weights or the rollout percentage change later.
    """
    now = as_naive_utc(now) or utcnow()

    # 1. CHECK FOR EXISTING ASSIGNMENT
    existing = store.find_result(experiment.id, user_id)
    if existing is not None and existing.variant is not None:
        logger.info("Found persistent assignment for user %s on %s: %s",
                    user_id, experiment.name, existing.variant)
        return existing

    # 2. COMPUTE A NEW ONE
    if experiment.is_rollout:
        variant = choose_rollout_variant(experiment, user_id, profile, now)
    else:
        variant = choose_ab_variant(experiment)

    # 3. INSERT-IF-ABSENT, the first stored variant is returned
    result = store.upsert_result(experiment.id, user_id, variant)
    logger.info("User %s assigned to %s on %s.", user_id, result.variant, experiment.name)
    return result


def resolve_assignment(store: ExperimentStore, user_id: str, experiment_name: str,
                       profile: UserProfile | None = None,
                       now: datetime | None = None) -> tuple[Experiment, ExperimentResult]:
    experiment = store.find_active_experiment_by_name(experiment_name, now=now)
    if experiment is None:
        logger.info("Experiment %s not found or not active.", experiment_name)
        raise NotFoundError(f"Experiment {experiment_name} not found or not active.")

    return experiment, get_or_create_result(store, experiment, user_id, profile=profile, now=now)


def resolve_variant(store: ExperimentStore, user_id: str, experiment_name: str,
                    profile: UserProfile | None = None, now: datetime | None = None) -> str:
    """Sticky variant name of `user_id` in the active experiment `experiment_name`."""
    _, result = resolve_assignment(store, user_id, experiment_name, profile=profile, now=now)
    return result.variant


def variant_config(experiment: Experiment, variant_name: str) -> dict:
    for variant in experiment.variants:
        if variant.name == variant_name:
            return variant.config or {}
    return {}
