"""
Deterministic bucketing and weighted selection.

Nothing here touches the store: the functions map (user, experiment) to a
bucket, a rollout decision or a variant, so they can be recomputed any
number of times with the same answer.
"""
from datetime import datetime, timedelta
from config import config
from data.database import Experiment, Variant, as_naive_utc
from models.experiments import UserProfile

BUCKET_COUNT = 100

# Labels stored for rollouts that have no designated variants
ENABLED_LABEL = "new"
DISABLED_LABEL = "original"


def string_hash(value: str) -> int:
    """
    32-bit signed polynomial rolling hash (h = h * 31 + c) over UTF-16 code units.
    """
    h = 0
    data = value.encode("utf-16-be")
    for i in range(0, len(data), 2):
        h = (h * 31 + int.from_bytes(data[i:i + 2], "big")) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def bucket_for(user_id: str, scope: str) -> int:
    """Percentile bucket 0-99 of the user, independent per scope (experiment name)."""
    return abs(string_hash(f"{user_id}{scope}")) % BUCKET_COUNT


def total_weight(variants: list[Variant]) -> float:
    return sum(v.weight for v in variants)


def select_variant(variants: list[Variant], draw: float) -> Variant | None:
    """
    First variant whose cumulative weight exceeds `draw`.

    `draw` is expected in [0, total_weight). Returns None only when no
    variant has a positive weight.
    """
    cumulative = 0.0
    last_positive = None
    for variant in variants:
        if variant.weight <= 0:
            continue
        cumulative += variant.weight
        last_positive = variant
        if draw < cumulative:
            return variant
    # Float rounding can push the draw onto the upper edge
    return last_positive


def rollout_variant(experiment: Experiment) -> Variant | None:
    """The variant whose weight is the rollout percentage, if the experiment designates one."""
    names = config.rollout_variant_names
    for name in names:
        for variant in experiment.variants:
            if variant.name == name:
                return variant
    return None


def rollout_percentage(experiment: Experiment) -> float:
    if experiment.rollout_percentage is not None:
        return experiment.rollout_percentage
    designated = rollout_variant(experiment)
    return designated.weight if designated is not None else 0


def rollout_labels(experiment: Experiment) -> tuple[str, str]:
    """(enabled, disabled) variant names stored for a rollout experiment."""
    designated = rollout_variant(experiment)
    enabled = designated.name if designated is not None else ENABLED_LABEL
    disabled = next((v.name for v in experiment.variants if v.name != enabled), DISABLED_LABEL)
    return enabled, disabled


def matches_target_group(group: str, experiment: Experiment, user_id: str,
                         profile: UserProfile | None, now: datetime) -> bool:
    if group == "all":
        return True
    if group == "new_users":
        if profile is None or profile.created_at is None:
            return False
        return now - as_naive_utc(profile.created_at) < timedelta(days=config.new_user_max_age_days)
    if group == "premium_users":
        if profile is None or profile.membership_level is None:
            return False
        return profile.membership_level in config.premium_membership_levels
    if group == "specific_users":
        return user_id in (experiment.specific_user_ids or [])
    return False


def in_target_groups(experiment: Experiment, user_id: str, profile: UserProfile | None, now: datetime) -> bool:
    groups = experiment.target_groups or []
    if not groups:
        return True
    return any(matches_target_group(group, experiment, user_id, profile, now) for group in groups)


def rollout_enabled(experiment: Experiment, user_id: str, profile: UserProfile | None, now: datetime) -> bool:
    """Bucket below the rollout percentage and, when groups are set, a matching target group."""
    if bucket_for(user_id, experiment.name) >= rollout_percentage(experiment):
        return False
    return in_target_groups(experiment, user_id, profile, now)
