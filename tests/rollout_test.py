from datetime import datetime, timedelta
from data.database import ExperimentResult
from models.experiments import ExperimentUpdate, UserProfile
from services.rollout import is_enabled, check_feature_flags

NOW = datetime(2026, 3, 1, 12, 0, 0)
USERS = [f"user_{i}" for i in range(200)]


def make_rollout(make_experiment, name="new_brush_rollout", **overrides):
    fields = {"name": name, "type": "gradual_rollout", "variants": []}
    fields.update(overrides)
    return make_experiment(**fields)


def test_unknown_feature_is_disabled(store):
    assert is_enabled(store, "user123", "nonexistent") is False

def test_ab_test_is_not_a_feature_flag(store, make_experiment):
    make_experiment(name="payment_button_test")
    assert is_enabled(store, "user123", "payment_button_test") is False

def test_paused_rollout_is_disabled(store, make_experiment):
    make_rollout(make_experiment, rollout_percentage=100, status="paused")
    assert is_enabled(store, "user123", "new_brush_rollout") is False

def test_zero_percent_disables_everyone(store, make_experiment):
    make_rollout(make_experiment, rollout_percentage=0)
    assert not any(is_enabled(store, user, "new_brush_rollout") for user in USERS)

def test_hundred_percent_enables_everyone(store, make_experiment):
    make_rollout(make_experiment, rollout_percentage=100)
    assert all(is_enabled(store, user, "new_brush_rollout") for user in USERS)

def test_percentage_from_new_feature_variant(store, make_experiment):
    make_rollout(make_experiment, variants=[{"name": "control", "weight": 0}, {"name": "new_feature", "weight": 100}])
    assert is_enabled(store, "user123", "new_brush_rollout") is True

def test_percentage_from_enabled_variant(store, make_experiment):
    make_rollout(make_experiment, variants=[{"name": "enabled", "weight": 0}])
    assert is_enabled(store, "user123", "new_brush_rollout") is False

def test_new_users_target_group(store, make_experiment):
    make_rollout(make_experiment, rollout_percentage=100, target_groups=["new_users"])
    fresh = UserProfile(created_at=NOW - timedelta(hours=1))
    veteran = UserProfile(created_at=NOW - timedelta(days=30))

    assert is_enabled(store, "fresh_user", "new_brush_rollout", profile=fresh, now=NOW) is True
    assert is_enabled(store, "veteran_user", "new_brush_rollout", profile=veteran, now=NOW) is False

def test_specific_users_target_group(store, make_experiment):
    make_rollout(make_experiment, rollout_percentage=100, target_groups=["specific_users"],
                 specific_user_ids=["qa_1", "qa_2"])
    assert is_enabled(store, "qa_1", "new_brush_rollout") is True
    assert is_enabled(store, "player_9", "new_brush_rollout") is False

def test_decision_is_stored(store, make_experiment, db_session):
    experiment = make_rollout(make_experiment, rollout_percentage=100)
    is_enabled(store, "user123", "new_brush_rollout")

    stored = db_session.query(ExperimentResult).filter(
        ExperimentResult.experiment_id == experiment.id,
        ExperimentResult.user_id == "user123"
    ).one()
    assert stored.variant == "new"

def test_decision_is_sticky_when_percentage_changes(store, make_experiment):
    experiment = make_rollout(make_experiment, rollout_percentage=100)
    assert is_enabled(store, "user123", "new_brush_rollout") is True

    store.update_experiment(experiment.id, ExperimentUpdate(rollout_percentage=0))

    assert is_enabled(store, "user123", "new_brush_rollout") is True
    assert is_enabled(store, "user456", "new_brush_rollout") is False

def test_bucketing_is_stable_across_calls(store, make_experiment):
    make_rollout(make_experiment, rollout_percentage=50)
    first = [is_enabled(store, user, "new_brush_rollout") for user in USERS]
    second = [is_enabled(store, user, "new_brush_rollout") for user in USERS]
    assert first == second

def test_check_feature_flags(store, make_experiment):
    make_rollout(make_experiment, name="dark_mode", rollout_percentage=100)
    make_rollout(make_experiment, name="new_palette", rollout_percentage=0)

    flags = check_feature_flags(store, "user123", ["dark_mode", "new_palette", "missing", "dark_mode"])

    assert flags == {"dark_mode": True, "new_palette": False, "missing": False}

def test_rollout_without_percentage_or_variants_is_disabled(store, make_experiment):
    make_rollout(make_experiment, name="half_set_up")
    assert is_enabled(store, "user123", "half_set_up") is False
    assert store.db.query(ExperimentResult).count() == 0

def test_check_feature_flags_with_a_misconfigured_rollout(store, make_experiment):
    make_rollout(make_experiment, name="dark_mode", rollout_percentage=100)
    make_rollout(make_experiment, name="half_set_up")

    flags = check_feature_flags(store, "user123", ["dark_mode", "half_set_up"])

    assert flags == {"dark_mode": True, "half_set_up": False}
