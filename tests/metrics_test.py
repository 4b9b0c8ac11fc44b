from datetime import datetime
from unittest.mock import patch
import pytest
from celery_tasks.metric_tasks import record_metric_task
from services.assignment import resolve_variant
from services.errors import NotFoundError
from services.metrics import record_metric
from services.results import calculate_summary


def test_metric_append_is_non_destructive(store, make_experiment):
    experiment = make_experiment()
    resolve_variant(store, "user123", "payment_button_test")

    record_metric(store, experiment.id, "user123", "click", 1)
    result = record_metric(store, experiment.id, "user123", "click", 2)

    assert len(result.metrics) == 2
    assert [m.value for m in result.metrics] == [1.0, 2.0]

def test_metric_before_assignment_is_kept(store, make_experiment):
    experiment = make_experiment(variants=[{"name": "only", "weight": 1}])
    record_metric(store, experiment.id, "early_bird", "app_open", 1)

    assert resolve_variant(store, "early_bird", "payment_button_test") == "only"

    result = record_metric(store, experiment.id, "early_bird", "click", 1)
    assert result.variant == "only"
    assert [m.name for m in result.metrics] == ["app_open", "click"]

def test_metric_uses_given_timestamp(store, make_experiment):
    experiment = make_experiment()
    when = datetime(2026, 3, 1, 8, 30)
    result = record_metric(store, experiment.id, "user123", "click", 1, now=when)
    assert result.metrics[0].recorded_at == when

def test_metric_for_unknown_experiment(store):
    with pytest.raises(NotFoundError):
        record_metric(store, 999, "user123", "click", 1)

def test_summary_reports_every_variant(store, make_experiment):
    experiment = make_experiment(goals=[{"name": "click", "type": "count", "goal": 10}])
    store.upsert_result(experiment.id, "u1", "control")
    record_metric(store, experiment.id, "u1", "click", 4)

    summary = calculate_summary(store, experiment.id)

    assert summary.experiment_name == "payment_button_test"
    assert summary.goals[0].name == "click"
    assert summary.variant_data["control"].user_count == 1
    assert summary.variant_data["control"].metrics["click"].mean == 4.0
    assert summary.variant_data["variant_a"].user_count == 0
    assert summary.variant_data["variant_a"].metrics == {}

def test_summary_unknown_experiment(store):
    with pytest.raises(NotFoundError):
        calculate_summary(store, 999)

def test_metric_task_records_with_its_own_session(store, make_experiment, cache, session_factory):
    experiment = make_experiment()
    payload = {"experiment_id": experiment.id, "user_id": "user123", "metric_name": "click", "value": 1}

    with patch("celery_tasks.metric_tasks.SessionLocal", session_factory), \
         patch("celery_tasks.metric_tasks.get_cache_client", return_value=cache):
        result_id = record_metric_task.apply(args=(payload,)).get()

    assert result_id is not None
    store.db.expire_all()
    assert [m.name for m in store.find_result(experiment.id, "user123").metrics] == ["click"]
