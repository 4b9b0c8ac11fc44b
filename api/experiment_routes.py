from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse
from typing import Literal

from config import config
from models.experiments import (
    ExperimentCreate, ExperimentUpdate, ExperimentResponse, ExperimentAssignmentResponse, UserProfile
)
from models.metrics import MetricCreate, MetricRecordResponse
from models.results import ExperimentResultsSummary
from services import assignment, metrics, results
from services.store import ExperimentStore
from api.depends import CLIENT_AUTH, STORE_DEPENDENCY, USER_PROFILE
from celery_tasks.metric_tasks import record_metric_task

import logging

logger = logging.getLogger(__name__)

experiment_router = APIRouter(
    prefix="/experiments",
    tags=["experiments"],
    dependencies=[CLIENT_AUTH],
)


# POST /experiments
@experiment_router.post("", response_model=ExperimentResponse, status_code=status.HTTP_201_CREATED)
def create_experiment_route(experiment_data: ExperimentCreate, store: ExperimentStore = STORE_DEPENDENCY):
    """Create a new A/B test or gradual rollout."""
    return store.create_experiment(experiment_data)


# GET /experiments
@experiment_router.get("", response_model=list[ExperimentResponse])
def list_experiments_route(
    experiment_status: Literal["active", "paused", "completed"] | None = Query(default=None, alias="status"),
    store: ExperimentStore = STORE_DEPENDENCY
):
    return store.list_experiments(status=experiment_status)


# PATCH /experiments/{experiment_id}
@experiment_router.patch("/{experiment_id}", response_model=ExperimentResponse)
def update_experiment_route(experiment_id: int, patch: ExperimentUpdate, store: ExperimentStore = STORE_DEPENDENCY):
    """Change status, weights or targeting. Users already assigned keep their variant."""
    return store.update_experiment(experiment_id, patch)


# POST /experiments/metrics
@experiment_router.post("/metrics", response_model=MetricRecordResponse, status_code=status.HTTP_201_CREATED)
def record_metric_route(metric_data: MetricCreate, store: ExperimentStore = STORE_DEPENDENCY):
    """
    Record a metric observation for a user in an experiment.
    With METRICS_ASYNC the write goes to a celery worker and 202 is returned with the task id.
    """
    if config.metrics_async:
        task = record_metric_task.delay(metric_data.model_dump())
        logger.debug("record_metric_task queued: %s", task.id)
        return JSONResponse(content={"status": "queued", "task_id": task.id}, status_code=status.HTTP_202_ACCEPTED)

    return metrics.record_metric(
        store,
        experiment_id=metric_data.experiment_id,
        user_id=metric_data.user_id,
        metric_name=metric_data.metric_name,
        value=metric_data.value
    )


# GET /experiments/{experiment_name}/assignment/{user_id}
@experiment_router.get("/{experiment_name}/assignment/{user_id}", response_model=ExperimentAssignmentResponse)
def get_user_assignment_route(
    experiment_name: str,
    user_id: str,
    profile: UserProfile = USER_PROFILE,
    store: ExperimentStore = STORE_DEPENDENCY
):
    """Get user's variant. Performs the assignment if none exists."""
    experiment, result = assignment.resolve_assignment(store, user_id, experiment_name, profile=profile)
    return ExperimentAssignmentResponse(
        experiment_id=experiment.id,
        experiment_name=experiment.name,
        user_id=user_id,
        variant=result.variant,
        config=assignment.variant_config(experiment, result.variant),
        assigned_at=result.assigned_at
    )


# GET /experiments/{experiment_id}/results
@experiment_router.get("/{experiment_id}/results", response_model=ExperimentResultsSummary)
def get_experiment_results_route(experiment_id: int, store: ExperimentStore = STORE_DEPENDENCY):
    """Per-variant user counts and metric aggregates."""
    return results.calculate_summary(store, experiment_id)
