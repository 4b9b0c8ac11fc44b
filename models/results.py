from pydantic import BaseModel, Field
from datetime import datetime
from models.experiments import MetricGoal

class MetricSummary(BaseModel):
    """Aggregate of one metric name within a variant."""
    count: int
    total: float
    mean: float

class VariantResult(BaseModel):
    """Detailed statistics for a single variant."""
    user_count: int
    # Key is metric name (e.g., 'click_rate')
    metrics: dict[str, MetricSummary] = Field(default_factory=dict)

class ExperimentResultsSummary(BaseModel):
    """Schema returned by GET /experiments/{id}/results."""
    experiment_id: int
    experiment_name: str
    report_generated_at: datetime
    goals: list[MetricGoal] = Field(default_factory=list)
    # Key is variant name (e.g., 'control')
    variant_data: dict[str, VariantResult]
