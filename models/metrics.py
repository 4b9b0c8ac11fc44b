from pydantic import BaseModel, Field
from datetime import datetime

class MetricCreate(BaseModel):
    """Schema for recording a metric via POST /experiments/metrics."""
    experiment_id: int
    user_id: str = Field(..., min_length=1)
    metric_name: str = Field(..., min_length=1, description="Metric name (e.g., 'click_rate').")
    value: float

class MetricEntry(BaseModel):
    name: str
    value: float
    recorded_at: datetime

    class Config:
        from_attributes = True

class MetricRecordResponse(BaseModel):
    """Result record after the metric was appended."""
    experiment_id: int
    user_id: str
    variant: str | None = None
    metrics: list[MetricEntry]

    class Config:
        from_attributes = True
