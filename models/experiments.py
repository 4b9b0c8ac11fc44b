from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Any, Literal

# --- Pydantic Models for Requests/Responses ---

ExperimentType = Literal["ab_test", "gradual_rollout"]
ExperimentStatus = Literal["active", "paused", "completed"]
TargetGroup = Literal["all", "new_users", "premium_users", "specific_users"]


def _normalize_type(value):
    # Older clients still send the legacy name
    if value == "gray_release":
        return "gradual_rollout"
    return value


def _check_variant_names(variants):
    if variants is None:
        return variants
    names = [v.name for v in variants]
    if len(names) != len(set(names)):
        raise ValueError("Variant names must be unique")
    return variants


class VariantSpec(BaseModel):
    """One arm of an experiment and its relative traffic weight."""
    name: str = Field(..., min_length=1, description="Variant name (e.g., 'control', 'new_feature').")
    weight: float = Field(..., ge=0, description="Relative weight, weights need not sum to 100.")
    config: dict[str, Any] = Field(default_factory=dict, description="Opaque variant configuration.")

    class Config:
        from_attributes = True

class MetricGoal(BaseModel):
    """A metric the experiment aims to move."""
    name: str
    type: Literal["percentage", "count", "value"]
    goal: float

class ExperimentCreate(BaseModel):
    """Schema for creating a new experiment via POST /experiments."""
    name: str = Field(..., min_length=1)
    description: str | None = None
    type: ExperimentType = "ab_test"
    status: ExperimentStatus = "active"
    variants: list[VariantSpec] = Field(default_factory=list)
    rollout_percentage: float | None = Field(default=None, ge=0, le=100)
    target_groups: list[TargetGroup] = Field(default_factory=list)
    specific_user_ids: list[str] = Field(default_factory=list)
    goals: list[MetricGoal] = Field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value):
        return _normalize_type(value)

    @field_validator("variants")
    @classmethod
    def variant_names_unique(cls, variants: list[VariantSpec]):
        return _check_variant_names(variants)

    @model_validator(mode="after")
    def dates_ordered(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

class ExperimentUpdate(BaseModel):
    """Partial update via PATCH /experiments/{id}; unset fields are left alone."""
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    type: ExperimentType | None = None
    status: ExperimentStatus | None = None
    variants: list[VariantSpec] | None = None
    rollout_percentage: float | None = Field(default=None, ge=0, le=100)
    target_groups: list[TargetGroup] | None = None
    specific_user_ids: list[str] | None = None
    goals: list[MetricGoal] | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value):
        return _normalize_type(value)

    @field_validator("variants")
    @classmethod
    def variant_names_unique(cls, variants: list[VariantSpec] | None):
        return _check_variant_names(variants)

class ExperimentResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    type: str
    status: str
    variants: list[VariantSpec]
    rollout_percentage: float | None = None
    target_groups: list[str]
    specific_user_ids: list[str]
    goals: list[MetricGoal]
    start_date: datetime | None = None
    end_date: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

class UserProfile(BaseModel):
    """What the caller knows about the user, used only for target groups."""
    created_at: datetime | None = None
    membership_level: str | None = None

class ExperimentAssignmentResponse(BaseModel):
    """Schema returned by GET /experiments/{name}/assignment/{user_id}."""
    experiment_id: int
    experiment_name: str
    user_id: str
    variant: str
    config: dict[str, Any] = Field(default_factory=dict)
    assigned_at: datetime | None = None
