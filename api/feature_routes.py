from fastapi import APIRouter, Query

from models.experiments import UserProfile
from models.features import RolloutCheckResponse
from services import rollout
from services.store import ExperimentStore
from api.depends import CLIENT_AUTH, STORE_DEPENDENCY, USER_PROFILE

import logging

logger = logging.getLogger(__name__)

feature_router = APIRouter(
    prefix="/features",
    tags=["features"],
    dependencies=[CLIENT_AUTH],
)


# GET /features/flags/{user_id}?features=a,b
@feature_router.get("/flags/{user_id}", response_model=dict[str, bool])
def feature_flags_route(
    user_id: str,
    features: str = Query(..., description="Comma separated feature names."),
    profile: UserProfile = USER_PROFILE,
    store: ExperimentStore = STORE_DEPENDENCY
):
    """Rollout state of several features at once."""
    feature_names = [name.strip() for name in features.split(",") if name.strip()]
    return rollout.check_feature_flags(store, user_id, feature_names, profile=profile)


# GET /features/{feature_name}/users/{user_id}
@feature_router.get("/{feature_name}/users/{user_id}", response_model=RolloutCheckResponse)
def rollout_check_route(
    feature_name: str,
    user_id: str,
    profile: UserProfile = USER_PROFILE,
    store: ExperimentStore = STORE_DEPENDENCY
):
    """Whether the gradual rollout `feature_name` is enabled for the user."""
    enabled = rollout.is_enabled(store, user_id, feature_name, profile=profile)
    return RolloutCheckResponse(feature_name=feature_name, user_id=user_id, enabled=enabled)
