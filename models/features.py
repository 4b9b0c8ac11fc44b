from pydantic import BaseModel

class RolloutCheckResponse(BaseModel):
    """Schema returned by GET /features/{feature_name}/users/{user_id}."""
    feature_name: str
    user_id: str
    enabled: bool
