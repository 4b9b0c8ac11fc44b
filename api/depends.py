from datetime import datetime
from fastapi import Depends, Query
from sqlalchemy.orm import Session
from services.cache import CacheClient, get_cache_client
from services.store import ExperimentStore
from auth.security import get_current_client
from data.database import get_db
from models.experiments import UserProfile


def get_store(db: Session = Depends(get_db), cache: CacheClient = Depends(get_cache_client)) -> ExperimentStore:
    """One store per request, bound to the request's session."""
    return ExperimentStore(db=db, cache=cache)


def get_user_profile(
    account_created_at: datetime | None = Query(default=None, description="Account creation time of the user."),
    membership_level: str | None = Query(default=None, description="Membership tier, e.g. 'premium'."),
) -> UserProfile:
    return UserProfile(created_at=account_created_at, membership_level=membership_level)


# --- DEPENDENCY INJECTION SETUP ---
CLIENT_AUTH = Depends(get_current_client)
STORE_DEPENDENCY = Depends(get_store)
USER_PROFILE = Depends(get_user_profile)
