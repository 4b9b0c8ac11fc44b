import os
import log
from dotenv import load_dotenv

# Load .env file into environment
load_dotenv()


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    def __init__(self):
        self.valkey_host = os.getenv("VALKEY_HOST", "localhost")
        self.valkey_port = int(os.getenv("VALKEY_PORT", 6379))
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./experiments.db")
        self.log_level = os.getenv("LOG_LEVEL", default="INFO")
        self.log_filename = os.getenv("LOG_FILENAME", "experiment_engine.log")
        self.valid_tokens = _split_list(os.getenv("VALID_TOKENS"))
        self.celery_broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
        self.celery_backend_url = os.getenv("CELERY_BACKEND_URL", "redis://localhost:6379/1")

        # Metric writes go through celery when enabled
        self.metrics_async = os.getenv("METRICS_ASYNC", "false").lower() in ("1", "true", "yes")

        # Rollout / target group settings
        self.new_user_max_age_days = int(os.getenv("NEW_USER_MAX_AGE_DAYS", 7))
        self.premium_membership_levels = _split_list(os.getenv("PREMIUM_MEMBERSHIP_LEVELS", "premium"))
        self.rollout_variant_names = _split_list(os.getenv("ROLLOUT_VARIANT_NAMES", "new_feature,enabled,new"))

        # Call setup_logging when the application starts
        log.setup_logging(self.log_level, self.log_filename)

    def __repr__(self):
        return (
            f"<Settings host={self.valkey_host} port={self.valkey_port} loglevel={self.log_level}, "
            f"broker_url:{self.celery_broker_url}, backend_url:{self.celery_backend_url}, "
            f"metrics_async:{self.metrics_async}>"
        )

config = Config()
