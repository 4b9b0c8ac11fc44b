import logging
import redis
from data.database import Experiment, ExperimentResult
from config import config

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
EXPERIMENT_CACHE_TTL = 60    # seconds, experiment definitions
RESULT_CACHE_TTL = 300       # seconds, sticky assignments never change once set

# --- Valkey/Redis Backend Implementations ---

class _MockValkeyBackend:
    """Dict-backed stand-in used in tests and when Valkey is disabled."""
    def __init__(self):
        self._cache = {}

    def get(self, key: str) -> str | None:
        return self._cache.get(key)

    def set(self, key: str, value: str, ex: int):
        # Expiration is ignored in memory
        self._cache[key] = value

    def delete(self, key: str):
        self._cache.pop(key, None)

class RealValkeyBackend:
    """Valkey through redis-py. Read and write errors degrade to cache misses."""
    def __init__(self, host: str, port: int, db: int = 0, password: str | None = None):
        try:
            self.client = redis.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
                socket_timeout=2.0
            )
            self.client.ping()
        except redis.RedisError as e:
            logger.error("Failed to connect to Valkey/Redis: %s", e)
            raise

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error("Valkey GET error for key %s: %s", key, e)
            return None

    def set(self, key: str, value: str, ex: int):
        try:
            self.client.set(key, value, ex=ex)
        except redis.RedisError as e:
            logger.error("Valkey SET error for key %s: %s", key, e)

    def delete(self, key: str):
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.error("Valkey DEL error for key %s: %s", key, e)


# --- Dedicated Cache Client Class ---

class CacheClient:
    """High-level client for managing application cache operations."""

    def __init__(self, backend):
        self.backend = backend
        logger.debug("CacheClient backend: %s", self.backend)

    # --- Experiment Caching ---

    def get_experiment(self, name: str) -> Experiment | None:
        json_str = self.backend.get(f"exp:{name}")
        if json_str:
            return Experiment.from_json(json_str=json_str)

        return None

    def set_experiment(self, experiment: Experiment):
        json_str = experiment.to_json(exclude_relationships_key=["results"])
        self.backend.set(f"exp:{experiment.name}", json_str, ex=EXPERIMENT_CACHE_TTL)
        logger.debug("Experiment %s (EID %d) cached.", experiment.name, experiment.id)

    def invalidate_experiment(self, name: str):
        self.backend.delete(f"exp:{name}")

    # --- Result Caching ---

    def get_result(self, experiment_id: int, user_id: str) -> ExperimentResult | None:
        json_str = self.backend.get(f"res:{experiment_id}:{user_id}")
        if json_str:
            return ExperimentResult.from_json(json_str=json_str, include_relationship=False)

        return None

    def set_result(self, result: ExperimentResult):
        # Metric-only records have no variant yet and must not be served as assignments
        if result.variant is None:
            return
        json_str = result.to_json(include_relationships=False)
        self.backend.set(f"res:{result.experiment_id}:{result.user_id}", json_str, ex=RESULT_CACHE_TTL)
        logger.debug("Result for user %s (EID %d) cached.", result.user_id, result.experiment_id)

# --- Initialize Backend and Default Client ---
valkey_host = config.valkey_host
valkey_port = config.valkey_port

if valkey_host:
    logger.info("valkey_host: %s, port: %d", valkey_host, valkey_port)
    try:
        VALKEY_BACKEND = RealValkeyBackend(host=valkey_host, port=valkey_port)
    except redis.RedisError:
        logger.info("Falling back to Mock Valkey Backend due to connection failure.")
        VALKEY_BACKEND = _MockValkeyBackend()
else:
    logger.info("VALKEY_HOST not set. Using Mock Valkey Backend.")
    VALKEY_BACKEND = _MockValkeyBackend()

# Initialize a default client (singleton)
_DEFAULT_CACHE_CLIENT = CacheClient(backend=VALKEY_BACKEND)

def get_cache_client():
    return _DEFAULT_CACHE_CLIENT

def get_mock_cache_client():
    return CacheClient(backend=_MockValkeyBackend())
