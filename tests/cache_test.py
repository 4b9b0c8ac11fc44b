from unittest.mock import patch
import pytest
import redis
from data.database import ExperimentResult
from services.cache import CacheClient, RealValkeyBackend, get_mock_cache_client


def test_experiment_round_trip_and_invalidate(cache, make_experiment):
    experiment = make_experiment()
    cache.set_experiment(experiment)

    cached = cache.get_experiment("payment_button_test")
    assert cached.id == experiment.id
    assert [v.name for v in cached.variants] == ["control", "variant_a"]

    cache.invalidate_experiment("payment_button_test")
    assert cache.get_experiment("payment_button_test") is None

def test_metric_only_result_is_not_cached():
    cache = get_mock_cache_client()
    cache.set_result(ExperimentResult(id=1, experiment_id=1, user_id="u1", variant=None))
    assert cache.get_result(1, "u1") is None

def test_valkey_errors_degrade_to_misses():
    with patch("services.cache.redis.Redis") as mock_redis:
        client = mock_redis.return_value
        backend = RealValkeyBackend(host="valkey", port=6379)

    client.get.side_effect = redis.ConnectionError("valkey is down")
    client.set.side_effect = redis.ConnectionError("valkey is down")
    client.delete.side_effect = redis.ConnectionError("valkey is down")
    cache = CacheClient(backend=backend)

    assert cache.get_result(1, "u1") is None
    cache.set_result(ExperimentResult(id=1, experiment_id=1, user_id="u1", variant="control"))
    cache.invalidate_experiment("payment_button_test")

def test_valkey_unreachable_on_connect_raises():
    with patch("services.cache.redis.Redis") as mock_redis:
        mock_redis.return_value.ping.side_effect = redis.ConnectionError("refused")
        with pytest.raises(redis.RedisError):
            RealValkeyBackend(host="valkey", port=6379)
