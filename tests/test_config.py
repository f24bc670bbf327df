"""Tests for SimulationConfig / BackendServer validation and helpers."""

import pytest
from pydantic import ValidationError

from lb_simulator import BackendServer, SimulationConfig


class TestDefaults:
    def test_default_pool(self):
        config = SimulationConfig()
        assert [s.name for s in config.servers] == [
            "Server A", "Server B", "Server C", "Server D"
        ]
        assert [s.weight for s in config.servers] == [1, 2, 1, 3]
        assert all(s.capacity == 20 for s in config.servers)

    def test_default_timings(self):
        config = SimulationConfig()
        assert config.tick_interval_ms == 100
        assert config.service_duration_ms == 3000
        assert config.history_length == 100
        assert config.request_max_age_ms == 4500

    def test_max_age_follows_service_duration(self):
        assert SimulationConfig(service_duration_ms=1000).request_max_age_ms == 2500


class TestValidation:
    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError):
            SimulationConfig(
                servers=[BackendServer(id=1, name="a"), BackendServer(id=1, name="b")]
            )

    def test_empty_pool_rejected(self):
        with pytest.raises(ValidationError):
            SimulationConfig(servers=[])

    @pytest.mark.parametrize("field", ["capacity", "weight", "id"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            BackendServer(**{"id": 1, "name": "a", field: 0})

    def test_max_age_shorter_than_service_rejected(self):
        with pytest.raises(ValidationError):
            SimulationConfig(service_duration_ms=3000, request_max_age_ms=1000)

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            SimulationConfig(tick_interval_ms=0)


class TestHelpers:
    def test_uniform(self):
        config = SimulationConfig.uniform(3, capacity=7, weights=[1, 1, 5])
        assert [s.id for s in config.servers] == [1, 2, 3]
        assert [s.capacity for s in config.servers] == [7, 7, 7]
        assert [s.weight for s in config.servers] == [1, 1, 5]

    def test_uniform_weight_count_mismatch(self):
        with pytest.raises(ValueError):
            SimulationConfig.uniform(3, weights=[1, 2])

    def test_with_capacity_returns_copy(self):
        config = SimulationConfig()
        smaller = config.with_capacity(5)
        assert all(s.capacity == 5 for s in smaller.servers)
        assert all(s.capacity == 20 for s in config.servers)

    def test_with_capacity_validates(self):
        with pytest.raises(ValidationError):
            SimulationConfig().with_capacity(0)

    def test_with_weights(self):
        config = SimulationConfig().with_weights([4, 3, 2, 1])
        assert [s.weight for s in config.servers] == [4, 3, 2, 1]

    def test_with_weights_length_mismatch(self):
        with pytest.raises(ValueError):
            SimulationConfig().with_weights([1])

    def test_server_eligibility(self):
        server = BackendServer(id=1, name="a", capacity=2, load=2)
        assert not server.is_eligible
        assert server.utilization == 1.0
        assert not BackendServer(id=2, name="b", available=False).is_eligible
