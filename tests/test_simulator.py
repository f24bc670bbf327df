"""Tests for LoadBalancerSimulator — commands, queries, invariants, async driver."""

import asyncio
import random

import pytest

from lb_simulator import (
    InvalidServerReference,
    LoadBalancerSimulator,
    RoutingPolicy,
    SimulationConfig,
)


@pytest.fixture
def sim():
    return LoadBalancerSimulator(SimulationConfig(seed=11))


# ─────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────


class TestCommands:
    def test_start_and_stop(self, sim):
        sim.start()
        assert sim.is_running
        sim.advance(500)
        sim.stop()
        assert not sim.is_running
        assert sim.stats().ticks == 5

    def test_toggle_availability(self, sim):
        sim.run_ticks(4)
        assert sim.pool.get(2).load == 1

        assert sim.toggle_availability(2) is False
        assert sim.pool.get(2).load == 0
        assert sim.toggle_availability(2) is True

    def test_toggle_unknown_server(self, sim):
        before = sim.pool_snapshot()
        with pytest.raises(InvalidServerReference):
            sim.toggle_availability(99)
        assert sim.pool_snapshot() == before

    def test_reset_restores_clean_state(self, sim):
        sim.set_policy(RoutingPolicy.IP_HASH)
        sim.run_ticks(10)
        sim.toggle_availability(1)

        sim.reset()

        assert not sim.is_running
        assert all(s.load == 0 and s.available for s in sim.pool_snapshot())
        assert sim.history_snapshot() == []
        assert sim.in_flight_requests() == []
        assert sim.engine.sticky_table == {}
        assert sim.last_decision_message() == ""

    def test_round_robin_restarts_at_first_server_after_reset(self, sim):
        sim.run_ticks(3)
        sim.reset()
        sim.run_ticks(1)
        assert [r.server_id for r in sim.in_flight_requests()] == [1]

    def test_requests_in_flight_at_reset_never_release(self, sim):
        sim.run_ticks(5)
        sim.reset()
        sim.run_ticks(1)
        sim.stop()

        # Only the post-reset request remains; old timers were cancelled.
        sim.advance(sim.config.service_duration_ms - 1)
        assert sum(s.load for s in sim.pool_snapshot()) == 1
        sim.advance(1)
        assert sum(s.load for s in sim.pool_snapshot()) == 0

    def test_set_policy_stops_and_resets(self, sim):
        sim.run_ticks(5)
        sim.set_policy("leastConnections")

        assert sim.policy is RoutingPolicy.LEAST_CONNECTIONS
        assert not sim.is_running
        assert sim.history_snapshot() == []
        assert sim.stats().ticks == 0

    def test_set_same_policy_still_resets(self, sim):
        sim.run_ticks(5)
        sim.set_policy(RoutingPolicy.ROUND_ROBIN)
        assert sim.stats().ticks == 0

    def test_set_unknown_policy_rejected(self, sim):
        with pytest.raises(ValueError):
            sim.set_policy("fastest")


# ─────────────────────────────────────────────────────────────────────
# Queries
# ─────────────────────────────────────────────────────────────────────


class TestQueries:
    def test_history_is_bounded(self):
        sim = LoadBalancerSimulator(SimulationConfig(history_length=10, seed=1))
        sim.run_ticks(25)

        history = sim.history_snapshot()
        assert len(history) == 10
        assert history[0].tick == 15
        assert history[-1].tick == 24

    def test_snapshot_does_not_alias_pool(self, sim):
        sim.run_ticks(1)
        snapshot = sim.pool_snapshot()
        snapshot[0].load = 99
        assert sim.pool.get(1).load == 1

    def test_last_decision_message(self, sim):
        sim.run_ticks(1)
        assert sim.last_decision_message() == "Request routed to Server A (Round Robin)"

    def test_listeners(self, sim):
        completed, dropped = [], []
        sim.add_completion_listener(completed.append)
        sim.add_drop_listener(dropped.append)

        for server in sim.pool_snapshot():
            sim.set_availability(server.id, False)
        sim.run_ticks(2)
        assert len(dropped) == 2

        sim.set_availability(1, True)
        sim.advance(100)
        sim.stop()
        sim.advance(sim.config.service_duration_ms)
        assert len(completed) == 1


# ─────────────────────────────────────────────────────────────────────
# Invariants under load
# ─────────────────────────────────────────────────────────────────────


class TestInvariants:
    @pytest.mark.parametrize("policy", list(RoutingPolicy))
    def test_load_within_bounds_under_flapping(self, policy):
        config = SimulationConfig(seed=5, client_population=8).with_capacity(6)
        sim = LoadBalancerSimulator(config, policy=policy)
        flapper = random.Random(99)
        sim.start()

        for step in range(600):
            sim.advance(config.tick_interval_ms)
            if step % 17 == 0:
                sim.toggle_availability(flapper.choice([1, 2, 3, 4]))
            for server in sim.pool_snapshot():
                assert 0 <= server.load <= server.capacity

        stats = sim.stats()
        assert stats.accepted + stats.dropped == stats.ticks == 600

    def test_saturation_drops_without_mutation(self):
        config = SimulationConfig.uniform(2, capacity=2, seed=3)
        sim = LoadBalancerSimulator(config)
        sim.run_ticks(4)
        loads = [s.load for s in sim.pool_snapshot()]

        sim.advance(config.tick_interval_ms)

        assert [s.load for s in sim.pool_snapshot()] == loads == [2, 2]
        assert sim.stats().dropped == 1
        assert "dropped" in sim.last_decision_message()

    def test_weighted_fallback_counted(self):
        class FirstChoice:
            def choice(self, seq):
                return seq[0]

        sim = LoadBalancerSimulator(
            SimulationConfig(seed=2),
            policy=RoutingPolicy.WEIGHTED_ROUND_ROBIN,
            routing_rng=FirstChoice(),
        )
        sim.set_availability(4, False)
        sim.run_ticks(7)

        stats = sim.stats()
        # Server D holds three of the seven weighted slots.
        assert stats.fallbacks == 3
        assert stats.per_server == {1: 4, 2: 2, 3: 1}


# ─────────────────────────────────────────────────────────────────────
# Async driver
# ─────────────────────────────────────────────────────────────────────


class TestAsyncRun:
    @pytest.mark.asyncio
    async def test_run_for_duration(self, sim):
        await sim.run(duration_ms=500, speed=1000)

        assert not sim.is_running
        assert sim.stats().ticks == 5
        assert len(sim.history_snapshot()) == 5

    @pytest.mark.asyncio
    async def test_stop_from_another_task(self, sim):
        task = asyncio.create_task(sim.run(speed=100))
        await asyncio.sleep(0.05)
        assert sim.is_running

        sim.stop()
        await asyncio.wait_for(task, timeout=1.0)

        ticks = sim.stats().ticks
        assert ticks > 0
        await asyncio.sleep(0.02)
        assert sim.stats().ticks == ticks

    @pytest.mark.asyncio
    async def test_cancel_stops_clock(self, sim):
        task = asyncio.create_task(sim.run(speed=100))
        await asyncio.sleep(0.02)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not sim.is_running

    @pytest.mark.asyncio
    async def test_invalid_speed(self, sim):
        with pytest.raises(ValueError):
            await sim.run(speed=0)
