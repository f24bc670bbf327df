"""Headless runner: simulate a number of ticks and print a JSON summary."""

import argparse
import json
import logging
from typing import List, Optional

from lb_simulator.config import SimulationConfig
from lb_simulator.routing import RoutingPolicy
from lb_simulator.simulator import LoadBalancerSimulator

logger = logging.getLogger(__name__)


def _int_list(value: str) -> list[int]:
    try:
        return [int(v) for v in value.split(",") if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated integers: {value!r}")


def build_config(args: argparse.Namespace) -> SimulationConfig:
    config = SimulationConfig(
        tick_interval_ms=args.tick_interval_ms,
        service_duration_ms=args.service_ms,
        history_length=args.history,
        seed=args.seed,
        client_population=args.clients,
    )
    if args.capacity is not None:
        config = config.with_capacity(args.capacity)
    if args.weights is not None:
        config = config.with_weights(args.weights)
    return config


def summarize(sim: LoadBalancerSimulator) -> dict:
    return {
        "policy": sim.policy.value,
        "simulated_ms": sim.now,
        "stats": sim.stats().as_dict(),
        "servers": [
            {
                "id": s.id,
                "name": s.name,
                "load": s.load,
                "capacity": s.capacity,
                "weight": s.weight,
                "available": s.available,
            }
            for s in sim.pool_snapshot()
        ],
        "in_flight": len(sim.in_flight_requests()),
        "history_length": len(sim.history_snapshot()),
        "last_message": sim.last_decision_message(),
    }


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="load balancer routing simulation")
    parser.add_argument(
        "--policy",
        type=str,
        default=RoutingPolicy.ROUND_ROBIN.value,
        choices=[p.value for p in RoutingPolicy],
    )
    parser.add_argument("--ticks", type=int, default=600, help="Ticks to simulate")
    parser.add_argument("--tick-interval-ms", type=int, default=100)
    parser.add_argument("--service-ms", type=int, default=3000)
    parser.add_argument("--capacity", type=int, default=None, help="Per-server capacity")
    parser.add_argument("--weights", type=_int_list, default=None, help="e.g. 1,2,1,3")
    parser.add_argument("--history", type=int, default=100)
    parser.add_argument("--clients", type=int, default=None, help="Returning client population")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--down",
        type=int,
        action="append",
        default=[],
        metavar="ID",
        help="Mark a server unavailable before starting (repeatable)",
    )
    parser.add_argument("--log-level", type=str, default="WARNING")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    sim = LoadBalancerSimulator(config, policy=args.policy)
    for server_id in args.down:
        try:
            sim.set_availability(server_id, False)
        except LookupError as e:
            parser.error(str(e))

    sim.run_ticks(args.ticks)
    sim.stop()
    logger.info(f"Finished {args.ticks} ticks")

    print(json.dumps(summarize(sim), indent=2))
    return 0
