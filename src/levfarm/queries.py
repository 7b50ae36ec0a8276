from __future__ import annotations

"""Read-only views. None of these schedule sub-operations or write storage."""

from dataclasses import dataclass

from levfarm.health import compute_health
from levfarm.host import Deps, Env
from levfarm.msg import POSITIONS_DEFAULT_LIMIT, POSITIONS_MAX_LIMIT
from levfarm.state import Config, Health, Position, Snapshot, State


@dataclass(frozen=True)
class PositionInfo:
    user: str
    position: Position
    health: Health


def query_config(deps: Deps) -> Config:
    return deps.storage.load_config()


def query_state(deps: Deps) -> State:
    return deps.storage.load_state()


def query_position(deps: Deps, user: str) -> Position:
    return deps.storage.load_position(user)


def query_health(deps: Deps, env: Env, user: str) -> Health:
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(user)
    return compute_health(deps, env, config, state, position)


def query_positions(deps: Deps, env: Env, start_after: str | None = None, limit: int | None = None) -> list[PositionInfo]:
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    limit = min(limit or POSITIONS_DEFAULT_LIMIT, POSITIONS_MAX_LIMIT)
    return [
        PositionInfo(user, position, compute_health(deps, env, config, state, position))
        for user, position in deps.storage.range_positions(start_after, limit)
    ]


def query_snapshot(deps: Deps, user: str) -> Snapshot | None:
    return deps.storage.load_snapshot(user)


__all__ = [
    "PositionInfo",
    "query_config",
    "query_state",
    "query_position",
    "query_health",
    "query_positions",
    "query_snapshot",
]
