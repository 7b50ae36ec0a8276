"""Tests for read-only queries."""

import pytest

from levfarm import msg
from levfarm.errors import BadArgument
from levfarm.numeric import Decimal
from levfarm.queries import PositionInfo
from levfarm.scenarios import ALICE, ENGINE
from levfarm.state import Position, State


def _positions(world, **kwargs) -> list[PositionInfo]:
    return world.chain.query(ENGINE, msg.PositionsQuery(**kwargs))


def test_state_starts_empty(world):
    assert world.state() == State()


def test_query_position_of_unknown_user(world):
    assert world.position("nobody") == Position()
    assert world.chain.query(ENGINE, msg.SnapshotQuery("nobody")) is None


def test_positions_pagination(world):
    users = [f"user{i:02d}" for i in range(12)]
    for user in users:
        world.open_position(user, 10_000)

    first = _positions(world)
    assert [p.user for p in first] == users[:10]
    assert all(p.health.ltv == Decimal.from_str("0.5") for p in first)

    rest = _positions(world, start_after=first[-1].user)
    assert [p.user for p in rest] == users[10:]

    assert len(_positions(world, limit=3)) == 3
    assert len(_positions(world, limit=100)) == 12


def test_positions_limit_is_capped(world):
    for i in range(31):
        world.open_position(f"user{i:02d}", 1_000)
    assert len(_positions(world, limit=100)) == msg.POSITIONS_MAX_LIMIT


def test_queries_do_not_write(opened_world):
    storage = opened_world.engine.storage
    before = (storage.load_state(), storage.load_position(ALICE), storage.load_snapshot(ALICE))
    opened_world.health(ALICE)
    _positions(opened_world)
    after = (storage.load_state(), storage.load_position(ALICE), storage.load_snapshot(ALICE))
    assert before == after


def test_unknown_query_is_rejected(world):
    with pytest.raises(BadArgument):
        world.chain.query(ENGINE, object())
