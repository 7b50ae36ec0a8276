"""Tests for position valuation and LTV."""

from levfarm.health import fair_pool_value, is_healthy
from levfarm.numeric import Decimal
from levfarm.scenarios import ALICE, BOB, LP_TOKEN
from levfarm.state import Health


def test_fair_pool_value_balanced_pool():
    assert fair_pool_value(1_000_000, Decimal.from_int(4), 4_000_000, Decimal.one()) == 8_000_000


def test_fair_pool_value_handles_wide_product():
    depth = 10**30
    price = Decimal.from_int(10**6)
    # the product of the two legs is ~2^239, the result still fits 128 bits
    assert fair_pool_value(depth, price, depth, price) == 2 * 10**36


def test_is_healthy():
    assert is_healthy(Health(ltv=Decimal.percent(75)), Decimal.percent(75))
    assert not is_healthy(Health(ltv=Decimal.percent(76)), Decimal.percent(75))
    assert is_healthy(Health(), Decimal.percent(75))
    # debt without any bond is never healthy
    assert not is_healthy(Health(debt_value=5), Decimal.percent(75))


def test_health_after_opening(opened_world):
    health = opened_world.health(ALICE)
    assert health.bond_amount == 2_000_000
    assert health.bond_value == 8_000_000
    assert health.debt_amount == 4_000_000
    assert health.debt_value == 4_000_000
    assert health.ltv == Decimal.from_str("0.5")


def test_health_of_stranger_is_empty(opened_world):
    health = opened_world.health(BOB)
    assert health == Health()
    assert health.ltv is None


def test_bond_value_ignores_pool_imbalance(opened_world):
    before = opened_world.health(ALICE)
    pair = opened_world.pair
    primary, secondary = pair.asset_infos
    # move the pool along its constant-product curve (2e6 * 8e6 == 4e6 * 4e6)
    pair.reserves[primary] = 4_000_000
    pair.reserves[secondary] = 4_000_000
    after = opened_world.health(ALICE)
    assert after.bond_value == before.bond_value
    assert after.ltv == before.ltv


def test_bond_value_follows_oracle(opened_world):
    opened_world.oracle.set_price(opened_world.primary, "1")
    health = opened_world.health(ALICE)
    # 2 * sqrt(2e6 * 8e6) = 8e6 for the whole pool, Alice holds half the shares
    assert health.bond_value == 4_000_000
    assert health.ltv == Decimal.one()
    assert opened_world.lp_token.total_supply == 4_000_000
    assert opened_world.lp_token.balance(opened_world.generator.address) == 2_000_000
    assert LP_TOKEN == opened_world.config.primary_pair.liquidity_token
