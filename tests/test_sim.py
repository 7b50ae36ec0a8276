"""Tests for the simulated constant-product pool."""

import pytest

from levfarm.assets import Asset, Intrinsic
from levfarm.errors import ExternalFailure
from levfarm.sim.pair import Pair

LUNA = Intrinsic("luna")
UUSD = Intrinsic("uusd")


@pytest.fixture
def pair() -> Pair:
    p = Pair("pair", liquidity_token="lp", asset_infos=(LUNA, UUSD))
    p.seed([1_000_000, 4_000_000], 2_000_000)
    return p


def test_simulate_charges_commission(pair: Pair):
    return_amount, spread, commission = pair.simulate(Asset(LUNA, 500_000))
    # 4e6 * 5e5 / 1.5e6 before a 0.3% commission
    assert return_amount + commission == 1_333_333
    assert commission == 3_999
    assert spread == 2_000_000 - 1_333_333


def test_reverse_simulate_covers_ask(pair: Pair):
    offer = pair.reverse_simulate(Asset(UUSD, 1_000_000))
    return_amount, _, _ = pair.simulate(Asset(LUNA, offer))
    assert return_amount >= 1_000_000
    assert offer < 340_000


def test_reverse_simulate_beyond_depth(pair: Pair):
    with pytest.raises(ExternalFailure, match="exceeds pool depth"):
        pair.reverse_simulate(Asset(UUSD, 4_000_000))


def test_empty_pool_cannot_quote():
    p = Pair("pair", liquidity_token="lp", asset_infos=(LUNA, UUSD))
    with pytest.raises(ExternalFailure, match="empty"):
        p.simulate(Asset(LUNA, 1))


def test_unknown_asset(pair: Pair):
    with pytest.raises(ExternalFailure, match="not in this pool"):
        pair.simulate(Asset(Intrinsic("ukrw"), 1))
