"""Tests for user-facing commands: validation, authorization and atomicity."""

from dataclasses import replace

import pytest

from levfarm import execute as ex
from levfarm import msg, subops
from levfarm.assets import Asset, AssetList, Fungible, Intrinsic
from levfarm.contract import FieldContract
from levfarm.errors import BadArgument, InvariantViolation, MissingPrecondition, Unauthorized, UnhealthyPosition
from levfarm.host import Coin, Deps, Env, Response, WasmExecute
from levfarm.numeric import Decimal
from levfarm.scenarios import ALICE, BOB, CAROL, ENGINE, GOVERNANCE, OPERATOR, PAIR, REWARD_TOKEN
from levfarm.state import Position, Storage
from levfarm.subops import Callback


def _engine_actions(result) -> list[str]:
    return [a for a in result.wasm_actions() if a.startswith("levfarm/")]


def _assert_engine_solvent(world) -> None:
    """The engine's own balances cover every ledger it keeps."""
    owed: dict = {}
    for _, position in world.engine.storage.range_positions():
        for asset in position.unlocked_assets:
            owed[asset.info] = owed.get(asset.info, 0) + asset.amount
    for asset in world.state().pending_rewards:
        owed[asset.info] = owed.get(asset.info, 0) + asset.amount
    for info, amount in owed.items():
        if isinstance(info, Intrinsic):
            held = world.balance(ENGINE, info.denom)
        else:
            held = world.chain.contract(info.contract_addr).balance(ENGINE)
        assert held >= amount, f"{info}: engine holds {held}, ledgers say {amount}"


def test_instantiate_rejects_out_of_range_max_ltv(world):
    bad = replace(world.config, max_ltv=Decimal.from_str("0.65"))
    with pytest.raises(BadArgument, match="max_ltv"):
        FieldContract("other").instantiate(world.chain, world.chain.env_for("other"), GOVERNANCE, bad)


def test_instantiate_rejects_fee_rate_above_cap(world):
    bad = replace(world.config, fee_rate=Decimal.percent(21))
    with pytest.raises(BadArgument, match="fee_rate"):
        FieldContract("other").instantiate(world.chain, world.chain.env_for("other"), GOVERNANCE, bad)


def test_increase_position_opens_leveraged_position(world, params):
    result = world.open_position(ALICE, params.deposit)

    assert _engine_actions(result) == [
        "levfarm/execute/increase_position",
        "levfarm/callback/borrow",
        "levfarm/callback/provide_liquidity",
        "levfarm/reply/provide_liquidity",
        "levfarm/callback/bond",
        "levfarm/callback/assert_health",
        "levfarm/callback/snapshot",
    ]
    position = world.position(ALICE)
    assert position.bond_units == 2_000_000 * 1_000_000
    assert position.debt_units == 4_000_000 * 1_000_000
    assert position.unlocked_assets.is_empty()
    assert world.money_market.debt_of(ENGINE, world.secondary) == 4_000_000
    assert world.generator.bonded[ENGINE] == 2_000_000

    changed = result.find("position_changed")
    assert len(changed) == 1
    assert changed[0].get("ltv") == "0.5"

    snapshot = world.chain.query(ENGINE, msg.SnapshotQuery(ALICE))
    assert snapshot.position == position
    assert snapshot.health.ltv == Decimal.from_str("0.5")

    # nothing is stranded in the engine
    assert world.balance(ENGINE, "luna") == 0
    assert world.balance(ENGINE, "uusd") == 0


def test_transient_user_is_cleared_after_action(opened_world):
    assert opened_world.engine.storage.may_load_transient_user() is None


def test_callback_from_outside_is_rejected(opened_world):
    before = opened_world.position(ALICE)
    steal = Callback(subops.Refund(ALICE, CAROL, Decimal.one()))
    with pytest.raises(Unauthorized):
        opened_world.chain.execute(CAROL, ENGINE, steal)
    assert opened_world.position(ALICE) == before


def test_leftover_transient_user_is_an_invariant_violation(opened_world):
    opened_world.engine.storage.save_transient_user(BOB)
    with pytest.raises(InvariantViolation):
        opened_world.execute(ALICE, msg.ReducePosition(bond_units_to_reduce=1))


def test_extra_funds_roll_back_everything(world, params):
    world.fund(ALICE, "luna", params.deposit)
    world.fund(ALICE, "uusd", 5)
    deposit = Asset(world.primary, params.deposit)
    with pytest.raises(BadArgument, match="extra funds"):
        world.execute(
            ALICE, msg.IncreasePosition((deposit,)), [Coin("luna", params.deposit), Coin("uusd", 5)]
        )
    assert world.balance(ALICE, "luna") == params.deposit
    assert world.balance(ALICE, "uusd") == 5
    assert world.balance(ENGINE, "luna") == 0
    assert world.position(ALICE) == Position()


def test_commands_without_deposits_reject_funds(opened_world):
    opened_world.fund(ALICE, "uusd", 10)
    with pytest.raises(BadArgument, match="extra funds"):
        opened_world.execute(ALICE, msg.ReducePosition(), [Coin("uusd", 10)])


def test_deposit_amount_must_match_funds(world):
    world.fund(ALICE, "luna", 100)
    with pytest.raises(BadArgument, match="mismatch"):
        world.execute(
            ALICE, msg.UpdatePosition((msg.Deposit(Asset(world.primary, 101)),)), [Coin("luna", 100)]
        )


def test_deposit_of_unlisted_asset_is_rejected(world):
    deposit = msg.Deposit(Asset(Fungible(REWARD_TOKEN), 100))
    with pytest.raises(BadArgument, match="cannot deposit"):
        world.execute(ALICE, msg.UpdatePosition((deposit,)))


def test_fungible_deposit_is_pulled_with_transfer_from(world):
    token = Fungible("primary_token")
    storage = Storage()
    storage.save_config(replace(world.config, primary_asset_info=token))
    deps = Deps(storage=storage, querier=world.chain)
    messages: list = []
    response = Response()

    ex.handle_deposit(deps, Env(ENGINE), ALICE, AssetList(), Asset(token, 500), messages, response)

    assert messages == [
        WasmExecute("primary_token", {"transfer_from": {"owner": ALICE, "recipient": ENGINE, "amount": 500}})
    ]
    assert storage.load_position(ALICE).unlocked_assets.amount_of(token) == 500
    assert response.attribute("deposit_received") == str(Asset(token, 500))


def test_update_position_deposit_only_is_refunded(world):
    world.fund(ALICE, "luna", 1_000)
    world.execute(ALICE, msg.UpdatePosition((msg.Deposit(Asset(world.primary, 1_000)),)), [Coin("luna", 1_000)])
    assert world.balance(ALICE, "luna") == 1_000
    assert world.position(ALICE) == Position()


def test_unbond_of_zero_units_is_rejected(opened_world):
    with pytest.raises(BadArgument):
        opened_world.execute(ALICE, msg.UpdatePosition((msg.Unbond(0),)))


def test_zero_repay_with_debt_is_rejected(opened_world):
    with pytest.raises(BadArgument, match="repay amount"):
        opened_world.execute(ALICE, msg.UpdatePosition((msg.Repay(0),)))


def test_borrow_past_max_ltv_rolls_back(opened_world):
    before = opened_world.position(ALICE)
    state_before = opened_world.state()
    with pytest.raises(UnhealthyPosition):
        opened_world.execute(ALICE, msg.UpdatePosition((msg.Borrow(3_000_000),)))
    assert opened_world.position(ALICE) == before
    assert opened_world.state() == state_before
    assert opened_world.money_market.debt_of(ENGINE, opened_world.secondary) == 4_000_000
    assert opened_world.balance(ALICE, "uusd") == 0


def test_borrow_within_max_ltv_is_paid_out(opened_world):
    opened_world.execute(ALICE, msg.UpdatePosition((msg.Borrow(1_000_000),)))
    health = opened_world.health(ALICE)
    assert health.debt_value == 5_000_000
    assert health.ltv == Decimal.from_str("0.625")
    # the borrowed coins are unlocked and refunded to the user
    assert opened_world.balance(ALICE, "uusd") == 1_000_000


def test_reduce_more_units_than_held(opened_world):
    units = opened_world.position(ALICE).bond_units
    with pytest.raises(BadArgument, match="cannot reduce"):
        opened_world.execute(ALICE, msg.ReducePosition(bond_units_to_reduce=units + 1))


def test_reduce_everything_closes_position(opened_world):
    opened_world.execute(ALICE, msg.ReducePosition(swap_amount=None))
    # repay_amount=None repays from the withdrawn secondary, which covers the whole debt
    position = opened_world.position(ALICE)
    assert position == Position()
    assert opened_world.state().total_bond_units == 0
    assert opened_world.state().total_debt_units == 0
    assert opened_world.money_market.debt_of(ENGINE, opened_world.secondary) == 0
    assert opened_world.balance(ALICE, "luna") == 1_000_000
    _assert_engine_solvent(opened_world)


def test_pay_debt_without_funds(opened_world):
    with pytest.raises(MissingPrecondition):
        opened_world.execute(ALICE, msg.PayDebt(1_000))


def test_pay_debt_partial(opened_world):
    opened_world.fund(ALICE, "uusd", 1_000_000)
    opened_world.execute(ALICE, msg.PayDebt(1_000_000), [Coin("uusd", 1_000_000)])
    position = opened_world.position(ALICE)
    assert position.debt_units == 3_000_000 * 1_000_000
    assert opened_world.money_market.debt_of(ENGINE, opened_world.secondary) == 3_000_000
    assert opened_world.health(ALICE).ltv == Decimal.from_str("0.375")


def test_harvest_requires_operator(opened_world):
    with pytest.raises(Unauthorized):
        opened_world.execute(ALICE, msg.Harvest())


def test_harvest_with_nothing_pending_is_a_no_op(opened_world):
    units_before = opened_world.state().total_bond_units
    result = opened_world.execute(OPERATOR, msg.Harvest())
    assert opened_world.state().total_bond_units == units_before
    assert _engine_actions(result) == ["levfarm/execute/harvest"]
    assert result.find("harvested")[0].get("fee_amount") == "[]"


def test_harvest_sells_base_reward_token(opened_world):
    opened_world.accrue_rewards(base=100_000)
    result = opened_world.execute(OPERATOR, msg.Harvest())
    actions = _engine_actions(result)
    assert actions.count("levfarm/callback/swap") == 2
    assert opened_world.reward_token.balance("treasury") == 5_000
    assert opened_world.reward_token.balance(ENGINE) == 0
    assert opened_world.state().pending_rewards.find(Fungible(REWARD_TOKEN)) is None
    _assert_engine_solvent(opened_world)


def test_liquidating_healthy_position_fails(opened_world):
    with pytest.raises(MissingPrecondition, match="healthy"):
        opened_world.execute(CAROL, msg.Liquidate(ALICE))


def test_liquidating_closed_position_fails(world):
    with pytest.raises(MissingPrecondition, match="closed"):
        world.execute(CAROL, msg.Liquidate(ALICE))


def test_liquidation_with_tax_sells_primary_to_cover_debt(taxed_world):
    world = taxed_world
    world.open_position(ALICE, 1_000_000)
    assert world.position(ALICE).debt_units > 0

    world.oracle.set_price(world.primary, "1")
    assert world.health(ALICE).ltv > Decimal.percent(75)

    result = world.execute(CAROL, msg.Liquidate(ALICE))

    assert "levfarm/callback/swap" in _engine_actions(result)
    position = world.position(ALICE)
    assert position.bond_units == 0
    assert position.debt_units == 0
    # tax rounding can leave a few units of uusd dust behind
    assert position.unlocked_assets.amount_of(world.primary) == 0
    assert position.unlocked_assets.amount_of(world.secondary) < 5
    assert world.state().total_debt_units == 0
    assert world.money_market.debt_of(ENGINE, world.secondary) == 0
    assert world.balance(CAROL, "luna") > 0
    assert world.balance(ALICE, "luna") > world.balance(CAROL, "luna")
    assert len(result.find("liquidated")) == 1
    _assert_engine_solvent(world)



def _sell_primary_into_pool(world, amount: int) -> None:
    """Push the primary pool off balance the way a large trader would."""
    world.fund("whale", "luna", amount)
    offer = Asset(world.primary, amount)
    world.chain.execute("whale", PAIR, {"swap": {"offer_asset": offer}}, [Coin("luna", amount)])


def test_liquidation_waives_bad_debt(world):
    world.open_position(ALICE, 1_000_000)
    world.open_position(BOB, 1_000_000)
    _sell_primary_into_pool(world, 2_550_000)
    world.oracle.set_price(world.primary, "1.2")
    assert world.health(ALICE).ltv > Decimal.from_str("0.9")
    bob_units = world.position(BOB).debt_units
    debt_before = world.money_market.debt_of(ENGINE, world.secondary)

    result = world.execute(CAROL, msg.Liquidate(ALICE))

    (event,) = result.find("bad_debt")
    assert event.get("user") == ALICE
    waived = int(event.get("amount"))
    assert waived > 0

    position = world.position(ALICE)
    assert position.bond_units == 0
    assert position.debt_units == 0
    assert world.state().total_debt_units == bob_units
    # the unpaid remainder is still owed to the money market and now rests on the other debtors
    assert world.money_market.debt_of(ENGINE, world.secondary) < debt_before
    assert world.health(BOB).debt_value == world.money_market.debt_of(ENGINE, world.secondary)
    assert world.health(ALICE).ltv is None
    _assert_engine_solvent(world)

    # nothing is left to liquidate, and the user can open a fresh position
    with pytest.raises(MissingPrecondition, match="closed"):
        world.execute(CAROL, msg.Liquidate(ALICE))
    world.open_position(ALICE, 100_000)
    assert world.position(ALICE).debt_units > 0


def test_liquidation_without_bad_debt_waives_nothing(opened_world):
    opened_world.oracle.set_price(opened_world.primary, "1")
    result = opened_world.execute(CAROL, msg.Liquidate(ALICE))
    assert result.find("bad_debt") == []
    assert "levfarm/callback/clear_bad_debt" in _engine_actions(result)


def test_harvest_of_dust_rewards_keeps_them_pending(opened_world):
    units_before = opened_world.state().total_bond_units
    opened_world.accrue_rewards(proxy=1)
    opened_world.execute(OPERATOR, msg.Harvest())

    assert opened_world.state().total_bond_units == units_before
    assert opened_world.state().pending_rewards.amount_of(opened_world.primary) == 1
    _assert_engine_solvent(opened_world)


def test_increase_position_on_empty_pool(world):
    for info in world.pair.asset_infos:
        world.pair.reserves[info] = 0
    with pytest.raises(MissingPrecondition, match="pool is empty"):
        world.open_position(ALICE, 1_000_000)
    assert world.position(ALICE) == Position()

def test_update_config_requires_governance(opened_world):
    new = replace(opened_world.config, max_ltv=Decimal.percent(80))
    with pytest.raises(Unauthorized):
        opened_world.execute(ALICE, msg.UpdateConfig(new))
    opened_world.execute(GOVERNANCE, msg.UpdateConfig(new))
    assert opened_world.chain.query(ENGINE, msg.ConfigQuery()).max_ltv == Decimal.percent(80)


def test_update_config_validates(opened_world):
    new = replace(opened_world.config, bonus_rate=Decimal.percent(11))
    with pytest.raises(BadArgument, match="bonus_rate"):
        opened_world.execute(GOVERNANCE, msg.UpdateConfig(new))
