from __future__ import annotations

"""
Sub-operation handlers.

Every handler loads what it needs, commits its state mutation before returning, and
returns the messages for the collaborators. Observed handlers (provide, withdraw,
swap) also record the owner in TransientUser so that the reply can credit the result.

Unit minting:
  - first bond / first borrow mints 10^6 units per token
  - afterwards new_units = total_units * amount / total_amount, floored
  - the system reward account (user=None) never receives bond units
"""

import logging

from levfarm import subops
from levfarm.assets import Asset, AssetInfo, AssetList
from levfarm.errors import BadArgument, MissingPrecondition, UnhealthyPosition
from levfarm.health import compute_health, is_healthy
from levfarm.host import Deps, Env, Querier, Response, make_event
from levfarm.numeric import DECIMAL_FRACTIONAL, checked_add, checked_mul, checked_sub, multiply_ratio
from levfarm.replies import REPLY_PROVIDE_LIQUIDITY, REPLY_SWAP, REPLY_WITHDRAW_LIQUIDITY
from levfarm.state import Config, Position, Snapshot, State

logger = logging.getLogger(__name__)

DEFAULT_BOND_UNITS_PER_SHARE_BONDED = 1_000_000
DEFAULT_DEBT_UNITS_PER_ASSET_BORROWED = 1_000_000


def _response(action: str, attrs: list[tuple[str, object]]) -> Response:
    response = Response().add_attribute("action", f"levfarm/callback/{action}")
    for k, v in attrs:
        response.add_attribute(k, v)
    logger.debug("callback %s %s", action, " ".join(f"{k}={v}" for k, v in attrs))
    return response


def _owner_label(user: str | None) -> str:
    return user if user is not None else "system"


def _load_ledger(deps: Deps, user: str | None) -> tuple[State | Position, AssetList]:
    """The owner's record and the asset list it keeps outside the pool."""
    if user is None:
        state = deps.storage.load_state()
        return state, state.pending_rewards
    position = deps.storage.load_position(user)
    return position, position.unlocked_assets


def _save_ledger(deps: Deps, user: str | None, holder: State | Position) -> None:
    if user is None:
        deps.storage.save_state(holder)
    else:
        deps.storage.save_position(user, holder)


def _require_unlocked(assets: AssetList, info: AssetInfo, what: str) -> Asset:
    asset = assets.find(info)
    if asset is None:
        raise MissingPrecondition(f"no unlocked {what} available")
    return asset


def _user_debt_amount(deps: Deps, env: Env, config: Config, state: State, position: Position) -> int:
    if state.total_debt_units == 0:
        return 0
    total_debt_amount = config.money_market.query_user_debt(
        deps.querier, env.contract_address, config.secondary_asset_info
    )
    return multiply_ratio(total_debt_amount, position.debt_units, state.total_debt_units)


def _both_sides_pending(deps: Deps, config: Config, assets: AssetList) -> bool:
    for info in (config.primary_asset_info, config.secondary_asset_info):
        asset = assets.find(info)
        if asset is None or asset.deduct_tax(deps.querier).is_zero():
            return False
    return True


def provide_liquidity(deps: Deps, env: Env, op: subops.ProvideLiquidity) -> Response:
    config = deps.storage.load_config()
    holder, assets = _load_ledger(deps, op.user)

    if op.user is None and not _both_sides_pending(deps, config, assets):
        # dust rewards stay pending until a later harvest tops them up
        return _response("provide_liquidity", [("user", "system"), ("skipped", "true")])

    # everything unlocked goes in; whoever scheduled this already balanced the two sides
    primary = _require_unlocked(assets, config.primary_asset_info, "primary asset").deduct_tax(deps.querier)
    secondary = _require_unlocked(assets, config.secondary_asset_info, "secondary asset").deduct_tax(deps.querier)
    primary_cost = primary.add_tax(deps.querier)
    secondary_cost = secondary.add_tax(deps.querier)
    assets.deduct(primary_cost)
    assets.deduct(secondary_cost)

    _save_ledger(deps, op.user, holder)
    if op.user is not None:
        deps.storage.save_transient_user(op.user)

    response = _response(
        "provide_liquidity",
        [
            ("user", _owner_label(op.user)),
            ("primary_provided_amount", primary.amount),
            ("primary_deducted_amount", primary_cost.amount),
            ("secondary_provided_amount", secondary.amount),
            ("secondary_deducted_amount", secondary_cost.amount),
        ],
    )
    return response.add_messages(
        config.primary_pair.provide_submsgs(REPLY_PROVIDE_LIQUIDITY, [primary, secondary], op.slippage_tolerance)
    )


def withdraw_liquidity(deps: Deps, env: Env, op: subops.WithdrawLiquidity) -> Response:
    config = deps.storage.load_config()
    position = deps.storage.load_position(op.user)

    shares = _require_unlocked(position.unlocked_assets, config.primary_pair.share_info, "liquidity token")
    position.unlocked_assets.deduct(shares)

    deps.storage.save_position(op.user, position)
    deps.storage.save_transient_user(op.user)

    response = _response("withdraw_liquidity", [("user", op.user), ("shares_burned", shares.amount)])
    return response.add_message(config.primary_pair.withdraw_submsg(REPLY_WITHDRAW_LIQUIDITY, shares.amount))


def bond(deps: Deps, env: Env, op: subops.Bond) -> Response:
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = None if op.user is None else deps.storage.load_position(op.user)
    assets = state.pending_rewards if position is None else position.unlocked_assets
    liquidity_token = config.primary_pair.liquidity_token

    if position is None and assets.find(config.primary_pair.share_info) is None:
        return _response("bond", [("user", "system"), ("skipped", "true")])

    shares = _require_unlocked(assets, config.primary_pair.share_info, "liquidity token")
    total_bonded_amount = config.generator.query_bonded_amount(deps.querier, env.contract_address, liquidity_token)

    if position is None:
        bond_units_to_add = 0
    elif total_bonded_amount == 0 or state.total_bond_units == 0:
        bond_units_to_add = checked_mul(shares.amount, DEFAULT_BOND_UNITS_PER_SHARE_BONDED)
    else:
        bond_units_to_add = multiply_ratio(state.total_bond_units, shares.amount, total_bonded_amount)

    state.total_bond_units = checked_add(state.total_bond_units, bond_units_to_add)
    if position is not None:
        position.bond_units = checked_add(position.bond_units, bond_units_to_add)
    assets.deduct(shares)

    # the generator pays out whatever is pending when it handles the deposit
    rewards = config.generator.query_rewards(deps.querier, env.contract_address, liquidity_token)
    state.pending_rewards.add_many(rewards)

    deps.storage.save_state(state)
    if position is not None:
        deps.storage.save_position(op.user, position)

    response = _response(
        "bond",
        [
            ("user", _owner_label(op.user)),
            ("bond_units_added", bond_units_to_add),
            ("shares_bonded", shares.amount),
            ("rewards_received", rewards),
        ],
    )
    return response.add_message(config.generator.bond_msg(liquidity_token, shares.amount))


def unbond(deps: Deps, env: Env, op: subops.Unbond) -> Response:
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(op.user)
    liquidity_token = config.primary_pair.liquidity_token

    total_bonded_amount = config.generator.query_bonded_amount(deps.querier, env.contract_address, liquidity_token)
    shares_to_unbond = multiply_ratio(total_bonded_amount, op.bond_units_to_reduce, state.total_bond_units)

    state.total_bond_units = checked_sub(state.total_bond_units, op.bond_units_to_reduce)
    position.bond_units = checked_sub(position.bond_units, op.bond_units_to_reduce)
    position.unlocked_assets.add(Asset(config.primary_pair.share_info, shares_to_unbond))

    rewards = config.generator.query_rewards(deps.querier, env.contract_address, liquidity_token)
    state.pending_rewards.add_many(rewards)

    deps.storage.save_state(state)
    deps.storage.save_position(op.user, position)

    response = _response(
        "unbond",
        [
            ("user", op.user),
            ("bond_units_deducted", op.bond_units_to_reduce),
            ("shares_unbonded", shares_to_unbond),
            ("rewards_received", rewards),
        ],
    )
    return response.add_message(config.generator.unbond_msg(liquidity_token, shares_to_unbond))


def borrow(deps: Deps, env: Env, op: subops.Borrow) -> Response:
    if op.amount == 0:
        return Response()

    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(op.user)

    to_borrow = Asset(config.secondary_asset_info, op.amount)
    total_debt_amount = config.money_market.query_user_debt(
        deps.querier, env.contract_address, config.secondary_asset_info
    )

    if total_debt_amount == 0 or state.total_debt_units == 0:
        debt_units_to_add = checked_mul(op.amount, DEFAULT_DEBT_UNITS_PER_ASSET_BORROWED)
    else:
        debt_units_to_add = multiply_ratio(state.total_debt_units, op.amount, total_debt_amount)

    # the money market delivers the borrowed coins with tax taken off
    received = to_borrow.deduct_tax(deps.querier)

    state.total_debt_units = checked_add(state.total_debt_units, debt_units_to_add)
    position.debt_units = checked_add(position.debt_units, debt_units_to_add)
    position.unlocked_assets.add(received)

    deps.storage.save_state(state)
    deps.storage.save_position(op.user, position)

    response = _response(
        "borrow",
        [
            ("user", op.user),
            ("debt_units_added", debt_units_to_add),
            ("secondary_borrowed_amount", op.amount),
            ("secondary_added_amount", received.amount),
        ],
    )
    return response.add_message(config.money_market.borrow_msg(to_borrow))


def repay(deps: Deps, env: Env, op: subops.Repay) -> Response:
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(op.user)

    debt_amount = _user_debt_amount(deps, env, config, state, position)
    requested = op.amount
    if requested is None:
        unlocked = position.unlocked_assets.find(config.secondary_asset_info)
        requested = 0 if unlocked is None else unlocked.deduct_tax(deps.querier).amount

    repay_amount = min(requested, debt_amount)
    if repay_amount == 0:
        return Response()

    debt_units_to_deduct = multiply_ratio(position.debt_units, repay_amount, debt_amount)

    to_repay = Asset(config.secondary_asset_info, repay_amount)
    cost = to_repay.add_tax(deps.querier)
    _require_unlocked(position.unlocked_assets, config.secondary_asset_info, "secondary asset")

    state.total_debt_units = checked_sub(state.total_debt_units, debt_units_to_deduct)
    position.debt_units = checked_sub(position.debt_units, debt_units_to_deduct)
    position.unlocked_assets.deduct(cost)

    deps.storage.save_state(state)
    deps.storage.save_position(op.user, position)

    response = _response(
        "repay",
        [
            ("user", op.user),
            ("debt_units_deducted", debt_units_to_deduct),
            ("secondary_repaid_amount", repay_amount),
            ("secondary_deducted_amount", cost.amount),
        ],
    )
    return response.add_message(config.money_market.repay_msg(to_repay))


def swap(deps: Deps, env: Env, op: subops.Swap) -> Response:
    config = deps.storage.load_config()
    holder, assets = _load_ledger(deps, op.user)

    if op.offer_info == config.primary_asset_info or op.offer_info == config.secondary_asset_info:
        pair = config.primary_pair
    elif op.offer_info == config.reward_asset_info:
        pair = config.reward_pair
    else:
        raise BadArgument(f"unrecognized offer asset: {op.offer_info}")

    if op.offer_amount is not None:
        offer = Asset(op.offer_info, op.offer_amount)
    else:
        unlocked = assets.find(op.offer_info)
        offer = Asset(op.offer_info, 0) if unlocked is None else unlocked.deduct_tax(deps.querier)

    to_send = offer.deduct_tax(deps.querier)
    if to_send.is_zero():
        return Response()

    cost = to_send.add_tax(deps.querier)
    _require_unlocked(assets, op.offer_info, "offer asset")
    assets.deduct(cost)

    _save_ledger(deps, op.user, holder)
    if op.user is not None:
        deps.storage.save_transient_user(op.user)

    response = _response(
        "swap",
        [
            ("user", _owner_label(op.user)),
            ("asset_offered", to_send),
            ("asset_deducted", cost),
        ],
    )
    return response.add_message(pair.swap_submsg(REPLY_SWAP, to_send, op.belief_price, op.max_spread))


def refund(deps: Deps, env: Env, op: subops.Refund) -> Response:
    position = deps.storage.load_position(op.user)

    to_refund = [asset.scaled(op.percentage).deduct_tax(deps.querier) for asset in position.unlocked_assets]
    to_refund = [asset for asset in to_refund if not asset.is_zero()]
    costs = [asset.add_tax(deps.querier) for asset in to_refund]
    position.unlocked_assets.deduct_many(costs)

    deps.storage.save_position(op.user, position)

    attrs: list[tuple[str, object]] = [("user", op.user), ("recipient", op.recipient)]
    attrs += [("asset_refunded", asset) for asset in to_refund]
    attrs += [("asset_deducted", asset) for asset in costs]
    response = _response("refund", attrs)
    return response.add_messages(asset.transfer_msg(op.recipient) for asset in to_refund)


def assert_health(deps: Deps, env: Env, op: subops.AssertHealth) -> Response:
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(op.user)
    health = compute_health(deps, env, config, state, position)

    ltv = "null" if health.ltv is None else str(health.ltv)
    if not is_healthy(health, config.max_ltv):
        raise UnhealthyPosition(op.user, ltv, config.max_ltv)

    event = make_event(
        "position_changed",
        user=op.user,
        bond_units=position.bond_units,
        debt_units=position.debt_units,
        bond_value=health.bond_value,
        debt_value=health.debt_value,
        ltv=ltv,
    )
    return _response("assert_health", [("user", op.user), ("ltv", ltv)]).add_event(event)


def snapshot(deps: Deps, env: Env, op: subops.Snapshot) -> Response:
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(op.user)
    health = compute_health(deps, env, config, state, position)

    deps.storage.save_snapshot(
        op.user,
        Snapshot(time=env.block_time, height=env.block_height, position=position, health=health),
    )
    return _response("snapshot", [("user", op.user)])


def balance(deps: Deps, env: Env, op: subops.Balance) -> Response:
    """Swap pending rewards so that the primary and secondary sides carry equal value."""
    config = deps.storage.load_config()
    state = deps.storage.load_state()

    primary_amount = state.pending_rewards.amount_of(config.primary_asset_info)
    secondary_amount = state.pending_rewards.amount_of(config.secondary_asset_info)
    primary_price = config.oracle.query_price(deps.querier, config.primary_asset_info)
    secondary_price = config.oracle.query_price(deps.querier, config.secondary_asset_info)
    primary_value = primary_price.mul_int(primary_amount)
    secondary_value = secondary_price.mul_int(secondary_amount)

    if primary_value > secondary_value:
        offer_info = config.primary_asset_info
        if secondary_amount == 0:
            offer_amount = primary_amount // 2
        else:
            offer_amount = multiply_ratio(
                primary_value - secondary_value, DECIMAL_FRACTIONAL, 2 * primary_price.atomics
            )
    elif secondary_value > primary_value:
        offer_info = config.secondary_asset_info
        if primary_amount == 0:
            offer_amount = secondary_amount // 2
        else:
            offer_amount = multiply_ratio(
                secondary_value - primary_value, DECIMAL_FRACTIONAL, 2 * secondary_price.atomics
            )
    else:
        return _response("balance", [("offer_amount", 0)])

    logger.debug("balance primary_value=%s secondary_value=%s offer=%s", primary_value, secondary_value, offer_amount)
    return swap(deps, env, subops.Swap(None, offer_info, offer_amount, None, op.max_spread))


def _gross_up(querier: Querier, asset: Asset) -> Asset:
    """Smallest budget found from `add_tax` whose `deduct_tax` still delivers `asset.amount`."""
    gross = asset.add_tax(querier)
    while gross.deduct_tax(querier).amount < asset.amount:
        gross = gross.with_amount(gross.amount + 1)
    return gross


def cover(deps: Deps, env: Env, op: subops.Cover) -> Response:
    """Sell just enough unlocked primary asset to pay off the user's whole debt."""
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(op.user)

    debt_amount = _user_debt_amount(deps, env, config, state, position)
    needed = Asset(config.secondary_asset_info, debt_amount).add_tax(deps.querier).amount
    available = position.unlocked_assets.amount_of(config.secondary_asset_info)
    if needed <= available:
        return _response("cover", [("user", op.user), ("shortfall", 0)])

    shortfall = Asset(config.secondary_asset_info, needed - available)
    # the pair pays the swap return with tax taken off
    ask = _gross_up(deps.querier, shortfall)
    offer_needed = config.primary_pair.query_reverse_simulate(deps.querier, ask)
    offer_amount = _gross_up(deps.querier, Asset(config.primary_asset_info, offer_needed)).amount
    offer_amount = min(offer_amount, position.unlocked_assets.amount_of(config.primary_asset_info))

    logger.debug("cover user=%s shortfall=%s offer=%s", op.user, shortfall.amount, offer_amount)
    return swap(
        deps, env, subops.Swap(op.user, config.primary_asset_info, offer_amount, None, op.max_spread)
    )


def clear_bad_debt(deps: Deps, env: Env, op: subops.ClearBadDebt) -> Response:
    """Waive whatever debt the liquidation proceeds could not repay."""
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(op.user)

    if position.debt_units == 0:
        return _response("clear_bad_debt", [("user", op.user), ("debt_units_waived", 0)])

    bad_debt = _user_debt_amount(deps, env, config, state, position)
    debt_units = position.debt_units
    state.total_debt_units = checked_sub(state.total_debt_units, debt_units)
    position.debt_units = 0

    deps.storage.save_state(state)
    deps.storage.save_position(op.user, position)

    logger.warning("waived %s of bad debt for %s", bad_debt, op.user)
    event = make_event("bad_debt", user=op.user, debt_units=debt_units, amount=bad_debt)
    response = _response(
        "clear_bad_debt", [("user", op.user), ("debt_units_waived", debt_units), ("bad_debt_amount", bad_debt)]
    )
    return response.add_event(event)


HANDLERS = {
    subops.ProvideLiquidity: provide_liquidity,
    subops.WithdrawLiquidity: withdraw_liquidity,
    subops.Bond: bond,
    subops.Unbond: unbond,
    subops.Borrow: borrow,
    subops.Repay: repay,
    subops.Swap: swap,
    subops.Refund: refund,
    subops.AssertHealth: assert_health,
    subops.Snapshot: snapshot,
    subops.Balance: balance,
    subops.Cover: cover,
    subops.ClearBadDebt: clear_bad_debt,
}


def handle_callback(deps: Deps, env: Env, op: subops.SubOperation) -> Response:
    return HANDLERS[type(op)](deps, env, op)


__all__ = [
    "DEFAULT_BOND_UNITS_PER_SHARE_BONDED",
    "DEFAULT_DEBT_UNITS_PER_ASSET_BORROWED",
    "provide_liquidity",
    "withdraw_liquidity",
    "bond",
    "unbond",
    "borrow",
    "repay",
    "swap",
    "refund",
    "assert_health",
    "snapshot",
    "balance",
    "cover",
    "clear_bad_debt",
    "handle_callback",
]
