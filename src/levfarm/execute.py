from __future__ import annotations

"""
User-facing commands.

A command validates its arguments, applies deposits inline, and returns the ordered
sub-operations as `Callback` messages addressed to the engine itself. The host runs
them after any message the command emitted directly (deposit pulls, claims, fees).
"""

import logging
from collections.abc import Iterable, Sequence

from levfarm import msg, subops
from levfarm.assets import Asset, AssetList, Fungible, assert_sent_fund
from levfarm.errors import BadArgument, MissingPrecondition, Unauthorized
from levfarm.health import compute_health
from levfarm.host import Coin, Deps, Env, Message, Response, make_event
from levfarm.numeric import Decimal, multiply_ratio
from levfarm.state import Config, State

logger = logging.getLogger(__name__)


def init_storage(deps: Deps, config: Config) -> Response:
    config.validate()
    deps.storage.save_config(config)
    deps.storage.save_state(State())
    logger.info("instantiated with max_ltv=%s fee_rate=%s", config.max_ltv, config.fee_rate)
    return Response().add_attribute("action", "levfarm/instantiate")


def assert_no_funds(funds: Sequence[Coin]) -> None:
    received = AssetList.from_coins(funds)
    if not received.is_empty():
        raise BadArgument(f"extra funds received: {received}")


def handle_deposit(
    deps: Deps,
    env: Env,
    sender: str,
    received: AssetList,
    asset: Asset,
    messages: list[Message],
    response: Response,
) -> None:
    """
    Credit `asset` to the sender's unlocked ledger.

    Intrinsic coins must have been shipped with the command and are removed from
    `received`; fungible tokens are pulled with a transfer-from.
    """
    if asset.is_zero():
        return

    config = deps.storage.load_config()
    if asset.info not in (config.primary_asset_info, config.secondary_asset_info):
        raise BadArgument(f"cannot deposit {asset.info}: only the primary and secondary assets are accepted")

    if isinstance(asset.info, Fungible):
        messages.append(asset.transfer_from_msg(sender, env.contract_address))
    else:
        assert_sent_fund(asset, received)
        received.deduct(asset)

    position = deps.storage.load_position(sender)
    position.unlocked_assets.add(asset)
    deps.storage.save_position(sender, position)

    response.add_attribute("deposit_received", asset)


def _assert_repay_amount(deps: Deps, user: str, amount: int) -> None:
    if amount == 0 and deps.storage.load_position(user).debt_units > 0:
        raise BadArgument("repay amount must be greater than zero")


def _finish(response: Response, env: Env, messages: list[Message], ops: Iterable[subops.SubOperation]) -> Response:
    return response.add_messages(messages).add_messages(subops.into_msgs(ops, env.contract_address))


def update_position(
    deps: Deps, env: Env, sender: str, funds: Sequence[Coin], actions: Sequence[msg.Action]
) -> Response:
    config = deps.storage.load_config()
    received = AssetList.from_coins(funds)
    response = Response().add_attribute("action", "levfarm/execute/update_position")
    messages: list[Message] = []
    ops: list[subops.SubOperation] = []

    for action in actions:
        if isinstance(action, msg.Deposit):
            handle_deposit(deps, env, sender, received, action.asset, messages, response)
        elif isinstance(action, msg.Borrow):
            ops.append(subops.Borrow(sender, action.amount))
        elif isinstance(action, msg.Repay):
            _assert_repay_amount(deps, sender, action.amount)
            ops.append(subops.Repay(sender, action.amount))
        elif isinstance(action, msg.Bond):
            ops += [subops.ProvideLiquidity(sender, action.slippage_tolerance), subops.Bond(sender)]
        elif isinstance(action, msg.Unbond):
            if action.bond_units_to_reduce == 0:
                raise BadArgument("bond units to reduce must be greater than zero")
            ops += [subops.Unbond(sender, action.bond_units_to_reduce), subops.WithdrawLiquidity(sender)]
        elif isinstance(action, msg.Swap):
            ops.append(
                subops.Swap(
                    sender, config.primary_asset_info, action.offer_amount, action.belief_price, action.max_spread
                )
            )
        else:
            raise BadArgument(f"unknown action: {action!r}")

    # anything left over would be stranded in the engine
    if not received.is_empty():
        raise BadArgument(f"extra funds received: {received}")

    ops += [
        subops.Refund(sender, sender, Decimal.one()),
        subops.AssertHealth(sender),
        subops.Snapshot(sender),
    ]
    return _finish(response, env, messages, ops)


def increase_position(
    deps: Deps,
    env: Env,
    sender: str,
    funds: Sequence[Coin],
    deposits: Sequence[Asset],
    slippage_tolerance: Decimal | None = None,
) -> Response:
    config = deps.storage.load_config()
    received = AssetList.from_coins(funds)
    response = Response().add_attribute("action", "levfarm/execute/increase_position")
    messages: list[Message] = []

    for asset in deposits:
        handle_deposit(deps, env, sender, received, asset, messages, response)
    if not received.is_empty():
        raise BadArgument(f"extra funds received: {received}")

    deposited = AssetList(deposits)
    primary_deposit = deposited.amount_of(config.primary_asset_info)
    secondary_deposit = deposited.amount_of(config.secondary_asset_info)

    # borrow whatever the secondary side lacks at the pool's current ratio
    primary_depth, secondary_depth, _ = config.primary_pair.query_pool(
        deps.querier, config.primary_asset_info, config.secondary_asset_info
    )
    if primary_depth == 0:
        raise MissingPrecondition(f"pool is empty: {config.primary_pair.contract_addr}")
    secondary_needed = multiply_ratio(primary_deposit, secondary_depth, primary_depth)
    borrow_amount = max(secondary_needed - secondary_deposit, 0)
    response.add_attribute("borrow_amount", borrow_amount)

    ops = [
        subops.Borrow(sender, borrow_amount),
        subops.ProvideLiquidity(sender, slippage_tolerance),
        subops.Bond(sender),
        subops.AssertHealth(sender),
        subops.Snapshot(sender),
    ]
    return _finish(response, env, messages, ops)


def reduce_position(deps: Deps, env: Env, sender: str, cmd: msg.ReducePosition) -> Response:
    config = deps.storage.load_config()
    position = deps.storage.load_position(sender)

    bond_units = cmd.bond_units_to_reduce if cmd.bond_units_to_reduce is not None else position.bond_units
    if bond_units > position.bond_units:
        raise BadArgument(f"cannot reduce {bond_units} bond units: position holds {position.bond_units}")

    ops: list[subops.SubOperation] = []
    if bond_units > 0:
        ops += [subops.Unbond(sender, bond_units), subops.WithdrawLiquidity(sender)]
    if cmd.swap_amount:
        ops.append(
            subops.Swap(sender, config.primary_asset_info, cmd.swap_amount, cmd.belief_price, cmd.max_spread)
        )
    ops += [
        subops.Repay(sender, cmd.repay_amount),
        subops.AssertHealth(sender),
        subops.Refund(sender, sender, Decimal.one()),
        subops.Snapshot(sender),
    ]
    response = (
        Response()
        .add_attribute("action", "levfarm/execute/reduce_position")
        .add_attribute("bond_units_to_reduce", bond_units)
    )
    return _finish(response, env, [], ops)


def pay_debt(deps: Deps, env: Env, sender: str, funds: Sequence[Coin], repay_amount: int) -> Response:
    config = deps.storage.load_config()
    received = AssetList.from_coins(funds)
    response = Response().add_attribute("action", "levfarm/execute/pay_debt")
    messages: list[Message] = []

    _assert_repay_amount(deps, sender, repay_amount)

    # intrinsic secondary: everything shipped is deposited; fungible: pull the requested amount
    if isinstance(config.secondary_asset_info, Fungible):
        deposit = Asset(config.secondary_asset_info, repay_amount)
    else:
        deposit = Asset(config.secondary_asset_info, received.amount_of(config.secondary_asset_info))
    if deposit.is_zero():
        raise MissingPrecondition("no secondary asset was sent to pay the debt")
    handle_deposit(deps, env, sender, received, deposit, messages, response)
    if not received.is_empty():
        raise BadArgument(f"extra funds received: {received}")

    ops = [
        subops.Repay(sender, repay_amount),
        subops.AssertHealth(sender),
        subops.Refund(sender, sender, Decimal.one()),
        subops.Snapshot(sender),
    ]
    return _finish(response, env, messages, ops)


def harvest(
    deps: Deps,
    env: Env,
    sender: str,
    max_spread: Decimal | None = None,
    slippage_tolerance: Decimal | None = None,
) -> Response:
    config = deps.storage.load_config()
    state = deps.storage.load_state()

    if sender not in config.operators:
        raise Unauthorized("caller is not a whitelisted operator")

    liquidity_token = config.primary_pair.liquidity_token
    rewards = config.generator.query_rewards(deps.querier, env.contract_address, liquidity_token)

    messages: list[Message] = []
    if not rewards.is_empty():
        messages.append(config.generator.claim_rewards_msg(liquidity_token))
        state.pending_rewards.add_many(rewards)

    # the fee is cut from everything pending, including rewards ingested by earlier bonds
    fees = [asset.scaled(config.fee_rate).deduct_tax(deps.querier) for asset in state.pending_rewards]
    fees = [asset for asset in fees if not asset.is_zero()]
    for fee in fees:
        state.pending_rewards.deduct(fee.add_tax(deps.querier))
        messages.append(fee.transfer_msg(config.treasury))
    deps.storage.save_state(state)

    ops: list[subops.SubOperation] = []
    if not state.pending_rewards.is_empty():
        reward = state.pending_rewards.find(config.reward_asset_info)
        if reward is not None and config.reward_asset_info != config.primary_asset_info:
            ops.append(subops.Swap(None, config.reward_asset_info, reward.amount, None, max_spread))
        ops += [
            subops.Balance(max_spread),
            subops.ProvideLiquidity(None, slippage_tolerance),
            subops.Bond(None),
        ]

    fee_amount = AssetList(fees)
    event = make_event(
        "harvested",
        time=env.block_time,
        height=env.block_height,
        fee_amount=fee_amount,
        reward_amount_after_fee=state.pending_rewards,
    )
    logger.info("harvest: fees=%s reinvesting=%s", fee_amount, state.pending_rewards)
    response = Response().add_attribute("action", "levfarm/execute/harvest").add_event(event)
    return _finish(response, env, messages, ops)


def liquidate(
    deps: Deps, env: Env, sender: str, user: str, max_spread: Decimal | None = None
) -> Response:
    config = deps.storage.load_config()
    state = deps.storage.load_state()
    position = deps.storage.load_position(user)

    health = compute_health(deps, env, config, state, position)
    if health.ltv is None:
        raise MissingPrecondition("position is already closed")
    if health.ltv <= config.max_ltv:
        raise MissingPrecondition(f"position is healthy: ltv {health.ltv} <= {config.max_ltv}")

    # sell only as much primary as the debt requires, then split what is left
    ops = [
        subops.Unbond(user, position.bond_units),
        subops.WithdrawLiquidity(user),
        subops.Cover(user, max_spread),
        subops.Repay(user, None),
        subops.Refund(user, sender, config.bonus_rate),
        subops.Refund(user, user, Decimal.one()),
        subops.ClearBadDebt(user),
    ]

    event = make_event(
        "liquidated",
        liquidator=sender,
        user=user,
        bond_units=position.bond_units,
        debt_units=position.debt_units,
        bond_value=health.bond_value,
        debt_value=health.debt_value,
        ltv=health.ltv,
    )
    logger.info("liquidating %s at ltv %s (threshold %s)", user, health.ltv, config.max_ltv)
    response = Response().add_attribute("action", "levfarm/execute/liquidate").add_event(event)
    return _finish(response, env, [], ops)


def update_config(deps: Deps, sender: str, new_config: Config) -> Response:
    config = deps.storage.load_config()
    if sender != config.governance:
        raise Unauthorized("only governance can update config")

    new_config.validate()
    deps.storage.save_config(new_config)
    logger.info("config updated by %s", sender)
    return Response().add_attribute("action", "levfarm/execute/update_config")


__all__ = [
    "init_storage",
    "assert_no_funds",
    "handle_deposit",
    "update_position",
    "increase_position",
    "reduce_position",
    "pay_debt",
    "harvest",
    "liquidate",
    "update_config",
]
