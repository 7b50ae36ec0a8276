from __future__ import annotations

"""
Reply handlers for the observed sub-operations.

The host calls `reply(reply_id, events)` right after an observed message succeeds and
before the next queued message runs. Each handler credits the parsed result to the
owner recorded in TransientUser (or to `State.pending_rewards` when no owner was
recorded) and clears the slot.
"""

import logging
from collections.abc import Sequence

from levfarm.adapters import Pair
from levfarm.assets import Asset
from levfarm.errors import ExternalFailure, MissingPrecondition
from levfarm.host import Deps, Event, Response

logger = logging.getLogger(__name__)

REPLY_PROVIDE_LIQUIDITY = 0
REPLY_WITHDRAW_LIQUIDITY = 1
REPLY_SWAP = 2


def _credit(deps: Deps, user: str | None, assets: Sequence[Asset]) -> None:
    storage = deps.storage
    if user is None:
        state = storage.load_state()
        state.pending_rewards.add_many(assets)
        storage.save_state(state)
    else:
        position = storage.load_position(user)
        position.unlocked_assets.add_many(assets)
        storage.save_position(user, position)


def _response(action: str, user: str | None, **attrs: object) -> Response:
    response = Response().add_attribute("action", f"levfarm/reply/{action}")
    response.add_attribute("user", user if user is not None else "system")
    for k, v in attrs.items():
        response.add_attribute(k, v)
    logger.debug("reply %s user=%s %s", action, user, attrs)
    return response


def after_provide_liquidity(deps: Deps, events: Sequence[Event]) -> Response:
    config = deps.storage.load_config()
    user = deps.storage.may_load_transient_user()

    shares_minted = Pair.parse_provide_events(events)
    _credit(deps, user, [Asset(config.primary_pair.share_info, shares_minted)])
    deps.storage.clear_transient_user()

    return _response("provide_liquidity", user, shares_minted=shares_minted)


def after_withdraw_liquidity(deps: Deps, events: Sequence[Event]) -> Response:
    config = deps.storage.load_config()
    user = deps.storage.may_load_transient_user()
    if user is None:
        raise MissingPrecondition("no user recorded for liquidity withdrawal")

    # the pair reports the amounts it debited; intrinsic coins arrive with tax taken off
    primary, secondary = Pair.parse_withdraw_events(
        events, config.primary_asset_info, config.secondary_asset_info
    )
    primary = primary.deduct_tax(deps.querier)
    secondary = secondary.deduct_tax(deps.querier)
    _credit(deps, user, [primary, secondary])
    deps.storage.clear_transient_user()

    return _response(
        "withdraw_liquidity",
        user,
        primary_withdrawn=primary.amount,
        secondary_withdrawn=secondary.amount,
    )


def after_swap(deps: Deps, events: Sequence[Event]) -> Response:
    config = deps.storage.load_config()
    user = deps.storage.may_load_transient_user()

    returned = Pair.parse_swap_events(events, [config.primary_asset_info, config.secondary_asset_info])
    _credit(deps, user, [returned])
    deps.storage.clear_transient_user()

    return _response("swap", user, returned_asset=returned)


REPLY_HANDLERS = {
    REPLY_PROVIDE_LIQUIDITY: after_provide_liquidity,
    REPLY_WITHDRAW_LIQUIDITY: after_withdraw_liquidity,
    REPLY_SWAP: after_swap,
}


def handle_reply(deps: Deps, reply_id: int, events: Sequence[Event]) -> Response:
    handler = REPLY_HANDLERS.get(reply_id)
    if handler is None:
        raise ExternalFailure(f"invalid reply id: {reply_id}")
    return handler(deps, events)


__all__ = [
    "REPLY_PROVIDE_LIQUIDITY",
    "REPLY_WITHDRAW_LIQUIDITY",
    "REPLY_SWAP",
    "after_provide_liquidity",
    "after_withdraw_liquidity",
    "after_swap",
    "handle_reply",
]
