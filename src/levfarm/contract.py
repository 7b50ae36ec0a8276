from __future__ import annotations

"""
Engine entry points.

`FieldContract` owns its storage and is driven by a host (see `levfarm.sim.chain`):

    instantiate(querier, env, sender, config)
    execute(querier, env, sender, msg, funds) -> Response
    reply(querier, env, reply_id, events)     -> Response
    query(querier, env, msg)                  -> value

The host must deliver the returned messages in order, run observed messages'
replies before the next message, and undo every effect of the action when any
step raises.
"""

import logging
from collections.abc import Sequence

from levfarm import execute as ex
from levfarm import msg, queries
from levfarm.callbacks import handle_callback
from levfarm.errors import BadArgument, InvariantViolation, Unauthorized
from levfarm.host import Coin, Deps, Env, Event, Querier, Response
from levfarm.replies import handle_reply
from levfarm.state import Config, Storage
from levfarm.subops import Callback

logger = logging.getLogger(__name__)


class FieldContract:
    def __init__(self, address: str):
        self.address = address
        self.storage = Storage()

    def _deps(self, querier: Querier) -> Deps:
        return Deps(storage=self.storage, querier=querier)

    def instantiate(self, querier: Querier, env: Env, sender: str, config: Config) -> Response:
        return ex.init_storage(self._deps(querier), config)

    def execute(
        self,
        querier: Querier,
        env: Env,
        sender: str,
        message: msg.ExecuteMsg | Callback,
        funds: Sequence[Coin] = (),
    ) -> Response:
        deps = self._deps(querier)

        if isinstance(message, Callback):
            if sender != env.contract_address:
                raise Unauthorized("callbacks cannot be invoked by external addresses")
            return handle_callback(deps, env, message.op)

        # a leftover owner would mean the previous action ended between an observed
        # sub-operation and its reply
        pending = self.storage.may_load_transient_user()
        if pending is not None:
            raise InvariantViolation(f"transient user {pending} left over from a previous action")

        logger.debug("execute %s from %s", type(message).__name__, sender)
        if isinstance(message, msg.UpdatePosition):
            return ex.update_position(deps, env, sender, funds, message.actions)
        if isinstance(message, msg.IncreasePosition):
            return ex.increase_position(deps, env, sender, funds, message.deposits, message.slippage_tolerance)
        if isinstance(message, msg.PayDebt):
            return ex.pay_debt(deps, env, sender, funds, message.repay_amount)

        ex.assert_no_funds(funds)
        if isinstance(message, msg.ReducePosition):
            return ex.reduce_position(deps, env, sender, message)
        if isinstance(message, msg.Harvest):
            return ex.harvest(deps, env, sender, message.max_spread, message.slippage_tolerance)
        if isinstance(message, msg.Liquidate):
            return ex.liquidate(deps, env, sender, message.user, message.max_spread)
        if isinstance(message, msg.UpdateConfig):
            return ex.update_config(deps, sender, message.new_config)
        raise BadArgument(f"unknown execute message: {message!r}")

    def reply(self, querier: Querier, env: Env, reply_id: int, events: Sequence[Event]) -> Response:
        return handle_reply(self._deps(querier), reply_id, events)

    def query(self, querier: Querier, env: Env, message: msg.QueryMsg):
        deps = self._deps(querier)
        if isinstance(message, msg.ConfigQuery):
            return queries.query_config(deps)
        if isinstance(message, msg.StateQuery):
            return queries.query_state(deps)
        if isinstance(message, msg.PositionQuery):
            return queries.query_position(deps, message.user)
        if isinstance(message, msg.PositionsQuery):
            return queries.query_positions(deps, env, message.start_after, message.limit)
        if isinstance(message, msg.HealthQuery):
            return queries.query_health(deps, env, message.user)
        if isinstance(message, msg.SnapshotQuery):
            return queries.query_snapshot(deps, message.user)
        raise BadArgument(f"unknown query message: {message!r}")


__all__ = ["FieldContract"]
