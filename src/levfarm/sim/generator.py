from __future__ import annotations

"""
Liquidity-token staking with a base reward and an optional proxy reward.

Rewards never accrue on their own: `accrue` adds to a staker's pending amounts. Any
deposit or withdraw by the staker (a withdraw of zero is a claim) pays out everything
pending first. The generator pays the transfer tax of intrinsic payouts itself, so
the staker receives exactly the pending amount.
"""

import logging
from collections.abc import Sequence

from levfarm.assets import Asset, AssetInfo
from levfarm.errors import ExternalFailure
from levfarm.host import Coin, Env, Querier, Response, WasmExecute
from levfarm.sim.base import SimContract, payout_msg, split_msg

logger = logging.getLogger(__name__)


class Generator(SimContract):
    def __init__(
        self,
        address: str,
        *,
        liquidity_token: str,
        base_reward_token: AssetInfo,
        proxy_reward_token: AssetInfo | None = None,
    ):
        super().__init__(address)
        self.liquidity_token = liquidity_token
        self.base_reward_token = base_reward_token
        self.proxy_reward_token = proxy_reward_token
        self.bonded: dict[str, int] = {}
        self.pending: dict[str, int] = {}
        self.pending_on_proxy: dict[str, int] = {}

    def accrue(self, staker: str, *, base: int = 0, proxy: int = 0) -> None:
        if proxy and self.proxy_reward_token is None:
            raise ExternalFailure(f"{self.address}: no proxy reward configured")
        self.pending[staker] = self.pending.get(staker, 0) + base
        self.pending_on_proxy[staker] = self.pending_on_proxy.get(staker, 0) + proxy
        logger.debug("accrued base=%s proxy=%s for %s", base, proxy, staker)

    def _pay_rewards(self, staker: str, response: Response) -> None:
        base = self.pending.pop(staker, 0)
        proxy = self.pending_on_proxy.pop(staker, 0)
        if base:
            response.add_message(payout_msg(Asset(self.base_reward_token, base), staker))
        if proxy:
            response.add_message(payout_msg(Asset(self.proxy_reward_token, proxy), staker))
        response.add_attribute("base_reward_paid", base)
        response.add_attribute("proxy_reward_paid", proxy)

    def _check_token(self, lp_token: str) -> None:
        if lp_token != self.liquidity_token:
            raise ExternalFailure(f"{self.address}: unknown liquidity token {lp_token}")

    def on_receive(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        hook_name, _ = split_msg(body["msg"])
        if hook_name != "deposit":
            raise ExternalFailure(f"{self.address}: unknown receive hook `{hook_name}`")
        self._check_token(sender)
        staker, amount = body["sender"], int(body["amount"])

        response = Response().add_attribute("action", "deposit").add_attribute("amount", amount)
        self._pay_rewards(staker, response)
        self.bonded[staker] = self.bonded.get(staker, 0) + amount
        return response

    def on_withdraw(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        self._check_token(body["lp_token"])
        amount = int(body["amount"])
        held = self.bonded.get(sender, 0)
        if amount > held:
            raise ExternalFailure(f"{self.address}: {sender} has {held} bonded, cannot withdraw {amount}")

        response = Response().add_attribute("action", "withdraw").add_attribute("amount", amount)
        self._pay_rewards(sender, response)
        self.bonded[sender] = held - amount
        if amount:
            response.add_message(
                WasmExecute(self.liquidity_token, {"transfer": {"recipient": sender, "amount": amount}})
            )
        return response

    def view_deposit(self, querier: Querier, env: Env, body: dict) -> int:
        self._check_token(body["lp_token"])
        return self.bonded.get(body["user"], 0)

    def view_reward_info(self, querier: Querier, env: Env, body: dict) -> dict:
        self._check_token(body["lp_token"])
        return {"base_reward_token": self.base_reward_token, "proxy_reward_token": self.proxy_reward_token}

    def view_pending_token(self, querier: Querier, env: Env, body: dict) -> dict:
        self._check_token(body["lp_token"])
        user = body["user"]
        return {"pending": self.pending.get(user, 0), "pending_on_proxy": self.pending_on_proxy.get(user, 0)}


__all__ = ["Generator"]
