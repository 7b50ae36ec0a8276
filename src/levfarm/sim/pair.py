from __future__ import annotations

"""
Constant-product pool (x * y = k) with a commission kept in the pool.

Event attributes follow what `levfarm.adapters.Pair` parses:
  - provide_liquidity: `share`
  - withdraw_liquidity: `refund_assets` as "<amount><label>, <amount><label>" (amounts
    before tax; intrinsic refunds are delivered with tax taken off)
  - swap: `ask_asset`, `return_amount` (before tax), `tax_amount`
"""

from collections.abc import Sequence

from levfarm.assets import Asset, AssetInfo, Fungible, Intrinsic, deducted_tax
from levfarm.errors import ExternalFailure
from levfarm.host import Coin, Env, Querier, Response, WasmExecute
from levfarm.numeric import DECIMAL_FRACTIONAL, Decimal, isqrt_u256, multiply_ratio
from levfarm.sim.base import SimContract, payout_msg, split_msg


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


class Pair(SimContract):
    def __init__(
        self,
        address: str,
        *,
        liquidity_token: str,
        asset_infos: tuple[AssetInfo, AssetInfo],
        commission_rate: Decimal | None = None,
    ):
        super().__init__(address)
        self.liquidity_token = liquidity_token
        self.asset_infos = asset_infos
        self.commission_rate = commission_rate if commission_rate is not None else Decimal.from_str("0.003")
        self.reserves: dict[AssetInfo, int] = {info: 0 for info in asset_infos}
        self.total_share = 0

    def _other(self, info: AssetInfo) -> AssetInfo:
        if info not in self.reserves:
            raise ExternalFailure(f"{self.address}: asset {info} is not in this pool")
        a, b = self.asset_infos
        return b if info == a else a

    def seed(self, amounts: Sequence[int], total_share: int) -> None:
        """Set reserves and share supply directly. The caller funds the pool and mints the shares."""
        for info, amount in zip(self.asset_infos, amounts):
            self.reserves[info] = amount
        self.total_share = total_share

    # --- math ---

    def simulate(self, offer: Asset) -> tuple[int, int, int]:
        """Return (return_amount, spread_amount, commission_amount) for selling `offer`."""
        ask_pool = self.reserves[self._other(offer.info)]
        offer_pool = self.reserves[offer.info]
        if offer_pool == 0 or ask_pool == 0:
            raise ExternalFailure(f"{self.address}: pool is empty")
        gross = multiply_ratio(ask_pool, offer.amount, offer_pool + offer.amount)
        spread = max(multiply_ratio(offer.amount, ask_pool, offer_pool) - gross, 0)
        commission = self.commission_rate.mul_int(gross)
        return gross - commission, spread, commission

    def reverse_simulate(self, ask: Asset) -> int:
        """Offer whose post-commission return is at least `ask.amount`, rounded up at each step."""
        offer_pool = self.reserves[self._other(ask.info)]
        ask_pool = self.reserves[ask.info]
        gross = _ceil_div(ask.amount * DECIMAL_FRACTIONAL, DECIMAL_FRACTIONAL - self.commission_rate.atomics)
        if gross >= ask_pool:
            raise ExternalFailure(f"{self.address}: ask of {ask} exceeds pool depth {ask_pool}")
        return _ceil_div(offer_pool * gross, ask_pool - gross)

    # --- execute ---

    def _check_funds(self, assets: Sequence[Asset], funds: Sequence[Coin]) -> None:
        sent = {c.denom: c.amount for c in funds}
        for asset in assets:
            if isinstance(asset.info, Intrinsic) and sent.get(asset.info.denom, 0) != asset.amount:
                raise ExternalFailure(
                    f"{self.address}: native token balance mismatch for {asset.info.denom}: "
                    f"declared {asset.amount}, sent {sent.get(asset.info.denom, 0)}"
                )

    def on_provide_liquidity(
        self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]
    ) -> Response:
        assets: list[Asset] = list(body["assets"])
        self._check_funds(assets, funds)
        amounts = {a.info: a.amount for a in assets}
        if set(amounts) != set(self.asset_infos):
            raise ExternalFailure(f"{self.address}: provide must name both pool assets")

        response = Response()
        for asset in assets:
            if isinstance(asset.info, Fungible):
                response.add_message(
                    WasmExecute(
                        asset.info.contract_addr,
                        {"transfer_from": {"owner": sender, "recipient": self.address, "amount": asset.amount}},
                    )
                )

        a, b = self.asset_infos
        if self.total_share == 0:
            share = isqrt_u256(amounts[a] * amounts[b])
        else:
            share = min(
                multiply_ratio(amounts[a], self.total_share, self.reserves[a]),
                multiply_ratio(amounts[b], self.total_share, self.reserves[b]),
            )
        if share == 0:
            raise ExternalFailure(f"{self.address}: provided amounts mint no shares")

        tolerance = body.get("slippage_tolerance")
        if tolerance is not None and self.total_share > 0:
            # the deposit ratio must match the pool ratio within tolerance, both ways
            expected_b = multiply_ratio(amounts[a], self.reserves[b], self.reserves[a])
            if amounts[b] < (Decimal.one() - tolerance).mul_int(expected_b) or expected_b < (
                Decimal.one() - tolerance
            ).mul_int(amounts[b]):
                raise ExternalFailure(f"{self.address}: operation exceeds max slippage tolerance")

        for info, amount in amounts.items():
            self.reserves[info] += amount
        self.total_share += share

        response.add_message(WasmExecute(self.liquidity_token, {"mint": {"recipient": sender, "amount": share}}))
        response.add_attribute("action", "provide_liquidity")
        response.add_attribute("sender", sender)
        response.add_attribute("assets", ", ".join(f"{amounts[i]}{i.label}" for i in self.asset_infos))
        response.add_attribute("share", share)
        return response

    def on_swap(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        offer: Asset = body["offer_asset"]
        if not isinstance(offer.info, Intrinsic):
            raise ExternalFailure(f"{self.address}: fungible offers must arrive through `send`")
        self._check_funds([offer], funds)
        return self._swap(querier, sender, offer, body.get("belief_price"), body.get("max_spread"))

    def on_receive(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        # `sender` is the token contract; `body["sender"]` is who sent the tokens
        hook_name, hook = split_msg(body["msg"])
        amount = int(body["amount"])
        if hook_name == "withdraw_liquidity":
            if sender != self.liquidity_token:
                raise ExternalFailure(f"{self.address}: only the liquidity token can be withdrawn")
            return self._withdraw(querier, body["sender"], amount)
        if hook_name == "swap":
            offer = Asset(Fungible(sender), amount)
            return self._swap(querier, body["sender"], offer, hook.get("belief_price"), hook.get("max_spread"))
        raise ExternalFailure(f"{self.address}: unknown receive hook `{hook_name}`")

    def _withdraw(self, querier: Querier, owner: str, share: int) -> Response:
        if share == 0 or share > self.total_share:
            raise ExternalFailure(f"{self.address}: cannot withdraw {share} of {self.total_share} shares")
        refunds = [Asset(info, multiply_ratio(self.reserves[info], share, self.total_share)) for info in self.asset_infos]
        for refund in refunds:
            self.reserves[refund.info] -= refund.amount
        self.total_share -= share

        response = Response()
        response.add_message(WasmExecute(self.liquidity_token, {"burn": {"amount": share}}))
        for refund in refunds:
            if not refund.is_zero():
                response.add_message(payout_msg(refund.deduct_tax(querier), owner))
        response.add_attribute("action", "withdraw_liquidity")
        response.add_attribute("sender", owner)
        response.add_attribute("withdrawn_share", share)
        response.add_attribute("refund_assets", ", ".join(f"{r.amount}{r.info.label}" for r in refunds))
        return response

    def _swap(
        self,
        querier: Querier,
        receiver: str,
        offer: Asset,
        belief_price: Decimal | None,
        max_spread: Decimal | None,
    ) -> Response:
        ask_info = self._other(offer.info)
        return_amount, spread, commission = self.simulate(offer)

        if max_spread is not None:
            if belief_price is not None and not belief_price.is_zero():
                expected = multiply_ratio(offer.amount, DECIMAL_FRACTIONAL, belief_price.atomics)
                spread = max(expected - return_amount, 0)
            else:
                expected = return_amount + spread
            if expected > 0 and Decimal.from_ratio(spread, expected) > max_spread:
                raise ExternalFailure(f"{self.address}: operation exceeds max spread limit")

        self.reserves[offer.info] += offer.amount
        self.reserves[ask_info] -= return_amount

        tax = deducted_tax(querier, ask_info, return_amount)
        response = Response()
        if return_amount - tax > 0:
            response.add_message(payout_msg(Asset(ask_info, return_amount - tax), receiver))
        response.add_attribute("action", "swap")
        response.add_attribute("sender", receiver)
        response.add_attribute("offer_asset", offer.info.label)
        response.add_attribute("ask_asset", ask_info.label)
        response.add_attribute("offer_amount", offer.amount)
        response.add_attribute("return_amount", return_amount)
        response.add_attribute("tax_amount", tax)
        response.add_attribute("spread_amount", spread)
        response.add_attribute("commission_amount", commission)
        return response

    # --- queries ---

    def view_pool(self, querier: Querier, env: Env, body: dict) -> dict:
        return {
            "assets": [Asset(info, self.reserves[info]) for info in self.asset_infos],
            "total_share": self.total_share,
        }

    def view_simulation(self, querier: Querier, env: Env, body: dict) -> dict:
        return_amount, spread, commission = self.simulate(body["offer_asset"])
        return {"return_amount": return_amount, "spread_amount": spread, "commission_amount": commission}

    def view_reverse_simulation(self, querier: Querier, env: Env, body: dict) -> dict:
        return {"offer_amount": self.reverse_simulate(body["ask_asset"])}


__all__ = ["Pair"]
