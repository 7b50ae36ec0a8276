from __future__ import annotations

"""Per-account debt ledger. Borrowed intrinsic coins are delivered with tax taken off."""

from collections.abc import Sequence

from levfarm.assets import Asset, AssetInfo, Fungible, Intrinsic
from levfarm.errors import ExternalFailure
from levfarm.host import Coin, Env, Querier, Response
from levfarm.sim.base import SimContract, payout_msg, split_msg


class MoneyMarket(SimContract):
    def __init__(self, address: str):
        super().__init__(address)
        self.debts: dict[tuple[str, AssetInfo], int] = {}

    def debt_of(self, account: str, info: AssetInfo) -> int:
        return self.debts.get((account, info), 0)

    def accrue_interest(self, account: str, info: AssetInfo, amount: int) -> None:
        self.debts[(account, info)] = self.debt_of(account, info) + amount

    def _repay(self, account: str, asset: Asset) -> Response:
        owed = self.debt_of(account, asset.info)
        if asset.amount > owed:
            raise ExternalFailure(f"{self.address}: repaying {asset} exceeds debt {owed}")
        self.debts[(account, asset.info)] = owed - asset.amount
        return Response().add_attribute("action", "repay").add_attribute("user", account).add_attribute(
            "amount", asset.amount
        )

    def on_borrow(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        asset = Asset(body["asset"], int(body["amount"]))
        self.accrue_interest(sender, asset.info, asset.amount)
        response = Response().add_attribute("action", "borrow").add_attribute("user", sender)
        response.add_attribute("amount", asset.amount)
        return response.add_message(payout_msg(asset.deduct_tax(querier), sender))

    def on_repay_native(
        self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]
    ) -> Response:
        denom = body["denom"]
        paid = sum(c.amount for c in funds if c.denom == denom)
        if paid == 0:
            raise ExternalFailure(f"{self.address}: no {denom} sent to repay")
        return self._repay(sender, Asset(Intrinsic(denom), paid))

    def on_receive(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        hook_name, _ = split_msg(body["msg"])
        if hook_name != "repay_cw20":
            raise ExternalFailure(f"{self.address}: unknown receive hook `{hook_name}`")
        return self._repay(body["sender"], Asset(Fungible(sender), int(body["amount"])))

    def view_user_asset_debt(self, querier: Querier, env: Env, body: dict) -> dict:
        return {"amount": self.debt_of(body["user_address"], body["asset"])}


__all__ = ["MoneyMarket"]
