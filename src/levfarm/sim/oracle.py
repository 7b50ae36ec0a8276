from __future__ import annotations

"""Settable price feed, quoting every asset in the secondary asset."""

from collections.abc import Sequence

from levfarm.assets import AssetInfo
from levfarm.errors import ExternalFailure
from levfarm.host import Coin, Env, Querier, Response
from levfarm.numeric import Decimal
from levfarm.sim.base import SimContract


class Oracle(SimContract):
    def __init__(self, address: str, *, owner: str | None = None):
        super().__init__(address)
        self.owner = owner
        self.prices: dict[AssetInfo, Decimal] = {}

    def set_price(self, info: AssetInfo, price: Decimal | str) -> None:
        self.prices[info] = price if isinstance(price, Decimal) else Decimal.from_str(price)

    def on_set_asset(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        if sender != self.owner:
            raise ExternalFailure(f"{self.address}: only {self.owner} can set prices")
        self.set_price(body["asset"], body["price"])
        return Response().add_attribute("action", "set_asset").add_attribute("price", body["price"])

    def view_asset_price(self, querier: Querier, env: Env, body: dict) -> Decimal:
        info = body["asset"]
        if info not in self.prices:
            raise ExternalFailure(f"{self.address}: no price for {info}")
        return self.prices[info]


__all__ = ["Oracle"]
