from __future__ import annotations

"""Intrinsic coin ledger. A transfer of `amount` debits the sender `amount + tax`."""

from collections import defaultdict
from collections.abc import Sequence

from levfarm.assets import Intrinsic, compute_tax
from levfarm.errors import ExternalFailure
from levfarm.host import Coin
from levfarm.numeric import Decimal, checked_add


class Bank:
    def __init__(self, *, tax_rate: Decimal | None = None, tax_caps: dict[str, int] | None = None):
        self.tax_rate = tax_rate if tax_rate is not None else Decimal.zero()
        self.tax_caps = dict(tax_caps or {})
        self.balances: dict[str, dict[str, int]] = defaultdict(dict)
        self.tax_collected: dict[str, int] = {}

    # the two tax queries, so `compute_tax` can be pointed at the bank directly

    def query_tax_rate(self) -> Decimal:
        return self.tax_rate

    def query_tax_cap(self, denom: str) -> int:
        # uncapped unless configured
        return self.tax_caps.get(denom, 1 << 127)

    def balance(self, address: str, denom: str) -> int:
        return self.balances[address].get(denom, 0)

    def mint(self, address: str, coin: Coin) -> None:
        self.balances[address][coin.denom] = checked_add(self.balance(address, coin.denom), coin.amount)

    def send(self, sender: str, recipient: str, coins: Sequence[Coin]) -> None:
        for coin in coins:
            tax = compute_tax(self, Intrinsic(coin.denom), coin.amount)
            cost = coin.amount + tax
            held = self.balance(sender, coin.denom)
            if held < cost:
                raise ExternalFailure(
                    f"insufficient funds: {sender} holds {held}{coin.denom}, needs {cost}{coin.denom} (tax {tax})"
                )
            self.balances[sender][coin.denom] = held - cost
            self.balances[recipient][coin.denom] = checked_add(self.balance(recipient, coin.denom), coin.amount)
            self.tax_collected[coin.denom] = self.tax_collected.get(coin.denom, 0) + tax


__all__ = ["Bank"]
