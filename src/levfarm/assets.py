from __future__ import annotations

"""
Asset model and native-tax helpers.

`AssetInfo` is a tagged variant:
  - `Fungible(contract_addr)`: a token contract; transfers are free of tax
  - `Intrinsic(denom)`: a host-chain coin; transfers pay the host's tax, except `luna`

Two quantities must never be confused for an Intrinsic asset:
  - the deliverable amount (what the recipient receives), and
  - the debited amount (deliverable + tax, what leaves the sender).
`deduct_tax` maps a budget to its deliverable; `add_tax` maps a deliverable to its cost.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from levfarm.errors import ArithmeticFault, BadArgument
from levfarm.host import BankSend, Coin, Querier, WasmExecute
from levfarm.numeric import DECIMAL_FRACTIONAL, Decimal, checked_add, checked_sub, multiply_ratio

TAX_EXEMPT_DENOMS = frozenset({"luna"})


@dataclass(frozen=True)
class Fungible:
    contract_addr: str

    @property
    def label(self) -> str:
        return self.contract_addr

    def __str__(self) -> str:
        return f"fungible:{self.contract_addr}"


@dataclass(frozen=True)
class Intrinsic:
    denom: str

    @property
    def label(self) -> str:
        return self.denom

    def __str__(self) -> str:
        return f"intrinsic:{self.denom}"


AssetInfo = Fungible | Intrinsic


def compute_tax(querier: Querier, info: AssetInfo, amount: int) -> int:
    """Tax charged on top of a transfer that delivers `amount`."""
    if isinstance(info, Fungible) or info.denom in TAX_EXEMPT_DENOMS:
        return 0
    rate = querier.query_tax_rate()
    cap = querier.query_tax_cap(info.denom)
    return min(rate.mul_int(amount), cap)


def deducted_tax(querier: Querier, info: AssetInfo, amount: int) -> int:
    """Tax contained in a budget of `amount`, i.e. amount - deliverable."""
    if isinstance(info, Fungible) or info.denom in TAX_EXEMPT_DENOMS:
        return 0
    rate = querier.query_tax_rate()
    cap = querier.query_tax_cap(info.denom)
    deliverable = multiply_ratio(amount, DECIMAL_FRACTIONAL, rate.atomics + DECIMAL_FRACTIONAL)
    return min(checked_sub(amount, deliverable), cap)


@dataclass(frozen=True)
class Asset:
    info: AssetInfo
    amount: int

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ArithmeticFault(f"negative asset amount: {self.amount}")

    def __str__(self) -> str:
        return f"{self.info}:{self.amount}"

    def with_amount(self, amount: int) -> Asset:
        return Asset(self.info, amount)

    def scaled(self, ratio: Decimal) -> Asset:
        return Asset(self.info, ratio.mul_int(self.amount))

    def is_zero(self) -> bool:
        return self.amount == 0

    def add_tax(self, querier: Querier) -> Asset:
        return Asset(self.info, checked_add(self.amount, compute_tax(querier, self.info, self.amount)))

    def deduct_tax(self, querier: Querier) -> Asset:
        return Asset(self.info, self.amount - deducted_tax(querier, self.info, self.amount))

    def transfer_msg(self, to: str) -> WasmExecute | BankSend:
        """NOTE: `amount` must already have tax deducted."""
        if isinstance(self.info, Fungible):
            return WasmExecute(
                self.info.contract_addr, {"transfer": {"recipient": to, "amount": self.amount}}
            )
        return BankSend(to, (Coin(self.info.denom, self.amount),))

    def transfer_from_msg(self, owner: str, to: str) -> WasmExecute:
        if not isinstance(self.info, Fungible):
            raise BadArgument("transfer_from does not apply to intrinsic coins")
        return WasmExecute(
            self.info.contract_addr,
            {"transfer_from": {"owner": owner, "recipient": to, "amount": self.amount}},
        )

    def send_msg(self, contract: str, hook: dict) -> WasmExecute:
        """Fungible transfer to a contract that triggers its receive hook."""
        if not isinstance(self.info, Fungible):
            raise BadArgument("send does not apply to intrinsic coins")
        return WasmExecute(
            self.info.contract_addr, {"send": {"contract": contract, "amount": self.amount, "msg": hook}}
        )


class AssetList:
    """
    Ordered, merged, nonnegative list of assets.

    Adding an asset whose info is already present adds to the existing entry; entries
    that reach zero are purged on deduction.
    """

    def __init__(self, assets: Iterable[Asset] = ()):
        self._assets: list[Asset] = []
        for a in assets:
            self.add(a)

    @classmethod
    def from_coins(cls, coins: Iterable[Coin]) -> AssetList:
        return cls(Asset(Intrinsic(c.denom), c.amount) for c in coins)

    def __iter__(self) -> Iterator[Asset]:
        return iter(list(self._assets))

    def __len__(self) -> int:
        return len(self._assets)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AssetList):
            return NotImplemented
        return self._assets == other._assets

    def __str__(self) -> str:
        return ",".join(str(a) for a in self._assets) if self._assets else "[]"

    def __repr__(self) -> str:
        return f"AssetList([{', '.join(repr(a) for a in self._assets)}])"

    def copy(self) -> AssetList:
        out = AssetList()
        out._assets = list(self._assets)
        return out

    def find(self, info: AssetInfo) -> Asset | None:
        for a in self._assets:
            if a.info == info:
                return a
        return None

    def amount_of(self, info: AssetInfo) -> int:
        a = self.find(info)
        return a.amount if a is not None else 0

    def add(self, asset: Asset) -> AssetList:
        for i, a in enumerate(self._assets):
            if a.info == asset.info:
                self._assets[i] = a.with_amount(checked_add(a.amount, asset.amount))
                break
        else:
            self._assets.append(asset)
        self.purge()
        return self

    def add_many(self, assets: Iterable[Asset]) -> AssetList:
        for a in assets:
            self.add(a)
        return self

    def deduct(self, asset: Asset) -> AssetList:
        if asset.amount == 0:
            return self
        for i, a in enumerate(self._assets):
            if a.info == asset.info:
                self._assets[i] = a.with_amount(checked_sub(a.amount, asset.amount))
                break
        else:
            raise ArithmeticFault(f"cannot deduct {asset}: asset not found")
        self.purge()
        return self

    def deduct_many(self, assets: Iterable[Asset]) -> AssetList:
        for a in assets:
            self.deduct(a)
        return self

    def purge(self) -> AssetList:
        self._assets = [a for a in self._assets if a.amount > 0]
        return self

    def is_empty(self) -> bool:
        return not self._assets


def assert_sent_fund(expected: Asset, received: AssetList) -> None:
    """Assert that exactly `expected` of an intrinsic coin was shipped with the command."""
    received_amount = received.amount_of(expected.info)
    if received_amount != expected.amount:
        raise BadArgument(f"sent fund mismatch! expected: {expected}, received {received_amount}")


__all__ = [
    "TAX_EXEMPT_DENOMS",
    "Fungible",
    "Intrinsic",
    "AssetInfo",
    "Asset",
    "AssetList",
    "compute_tax",
    "deducted_tax",
    "assert_sent_fund",
]
