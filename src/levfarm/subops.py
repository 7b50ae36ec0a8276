from __future__ import annotations

"""
Sub-operation variants.

A command compiles into an ordered list of these; each one is delivered back to the
engine as a `Callback` message so that it runs after the previous one (and after any
reply the previous one triggered). `user=None` marks the system reward account: the
handlers then read and write `State.pending_rewards` instead of a position ledger and
never mint bond units.
"""

from dataclasses import dataclass

from levfarm.assets import AssetInfo
from levfarm.host import WasmExecute
from levfarm.numeric import Decimal


@dataclass(frozen=True)
class ProvideLiquidity:
    user: str | None
    slippage_tolerance: Decimal | None = None


@dataclass(frozen=True)
class WithdrawLiquidity:
    user: str


@dataclass(frozen=True)
class Bond:
    user: str | None


@dataclass(frozen=True)
class Unbond:
    user: str
    bond_units_to_reduce: int


@dataclass(frozen=True)
class Borrow:
    user: str
    amount: int


@dataclass(frozen=True)
class Repay:
    # None: as much as the unlocked secondary asset covers
    user: str
    amount: int | None


@dataclass(frozen=True)
class Swap:
    user: str | None
    offer_info: AssetInfo
    offer_amount: int | None = None
    belief_price: Decimal | None = None
    max_spread: Decimal | None = None


@dataclass(frozen=True)
class Refund:
    user: str
    recipient: str
    percentage: Decimal


@dataclass(frozen=True)
class AssertHealth:
    user: str


@dataclass(frozen=True)
class Snapshot:
    user: str


@dataclass(frozen=True)
class Balance:
    max_spread: Decimal | None = None


@dataclass(frozen=True)
class Cover:
    user: str
    max_spread: Decimal | None = None


@dataclass(frozen=True)
class ClearBadDebt:
    user: str


SubOperation = (
    ProvideLiquidity
    | WithdrawLiquidity
    | Bond
    | Unbond
    | Borrow
    | Repay
    | Swap
    | Refund
    | AssertHealth
    | Snapshot
    | Balance
    | Cover
    | ClearBadDebt
)


@dataclass(frozen=True)
class Callback:
    """Sub-operation dispatched by the engine to itself."""

    op: SubOperation


def into_msg(op: SubOperation, contract_addr: str) -> WasmExecute:
    return WasmExecute(contract_addr, Callback(op))


def into_msgs(ops, contract_addr: str) -> list[WasmExecute]:
    return [into_msg(op, contract_addr) for op in ops]


__all__ = [
    "ProvideLiquidity",
    "WithdrawLiquidity",
    "Bond",
    "Unbond",
    "Borrow",
    "Repay",
    "Swap",
    "Refund",
    "AssertHealth",
    "Snapshot",
    "Balance",
    "Cover",
    "ClearBadDebt",
    "SubOperation",
    "Callback",
    "into_msg",
    "into_msgs",
]
