from __future__ import annotations

"""
Command, action and query messages accepted by `FieldContract`.

Every message is a frozen dataclass; the contract dispatches on the concrete type.
"""

from dataclasses import dataclass

from levfarm.assets import Asset
from levfarm.numeric import Decimal
from levfarm.state import Config
from levfarm.subops import Callback

# ---------------------------------------------------------------------------
# UpdatePosition actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Deposit:
    asset: Asset


@dataclass(frozen=True)
class Borrow:
    amount: int


@dataclass(frozen=True)
class Repay:
    amount: int


@dataclass(frozen=True)
class Bond:
    """Provide all unlocked primary + secondary to the pair, then bond the shares."""

    slippage_tolerance: Decimal | None = None


@dataclass(frozen=True)
class Unbond:
    """Unbond and burn the shares behind `bond_units_to_reduce`."""

    bond_units_to_reduce: int


@dataclass(frozen=True)
class Swap:
    """Sell `offer_amount` of the primary asset for the secondary asset."""

    offer_amount: int
    belief_price: Decimal | None = None
    max_spread: Decimal | None = None


Action = Deposit | Borrow | Repay | Bond | Unbond | Swap

# ---------------------------------------------------------------------------
# Execute commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UpdatePosition:
    actions: tuple[Action, ...]


@dataclass(frozen=True)
class IncreasePosition:
    deposits: tuple[Asset, ...]
    slippage_tolerance: Decimal | None = None


@dataclass(frozen=True)
class ReducePosition:
    """
    bond_units_to_reduce: None unbonds every bond unit of the caller
    swap_amount: None sells nothing
    repay_amount: None repays as much debt as the unlocked secondary asset covers
    """

    bond_units_to_reduce: int | None = None
    swap_amount: int | None = None
    repay_amount: int | None = None
    belief_price: Decimal | None = None
    max_spread: Decimal | None = None


@dataclass(frozen=True)
class PayDebt:
    repay_amount: int


@dataclass(frozen=True)
class Harvest:
    max_spread: Decimal | None = None
    slippage_tolerance: Decimal | None = None


@dataclass(frozen=True)
class Liquidate:
    user: str
    max_spread: Decimal | None = None


@dataclass(frozen=True)
class UpdateConfig:
    new_config: Config


ExecuteMsg = (
    UpdatePosition
    | IncreasePosition
    | ReducePosition
    | PayDebt
    | Harvest
    | Liquidate
    | UpdateConfig
    | Callback
)

# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

POSITIONS_DEFAULT_LIMIT = 10
POSITIONS_MAX_LIMIT = 30


@dataclass(frozen=True)
class ConfigQuery:
    pass


@dataclass(frozen=True)
class StateQuery:
    pass


@dataclass(frozen=True)
class PositionQuery:
    user: str


@dataclass(frozen=True)
class PositionsQuery:
    start_after: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class HealthQuery:
    user: str


@dataclass(frozen=True)
class SnapshotQuery:
    user: str


QueryMsg = ConfigQuery | StateQuery | PositionQuery | PositionsQuery | HealthQuery | SnapshotQuery


__all__ = [
    "Deposit",
    "Borrow",
    "Repay",
    "Bond",
    "Unbond",
    "Swap",
    "Action",
    "UpdatePosition",
    "IncreasePosition",
    "ReducePosition",
    "PayDebt",
    "Harvest",
    "Liquidate",
    "UpdateConfig",
    "Callback",
    "ExecuteMsg",
    "POSITIONS_DEFAULT_LIMIT",
    "POSITIONS_MAX_LIMIT",
    "ConfigQuery",
    "StateQuery",
    "PositionQuery",
    "PositionsQuery",
    "HealthQuery",
    "SnapshotQuery",
    "QueryMsg",
]
