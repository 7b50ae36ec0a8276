from __future__ import annotations

"""
Persisted data model and the in-process store that holds it.

Layout:
  - singleton `Config`
  - singleton `State` (global unit totals + pending rewards)
  - map user -> `Position`
  - map user -> `Snapshot` (legacy PnL feed for off-chain indexers)
  - singleton optional TransientUser (owner of the observed sub-operation in flight)

`load_*` hands out copies; nothing is visible to later sub-operations until `save_*`.
"""

from dataclasses import dataclass, field, replace

from levfarm.adapters import Generator, MoneyMarket, Oracle, Pair
from levfarm.assets import AssetInfo, AssetList
from levfarm.errors import BadArgument, MissingPrecondition
from levfarm.numeric import Decimal

MAX_LTV_MIN = Decimal.percent(75)
MAX_LTV_MAX = Decimal.percent(90)
FEE_RATE_MAX = Decimal.percent(20)
BONUS_RATE_MAX = Decimal.percent(10)


@dataclass(frozen=True)
class Config:
    """
    primary_asset_info: asset the user is long; rewards are paid in (or swapped to) it
    secondary_asset_info: asset borrowed from the money market; every value is quoted in it
    reward_asset_info: generator's base reward token, sold through `reward_pair` on harvest
    """

    primary_asset_info: AssetInfo
    secondary_asset_info: AssetInfo
    reward_asset_info: AssetInfo
    primary_pair: Pair
    reward_pair: Pair
    generator: Generator
    money_market: MoneyMarket
    oracle: Oracle
    treasury: str
    governance: str
    operators: tuple[str, ...] = ()
    max_ltv: Decimal = MAX_LTV_MIN
    fee_rate: Decimal = field(default_factory=Decimal.zero)
    bonus_rate: Decimal = field(default_factory=Decimal.zero)

    def validate(self) -> None:
        if not MAX_LTV_MIN <= self.max_ltv <= MAX_LTV_MAX:
            raise BadArgument(f"max_ltv must be within [{MAX_LTV_MIN}, {MAX_LTV_MAX}], got {self.max_ltv}")
        if self.fee_rate > FEE_RATE_MAX:
            raise BadArgument(f"fee_rate must be at most {FEE_RATE_MAX}, got {self.fee_rate}")
        if self.bonus_rate > BONUS_RATE_MAX:
            raise BadArgument(f"bonus_rate must be at most {BONUS_RATE_MAX}, got {self.bonus_rate}")
        if self.primary_asset_info == self.secondary_asset_info:
            raise BadArgument("primary and secondary assets must differ")


@dataclass
class State:
    total_bond_units: int = 0
    total_debt_units: int = 0
    pending_rewards: AssetList = field(default_factory=AssetList)

    def copy(self) -> State:
        return replace(self, pending_rewards=self.pending_rewards.copy())


@dataclass
class Position:
    bond_units: int = 0
    debt_units: int = 0
    unlocked_assets: AssetList = field(default_factory=AssetList)

    def copy(self) -> Position:
        return replace(self, unlocked_assets=self.unlocked_assets.copy())

    def is_empty(self) -> bool:
        return self.bond_units == 0 and self.debt_units == 0 and self.unlocked_assets.is_empty()


@dataclass(frozen=True)
class Health:
    bond_amount: int = 0
    bond_value: int = 0
    debt_amount: int = 0
    debt_value: int = 0
    # None when bond_value is zero
    ltv: Decimal | None = None


@dataclass(frozen=True)
class Snapshot:
    time: int
    height: int
    position: Position
    health: Health


class Storage:
    def __init__(self) -> None:
        self._config: Config | None = None
        self._state: State | None = None
        self._positions: dict[str, Position] = {}
        self._snapshots: dict[str, Snapshot] = {}
        self._transient_user: str | None = None

    # config / state

    def load_config(self) -> Config:
        if self._config is None:
            raise MissingPrecondition("engine is not instantiated")
        return self._config

    def save_config(self, config: Config) -> None:
        self._config = config

    def load_state(self) -> State:
        if self._state is None:
            raise MissingPrecondition("engine is not instantiated")
        return self._state.copy()

    def save_state(self, state: State) -> None:
        self._state = state.copy()

    # positions

    def load_position(self, user: str) -> Position:
        position = self._positions.get(user)
        return position.copy() if position is not None else Position()

    def save_position(self, user: str, position: Position) -> None:
        if position.is_empty():
            self._positions.pop(user, None)
        else:
            self._positions[user] = position.copy()

    def has_position(self, user: str) -> bool:
        return user in self._positions

    def range_positions(self, start_after: str | None = None, limit: int | None = None):
        users = sorted(self._positions)
        if start_after is not None:
            users = [u for u in users if u > start_after]
        if limit is not None:
            users = users[:limit]
        return [(u, self._positions[u].copy()) for u in users]

    # snapshots

    def load_snapshot(self, user: str) -> Snapshot | None:
        return self._snapshots.get(user)

    def save_snapshot(self, user: str, snapshot: Snapshot) -> None:
        self._snapshots[user] = snapshot

    # transient user

    def may_load_transient_user(self) -> str | None:
        return self._transient_user

    def save_transient_user(self, user: str) -> None:
        self._transient_user = user

    def clear_transient_user(self) -> None:
        self._transient_user = None


__all__ = ["Config", "State", "Position", "Health", "Snapshot", "Storage"]
