from __future__ import annotations

"""
Parameter and output-path resolution for the scenario report.

Environment variable overrides:
  - LEVFARM_PARAMS: JSON file with `WorldParams` fields (any subset)
  - LEVFARM_OUT: output directory (default ./out)

Command-line flags take precedence over the environment.
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path


@dataclass(frozen=True)
class WorldParams:
    """
    Everything the simulated world is built from. Ratios are decimal strings so
    that they reach the engine's fixed-point type without passing through floats.
    """

    primary_denom: str = "luna"
    secondary_denom: str = "uusd"

    # primary pool, before any position exists
    primary_depth: int = 1_000_000
    secondary_depth: int = 4_000_000
    initial_share: int = 2_000_000
    commission_rate: str = "0.003"

    # reward token pool (reward token / secondary)
    reward_depth: int = 10_000_000
    reward_secondary_depth: int = 10_000_000

    primary_price: str = "4"
    secondary_price: str = "1"
    reward_price: str = "1"
    crash_price: str = "1"

    tax_rate: str = "0"
    tax_cap: int = 1_000_000
    money_market_liquidity: int = 10**12

    max_ltv: str = "0.75"
    fee_rate: str = "0.05"
    bonus_rate: str = "0.01"

    deposit: int = 1_000_000
    harvest_reward: int = 1_000_000

    # repay over-pay scenario
    overpay_tax_rate: str = "0.001"
    overpay_deposit: int = 250_000
    overpay_debt: int = 1_000_000
    overpay_repay: int = 1_500_000
    overpay_sent: int = 1_500_100

    @classmethod
    def from_dict(cls, data: dict) -> WorldParams:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown world parameters: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: Path) -> WorldParams:
        return cls.from_dict(json.loads(Path(path).read_text()))


def resolve_params(params_path: str | Path | None = None) -> WorldParams:
    if params_path is None:
        params_path = os.environ.get("LEVFARM_PARAMS")
    if not params_path:
        return WorldParams()
    p = Path(params_path).resolve()
    if not p.exists():
        raise FileNotFoundError(f"World parameter file not found: {p}")
    return WorldParams.from_json(p)


def resolve_out_dir(out: str | Path | None = None) -> Path:
    if out is None:
        out = os.environ.get("LEVFARM_OUT", "out")
    return Path(out).resolve()


__all__ = ["WorldParams", "resolve_params", "resolve_out_dir"]
