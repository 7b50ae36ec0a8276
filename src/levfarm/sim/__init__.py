"""
In-memory collaborators and a host that drives the engine against them.

Nothing here is part of the engine. The tests and the scenario report use it to
exercise the engine end to end:
  - `Bank`: intrinsic coin balances, charging the same tax the engine computes
  - `Token`: fungible token with allowances and `send` hooks
  - `Pair`: constant-product pool with commission and reverse simulation
  - `Generator`: liquidity-token staking with explicitly accrued rewards
  - `MoneyMarket`: per-account debt ledger
  - `Oracle`: settable prices
  - `Chain`: message router and querier; rolls back a failed action
"""

from levfarm.sim.bank import Bank
from levfarm.sim.chain import Chain
from levfarm.sim.generator import Generator
from levfarm.sim.money_market import MoneyMarket
from levfarm.sim.oracle import Oracle
from levfarm.sim.pair import Pair
from levfarm.sim.token import Token

__all__ = ["Bank", "Chain", "Generator", "MoneyMarket", "Oracle", "Pair", "Token"]
