"""
Leveraged yield-farming position manager.

Users deposit a primary asset; the engine borrows the secondary asset from a money
market, provides both to a constant-product pool, and stakes the liquidity shares
in a reward generator. Positions are tracked as pro-rata bond units (share of the
staked liquidity) and debt units (share of the engine's debt), with a per-user
ledger of unlocked assets in between.

Layout:
  - `contract.FieldContract`: the engine's entry points (instantiate / execute / reply / query)
  - `execute`, `callbacks`, `replies`, `queries`: the handlers behind them
  - `adapters`: message builders and queries for the pool, generator, money market, oracle
  - `sim`: in-memory collaborators and a chain that runs the engine end to end
  - `scenarios`, `plots`, `cli`: the scenario report (`levfarm all`)
"""

__all__ = []
