from __future__ import annotations

"""
Position valuation and LTV.

The bonded liquidity tokens are valued with the fair-LP formula
(https://blog.alphafinance.io/fair-lp-token-pricing/):

    pool_value = 2 * sqrt((primary_depth * p_primary) * (secondary_depth * p_secondary))

It does not move when the pool is pushed off balance, so a flash-loan sized swap just
before a liquidation cannot change anyone's LTV. The product of the two legs may
exceed 128 bits; it is evaluated in the 256-bit domain and narrowed right after the
square root.

All values are denominated in the secondary asset.
"""

from levfarm.host import Deps, Env
from levfarm.numeric import Decimal, check_u128, isqrt_u256, multiply_ratio
from levfarm.state import Config, Health, Position, State


def fair_pool_value(primary_depth: int, primary_price: Decimal, secondary_depth: int, secondary_price: Decimal) -> int:
    primary_value = primary_price.mul_int(primary_depth)
    secondary_value = secondary_price.mul_int(secondary_depth)
    pool_value = 2 * isqrt_u256(primary_value * secondary_value)
    return check_u128(pool_value, what="pool value")


def _share_of(total: int, units: int, total_units: int) -> int:
    if total_units == 0:
        return 0
    return multiply_ratio(total, units, total_units)


def compute_health(deps: Deps, env: Env, config: Config, state: State, position: Position) -> Health:
    querier = deps.querier
    liquidity_token = config.primary_pair.liquidity_token

    total_bond_amount = config.generator.query_bonded_amount(querier, env.contract_address, liquidity_token)
    total_debt_amount = config.money_market.query_user_debt(
        querier, env.contract_address, config.secondary_asset_info
    )
    primary_depth, secondary_depth, total_shares = config.primary_pair.query_pool(
        querier, config.primary_asset_info, config.secondary_asset_info
    )
    primary_price = config.oracle.query_price(querier, config.primary_asset_info)
    secondary_price = config.oracle.query_price(querier, config.secondary_asset_info)

    pool_value = fair_pool_value(primary_depth, primary_price, secondary_depth, secondary_price)

    # an empty share supply means the pool is absent; nothing bonded can be worth anything
    total_bond_value = 0 if total_shares == 0 else multiply_ratio(pool_value, total_bond_amount, total_shares)
    total_debt_value = secondary_price.mul_int(total_debt_amount)

    bond_value = _share_of(total_bond_value, position.bond_units, state.total_bond_units)
    debt_value = _share_of(total_debt_value, position.debt_units, state.total_debt_units)

    # undefined for a closed position
    ltv = None if bond_value == 0 else Decimal.from_ratio(debt_value, bond_value)

    # reported for frontends only; liquidation never looks at these
    bond_amount = _share_of(total_bond_amount, position.bond_units, state.total_bond_units)
    debt_amount = _share_of(total_debt_amount, position.debt_units, state.total_debt_units)

    return Health(
        bond_amount=bond_amount,
        bond_value=bond_value,
        debt_amount=debt_amount,
        debt_value=debt_value,
        ltv=ltv,
    )


def is_healthy(health: Health, max_ltv: Decimal) -> bool:
    if health.ltv is None:
        return health.debt_value == 0
    return health.ltv <= max_ltv


__all__ = ["fair_pool_value", "compute_health", "is_healthy"]
