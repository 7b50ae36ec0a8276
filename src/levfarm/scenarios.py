from __future__ import annotations

"""
End-to-end scenarios on the simulated chain.

Each scenario builds a fresh world from `WorldParams`, drives the engine through a
short script of actions, and records one row per (step, user) with units, values and
LTV, plus every event the engine emitted. The six scripts:

  cold_start       one user opens a position from primary only
  dilution         a second user opens the same position
  partial_reduce   the first user halves the position
  repay_overpay    a user repays more than owed, with a nonzero tax
  liquidation      the primary price crashes and a liquidator closes the position
  harvest          accrued rewards are charged a fee and reinvested
"""

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

import numpy as np
import pandas as pd

from levfarm import adapters, msg, sim
from levfarm.assets import Asset, Fungible, Intrinsic, compute_tax
from levfarm.contract import FieldContract
from levfarm.host import Coin
from levfarm.numeric import Decimal
from levfarm.settings import WorldParams
from levfarm.sim.chain import ActionResult
from levfarm.state import Config, Health, Position, State

logger = logging.getLogger(__name__)

ENGINE = "levfarm"
PAIR = "pair_primary_secondary"
LP_TOKEN = "lp_primary_secondary"
REWARD_PAIR = "pair_reward_secondary"
REWARD_LP_TOKEN = "lp_reward_secondary"
REWARD_TOKEN = "reward_token"
GENERATOR = "generator"
MONEY_MARKET = "money_market"
ORACLE = "oracle"
TREASURY = "treasury"
GOVERNANCE = "governance"
OPERATOR = "operator"
SEEDER = "seeder"

ALICE = "alice"
BOB = "bob"
CAROL = "carol"


@dataclass
class World:
    params: WorldParams
    chain: sim.Chain
    engine: FieldContract
    config: Config
    pair: sim.Pair
    reward_pair: sim.Pair
    lp_token: sim.Token
    reward_token: sim.Token
    generator: sim.Generator
    money_market: sim.MoneyMarket
    oracle: sim.Oracle

    @property
    def primary(self) -> Intrinsic:
        return self.config.primary_asset_info

    @property
    def secondary(self) -> Intrinsic:
        return self.config.secondary_asset_info

    def tax(self, denom: str, amount: int) -> int:
        return compute_tax(self.chain, Intrinsic(denom), amount)

    def fund(self, user: str, denom: str, amount: int) -> None:
        """Give `user` enough to send `amount` of `denom`, tax included."""
        self.chain.bank.mint(user, Coin(denom, amount + self.tax(denom, amount)))

    def balance(self, user: str, denom: str) -> int:
        return self.chain.bank.balance(user, denom)

    def execute(self, sender: str, message, funds: Sequence[Coin] = ()) -> ActionResult:
        return self.chain.execute(sender, ENGINE, message, funds)

    def state(self) -> State:
        return self.chain.query(ENGINE, msg.StateQuery())

    def position(self, user: str) -> Position:
        return self.chain.query(ENGINE, msg.PositionQuery(user))

    def health(self, user: str) -> Health:
        return self.chain.query(ENGINE, msg.HealthQuery(user))

    def accrue_rewards(self, *, base: int = 0, proxy: int = 0) -> None:
        """Credit rewards to the engine's stake and fund the generator to pay them."""
        if base:
            self.reward_token.mint_to(GENERATOR, base)
        if proxy:
            self.fund(GENERATOR, self.params.primary_denom, proxy)
        self.generator.accrue(ENGINE, base=base, proxy=proxy)

    def open_position(self, user: str, amount: int) -> ActionResult:
        """Deposit `amount` primary and let the engine borrow the secondary side."""
        denom = self.params.primary_denom
        self.fund(user, denom, amount)
        deposit = Asset(self.primary, amount)
        return self.execute(user, msg.IncreasePosition((deposit,)), [Coin(denom, amount)])


def build_world(params: WorldParams | None = None) -> World:
    params = params or WorldParams()
    chain = sim.Chain(
        tax_rate=Decimal.from_str(params.tax_rate),
        tax_caps={params.secondary_denom: params.tax_cap},
    )
    primary = Intrinsic(params.primary_denom)
    secondary = Intrinsic(params.secondary_denom)
    reward = Fungible(REWARD_TOKEN)
    commission = Decimal.from_str(params.commission_rate)

    lp_token = chain.register(sim.Token(LP_TOKEN, minter=PAIR))
    pair = chain.register(
        sim.Pair(PAIR, liquidity_token=LP_TOKEN, asset_infos=(primary, secondary), commission_rate=commission)
    )
    pair.seed([params.primary_depth, params.secondary_depth], params.initial_share)
    chain.bank.mint(PAIR, Coin(params.primary_denom, params.primary_depth))
    chain.bank.mint(PAIR, Coin(params.secondary_denom, params.secondary_depth))
    lp_token.mint_to(SEEDER, params.initial_share)

    reward_token = chain.register(sim.Token(REWARD_TOKEN))
    chain.register(sim.Token(REWARD_LP_TOKEN, minter=REWARD_PAIR))
    reward_pair = chain.register(
        sim.Pair(
            REWARD_PAIR, liquidity_token=REWARD_LP_TOKEN, asset_infos=(reward, secondary), commission_rate=commission
        )
    )
    reward_pair.seed([params.reward_depth, params.reward_secondary_depth], params.reward_depth)
    reward_token.mint_to(REWARD_PAIR, params.reward_depth)
    chain.bank.mint(REWARD_PAIR, Coin(params.secondary_denom, params.reward_secondary_depth))

    generator = chain.register(
        sim.Generator(GENERATOR, liquidity_token=LP_TOKEN, base_reward_token=reward, proxy_reward_token=primary)
    )
    money_market = chain.register(sim.MoneyMarket(MONEY_MARKET))
    chain.bank.mint(MONEY_MARKET, Coin(params.secondary_denom, params.money_market_liquidity))

    oracle = chain.register(sim.Oracle(ORACLE, owner=GOVERNANCE))
    oracle.set_price(primary, params.primary_price)
    oracle.set_price(secondary, params.secondary_price)
    oracle.set_price(reward, params.reward_price)

    config = Config(
        primary_asset_info=primary,
        secondary_asset_info=secondary,
        reward_asset_info=reward,
        primary_pair=adapters.Pair(PAIR, LP_TOKEN),
        reward_pair=adapters.Pair(REWARD_PAIR, REWARD_LP_TOKEN),
        generator=adapters.Generator(GENERATOR),
        money_market=adapters.MoneyMarket(MONEY_MARKET),
        oracle=adapters.Oracle(ORACLE),
        treasury=TREASURY,
        governance=GOVERNANCE,
        operators=(OPERATOR,),
        max_ltv=Decimal.from_str(params.max_ltv),
        fee_rate=Decimal.from_str(params.fee_rate),
        bonus_rate=Decimal.from_str(params.bonus_rate),
    )
    engine = FieldContract(ENGINE)
    chain.instantiate(engine, GOVERNANCE, config)

    return World(
        params=params,
        chain=chain,
        engine=engine,
        config=config,
        pair=pair,
        reward_pair=reward_pair,
        lp_token=lp_token,
        reward_token=reward_token,
        generator=generator,
        money_market=money_market,
        oracle=oracle,
    )


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


@dataclass
class ScenarioRun:
    name: str
    rows: list[dict] = field(default_factory=list)
    events: list[dict] = field(default_factory=list)
    summary: dict = field(default_factory=dict)
    steps: list[str] = field(default_factory=list)

    def record(self, world: World, step: str, users: Sequence[str], result: ActionResult | None = None) -> None:
        self.steps.append(step)
        state = world.state()
        for user in users:
            position = world.position(user)
            health = world.health(user)
            self.rows.append(
                {
                    "scenario": self.name,
                    "step_index": len(self.steps) - 1,
                    "step": step,
                    "user": user,
                    "bond_units": position.bond_units,
                    "debt_units": position.debt_units,
                    "total_bond_units": state.total_bond_units,
                    "total_debt_units": state.total_debt_units,
                    "bond_value": health.bond_value,
                    "debt_value": health.debt_value,
                    "ltv": float(health.ltv) if health.ltv is not None else np.nan,
                    "unlocked_assets": str(position.unlocked_assets),
                }
            )
        if result is None:
            return
        for event in result.events:
            if event.type == "wasm" and event.get("_contract_address") != ENGINE:
                continue
            self.events.append(
                {
                    "scenario": self.name,
                    "step": step,
                    "type": event.type,
                    "attributes": json.dumps([list(kv) for kv in event.attributes]),
                }
            )


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def scenario_cold_start(params: WorldParams) -> ScenarioRun:
    world = build_world(params)
    run = ScenarioRun("cold_start")
    run.record(world, "initial", [ALICE])

    result = world.open_position(ALICE, params.deposit)
    run.record(world, "increase_position", [ALICE], result)

    position = world.position(ALICE)
    run.summary = {
        "shares_bonded": world.generator.bonded.get(ENGINE, 0),
        "bond_units": position.bond_units,
        "debt_units": position.debt_units,
        "debt": world.money_market.debt_of(ENGINE, world.secondary),
        "ltv": str(world.health(ALICE).ltv),
    }
    return run


def scenario_dilution(params: WorldParams) -> ScenarioRun:
    world = build_world(params)
    run = ScenarioRun("dilution")

    result = world.open_position(ALICE, params.deposit)
    run.record(world, "alice_opens", [ALICE, BOB], result)
    first = world.state()

    result = world.open_position(BOB, params.deposit)
    run.record(world, "bob_opens", [ALICE, BOB], result)
    second = world.state()

    run.summary = {
        "total_bond_units_after_alice": first.total_bond_units,
        "total_bond_units_after_bob": second.total_bond_units,
        "total_debt_units_after_alice": first.total_debt_units,
        "total_debt_units_after_bob": second.total_debt_units,
        "bob_bond_share": str(Decimal.from_ratio(world.position(BOB).bond_units, second.total_bond_units)),
        "bob_debt_share": str(Decimal.from_ratio(world.position(BOB).debt_units, second.total_debt_units)),
    }
    return run


def scenario_partial_reduce(params: WorldParams) -> ScenarioRun:
    world = build_world(params)
    run = ScenarioRun("partial_reduce")

    result = world.open_position(ALICE, params.deposit)
    run.record(world, "increase_position", [ALICE], result)
    before = world.position(ALICE)
    ltv_before = world.health(ALICE).ltv

    primary_before = world.balance(ALICE, params.primary_denom)
    secondary_before = world.balance(ALICE, params.secondary_denom)
    reduce = msg.ReducePosition(
        bond_units_to_reduce=before.bond_units // 2,
        swap_amount=params.deposit // 2,
        repay_amount=2 * params.deposit,
    )
    result = world.execute(ALICE, reduce)
    run.record(world, "reduce_position", [ALICE], result)
    after = world.position(ALICE)

    run.summary = {
        "bond_units_before": before.bond_units,
        "bond_units_after": after.bond_units,
        "debt_units_before": before.debt_units,
        "debt_units_after": after.debt_units,
        "ltv_before": str(ltv_before),
        "ltv_after": str(world.health(ALICE).ltv),
        "primary_refunded": world.balance(ALICE, params.primary_denom) - primary_before,
        "secondary_refunded": world.balance(ALICE, params.secondary_denom) - secondary_before,
    }
    return run


def scenario_repay_overpay(params: WorldParams) -> ScenarioRun:
    # the refund of an over-payment only differs from a plain refund under a nonzero tax
    params = replace(params, tax_rate=params.overpay_tax_rate)
    world = build_world(params)
    run = ScenarioRun("repay_overpay")

    world.fund(ALICE, params.primary_denom, params.overpay_deposit)
    open_msg = msg.UpdatePosition(
        (
            msg.Deposit(Asset(world.primary, params.overpay_deposit)),
            msg.Borrow(params.overpay_debt),
            msg.Bond(),
        )
    )
    result = world.execute(ALICE, open_msg, [Coin(params.primary_denom, params.overpay_deposit)])
    run.record(world, "open_with_debt", [ALICE], result)
    debt_before = world.money_market.debt_of(ENGINE, world.secondary)

    world.fund(ALICE, params.secondary_denom, params.overpay_sent)
    balance_before = world.balance(ALICE, params.secondary_denom)
    send_cost = params.overpay_sent + world.tax(params.secondary_denom, params.overpay_sent)
    result = world.execute(
        ALICE, msg.PayDebt(params.overpay_repay), [Coin(params.secondary_denom, params.overpay_sent)]
    )
    run.record(world, "pay_debt", [ALICE], result)

    run.summary = {
        "debt_before": debt_before,
        "debt_after": world.money_market.debt_of(ENGINE, world.secondary),
        "debt_units_after": world.position(ALICE).debt_units,
        "secondary_sent": params.overpay_sent,
        "secondary_refunded": world.balance(ALICE, params.secondary_denom) - (balance_before - send_cost),
    }
    return run


def scenario_liquidation(params: WorldParams) -> ScenarioRun:
    world = build_world(params)
    run = ScenarioRun("liquidation")

    result = world.open_position(ALICE, params.deposit)
    run.record(world, "increase_position", [ALICE], result)

    world.oracle.set_price(world.primary, params.crash_price)
    run.record(world, "price_crash", [ALICE])
    ltv_at_crash = world.health(ALICE).ltv

    user_before = world.balance(ALICE, params.primary_denom), world.balance(ALICE, params.secondary_denom)
    result = world.execute(CAROL, msg.Liquidate(ALICE))
    run.record(world, "liquidate", [ALICE], result)
    position = world.position(ALICE)

    run.summary = {
        "ltv_at_crash": str(ltv_at_crash),
        "bond_units_after": position.bond_units,
        "debt_units_after": position.debt_units,
        "liquidator_primary": world.balance(CAROL, params.primary_denom),
        "liquidator_secondary": world.balance(CAROL, params.secondary_denom),
        "user_primary": world.balance(ALICE, params.primary_denom) - user_before[0],
        "user_secondary": world.balance(ALICE, params.secondary_denom) - user_before[1],
    }
    return run


def scenario_harvest(params: WorldParams) -> ScenarioRun:
    world = build_world(params)
    run = ScenarioRun("harvest")

    result = world.open_position(ALICE, params.deposit)
    run.record(world, "increase_position", [ALICE], result)
    units_before = world.state().total_bond_units
    bond_value_before = world.health(ALICE).bond_value
    shares_before = world.generator.bonded.get(ENGINE, 0)

    world.accrue_rewards(proxy=params.harvest_reward)
    result = world.execute(OPERATOR, msg.Harvest())
    run.record(world, "harvest", [ALICE], result)

    run.summary = {
        "treasury_primary": world.balance(TREASURY, params.primary_denom),
        "total_bond_units_before": units_before,
        "total_bond_units_after": world.state().total_bond_units,
        "shares_bonded_before": shares_before,
        "shares_bonded_after": world.generator.bonded.get(ENGINE, 0),
        "bond_value_before": bond_value_before,
        "bond_value_after": world.health(ALICE).bond_value,
        "pending_rewards_after": str(world.state().pending_rewards),
    }
    return run


SCENARIOS: dict[str, Callable[[WorldParams], ScenarioRun]] = {
    "cold_start": scenario_cold_start,
    "dilution": scenario_dilution,
    "partial_reduce": scenario_partial_reduce,
    "repay_overpay": scenario_repay_overpay,
    "liquidation": scenario_liquidation,
    "harvest": scenario_harvest,
}


@dataclass(frozen=True)
class ScenarioOutputs:
    positions: pd.DataFrame
    events: pd.DataFrame
    summary: dict


def run_scenarios(*, params: WorldParams | None = None, names: Sequence[str] | None = None) -> ScenarioOutputs:
    params = params or WorldParams()
    names = list(names) if names else list(SCENARIOS)
    unknown = [n for n in names if n not in SCENARIOS]
    if unknown:
        raise ValueError(f"Unknown scenarios: {', '.join(unknown)}")

    runs = []
    for name in names:
        logger.info("running scenario %s", name)
        runs.append(SCENARIOS[name](params))

    positions = pd.DataFrame([row for run in runs for row in run.rows])
    events = pd.DataFrame(
        [row for run in runs for row in run.events], columns=["scenario", "step", "type", "attributes"]
    )
    return ScenarioOutputs(positions=positions, events=events, summary={run.name: run.summary for run in runs})


def write_scenario_outputs(*, out_dir: Path, outputs: ScenarioOutputs) -> tuple[Path, Path, Path]:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    positions_path = out_dir / "positions.csv"
    events_path = out_dir / "events.csv"
    summary_path = out_dir / "summary.json"
    outputs.positions.to_csv(positions_path, index=False)
    outputs.events.to_csv(events_path, index=False)
    summary_path.write_text(json.dumps(outputs.summary, indent=2, sort_keys=True) + "\n")
    return positions_path, events_path, summary_path


__all__ = [
    "World",
    "build_world",
    "ScenarioRun",
    "SCENARIOS",
    "ScenarioOutputs",
    "run_scenarios",
    "write_scenario_outputs",
]
