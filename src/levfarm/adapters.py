from __future__ import annotations

"""
Typed facades over the external collaborators.

Each adapter is an opaque handle: it stores addresses only, never the collaborator's
state. Operations either build a message for the host to deliver or run a query
through the `Querier`. The `parse_*` helpers turn a collaborator's event stream into
typed values for the reply handlers.

Wire conventions (what the collaborators must speak):
  - pair events carry `action` = provide_liquidity | withdraw_liquidity | swap
  - provide reports `share`; withdraw reports `refund_assets` as "<amount><label>, ..."
  - swap reports `ask_asset`, `return_amount` and `tax_amount`
Amounts in `refund_assets` are pre-tax for intrinsic coins; the reply handler deducts.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass

from levfarm.assets import Asset, AssetInfo, AssetList, Fungible, Intrinsic
from levfarm.errors import ExternalFailure
from levfarm.host import Coin, Event, Message, Querier, SubMsg, WasmExecute
from levfarm.numeric import Decimal

_AMOUNT_LABEL = re.compile(r"^(\d+)(.+)$")


def _find_event(events: Sequence[Event], action: str) -> Event:
    for event in events:
        if event.has("action", action):
            return event
    raise ExternalFailure(f"cannot find `{action}` event")


def _require_attr(event: Event, key: str) -> str:
    value = event.get(key)
    if value is None:
        raise ExternalFailure(f"cannot find `{key}` attribute")
    return value


def _parse_uint(value: str, *, key: str) -> int:
    if not value.isdigit():
        raise ExternalFailure(f"attribute `{key}` is not an unsigned integer: {value!r}")
    return int(value)


def _query(querier: Querier, contract_addr: str, msg: dict):
    try:
        return querier.query_wasm(contract_addr, msg)
    except (KeyError, LookupError) as e:
        raise ExternalFailure(f"query to {contract_addr} failed: {e}") from e


@dataclass(frozen=True)
class Pair:
    contract_addr: str
    liquidity_token: str

    @property
    def share_info(self) -> Fungible:
        return Fungible(self.liquidity_token)

    def provide_submsgs(
        self, reply_id: int, assets: Sequence[Asset], slippage_tolerance: Decimal | None
    ) -> list[Message]:
        """Fungible sides are approved first; intrinsic sides ride along as funds."""
        msgs: list[Message] = [
            WasmExecute(
                asset.info.contract_addr,
                {"increase_allowance": {"spender": self.contract_addr, "amount": asset.amount}},
            )
            for asset in assets
            if isinstance(asset.info, Fungible)
        ]
        msgs.append(
            SubMsg(
                WasmExecute(
                    self.contract_addr,
                    {"provide_liquidity": {"assets": list(assets), "slippage_tolerance": slippage_tolerance}},
                    _coins(assets),
                ),
                reply_id,
            )
        )
        return msgs

    def withdraw_submsg(self, reply_id: int, shares: int) -> SubMsg:
        return SubMsg(
            Asset(self.share_info, shares).send_msg(self.contract_addr, {"withdraw_liquidity": {}}),
            reply_id,
        )

    def swap_submsg(
        self,
        reply_id: int,
        offer: Asset,
        belief_price: Decimal | None,
        max_spread: Decimal | None,
    ) -> SubMsg:
        hook = {"belief_price": belief_price, "max_spread": max_spread}
        if isinstance(offer.info, Fungible):
            msg = offer.send_msg(self.contract_addr, {"swap": hook})
        else:
            msg = WasmExecute(
                self.contract_addr,
                {"swap": {"offer_asset": offer, **hook}},
                _coins([offer]),
            )
        return SubMsg(msg, reply_id)

    def query_pool(
        self, querier: Querier, primary_info: AssetInfo, secondary_info: AssetInfo
    ) -> tuple[int, int, int]:
        """Return (primary depth, secondary depth, total share supply)."""
        response = _query(querier, self.contract_addr, {"pool": {}})
        depths = AssetList(response["assets"])
        if depths.find(primary_info) is None:
            raise ExternalFailure("cannot find primary asset in pool response")
        if depths.find(secondary_info) is None:
            raise ExternalFailure("cannot find secondary asset in pool response")
        return depths.amount_of(primary_info), depths.amount_of(secondary_info), int(response["total_share"])

    def query_reverse_simulate(self, querier: Querier, ask: Asset) -> int:
        """How much offer asset must be sold to receive `ask`."""
        response = _query(querier, self.contract_addr, {"reverse_simulation": {"ask_asset": ask}})
        return int(response["offer_amount"])

    @staticmethod
    def parse_provide_events(events: Sequence[Event]) -> int:
        event = _find_event(events, "provide_liquidity")
        return _parse_uint(_require_attr(event, "share"), key="share")

    @staticmethod
    def parse_withdraw_events(
        events: Sequence[Event], primary_info: AssetInfo, secondary_info: AssetInfo
    ) -> tuple[Asset, Asset]:
        """Return the pre-tax (primary, secondary) refund of a liquidity withdrawal."""
        event = _find_event(events, "withdraw_liquidity")
        refunded: dict[str, int] = {}
        for part in _require_attr(event, "refund_assets").split(","):
            m = _AMOUNT_LABEL.match(part.strip())
            if m is None:
                raise ExternalFailure(f"malformed refund asset: {part!r}")
            refunded[m.group(2)] = int(m.group(1))
        try:
            return (
                Asset(primary_info, refunded[primary_info.label]),
                Asset(secondary_info, refunded[secondary_info.label]),
            )
        except KeyError as e:
            raise ExternalFailure(f"failed to parse withdrawn amount for {e.args[0]}") from e

    @staticmethod
    def parse_swap_events(events: Sequence[Event], candidates: Sequence[AssetInfo]) -> Asset:
        """Return the ask asset actually delivered (return amount minus tax)."""
        event = _find_event(events, "swap")
        label = _require_attr(event, "ask_asset")
        return_amount = _parse_uint(_require_attr(event, "return_amount"), key="return_amount")
        tax_amount = _parse_uint(_require_attr(event, "tax_amount"), key="tax_amount")
        if tax_amount > return_amount:
            raise ExternalFailure(f"swap tax {tax_amount} exceeds return amount {return_amount}")
        for info in candidates:
            if info.label == label:
                return Asset(info, return_amount - tax_amount)
        raise ExternalFailure(f"unexpected ask asset in swap event: {label}")


@dataclass(frozen=True)
class Generator:
    contract_addr: str

    def bond_msg(self, liquidity_token: str, amount: int) -> WasmExecute:
        """NOTE: the generator pays out pending rewards while executing this."""
        return Asset(Fungible(liquidity_token), amount).send_msg(self.contract_addr, {"deposit": {}})

    def unbond_msg(self, liquidity_token: str, amount: int) -> WasmExecute:
        """NOTE: the generator pays out pending rewards while executing this."""
        return WasmExecute(self.contract_addr, {"withdraw": {"lp_token": liquidity_token, "amount": amount}})

    def claim_rewards_msg(self, liquidity_token: str) -> WasmExecute:
        # claiming is withdrawing zero liquidity tokens
        return self.unbond_msg(liquidity_token, 0)

    def query_bonded_amount(self, querier: Querier, staker: str, liquidity_token: str) -> int:
        return int(_query(querier, self.contract_addr, {"deposit": {"user": staker, "lp_token": liquidity_token}}))

    def query_rewards(self, querier: Querier, staker: str, liquidity_token: str) -> AssetList:
        info = _query(querier, self.contract_addr, {"reward_info": {"lp_token": liquidity_token}})
        pending = _query(querier, self.contract_addr, {"pending_token": {"user": staker, "lp_token": liquidity_token}})
        rewards = AssetList([Asset(info["base_reward_token"], int(pending["pending"]))])
        if info.get("proxy_reward_token") is not None:
            rewards.add(Asset(info["proxy_reward_token"], int(pending.get("pending_on_proxy") or 0)))
        return rewards.purge()


@dataclass(frozen=True)
class MoneyMarket:
    contract_addr: str

    def borrow_msg(self, asset: Asset) -> WasmExecute:
        return WasmExecute(self.contract_addr, {"borrow": {"asset": asset.info, "amount": asset.amount}})

    def repay_msg(self, asset: Asset) -> WasmExecute:
        if isinstance(asset.info, Fungible):
            return asset.send_msg(self.contract_addr, {"repay_cw20": {}})
        return WasmExecute(
            self.contract_addr, {"repay_native": {"denom": asset.info.denom}}, _coins([asset])
        )

    def query_user_debt(self, querier: Querier, user: str, info: AssetInfo) -> int:
        response = _query(
            querier, self.contract_addr, {"user_asset_debt": {"user_address": user, "asset": info}}
        )
        return int(response["amount"])


@dataclass(frozen=True)
class Oracle:
    contract_addr: str

    def query_price(self, querier: Querier, info: AssetInfo) -> Decimal:
        """Price of one unit of `info`, denominated in the secondary asset."""
        price = _query(querier, self.contract_addr, {"asset_price": {"asset": info}})
        if not isinstance(price, Decimal):
            price = Decimal.from_str(str(price))
        return price


def _coins(assets: Sequence[Asset]) -> tuple[Coin, ...]:
    return tuple(Coin(a.info.denom, a.amount) for a in assets if isinstance(a.info, Intrinsic))


__all__ = ["Pair", "Generator", "MoneyMarket", "Oracle"]
