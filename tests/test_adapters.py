"""Tests for collaborator message builders and event parsing."""

import pytest

from levfarm.adapters import Generator, MoneyMarket, Pair
from levfarm.assets import Asset, Fungible, Intrinsic
from levfarm.errors import ExternalFailure
from levfarm.host import Event, SubMsg, WasmExecute

LUNA = Intrinsic("luna")
UUSD = Intrinsic("uusd")
PAIR = Pair("pair", "lp")


def _wasm(*attrs: tuple[str, str]) -> Event:
    return Event("wasm", (("_contract_address", "pair"), *attrs))


def test_provide_submsgs_fungible_side_is_approved_first():
    token = Fungible("astro")
    msgs = PAIR.provide_submsgs(0, [Asset(token, 10), Asset(UUSD, 20)], None)
    assert len(msgs) == 2
    assert msgs[0] == WasmExecute("astro", {"increase_allowance": {"spender": "pair", "amount": 10}})
    assert isinstance(msgs[1], SubMsg)
    assert msgs[1].reply_id == 0
    # only the intrinsic side rides along as funds
    assert [c.denom for c in msgs[1].msg.funds] == ["uusd"]


def test_withdraw_submsg_sends_shares_to_pair():
    sub = PAIR.withdraw_submsg(1, 500)
    assert sub.reply_id == 1
    assert sub.msg.contract_addr == "lp"
    assert sub.msg.msg["send"]["contract"] == "pair"
    assert sub.msg.msg["send"]["amount"] == 500


def test_parse_provide_events():
    events = [Event("transfer", ()), _wasm(("action", "provide_liquidity"), ("share", "1234"))]
    assert Pair.parse_provide_events(events) == 1234


def test_parse_provide_events_missing_share():
    with pytest.raises(ExternalFailure, match="share"):
        Pair.parse_provide_events([_wasm(("action", "provide_liquidity"))])


def test_parse_provide_events_missing_event():
    with pytest.raises(ExternalFailure, match="provide_liquidity"):
        Pair.parse_provide_events([_wasm(("action", "swap"))])


def test_parse_withdraw_events():
    events = [_wasm(("action", "withdraw_liquidity"), ("refund_assets", "1000luna, 4000uusd"))]
    primary, secondary = Pair.parse_withdraw_events(events, LUNA, UUSD)
    assert primary == Asset(LUNA, 1000)
    assert secondary == Asset(UUSD, 4000)


def test_parse_withdraw_events_missing_asset():
    events = [_wasm(("action", "withdraw_liquidity"), ("refund_assets", "1000luna"))]
    with pytest.raises(ExternalFailure):
        Pair.parse_withdraw_events(events, LUNA, UUSD)


def test_parse_withdraw_events_malformed():
    events = [_wasm(("action", "withdraw_liquidity"), ("refund_assets", "luna, 4000uusd"))]
    with pytest.raises(ExternalFailure, match="malformed"):
        Pair.parse_withdraw_events(events, LUNA, UUSD)


def test_parse_swap_events_deducts_tax():
    events = [
        _wasm(("action", "swap"), ("ask_asset", "uusd"), ("return_amount", "1000"), ("tax_amount", "3")),
    ]
    assert Pair.parse_swap_events(events, [LUNA, UUSD]) == Asset(UUSD, 997)


def test_parse_swap_events_unexpected_asset():
    events = [
        _wasm(("action", "swap"), ("ask_asset", "krw"), ("return_amount", "1000"), ("tax_amount", "0")),
    ]
    with pytest.raises(ExternalFailure, match="unexpected ask asset"):
        Pair.parse_swap_events(events, [LUNA, UUSD])


def test_parse_swap_events_tax_exceeds_return():
    events = [
        _wasm(("action", "swap"), ("ask_asset", "uusd"), ("return_amount", "1"), ("tax_amount", "2")),
    ]
    with pytest.raises(ExternalFailure):
        Pair.parse_swap_events(events, [LUNA, UUSD])


def test_claim_is_zero_withdraw():
    gen = Generator("generator")
    assert gen.claim_rewards_msg("lp") == WasmExecute("generator", {"withdraw": {"lp_token": "lp", "amount": 0}})


def test_repay_msg_intrinsic_carries_funds():
    mm = MoneyMarket("mm")
    msg = mm.repay_msg(Asset(UUSD, 42))
    assert msg.msg == {"repay_native": {"denom": "uusd"}}
    assert msg.funds[0].amount == 42
