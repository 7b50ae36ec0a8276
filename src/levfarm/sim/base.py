from __future__ import annotations

"""
Shared plumbing for the simulated collaborators.

Messages and queries are single-key dicts, `{"name": body}`. `execute` routes
`name` to `on_<name>(querier, env, sender, body, funds)` and `query` routes it to
`view_<name>(querier, env, body)`.
"""

from collections.abc import Sequence

from levfarm.assets import Asset, Fungible
from levfarm.errors import ExternalFailure
from levfarm.host import BankSend, Coin, Env, Querier, Response, WasmExecute


def split_msg(msg: object) -> tuple[str, dict]:
    if not isinstance(msg, dict) or len(msg) != 1:
        raise ExternalFailure(f"malformed message: {msg!r}")
    ((name, body),) = msg.items()
    return name, body or {}


def payout_msg(asset: Asset, recipient: str) -> WasmExecute | BankSend:
    """Transfer from a collaborator. Intrinsic payouts are taxed on top, like any send."""
    if isinstance(asset.info, Fungible):
        return WasmExecute(asset.info.contract_addr, {"transfer": {"recipient": recipient, "amount": asset.amount}})
    return BankSend(recipient, (Coin(asset.info.denom, asset.amount),))


class SimContract:
    def __init__(self, address: str):
        self.address = address

    def execute(
        self, querier: Querier, env: Env, sender: str, msg: dict, funds: Sequence[Coin] = ()
    ) -> Response:
        name, body = split_msg(msg)
        handler = getattr(self, f"on_{name}", None)
        if handler is None:
            raise ExternalFailure(f"{type(self).__name__} at {self.address} does not handle `{name}`")
        return handler(querier, env, sender, body, funds)

    def query(self, querier: Querier, env: Env, msg: dict):
        name, body = split_msg(msg)
        handler = getattr(self, f"view_{name}", None)
        if handler is None:
            raise ExternalFailure(f"{type(self).__name__} at {self.address} does not answer `{name}`")
        return handler(querier, env, body)


__all__ = ["SimContract", "split_msg", "payout_msg"]
