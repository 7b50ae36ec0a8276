from __future__ import annotations

"""Fungible token with allowances, a single minter, and `send` receive hooks."""

from collections.abc import Sequence

from levfarm.errors import ExternalFailure
from levfarm.host import Coin, Env, Querier, Response, WasmExecute
from levfarm.numeric import checked_add
from levfarm.sim.base import SimContract


class Token(SimContract):
    def __init__(self, address: str, *, minter: str | None = None):
        super().__init__(address)
        self.minter = minter
        self.balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}
        self.total_supply = 0

    def balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    def mint_to(self, recipient: str, amount: int) -> None:
        self.balances[recipient] = checked_add(self.balance(recipient), amount)
        self.total_supply = checked_add(self.total_supply, amount)

    def _move(self, owner: str, recipient: str, amount: int) -> None:
        held = self.balance(owner)
        if held < amount:
            raise ExternalFailure(f"{self.address}: {owner} holds {held}, cannot move {amount}")
        self.balances[owner] = held - amount
        self.balances[recipient] = checked_add(self.balance(recipient), amount)

    def _attrs(self, response: Response, action: str, **attrs: object) -> Response:
        response.add_attribute("action", action)
        for k, v in attrs.items():
            response.add_attribute(k, v)
        return response

    def on_transfer(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        amount = int(body["amount"])
        self._move(sender, body["recipient"], amount)
        return self._attrs(Response(), "transfer", sender=sender, recipient=body["recipient"], amount=amount)

    def on_transfer_from(
        self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]
    ) -> Response:
        owner, amount = body["owner"], int(body["amount"])
        allowed = self.allowances.get((owner, sender), 0)
        if allowed < amount:
            raise ExternalFailure(f"{self.address}: allowance {allowed} of {sender} over {owner} is below {amount}")
        self.allowances[(owner, sender)] = allowed - amount
        self._move(owner, body["recipient"], amount)
        return self._attrs(Response(), "transfer_from", owner=owner, recipient=body["recipient"], amount=amount)

    def on_send(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        contract, amount = body["contract"], int(body["amount"])
        self._move(sender, contract, amount)
        hook = WasmExecute(contract, {"receive": {"sender": sender, "amount": amount, "msg": body.get("msg")}})
        return self._attrs(Response(), "send", sender=sender, contract=contract, amount=amount).add_message(hook)

    def on_increase_allowance(
        self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]
    ) -> Response:
        key = (sender, body["spender"])
        self.allowances[key] = checked_add(self.allowances.get(key, 0), int(body["amount"]))
        return self._attrs(Response(), "increase_allowance", owner=sender, spender=body["spender"])

    def on_mint(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        if sender != self.minter:
            raise ExternalFailure(f"{self.address}: {sender} is not the minter")
        amount = int(body["amount"])
        self.mint_to(body["recipient"], amount)
        return self._attrs(Response(), "mint", recipient=body["recipient"], amount=amount)

    def on_burn(self, querier: Querier, env: Env, sender: str, body: dict, funds: Sequence[Coin]) -> Response:
        amount = int(body["amount"])
        held = self.balance(sender)
        if held < amount:
            raise ExternalFailure(f"{self.address}: {sender} holds {held}, cannot burn {amount}")
        self.balances[sender] = held - amount
        self.total_supply -= amount
        return self._attrs(Response(), "burn", sender=sender, amount=amount)

    def view_balance(self, querier: Querier, env: Env, body: dict) -> int:
        return self.balance(body["address"])


__all__ = ["Token"]
