from __future__ import annotations

"""
The host: routes messages, answers queries, and makes every action atomic.

Execution is depth-first. A contract's returned messages run in order, each one
(with everything it triggers) completing before the next starts. An observed
message (`SubMsg`) collects the events of its whole subtree and hands them to the
emitting contract's `reply` before the next sibling runs.

`execute` snapshots every contract and the bank first. If anything raises, all of
them are restored and the exception propagates unchanged.
"""

import copy
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from levfarm.errors import ExternalFailure
from levfarm.host import BankSend, Coin, Env, Event, Message, Response, SubMsg, WasmExecute
from levfarm.numeric import Decimal
from levfarm.sim.bank import Bank

logger = logging.getLogger(__name__)

# keeps runaway message loops from exhausting the interpreter stack
MAX_DEPTH = 64


@dataclass
class ActionResult:
    events: list[Event] = field(default_factory=list)

    def find(self, type_: str) -> list[Event]:
        return [e for e in self.events if e.type == type_]

    def wasm_actions(self) -> list[str]:
        return [e.get("action") for e in self.events if e.type == "wasm" and e.get("action") is not None]


class Chain:
    def __init__(self, *, tax_rate: Decimal | None = None, tax_caps: dict[str, int] | None = None):
        self.bank = Bank(tax_rate=tax_rate, tax_caps=tax_caps)
        self.contracts: dict[str, object] = {}
        self.block_height = 1
        self.block_time = 1_600_000_000

    def register(self, contract):
        if contract.address in self.contracts:
            raise ValueError(f"address already registered: {contract.address}")
        self.contracts[contract.address] = contract
        return contract

    def contract(self, address: str):
        try:
            return self.contracts[address]
        except KeyError:
            raise ExternalFailure(f"no contract at {address}") from None

    def env_for(self, address: str) -> Env:
        return Env(contract_address=address, block_height=self.block_height, block_time=self.block_time)

    def next_block(self, seconds: int = 6) -> None:
        self.block_height += 1
        self.block_time += seconds

    # --- Querier ---

    def query_wasm(self, contract_addr: str, msg: dict):
        return self.contract(contract_addr).query(self, self.env_for(contract_addr), msg)

    def query_tax_rate(self) -> Decimal:
        return self.bank.query_tax_rate()

    def query_tax_cap(self, denom: str) -> int:
        return self.bank.query_tax_cap(denom)

    def query_balance(self, address: str, denom: str) -> int:
        return self.bank.balance(address, denom)

    # --- actions ---

    def query(self, contract_addr: str, msg):
        return self.contract(contract_addr).query(self, self.env_for(contract_addr), msg)

    def instantiate(self, contract, sender: str, init_msg) -> Response:
        self.register(contract)
        return contract.instantiate(self, self.env_for(contract.address), sender, init_msg)

    def execute(self, sender: str, contract_addr: str, msg, funds: Sequence[Coin] = ()) -> ActionResult:
        saved_bank = copy.deepcopy(self.bank.__dict__)
        saved = {addr: copy.deepcopy(c.__dict__) for addr, c in self.contracts.items()}
        result = ActionResult()
        try:
            self._dispatch(sender, WasmExecute(contract_addr, msg, tuple(funds)), result.events, 0)
        except Exception as e:
            logger.warning("action %s from %s rolled back: %s", type(msg).__name__, sender, e)
            self.bank.__dict__.clear()
            self.bank.__dict__.update(saved_bank)
            for addr, state in saved.items():
                self.contracts[addr].__dict__.clear()
                self.contracts[addr].__dict__.update(state)
            raise
        self.next_block()
        return result

    def _dispatch(self, sender: str, message: Message, sink: list[Event], depth: int) -> None:
        if depth > MAX_DEPTH:
            raise ExternalFailure("message depth limit exceeded")

        if isinstance(message, SubMsg):
            sub_events: list[Event] = []
            self._dispatch(sender, message.msg, sub_events, depth + 1)
            sink.extend(sub_events)
            reply = self.contract(sender).reply(self, self.env_for(sender), message.reply_id, sub_events)
            self._apply(sender, reply, sink, depth)
        elif isinstance(message, BankSend):
            self.bank.send(sender, message.to_address, message.amount)
            amount = ",".join(str(c) for c in message.amount)
            sink.append(
                Event("transfer", (("sender", sender), ("recipient", message.to_address), ("amount", amount)))
            )
        elif isinstance(message, WasmExecute):
            target = self.contract(message.contract_addr)
            if message.funds:
                self.bank.send(sender, message.contract_addr, message.funds)
            env = self.env_for(message.contract_addr)
            response = target.execute(self, env, sender, message.msg, message.funds)
            self._apply(message.contract_addr, response, sink, depth)
        else:
            raise ExternalFailure(f"unsupported message: {message!r}")

    def _apply(self, contract_addr: str, response: Response, sink: list[Event], depth: int) -> None:
        if response.attributes:
            sink.append(Event("wasm", (("_contract_address", contract_addr), *response.attributes)))
        sink.extend(response.events)
        for message in response.messages:
            self._dispatch(contract_addr, message, sink, depth + 1)


__all__ = ["ActionResult", "Chain", "MAX_DEPTH"]
