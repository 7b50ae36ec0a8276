from __future__ import annotations

"""
The host model the engine is written against.

The engine never calls a collaborator directly. Handlers return a `Response` holding
messages; the host delivers them in order and, for an observed message (`SubMsg`),
hands the collaborator's events back to the engine's reply entry point before the
next message runs. Reads go through a `Querier`, which always sees current state.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from levfarm.numeric import Decimal


@dataclass(frozen=True)
class Coin:
    denom: str
    amount: int

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


@dataclass(frozen=True)
class Env:
    contract_address: str
    block_height: int = 0
    block_time: int = 0


class Querier(Protocol):
    def query_wasm(self, contract_addr: str, msg: dict) -> Any: ...

    def query_tax_rate(self) -> Decimal: ...

    def query_tax_cap(self, denom: str) -> int: ...

    def query_balance(self, address: str, denom: str) -> int: ...


@dataclass
class Deps:
    storage: Any
    querier: Querier


@dataclass(frozen=True)
class WasmExecute:
    contract_addr: str
    msg: Any
    funds: tuple[Coin, ...] = ()


@dataclass(frozen=True)
class BankSend:
    to_address: str
    amount: tuple[Coin, ...]


@dataclass(frozen=True)
class SubMsg:
    """A message whose result the engine observes through `reply(reply_id, events)`."""

    msg: WasmExecute | BankSend
    reply_id: int


Message = WasmExecute | BankSend | SubMsg


@dataclass(frozen=True)
class Event:
    type: str
    attributes: tuple[tuple[str, str], ...] = ()

    def get(self, key: str) -> str | None:
        for k, v in self.attributes:
            if k == key:
                return v
        return None

    def has(self, key: str, value: str) -> bool:
        return any(k == key and v == value for k, v in self.attributes)


def make_event(type_: str, **attrs: object) -> Event:
    return Event(type_, tuple((k, str(v)) for k, v in attrs.items()))


@dataclass
class Response:
    messages: list[Message] = field(default_factory=list)
    attributes: list[tuple[str, str]] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)

    def add_message(self, msg: Message) -> Response:
        self.messages.append(msg)
        return self

    def add_messages(self, msgs) -> Response:
        self.messages.extend(msgs)
        return self

    def add_attribute(self, key: str, value: object) -> Response:
        self.attributes.append((key, str(value)))
        return self

    def add_event(self, event: Event) -> Response:
        self.events.append(event)
        return self

    def attribute(self, key: str) -> str | None:
        for k, v in self.attributes:
            if k == key:
                return v
        return None


__all__ = [
    "Coin",
    "Env",
    "Querier",
    "Deps",
    "WasmExecute",
    "BankSend",
    "SubMsg",
    "Message",
    "Event",
    "make_event",
    "Response",
]
