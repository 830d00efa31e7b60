"""
Execution and call contexts handed to every entry point.

`Tezos` describes the block being executed (time, level and the contract's
own address); `Call` describes the external call (who sent it and how much
tez was attached).
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Tezos:
    now: int  # seconds since epoch
    level: int  # block height
    self_address: str = "checker"

    def advance(self, seconds: int, blocks: int = 1) -> "Tezos":
        """Return the context of a later block."""
        return replace(self, now=self.now + seconds, level=self.level + blocks)


@dataclass(frozen=True)
class Call:
    sender: str
    amount: int = 0  # attached tez, in mutez


@dataclass(frozen=True)
class TezPayment:
    destination: str
    amount: int  # mutez
