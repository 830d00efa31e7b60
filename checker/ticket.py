"""
Linear tickets.

A ticket carries an issuer, an amount and an opaque content. Unlike ordinary
Python values a ticket cannot be reused: once consumed (or split) any further
read fails. Splitting is the only way to obtain two tickets from one, and the
amounts of the halves must add up to the original amount.
"""

from typing import Any, Tuple

from checker.errors import InvalidTicket, TicketAlreadyConsumed


class Ticket:
    __slots__ = ("_issuer", "_amount", "_content", "_consumed")

    def __init__(self, issuer: str, amount: int, content: Any):
        if amount < 0:
            raise InvalidTicket(f"Negative ticket amount: {amount}")
        self._issuer = issuer
        self._amount = amount
        self._content = content
        self._consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    def read(self) -> Tuple[str, int, Any]:
        """Return (issuer, amount, content) without consuming the ticket."""
        if self._consumed:
            raise TicketAlreadyConsumed()
        return self._issuer, self._amount, self._content

    def consume(self) -> None:
        if self._consumed:
            raise TicketAlreadyConsumed()
        self._consumed = True

    def split(self, amount_a: int, amount_b: int) -> Tuple["Ticket", "Ticket"]:
        issuer, amount, content = self.read()
        if amount_a < 0 or amount_b < 0 or amount_a + amount_b != amount:
            raise InvalidTicket(f"Cannot split a ticket of {amount} into {amount_a} and {amount_b}")
        self.consume()
        return Ticket(issuer, amount_a, content), Ticket(issuer, amount_b, content)

    def __repr__(self):
        state = "consumed" if self._consumed else "live"
        return f"Ticket(issuer={self._issuer!r}, amount={self._amount}, content={self._content!r}, {state})"
