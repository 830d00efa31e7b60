"""
Unit tests for linear tickets and permission rights.
"""

import unittest
import sys
import os

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from checker.errors import CapabilityError, InvalidTicket, TicketAlreadyConsumed
from checker.permission import (
    ADMIN,
    UserRights,
    does_right_allow_kit_burning,
    does_right_allow_kit_minting,
    does_right_allow_setting_delegate,
    does_right_allow_tez_deposits,
    does_right_allow_tez_withdrawals,
    is_admin_right,
)
from checker.ticket import Ticket


class TestTicket(unittest.TestCase):
    def test_read_does_not_consume(self):
        ticket = Ticket("checker", 0, "content")
        self.assertEqual(ticket.read(), ("checker", 0, "content"))
        self.assertEqual(ticket.read(), ("checker", 0, "content"))
        self.assertFalse(ticket.consumed)

    def test_consume_once(self):
        """A consumed ticket can neither be read nor consumed again"""
        ticket = Ticket("checker", 0, "content")
        ticket.consume()
        self.assertTrue(ticket.consumed)
        with self.assertRaises(TicketAlreadyConsumed):
            ticket.read()
        with self.assertRaises(TicketAlreadyConsumed):
            ticket.consume()

    def test_split(self):
        """Splitting consumes the original and conserves the amount"""
        ticket = Ticket("checker", 5, "content")
        a, b = ticket.split(2, 3)
        self.assertTrue(ticket.consumed)
        self.assertEqual(a.read(), ("checker", 2, "content"))
        self.assertEqual(b.read(), ("checker", 3, "content"))

    def test_split_must_conserve_amount(self):
        ticket = Ticket("checker", 1, "content")
        with self.assertRaises(InvalidTicket):
            ticket.split(1, 1)
        with self.assertRaises(InvalidTicket):
            ticket.split(2, -1)
        self.assertFalse(ticket.consumed)

    def test_negative_amount(self):
        with self.assertRaises(InvalidTicket):
            Ticket("checker", -1, None)

    def test_errors_are_capability_errors(self):
        self.assertTrue(issubclass(TicketAlreadyConsumed, CapabilityError))
        self.assertTrue(issubclass(InvalidTicket, ValueError))


class TestPermission(unittest.TestCase):
    def test_admin_allows_everything(self):
        for allows in (
            is_admin_right,
            does_right_allow_tez_deposits,
            does_right_allow_tez_withdrawals,
            does_right_allow_kit_minting,
            does_right_allow_kit_burning,
            does_right_allow_setting_delegate,
        ):
            self.assertTrue(allows(ADMIN))

    def test_user_rights(self):
        rights = UserRights(deposit_tez=True, burn_kit=True)
        self.assertFalse(is_admin_right(rights))
        self.assertTrue(does_right_allow_tez_deposits(rights))
        self.assertTrue(does_right_allow_kit_burning(rights))
        self.assertFalse(does_right_allow_tez_withdrawals(rights))
        self.assertFalse(does_right_allow_kit_minting(rights))
        self.assertFalse(does_right_allow_setting_delegate(rights))


if __name__ == '__main__':
    unittest.main()
