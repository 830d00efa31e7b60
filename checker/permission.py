"""
Permission rights for burrow tickets.

A permission is either the admin right, which implies every other right, or
a set of user rights. The ticket content is the triple
(rights, burrow_id, permission_version).
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class AdminRights:
    pass


@dataclass(frozen=True)
class UserRights:
    deposit_tez: bool = False
    withdraw_tez: bool = False
    mint_kit: bool = False
    burn_kit: bool = False
    set_delegate: bool = False


ADMIN = AdminRights()

Rights = Union[AdminRights, UserRights]


def is_admin_right(rights: Rights) -> bool:
    return isinstance(rights, AdminRights)


def does_right_allow_tez_deposits(rights: Rights) -> bool:
    return is_admin_right(rights) or rights.deposit_tez


def does_right_allow_tez_withdrawals(rights: Rights) -> bool:
    return is_admin_right(rights) or rights.withdraw_tez


def does_right_allow_kit_minting(rights: Rights) -> bool:
    return is_admin_right(rights) or rights.mint_kit


def does_right_allow_kit_burning(rights: Rights) -> bool:
    return is_admin_right(rights) or rights.burn_kit


def does_right_allow_setting_delegate(rights: Rights) -> bool:
    return is_admin_right(rights) or rights.set_delegate


@dataclass(frozen=True)
class PermissionContent:
    """What a permission ticket carries."""
    rights: Rights
    burrow_id: int
    version: int
