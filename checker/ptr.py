"""Opaque pointers used for burrow ids and AVL arena nodes."""

from typing import NewType

Ptr = NewType("Ptr", int)

PTR_NULL = Ptr(0)


def ptr_init() -> Ptr:
    return Ptr(1)


def ptr_next(ptr: Ptr) -> Ptr:
    return Ptr(ptr + 1)
