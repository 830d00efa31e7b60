"""
Executable model of the Checker protocol: burrows, liquidation auctions,
the tez/kit market maker and the delegation auction, all driven through the
entry points in `checker.checker`.
"""
