"""
Protocol constants for the Checker model.

All tez amounts are expressed in mutez and all kit amounts in mukit. Ratios
are exact fractions so that the accounting never picks up float error.
"""

from fractions import Fraction

# Token denominations
TEZ_SCALING_FACTOR = 1_000_000
KIT_SCALING_FACTOR = 1_000_000

# Burrows
CREATION_DEPOSIT = 1_000_000  # 1 tez, paid out to the liquidator
FMINTING = Fraction(21, 10)  # collateral ratio required to mint
FLIQUIDATION = Fraction(19, 10)  # collateral ratio below which a burrow is liquidated
LIQUIDATION_REWARD_PERCENTAGE = Fraction(1, 1000)  # 0.1% of collateral
LIQUIDATION_PENALTY = Fraction(1, 10)  # burned from warranted liquidations

# Burrowing fees and imbalance adjustment
SECONDS_IN_A_YEAR = 31_556_952
BURROW_FEE_PERCENTAGE = Fraction(5, 1000)  # 0.5% per year
IMBALANCE_SCALING_FACTOR = Fraction(3, 4)
IMBALANCE_LIMIT = Fraction(5, 100)

# Protected index: how fast it may follow the oracle, per second
PROTECTED_INDEX_EPSILON = Fraction(5, 10_000)

# Drift acceleration bands on log(target)
TARGET_LOW_BRACKET = Fraction(5, 1000)
TARGET_HIGH_BRACKET = Fraction(5, 100)
LOW_ACCELERATION = Fraction(1, 100) / (SECONDS_IN_A_YEAR * SECONDS_IN_A_YEAR)
HIGH_ACCELERATION = Fraction(5, 100) / (SECONDS_IN_A_YEAR * SECONDS_IN_A_YEAR)

# Market maker
UNISWAP_FEE = Fraction(2, 1000)  # 0.2%

# Touch reward: kit per second, in two brackets
TOUCH_REWARD_LOW_BRACKET = 600  # seconds
TOUCH_LOW_REWARD = Fraction(1, 600)
TOUCH_HIGH_REWARD = Fraction(1, 60)

# Liquidation auctions
MAX_LOT_SIZE = 10_000 * TEZ_SCALING_FACTOR
MIN_LOT_AUCTION_QUEUE_FRACTION = Fraction(5, 100)
AUCTION_DECAY_RATE = Fraction(1, 6000)  # per second, descending phase
MAX_BID_INTERVAL_IN_SECONDS = 1200
MAX_BID_INTERVAL_IN_BLOCKS = 20
MAX_LIQUIDATION_QUEUE_HEIGHT = 12
NUMBER_OF_SLICES_TO_PROCESS = 5

# Delegation auction
BLOCKS_PER_CYCLE = 4096
