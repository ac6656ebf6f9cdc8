"""
fxvault - Fixed-Term Collateral Vault

Users deposit a volatile base asset, mint a synthetic dollar against it under
a loan-to-value ceiling, and repay, roll over or get liquidated by maturity.

Usage:
    from fxvault import create_in_memory_vault, WAD, DAY

    d = create_in_memory_vault(price=300_00000000)       # $300, 8-decimal feed
    d.bnb.fund("alice", 10 * WAD)

    pid = d.vault.open("alice", mint_amount=180 * WAD, duration=7 * DAY,
                       collateral_in=1 * WAD)
    d.vault.health_factor(pid)                            # 1.333... * WAD

    d.busd.approve("alice", "vault", 180 * WAD)
    d.vault.repay("alice", pid)                           # returns 1 * WAD
"""

# Core types
from .core import (
    Clock,
    Position,
    PositionStatus,
    VaultConfig,
    PriceSource,
    TokenLedger,
    CollateralAsset,
    Snapshottable,
    EMPTY_POSITION,
    WAD,
    WAD_DECIMALS,
    MAX_UINT256,
    HOUR,
    DAY,
    SECONDS_PER_YEAR,
    DEFAULT_MAX_LTV,
    DEFAULT_LIQUIDATION_THRESHOLD,
    DEFAULT_LIQUIDATION_BONUS,
    DEFAULT_ROLLOVER_RATE_APR,
    DEFAULT_MIN_DURATION,
    DEFAULT_MAX_DURATION,
    DEFAULT_PRICE_TIMEOUT,
    to_wad,
    from_wad,
    # Exceptions
    VaultError,
    InvalidInput,
    DurationExceedsMax,
    PositionExpired,
    PositionNotOpen,
    NotOwner,
    InsufficientCollateral,
    InsufficientFee,
    PositionHealthy,
    InvalidPrice,
    StaleData,
    TransferFailed,
    ReentrantCall,
    Unauthorized,
)

# Pricing
from .pricing_source import (
    RoundData,
    PriceNormalizer,
    StaticPriceFeed,
    TimeSeriesPriceFeed,
    normalize_price,
)

# Valuation
from .valuation import (
    CollateralValuator,
    LiquidationSplit,
    calculate_collateral_value,
    calculate_debt_in_base,
    calculate_health_factor,
    calculate_rollover_fee,
    calculate_liquidation_split,
    within_max_ltv,
)

# Positions and events
from .positions import PositionLedger
from .events import EventKind, VaultEvent, replay_events

# Assets
from .assets import SyntheticDollar, BoundToken, NativeAsset, Custody

# Vault
from .vault import VaultEngine, VaultDeployment, create_in_memory_vault
from .keeper import LiquidationKeeper

__all__ = [
    # Core
    'Clock', 'Position', 'PositionStatus', 'VaultConfig',
    'PriceSource', 'TokenLedger', 'CollateralAsset', 'Snapshottable',
    'EMPTY_POSITION', 'WAD', 'WAD_DECIMALS', 'MAX_UINT256',
    'HOUR', 'DAY', 'SECONDS_PER_YEAR',
    'DEFAULT_MAX_LTV', 'DEFAULT_LIQUIDATION_THRESHOLD', 'DEFAULT_LIQUIDATION_BONUS',
    'DEFAULT_ROLLOVER_RATE_APR', 'DEFAULT_MIN_DURATION', 'DEFAULT_MAX_DURATION',
    'DEFAULT_PRICE_TIMEOUT',
    'to_wad', 'from_wad',
    # Exceptions
    'VaultError', 'InvalidInput', 'DurationExceedsMax', 'PositionExpired',
    'PositionNotOpen', 'NotOwner', 'InsufficientCollateral', 'InsufficientFee',
    'PositionHealthy', 'InvalidPrice', 'StaleData', 'TransferFailed',
    'ReentrantCall', 'Unauthorized',
    # Pricing
    'RoundData', 'PriceNormalizer', 'StaticPriceFeed', 'TimeSeriesPriceFeed',
    'normalize_price',
    # Valuation
    'CollateralValuator', 'LiquidationSplit',
    'calculate_collateral_value', 'calculate_debt_in_base', 'calculate_health_factor',
    'calculate_rollover_fee', 'calculate_liquidation_split', 'within_max_ltv',
    # Positions and events
    'PositionLedger', 'EventKind', 'VaultEvent', 'replay_events',
    # Assets
    'SyntheticDollar', 'BoundToken', 'NativeAsset', 'Custody',
    # Vault
    'VaultEngine', 'VaultDeployment', 'create_in_memory_vault', 'LiquidationKeeper',
]

__version__ = '0.1.0'
