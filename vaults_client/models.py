"""Data models for the vault client."""

from dataclasses import dataclass
from enum import Enum


class RedemptionStrategy(str, Enum):
    """How a withdrawal is redeemed."""

    FULL = "full"
    PARTIAL = "partial"


class TxStatus(str, Enum):
    """Ledger-side status of a submitted transaction."""

    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class RefreshStatus(str, Enum):
    """Lifecycle of a refresh loop."""

    IDLE = "idle"
    REFRESHING = "refreshing"
    ERROR = "error"


@dataclass(frozen=True)
class VaultState:
    """The two scalars defining the share price, read from a single ledger snapshot."""

    total_shares: int
    total_assets: int
    # Block both values were read at; None when the ledger cannot pin reads.
    block_number: int | None = None
    as_of: float = 0.0


@dataclass(frozen=True)
class SharePosition:
    """Cached copy of a user's vault share balance."""

    shares: int
    owner_address: str
    as_of: float = 0.0


@dataclass(frozen=True)
class RedemptionPlan:
    """How many shares to redeem for a requested withdrawal."""

    shares_to_redeem: int
    expected_assets_out: int
    strategy: RedemptionStrategy


@dataclass(frozen=True)
class DepositPlan:
    """A validated deposit request."""

    amount: int
    needs_approval: bool


@dataclass(frozen=True)
class BalanceSnapshot:
    """Wallet, vault and allowance balances committed together by one refresh."""

    wallet_balance: int
    position: SharePosition
    # Share position converted to assets at the snapshot's exchange rate.
    vault_balance: int
    allowance: int
    vault_state: VaultState
    as_of: float


@dataclass(frozen=True)
class ReserveSnapshot:
    """Lending-pool reserve data for the vault's asset."""

    # Decimal rates (0.05 == 5%).
    base_rate: float
    emissions_per_asset_per_year: float
    total_supply: int


@dataclass(frozen=True)
class ReferenceReserves:
    """Balances of the 80/20 reward-token / asset price-reference pool."""

    asset_reserve: int
    reward_reserve: int


@dataclass(frozen=True)
class YieldMetrics:
    """Displayable yield figures, rebuilt wholesale on every refresh."""

    # Decimal rates (0.05 == 5%).
    base_rate: float
    emission_rate: float
    compounded_total: float
    # TVLs in whole asset units (cosmetic).
    pool_tvl: float
    vault_tvl: float
    # Reward tokens accrued by the vault and not yet compounded, in reward-token smallest units.
    pending_rewards: int
    as_of: float


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a settled mutating action."""

    action: str
    tx_hash: str
    plan: RedemptionPlan | DepositPlan | None = None
