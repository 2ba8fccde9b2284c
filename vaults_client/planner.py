"""Redemption and deposit planning.

Turns "withdraw X assets" into "redeem Y shares" such that the vault's own integer rounding
can neither silently pay out less than expected nor strand an unredeemable dust balance.
The planner is pure: it never talks to the ledger.
"""

from dataclasses import dataclass

from vaults_client.constants import ASSET_DECIMALS, MIN_PAYOUT_DECIMALS_BELOW_UNIT, NEAR_FULL_WITHDRAW_PERCENT
from vaults_client.errors import (
    InsufficientBalance,
    InsufficientLiquidity,
    InvalidAmount,
    RoundingUnsafe,
)
from vaults_client.formatters import mul_div
from vaults_client.models import DepositPlan, RedemptionPlan, RedemptionStrategy, VaultState
from vaults_client.oracle import shares_to_assets


@dataclass(frozen=True)
class RedemptionPolicy:
    """Thresholds of the redemption guard chain, in smallest asset units."""

    # Below this many total assets the share:asset ratio is too extreme for partial math.
    small_vault_threshold: int
    # Withdrawals of at least this share of the position redeem everything.
    near_full_percent: int
    # Minimum simulated payout of a partial redemption.
    min_payout: int

    @classmethod
    def for_decimals(cls, decimals: int = ASSET_DECIMALS) -> "RedemptionPolicy":
        """Default policy: 1 whole asset unit, 90%, 0.001 asset."""
        return cls(
            small_vault_threshold=10**decimals,
            near_full_percent=NEAR_FULL_WITHDRAW_PERCENT,
            min_payout=10 ** max(0, decimals - MIN_PAYOUT_DECIMALS_BELOW_UNIT),
        )


DEFAULT_POLICY = RedemptionPolicy.for_decimals()


def full_redemption(user_shares: int, state: VaultState) -> RedemptionPlan:
    """Plan redeeming the entire share balance."""
    return RedemptionPlan(
        shares_to_redeem=user_shares,
        expected_assets_out=shares_to_assets(user_shares, state),
        strategy=RedemptionStrategy.FULL,
    )


def plan_redemption(
    requested_assets: int,
    user_shares: int,
    state: VaultState,
    *,
    policy: RedemptionPolicy = DEFAULT_POLICY,
) -> RedemptionPlan:
    """
    Decide how many shares to redeem for `requested_assets`.

    Guards are evaluated in order and the first match wins:

    1. balance check against the position's asset value
    2. liquidity check against the vault's total assets
    3. small vault (total assets below one unit): redeem everything
    4. near-full withdrawal (>= 90% of the position): redeem everything
    5. partial: proportional share count, rejected as RoundingUnsafe if the simulated
       payout is dust
    """
    if requested_assets <= 0:
        raise InvalidAmount(f"withdrawal amount must be positive, got {requested_assets}")
    if user_shares <= 0:
        raise InsufficientBalance(requested_assets, 0)

    user_assets = shares_to_assets(user_shares, state)
    if requested_assets > user_assets:
        raise InsufficientBalance(requested_assets, user_assets)
    if requested_assets > state.total_assets:
        raise InsufficientLiquidity(requested_assets, state.total_assets)

    if state.total_assets < policy.small_vault_threshold:
        return full_redemption(user_shares, state)

    if requested_assets * 100 >= user_assets * policy.near_full_percent:
        return full_redemption(user_shares, state)

    shares_to_redeem = mul_div(requested_assets, user_shares, user_assets)
    simulated_payout = shares_to_assets(shares_to_redeem, state)
    if simulated_payout < policy.min_payout:
        raise RoundingUnsafe(requested_assets, simulated_payout, policy.min_payout)

    return RedemptionPlan(
        shares_to_redeem=shares_to_redeem,
        expected_assets_out=simulated_payout,
        strategy=RedemptionStrategy.PARTIAL,
    )


def plan_deposit(amount: int, wallet_balance: int, allowance: int) -> DepositPlan:
    """Validate a deposit against the wallet balance and flag whether an approval is needed first."""
    if amount <= 0:
        raise InvalidAmount(f"deposit amount must be positive, got {amount}")
    if amount > wallet_balance:
        raise InsufficientBalance(amount, wallet_balance)
    return DepositPlan(amount=amount, needs_approval=amount > allowance)
