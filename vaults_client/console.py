"""Console output formatting."""

import sys
from datetime import datetime, timezone

from vaults_client.config import VaultConfig
from vaults_client.constants import ETHERSCAN_BASE
from vaults_client.formatters import (
    format_address,
    format_amount,
    format_asset,
    format_percentage,
    format_tvl,
    format_with_thousands_separators,
)
from vaults_client.metrics import MetricsState
from vaults_client.models import ActionResult, RedemptionPlan, RedemptionStrategy, RefreshStatus, VaultState
from vaults_client.oracle import shares_to_assets
from vaults_client.reconciliation import ReconciliationState


def _ts(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def print_vault_state(state: VaultState, config: VaultConfig) -> None:
    """Print the vault's exchange rate snapshot."""
    block_label = f"{state.block_number}" if state.block_number is not None else "latest"
    print(f"🏦 Vault {format_address(config.vault_address)} (block {block_label})")
    print(f"   • Total assets: {format_asset(state.total_assets, symbol=config.asset_symbol, decimals=config.asset_decimals)}")
    print(f"   • Total shares: {format_with_thousands_separators(str(state.total_shares))}")
    one_unit = 10**config.asset_decimals
    if state.total_shares > 0:
        price = format_amount(shares_to_assets(one_unit, state), config.asset_decimals)
        print(f"   • Share price:  {price} {config.asset_symbol} per {one_unit} shares")
    else:
        print("   • Share price:  n/a (empty vault)")


def print_balances(state: ReconciliationState, config: VaultConfig) -> None:
    """Print the reconciled balances, keeping the last known good values on error."""
    snapshot = state.snapshot
    print("=" * 70)
    print("💰 BALANCES")
    if snapshot is None:
        print("   (no balances loaded yet)")
    else:
        print(f"   🕐 {_ts(snapshot.as_of)}  •  owner={format_address(snapshot.position.owner_address)}")
        print("=" * 70)

        def fmt(amount: int) -> str:
            return format_asset(amount, symbol=config.asset_symbol, decimals=config.asset_decimals)

        print(f"   • Wallet:    {fmt(snapshot.wallet_balance)}")
        print(f"   • In vault:  {fmt(snapshot.vault_balance)}  ({snapshot.position.shares} shares)")
        print(f"   • Allowance: {fmt(snapshot.allowance)}")
        print_vault_state(snapshot.vault_state, config)
    if state.status is RefreshStatus.ERROR:
        print(f"⚠️  Balance refresh failed (showing last known values): {state.error}", file=sys.stderr)


def print_metrics(state: MetricsState) -> None:
    """Print yield metrics."""
    metrics = state.metrics
    print("📈 YIELD")
    if metrics is not None:
        print(
            f"   • APY: {format_percentage(metrics.compounded_total)}  "
            f"(base {format_percentage(metrics.base_rate)} · rewards {format_percentage(metrics.emission_rate)})"
        )
        print(f"   • Vault TVL: {format_tvl(metrics.vault_tvl)}")
        print(f"   • Pool TVL:  {format_tvl(metrics.pool_tvl, compact=metrics.pool_tvl >= 1_000_000)}")
        print(f"   • Pending rewards: {metrics.pending_rewards} (reward token units)")
        print(f"   • Updated {_ts(metrics.as_of)}")
    else:
        print("   (no metrics loaded yet)")
    if state.status is RefreshStatus.ERROR:
        print(f"⚠️  Data refresh failed: {state.error}", file=sys.stderr)


def print_plan(plan: RedemptionPlan, config: VaultConfig) -> None:
    """Print a redemption plan."""
    label = "🧹 Full redemption" if plan.strategy is RedemptionStrategy.FULL else "✂️  Partial redemption"
    print(label)
    print(f"   • Shares to redeem: {plan.shares_to_redeem}")
    expected = format_asset(plan.expected_assets_out, symbol=config.asset_symbol, decimals=config.asset_decimals)
    print(f"   • Expected payout:  ~{expected}")


def print_action_result(result: ActionResult) -> None:
    """Print a settled action with its explorer link."""
    print(f"✅ {result.action.capitalize()} successful!")
    print(f"   View transaction: {ETHERSCAN_BASE}/tx/{result.tx_hash}")
