"""CLI and main logic."""

import argparse
import asyncio
import logging
import os
import sys

from tqdm import tqdm

from vaults_client.config import PRIVATE_KEY_ENV, VaultConfig, load_config
from vaults_client.console import print_action_result, print_balances, print_metrics, print_plan
from vaults_client.errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InsufficientLiquidity,
    InvalidAmount,
    LedgerCallFailed,
    RoundingUnsafe,
    VaultClientError,
)
from vaults_client.formatters import format_asset, parse_amount
from vaults_client.models import RedemptionPlan, TxStatus
from vaults_client.oracle import ExchangeRateOracle
from vaults_client.reconciliation import BalanceReconciler

# Exit codes
EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_CONFIG = 2

SIGNING_COMMANDS = {"approve", "deposit", "withdraw", "compound"}


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Deposit into, track and safely withdraw from a yield vault.")
    p.add_argument(
        "--rpc-url",
        default=None,
        help="RPC URL. Required if ETH_RPC_URL environment variable is not set.",
    )
    p.add_argument("--vault", dest="vault_address", default=None, help="Vault address (env: VAULT_ADDRESS).")
    p.add_argument(
        "--asset", dest="asset_address", default=None, help="Vault asset token address (env: VAULT_ASSET_ADDRESS)."
    )
    p.add_argument(
        "--lending-pool",
        dest="lending_pool_address",
        default=None,
        help="Lending pool address for yield metrics (env: LENDING_POOL_ADDRESS).",
    )
    p.add_argument(
        "--reference-pool",
        dest="reference_pool_address",
        default=None,
        help="80/20 reward-token price reference pool (env: REFERENCE_POOL_ADDRESS).",
    )
    p.add_argument("--decimals", dest="asset_decimals", type=int, default=None, help="Asset decimals. Default: 7.")
    p.add_argument("--symbol", dest="asset_symbol", default=None, help="Asset symbol for display. Default: USDC.")
    p.add_argument(
        "--owner",
        default=None,
        help=f"Address to inspect. Defaults to the account of {PRIVATE_KEY_ENV}.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show balances, vault state and yield metrics.")
    plan = sub.add_parser("plan-withdraw", help="Show how a withdrawal would be redeemed, without submitting.")
    plan.add_argument("amount", help="Asset amount, e.g. 12.5")
    approve = sub.add_parser("approve", help="Allow the vault to spend AMOUNT of the asset.")
    approve.add_argument("amount")
    deposit = sub.add_parser("deposit", help="Deposit AMOUNT into the vault.")
    deposit.add_argument("amount")
    withdraw = sub.add_parser("withdraw", help="Withdraw AMOUNT (or 'max') from the vault.")
    withdraw.add_argument("amount")
    sub.add_parser("compound", help="Compound the vault's pending reward emissions.")
    sub.add_parser("watch", help="Keep balances and metrics refreshing until interrupted.")
    return p.parse_args(argv)


def _rejection_message(ex: VaultClientError, config: VaultConfig) -> str:
    def fmt(amount: int) -> str:
        return format_asset(amount, symbol=config.asset_symbol, decimals=config.asset_decimals)

    if isinstance(ex, InsufficientBalance):
        return f"Cannot withdraw {fmt(ex.requested)}. You only have {fmt(ex.available)}."
    if isinstance(ex, InsufficientLiquidity):
        return f"Vault only has {fmt(ex.total_assets)} total. Cannot withdraw {fmt(ex.requested)}."
    if isinstance(ex, InsufficientAllowance):
        return f"Insufficient allowance ({fmt(ex.allowance)}). Please approve first."
    if isinstance(ex, RoundingUnsafe):
        return (
            f"Cannot withdraw this amount due to rounding (would get {fmt(ex.simulated_payout)}). "
            "Please withdraw everything using 'withdraw max'."
        )
    return str(ex)


async def _run_command(args: argparse.Namespace, config: VaultConfig) -> int:
    from vaults_client.blockchain import LocalAccountSigner, Web3Ledger, connect

    w3 = connect(config.rpc_url)
    if not await w3.is_connected():
        print(f"Error: failed to connect to RPC at {config.rpc_url}", file=sys.stderr)
        return EXIT_CONFIG

    private_key = os.getenv(PRIVATE_KEY_ENV)
    signer = LocalAccountSigner(private_key) if private_key else None
    if args.command in SIGNING_COMMANDS and signer is None:
        print(f"Error: {PRIVATE_KEY_ENV} must be set to sign transactions.", file=sys.stderr)
        return EXIT_CONFIG
    owner = args.owner or (signer.address if signer else None)
    if owner is None:
        print(f"Error: provide --owner or set {PRIVATE_KEY_ENV}.", file=sys.stderr)
        return EXIT_CONFIG

    ledger = Web3Ledger(w3, config.abis())
    oracle = ExchangeRateOracle(ledger, config.vault_address, config.asset_address)
    reconciler = BalanceReconciler(oracle, owner, interval_s=config.balance_refresh_s)
    aggregator = _build_aggregator(ledger, config)

    if args.command == "status":
        print_balances(await reconciler.refresh(show_spinner=True), config)
        if aggregator is not None:
            print_metrics(await aggregator.refresh(show_spinner=True))
        return EXIT_OK

    if args.command == "watch":
        return await _watch(reconciler, aggregator, config)

    if args.command == "plan-withdraw":
        from vaults_client.planner import plan_redemption

        amount = parse_amount(args.amount, config.asset_decimals)
        position, state = await oracle.read_position_and_state(owner)
        print_plan(plan_redemption(amount, position.shares, state, policy=config.redemption_policy), config)
        return EXIT_OK

    from vaults_client.actions import VaultActions

    with tqdm(desc="⏳ Awaiting confirmation", unit="poll", file=sys.stderr, leave=False) as pbar:

        def on_poll(status: TxStatus) -> None:
            pbar.set_postfix(status=status.value)
            pbar.update(1)

        actions = VaultActions(
            ledger,
            signer,
            oracle,
            reconciler,
            policy=config.redemption_policy,
            poll_interval_s=config.tx_poll_interval_s,
            timeout_s=config.tx_timeout_s,
            on_poll=on_poll,
        )
        if args.command == "compound":
            result = await actions.compound()
        elif args.command == "withdraw" and args.amount.strip().lower() == "max":
            result = await actions.withdraw_all()
        else:
            amount = parse_amount(args.amount, config.asset_decimals)
            if args.command == "approve":
                result = await actions.approve(amount)
            elif args.command == "deposit":
                result = await actions.deposit(amount)
            else:
                result = await actions.withdraw(amount)

    if isinstance(result.plan, RedemptionPlan):
        print_plan(result.plan, config)
    print_action_result(result)
    print_balances(reconciler.state, config)
    return EXIT_OK


def _build_aggregator(ledger, config: VaultConfig):
    if not config.has_metrics_sources:
        return None
    from vaults_client.metrics import LendingPoolSource, YieldMetricsAggregator

    source = LendingPoolSource(
        ledger,
        config.lending_pool_address,
        config.asset_address,
        config.reference_pool_address,
        reward_position_slot=config.reward_position_slot,
    )
    return YieldMetricsAggregator(
        source,
        config.vault_address,
        asset_decimals=config.asset_decimals,
        asset_price=config.asset_price,
        interval_s=config.metrics_refresh_s,
    )


async def _watch(reconciler: BalanceReconciler, aggregator, config: VaultConfig) -> int:
    reconciler.subscribe(lambda state: state.is_loading or print_balances(state, config))
    await reconciler.start()
    if aggregator is None:
        print("ℹ️  Lending and reference pool addresses not set, yield metrics disabled.", file=sys.stderr)
    else:
        await aggregator.start()
    try:
        while True:
            if aggregator is not None:
                # Joins the refresh the loop just started, or reads the last committed metrics.
                print_metrics(await aggregator.refresh() if aggregator.metrics is None else aggregator.state)
            await asyncio.sleep(config.metrics_refresh_s)
    finally:
        await reconciler.stop()
        if aggregator is not None:
            await aggregator.stop()
    return EXIT_OK


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        import web3  # noqa: F401  # pylint: disable=unused-import
    except ImportError as ex:  # pragma: no cover
        print("Missing dependency. Run: pip install -e .", file=sys.stderr)
        raise SystemExit(2) from ex

    try:
        config = load_config(vars(args))
    except ValueError as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return EXIT_CONFIG

    try:
        return asyncio.run(_run_command(args, config))
    except InvalidAmount as ex:
        print(f"❌ Please enter a valid amount: {ex}", file=sys.stderr)
        return EXIT_REJECTED
    except LedgerCallFailed as ex:
        print(f"❌ Ledger unavailable: {ex}", file=sys.stderr)
        return EXIT_CONFIG
    except VaultClientError as ex:
        print(f"❌ {_rejection_message(ex, config)}", file=sys.stderr)
        return EXIT_REJECTED
    except KeyboardInterrupt:
        print("\nℹ️  Stopped.", file=sys.stderr)
        return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
