"""Mutating vault actions: approve, deposit, withdraw, compound.

Every action re-reads the ledger state it depends on, settles its transaction, and then awaits
a balance refresh before returning, so a reported success is never followed by stale balances.
Failures propagate unchanged; nothing is retried automatically.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from vaults_client.constants import TX_POLL_INTERVAL_S, TX_TIMEOUT_S
from vaults_client.errors import InsufficientAllowance, InsufficientBalance, InvalidAmount
from vaults_client.ledger import LedgerWriter, Signer, settle
from vaults_client.models import ActionResult, DepositPlan, RedemptionPlan, TxStatus
from vaults_client.oracle import ExchangeRateOracle
from vaults_client.planner import DEFAULT_POLICY, RedemptionPolicy, full_redemption, plan_deposit, plan_redemption
from vaults_client.reconciliation import BalanceReconciler

logger = logging.getLogger(__name__)


class VaultActions:
    """Action handler for one signer against one vault."""

    def __init__(
        self,
        writer: LedgerWriter,
        signer: Signer,
        oracle: ExchangeRateOracle,
        reconciler: BalanceReconciler,
        *,
        policy: RedemptionPolicy = DEFAULT_POLICY,
        poll_interval_s: float = TX_POLL_INTERVAL_S,
        timeout_s: float = TX_TIMEOUT_S,
        on_poll: Callable[[TxStatus], None] | None = None,
    ) -> None:
        self.writer = writer
        self.signer = signer
        self.oracle = oracle
        self.reconciler = reconciler
        self.policy = policy
        self.poll_interval_s = poll_interval_s
        self.timeout_s = timeout_s
        self.on_poll = on_poll

    @property
    def owner(self) -> str:
        return self.signer.address

    async def _settle(self, contract_id: str, method: str, args: Sequence[Any]) -> str:
        return await settle(
            self.writer,
            self.signer,
            contract_id,
            method,
            args,
            poll_interval_s=self.poll_interval_s,
            timeout_s=self.timeout_s,
            on_poll=self.on_poll,
        )

    async def _finish(self, action: str, tx_hash: str, plan: RedemptionPlan | DepositPlan | None) -> ActionResult:
        logger.info("%s settled in %s, refreshing balances", action, tx_hash)
        await self.reconciler.refresh(queue=True)
        return ActionResult(action=action, tx_hash=tx_hash, plan=plan)

    async def approve(self, amount: int) -> ActionResult:
        """Allow the vault to spend `amount` of the owner's asset."""
        if amount <= 0:
            raise InvalidAmount(f"approval amount must be positive, got {amount}")
        tx_hash = await self._settle(self.oracle.asset_address, "approve", [self.oracle.vault_address, amount])
        return await self._finish("approve", tx_hash, None)

    async def deposit(self, amount: int) -> ActionResult:
        """Deposit `amount` assets; the allowance must already cover it."""
        wallet_balance, allowance = await asyncio.gather(
            self.oracle.read_wallet_balance(self.owner),
            self.oracle.read_allowance(self.owner),
        )
        plan = plan_deposit(amount, wallet_balance, allowance)
        if plan.needs_approval:
            raise InsufficientAllowance(amount, allowance)
        tx_hash = await self._settle(self.oracle.vault_address, "deposit", [plan.amount, self.owner])
        return await self._finish("deposit", tx_hash, plan)

    async def plan_withdrawal(self, amount: int) -> RedemptionPlan:
        """Plan a withdrawal against freshly read position and vault state, without submitting."""
        position, state = await self.oracle.read_position_and_state(self.owner)
        return plan_redemption(amount, position.shares, state, policy=self.policy)

    async def _redeem(self, action: str, plan: RedemptionPlan) -> ActionResult:
        logger.info(
            "Redeeming %d shares (%s, expected %d assets)",
            plan.shares_to_redeem,
            plan.strategy.value,
            plan.expected_assets_out,
        )
        tx_hash = await self._settle(
            self.oracle.vault_address, "redeem", [plan.shares_to_redeem, self.owner, self.owner]
        )
        return await self._finish(action, tx_hash, plan)

    async def withdraw(self, amount: int) -> ActionResult:
        """Withdraw `amount` assets through the redemption guard chain."""
        plan = await self.plan_withdrawal(amount)
        return await self._redeem("withdraw", plan)

    async def withdraw_all(self) -> ActionResult:
        """Redeem the owner's entire share balance."""
        position, state = await self.oracle.read_position_and_state(self.owner)
        if position.shares <= 0:
            raise InsufficientBalance(0, 0)
        return await self._redeem("withdraw", full_redemption(position.shares, state))

    async def compound(self) -> ActionResult:
        """Harvest the vault's reward emissions back into the lending position."""
        tx_hash = await self._settle(self.oracle.vault_address, "compound", [self.owner])
        return await self._finish("compound", tx_hash, None)
