"""Balance reconciliation loop: wallet balance, vault position and allowance."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from vaults_client.constants import BALANCE_REFRESH_INTERVAL_S
from vaults_client.errors import VaultClientError
from vaults_client.models import BalanceSnapshot, RefreshStatus
from vaults_client.oracle import ExchangeRateOracle, shares_to_assets
from vaults_client.scheduler import PeriodicRefresher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationState:
    """What subscribers see: the last known good snapshot plus the outcome of the latest refresh."""

    status: RefreshStatus = RefreshStatus.IDLE
    snapshot: BalanceSnapshot | None = None
    error: str | None = None
    is_loading: bool = False


class BalanceReconciler(PeriodicRefresher):
    """
    Periodically re-reads the owner's balances and republishes them to subscribers.

    At most one refresh is in flight: concurrent `refresh()` calls share it, and
    `refresh(queue=True)` waits for it and then reads again (used after mutating actions).
    A failed refresh keeps the previous snapshot and only flags the error.
    """

    def __init__(
        self,
        oracle: ExchangeRateOracle,
        owner: str,
        *,
        interval_s: float = BALANCE_REFRESH_INTERVAL_S,
    ) -> None:
        super().__init__(interval_s, name="balance-reconciler")
        self.oracle = oracle
        self.owner = owner
        self._state = ReconciliationState()
        self._inflight: asyncio.Task | None = None
        self._subscribers: list[Callable[[ReconciliationState], None]] = []

    @property
    def state(self) -> ReconciliationState:
        return self._state

    @property
    def snapshot(self) -> BalanceSnapshot | None:
        return self._state.snapshot

    def subscribe(self, callback: Callable[[ReconciliationState], None]) -> Callable[[], None]:
        """Register a callback for published states; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def tick(self, first: bool) -> None:
        await self.refresh(show_spinner=first)

    async def refresh(self, show_spinner: bool = False, *, queue: bool = False) -> ReconciliationState:
        """
        Refresh balances, coalescing with any refresh already in flight.

        With `queue=True` the in-flight refresh (which may predate the caller's last ledger
        write) is awaited first and a new read is performed after it.
        """
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if not queue:
                return await asyncio.shield(inflight)
            await asyncio.shield(inflight)
            # Another queued caller may already have started a read after ours became due.
            if self._inflight is not inflight and self._inflight is not None and not self._inflight.done():
                return await asyncio.shield(self._inflight)

        task = asyncio.create_task(self._refresh_once(show_spinner))
        self._inflight = task
        return await asyncio.shield(task)

    async def _refresh_once(self, show_spinner: bool) -> ReconciliationState:
        self._state = replace(self._state, status=RefreshStatus.REFRESHING, is_loading=show_spinner)
        if show_spinner:
            self._publish(replace(self._state, error=None))

        try:
            wallet_balance, (position, vault_state), allowance = await asyncio.gather(
                self.oracle.read_wallet_balance(self.owner),
                self.oracle.read_position_and_state(self.owner),
                self.oracle.read_allowance(self.owner),
            )
        except VaultClientError as ex:
            logger.warning("Balance refresh failed for %s: %s", self.owner, ex)
            return self._fail(ex)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.exception("Unexpected error refreshing balances for %s", self.owner)
            return self._fail(ex)

        if self.is_torn_down:
            logger.debug("Discarding balance refresh for %s after teardown", self.owner)
            return self._state

        snapshot = BalanceSnapshot(
            wallet_balance=wallet_balance,
            position=position,
            vault_balance=shares_to_assets(position.shares, vault_state),
            allowance=allowance,
            vault_state=vault_state,
            as_of=time.time(),
        )
        refreshed = ReconciliationState(status=RefreshStatus.IDLE, snapshot=snapshot)
        self._publish(refreshed)
        return refreshed

    def _fail(self, ex: Exception) -> ReconciliationState:
        """Publish the error, keeping the last known good snapshot."""
        if self.is_torn_down:
            return self._state
        failed = ReconciliationState(
            status=RefreshStatus.ERROR,
            snapshot=self._state.snapshot,
            error=str(ex) or type(ex).__name__,
            is_loading=False,
        )
        self._publish(failed)
        return failed

    def _publish(self, state: ReconciliationState) -> None:
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Balance subscriber %r failed", callback)
