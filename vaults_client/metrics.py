"""Yield metrics: base supply rate, reward emissions and compounding.

Rates are decimals (0.05 == 5%) and floats: they are display figures and never feed back
into fund-affecting arithmetic.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, replace

from vaults_client.blockchain import mapping_slot
from vaults_client.cache import MemoryCache, cache_key
from vaults_client.constants import (
    ASSET_DECIMALS,
    DAYS_PER_YEAR,
    DEFAULT_REWARD_POSITION_SLOT,
    METRICS_REFRESH_INTERVAL_S,
    RATE_DECIMALS,
    REFERENCE_ASSET_WEIGHT,
    REFERENCE_POOL_DECIMALS,
    REFERENCE_REWARD_WEIGHT,
)
from vaults_client.errors import VaultClientError
from vaults_client.formatters import as_int, to_float
from vaults_client.ledger import LedgerReader
from vaults_client.models import ReferenceReserves, RefreshStatus, ReserveSnapshot, YieldMetrics
from vaults_client.scheduler import PeriodicRefresher

logger = logging.getLogger(__name__)


def reference_price(asset_reserve: float, reward_reserve: float) -> float:
    """
    Asset per reward token implied by an 80/20 weighted pool.

    price = (asset_reserve / 0.2) / (reward_reserve / 0.8)
    """
    if reward_reserve <= 0 or asset_reserve <= 0:
        return 0.0
    return (asset_reserve / REFERENCE_ASSET_WEIGHT) / (reward_reserve / REFERENCE_REWARD_WEIGHT)


def emissions_to_asset_rate(
    emissions_per_asset_per_year: float, reward_token_price_in_asset: float, asset_price: float = 1.0
) -> float:
    """Convert reward tokens emitted per supplied asset per year into a decimal rate in asset terms."""
    if reward_token_price_in_asset <= 0 or asset_price <= 0:
        return 0.0
    return emissions_per_asset_per_year * reward_token_price_in_asset / asset_price


def compound_daily(apr: float) -> float:
    """(1 + apr/365)^365 - 1; 0 for non-positive input."""
    if not math.isfinite(apr) or apr <= 0:
        return 0.0
    return (1 + apr / DAYS_PER_YEAR) ** DAYS_PER_YEAR - 1


def aggregate(base_rate: float, emission_rate: float) -> float:
    """Total displayed rate. Only the emission component is compounded: the base rate already is."""
    return base_rate + compound_daily(emission_rate)


class LendingPoolSource:
    """Reads the lending pool, its reward-accrual storage and the price-reference pool."""

    def __init__(
        self,
        ledger: LedgerReader,
        pool_address: str,
        asset_address: str,
        reference_pool_address: str,
        *,
        reward_position_slot: int = DEFAULT_REWARD_POSITION_SLOT,
        rate_decimals: int = RATE_DECIMALS,
    ) -> None:
        self.ledger = ledger
        self.pool_address = pool_address
        self.asset_address = asset_address
        self.reference_pool_address = reference_pool_address
        self.reward_position_slot = reward_position_slot
        self.rate_decimals = rate_decimals

    async def read_reserve(self) -> ReserveSnapshot:
        supply_apy, total_supply, emissions = await self.ledger.call(
            self.pool_address, "getReserveData", [self.asset_address]
        )
        return ReserveSnapshot(
            base_rate=to_float(as_int(supply_apy), self.rate_decimals),
            emissions_per_asset_per_year=to_float(as_int(emissions), self.rate_decimals),
            total_supply=as_int(total_supply),
        )

    async def read_supply_balance(self, account: str) -> int:
        return as_int(await self.ledger.call(self.pool_address, "supplyBalanceOf", [account, self.asset_address]))

    async def read_reference_reserves(self) -> ReferenceReserves:
        asset_reserve, reward_reserve = await self.ledger.call(self.reference_pool_address, "getReserves")
        return ReferenceReserves(asset_reserve=as_int(asset_reserve), reward_reserve=as_int(reward_reserve))

    async def read_reward_position(self, account: str) -> int | None:
        """Accrued, unclaimed reward tokens of `account`; None when it has no reward position."""
        key = mapping_slot(account, self.reward_position_slot)
        return await self.ledger.get_raw_storage_entry(self.pool_address, key)


@dataclass(frozen=True)
class MetricsState:
    """Last known good metrics plus the outcome of the latest refresh."""

    status: RefreshStatus = RefreshStatus.IDLE
    metrics: YieldMetrics | None = None
    error: str | None = None
    is_loading: bool = False


class YieldMetricsAggregator(PeriodicRefresher):
    """
    Builds YieldMetrics for one vault every `interval_s` seconds.

    The reward-accrual position and reference-pool reserves are cached for one refresh
    window, so repeated fetches inside a window do not re-read them.
    """

    def __init__(
        self,
        source: LendingPoolSource,
        vault_address: str,
        *,
        asset_decimals: int = ASSET_DECIMALS,
        reference_decimals: int = REFERENCE_POOL_DECIMALS,
        asset_price: float = 1.0,
        interval_s: float = METRICS_REFRESH_INTERVAL_S,
        cache: MemoryCache | None = None,
    ) -> None:
        super().__init__(interval_s, name="yield-metrics")
        self.source = source
        self.vault_address = vault_address
        self.asset_decimals = asset_decimals
        self.reference_decimals = reference_decimals
        self.asset_price = asset_price
        self._cache = cache if cache is not None else MemoryCache(ttl_s=interval_s)
        self._state = MetricsState()
        self._inflight: asyncio.Task | None = None

    @property
    def state(self) -> MetricsState:
        return self._state

    @property
    def metrics(self) -> YieldMetrics | None:
        return self._state.metrics

    async def pending_rewards(self) -> int:
        """Vault's accrued reward tokens; a missing position is an empty one."""
        key = cache_key("reward_position", self.source.pool_address, self.vault_address.lower())
        cached = self._cache.get_cached(key)
        if cached is not None:
            return cached
        position = await self.source.read_reward_position(self.vault_address)
        if position is None:
            logger.debug("No reward position for %s, treating pending rewards as 0", self.vault_address)
        pending = position or 0
        self._cache.set_cached(key, pending)
        return pending

    async def _reference_reserves(self) -> ReferenceReserves:
        key = cache_key("reference_reserves", self.source.reference_pool_address)
        cached = self._cache.get_cached(key)
        if cached is not None:
            return cached
        reserves = await self.source.read_reference_reserves()
        self._cache.set_cached(key, reserves)
        return reserves

    async def _vault_tvl(self) -> float:
        # Degraded display: a failed read shows 0 rather than failing the whole refresh.
        try:
            supplied = await self.source.read_supply_balance(self.vault_address)
        except VaultClientError as ex:
            logger.warning("Failed to load vault TVL from lending pool: %s", ex)
            return 0.0
        return to_float(supplied, self.asset_decimals)

    async def fetch_metrics(self) -> YieldMetrics:
        """Read every source and build a fresh YieldMetrics."""
        reserve = await self.source.read_reserve()

        emission_rate = 0.0
        if reserve.emissions_per_asset_per_year > 0:
            reserves = await self._reference_reserves()
            price = reference_price(
                to_float(reserves.asset_reserve, self.reference_decimals),
                to_float(reserves.reward_reserve, self.reference_decimals),
            )
            emission_rate = emissions_to_asset_rate(reserve.emissions_per_asset_per_year, price, self.asset_price)

        vault_tvl = await self._vault_tvl()
        pending = await self.pending_rewards()

        return YieldMetrics(
            base_rate=reserve.base_rate,
            # Emission component as displayed, i.e. after daily compounding.
            emission_rate=compound_daily(emission_rate),
            compounded_total=aggregate(reserve.base_rate, emission_rate),
            pool_tvl=to_float(reserve.total_supply, self.asset_decimals),
            vault_tvl=vault_tvl,
            pending_rewards=pending,
            as_of=time.time(),
        )

    async def tick(self, first: bool) -> None:
        await self.refresh(show_spinner=first)

    async def refresh(self, show_spinner: bool = False) -> MetricsState:
        """Rebuild metrics, sharing a refresh that is already in flight."""
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            return await asyncio.shield(inflight)
        task = asyncio.create_task(self._refresh_once(show_spinner))
        self._inflight = task
        return await asyncio.shield(task)

    async def _refresh_once(self, show_spinner: bool) -> MetricsState:
        self._state = replace(
            self._state,
            status=RefreshStatus.REFRESHING,
            is_loading=show_spinner,
            error=None if show_spinner else self._state.error,
        )
        try:
            metrics = await self.fetch_metrics()
        except VaultClientError as ex:
            logger.warning("Yield metrics refresh failed: %s", ex)
            return self._fail(ex)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.exception("Unexpected error refreshing yield metrics")
            return self._fail(ex)

        if self.is_torn_down:
            return self._state
        self._state = MetricsState(status=RefreshStatus.IDLE, metrics=metrics)
        return self._state

    def _fail(self, ex: Exception) -> MetricsState:
        if self.is_torn_down:
            return self._state
        self._state = MetricsState(
            status=RefreshStatus.ERROR,
            metrics=self._state.metrics,
            error=str(ex) or type(ex).__name__,
            is_loading=False,
        )
        return self._state
