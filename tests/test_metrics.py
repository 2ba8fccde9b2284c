import asyncio

import pytest

from conftest import ASSET, POOL, REFERENCE_POOL, VAULT
from vaults_client.blockchain import mapping_slot
from vaults_client.cache import MemoryCache
from vaults_client.errors import LedgerCallFailed
from vaults_client.metrics import (
    LendingPoolSource,
    YieldMetricsAggregator,
    aggregate,
    compound_daily,
    emissions_to_asset_rate,
    reference_price,
)
from vaults_client.models import RefreshStatus


def test_reference_price_of_balanced_80_20_pool():
    assert reference_price(1000, 4000) == pytest.approx(1.0)
    assert reference_price(2000, 4000) == pytest.approx(2.0)


@pytest.mark.parametrize(("asset_reserve", "reward_reserve"), [(0, 4000), (1000, 0), (-1, 5)])
def test_reference_price_of_empty_pool_is_zero(asset_reserve, reward_reserve):
    assert reference_price(asset_reserve, reward_reserve) == 0.0


def test_emissions_to_asset_rate():
    assert emissions_to_asset_rate(100, 1.0) == pytest.approx(100)
    assert emissions_to_asset_rate(0.05, 2.0) == pytest.approx(0.10)
    assert emissions_to_asset_rate(0.05, 0.0) == 0.0


def test_compound_daily():
    assert compound_daily(0.10) == pytest.approx(0.10516, abs=1e-5)
    assert compound_daily(0) == 0
    assert compound_daily(-0.5) == 0
    assert compound_daily(float("nan")) == 0


def test_aggregate_only_compounds_emissions():
    assert aggregate(0.03, 0.0) == pytest.approx(0.03)
    assert aggregate(0.03, 0.10) == pytest.approx(0.03 + 0.10516, abs=1e-5)


def _seed_pool(ledger, *, supply_apy=500_000, total_supply=20_000_000_000_000, emissions=1_000_000):
    # 7-decimal fixed point: 0.05 base rate, 0.1 reward tokens per asset per year.
    ledger.set(POOL, "getReserveData", (supply_apy, total_supply, emissions), [ASSET])
    ledger.set(POOL, "supplyBalanceOf", 12_345_000_000, [VAULT, ASSET])
    ledger.set(REFERENCE_POOL, "getReserves", (10_000_000_000, 40_000_000_000))


def _aggregator(ledger, **kwargs):
    source = LendingPoolSource(ledger, POOL, ASSET, REFERENCE_POOL)
    return YieldMetricsAggregator(source, VAULT, **kwargs)


@pytest.mark.asyncio
async def test_fetch_metrics(ledger):
    _seed_pool(ledger)
    ledger.storage[(POOL.lower(), mapping_slot(VAULT, 7))] = 4_200

    metrics = await _aggregator(ledger).fetch_metrics()

    assert metrics.base_rate == pytest.approx(0.05)
    assert metrics.emission_rate == pytest.approx(compound_daily(0.1))
    assert metrics.compounded_total == pytest.approx(0.05 + compound_daily(0.1))
    assert metrics.pool_tvl == pytest.approx(2_000_000.0)
    assert metrics.vault_tvl == pytest.approx(1_234.5)
    assert metrics.pending_rewards == 4_200


@pytest.mark.asyncio
async def test_missing_reward_position_is_zero(ledger):
    _seed_pool(ledger)

    metrics = await _aggregator(ledger).fetch_metrics()

    assert metrics.pending_rewards == 0


@pytest.mark.asyncio
async def test_reference_pool_is_skipped_without_emissions(ledger):
    _seed_pool(ledger, emissions=0)
    ledger.fail_methods.add("getReserves")

    metrics = await _aggregator(ledger).fetch_metrics()

    assert metrics.emission_rate == 0.0
    assert metrics.compounded_total == pytest.approx(0.05)


@pytest.mark.asyncio
async def test_vault_tvl_failure_degrades_to_zero(ledger):
    _seed_pool(ledger)
    ledger.fail_methods.add("supplyBalanceOf")

    metrics = await _aggregator(ledger).fetch_metrics()

    assert metrics.vault_tvl == 0.0
    assert metrics.base_rate == pytest.approx(0.05)


@pytest.mark.asyncio
async def test_reward_position_is_cached_within_the_window(ledger):
    _seed_pool(ledger)
    now = [0.0]
    aggregator = _aggregator(ledger, cache=MemoryCache(ttl_s=60, clock=lambda: now[0]))

    await aggregator.fetch_metrics()
    await aggregator.fetch_metrics()
    assert ledger.storage_reads == 1
    assert sum(1 for call in ledger.calls if call[1] == "getReserves") == 1

    now[0] = 61.0
    await aggregator.fetch_metrics()
    assert ledger.storage_reads == 2


@pytest.mark.asyncio
async def test_failed_refresh_keeps_last_metrics(ledger):
    _seed_pool(ledger)
    aggregator = _aggregator(ledger)

    first = await aggregator.refresh()
    assert first.status is RefreshStatus.IDLE
    assert first.metrics is not None

    ledger.fail_methods.add("getReserveData")
    failed = await aggregator.refresh()

    assert failed.status is RefreshStatus.ERROR
    assert failed.metrics == first.metrics
    assert "getReserveData" in failed.error


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_read(ledger):
    _seed_pool(ledger)
    ledger.call_delay = 0.01
    aggregator = _aggregator(ledger)

    first, second = await asyncio.gather(aggregator.refresh(), aggregator.refresh())

    assert first is second
    assert sum(1 for call in ledger.calls if call[1] == "getReserveData") == 1


@pytest.mark.asyncio
async def test_refresh_after_stop_does_not_commit(ledger):
    _seed_pool(ledger)
    aggregator = _aggregator(ledger)
    await aggregator.stop()

    state = await aggregator.refresh()

    assert state.metrics is None


@pytest.mark.asyncio
async def test_failed_reward_position_read_is_not_zero_pending(ledger):
    _seed_pool(ledger)
    ledger.storage[(POOL.lower(), mapping_slot(VAULT, 7))] = 4_200
    now = [0.0]
    aggregator = _aggregator(ledger, cache=MemoryCache(ttl_s=60, clock=lambda: now[0]))
    first = await aggregator.refresh()

    now[0] = 61.0
    ledger.fail_methods.add("storage")
    failed = await aggregator.refresh()

    assert failed.status is RefreshStatus.ERROR
    assert failed.metrics is first.metrics
    assert failed.metrics.pending_rewards == 4_200
    with pytest.raises(LedgerCallFailed):
        await aggregator.pending_rewards()


@pytest.mark.asyncio
async def test_malformed_reserve_data_sets_error_state(ledger):
    _seed_pool(ledger)
    ledger.set(POOL, "getReserveData", (500_000, 1), [ASSET])
    aggregator = _aggregator(ledger)

    state = await aggregator.refresh(show_spinner=True)

    assert state.status is RefreshStatus.ERROR
    assert not state.is_loading
    assert state.metrics is None
