"""Runtime configuration, resolved from explicit values with environment fallbacks."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from vaults_client.constants import (
    ASSET_DECIMALS,
    ASSET_TOKEN_MIN_ABI,
    BALANCE_REFRESH_INTERVAL_S,
    DEFAULT_REWARD_POSITION_SLOT,
    LENDING_POOL_MIN_ABI,
    METRICS_REFRESH_INTERVAL_S,
    REFERENCE_POOL_MIN_ABI,
    TX_POLL_INTERVAL_S,
    TX_TIMEOUT_S,
    VAULT_MIN_ABI,
)
from vaults_client.planner import RedemptionPolicy

# Config field -> environment variable used when the field is not given explicitly.
ENV_VARS = {
    "rpc_url": "ETH_RPC_URL",
    "vault_address": "VAULT_ADDRESS",
    "asset_address": "VAULT_ASSET_ADDRESS",
    "lending_pool_address": "LENDING_POOL_ADDRESS",
    "reference_pool_address": "REFERENCE_POOL_ADDRESS",
}
REQUIRED_FIELDS = ("rpc_url", "vault_address", "asset_address")
PRIVATE_KEY_ENV = "VAULT_PRIVATE_KEY"


@dataclass(frozen=True)
class VaultConfig:
    rpc_url: str
    vault_address: str
    asset_address: str
    # Optional: yield metrics are unavailable without them.
    lending_pool_address: str | None = None
    reference_pool_address: str | None = None
    asset_decimals: int = ASSET_DECIMALS
    asset_symbol: str = "USDC"
    asset_price: float = 1.0
    balance_refresh_s: float = BALANCE_REFRESH_INTERVAL_S
    metrics_refresh_s: float = METRICS_REFRESH_INTERVAL_S
    tx_poll_interval_s: float = TX_POLL_INTERVAL_S
    tx_timeout_s: float = TX_TIMEOUT_S
    reward_position_slot: int = DEFAULT_REWARD_POSITION_SLOT

    @property
    def has_metrics_sources(self) -> bool:
        return bool(self.lending_pool_address and self.reference_pool_address)

    @property
    def redemption_policy(self) -> RedemptionPolicy:
        return RedemptionPolicy.for_decimals(self.asset_decimals)

    def abis(self) -> dict[str, list[dict]]:
        """Contract address -> minimal ABI, for the web3 ledger."""
        out = {
            self.vault_address: VAULT_MIN_ABI,
            self.asset_address: ASSET_TOKEN_MIN_ABI,
        }
        if self.lending_pool_address:
            out[self.lending_pool_address] = LENDING_POOL_MIN_ABI
        if self.reference_pool_address:
            out[self.reference_pool_address] = REFERENCE_POOL_MIN_ABI
        return out


def load_config(overrides: Mapping[str, Any] | None = None, environ: Mapping[str, str] | None = None) -> VaultConfig:
    """
    Build a VaultConfig from explicit values (None means "not given") and the environment.

    Raises ValueError naming the environment variables of missing required settings.
    """
    overrides = overrides or {}
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(VaultConfig)}

    values: dict[str, Any] = {k: v for k, v in overrides.items() if k in known and v is not None}
    for name, env_name in ENV_VARS.items():
        if name not in values and environ.get(env_name):
            values[name] = environ[env_name]

    missing = [f"{name} ({ENV_VARS[name]})" for name in REQUIRED_FIELDS if not values.get(name)]
    if missing:
        raise ValueError(f"Missing required configuration: {', '.join(missing)}")
    if int(values.get("asset_decimals", ASSET_DECIMALS)) < 0:
        raise ValueError("asset_decimals must be >= 0")
    return VaultConfig(**values)
