"""Constants and configuration for the vault client."""

# Minimal ABI for the ERC-4626 vault - only the functions the client needs.
# `compound(operator)` is the vault's reward-harvest extension (claim, swap, resupply).
VAULT_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "totalSupply",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "totalAssets",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "deposit",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "assets", "type": "uint256"},
            {"name": "receiver", "type": "address"},
        ],
        "outputs": [{"name": "shares", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "redeem",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "shares", "type": "uint256"},
            {"name": "receiver", "type": "address"},
            {"name": "owner", "type": "address"},
        ],
        "outputs": [{"name": "assets", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "compound",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "operator", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# Minimal ABI for the vault's underlying asset token (ERC-20).
ASSET_TOKEN_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "allowance",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "approve",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

# Minimal ABI for the lending pool the vault supplies into.
# Rates are fixed-point with RATE_DECIMALS decimals.
LENDING_POOL_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "getReserveData",
        "stateMutability": "view",
        "inputs": [{"name": "asset", "type": "address"}],
        "outputs": [
            {"name": "supplyApy", "type": "uint256"},  # 0
            {"name": "totalSupply", "type": "uint256"},  # 1
            {"name": "emissionsPerYearPerToken", "type": "uint256"},  # 2
        ],
    },
    {
        "type": "function",
        "name": "supplyBalanceOf",
        "stateMutability": "view",
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "asset", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# Minimal ABI for the 80/20 weighted reward-token / asset pool used as a price reference.
REFERENCE_POOL_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "getReserves",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "assetReserve", "type": "uint256"},
            {"name": "rewardReserve", "type": "uint256"},
        ],
    },
]

# Stellar USDC (the original deployment target) uses 7 decimals.
ASSET_DECIMALS = 7
RATE_DECIMALS = 7
REFERENCE_POOL_DECIMALS = 7

# Weights of the reference pool (reward token 80%, asset 20%).
REFERENCE_ASSET_WEIGHT = 0.2
REFERENCE_REWARD_WEIGHT = 0.8

# Redemption guards.
NEAR_FULL_WITHDRAW_PERCENT = 90
# Minimum simulated payout of a partial redemption, expressed as a decimal exponent
# below one whole asset unit (10**(decimals - 3) == 0.001 asset).
MIN_PAYOUT_DECIMALS_BELOW_UNIT = 3

DAYS_PER_YEAR = 365

# Refresh cadence.
BALANCE_REFRESH_INTERVAL_S = 30.0
METRICS_REFRESH_INTERVAL_S = 60.0

# Transaction settlement.
TX_POLL_INTERVAL_S = 1.0
TX_TIMEOUT_S = 180.0

# An inconsistent (totalAssets == 0, totalShares > 0) snapshot is re-read this many times.
STATE_READ_ATTEMPTS = 3

# Storage slot of the lending pool's per-account accrued-emissions mapping.
DEFAULT_REWARD_POSITION_SLOT = 7

DEFAULT_RPC_TIMEOUT = 30

# Explorer URLs
ETHERSCAN_BASE = "https://etherscan.io"
