"""Exchange-rate reads and share <-> asset conversion."""

import asyncio
import logging
import time

from vaults_client.constants import STATE_READ_ATTEMPTS
from vaults_client.errors import DivisionUndefined
from vaults_client.formatters import as_int, mul_div
from vaults_client.ledger import LedgerReader
from vaults_client.models import SharePosition, VaultState

logger = logging.getLogger(__name__)


def shares_to_assets(shares: int, state: VaultState) -> int:
    """floor(shares * totalAssets / totalShares); 0 for an empty vault."""
    if shares <= 0 or state.total_shares == 0:
        return 0
    return mul_div(shares, state.total_assets, state.total_shares)


def assets_to_shares(assets: int, state: VaultState) -> int:
    """
    floor(assets * totalShares / totalAssets).

    Raises DivisionUndefined when shares are outstanding but the vault reports no assets,
    which signals an inconsistent snapshot rather than a real exchange rate.
    """
    if state.total_assets == 0:
        if state.total_shares > 0:
            raise DivisionUndefined(f"totalAssets is 0 with {state.total_shares} shares outstanding")
        return 0
    if assets <= 0:
        return 0
    return mul_div(assets, state.total_shares, state.total_assets)


def is_consistent(state: VaultState) -> bool:
    """A snapshot is usable unless it reports outstanding shares backed by zero assets."""
    return not (state.total_assets == 0 and state.total_shares > 0)


async def read_vault_state(
    ledger: LedgerReader, vault_address: str, *, block_identifier: int | None = None
) -> VaultState:
    """
    Read totalSupply and totalAssets as one snapshot.

    Both reads are pinned to the same block, so the exchange rate cannot move between them.
    """
    if block_identifier is None:
        block_identifier = await ledger.block_number()
    total_shares, total_assets = await asyncio.gather(
        ledger.call(vault_address, "totalSupply", block_identifier=block_identifier),
        ledger.call(vault_address, "totalAssets", block_identifier=block_identifier),
    )
    return VaultState(
        total_shares=as_int(total_shares),
        total_assets=as_int(total_assets),
        block_number=block_identifier,
        as_of=time.time(),
    )


class ExchangeRateOracle:
    """Vault and asset-token reads for one vault, with snapshot validation."""

    def __init__(
        self,
        ledger: LedgerReader,
        vault_address: str,
        asset_address: str,
        *,
        attempts: int = STATE_READ_ATTEMPTS,
    ) -> None:
        if attempts <= 0:
            raise ValueError("attempts must be > 0")
        self.ledger = ledger
        self.vault_address = vault_address
        self.asset_address = asset_address
        self.attempts = attempts

    async def read_vault_state(self, *, block_identifier: int | None = None) -> VaultState:
        """Read a consistent VaultState, re-reading an inconsistent snapshot up to `attempts` times."""
        state = None
        for attempt in range(1, self.attempts + 1):
            state = await read_vault_state(self.ledger, self.vault_address, block_identifier=block_identifier)
            if is_consistent(state):
                return state
            logger.warning(
                "Inconsistent vault snapshot at block %s (totalShares=%d, totalAssets=0), attempt %d/%d",
                state.block_number,
                state.total_shares,
                attempt,
                self.attempts,
            )
            # A pinned block never changes; re-read at the latest one instead.
            block_identifier = None
        assert state is not None
        raise DivisionUndefined(
            f"vault {self.vault_address} reported {state.total_shares} shares with 0 assets "
            f"after {self.attempts} reads"
        )

    async def read_share_position(self, owner: str, *, block_identifier: int | str = "latest") -> SharePosition:
        shares = await self.ledger.call(self.vault_address, "balanceOf", [owner], block_identifier=block_identifier)
        return SharePosition(shares=as_int(shares), owner_address=owner, as_of=time.time())

    async def read_position_and_state(self, owner: str) -> tuple[SharePosition, VaultState]:
        """
        Share position and vault state from the same block.

        An inconsistent snapshot is re-read with both values at a fresh block, up to `attempts` times.
        """
        state = None
        for attempt in range(1, self.attempts + 1):
            block = await self.ledger.block_number()
            position, state = await asyncio.gather(
                self.read_share_position(owner, block_identifier=block),
                read_vault_state(self.ledger, self.vault_address, block_identifier=block),
            )
            if is_consistent(state):
                return position, state
            logger.warning(
                "Inconsistent vault snapshot at block %s for %s, attempt %d/%d", block, owner, attempt, self.attempts
            )
        assert state is not None
        raise DivisionUndefined(
            f"vault {self.vault_address} reported {state.total_shares} shares with 0 assets "
            f"after {self.attempts} reads"
        )

    async def read_wallet_balance(self, owner: str) -> int:
        return as_int(await self.ledger.call(self.asset_address, "balanceOf", [owner]))

    async def read_allowance(self, owner: str) -> int:
        """Asset allowance granted by `owner` to the vault."""
        return as_int(await self.ledger.call(self.asset_address, "allowance", [owner, self.vault_address]))

    async def max_withdraw(self, owner: str) -> int:
        """Asset value of the owner's entire share balance."""
        position, state = await self.read_position_and_state(owner)
        return shares_to_assets(position.shares, state)
