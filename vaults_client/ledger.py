"""Collaborator interfaces for the external ledger, and transaction settlement.

The core never talks to a network directly: every component receives a ledger object
implementing these protocols (see `vaults_client.blockchain.Web3Ledger` for the web3 one,
and the fake ledger in the tests).
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from vaults_client.constants import TX_POLL_INTERVAL_S, TX_TIMEOUT_S
from vaults_client.errors import LedgerCallFailed, SubmissionFailed
from vaults_client.models import TxStatus

logger = logging.getLogger(__name__)


class LedgerReader(Protocol):
    """Read access to contract state."""

    async def call(
        self, contract_id: str, method: str, args: Sequence[Any] = (), *, block_identifier: int | str = "latest"
    ) -> Any:
        """Invoke a read-only contract method and return its decoded result."""

    async def get_raw_storage_entry(self, contract_id: str, key: int) -> int | None:
        """Read a raw storage entry; None when the entry does not exist."""

    async def block_number(self) -> int:
        """Latest block number, used to pin multi-field reads to one snapshot."""


class LedgerWriter(Protocol):
    """Transaction build / submit / status access."""

    async def build_transaction(self, contract_id: str, method: str, args: Sequence[Any], *, sender: str) -> dict:
        """Build an unsigned transaction envelope."""

    async def submit(self, signed: bytes) -> str:
        """Broadcast a signed envelope and return its transaction hash."""

    async def poll_status(self, tx_hash: str) -> TxStatus:
        """Current status of a submitted transaction."""


class Signer(Protocol):
    """Wallet signer."""

    @property
    def address(self) -> str:
        """Address the signer signs for."""

    async def sign(self, envelope: dict, signer_address: str) -> bytes:
        """Sign an unsigned envelope, raising SignatureDeclined on refusal."""


async def wait_for_terminal_status(
    writer: LedgerWriter,
    tx_hash: str,
    *,
    poll_interval_s: float = TX_POLL_INTERVAL_S,
    timeout_s: float = TX_TIMEOUT_S,
    on_poll: Callable[[TxStatus], None] | None = None,
) -> TxStatus:
    """
    Poll a transaction until it succeeds or fails.

    Raises SubmissionFailed, carrying the hash, on timeout or when polling itself fails.
    """
    deadline = time.monotonic() + timeout_s
    while True:
        try:
            status = await writer.poll_status(tx_hash)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            # The transaction is already broadcast: keep its hash so the caller can look it up.
            raise SubmissionFailed(f"lost track of transaction {tx_hash}: {ex}", tx_hash) from ex
        if on_poll is not None:
            on_poll(status)
        if status is not TxStatus.PENDING:
            return status
        if time.monotonic() >= deadline:
            raise SubmissionFailed(f"transaction {tx_hash} still pending after {timeout_s:.0f}s", tx_hash)
        await asyncio.sleep(poll_interval_s)


async def settle(
    writer: LedgerWriter,
    signer: Signer,
    contract_id: str,
    method: str,
    args: Sequence[Any],
    *,
    poll_interval_s: float = TX_POLL_INTERVAL_S,
    timeout_s: float = TX_TIMEOUT_S,
    on_poll: Callable[[TxStatus], None] | None = None,
) -> str:
    """
    Build, sign, submit and await one transaction.

    Returns the transaction hash once the ledger reports success. Build failures raise
    LedgerCallFailed, signing refusals SignatureDeclined, anything else SubmissionFailed.
    """
    sender = signer.address
    try:
        envelope = await writer.build_transaction(contract_id, method, args, sender=sender)
    except LedgerCallFailed:
        raise
    except Exception as ex:  # pylint: disable=broad-exception-caught
        raise LedgerCallFailed(f"failed to build {method} transaction: {ex}") from ex

    signed = await signer.sign(envelope, sender)

    try:
        tx_hash = await writer.submit(signed)
    except SubmissionFailed:
        raise
    except Exception as ex:  # pylint: disable=broad-exception-caught
        raise SubmissionFailed(f"failed to submit {method} transaction: {ex}") from ex

    logger.info("Submitted %s transaction %s", method, tx_hash)
    status = await wait_for_terminal_status(
        writer, tx_hash, poll_interval_s=poll_interval_s, timeout_s=timeout_s, on_poll=on_poll
    )
    if status is not TxStatus.SUCCESS:
        raise SubmissionFailed(f"{method} transaction {tx_hash} failed on-chain", tx_hash)
    return tx_hash
