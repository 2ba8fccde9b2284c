import pytest

from conftest import VAULT
from vaults_client.errors import LedgerCallFailed, SubmissionFailed
from vaults_client.ledger import settle, wait_for_terminal_status
from vaults_client.models import TxStatus


@pytest.mark.asyncio
async def test_settle_polls_until_success(ledger, signer):
    ledger.statuses = [TxStatus.PENDING, TxStatus.PENDING, TxStatus.SUCCESS]
    seen = []

    tx_hash = await settle(ledger, signer, VAULT, "compound", [signer.address], poll_interval_s=0, on_poll=seen.append)

    assert tx_hash == f"0x{1:064x}"
    assert seen == [TxStatus.PENDING, TxStatus.PENDING, TxStatus.SUCCESS]
    assert len(signer.signed) == 1


@pytest.mark.asyncio
async def test_settle_wraps_build_failures(ledger, signer):
    ledger.fail_build = True

    with pytest.raises(LedgerCallFailed):
        await settle(ledger, signer, VAULT, "compound", [])
    assert signer.signed == []


@pytest.mark.asyncio
async def test_settle_wraps_submit_failures(ledger, signer):
    ledger.fail_submit = True

    with pytest.raises(SubmissionFailed) as exc_info:
        await settle(ledger, signer, VAULT, "compound", [])
    assert exc_info.value.tx_hash is None


@pytest.mark.asyncio
async def test_settle_raises_on_failed_status(ledger, signer):
    ledger.statuses = [TxStatus.FAILURE]

    with pytest.raises(SubmissionFailed) as exc_info:
        await settle(ledger, signer, VAULT, "compound", [], poll_interval_s=0)
    assert exc_info.value.tx_hash == f"0x{1:064x}"


@pytest.mark.asyncio
async def test_wait_times_out_while_pending(ledger):
    ledger.statuses = [TxStatus.PENDING]

    with pytest.raises(SubmissionFailed, match="still pending"):
        await wait_for_terminal_status(ledger, "0xabc", poll_interval_s=0.001, timeout_s=0.01)
    assert ledger.polls > 1


@pytest.mark.asyncio
async def test_polling_failure_keeps_the_transaction_hash(ledger, signer):
    async def dropped(_tx_hash):
        raise ConnectionError("rpc dropped")

    ledger.poll_status = dropped

    with pytest.raises(SubmissionFailed, match="rpc dropped") as exc_info:
        await settle(ledger, signer, VAULT, "compound", [], poll_interval_s=0)
    assert exc_info.value.tx_hash == f"0x{1:064x}"
