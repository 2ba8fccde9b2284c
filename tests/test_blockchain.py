from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from web3.exceptions import TransactionNotFound

from conftest import POOL, VAULT
from vaults_client.blockchain import LocalAccountSigner, Web3Ledger, mapping_slot
from vaults_client.errors import LedgerCallFailed, SignatureDeclined, SubmissionFailed
from vaults_client.models import TxStatus

PRIVATE_KEY = "0x" + "11" * 32


def _ledger(**eth_methods) -> Web3Ledger:
    w3 = MagicMock()
    for name, mock in eth_methods.items():
        setattr(w3.eth, name, mock)
    return Web3Ledger(w3, {POOL: []})


def test_mapping_slot_is_deterministic_and_key_dependent():
    assert mapping_slot(VAULT, 7) == mapping_slot(VAULT.lower(), 7)
    assert mapping_slot(VAULT, 7) != mapping_slot(VAULT, 8)
    assert mapping_slot(VAULT, 7) != mapping_slot(POOL, 7)
    assert 0 <= mapping_slot(VAULT, 7) < 2**256


@pytest.mark.asyncio
async def test_poll_status():
    receipts = AsyncMock(side_effect=[TransactionNotFound("not yet"), {"status": 1}, {"status": 0}])
    ledger = _ledger(get_transaction_receipt=receipts)

    assert await ledger.poll_status("0xabc") is TxStatus.PENDING
    assert await ledger.poll_status("0xabc") is TxStatus.SUCCESS
    assert await ledger.poll_status("0xabc") is TxStatus.FAILURE


@pytest.mark.asyncio
async def test_zero_storage_slot_is_absent():
    storage = AsyncMock(side_effect=[b"\x00" * 32, (42).to_bytes(32, "big")])
    ledger = _ledger(get_storage_at=storage)

    assert await ledger.get_raw_storage_entry(POOL, 1) is None
    assert await ledger.get_raw_storage_entry(POOL, 1) == 42


@pytest.mark.asyncio
async def test_submit_normalizes_hash_and_wraps_rejections():
    ledger = _ledger(send_raw_transaction=AsyncMock(return_value=b"\xab" * 32))
    assert await ledger.submit(b"signed") == "0x" + "ab" * 32

    ledger = _ledger(send_raw_transaction=AsyncMock(side_effect=ValueError("nonce too low")))
    with pytest.raises(SubmissionFailed, match="nonce too low"):
        await ledger.submit(b"signed")


@pytest.mark.asyncio
async def test_unregistered_contract_fails():
    with pytest.raises(LedgerCallFailed, match="No ABI registered"):
        await _ledger().call(VAULT, "totalSupply")


@pytest.mark.asyncio
async def test_local_signer_signs_for_its_own_address():
    signer = LocalAccountSigner(PRIVATE_KEY)
    envelope = {
        "to": VAULT,
        "value": 0,
        "gas": 100_000,
        "gasPrice": 1_000_000_000,
        "nonce": 0,
        "chainId": 1,
        "data": "0x",
    }

    signed = await signer.sign(envelope, signer.address.lower())

    assert signer.address == Account.from_key(PRIVATE_KEY).address
    assert isinstance(signed, bytes)
    assert len(signed) > 0


@pytest.mark.asyncio
async def test_local_signer_declines_other_addresses():
    with pytest.raises(SignatureDeclined):
        await LocalAccountSigner(PRIVATE_KEY).sign({}, VAULT)


@pytest.mark.asyncio
async def test_receipt_transport_errors_are_ledger_failures():
    ledger = _ledger(get_transaction_receipt=AsyncMock(side_effect=TimeoutError("read timed out")))

    with pytest.raises(LedgerCallFailed, match="read timed out"):
        await ledger.poll_status("0xabc")
