"""web3.py-backed ledger and local-key signer."""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from eth_abi import encode
from eth_account import Account
from web3 import Web3
from web3.exceptions import TransactionNotFound

from vaults_client.constants import DEFAULT_RPC_TIMEOUT
from vaults_client.errors import LedgerCallFailed, SignatureDeclined, SubmissionFailed
from vaults_client.formatters import normalize_hex_str
from vaults_client.models import TxStatus

if TYPE_CHECKING:
    from web3 import AsyncWeb3  # pragma: no cover


def connect(rpc_url: str, *, timeout_s: int = DEFAULT_RPC_TIMEOUT) -> "AsyncWeb3":
    """Create an async web3 client for an HTTP RPC endpoint."""
    from web3 import AsyncWeb3  # pylint: disable=import-outside-toplevel

    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout_s}))


def mapping_slot(key_address: str, base_slot: int) -> int:
    """Storage slot of `mapping(address => ...)` entry `key_address` declared at `base_slot`."""
    digest = Web3.keccak(encode(["address", "uint256"], [Web3.to_checksum_address(key_address), base_slot]))
    return int.from_bytes(digest, "big")


class Web3Ledger:
    """
    LedgerReader/LedgerWriter over an AsyncWeb3 client.

    Contracts are addressed by address; each address must be registered with its (minimal) ABI.
    """

    def __init__(self, w3: "AsyncWeb3", abis: dict[str, list[dict]]) -> None:
        self.w3 = w3
        self._abis = {address.lower(): abi for address, abi in abis.items()}
        self._contracts: dict[str, Any] = {}

    def _contract(self, contract_id: str) -> Any:
        key = contract_id.lower()
        contract = self._contracts.get(key)
        if contract is None:
            abi = self._abis.get(key)
            if abi is None:
                raise LedgerCallFailed(f"No ABI registered for contract {contract_id}")
            contract = self.w3.eth.contract(address=Web3.to_checksum_address(contract_id), abi=abi)
            self._contracts[key] = contract
        return contract

    def _function(self, contract_id: str, method: str, args: Sequence[Any]) -> Any:
        contract = self._contract(contract_id)
        try:
            return getattr(contract.functions, method)(*args)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise LedgerCallFailed(f"Cannot encode {method} on {contract_id}: {ex}") from ex

    async def call(
        self, contract_id: str, method: str, args: Sequence[Any] = (), *, block_identifier: int | str = "latest"
    ) -> Any:
        fn = self._function(contract_id, method, args)
        try:
            return await fn.call(block_identifier=block_identifier)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise LedgerCallFailed(f"{method} failed on {contract_id}: {ex}") from ex

    async def get_raw_storage_entry(self, contract_id: str, key: int) -> int | None:
        # EVM storage has no notion of absence: an all-zero slot is reported as absent.
        try:
            raw = await self.w3.eth.get_storage_at(Web3.to_checksum_address(contract_id), key)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise LedgerCallFailed(f"Storage read failed on {contract_id}: {ex}") from ex
        value = int.from_bytes(bytes(raw), "big")
        return value or None

    async def block_number(self) -> int:
        try:
            return int(await self.w3.eth.block_number)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise LedgerCallFailed(f"Failed to read block number: {ex}") from ex

    async def build_transaction(self, contract_id: str, method: str, args: Sequence[Any], *, sender: str) -> dict:
        fn = self._function(contract_id, method, args)
        sender_addr = Web3.to_checksum_address(sender)
        try:
            nonce = await self.w3.eth.get_transaction_count(sender_addr, "pending")
            # web3 fills chainId, gas and fee fields; gas estimation simulates the call.
            return dict(await fn.build_transaction({"from": sender_addr, "nonce": nonce}))
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise LedgerCallFailed(f"Simulation of {method} failed: {ex}") from ex

    async def submit(self, signed: bytes) -> str:
        try:
            tx_hash = await self.w3.eth.send_raw_transaction(signed)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise SubmissionFailed(f"Transaction rejected by the node: {ex}") from ex
        return normalize_hex_str(tx_hash)

    async def poll_status(self, tx_hash: str) -> TxStatus:
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return TxStatus.PENDING
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise LedgerCallFailed(f"Receipt lookup failed for {tx_hash}: {ex}") from ex
        return TxStatus.SUCCESS if int(receipt["status"]) == 1 else TxStatus.FAILURE


class LocalAccountSigner:
    """Signs envelopes with a locally held private key."""

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign(self, envelope: dict, signer_address: str) -> bytes:
        if signer_address.lower() != self._account.address.lower():
            raise SignatureDeclined(f"Signer {self._account.address} cannot sign for {signer_address}")
        try:
            signed = self._account.sign_transaction(envelope)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise SignatureDeclined(f"Signing failed: {ex}") from ex
        return bytes(signed.raw_transaction)
