import asyncio
from collections.abc import Sequence
from typing import Any

import pytest

from vaults_client.errors import LedgerCallFailed, SignatureDeclined
from vaults_client.models import TxStatus

VAULT = "0x1111111111111111111111111111111111111111"
ASSET = "0x2222222222222222222222222222222222222222"
POOL = "0x3333333333333333333333333333333333333333"
REFERENCE_POOL = "0x4444444444444444444444444444444444444444"
OWNER = "0x5555555555555555555555555555555555555555"


class FakeLedger:
    """
    In-memory ledger implementing the reader and writer protocols.

    Read results are keyed by (contract, method, args). A value may be a callable taking
    the block identifier, to model state that changes between blocks.
    """

    def __init__(self) -> None:
        self.results: dict[tuple, Any] = {}
        self.storage: dict[tuple[str, int], int] = {}
        self.block = 100
        self.calls: list[tuple] = []
        self.storage_reads = 0
        self.fail_methods: set[str] = set()
        self.call_delay = 0.0
        self.statuses: list[TxStatus] = [TxStatus.SUCCESS]
        self.built: list[tuple] = []
        self.submitted: list[bytes] = []
        self.polls = 0
        self.fail_build = False
        self.fail_submit = False

    def set(self, contract_id: str, method: str, value: Any, args: Sequence[Any] = ()) -> None:
        self.results[(contract_id.lower(), method, tuple(args))] = value

    def set_vault(self, total_shares: int, total_assets: int) -> None:
        self.set(VAULT, "totalSupply", total_shares)
        self.set(VAULT, "totalAssets", total_assets)

    def set_owner(self, *, shares: int = 0, wallet: int = 0, allowance: int = 0, owner: str = OWNER) -> None:
        self.set(VAULT, "balanceOf", shares, [owner])
        self.set(ASSET, "balanceOf", wallet, [owner])
        self.set(ASSET, "allowance", allowance, [owner, VAULT])

    async def call(
        self, contract_id: str, method: str, args: Sequence[Any] = (), *, block_identifier: int | str = "latest"
    ) -> Any:
        self.calls.append((contract_id.lower(), method, tuple(args), block_identifier))
        # The value is resolved when the call is made, then delivered after the delay.
        key = (contract_id.lower(), method, tuple(args))
        error = None
        value = None
        if method in self.fail_methods:
            error = LedgerCallFailed(f"{method} unavailable")
        elif key not in self.results:
            error = LedgerCallFailed(f"no result for {key}")
        else:
            value = self.results[key]
            value = value(block_identifier) if callable(value) else value
        if self.call_delay:
            await asyncio.sleep(self.call_delay)
        if error is not None:
            raise error
        return value

    async def get_raw_storage_entry(self, contract_id: str, key: int) -> int | None:
        self.storage_reads += 1
        if "storage" in self.fail_methods:
            raise LedgerCallFailed("storage unavailable")
        return self.storage.get((contract_id.lower(), key))

    async def block_number(self) -> int:
        return self.block

    async def build_transaction(self, contract_id: str, method: str, args: Sequence[Any], *, sender: str) -> dict:
        if self.fail_build:
            raise RuntimeError("execution reverted")
        self.built.append((contract_id.lower(), method, tuple(args), sender))
        return {"to": contract_id, "method": method, "args": list(args), "from": sender}

    async def submit(self, signed: bytes) -> str:
        if self.fail_submit:
            raise RuntimeError("nonce too low")
        self.submitted.append(signed)
        return f"0x{len(self.submitted):064x}"

    async def poll_status(self, tx_hash: str) -> TxStatus:
        self.polls += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


class FakeSigner:
    def __init__(self, address: str = OWNER, *, decline: bool = False) -> None:
        self._address = address
        self.decline = decline
        self.signed: list[dict] = []

    @property
    def address(self) -> str:
        return self._address

    async def sign(self, envelope: dict, signer_address: str) -> bytes:
        if self.decline:
            raise SignatureDeclined("user rejected the request")
        self.signed.append(envelope)
        return repr(sorted(envelope.items())).encode()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()
