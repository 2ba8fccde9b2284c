"""Error taxonomy for the vault client.

Business-rule errors (`InvalidAmount`, `InsufficientBalance`, `InsufficientLiquidity`,
`InsufficientAllowance`, `RoundingUnsafe`) are recoverable by reprompting the user.
`DivisionUndefined` marks an inconsistent ledger snapshot and is retried at the read level.
Ledger and signing failures are surfaced as-is and never retried automatically.
"""


class VaultClientError(Exception):
    """Base class for all vault client errors."""


class InvalidAmount(VaultClientError, ValueError):
    """User-supplied amount cannot be parsed or is out of range."""


class InsufficientBalance(VaultClientError):
    """Requested amount exceeds what the user holds."""

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(f"requested {requested} exceeds available balance {available}")
        self.requested = requested
        self.available = available


class InsufficientLiquidity(VaultClientError):
    """Requested amount exceeds the vault's total assets."""

    def __init__(self, requested: int, total_assets: int) -> None:
        super().__init__(f"requested {requested} exceeds vault total assets {total_assets}")
        self.requested = requested
        self.total_assets = total_assets


class InsufficientAllowance(VaultClientError):
    """Deposit amount exceeds the spending allowance granted to the vault."""

    def __init__(self, requested: int, allowance: int) -> None:
        super().__init__(f"requested {requested} exceeds allowance {allowance}; approve first")
        self.requested = requested
        self.allowance = allowance


class RoundingUnsafe(VaultClientError):
    """A partial redemption would pay out dust under integer truncation; redeem the full balance instead."""

    def __init__(self, requested: int, simulated_payout: int, min_payout: int) -> None:
        super().__init__(
            f"partial redemption of {requested} would pay out {simulated_payout} (< {min_payout}); "
            "withdraw the full balance instead"
        )
        self.requested = requested
        self.simulated_payout = simulated_payout
        self.min_payout = min_payout


class DivisionUndefined(VaultClientError, ArithmeticError):
    """Vault reports outstanding shares but zero assets (inconsistent snapshot)."""


class LedgerCallFailed(VaultClientError):
    """A ledger read or transaction build failed."""


class SignatureDeclined(VaultClientError):
    """The signer refused to sign the envelope."""


class SubmissionFailed(VaultClientError):
    """A signed transaction was rejected, failed on-chain, or never reached a terminal status."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
