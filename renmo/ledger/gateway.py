"""
Ledger gateway protocol — the network boundary.

Defines the interface the trust-line resolver and payment orchestrator
depend on, not a concrete implementation. This keeps the payment logic
testable and prevents HTTP calls from creeping into business logic.

Concrete implementations:
    - JsonRpcGateway (real, rippled JSON-RPC over an injectable transport)
    - FakeLedger (in-memory ledger with a call log, for tests and demos)

Error conventions:
    - ``request`` raises ``LedgerRequestError`` when the node answers
      with a JSON-RPC error (e.g. "actNotFound"), and
      ``ConnectionFailedError`` when the node cannot be reached.
    - ``submit_and_wait`` returns a ``SubmitResult`` for every engine
      result, success or not. Only transport failures raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# Read-only queries the payment flow relies on.
ACCOUNT_INFO = "account_info"
ACCOUNT_LINES = "account_lines"
ACCOUNT_TX = "account_tx"
FEE = "fee"
LEDGER_CURRENT = "ledger_current"

# Error name rippled returns for accounts that do not exist yet.
ACCOUNT_NOT_FOUND = "actNotFound"


class LedgerRequestError(Exception):
    """The ledger node answered a request with an error.

    Attributes:
        error: rippled error token (e.g. "actNotFound", "txnNotFound").
        command: The request command that failed.
    """

    def __init__(self, error: str, message: str | None = None, *, command: str = "") -> None:
        super().__init__(message or error)
        self.error = error
        self.command = command

    @property
    def account_not_found(self) -> bool:
        return self.error == ACCOUNT_NOT_FOUND


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class SubmitResult:
    """Final result of submitting a signed transaction.

    Attributes:
        result_code: Engine result from the validated ledger (or the
            preliminary result when the transaction was never forwarded).
            None if no engine result was obtained.
        tx_hash: Transaction hash (64 hex chars), when known.
        validated: Whether ``result_code`` comes from a validated ledger.
        ledger_index: Ledger the transaction was included in.
        error_code: Set when the submission never produced an engine
            result ("CONNECTION_FAILED", "SERVER_ERROR", "SIGNING_FAILED").
        detail: Human-readable diagnostics. Never contains secrets.
        tx_json: The prepared (unsigned) transaction that was signed.
    """

    result_code: str | None
    tx_hash: str | None = None
    validated: bool = False
    ledger_index: int | None = None
    error_code: str | None = None
    detail: str | None = None
    tx_json: dict[str, Any] | None = None


# Values for SubmitResult.error_code.
CONNECTION_FAILED = "CONNECTION_FAILED"
SERVER_ERROR = "SERVER_ERROR"
SIGNING_FAILED = "SIGNING_FAILED"


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerGateway(Protocol):
    """Interface for XRPL network operations.

    Methods are async because network I/O is inherently asynchronous.
    """

    @property
    def is_connected(self) -> bool:
        ...

    async def connect(self) -> None:
        """Open the connection. Idempotent.

        Raises:
            ConnectionFailedError: If the node cannot be reached.
        """
        ...

    async def disconnect(self) -> None:
        """Close the connection. Idempotent."""
        ...

    async def request(self, command: str, **params: Any) -> dict[str, Any]:
        """Run a read-only query and return its ``result`` object.

        Raises:
            LedgerRequestError: The node answered with an error.
            ConnectionFailedError: The node could not be reached.
        """
        ...

    async def autofill(self, tx: dict[str, Any]) -> dict[str, Any]:
        """Fill in missing Sequence, Fee, and LastLedgerSequence.

        Fields already present are left untouched.
        """
        ...

    async def submit_and_wait(self, signed_blob: str) -> SubmitResult:
        """Submit a signed blob and wait for its final result.

        Waiting is bounded by the transaction's LastLedgerSequence, not by
        a wall-clock timer.

        Raises:
            ConnectionFailedError: The node could not be reached.

        Ledger errors after the blob was accepted come back as a result
        with ``error_code`` SERVER_ERROR and the transaction hash set.
        """
        ...
