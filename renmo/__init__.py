"""
renmo: payroll payments on the XRP Ledger.

Pays employees in an issued stablecoin (RLUSD) when both sides can hold
it, and in XRP otherwise. Trust lines are bootstrapped for the sender;
a recipient without one gets a scannable recovery payload instead of a
failed transfer.
"""

__version__ = "0.1.0"

from renmo.config import Settings
from renmo.directory import AccountDirectory, AccountMetadata, InMemoryDirectory, PinataDirectory
from renmo.errors import FailureReason, RenmoError
from renmo.keys import Identity, KeyManager, XrplKeyManager
from renmo.orchestrator import PaymentOptions, PaymentOrchestrator
from renmo.outcome import OutcomeStatus, PaymentOutcome, PaymentState, RecoveryPayload, TrustResult
from renmo.service import Employee, PayrollService
from renmo.store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from renmo.trustline import TrustlineResolver
from renmo.wallets import WalletOperationReport, WalletRecord, WalletSet

__all__ = [
    "AccountDirectory",
    "AccountMetadata",
    "Employee",
    "FailureReason",
    "Identity",
    "InMemoryDirectory",
    "KeyManager",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "OutcomeStatus",
    "PaymentOptions",
    "PaymentOrchestrator",
    "PaymentOutcome",
    "PaymentState",
    "PayrollService",
    "PinataDirectory",
    "RecoveryPayload",
    "RenmoError",
    "Settings",
    "SqliteKeyValueStore",
    "TrustResult",
    "TrustlineResolver",
    "WalletOperationReport",
    "WalletRecord",
    "WalletSet",
    "__version__",
]
