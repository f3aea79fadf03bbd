"""
Failure taxonomy for wallet and payment operations.

Two layers, kept deliberately separate:

    - ``FailureReason`` — the closed set of failure names. Payment calls
      never raise for ledger or network outcomes; they return a
      ``PaymentOutcome`` whose ``reason`` is one of these values.
    - ``RenmoError`` and subclasses — raised by wallet-set, funding, and
      directory operations, where the caller is expected to handle an
      exception. Each carries the matching ``FailureReason`` plus a
      ``details`` dict for diagnostics (never secrets).

Propagation:
    - Validation and identity errors fail before any network call.
    - Transport exceptions are converted at the gateway call boundary;
      they never escape as raw ``httpx`` errors.
    - ``MetadataPersistenceFailed`` never aborts a wallet or payment
      operation. It is reported next to the result.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class FailureReason(StrEnum):
    """Every failure the payment and wallet layers can report."""

    INVALID_INPUT = "InvalidInput"
    NO_ACTIVE_WALLET = "NoActiveWallet"
    CONNECTION_FAILED = "ConnectionFailed"
    SENDER_TRUST_SETUP_FAILED = "SenderTrustSetupFailed"
    RECIPIENT_TRUSTLINE_MISSING = "RecipientTrustlineMissing"
    TRUSTLINE_NOT_READY = "TrustlineNotReady"
    NO_LIQUIDITY_PATH = "NoLiquidityPath"
    LEDGER_REJECTED = "LedgerRejected"
    FUNDING_TIMED_OUT = "FundingTimedOut"
    WALLET_ALREADY_IMPORTED = "WalletAlreadyImported"
    WALLET_NOT_FOUND = "WalletNotFound"
    INVALID_SECRET = "InvalidSecret"
    METADATA_PERSISTENCE_FAILED = "MetadataPersistenceFailed"


class RenmoError(Exception):
    """Base error with a machine-readable reason and diagnostic details."""

    reason: FailureReason = FailureReason.INVALID_INPUT

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class InvalidInputError(RenmoError):
    reason = FailureReason.INVALID_INPUT


class NoActiveWalletError(RenmoError):
    reason = FailureReason.NO_ACTIVE_WALLET


class ConnectionFailedError(RenmoError):
    """The ledger node or an HTTP service could not be reached."""

    reason = FailureReason.CONNECTION_FAILED


class InvalidSecretError(RenmoError):
    reason = FailureReason.INVALID_SECRET


class WalletAlreadyImportedError(RenmoError):
    reason = FailureReason.WALLET_ALREADY_IMPORTED


class WalletNotFoundError(RenmoError):
    reason = FailureReason.WALLET_NOT_FOUND


class FundingTimedOutError(RenmoError):
    """The faucet never funded the account within the allowed attempts."""

    reason = FailureReason.FUNDING_TIMED_OUT


class MetadataPersistenceError(RenmoError):
    reason = FailureReason.METADATA_PERSISTENCE_FAILED
