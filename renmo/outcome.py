"""
Result types for trust-line and payment operations.

A ``PaymentOutcome`` always exists for a ``send_payment`` call, even on
failure. Status, failure reason, and ledger evidence (engine result,
tx hash) are recorded regardless of outcome.

Design:
    - **Tagged**: ``status`` is SUCCEEDED, FAILED, or
      AWAITING_MANUAL_TRUSTLINE. Only the last carries a recovery payload.
    - **Recoverable vs. terminal**: ``recoverable`` is True only for
      ``RecipientTrustlineMissing``; the orchestrator never auto-retries.
    - **No secrets, ever.**

Recovery payload format (renmo.recovery.v1):
    {
      "v":            "1",
      "action":       "TrustSet",
      "currencyCode": "RLUSD",
      "issuer":       "r...",
      "recipient":    "r...",
      "limit":        "1000000000"
    }

    Serialized as compact JSON with sorted keys so it can be rendered as
    a QR code and parsed back on the recipient's device.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from renmo.errors import FailureReason

# Bump when the payload dict shape changes.
RECOVERY_PAYLOAD_VERSION = "1"

TRUST_SET_ACTION = "TrustSet"


# =========================================================================
# Enums
# =========================================================================


class OutcomeStatus(StrEnum):
    """Terminal state of a ``send_payment`` call."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    AWAITING_MANUAL_TRUSTLINE = "AWAITING_MANUAL_TRUSTLINE"


class PaymentState(StrEnum):
    """States a ``send_payment`` call passes through."""

    IDLE = "Idle"
    VALIDATING = "Validating"
    ENSURING_SENDER_TRUST = "EnsuringSenderTrust"
    CHECKING_RECIPIENT_TRUST = "CheckingRecipientTrust"
    SUBMITTING = "Submitting"
    FINALIZING = "Finalizing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    AWAITING_MANUAL_TRUSTLINE = "AwaitingManualTrustline"


class TrustStatus(StrEnum):
    """Result of ``TrustlineResolver.establish``."""

    ESTABLISHED = "ESTABLISHED"
    ALREADY_SATISFIED = "ALREADY_SATISFIED"
    FAILED = "FAILED"


# =========================================================================
# RecoveryPayload
# =========================================================================


@dataclass(frozen=True)
class RecoveryPayload:
    """Instructions for a recipient to open a trust line out of band.

    Attributes:
        currency_code: Issued currency code as the user sees it ("RLUSD").
        issuer: Issuer r-address.
        recipient: The destination that is missing the trust line.
        limit: Suggested trust limit (decimal string).
        action: Ledger transaction type the recipient must submit.
    """

    currency_code: str
    issuer: str
    recipient: str
    limit: str
    action: str = TRUST_SET_ACTION

    def to_dict(self) -> dict[str, str]:
        return {
            "v": RECOVERY_PAYLOAD_VERSION,
            "action": self.action,
            "currencyCode": self.currency_code,
            "issuer": self.issuer,
            "recipient": self.recipient,
            "limit": self.limit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecoveryPayload:
        version = data.get("v", RECOVERY_PAYLOAD_VERSION)
        if version != RECOVERY_PAYLOAD_VERSION:
            raise ValueError(f"unsupported recovery payload version: {version!r}")
        return cls(
            currency_code=data["currencyCode"],
            issuer=data["issuer"],
            recipient=data["recipient"],
            limit=data["limit"],
            action=data.get("action", TRUST_SET_ACTION),
        )

    def to_text(self) -> str:
        """Scannable text form: compact JSON, keys sorted."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_text(cls, text: str) -> RecoveryPayload:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("recovery payload text must decode to a JSON object")
        return cls.from_dict(data)


# =========================================================================
# TrustResult
# =========================================================================


@dataclass(frozen=True)
class TrustResult:
    """Result of establishing (or confirming) a trust line.

    Attributes:
        status: ESTABLISHED, ALREADY_SATISFIED, or FAILED.
        tx_hash: Hash of the TrustSet, when one was submitted.
        engine_result: Ledger result code of the TrustSet (or of the
            prerequisite AccountSet when that is what failed).
        detail: Human-readable diagnostics.
        prerequisite_error: Set when the best-effort rippling AccountSet
            failed; the TrustSet was still attempted.
    """

    status: TrustStatus
    tx_hash: str | None = None
    engine_result: str | None = None
    detail: str | None = None
    prerequisite_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != TrustStatus.FAILED


# =========================================================================
# PaymentOutcome
# =========================================================================


@dataclass(frozen=True)
class PaymentOutcome:
    """Tagged result of a payment attempt.

    Required:
        status: Terminal state.

    Optional:
        tx_hash: Present on success, and on ledger rejections that the
            node hashed.
        reason: ``FailureReason`` when status is not SUCCEEDED.
        recoverable: True only for ``RecipientTrustlineMissing``.
        recovery_payload: Out-of-band completion data.
        engine_result: Raw ledger result code, when a submission happened.
        currency: "XRP" or the issued currency code that was (or would
            have been) sent.
        detail: Human-readable diagnostics.
        states: The states the call passed through, in order.
    """

    status: OutcomeStatus
    tx_hash: str | None = None
    reason: FailureReason | None = None
    recoverable: bool = False
    recovery_payload: RecoveryPayload | None = None
    engine_result: str | None = None
    currency: str | None = None
    detail: str | None = None
    states: tuple[PaymentState, ...] = ()

    def __post_init__(self) -> None:
        if self.status == OutcomeStatus.SUCCEEDED and self.reason is not None:
            raise ValueError("a successful outcome cannot carry a failure reason")
        if self.status != OutcomeStatus.SUCCEEDED and self.reason is None:
            raise ValueError("a failed outcome must carry a failure reason")
        if self.recovery_payload is not None and not self.recoverable:
            raise ValueError("only recoverable outcomes carry a recovery payload")

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED

    @classmethod
    def succeeded(
        cls,
        tx_hash: str | None,
        *,
        currency: str,
        engine_result: str = "tesSUCCESS",
    ) -> PaymentOutcome:
        return cls(
            status=OutcomeStatus.SUCCEEDED,
            tx_hash=tx_hash,
            engine_result=engine_result,
            currency=currency,
        )

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        *,
        detail: str | None = None,
        engine_result: str | None = None,
        tx_hash: str | None = None,
        currency: str | None = None,
    ) -> PaymentOutcome:
        return cls(
            status=OutcomeStatus.FAILED,
            reason=reason,
            detail=detail,
            engine_result=engine_result,
            tx_hash=tx_hash,
            currency=currency,
        )

    def to_dict(self) -> dict[str, object]:
        """Serialization for the view layer."""
        result: dict[str, object] = {
            "status": self.status.value,
            "success": self.success,
            "recoverable": self.recoverable,
        }
        if self.tx_hash is not None:
            result["tx_hash"] = self.tx_hash
        if self.reason is not None:
            result["reason"] = self.reason.value
        if self.recovery_payload is not None:
            result["recovery_payload"] = self.recovery_payload.to_dict()
        if self.engine_result is not None:
            result["engine_result"] = self.engine_result
        if self.currency is not None:
            result["currency"] = self.currency
        if self.detail is not None:
            result["detail"] = self.detail
        return result
