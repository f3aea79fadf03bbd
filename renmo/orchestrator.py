"""
Payment orchestration: issued currency first, native XRP as fallback.

State machine per ``send_payment`` call:

    Idle → Validating → (EnsuringSenderTrust) → (CheckingRecipientTrust)
         → Submitting → Finalizing → {Succeeded | Failed | AwaitingManualTrustline}

Issued-currency path (``prefer_issued_currency`` and an issuer configured):
    1. Ensure sender trust (optional). Failure → SenderTrustSetupFailed.
    2. Check recipient trust. Missing → RecipientTrustlineMissing, with a
       recovery payload when requested. Nothing is submitted: the ledger
       would reject the transfer anyway.
    3. Submit. tesSUCCESS → Succeeded. tecPATH_DRY → re-check both lines:
       a missing line → TrustlineNotReady, both present → NoLiquidityPath.
       Anything else → LedgerRejected(code).

Native path: amount truncated to drops, direct Payment, tesSUCCESS →
Succeeded, anything else → LedgerRejected(code).

Guarantees:
    - Invalid input and a missing identity fail before any network call.
    - At most one Payment is submitted per call. No hidden retries.
    - Submissions for one sender are serialized by the shared Submitter.
    - Ledger and network failures come back as a PaymentOutcome; they
      never escape as exceptions.
    - Balances are not refreshed here; that is the caller's read path.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from renmo.errors import FailureReason
from renmo.keys import Identity
from renmo.ledger.engine_result import TEC_PATH_DRY, is_success
from renmo.ledger.gateway import CONNECTION_FAILED, SubmitResult
from renmo.ledger.submitter import Submitter
from renmo.ledger.tx import (
    NATIVE_CURRENCY,
    build_issued_payment,
    build_native_payment,
    is_valid_address,
    parse_amount,
    xrp_to_drops,
)
from renmo.outcome import (
    OutcomeStatus,
    PaymentOutcome,
    PaymentState,
    RecoveryPayload,
)
from renmo.trustline import TrustlineResolver

logger = logging.getLogger(__name__)


class CurrencyMode(StrEnum):
    ISSUED = "issued"
    NATIVE = "native"


@dataclass(frozen=True)
class PaymentOptions:
    """Caller choices for one ``send_payment`` call.

    Attributes:
        prefer_issued_currency: Pay in the issued currency when an issuer
            is configured; otherwise (or when False) pay in XRP.
        auto_establish_sender_trust: Open the sender's trust line first
            if it is missing.
        produce_recipient_recovery_payload: When the recipient has no
            trust line, return a payload the recipient can scan to open it.
    """

    prefer_issued_currency: bool = True
    auto_establish_sender_trust: bool = True
    produce_recipient_recovery_payload: bool = True


@dataclass(frozen=True)
class PaymentIntent:
    """A validated payment request. Transient, never persisted."""

    sender_address: str
    destination: str
    amount: Decimal
    currency_mode: CurrencyMode
    options: PaymentOptions


@dataclass(frozen=True)
class AddressRules:
    """Syntactic rules for destination addresses."""

    prefix: str = "r"
    min_length: int = 25
    max_length: int = 35

    def is_valid(self, address: str) -> bool:
        return is_valid_address(
            address,
            prefix=self.prefix,
            min_length=self.min_length,
            max_length=self.max_length,
        )


class _Run:
    """State trace for one call."""

    def __init__(self) -> None:
        self.states: list[PaymentState] = [PaymentState.IDLE]

    def enter(self, state: PaymentState) -> None:
        logger.debug("payment state %s -> %s", self.states[-1], state)
        self.states.append(state)

    def finish(self, outcome: PaymentOutcome) -> PaymentOutcome:
        if outcome.status == OutcomeStatus.SUCCEEDED:
            self.enter(PaymentState.SUCCEEDED)
        elif outcome.status == OutcomeStatus.AWAITING_MANUAL_TRUSTLINE:
            self.enter(PaymentState.AWAITING_MANUAL_TRUSTLINE)
        else:
            self.enter(PaymentState.FAILED)
        return dataclasses.replace(outcome, states=tuple(self.states))


class PaymentOrchestrator:
    """Decides the payment path and drives it to a PaymentOutcome.

    Args:
        submitter: Serialized submission path (shared with the resolver).
        resolver: Trust-line checks and setup.
        active_identity: Returns the session's active identity, or None.
        issued_currency: Currency code for the issued path (e.g. "RLUSD").
        issuer: Issuer r-address. None disables the issued path.
        drops_per_xrp: Base units per XRP.
        address_rules: Destination syntax rules.
    """

    def __init__(
        self,
        submitter: Submitter,
        resolver: TrustlineResolver,
        active_identity: Callable[[], Identity | None],
        *,
        issued_currency: str = "RLUSD",
        issuer: str | None = None,
        drops_per_xrp: int = 1_000_000,
        address_rules: AddressRules | None = None,
    ) -> None:
        self._submitter = submitter
        self._resolver = resolver
        self._active_identity = active_identity
        self._currency = issued_currency
        self._issuer = issuer
        self._drops_per_xrp = drops_per_xrp
        self._address_rules = address_rules or AddressRules()

    async def send_payment(
        self,
        destination: str,
        amount: str,
        options: PaymentOptions | None = None,
    ) -> PaymentOutcome:
        """Send ``amount`` to ``destination`` from the active identity."""
        options = options or PaymentOptions()
        run = _Run()
        run.enter(PaymentState.VALIDATING)

        try:
            value = parse_amount(amount)
        except ValueError as exc:
            return run.finish(PaymentOutcome.failed(FailureReason.INVALID_INPUT, detail=str(exc)))

        if not self._address_rules.is_valid(destination):
            return run.finish(PaymentOutcome.failed(
                FailureReason.INVALID_INPUT,
                detail=f"invalid destination address: {destination!r}",
            ))

        identity = self._active_identity()
        if identity is None:
            return run.finish(PaymentOutcome.failed(
                FailureReason.NO_ACTIVE_WALLET, detail="No wallet connected",
            ))

        if destination == identity.address:
            return run.finish(PaymentOutcome.failed(
                FailureReason.INVALID_INPUT, detail="destination is the sending wallet",
            ))

        mode = (
            CurrencyMode.ISSUED
            if options.prefer_issued_currency and self._issuer
            else CurrencyMode.NATIVE
        )
        intent = PaymentIntent(
            sender_address=identity.address,
            destination=destination,
            amount=value,
            currency_mode=mode,
            options=options,
        )

        if mode == CurrencyMode.ISSUED:
            outcome = await self._pay_issued(intent, identity, run)
        else:
            outcome = await self._pay_native(intent, identity, run)

        outcome = run.finish(outcome)
        logger.info(
            "Payment %s -> %s (%s %s): %s%s",
            intent.sender_address, intent.destination, intent.amount,
            outcome.currency, outcome.status,
            f" [{outcome.reason}]" if outcome.reason else "",
        )
        return outcome

    # -----------------------------------------------------------------
    # Issued currency
    # -----------------------------------------------------------------

    async def _pay_issued(
        self, intent: PaymentIntent, identity: Identity, run: _Run
    ) -> PaymentOutcome:
        assert self._issuer is not None
        issuer, currency = self._issuer, self._currency
        sender_is_issuer = identity.address == issuer

        if intent.options.auto_establish_sender_trust and not sender_is_issuer:
            run.enter(PaymentState.ENSURING_SENDER_TRUST)
            trust = await self._resolver.establish(identity, issuer, currency)
            if not trust.ok:
                return PaymentOutcome.failed(
                    FailureReason.SENDER_TRUST_SETUP_FAILED,
                    detail=trust.detail,
                    engine_result=trust.engine_result,
                    tx_hash=trust.tx_hash,
                    currency=currency,
                )

        if intent.destination != issuer:
            run.enter(PaymentState.CHECKING_RECIPIENT_TRUST)
            recipient = await self._resolver.exists(intent.destination, issuer, currency)
            if not recipient.exists:
                return self._recipient_missing(intent, issuer, currency)

        run.enter(PaymentState.SUBMITTING)
        result = await self._submitter.submit(
            build_issued_payment(identity.address, intent.destination, intent.amount, currency, issuer),
            identity,
        )
        run.enter(PaymentState.FINALIZING)

        if result.error_code is not None:
            return _not_submitted(result, currency)
        if is_success(result.result_code):
            return PaymentOutcome.succeeded(result.tx_hash, currency=currency)
        if result.result_code == TEC_PATH_DRY:
            return await self._diagnose_path_dry(intent, identity, result, issuer, currency)
        return _rejected(result, currency)

    def _recipient_missing(
        self, intent: PaymentIntent, issuer: str, currency: str
    ) -> PaymentOutcome:
        detail = f"{intent.destination} has no {currency} trust line to {issuer}"
        if not intent.options.produce_recipient_recovery_payload:
            return PaymentOutcome(
                status=OutcomeStatus.FAILED,
                reason=FailureReason.RECIPIENT_TRUSTLINE_MISSING,
                recoverable=True,
                currency=currency,
                detail=detail,
            )
        return PaymentOutcome(
            status=OutcomeStatus.AWAITING_MANUAL_TRUSTLINE,
            reason=FailureReason.RECIPIENT_TRUSTLINE_MISSING,
            recoverable=True,
            recovery_payload=RecoveryPayload(
                currency_code=currency,
                issuer=issuer,
                recipient=intent.destination,
                limit=self._resolver.default_limit,
            ),
            currency=currency,
            detail=detail,
        )

    async def _diagnose_path_dry(
        self,
        intent: PaymentIntent,
        identity: Identity,
        result: SubmitResult,
        issuer: str,
        currency: str,
    ) -> PaymentOutcome:
        """tecPATH_DRY: separate missing trust from missing liquidity."""
        parties = [("sender", identity.address), ("recipient", intent.destination)]
        for role, address in parties:
            if address == issuer:
                continue
            check = await self._resolver.exists(address, issuer, currency)
            if not check.exists:
                return PaymentOutcome.failed(
                    FailureReason.TRUSTLINE_NOT_READY,
                    detail=f"{role} trust line for {currency} is not in place",
                    engine_result=result.result_code,
                    tx_hash=result.tx_hash,
                    currency=currency,
                )

        return PaymentOutcome.failed(
            FailureReason.NO_LIQUIDITY_PATH,
            detail=f"no {currency} liquidity path from {identity.address} to {intent.destination}",
            engine_result=result.result_code,
            tx_hash=result.tx_hash,
            currency=currency,
        )

    # -----------------------------------------------------------------
    # Native XRP
    # -----------------------------------------------------------------

    async def _pay_native(
        self, intent: PaymentIntent, identity: Identity, run: _Run
    ) -> PaymentOutcome:
        drops = xrp_to_drops(intent.amount, self._drops_per_xrp)
        if drops <= 0:
            return PaymentOutcome.failed(
                FailureReason.INVALID_INPUT,
                detail=f"amount {intent.amount} is below one drop",
                currency=NATIVE_CURRENCY,
            )

        run.enter(PaymentState.SUBMITTING)
        result = await self._submitter.submit(
            build_native_payment(identity.address, intent.destination, drops), identity
        )
        run.enter(PaymentState.FINALIZING)

        if result.error_code is not None:
            return _not_submitted(result, NATIVE_CURRENCY)
        if is_success(result.result_code):
            return PaymentOutcome.succeeded(result.tx_hash, currency=NATIVE_CURRENCY)
        return _rejected(result, NATIVE_CURRENCY)


def _not_submitted(result: SubmitResult, currency: str) -> PaymentOutcome:
    """Map a submission that produced no engine result."""
    reason = (
        FailureReason.CONNECTION_FAILED
        if result.error_code == CONNECTION_FAILED
        else FailureReason.LEDGER_REJECTED
    )
    return PaymentOutcome.failed(
        reason,
        detail=result.detail,
        tx_hash=result.tx_hash,
        currency=currency,
    )


def _rejected(result: SubmitResult, currency: str) -> PaymentOutcome:
    return PaymentOutcome.failed(
        FailureReason.LEDGER_REJECTED,
        detail=result.detail or f"ledger rejected the payment with {result.result_code}",
        engine_result=result.result_code,
        tx_hash=result.tx_hash,
        currency=currency,
    )
