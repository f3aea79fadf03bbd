"""
Trust-line resolution.

Answers "does this account already trust this issuer for this
currency?" and, when it does not, establishes the trust line.

Rules:
    - ``exists`` never raises. Any query failure (including "Account not
      found") is reported as "does not exist": absence of proof is
      treated as absence of trust.
    - ``establish`` is idempotent. An existing line returns
      ALREADY_SATISFIED without submitting anything.
    - Only tesSUCCESS establishes a line. Every other engine result is a
      FAILED TrustResult naming the code.
    - The optional DefaultRipple AccountSet is best-effort: its failure is
      reported in ``TrustResult.prerequisite_error`` and the TrustSet is
      still attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from renmo.errors import ConnectionFailedError, InvalidInputError
from renmo.keys import Identity
from renmo.ledger.engine_result import is_success
from renmo.ledger.gateway import (
    ACCOUNT_INFO,
    ACCOUNT_LINES,
    LedgerGateway,
    LedgerRequestError,
)
from renmo.ledger.submitter import Submitter
from renmo.ledger.tx import (
    LSF_DEFAULT_RIPPLE,
    build_enable_rippling,
    build_trust_set,
    decode_currency,
    parse_amount,
    same_currency,
)
from renmo.outcome import TrustResult, TrustStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustLine:
    """A trust line as seen from the holder's side.

    Attributes:
        account: Holder r-address.
        issuer: Counterparty (issuer) r-address.
        currency_code: Human-readable currency code.
        balance: Holder's balance (decimal string).
        limit: Holder's trust limit (decimal string).
    """

    account: str
    issuer: str
    currency_code: str
    balance: str
    limit: str


@dataclass(frozen=True)
class TrustCheck:
    """Result of ``TrustlineResolver.exists``."""

    exists: bool
    line: TrustLine | None = None
    detail: str | None = None


class TrustlineResolver:
    """Check and establish trust lines for an issued currency.

    Args:
        gateway: Ledger network boundary, for read-only queries.
        submitter: Serialized submission path shared with payments.
        default_limit: Limit used when ``establish`` is not given one.
        enable_rippling: Submit a DefaultRipple AccountSet before the
            first TrustSet when the account does not have it yet.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        submitter: Submitter,
        *,
        default_limit: str = "1000000000",
        enable_rippling: bool = False,
    ) -> None:
        self._gateway = gateway
        self._submitter = submitter
        self._default_limit = default_limit
        self._enable_rippling = enable_rippling

    @property
    def default_limit(self) -> str:
        return self._default_limit

    async def exists(self, account: str, issuer: str, currency: str) -> TrustCheck:
        """Whether ``account`` has a trust line to ``issuer`` for ``currency``."""
        try:
            lines = await self._lines(account, issuer)
        except (LedgerRequestError, ConnectionFailedError, KeyError, TypeError) as exc:
            logger.warning(
                "Trust line lookup for %s -> %s/%s failed, treating as absent: %s",
                account, issuer, currency, exc,
            )
            return TrustCheck(exists=False, detail=str(exc))

        for line in lines:
            if line.get("account") == issuer and same_currency(line.get("currency", ""), currency):
                return TrustCheck(
                    exists=True,
                    line=TrustLine(
                        account=account,
                        issuer=issuer,
                        currency_code=decode_currency(line["currency"]),
                        balance=str(line.get("balance", "0")),
                        limit=str(line.get("limit", "0")),
                    ),
                )
        return TrustCheck(exists=False)

    async def establish(
        self,
        identity: Identity,
        issuer: str,
        currency: str,
        limit: str | None = None,
    ) -> TrustResult:
        """Make sure ``identity`` trusts ``issuer`` for ``currency``."""
        limit = limit or self._default_limit
        try:
            parse_amount(limit)
        except ValueError as exc:
            raise InvalidInputError(f"invalid trust limit: {limit!r}") from exc

        check = await self.exists(identity.address, issuer, currency)
        if check.exists:
            logger.debug("Trust line %s -> %s/%s already present", identity.address, issuer, currency)
            return TrustResult(status=TrustStatus.ALREADY_SATISFIED)

        prerequisite_error = None
        if self._enable_rippling:
            prerequisite_error = await self._ensure_rippling(identity)

        result = await self._submitter.submit(
            build_trust_set(identity.address, issuer, currency, limit), identity
        )

        if result.error_code is not None:
            return TrustResult(
                status=TrustStatus.FAILED,
                tx_hash=result.tx_hash,
                detail=f"TrustSet not submitted ({result.error_code}): {result.detail}",
                prerequisite_error=prerequisite_error,
            )

        if not is_success(result.result_code):
            logger.warning(
                "TrustSet for %s -> %s/%s failed with %s",
                identity.address, issuer, currency, result.result_code,
            )
            return TrustResult(
                status=TrustStatus.FAILED,
                tx_hash=result.tx_hash,
                engine_result=result.result_code,
                detail=f"TrustSet failed with {result.result_code}",
                prerequisite_error=prerequisite_error,
            )

        logger.info("Trust line %s -> %s/%s established (limit %s)", identity.address, issuer, currency, limit)
        return TrustResult(
            status=TrustStatus.ESTABLISHED,
            tx_hash=result.tx_hash,
            engine_result=result.result_code,
            prerequisite_error=prerequisite_error,
        )

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    async def _lines(self, account: str, issuer: str) -> list[dict[str, Any]]:
        """All lines between ``account`` and ``issuer``, following markers."""
        lines: list[dict[str, Any]] = []
        params: dict[str, Any] = {"account": account, "peer": issuer, "ledger_index": "validated"}
        while True:
            result = await self._gateway.request(ACCOUNT_LINES, **params)
            lines.extend(result["lines"])
            marker = result.get("marker")
            if not marker:
                return lines
            params["marker"] = marker

    async def _ensure_rippling(self, identity: Identity) -> str | None:
        """Enable DefaultRipple if needed. Returns an error string on failure."""
        try:
            info = await self._gateway.request(
                ACCOUNT_INFO, account=identity.address, ledger_index="validated"
            )
            flags = int(info["account_data"].get("Flags", 0))
        except (LedgerRequestError, ConnectionFailedError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Could not read account flags for %s: %s", identity.address, exc)
            return f"account_info failed: {exc}"

        if flags & LSF_DEFAULT_RIPPLE:
            return None

        result = await self._submitter.submit(build_enable_rippling(identity.address), identity)
        if is_success(result.result_code):
            return None

        error = result.result_code or result.error_code or "unknown"
        logger.warning("Enabling rippling for %s failed: %s", identity.address, error)
        return f"AccountSet failed with {error}"
