"""
Serialized transaction submission.

Every ledger-mutating transaction in the package (TrustSet, AccountSet,
Payment) goes through ``Submitter.submit``, which:

    1. Takes the per-sender lock, so two submissions for the same
       account never race on its Sequence number.
    2. Queries the network fee, falling back to a fixed minimum when the
       fee query fails.
    3. Queries the current ledger index and stamps
       LastLedgerSequence = current + horizon.
    4. Autofills the Sequence, signs, submits, and waits for finality.

One call makes at most one submission. Failures before the blob reaches
the node (ledger index unavailable, autofill or signing errors) return a
SubmitResult with ``error_code`` set and nothing submitted.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any

from renmo.errors import ConnectionFailedError
from renmo.keys import Identity, KeyManager
from renmo.ledger.gateway import (
    CONNECTION_FAILED,
    FEE,
    LEDGER_CURRENT,
    SERVER_ERROR,
    SIGNING_FAILED,
    LedgerGateway,
    LedgerRequestError,
    SubmitResult,
)
from renmo.ledger.tx import with_submission_fields

logger = logging.getLogger(__name__)


class Submitter:
    """Fee-stamped, horizon-bounded, per-sender serialized submission.

    Args:
        gateway: Ledger network boundary.
        key_manager: Signing boundary.
        fallback_fee_drops: Fee used when the fee query fails.
        horizon: Ledgers a transaction stays valid for.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        key_manager: KeyManager,
        *,
        fallback_fee_drops: str = "10",
        horizon: int = 20,
    ) -> None:
        self._gateway = gateway
        self._key_manager = key_manager
        self._fallback_fee_drops = fallback_fee_drops
        self._horizon = horizon
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, address: str) -> asyncio.Lock:
        """Get or create the submission lock for an account."""
        if address not in self._locks:
            self._locks[address] = asyncio.Lock()
        return self._locks[address]

    async def current_fee(self) -> str:
        """Network base fee in drops, or the fallback if the query fails."""
        try:
            result = await self._gateway.request(FEE)
            fee = result["drops"]["base_fee"]
        except (LedgerRequestError, ConnectionFailedError, KeyError, TypeError) as exc:
            logger.warning(
                "Fee query failed (%s); using fallback fee %s drops",
                exc, self._fallback_fee_drops,
            )
            return self._fallback_fee_drops
        return str(fee) if fee else self._fallback_fee_drops

    async def submit(self, tx: dict[str, Any], identity: Identity) -> SubmitResult:
        """Prepare, sign, and submit ``tx`` for ``identity``."""
        tx_type = tx.get("TransactionType", "?")

        async with self.lock_for(identity.address):
            fee = await self.current_fee()

            try:
                current = await self._gateway.request(LEDGER_CURRENT)
                current_index = int(current["ledger_current_index"])
            except ConnectionFailedError as exc:
                return SubmitResult(result_code=None, error_code=CONNECTION_FAILED, detail=str(exc))
            except (LedgerRequestError, KeyError, TypeError, ValueError) as exc:
                return SubmitResult(
                    result_code=None,
                    error_code=SERVER_ERROR,
                    detail=f"ledger_current failed: {exc}",
                )

            prepared = with_submission_fields(
                tx,
                fee_drops=fee,
                current_ledger_index=current_index,
                horizon=self._horizon,
            )

            try:
                prepared = await self._gateway.autofill(prepared)
            except ConnectionFailedError as exc:
                return SubmitResult(
                    result_code=None, error_code=CONNECTION_FAILED,
                    detail=str(exc), tx_json=prepared,
                )
            except LedgerRequestError as exc:
                return SubmitResult(
                    result_code=None, error_code=SERVER_ERROR,
                    detail=f"autofill failed: {exc.error}", tx_json=prepared,
                )

            try:
                signed = self._key_manager.sign(prepared, identity)
            except ValueError as exc:
                return SubmitResult(
                    result_code=None, error_code=SIGNING_FAILED,
                    detail=f"signing failed: {exc}", tx_json=prepared,
                )

            logger.info(
                "Submitting %s from %s (fee=%s, last_ledger=%s)",
                tx_type, identity.address, prepared["Fee"], prepared["LastLedgerSequence"],
            )

            try:
                result = await self._gateway.submit_and_wait(signed.signed_tx_blob_hex)
            except ConnectionFailedError as exc:
                return SubmitResult(
                    result_code=None, tx_hash=signed.tx_hash,
                    error_code=CONNECTION_FAILED, detail=str(exc), tx_json=prepared,
                )
            except LedgerRequestError as exc:
                return SubmitResult(
                    result_code=None, tx_hash=signed.tx_hash,
                    error_code=SERVER_ERROR, detail=f"{exc.error}: {exc}", tx_json=prepared,
                )

        logger.info(
            "%s from %s finished with %s (hash=%s)",
            tx_type, identity.address, result.result_code, result.tx_hash,
        )
        if result.tx_hash is None:
            result = dataclasses.replace(result, tx_hash=signed.tx_hash)
        return dataclasses.replace(result, tx_json=prepared)
