"""
XRPL JSON-RPC gateway — real network implementation of LedgerGateway.

Translates rippled JSON-RPC responses into result dicts and
SubmitResults. Uses an injectable transport (JsonRpcTransport) so the
HTTP layer can be swapped for test fakes without changing parsing logic.

No retry loops. No secrets. No payment logic beyond response parsing
and finality waiting.

Response parsing targets rippled JSON-RPC conventions:
    - Successful responses: {"result": {"status": "success", ...}}
    - Error responses: {"result": {"status": "error", "error": "...", ...}}
    - Submit responses include: engine_result, engine_result_message, tx_json
    - tx responses include: validated, ledger_index, meta, hash
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

import httpx
from xrpl.core.binarycodec import decode

from renmo.errors import ConnectionFailedError
from renmo.ledger.engine_result import TEF_MAX_LEDGER, may_still_apply
from renmo.ledger.gateway import (
    ACCOUNT_INFO,
    FEE,
    LEDGER_CURRENT,
    SERVER_ERROR,
    LedgerRequestError,
    SubmitResult,
)
from renmo.ledger.transport import HttpxTransport, JsonRpcTransport

logger = logging.getLogger(__name__)

# Horizon used by autofill when the caller did not stamp LastLedgerSequence.
AUTOFILL_LEDGER_OFFSET = 20

TXN_NOT_FOUND = "txnNotFound"


class JsonRpcGateway:
    """LedgerGateway over rippled JSON-RPC.

    Args:
        url: The rippled JSON-RPC endpoint (e.g. "https://s.altnet.rippletest.net:51234").
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
        poll_interval: Seconds between finality checks while waiting for
            a submitted transaction.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
        *,
        poll_interval: float = 1.0,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()
        self._poll_interval = poll_interval
        self._ids = itertools.count(1)
        self._connected = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_connected(self) -> bool:
        return self._connected

    # -----------------------------------------------------------------
    # Connection
    # -----------------------------------------------------------------

    async def connect(self) -> None:
        if self._connected:
            return
        await self.request("server_info")
        self._connected = True
        logger.info("Connected to XRPL node %s", self._url)

    async def disconnect(self) -> None:
        if not self._connected:
            return
        await self._transport.aclose()
        self._connected = False
        logger.info("Disconnected from XRPL node %s", self._url)

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    async def request(self, command: str, **params: Any) -> dict[str, Any]:
        payload = {
            "method": command,
            "params": [params],
            "id": next(self._ids),
        }

        try:
            response = await self._transport.post_json(self._url, payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("XRPL %s request failed: %s", command, exc)
            raise ConnectionFailedError(
                f"XRPL node unreachable: {exc}",
                details={"url": self._url, "command": command},
            ) from exc

        return _parse_result(command, response)

    async def autofill(self, tx: dict[str, Any]) -> dict[str, Any]:
        prepared = dict(tx)

        if "Sequence" not in prepared:
            info = await self.request(
                ACCOUNT_INFO, account=prepared["Account"], ledger_index="current"
            )
            prepared["Sequence"] = int(info["account_data"]["Sequence"])

        if "Fee" not in prepared:
            fee = await self.request(FEE)
            prepared["Fee"] = str(fee["drops"]["base_fee"])

        if "LastLedgerSequence" not in prepared:
            current = await self.request(LEDGER_CURRENT)
            prepared["LastLedgerSequence"] = (
                int(current["ledger_current_index"]) + AUTOFILL_LEDGER_OFFSET
            )

        return prepared

    # -----------------------------------------------------------------
    # Submission
    # -----------------------------------------------------------------

    async def submit_and_wait(self, signed_blob: str) -> SubmitResult:
        """Submit, then poll ``tx`` until validated or past LastLedgerSequence."""
        try:
            submitted = await self.request("submit", tx_blob=signed_blob)
        except LedgerRequestError as exc:
            return SubmitResult(result_code=None, error_code=SERVER_ERROR, detail=str(exc))

        engine_result = submitted.get("engine_result")
        tx_json = submitted.get("tx_json")
        tx_hash = tx_json.get("hash") if isinstance(tx_json, dict) else None

        if engine_result is None:
            return SubmitResult(
                result_code=None,
                tx_hash=tx_hash,
                error_code=SERVER_ERROR,
                detail="no engine_result in submit response",
            )

        if not may_still_apply(engine_result) or tx_hash is None:
            return SubmitResult(
                result_code=engine_result,
                tx_hash=tx_hash,
                detail=submitted.get("engine_result_message"),
            )

        last_ledger = decode(signed_blob).get("LastLedgerSequence")
        if last_ledger is None:
            raise ValueError("signed transaction has no LastLedgerSequence; refusing to wait unbounded")

        return await self._wait_for_final(tx_hash, int(last_ledger), engine_result)

    async def _wait_for_final(
        self, tx_hash: str, last_ledger: int, preliminary: str
    ) -> SubmitResult:
        while True:
            await asyncio.sleep(self._poll_interval)

            try:
                status = await self.request("tx", transaction=tx_hash, binary=False)
            except LedgerRequestError as exc:
                if exc.error != TXN_NOT_FOUND:
                    return _unconfirmed(tx_hash, preliminary, exc)
                status = {}

            if status.get("validated"):
                return _parse_validated(tx_hash, status)

            try:
                current = await self.request(LEDGER_CURRENT)
            except LedgerRequestError as exc:
                return _unconfirmed(tx_hash, preliminary, exc)
            if int(current["ledger_current_index"]) > last_ledger:
                logger.warning(
                    "Transaction %s expired past LastLedgerSequence %d (preliminary %s)",
                    tx_hash, last_ledger, preliminary,
                )
                return SubmitResult(
                    result_code=TEF_MAX_LEDGER,
                    tx_hash=tx_hash,
                    detail=f"not validated by ledger {last_ledger} (preliminary {preliminary})",
                )


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _parse_result(command: str, response: dict[str, Any]) -> dict[str, Any]:
    """Unwrap ``result`` and raise on server-level errors."""
    result = response.get("result")
    if not isinstance(result, dict):
        raise LedgerRequestError("malformedResponse", f"{command}: response has no result object", command=command)

    if result.get("status") == "error":
        error = result.get("error", "unknown")
        raise LedgerRequestError(
            error,
            result.get("error_message") or error,
            command=command,
        )
    return result


def _parse_validated(tx_hash: str, status: dict[str, Any]) -> SubmitResult:
    engine_result = None
    meta = status.get("meta")
    if isinstance(meta, dict):
        engine_result = meta.get("TransactionResult")

    return SubmitResult(
        result_code=engine_result,
        tx_hash=status.get("hash", tx_hash),
        validated=True,
        ledger_index=status.get("ledger_index"),
    )


def _unconfirmed(tx_hash: str, preliminary: str, exc: LedgerRequestError) -> SubmitResult:
    """The blob went out but its final result could not be read."""
    logger.warning("Lost track of %s after submit (preliminary %s): %s", tx_hash, preliminary, exc.error)
    return SubmitResult(
        result_code=None,
        tx_hash=tx_hash,
        error_code=SERVER_ERROR,
        detail=f"{exc.command or 'query'} failed while awaiting validation: {exc.error} (preliminary {preliminary})",
    )
