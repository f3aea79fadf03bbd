"""
Read path — balances and transaction history for a wallet.

Both reads are plain queries against a LedgerGateway; nothing here signs
or submits. Errors from the gateway propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from renmo.ledger.engine_result import TES_SUCCESS
from renmo.ledger.gateway import ACCOUNT_INFO, ACCOUNT_LINES, ACCOUNT_TX, LedgerGateway
from renmo.ledger.tx import decode_currency, drops_to_xrp, format_value, same_currency

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

# Seconds between the Unix epoch and the XRPL epoch (2000-01-01).
RIPPLE_EPOCH_OFFSET = 946_684_800


@dataclass(frozen=True)
class Balances:
    """XRP and issued-currency balances as decimal strings."""

    address: str
    xrp: str
    issued: str
    currency: str


@dataclass(frozen=True)
class HistoryEntry:
    """One row of a wallet's transaction history."""

    hash: str
    tx_type: str
    amount: str
    destination: str
    date: str
    status: str
    result_code: str

    @classmethod
    def unknown(cls) -> HistoryEntry:
        return cls(
            hash=UNKNOWN,
            tx_type=UNKNOWN,
            amount=UNKNOWN,
            destination=UNKNOWN,
            date=UNKNOWN,
            status="failed",
            result_code=UNKNOWN,
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "hash": self.hash,
            "type": self.tx_type,
            "amount": self.amount,
            "destination": self.destination,
            "date": self.date,
            "status": self.status,
            "result_code": self.result_code,
        }


async def get_balances(
    gateway: LedgerGateway,
    address: str,
    *,
    currency: str,
    issuer: str | None,
    drops_per_xrp: int = 1_000_000,
) -> Balances:
    """XRP balance plus the balance of ``currency`` issued by ``issuer``.

    The issued balance is "0" when there is no trust line (or no issuer).
    """
    info = await gateway.request(ACCOUNT_INFO, account=address, ledger_index="validated")
    xrp = drops_to_xrp(info["account_data"]["Balance"], drops_per_xrp)

    issued = Decimal(0)
    if issuer is not None:
        result = await gateway.request(
            ACCOUNT_LINES, account=address, peer=issuer, ledger_index="validated"
        )
        for line in result.get("lines", []):
            if line.get("account") == issuer and same_currency(line.get("currency", ""), currency):
                issued += Decimal(str(line.get("balance", "0")))

    return Balances(address=address, xrp=xrp, issued=format_value(issued), currency=currency)


async def get_transaction_history(
    gateway: LedgerGateway,
    address: str,
    limit: int = 20,
    *,
    drops_per_xrp: int = 1_000_000,
) -> list[HistoryEntry]:
    """Most recent transactions touching ``address``, newest first."""
    result = await gateway.request(ACCOUNT_TX, account=address, limit=limit)
    entries = []
    for item in result.get("transactions", []):
        if not isinstance(item, dict):
            entries.append(HistoryEntry.unknown())
            continue
        try:
            entries.append(_history_entry(item, drops_per_xrp))
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            logger.debug("Malformed history entry for %s: %s", address, exc)
            entries.append(HistoryEntry.unknown())
    return entries


def _history_entry(item: dict[str, Any], drops_per_xrp: int) -> HistoryEntry:
    # API v2 uses tx_json/hash; v1 nests everything under "tx".
    tx = item.get("tx_json") or item["tx"]
    meta = item.get("meta") or {}
    result_code = meta.get("TransactionResult", UNKNOWN) if isinstance(meta, dict) else UNKNOWN

    return HistoryEntry(
        hash=item.get("hash") or tx["hash"],
        tx_type=tx["TransactionType"],
        amount=_format_amount(tx.get("Amount") or tx.get("DeliverMax"), drops_per_xrp),
        destination=tx.get("Destination", UNKNOWN),
        date=_format_date(item, tx),
        status="success" if result_code == TES_SUCCESS else "failed",
        result_code=result_code,
    )


def _format_amount(amount: Any, drops_per_xrp: int) -> str:
    if amount is None:
        return UNKNOWN
    if isinstance(amount, str):
        return f"{drops_to_xrp(amount, drops_per_xrp)} XRP"
    value = format_value(Decimal(str(amount["value"])))
    return f"{value} {decode_currency(amount['currency'])}"


def _format_date(item: dict[str, Any], tx: dict[str, Any]) -> str:
    if item.get("close_time_iso"):
        return str(item["close_time_iso"])
    if "date" in tx:
        moment = datetime.fromtimestamp(int(tx["date"]) + RIPPLE_EPOCH_OFFSET, tz=timezone.utc)
        return moment.strftime("%Y-%m-%dT%H:%M:%SZ")
    return UNKNOWN
