"""
In-memory XRPL — a fake LedgerGateway (and Faucet) for tests and demos.

Models just enough ledger state for the payroll flows:
    - Accounts: XRP balance in drops, Sequence, account flags.
    - Trust lines keyed by (holder, issuer, wire currency code).
    - Payments (XRP and issued), TrustSet, AccountSet.
    - Fee, current ledger index, account history.

Signed blobs are decoded with xrpl-py's binary codec, so a FakeLedger
accepts exactly what the real XrplKeyManager produces. Each applied or
claimed (tes/tec) transaction closes one ledger.

Every gateway call is appended to ``calls`` as ``(command, params)``,
which makes the fake usable as a spy ("no network call was made").

Failure injection:
    - ``fail_query(command)`` — the next queries of that command raise.
    - ``force_result(tx_type, code)`` — the next submission of that type
      finishes with ``code`` instead of being applied.
    - ``unreachable = True`` — every call raises ConnectionFailedError.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from xrpl.core.binarycodec import decode

from renmo.errors import ConnectionFailedError
from renmo.ledger.engine_result import (
    TEC_NO_DST_INSUF_XRP,
    TEC_PATH_DRY,
    TEC_UNFUNDED_PAYMENT,
    TEF_MAX_LEDGER,
    TES_SUCCESS,
    EngineResultClass,
    classify_engine_result,
)
from renmo.ledger.gateway import (
    ACCOUNT_INFO,
    ACCOUNT_LINES,
    ACCOUNT_NOT_FOUND,
    ACCOUNT_TX,
    FEE,
    LEDGER_CURRENT,
    LedgerRequestError,
    SubmitResult,
)
from renmo.ledger.tx import ASF_DEFAULT_RIPPLE, LSF_DEFAULT_RIPPLE, encode_currency

# Hash prefix for signed transactions ("TXN\0").
_TXN_PREFIX = bytes.fromhex("54584E00")

# Amount the fake faucet credits, in drops (100 XRP).
FAUCET_DROPS = 100_000_000


def tx_hash_from_blob(blob_hex: str) -> str:
    """SHA-512Half of the prefixed signed blob, as rippled computes it."""
    digest = hashlib.sha512(_TXN_PREFIX + bytes.fromhex(blob_hex)).digest()
    return digest[:32].hex().upper()


@dataclass
class FakeAccount:
    balance_drops: int
    sequence: int = 1
    flags: int = 0


@dataclass
class FakeTrustLine:
    account: str
    issuer: str
    currency: str
    limit: Decimal
    balance: Decimal = Decimal(0)


@dataclass
class _QueryFailure:
    error: str | None
    remaining: int | None


@dataclass
class _HistoryEntry:
    tx_json: dict[str, Any]
    hash: str
    result: str
    ledger_index: int
    close_time_iso: str = field(
        default_factory=lambda: datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    )


class FakeLedger:
    """LedgerGateway and Faucet backed by in-memory state.

    Args:
        ledger_index: Starting current ledger index.
        base_fee: Fee (drops) reported by the ``fee`` query.
        faucet_delay_polls: How many ``account_info`` polls keep answering
            "Account not found" after a faucet request.
    """

    def __init__(
        self,
        *,
        ledger_index: int = 1000,
        base_fee: str = "12",
        faucet_delay_polls: int = 0,
    ) -> None:
        self.ledger_index = ledger_index
        self.base_fee = base_fee
        self.faucet_delay_polls = faucet_delay_polls
        self.accounts: dict[str, FakeAccount] = {}
        self.lines: dict[tuple[str, str, str], FakeTrustLine] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.submitted: list[dict[str, Any]] = []
        self.unreachable = False
        self._connected = False
        self._history: list[_HistoryEntry] = []
        self._query_failures: dict[str, _QueryFailure] = {}
        self._forced_results: dict[str, list[str]] = {}
        self._pending_funding: dict[str, int] = {}

    # -----------------------------------------------------------------
    # Test setup helpers
    # -----------------------------------------------------------------

    def credit(self, address: str, drops: int) -> None:
        """Create (or top up) an account with ``drops``."""
        account = self.accounts.setdefault(address, FakeAccount(balance_drops=0))
        account.balance_drops += drops

    def add_trust_line(
        self,
        account: str,
        issuer: str,
        currency: str,
        *,
        limit: str = "1000000000",
        balance: str = "0",
    ) -> FakeTrustLine:
        line = FakeTrustLine(
            account=account,
            issuer=issuer,
            currency=encode_currency(currency),
            limit=Decimal(limit),
            balance=Decimal(balance),
        )
        self.lines[(account, issuer, line.currency)] = line
        return line

    def remove_trust_line(self, account: str, issuer: str, currency: str) -> None:
        self.lines.pop((account, issuer, encode_currency(currency)), None)

    def trust_line(self, account: str, issuer: str, currency: str) -> FakeTrustLine | None:
        return self.lines.get((account, issuer, encode_currency(currency)))

    def fail_query(self, command: str, *, error: str | None = None, times: int | None = None) -> None:
        """Make ``command`` fail.

        With ``error=None`` the failure is a ConnectionFailedError,
        otherwise a LedgerRequestError with that token. ``times=None``
        fails forever.
        """
        self._query_failures[command] = _QueryFailure(error=error, remaining=times)

    def force_result(self, tx_type: str, code: str) -> None:
        """Queue a forced engine result for the next ``tx_type`` submission."""
        self._forced_results.setdefault(tx_type, []).append(code)

    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]

    def submissions_of(self, tx_type: str) -> list[dict[str, Any]]:
        return [tx for tx in self.submitted if tx.get("TransactionType") == tx_type]

    # -----------------------------------------------------------------
    # Faucet
    # -----------------------------------------------------------------

    async def fund(self, address: str) -> None:
        """Faucet request. Funds arrive after ``faucet_delay_polls`` polls."""
        self._record("faucet", {"destination": address})
        if self.faucet_delay_polls <= 0:
            self.credit(address, FAUCET_DROPS)
        else:
            self._pending_funding[address] = self.faucet_delay_polls

    # -----------------------------------------------------------------
    # LedgerGateway
    # -----------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._record("connect", {})
        self._connected = True

    async def disconnect(self) -> None:
        self._record("disconnect", {})
        self._connected = False

    async def request(self, command: str, **params: Any) -> dict[str, Any]:
        self._record(command, params)
        self._maybe_fail(command)

        if command == ACCOUNT_INFO:
            return self._account_info(params["account"])
        if command == ACCOUNT_LINES:
            return self._account_lines(params["account"], params.get("peer"))
        if command == ACCOUNT_TX:
            return self._account_tx(params["account"], int(params.get("limit", 20)))
        if command == FEE:
            return {
                "current_ledger_size": "0",
                "drops": {"base_fee": self.base_fee, "minimum_fee": self.base_fee},
                "ledger_current_index": self.ledger_index,
            }
        if command == LEDGER_CURRENT:
            return {"ledger_current_index": self.ledger_index}
        if command == "server_info":
            return {"info": {"complete_ledgers": f"1-{self.ledger_index - 1}"}}
        raise LedgerRequestError("unknownCmd", f"Unknown method: {command}", command=command)

    async def autofill(self, tx: dict[str, Any]) -> dict[str, Any]:
        self._record("autofill", {"TransactionType": tx.get("TransactionType")})
        self._maybe_fail("autofill")
        prepared = dict(tx)
        if "Sequence" not in prepared:
            prepared["Sequence"] = self._require_account(prepared["Account"]).sequence
        prepared.setdefault("Fee", self.base_fee)
        prepared.setdefault("LastLedgerSequence", self.ledger_index + 20)
        return prepared

    async def submit_and_wait(self, signed_blob: str) -> SubmitResult:
        self._record("submit", {"tx_blob": signed_blob})
        self._maybe_fail("submit")

        tx = decode(signed_blob)
        tx_hash = tx_hash_from_blob(signed_blob)
        self.submitted.append(tx)

        account = self.accounts.get(tx["Account"])
        if account is None:
            return SubmitResult(result_code="terNO_ACCOUNT", tx_hash=tx_hash)
        if int(tx["LastLedgerSequence"]) < self.ledger_index:
            return SubmitResult(result_code=TEF_MAX_LEDGER, tx_hash=tx_hash)
        if int(tx["Sequence"]) < account.sequence:
            return SubmitResult(result_code="tefPAST_SEQ", tx_hash=tx_hash)
        if int(tx["Sequence"]) > account.sequence:
            return SubmitResult(result_code="terPRE_SEQ", tx_hash=tx_hash)

        forced = self._forced_results.get(tx["TransactionType"])
        code = forced.pop(0) if forced else self._apply(tx)

        if classify_engine_result(code) not in (EngineResultClass.SUCCESS, EngineResultClass.CLAIMED):
            return SubmitResult(result_code=code, tx_hash=tx_hash)

        # tes/tec: fee claimed, sequence consumed, ledger closes.
        account.sequence += 1
        account.balance_drops -= int(tx["Fee"])
        included_in = self.ledger_index
        self._history.append(_HistoryEntry(tx_json=tx, hash=tx_hash, result=code, ledger_index=included_in))
        self.ledger_index += 1
        return SubmitResult(result_code=code, tx_hash=tx_hash, validated=True, ledger_index=included_in)

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _record(self, command: str, params: dict[str, Any]) -> None:
        self.calls.append((command, dict(params)))
        if self.unreachable:
            raise ConnectionFailedError("fake ledger unreachable", details={"command": command})

    def _maybe_fail(self, command: str) -> None:
        failure = self._query_failures.get(command)
        if failure is None:
            return
        if failure.remaining is not None:
            failure.remaining -= 1
            if failure.remaining <= 0:
                del self._query_failures[command]
        if failure.error is None:
            raise ConnectionFailedError(f"{command} failed", details={"command": command})
        raise LedgerRequestError(failure.error, command=command)

    def _require_account(self, address: str) -> FakeAccount:
        pending = self._pending_funding.get(address)
        if pending is not None:
            if pending <= 1:
                del self._pending_funding[address]
                self.credit(address, FAUCET_DROPS)
            else:
                self._pending_funding[address] = pending - 1
        account = self.accounts.get(address)
        if account is None:
            raise LedgerRequestError(ACCOUNT_NOT_FOUND, "Account not found.", command=ACCOUNT_INFO)
        return account

    def _account_info(self, address: str) -> dict[str, Any]:
        account = self._require_account(address)
        return {
            "account_data": {
                "Account": address,
                "Balance": str(account.balance_drops),
                "Flags": account.flags,
                "Sequence": account.sequence,
            },
            "ledger_current_index": self.ledger_index,
            "validated": False,
        }

    def _account_lines(self, address: str, peer: str | None) -> dict[str, Any]:
        self._require_account(address)
        lines = [
            {
                "account": line.issuer,
                "balance": str(line.balance),
                "currency": line.currency,
                "limit": str(line.limit),
                "limit_peer": "0",
            }
            for (holder, issuer, _), line in self.lines.items()
            if holder == address and (peer is None or issuer == peer)
        ]
        return {"account": address, "lines": lines}

    def _account_tx(self, address: str, limit: int) -> dict[str, Any]:
        self._require_account(address)
        entries = [
            e for e in reversed(self._history)
            if e.tx_json.get("Account") == address or e.tx_json.get("Destination") == address
        ]
        return {
            "account": address,
            "transactions": [
                {
                    "tx_json": e.tx_json,
                    "hash": e.hash,
                    "meta": {"TransactionResult": e.result},
                    "ledger_index": e.ledger_index,
                    "close_time_iso": e.close_time_iso,
                    "validated": True,
                }
                for e in entries[:limit]
            ],
        }

    def _apply(self, tx: dict[str, Any]) -> str:
        tx_type = tx["TransactionType"]
        if tx_type == "Payment":
            amount = tx["Amount"]
            if isinstance(amount, str):
                return self._apply_native_payment(tx, int(amount))
            return self._apply_issued_payment(tx, amount)
        if tx_type == "TrustSet":
            return self._apply_trust_set(tx)
        if tx_type == "AccountSet":
            if int(tx.get("SetFlag", 0)) == ASF_DEFAULT_RIPPLE:
                self.accounts[tx["Account"]].flags |= LSF_DEFAULT_RIPPLE
            return TES_SUCCESS
        return "temUNKNOWN"

    def _apply_native_payment(self, tx: dict[str, Any], drops: int) -> str:
        sender = self.accounts[tx["Account"]]
        if sender.balance_drops < drops + int(tx["Fee"]):
            return TEC_UNFUNDED_PAYMENT
        destination = self.accounts.get(tx["Destination"])
        if destination is None:
            if drops < 1_000_000:
                return TEC_NO_DST_INSUF_XRP
            destination = self.accounts.setdefault(tx["Destination"], FakeAccount(balance_drops=0))
        sender.balance_drops -= drops
        destination.balance_drops += drops
        return TES_SUCCESS

    def _apply_issued_payment(self, tx: dict[str, Any], amount: dict[str, Any]) -> str:
        sender, destination = tx["Account"], tx["Destination"]
        issuer, currency = amount["issuer"], encode_currency(amount["currency"])
        value = Decimal(amount["value"])

        sender_line = self.lines.get((sender, issuer, currency))
        destination_line = self.lines.get((destination, issuer, currency))

        if sender != issuer and (sender_line is None or sender_line.balance < value):
            return TEC_PATH_DRY
        if destination != issuer:
            if destination_line is None:
                return TEC_PATH_DRY
            if destination_line.balance + value > destination_line.limit:
                return TEC_PATH_DRY

        if sender_line is not None and sender != issuer:
            sender_line.balance -= value
        if destination_line is not None and destination != issuer:
            destination_line.balance += value
        return TES_SUCCESS

    def _apply_trust_set(self, tx: dict[str, Any]) -> str:
        limit_amount = tx["LimitAmount"]
        issuer = limit_amount["issuer"]
        if issuer == tx["Account"]:
            return "temDST_IS_SRC"
        key = (tx["Account"], issuer, encode_currency(limit_amount["currency"]))
        line = self.lines.get(key)
        if line is None:
            self.lines[key] = FakeTrustLine(
                account=tx["Account"],
                issuer=issuer,
                currency=key[2],
                limit=Decimal(limit_amount["value"]),
            )
        else:
            line.limit = Decimal(limit_amount["value"])
        return TES_SUCCESS
