"""
Tests for JsonRpcGateway — canned JSON-RPC responses, no network.

Uses a ScriptedTransport that answers each method from a queue of
pre-built response dicts, exercising the parsing and waiting logic in
jsonrpc_gateway.py.

Test plan:
- request: result unwrapped, error status → LedgerRequestError,
  missing result → malformedResponse, transport errors → ConnectionFailedError
- autofill: missing fields filled from account_info/fee/ledger_current,
  present fields left alone
- connect/disconnect: server_info check, transport closed
- submit_and_wait: final preliminary codes return immediately, validated
  result parsed from tx, txnNotFound keeps waiting, expiry past
  LastLedgerSequence → tefMAX_LEDGER, submit error → SERVER_ERROR,
  ledger errors while waiting → SERVER_ERROR with the hash kept
- send_payment over this gateway returns an outcome, never raises
"""

from typing import Any

import httpx
import pytest

from renmo.errors import ConnectionFailedError, FailureReason
from renmo.ledger.gateway import SERVER_ERROR, LedgerRequestError
from renmo.ledger.jsonrpc_gateway import JsonRpcGateway
from renmo.ledger.submitter import Submitter
from renmo.orchestrator import PaymentOptions, PaymentOrchestrator
from renmo.trustline import TrustlineResolver

URL = "https://xrpl.test:51234"

# ---------------------------------------------------------------------------
# Fake transports
# ---------------------------------------------------------------------------


class ScriptedTransport:
    """Answers each JSON-RPC method from its own response queue.

    The last response for a method is repeated once the queue runs dry.
    """

    def __init__(self, responses: dict[str, list[dict[str, Any]]]) -> None:
        self._responses = {method: list(queue) for method, queue in responses.items()}
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(payload)
        queue = self._responses[payload["method"]]
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def aclose(self) -> None:
        self.closed = True

    def methods(self) -> list[str]:
        return [call["method"] for call in self.calls]


class ErrorTransport:
    """Raises an exception on post_json to simulate transport failures."""

    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        raise self._exc

    async def aclose(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Canned responses
# ---------------------------------------------------------------------------


def _ok(**result: Any) -> dict[str, Any]:
    return {"result": {"status": "success", **result}}


def _error(error: str, message: str | None = None) -> dict[str, Any]:
    result: dict[str, Any] = {"status": "error", "error": error}
    if message:
        result["error_message"] = message
    return {"result": result}


def _submitted(code: str, tx_hash: str = "A" * 64) -> dict[str, Any]:
    return _ok(
        engine_result=code,
        engine_result_message="canned",
        tx_json={"hash": tx_hash, "TransactionType": "Payment"},
    )


def _validated(code: str, tx_hash: str = "A" * 64, ledger_index: int = 105) -> dict[str, Any]:
    return _ok(hash=tx_hash, validated=True, ledger_index=ledger_index, meta={"TransactionResult": code})


@pytest.fixture
def signed_blob(keys, sender) -> str:
    tx = {
        "TransactionType": "Payment",
        "Account": sender.address,
        "Destination": "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe",
        "Amount": "1000000",
        "Fee": "12",
        "Sequence": 3,
        "LastLedgerSequence": 120,
    }
    return keys.sign(tx, sender).signed_tx_blob_hex


# ---------------------------------------------------------------------------
# request
# ---------------------------------------------------------------------------


class TestRequest:
    @pytest.mark.asyncio
    async def test_unwraps_result(self) -> None:
        transport = ScriptedTransport({"ledger_current": [_ok(ledger_current_index=77)]})
        gateway = JsonRpcGateway(URL, transport)

        result = await gateway.request("ledger_current")

        assert result["ledger_current_index"] == 77
        assert transport.calls[0] == {"method": "ledger_current", "params": [{}], "id": 1}

    @pytest.mark.asyncio
    async def test_params_and_ids(self) -> None:
        transport = ScriptedTransport({"account_info": [_ok(account_data={})]})
        gateway = JsonRpcGateway(URL, transport)

        await gateway.request("account_info", account="rX", ledger_index="validated")
        await gateway.request("account_info", account="rY")

        assert transport.calls[0]["params"] == [{"account": "rX", "ledger_index": "validated"}]
        assert [call["id"] for call in transport.calls] == [1, 2]

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        transport = ScriptedTransport({"account_info": [_error("actNotFound", "Account not found.")]})
        gateway = JsonRpcGateway(URL, transport)

        with pytest.raises(LedgerRequestError) as excinfo:
            await gateway.request("account_info", account="rX")

        assert excinfo.value.error == "actNotFound"
        assert excinfo.value.account_not_found
        assert excinfo.value.command == "account_info"
        assert str(excinfo.value) == "Account not found."

    @pytest.mark.asyncio
    async def test_missing_result(self) -> None:
        transport = ScriptedTransport({"fee": [{"unexpected": True}]})
        gateway = JsonRpcGateway(URL, transport)

        with pytest.raises(LedgerRequestError) as excinfo:
            await gateway.request("fee")

        assert excinfo.value.error == "malformedResponse"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc",
        [httpx.ConnectError("refused"), httpx.ReadTimeout("slow"), ValueError("not json")],
    )
    async def test_transport_errors(self, exc: Exception) -> None:
        gateway = JsonRpcGateway(URL, ErrorTransport(exc))

        with pytest.raises(ConnectionFailedError) as excinfo:
            await gateway.request("fee")

        assert excinfo.value.details["command"] == "fee"


# ---------------------------------------------------------------------------
# autofill
# ---------------------------------------------------------------------------


class TestAutofill:
    @pytest.mark.asyncio
    async def test_fills_missing_fields(self) -> None:
        transport = ScriptedTransport({
            "account_info": [_ok(account_data={"Sequence": 7})],
            "fee": [_ok(drops={"base_fee": "15"})],
            "ledger_current": [_ok(ledger_current_index=100)],
        })
        gateway = JsonRpcGateway(URL, transport)

        prepared = await gateway.autofill({"TransactionType": "Payment", "Account": "rX"})

        assert prepared["Sequence"] == 7
        assert prepared["Fee"] == "15"
        assert prepared["LastLedgerSequence"] == 120

    @pytest.mark.asyncio
    async def test_keeps_present_fields(self) -> None:
        transport = ScriptedTransport({"account_info": [_ok(account_data={"Sequence": 7})]})
        gateway = JsonRpcGateway(URL, transport)

        prepared = await gateway.autofill({
            "TransactionType": "Payment",
            "Account": "rX",
            "Fee": "10",
            "LastLedgerSequence": 55,
        })

        assert prepared["Fee"] == "10"
        assert prepared["LastLedgerSequence"] == 55
        assert transport.methods() == ["account_info"]


# ---------------------------------------------------------------------------
# connect / disconnect
# ---------------------------------------------------------------------------


class TestConnection:
    @pytest.mark.asyncio
    async def test_connect_checks_server(self) -> None:
        transport = ScriptedTransport({"server_info": [_ok(info={})]})
        gateway = JsonRpcGateway(URL, transport)

        await gateway.connect()
        await gateway.connect()

        assert gateway.is_connected
        assert transport.methods() == ["server_info"]

    @pytest.mark.asyncio
    async def test_disconnect_closes_transport(self) -> None:
        transport = ScriptedTransport({"server_info": [_ok(info={})]})
        gateway = JsonRpcGateway(URL, transport)

        await gateway.connect()
        await gateway.disconnect()

        assert not gateway.is_connected
        assert transport.closed

    @pytest.mark.asyncio
    async def test_connect_failure(self) -> None:
        gateway = JsonRpcGateway(URL, ErrorTransport(httpx.ConnectError("refused")))
        with pytest.raises(ConnectionFailedError):
            await gateway.connect()
        assert not gateway.is_connected


# ---------------------------------------------------------------------------
# submit_and_wait
# ---------------------------------------------------------------------------


class TestSubmitAndWait:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["temBAD_FEE", "tefPAST_SEQ", "telINSUF_FEE_P"])
    async def test_final_preliminary_result(self, signed_blob, code) -> None:
        transport = ScriptedTransport({"submit": [_submitted(code)]})
        gateway = JsonRpcGateway(URL, transport, poll_interval=0)

        result = await gateway.submit_and_wait(signed_blob)

        assert result.result_code == code
        assert result.tx_hash == "A" * 64
        assert not result.validated
        assert transport.methods() == ["submit"]

    @pytest.mark.asyncio
    async def test_waits_for_validation(self, signed_blob) -> None:
        transport = ScriptedTransport({
            "submit": [_submitted("tesSUCCESS")],
            "tx": [_error("txnNotFound"), _ok(validated=False), _validated("tesSUCCESS")],
            "ledger_current": [_ok(ledger_current_index=101)],
        })
        gateway = JsonRpcGateway(URL, transport, poll_interval=0)

        result = await gateway.submit_and_wait(signed_blob)

        assert result.result_code == "tesSUCCESS"
        assert result.validated
        assert result.ledger_index == 105
        assert transport.methods().count("tx") == 3

    @pytest.mark.asyncio
    async def test_validated_claimed_code(self, signed_blob) -> None:
        transport = ScriptedTransport({
            "submit": [_submitted("tesSUCCESS")],
            "tx": [_validated("tecPATH_DRY")],
            "ledger_current": [_ok(ledger_current_index=101)],
        })
        gateway = JsonRpcGateway(URL, transport, poll_interval=0)

        result = await gateway.submit_and_wait(signed_blob)

        assert result.result_code == "tecPATH_DRY"
        assert result.validated

    @pytest.mark.asyncio
    async def test_expires_past_last_ledger(self, signed_blob) -> None:
        transport = ScriptedTransport({
            "submit": [_submitted("terQUEUED")],
            "tx": [_error("txnNotFound")],
            "ledger_current": [_ok(ledger_current_index=119), _ok(ledger_current_index=121)],
        })
        gateway = JsonRpcGateway(URL, transport, poll_interval=0)

        result = await gateway.submit_and_wait(signed_blob)

        assert result.result_code == "tefMAX_LEDGER"
        assert not result.validated
        assert "120" in (result.detail or "")

    @pytest.mark.asyncio
    async def test_submit_error(self, signed_blob) -> None:
        transport = ScriptedTransport({"submit": [_error("invalidTransaction")]})
        gateway = JsonRpcGateway(URL, transport, poll_interval=0)

        result = await gateway.submit_and_wait(signed_blob)

        assert result.result_code is None
        assert result.error_code == SERVER_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", ["tooBusy", "slowDown", "internal"])
    async def test_tx_error_after_submit_keeps_hash(self, signed_blob, error) -> None:
        transport = ScriptedTransport({
            "submit": [_submitted("tesSUCCESS")],
            "tx": [_error(error)],
        })
        gateway = JsonRpcGateway(URL, transport, poll_interval=0)

        result = await gateway.submit_and_wait(signed_blob)

        assert result.result_code is None
        assert result.error_code == SERVER_ERROR
        assert result.tx_hash == "A" * 64
        assert error in (result.detail or "")

    @pytest.mark.asyncio
    async def test_ledger_current_error_while_waiting(self, signed_blob) -> None:
        transport = ScriptedTransport({
            "submit": [_submitted("terQUEUED")],
            "tx": [_error("txnNotFound")],
            "ledger_current": [_error("noCurrent")],
        })
        gateway = JsonRpcGateway(URL, transport, poll_interval=0)

        result = await gateway.submit_and_wait(signed_blob)

        assert result.error_code == SERVER_ERROR
        assert result.tx_hash == "A" * 64
        assert "noCurrent" in (result.detail or "")


# ---------------------------------------------------------------------------
# send_payment over the JSON-RPC gateway
# ---------------------------------------------------------------------------


DESTINATION = "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"


class TestPaymentOverJsonRpc:
    def _orchestrator(self, keys, sender, transport: ScriptedTransport) -> PaymentOrchestrator:
        gateway = JsonRpcGateway(URL, transport, poll_interval=0)
        submitter = Submitter(gateway, keys)
        return PaymentOrchestrator(
            submitter,
            TrustlineResolver(gateway, submitter),
            lambda: sender,
        )

    @pytest.mark.asyncio
    async def test_busy_node_after_submit_is_a_typed_failure(self, keys, sender) -> None:
        transport = ScriptedTransport({
            "fee": [_ok(drops={"base_fee": "12"})],
            "ledger_current": [_ok(ledger_current_index=100)],
            "account_info": [_ok(account_data={"Sequence": 4})],
            "submit": [_submitted("tesSUCCESS", tx_hash="B" * 64)],
            "tx": [_error("tooBusy")],
        })
        orchestrator = self._orchestrator(keys, sender, transport)

        outcome = await orchestrator.send_payment(
            DESTINATION, "1", PaymentOptions(prefer_issued_currency=False)
        )

        assert not outcome.success
        assert outcome.reason == FailureReason.LEDGER_REJECTED
        assert outcome.tx_hash == "B" * 64
        assert "tooBusy" in (outcome.detail or "")
        assert transport.methods().count("submit") == 1

    @pytest.mark.asyncio
    async def test_validated_payment(self, keys, sender) -> None:
        transport = ScriptedTransport({
            "fee": [_ok(drops={"base_fee": "12"})],
            "ledger_current": [_ok(ledger_current_index=100)],
            "account_info": [_ok(account_data={"Sequence": 4})],
            "submit": [_submitted("tesSUCCESS", tx_hash="B" * 64)],
            "tx": [_validated("tesSUCCESS", tx_hash="B" * 64)],
        })
        orchestrator = self._orchestrator(keys, sender, transport)

        outcome = await orchestrator.send_payment(
            DESTINATION, "1", PaymentOptions(prefer_issued_currency=False)
        )

        assert outcome.success
        assert outcome.tx_hash == "B" * 64
