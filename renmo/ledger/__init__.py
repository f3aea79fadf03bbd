"""
XRPL ledger access for payroll payments.

Public API:

    Pure layer (no I/O):
        - Transaction builders: ``build_native_payment``,
          ``build_issued_payment``, ``build_trust_set``, ``build_enable_rippling``.
        - Amounts: ``parse_amount``, ``xrp_to_drops``, ``drops_to_xrp``.
        - Currency codes: ``encode_currency``, ``decode_currency``.
        - ``classify_engine_result()`` — engine result → result class.

    Protocols (for dependency injection):
        - ``LedgerGateway`` — network boundary (queries, autofill, submit).
        - ``JsonRpcTransport`` — injectable transport for JSON-RPC.

    Concrete implementations:
        - ``JsonRpcGateway`` — rippled JSON-RPC over ``HttpxTransport``.
        - ``FakeLedger`` — in-memory ledger for tests and demos.
        - ``Submitter`` — fee, horizon, sign and submit, serialized per sender.
"""

from renmo.ledger.engine_result import (
    TEC_PATH_DRY,
    TES_SUCCESS,
    EngineResultClass,
    classify_engine_result,
    is_success,
)
from renmo.ledger.fake import FakeLedger
from renmo.ledger.gateway import LedgerGateway, LedgerRequestError, SubmitResult
from renmo.ledger.jsonrpc_gateway import JsonRpcGateway
from renmo.ledger.submitter import Submitter
from renmo.ledger.transport import HttpxTransport, JsonRpcTransport
from renmo.ledger.tx import (
    build_enable_rippling,
    build_issued_payment,
    build_native_payment,
    build_trust_set,
    decode_currency,
    drops_to_xrp,
    encode_currency,
    parse_amount,
    xrp_to_drops,
)

__all__ = [
    "EngineResultClass",
    "FakeLedger",
    "HttpxTransport",
    "JsonRpcGateway",
    "JsonRpcTransport",
    "LedgerGateway",
    "LedgerRequestError",
    "SubmitResult",
    "Submitter",
    "TEC_PATH_DRY",
    "TES_SUCCESS",
    "build_enable_rippling",
    "build_issued_payment",
    "build_native_payment",
    "build_trust_set",
    "classify_engine_result",
    "decode_currency",
    "drops_to_xrp",
    "encode_currency",
    "is_success",
    "parse_amount",
    "xrp_to_drops",
]
