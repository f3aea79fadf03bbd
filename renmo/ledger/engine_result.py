"""
XRPL engine result classification.

Keeps the mapping coarse and conservative: result codes are grouped by
prefix, and the handful of codes the payment flow branches on get named
constants. Unknown codes classify as UNKNOWN rather than guessing.

XRPL engine result prefixes:
    - tes: success (tesSUCCESS)
    - tec: claimed cost (tecPATH_DRY, tecNO_DST, etc.) — tx included but "failed"
    - tef: local failure (tefPAST_SEQ, etc.) — not forwarded
    - tel: local error (telINSUF_FEE_P, etc.) — not forwarded
    - tem: malformed (temBAD_FEE, etc.) — not forwarded
    - ter: retry (terQUEUED, etc.) — may still apply later

Reference:
    https://xrpl.org/docs/references/protocol/transactions/transaction-results
"""

from __future__ import annotations

from enum import StrEnum

TES_SUCCESS = "tesSUCCESS"
TEC_PATH_DRY = "tecPATH_DRY"
TEC_NO_LINE = "tecNO_LINE"
TEC_UNFUNDED_PAYMENT = "tecUNFUNDED_PAYMENT"
TEC_NO_DST_INSUF_XRP = "tecNO_DST_INSUF_XRP"
TEF_MAX_LEDGER = "tefMAX_LEDGER"
TER_NO_ACCOUNT = "terNO_ACCOUNT"


class EngineResultClass(StrEnum):
    """Coarse category of an engine result code."""

    SUCCESS = "SUCCESS"
    CLAIMED = "CLAIMED"
    LOCAL_FAILURE = "LOCAL_FAILURE"
    LOCAL_ERROR = "LOCAL_ERROR"
    MALFORMED = "MALFORMED"
    RETRY = "RETRY"
    UNKNOWN = "UNKNOWN"


_PREFIX_MAP: dict[str, EngineResultClass] = {
    "tec": EngineResultClass.CLAIMED,
    "tef": EngineResultClass.LOCAL_FAILURE,
    "tel": EngineResultClass.LOCAL_ERROR,
    "tem": EngineResultClass.MALFORMED,
    "ter": EngineResultClass.RETRY,
}


def classify_engine_result(engine_result: str | None) -> EngineResultClass:
    """Map an XRPL engine result code to its coarse category.

    Args:
        engine_result: XRPL engine result string (e.g. "tesSUCCESS",
            "temBAD_FEE"). None means the engine never responded.

    Returns:
        EngineResultClass. UNKNOWN for unrecognized codes or None.
    """
    if engine_result is None:
        return EngineResultClass.UNKNOWN
    if engine_result == TES_SUCCESS:
        return EngineResultClass.SUCCESS

    for prefix, category in _PREFIX_MAP.items():
        if engine_result.startswith(prefix):
            return category

    return EngineResultClass.UNKNOWN


def is_success(engine_result: str | None) -> bool:
    """Only tesSUCCESS is deterministic success."""
    return engine_result == TES_SUCCESS


def may_still_apply(engine_result: str | None) -> bool:
    """Whether a preliminary submit result can still end in a ledger.

    tes/tec/ter results are (or may be) included in a validated ledger,
    so the final outcome has to be awaited. tef/tel/tem results are
    never forwarded and are final as soon as the node answers.
    """
    return classify_engine_result(engine_result) in (
        EngineResultClass.SUCCESS,
        EngineResultClass.CLAIMED,
        EngineResultClass.RETRY,
    )
