"""Tests for engine result classification."""

import pytest

from renmo.ledger.engine_result import (
    EngineResultClass,
    classify_engine_result,
    is_success,
    may_still_apply,
)


class TestClassify:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("tesSUCCESS", EngineResultClass.SUCCESS),
            ("tecPATH_DRY", EngineResultClass.CLAIMED),
            ("tefPAST_SEQ", EngineResultClass.LOCAL_FAILURE),
            ("telINSUF_FEE_P", EngineResultClass.LOCAL_ERROR),
            ("temBAD_FEE", EngineResultClass.MALFORMED),
            ("terQUEUED", EngineResultClass.RETRY),
            ("weird", EngineResultClass.UNKNOWN),
            (None, EngineResultClass.UNKNOWN),
        ],
    )
    def test_prefixes(self, code: str | None, expected: EngineResultClass) -> None:
        assert classify_engine_result(code) == expected


class TestPredicates:
    def test_only_tes_success_is_success(self) -> None:
        assert is_success("tesSUCCESS")
        assert not is_success("tecPATH_DRY")
        assert not is_success(None)

    @pytest.mark.parametrize("code", ["tesSUCCESS", "tecPATH_DRY", "terQUEUED"])
    def test_may_still_apply(self, code: str) -> None:
        assert may_still_apply(code)

    @pytest.mark.parametrize("code", ["tefPAST_SEQ", "temBAD_FEE", "telINSUF_FEE_P", None])
    def test_final_immediately(self, code: str | None) -> None:
        assert not may_still_apply(code)
