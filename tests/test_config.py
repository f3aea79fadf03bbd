"""Tests for Settings loading and validation."""

import pytest
from pydantic import ValidationError

from renmo.config import TESTNET_RLUSD_ISSUER, Settings


class TestDefaults:
    def test_defaults(self, monkeypatch) -> None:
        for name in ("RENMO_LEDGER_HORIZON", "RENMO_ISSUER_ADDRESS", "RENMO_FALLBACK_FEE_DROPS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.ledger_horizon == 20
        assert settings.fallback_fee_drops == "10"
        assert settings.default_trust_limit == "1000000000"
        assert settings.issuer_address == TESTNET_RLUSD_ISSUER
        assert settings.drops_per_xrp == 1_000_000
        assert settings.funding_max_attempts == 20
        assert settings.funding_poll_interval == 3.0
        assert settings.pinata_jwt is None


class TestEnvironment:
    def test_prefixed_variables(self, monkeypatch) -> None:
        monkeypatch.setenv("RENMO_LEDGER_HORIZON", "5")
        monkeypatch.setenv("RENMO_DEFAULT_TRUST_LIMIT", "2500")
        monkeypatch.setenv("RENMO_PINATA_JWT", "secret-jwt")
        settings = Settings(_env_file=None)
        assert settings.ledger_horizon == 5
        assert settings.default_trust_limit == "2500"
        assert settings.pinata_jwt.get_secret_value() == "secret-jwt"
        assert "secret-jwt" not in repr(settings)


class TestValidation:
    @pytest.mark.parametrize("value", ["0", "-1", "abc"])
    def test_trust_limit(self, value: str) -> None:
        with pytest.raises(ValidationError):
            Settings(default_trust_limit=value, _env_file=None)

    @pytest.mark.parametrize("field", ["ledger_horizon", "drops_per_xrp", "funding_max_attempts"])
    def test_positive_ints(self, field: str) -> None:
        with pytest.raises(ValidationError):
            Settings(**{field: 0}, _env_file=None)

    @pytest.mark.parametrize("code", ["XRP", "AB", "X" * 21])
    def test_bad_currency(self, code: str) -> None:
        with pytest.raises(ValidationError):
            Settings(issued_currency=code, _env_file=None)

    def test_hex_currency_is_uppercased(self) -> None:
        settings = Settings(issued_currency="524c555344000000000000000000000000000000", _env_file=None)
        assert settings.issued_currency == "524C555344000000000000000000000000000000"
