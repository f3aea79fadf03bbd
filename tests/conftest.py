"""Shared fixtures: a fake ledger and real xrpl-py identities."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from renmo.keys import Identity, XrplKeyManager
from renmo.ledger.fake import FakeLedger
from renmo.ledger.submitter import Submitter
from renmo.orchestrator import PaymentOrchestrator
from renmo.trustline import TrustlineResolver

CURRENCY = "RLUSD"
XRP = 1_000_000


@pytest.fixture
def keys() -> XrplKeyManager:
    return XrplKeyManager()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def issuer(keys: XrplKeyManager, ledger: FakeLedger) -> Identity:
    identity = keys.generate()
    ledger.credit(identity.address, 1_000 * XRP)
    return identity


@pytest.fixture
def sender(keys: XrplKeyManager, ledger: FakeLedger) -> Identity:
    identity = keys.generate()
    ledger.credit(identity.address, 100 * XRP)
    return identity


@pytest.fixture
def recipient(keys: XrplKeyManager, ledger: FakeLedger) -> Identity:
    identity = keys.generate()
    ledger.credit(identity.address, 50 * XRP)
    return identity


@pytest.fixture
def submitter(ledger: FakeLedger, keys: XrplKeyManager) -> Submitter:
    return Submitter(ledger, keys, fallback_fee_drops="10", horizon=20)


@pytest.fixture
def resolver(ledger: FakeLedger, submitter: Submitter) -> TrustlineResolver:
    return TrustlineResolver(ledger, submitter, default_limit="1000000000")


@pytest.fixture
def make_orchestrator(
    submitter: Submitter, resolver: TrustlineResolver
) -> Callable[..., PaymentOrchestrator]:
    """Factory: orchestrator paying from ``active`` with RLUSD from ``issuer``."""

    def _make(active: Identity | None, issuer: Identity | None) -> PaymentOrchestrator:
        return PaymentOrchestrator(
            submitter,
            resolver,
            lambda: active,
            issued_currency=CURRENCY,
            issuer=issuer.address if issuer is not None else None,
        )

    return _make
