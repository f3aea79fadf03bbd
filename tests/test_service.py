"""
Tests for PayrollService — the whole stack over a FakeLedger.

Test plan:
- Import a wallet, pay in RLUSD, read balances and history
- Recipient without a trust line → recovery text that parses back
- Reads without an active wallet fail with NoActiveWallet
- employees(): directory records, placeholder labels, local-only wallets
- employees(): an unreachable directory still lists local wallets
- from_settings wires the production components and applies the log level
"""

import logging

import pytest

from renmo.config import Settings
from renmo.directory import AccountMetadata, InMemoryDirectory, PinataDirectory
from renmo.errors import NoActiveWalletError
from renmo.ledger.jsonrpc_gateway import JsonRpcGateway
from renmo.orchestrator import PaymentOptions
from renmo.outcome import OutcomeStatus, RecoveryPayload
from renmo.service import UNNAMED_ACCOUNT, PayrollService
from renmo.store import MemoryKeyValueStore, SqliteKeyValueStore

CURRENCY = "RLUSD"


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture
def service(ledger, keys, issuer, directory) -> PayrollService:
    settings = Settings(issuer_address=issuer.address, issued_currency=CURRENCY, _env_file=None)
    return PayrollService(
        settings,
        ledger,
        MemoryKeyValueStore(),
        key_manager=keys,
        directory=directory,
        faucet=ledger,
        sleep=_no_sleep,
    )


class TestPayments:
    @pytest.mark.asyncio
    async def test_pay_and_read_back(self, service, ledger, sender, recipient, issuer) -> None:
        ledger.add_trust_line(sender.address, issuer.address, CURRENCY, balance="300")
        ledger.add_trust_line(recipient.address, issuer.address, CURRENCY)
        await service.wallets.import_wallet(sender.secret, name="Payroll")

        outcome = await service.send_payment(recipient.address, "120")

        assert outcome.success
        balances = await service.balances()
        assert balances.address == sender.address
        assert balances.issued == "180"
        recipient_balances = await service.balances(recipient.address)
        assert recipient_balances.issued == "120"
        history = await service.history()
        assert history[0].amount == "120 RLUSD"

    @pytest.mark.asyncio
    async def test_recovery_text(self, service, ledger, sender, recipient, issuer) -> None:
        ledger.add_trust_line(sender.address, issuer.address, CURRENCY, balance="300")
        await service.wallets.import_wallet(sender.secret)

        outcome = await service.send_payment(recipient.address, "10")

        assert outcome.status == OutcomeStatus.AWAITING_MANUAL_TRUSTLINE
        text = service.recovery_text(outcome.recovery_payload)
        assert RecoveryPayload.from_text(text).recipient == recipient.address

    @pytest.mark.asyncio
    async def test_generated_wallet_can_pay_xrp(self, service, ledger, recipient) -> None:
        await service.wallets.generate_wallet()

        outcome = await service.send_payment(
            recipient.address, "5", PaymentOptions(prefer_issued_currency=False)
        )

        assert outcome.success
        assert outcome.currency == "XRP"

    @pytest.mark.asyncio
    async def test_reads_need_a_wallet(self, service) -> None:
        with pytest.raises(NoActiveWalletError):
            await service.balances()
        with pytest.raises(NoActiveWalletError):
            await service.history()


class TestEmployees:
    @pytest.mark.asyncio
    async def test_directory_and_local_wallets(self, service, directory, keys) -> None:
        listed, blank, local = keys.generate(), keys.generate(), keys.generate()
        await service.wallets.import_wallet(listed.secret, name="Alice")
        await directory.put(AccountMetadata(
            name="  ", address=blank.address, created_at="t", last_used="t", unit="ops",
        ))
        directory.fail_writes = True
        await service.wallets.import_wallet(local.secret, name="Bob")

        employees = {e.address: e for e in await service.employees()}

        assert employees[listed.address].name == "Alice"
        assert not employees[listed.address].local
        assert employees[blank.address].name == UNNAMED_ACCOUNT
        assert employees[local.address].name == "Bob"
        assert employees[local.address].local

    @pytest.mark.asyncio
    async def test_filter_uses_directory_only(self, service, directory, keys) -> None:
        tagged = keys.generate()
        await directory.put(AccountMetadata(
            name="Carol", address=tagged.address, created_at="t", last_used="t", unit="ops",
        ))
        await service.wallets.import_wallet(keys.generate().secret)

        employees = await service.employees("ops")

        assert [e.address for e in employees] == [tagged.address]

    @pytest.mark.asyncio
    async def test_unreachable_directory_keeps_local_wallets(self, service, directory, keys) -> None:
        alice = keys.generate()
        await service.wallets.import_wallet(alice.secret, name="Alice")
        directory.fail_reads = True

        employees = await service.employees()

        assert [(e.address, e.name, e.local) for e in employees] == [(alice.address, "Alice", True)]

    @pytest.mark.asyncio
    async def test_unreachable_directory_with_filter(self, service, directory) -> None:
        directory.fail_reads = True
        assert await service.employees("ops") == []


class TestFromSettings:
    @pytest.fixture(autouse=True)
    def _restore_renmo_logger(self):
        yield
        logger = logging.getLogger("renmo")
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    def test_applies_log_level(self) -> None:
        PayrollService.from_settings(Settings(log_level="DEBUG", _env_file=None))
        logger = logging.getLogger("renmo")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_production_stack(self) -> None:
        settings = Settings(pinata_jwt="jwt-token", _env_file=None)
        service = PayrollService.from_settings(settings)

        assert isinstance(service.gateway, JsonRpcGateway)
        assert isinstance(service.directory, PinataDirectory)
        assert service.gateway.url == settings.ledger_url

    def test_without_pinning_token(self) -> None:
        service = PayrollService.from_settings(Settings(pinata_jwt=None, _env_file=None))
        assert service.directory is None

    def test_store_is_sqlite(self, tmp_path) -> None:
        settings = Settings(wallet_db_path=str(tmp_path / "w.db"), _env_file=None)
        service = PayrollService.from_settings(settings)
        assert isinstance(service.wallets._store, SqliteKeyValueStore)
