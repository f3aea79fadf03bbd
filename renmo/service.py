"""
PayrollService — the façade the UI talks to.

Wires the ledger gateway, submitter, trust-line resolver, payment
orchestrator, wallet set and account directory from one ``Settings``
object. Every collaborator can be injected instead, which is how the
tests run the whole stack against a FakeLedger.

Usage:
    settings = Settings()
    service = PayrollService.from_settings(settings)
    await service.wallets.import_wallet("s...", name="Payroll")
    outcome = await service.send_payment("r...", "25")
    if outcome.recovery_payload is not None:
        show_qr(service.recovery_text(outcome.recovery_payload))
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from renmo.config import Settings
from renmo.directory import AccountDirectory, AccountMetadata, PinataDirectory
from renmo.errors import MetadataPersistenceError, NoActiveWalletError
from renmo.funding import Faucet, HttpFaucet, Sleep
from renmo.keys import KeyManager, XrplKeyManager
from renmo.ledger.gateway import LedgerGateway
from renmo.ledger.jsonrpc_gateway import JsonRpcGateway
from renmo.ledger.submitter import Submitter
from renmo.ledger.transport import HttpxTransport
from renmo.logging_setup import setup_logging
from renmo.orchestrator import AddressRules, PaymentOptions, PaymentOrchestrator
from renmo.outcome import PaymentOutcome, RecoveryPayload
from renmo.reads import Balances, HistoryEntry, get_balances, get_transaction_history
from renmo.store import KeyValueStore, SqliteKeyValueStore
from renmo.trustline import TrustlineResolver
from renmo.wallets import WalletSet

logger = logging.getLogger(__name__)

UNNAMED_ACCOUNT = "Unnamed account"


@dataclass(frozen=True)
class Employee:
    """A payable account as listed in the UI."""

    address: str
    name: str
    unit: str | None = None
    last_used: str | None = None
    local: bool = False


class PayrollService:
    """Send payroll payments and manage the wallets that fund them."""

    def __init__(
        self,
        settings: Settings,
        gateway: LedgerGateway,
        store: KeyValueStore,
        *,
        key_manager: KeyManager | None = None,
        directory: AccountDirectory | None = None,
        faucet: Faucet | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.directory = directory
        key_manager = key_manager or XrplKeyManager()

        self.submitter = Submitter(
            gateway,
            key_manager,
            fallback_fee_drops=settings.fallback_fee_drops,
            horizon=settings.ledger_horizon,
        )
        self.resolver = TrustlineResolver(
            gateway,
            self.submitter,
            default_limit=settings.default_trust_limit,
            enable_rippling=settings.enable_default_ripple,
        )
        self.wallets = WalletSet(
            key_manager,
            store,
            directory=directory,
            faucet=faucet,
            gateway=gateway,
            funding_interval=settings.funding_poll_interval,
            funding_max_attempts=settings.funding_max_attempts,
            sleep=sleep,
        )
        self.orchestrator = PaymentOrchestrator(
            self.submitter,
            self.resolver,
            self.wallets.active_identity,
            issued_currency=settings.issued_currency,
            issuer=settings.issuer_address,
            drops_per_xrp=settings.drops_per_xrp,
            address_rules=AddressRules(
                prefix=settings.address_prefix,
                min_length=settings.address_min_length,
                max_length=settings.address_max_length,
            ),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> PayrollService:
        """Build the production stack: JSON-RPC ledger, SQLite, Pinata."""
        setup_logging(settings.log_level)
        gateway = JsonRpcGateway(
            settings.ledger_url, HttpxTransport(timeout=settings.http_timeout)
        )
        store = SqliteKeyValueStore(settings.wallet_db_path)
        directory = None
        if settings.pinata_jwt is not None:
            directory = PinataDirectory(
                store,
                jwt=settings.pinata_jwt.get_secret_value(),
                base_url=settings.pinata_base_url,
                gateway_url=settings.pinata_gateway_url,
                timeout=settings.http_timeout,
            )
        else:
            logger.warning("No pinning-service token configured; account metadata is disabled")
        faucet = HttpFaucet(settings.faucet_url, timeout=settings.http_timeout)
        return cls(settings, gateway, store, directory=directory, faucet=faucet)

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    async def connect(self) -> None:
        await self.gateway.connect()

    async def aclose(self) -> None:
        await self.gateway.disconnect()

    # -----------------------------------------------------------------
    # Payments
    # -----------------------------------------------------------------

    async def send_payment(
        self,
        destination: str,
        amount: str,
        options: PaymentOptions | None = None,
    ) -> PaymentOutcome:
        return await self.orchestrator.send_payment(destination, amount, options)

    @staticmethod
    def recovery_text(payload: RecoveryPayload) -> str:
        """Text to render as a QR code for the recipient."""
        return payload.to_text()

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    async def balances(self, address: str | None = None) -> Balances:
        """Balances of ``address``, or of the active wallet.

        Raises:
            NoActiveWalletError: No address given and no wallet is active.
        """
        return await get_balances(
            self.gateway,
            self._address_or_active(address),
            currency=self.settings.issued_currency,
            issuer=self.settings.issuer_address,
            drops_per_xrp=self.settings.drops_per_xrp,
        )

    async def history(self, address: str | None = None, limit: int = 20) -> list[HistoryEntry]:
        return await get_transaction_history(
            self.gateway,
            self._address_or_active(address),
            limit,
            drops_per_xrp=self.settings.drops_per_xrp,
        )

    async def employees(self, filter_tag: str | None = None) -> list[Employee]:
        """Accounts from the directory, plus local wallets it does not know.

        Records without a usable name get a placeholder label. Local
        wallets are only added when no tag filter is given. An unreachable
        directory is logged and treated as an empty listing.
        """
        records: list[AccountMetadata] = []
        if self.directory is not None:
            try:
                records = await self.directory.list(filter_tag)
            except MetadataPersistenceError as exc:
                logger.warning("Directory listing unavailable, showing local wallets only: %s", exc)

        listed: list[Employee] = []
        for record in records:
            listed.append(Employee(
                address=record.address,
                name=record.name.strip() or UNNAMED_ACCOUNT,
                unit=record.unit,
                last_used=record.last_used,
            ))

        if filter_tag is None:
            known = {e.address for e in listed}
            for wallet in self.wallets.records():
                if wallet["address"] not in known:
                    listed.append(Employee(
                        address=wallet["address"],
                        name=wallet["displayName"] or UNNAMED_ACCOUNT,
                        last_used=wallet["lastUsedAt"] or None,
                        local=True,
                    ))
        return listed

    def _address_or_active(self, address: str | None) -> str:
        if address is not None:
            return address
        active = self.wallets.active
        if active is None:
            raise NoActiveWalletError("No wallet connected")
        return active.address
