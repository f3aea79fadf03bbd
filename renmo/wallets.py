"""
Wallet set — the employer's wallets and which one is active.

Wallets are persisted through a KeyValueStore under a single key, in the
order they were added. At most one wallet is active; the payment
orchestrator signs with the active wallet's identity.

Rules:
    - Importing a secret that does not decode raises InvalidSecretError.
      Importing an address already in the set raises
      WalletAlreadyImportedError. Either way the set is unchanged.
    - A generated wallet is added only after its funding has landed.
    - Removing the active wallet promotes the first remaining wallet, or
      leaves none active.
    - Directory metadata is best-effort. A failed write is logged and
      reported in ``WalletOperationReport.metadata_error``; the wallet
      operation itself still completes.

Stored format (key ``renmo:wallets``):
    {
      "active": "r...",
      "wallets": [
        {"address": "r...", "displayName": "Account 1", "secret": "s...",
         "createdAt": "...", "lastUsedAt": "..."}
      ]
    }
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from renmo.directory import AccountDirectory, AccountMetadata, with_last_used
from renmo.errors import (
    MetadataPersistenceError,
    WalletAlreadyImportedError,
    WalletNotFoundError,
)
from renmo.funding import Faucet, Sleep, fund_and_wait
from renmo.keys import Identity, KeyManager
from renmo.ledger.gateway import LedgerGateway
from renmo.logging_setup import mask_secret
from renmo.store import KeyValueStore

logger = logging.getLogger(__name__)

WALLETS_KEY = "renmo:wallets"


def _now_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


@dataclass(frozen=True)
class WalletRecord:
    """One wallet in the set. ``secret`` never appears in ``repr``."""

    address: str
    display_name: str
    secret: str = field(repr=False)
    created_at: str = ""
    last_used_at: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "address": self.address,
            "displayName": self.display_name,
            "secret": self.secret,
            "createdAt": self.created_at,
            "lastUsedAt": self.last_used_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletRecord:
        return cls(
            address=data["address"],
            display_name=data["displayName"],
            secret=data["secret"],
            created_at=data.get("createdAt", ""),
            last_used_at=data.get("lastUsedAt", ""),
        )

    def view(self, *, reveal: bool = False) -> dict[str, str]:
        """Display form. The secret is masked unless ``reveal`` is set."""
        view = self.to_dict()
        view["secret"] = self.secret if reveal else mask_secret(self.secret)
        return view


@dataclass(frozen=True)
class WalletOperationReport:
    """What a wallet operation did.

    Attributes:
        address: The wallet the operation acted on.
        active_address: The active wallet afterwards (None if none).
        metadata_error: Set when the best-effort directory write failed.
        funded_drops: XRP balance after funding (generate only).
    """

    address: str
    active_address: str | None
    metadata_error: str | None = None
    funded_drops: str | None = None


class WalletSet:
    """Ordered wallet set with one optional active wallet.

    Args:
        key_manager: Derives and generates identities.
        store: Persistence for the set.
        directory: Optional metadata directory.
        faucet: Funding source for ``generate_wallet``.
        gateway: Ledger used to wait for funding.
        funding_interval: Seconds between funding polls.
        funding_max_attempts: Maximum funding polls.
        sleep: Awaitable sleep, replaceable in tests.
        clock: Returns the current RFC3339 timestamp.
    """

    def __init__(
        self,
        key_manager: KeyManager,
        store: KeyValueStore,
        *,
        directory: AccountDirectory | None = None,
        faucet: Faucet | None = None,
        gateway: LedgerGateway | None = None,
        funding_interval: float = 3.0,
        funding_max_attempts: int = 20,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], str] = _now_utc,
    ) -> None:
        self._keys = key_manager
        self._store = store
        self._directory = directory
        self._faucet = faucet
        self._gateway = gateway
        self._funding_interval = funding_interval
        self._funding_max_attempts = funding_max_attempts
        self._sleep = sleep
        self._clock = clock
        self._wallets: list[WalletRecord] = []
        self._active: str | None = None
        self._load()

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._wallets)

    def __contains__(self, address: object) -> bool:
        return any(w.address == address for w in self._wallets)

    @property
    def active(self) -> WalletRecord | None:
        if self._active is None:
            return None
        return self._find(self._active)

    def active_identity(self) -> Identity | None:
        """Signing identity of the active wallet, or None."""
        record = self.active
        if record is None:
            return None
        return self._keys.from_secret(record.secret)

    def records(self, *, reveal: bool = False) -> list[dict[str, str]]:
        return [w.view(reveal=reveal) for w in self._wallets]

    def secret_for(self, address: str) -> str:
        """Explicitly reveal a wallet's secret.

        Raises:
            WalletNotFoundError: If the address is not in the set.
        """
        return self._require(address).secret

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------

    async def import_wallet(self, secret: str, name: str | None = None) -> WalletOperationReport:
        """Add a wallet from its secret and make it active.

        Raises:
            InvalidSecretError: The secret does not decode.
            WalletAlreadyImportedError: The address is already in the set.
        """
        identity = self._keys.from_secret(secret)
        if identity.address in self:
            raise WalletAlreadyImportedError(
                "This wallet has already been imported",
                details={"address": identity.address},
            )
        record = self._add(identity, name)
        logger.info("Imported wallet %s (%s)", record.address, record.display_name)
        metadata_error = await self._publish(record)
        return WalletOperationReport(
            address=record.address,
            active_address=self._active,
            metadata_error=metadata_error,
        )

    async def generate_wallet(self, name: str | None = None) -> WalletOperationReport:
        """Create a new keypair, fund it from the faucet, and make it active.

        Raises:
            FundingTimedOutError: Funding never landed; the set is unchanged.
            ConnectionFailedError: The faucet or ledger was unreachable.
        """
        if self._faucet is None or self._gateway is None:
            raise RuntimeError("generate_wallet needs a faucet and a ledger gateway")

        identity = self._keys.generate()
        logger.info("Generated wallet %s, requesting funding", identity.address)
        funded = await fund_and_wait(
            self._faucet,
            self._gateway,
            identity.address,
            interval=self._funding_interval,
            max_attempts=self._funding_max_attempts,
            sleep=self._sleep,
        )
        record = self._add(identity, name)
        metadata_error = await self._publish(record)
        return WalletOperationReport(
            address=record.address,
            active_address=self._active,
            metadata_error=metadata_error,
            funded_drops=funded,
        )

    async def switch(self, address: str) -> WalletOperationReport:
        """Make ``address`` the active wallet.

        Raises:
            WalletNotFoundError: If the address is not in the set.
        """
        record = self._require(address)
        now = self._clock()
        updated = replace(record, last_used_at=now)
        self._replace(updated)
        self._active = address
        self._save()
        logger.info("Switched active wallet to %s", address)

        metadata_error = None
        if self._directory is not None:
            try:
                existing = await self._directory.get(address)
                if existing is None:
                    await self._directory.put(_metadata_for(updated))
                else:
                    await self._directory.put(with_last_used(existing, now))
            except MetadataPersistenceError as exc:
                logger.warning("Could not update lastUsed for %s: %s", address, exc)
                metadata_error = str(exc)

        return WalletOperationReport(
            address=address, active_address=self._active, metadata_error=metadata_error
        )

    async def remove(self, address: str) -> WalletOperationReport:
        """Remove a wallet. The first remaining wallet becomes active if needed.

        Raises:
            WalletNotFoundError: If the address is not in the set.
        """
        self._require(address)
        self._wallets = [w for w in self._wallets if w.address != address]
        if self._active == address:
            self._active = self._wallets[0].address if self._wallets else None
        self._save()
        logger.info("Removed wallet %s (active now %s)", address, self._active)

        metadata_error = None
        if self._directory is not None:
            try:
                await self._directory.remove(address)
            except MetadataPersistenceError as exc:
                logger.warning("Could not unpin metadata for %s: %s", address, exc)
                metadata_error = str(exc)

        return WalletOperationReport(
            address=address, active_address=self._active, metadata_error=metadata_error
        )

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _add(self, identity: Identity, name: str | None) -> WalletRecord:
        now = self._clock()
        record = WalletRecord(
            address=identity.address,
            display_name=name or f"Account {len(self._wallets) + 1}",
            secret=identity.secret,
            created_at=now,
            last_used_at=now,
        )
        self._wallets.append(record)
        self._active = record.address
        self._save()
        return record

    async def _publish(self, record: WalletRecord) -> str | None:
        if self._directory is None:
            return None
        try:
            await self._directory.put(_metadata_for(record))
        except MetadataPersistenceError as exc:
            logger.warning("Could not save metadata for %s: %s", record.address, exc)
            return str(exc)
        return None

    def _find(self, address: str) -> WalletRecord | None:
        for wallet in self._wallets:
            if wallet.address == address:
                return wallet
        return None

    def _require(self, address: str) -> WalletRecord:
        record = self._find(address)
        if record is None:
            raise WalletNotFoundError("Wallet not found", details={"address": address})
        return record

    def _replace(self, record: WalletRecord) -> None:
        self._wallets = [record if w.address == record.address else w for w in self._wallets]

    def _load(self) -> None:
        data = self._store.get(WALLETS_KEY)
        if not isinstance(data, dict):
            return
        self._wallets = [WalletRecord.from_dict(w) for w in data.get("wallets", [])]
        active = data.get("active")
        self._active = active if active in self else None

    def _save(self) -> None:
        self._store.put(
            WALLETS_KEY,
            {"active": self._active, "wallets": [w.to_dict() for w in self._wallets]},
        )


def _metadata_for(record: WalletRecord) -> AccountMetadata:
    return AccountMetadata(
        name=record.display_name,
        address=record.address,
        created_at=record.created_at,
        last_used=record.last_used_at,
    )
