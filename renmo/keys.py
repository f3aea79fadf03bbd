"""
Key management — the secrets boundary.

The payment layer never handles private keys directly. It passes an
unsigned transaction dict and an ``Identity`` to a ``KeyManager`` and
gets back a signed blob.

Concrete implementations:
    - XrplKeyManager (xrpl-py ``Wallet``)
    - Test doubles implementing the same three methods

``Identity.secret`` is excluded from ``repr`` so that identities can be
logged or shown in tracebacks without leaking the seed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from xrpl import XRPLException
from xrpl.models.transactions.transaction import Transaction
from xrpl.transaction import sign
from xrpl.wallet import Wallet

from renmo.errors import InvalidSecretError


@dataclass(frozen=True)
class Identity:
    """A signing identity derived from a secret.

    Attributes:
        address: Classic r-address. Safe to log and display.
        public_key: Hex public key. Safe to log; used as key id.
        secret: Seed the identity was derived from. Never logged.
    """

    address: str
    public_key: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class SignResult:
    """Result of signing a transaction.

    Attributes:
        signed_tx_blob_hex: Hex-encoded signed transaction blob, ready for
            ``LedgerGateway.submit_and_wait``.
        tx_hash: Transaction hash computed during signing.
        key_id: Public identifier of the signing key. Never a secret.
    """

    signed_tx_blob_hex: str
    tx_hash: str
    key_id: str


@runtime_checkable
class KeyManager(Protocol):
    """Derive, generate, and sign with XRPL identities."""

    def from_secret(self, secret: str) -> Identity:
        """Derive an identity from a seed.

        Raises:
            InvalidSecretError: If the seed cannot be decoded.
        """
        ...

    def generate(self) -> Identity:
        """Create a brand new identity."""
        ...

    def sign(self, tx: dict[str, Any], identity: Identity) -> SignResult:
        """Sign a prepared transaction dict.

        Raises:
            ValueError: If the transaction dict is malformed.
        """
        ...


class XrplKeyManager:
    """KeyManager backed by xrpl-py."""

    def from_secret(self, secret: str) -> Identity:
        if not secret or not secret.strip():
            raise InvalidSecretError("Invalid secret key")
        try:
            wallet = Wallet.from_seed(secret.strip())
        except (XRPLException, ValueError, TypeError) as exc:
            raise InvalidSecretError("Invalid secret key") from exc
        if not wallet.address:
            raise InvalidSecretError("Invalid wallet address generated from secret key")
        return _identity(wallet)

    def generate(self) -> Identity:
        wallet = Wallet.create()
        if not wallet.address or not wallet.seed:
            raise RuntimeError("Failed to generate a valid wallet address or seed")
        return _identity(wallet)

    def sign(self, tx: dict[str, Any], identity: Identity) -> SignResult:
        wallet = Wallet.from_seed(identity.secret)
        try:
            transaction = Transaction.from_xrpl(tx)
        except XRPLException as exc:
            raise ValueError(f"malformed transaction: {exc}") from exc
        signed = sign(transaction, wallet)
        return SignResult(
            signed_tx_blob_hex=signed.blob(),
            tx_hash=signed.get_hash(),
            key_id=wallet.public_key,
        )


def _identity(wallet: Wallet) -> Identity:
    assert wallet.seed is not None
    return Identity(address=wallet.address, public_key=wallet.public_key, secret=wallet.seed)
