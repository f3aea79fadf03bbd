"""
XRPL transaction builders for payroll payments.

Builds unsigned transaction dicts in XRPL JSON format. These are pure
"recipes": no network state, no secrets. Sequence is an autofill
concern; Fee and LastLedgerSequence are stamped by ``with_submission_fields``
right before autofill so every submission carries a bounded horizon.

Also owns amount handling:
    - ``parse_amount`` — strict positive decimal parsing.
    - ``xrp_to_drops`` — truncating conversion to the base unit.
    - ``encode_currency`` / ``decode_currency`` — XRPL currency codes
      (3-char standard codes pass through, longer ones become 40-char hex).
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation

# AccountSet flag that enables rippling on trust lines by default.
ASF_DEFAULT_RIPPLE = 8

# Account root flag reported by account_info when DefaultRipple is set.
LSF_DEFAULT_RIPPLE = 0x00800000

NATIVE_CURRENCY = "XRP"


# =========================================================================
# Amounts and addresses
# =========================================================================


def parse_amount(amount: str) -> Decimal:
    """Parse a user-entered amount into a positive Decimal.

    Raises:
        ValueError: If the string is not a finite number greater than 0.
    """
    if not isinstance(amount, str) or not amount.strip():
        raise ValueError("amount must be a non-empty decimal string")
    try:
        value = Decimal(amount.strip())
    except InvalidOperation as exc:
        raise ValueError(f"amount is not a decimal number: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"amount must be finite, got: {amount!r}")
    if value <= 0:
        raise ValueError(f"amount must be greater than 0, got: {amount!r}")
    return value


def xrp_to_drops(amount: Decimal | str, drops_per_xrp: int = 1_000_000) -> int:
    """Convert an XRP amount to drops, truncating any fractional drop.

    Never rounds up: "1.2345675" XRP is 1234567 drops, not 1234568.
    """
    value = amount if isinstance(amount, Decimal) else parse_amount(amount)
    return int((value * drops_per_xrp).to_integral_value(rounding=ROUND_DOWN))


def drops_to_xrp(drops: int | str, drops_per_xrp: int = 1_000_000) -> str:
    """Convert drops to an XRP decimal string without trailing zeros."""
    value = Decimal(int(drops)) / Decimal(drops_per_xrp)
    return format_value(value)


def format_value(value: Decimal) -> str:
    """Plain (non-exponent) decimal string with no trailing zeros."""
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def is_valid_address(
    address: str,
    *,
    prefix: str = "r",
    min_length: int = 25,
    max_length: int = 35,
) -> bool:
    """Syntactic r-address check: non-empty, prefix, length bounds."""
    if not isinstance(address, str) or not address:
        return False
    return address.startswith(prefix) and min_length <= len(address) <= max_length


# =========================================================================
# Currency codes
# =========================================================================


def encode_currency(code: str) -> str:
    """XRPL wire form of a currency code.

    Standard 3-character codes are used as-is. Longer codes (e.g. "RLUSD")
    are UTF-8 encoded and right-padded with zero bytes to 20 bytes, as
    40 uppercase hex characters. Codes already in hex form pass through.
    """
    if len(code) == 3:
        return code
    if len(code) == 40:
        try:
            bytes.fromhex(code)
            return code.upper()
        except ValueError:
            pass
    raw = code.encode("utf-8")
    if len(raw) > 20:
        raise ValueError(f"currency code too long: {code!r}")
    return raw.ljust(20, b"\x00").hex().upper()


def decode_currency(code: str) -> str:
    """Human-readable form of an XRPL currency code."""
    if len(code) == 40:
        try:
            decoded = bytes.fromhex(code).rstrip(b"\x00").decode("ascii")
        except (ValueError, UnicodeDecodeError):
            return code
        if decoded and decoded.isprintable():
            return decoded
    return code


def same_currency(a: str, b: str) -> bool:
    """Compare currency codes regardless of wire form."""
    return encode_currency(a) == encode_currency(b)


# =========================================================================
# Builders
# =========================================================================


def build_native_payment(account: str, destination: str, drops: int) -> dict[str, object]:
    """Unsigned XRP Payment. Amount is a drops string."""
    if drops <= 0:
        raise ValueError(f"drops must be positive, got: {drops}")
    return {
        "TransactionType": "Payment",
        "Account": account,
        "Destination": destination,
        "Amount": str(drops),
    }


def build_issued_payment(
    account: str,
    destination: str,
    value: Decimal,
    currency: str,
    issuer: str,
) -> dict[str, object]:
    """Unsigned issued-currency Payment (e.g. RLUSD)."""
    return {
        "TransactionType": "Payment",
        "Account": account,
        "Destination": destination,
        "Amount": {
            "currency": encode_currency(currency),
            "issuer": issuer,
            "value": format_value(value),
        },
    }


def build_trust_set(
    account: str,
    issuer: str,
    currency: str,
    limit: str,
) -> dict[str, object]:
    """Unsigned TrustSet that lets ``account`` hold ``currency`` from ``issuer``."""
    return {
        "TransactionType": "TrustSet",
        "Account": account,
        "LimitAmount": {
            "currency": encode_currency(currency),
            "issuer": issuer,
            "value": limit,
        },
    }


def build_enable_rippling(account: str) -> dict[str, object]:
    """Unsigned AccountSet that turns on DefaultRipple."""
    return {
        "TransactionType": "AccountSet",
        "Account": account,
        "SetFlag": ASF_DEFAULT_RIPPLE,
    }


def with_submission_fields(
    tx: dict[str, object],
    *,
    fee_drops: str,
    current_ledger_index: int,
    horizon: int,
) -> dict[str, object]:
    """Copy of ``tx`` with Fee and LastLedgerSequence stamped.

    LastLedgerSequence = current ledger index + horizon, so a transaction
    that is never included expires instead of blocking the account.
    """
    prepared = dict(tx)
    prepared["Fee"] = fee_drops
    prepared["LastLedgerSequence"] = current_ledger_index + horizon
    return prepared
