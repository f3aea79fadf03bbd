"""
Testnet funding for freshly generated wallets.

A generated account does not exist on the ledger until it receives its
reserve. ``fund_and_wait`` asks a faucet for XRP and then polls
``account_info`` until the account appears:

    - "Account not found" means "not yet" and keeps polling.
    - Any other ledger error propagates immediately.
    - Running out of attempts raises FundingTimedOutError.

Polling defaults to 20 attempts at 3 second intervals.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

import httpx

from renmo.errors import ConnectionFailedError, FundingTimedOutError
from renmo.ledger.gateway import ACCOUNT_INFO, LedgerGateway, LedgerRequestError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@runtime_checkable
class Faucet(Protocol):
    """Anything that can credit a new account with test XRP."""

    async def fund(self, address: str) -> None:
        """Request funding for ``address``.

        Raises:
            ConnectionFailedError: If the faucet could not be reached or
                refused the request.
        """
        ...


class HttpFaucet:
    """Faucet client for the public XRPL testnet faucet."""

    def __init__(self, url: str, *, timeout: float = 30.0) -> None:
        self._url = url
        self._timeout = timeout

    async def fund(self, address: str) -> None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json={"destination": address})
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ConnectionFailedError(
                f"faucet request failed: {exc}", details={"url": self._url, "address": address}
            ) from exc
        logger.info("Faucet funding requested for %s", address)


async def wait_for_funding(
    gateway: LedgerGateway,
    address: str,
    *,
    interval: float = 3.0,
    max_attempts: int = 20,
    sleep: Sleep = asyncio.sleep,
) -> str:
    """Poll until ``address`` exists on the ledger.

    Returns:
        The account's XRP balance in drops.

    Raises:
        FundingTimedOutError: The account never appeared.
        LedgerRequestError: The node answered with an error other than
            "Account not found".
        ConnectionFailedError: The node could not be reached.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            result = await gateway.request(ACCOUNT_INFO, account=address, ledger_index="current")
        except LedgerRequestError as exc:
            if not exc.account_not_found:
                raise
            logger.debug("Waiting for funding of %s (attempt %d/%d)", address, attempt, max_attempts)
        else:
            balance = str(result["account_data"]["Balance"])
            logger.info("Account %s funded with %s drops", address, balance)
            return balance

        if attempt < max_attempts:
            await sleep(interval)

    raise FundingTimedOutError(
        "Wallet funding timed out. Please try again.",
        details={"address": address, "attempts": max_attempts},
    )


async def fund_and_wait(
    faucet: Faucet,
    gateway: LedgerGateway,
    address: str,
    *,
    interval: float = 3.0,
    max_attempts: int = 20,
    sleep: Sleep = asyncio.sleep,
) -> str:
    """Request faucet funding for ``address`` and wait for it to land."""
    await faucet.fund(address)
    return await wait_for_funding(
        gateway, address, interval=interval, max_attempts=max_attempts, sleep=sleep
    )
