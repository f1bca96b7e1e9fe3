"""Transaction nonce management for the gas payer account."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from eth_utils import to_checksum_address

logger = logging.getLogger(__name__)


class NonceReservation:
    """A nonce handed out to exactly one outgoing transaction."""

    def __init__(self, nonce: int):
        self.nonce = nonce
        self.sent = False

    def mark_sent(self) -> None:
        """Record that the node accepted the transaction using this nonce."""
        self.sent = True


class RelayerNonceManager:
    """
    Single writer for the relayer's transaction nonce.

    Concurrent relays for different smart accounts share one gas payer key,
    so nonce selection, signing and broadcast must happen under one lock.
    The counter advances only after a confirmed broadcast; any failure that
    leaves the node's view in doubt forces a resync from the pending count.
    """

    def __init__(self, w3, address: str):
        self.w3 = w3
        self.address = to_checksum_address(address)
        self._lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None

    async def _sync(self) -> int:
        self._next_nonce = await self.w3.eth.get_transaction_count(self.address, "pending")
        logger.debug(f"Relayer nonce synced for {self.address[:10]}...: {self._next_nonce}")
        return self._next_nonce

    def reset(self) -> None:
        """Forget the local counter; the next reservation reads it from the node."""
        self._next_nonce = None

    @asynccontextmanager
    async def reserve(self) -> AsyncIterator[NonceReservation]:
        """
        Reserve the next nonce for one transaction.

        The caller must call ``mark_sent()`` once the node accepted the
        transaction. The lock is held for the whole block, so keep receipt
        waits outside of it.
        """
        async with self._lock:
            if self._next_nonce is None:
                await self._sync()

            reservation = NonceReservation(self._next_nonce)
            try:
                yield reservation
            except BaseException:
                if reservation.sent:
                    self._next_nonce = reservation.nonce + 1
                else:
                    logger.warning(
                        f"Send with relayer nonce {reservation.nonce} failed, resyncing"
                    )
                    self.reset()
                raise

            if reservation.sent:
                self._next_nonce = reservation.nonce + 1
            else:
                self.reset()
