"""Map an owner address to its deployed smart account."""

import logging

from eth_utils import keccak, to_checksum_address

from core.blockchain.smart_account import SmartAccountGateway
from core.gasless.account_cache import SmartAccountCache
from core.gasless.exceptions import (
    AccountResolutionFailed,
    GaslessError,
    TransactionReverted,
)
from core.gasless.locks import KeyedLock
from core.gasless.models import SmartAccountRecord

logger = logging.getLogger(__name__)


def derive_salt(owner_address: str) -> bytes:
    """
    Derive the CREATE2 salt for an owner's smart account.

    The salt is keccak256 of the owner address string. The checksum form is
    hashed so that differently-cased inputs map to the same account.
    """
    return keccak(text=to_checksum_address(owner_address))


class SmartAccountResolver:
    """Resolve, and if needed deploy, the smart account of an owner."""

    def __init__(
        self,
        chain: SmartAccountGateway,
        cache: SmartAccountCache,
        auto_deploy: bool = True,
    ):
        self.chain = chain
        self.cache = cache
        self.auto_deploy = auto_deploy
        self._owner_locks = KeyedLock()

    async def resolve(self, owner_address: str) -> SmartAccountRecord:
        """
        Return the smart account record for ``owner_address``.

        Concurrent calls for the same owner are serialized so at most one
        deployment is ever submitted.

        Raises:
            AccountResolutionFailed: On RPC failure, factory revert, missing
                deployment with auto-deploy off, or an owner mismatch
            ConfirmationTimeout: If the deployment receipt did not arrive
        """
        try:
            owner = to_checksum_address(owner_address)
        except ValueError as e:
            raise AccountResolutionFailed(f"Invalid owner address: {owner_address}") from e

        async with self._owner_locks.hold(owner):
            cached = self.cache.get_by_owner(owner)
            if cached is not None:
                return cached

            try:
                record = await self._resolve_uncached(owner)
            except TransactionReverted as e:
                logger.error(f"Smart account deployment for {owner[:10]}... reverted: {e.reason}")
                raise AccountResolutionFailed(f"Smart account deployment reverted: {e.reason}") from e
            except GaslessError:
                raise
            except Exception as e:
                logger.error(f"Failed to resolve smart account for {owner[:10]}...: {e}")
                raise AccountResolutionFailed(f"Failed to resolve smart account: {e}") from e

            self.cache.put(record)
            return record

    async def _resolve_uncached(self, owner: str) -> SmartAccountRecord:
        address = self.cache.address_for_owner(owner)
        if address is None:
            address = await self.chain.predict_address(owner, derive_salt(owner))
            self.cache.remember_owner(owner, address)

        if not await self.chain.is_deployed(address):
            if not self.auto_deploy:
                raise AccountResolutionFailed(
                    f"Smart account {address} for {owner} is not deployed"
                )

            logger.info(f"Deploying smart account {address[:10]}... for {owner[:10]}...")
            await self.chain.deploy_account(owner, derive_salt(owner))

            if not await self.chain.is_deployed(address):
                raise AccountResolutionFailed(
                    f"Smart account {address} has no code after deployment"
                )
            logger.info(f"Smart account {address[:10]}... deployed")

        on_chain_owner = await self.chain.get_owner(address)
        if on_chain_owner.lower() != owner.lower():
            raise AccountResolutionFailed(
                f"Smart account {address} is owned by {on_chain_owner}, not {owner}"
            )

        nonce = await self.chain.get_nonce(address)

        return SmartAccountRecord(
            owner_address=owner,
            smart_account_address=address,
            deployed=True,
            cached_nonce=nonce,
        )
