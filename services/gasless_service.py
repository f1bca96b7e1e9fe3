"""Relayer facade: hand out digests to sign and relay signed calls."""

import logging
from typing import Iterable, Optional, Union

from config import settings
from core.blockchain.smart_account import SmartAccountGateway
from core.gasless.account_cache import SmartAccountCache
from core.gasless.models import (
    CallLike,
    DigestToSign,
    RelayResult,
    SigningPrimitive,
    SmartAccountRecord,
    as_batch,
)
from core.gasless.signatures import SignatureLike
from services.relay_executor import RelayExecutor
from services.smart_account_resolver import SmartAccountResolver

logger = logging.getLogger(__name__)


class GaslessService:
    """Entry points the route layer calls for gasless execution."""

    def __init__(
        self,
        chain: SmartAccountGateway,
        cache: Optional[SmartAccountCache] = None,
        auto_deploy: bool = True,
        nonce_preflight: bool = True,
        cross_check_digest: bool = True,
    ):
        self.chain = chain
        self.cache = cache if cache is not None else SmartAccountCache()
        self.cross_check_digest = cross_check_digest
        self.resolver = SmartAccountResolver(chain, self.cache, auto_deploy=auto_deploy)
        self.executor = RelayExecutor(
            chain,
            self.resolver,
            self.cache,
            nonce_preflight=nonce_preflight,
            cross_check_digest=cross_check_digest,
        )

    @classmethod
    def from_settings(cls, app_settings=None) -> "GaslessService":
        """
        Build the service from application settings.

        Raises:
            ValueError: If no gas payer key is configured
        """
        app_settings = app_settings or settings
        if not app_settings.has_gas_payer_key:
            raise ValueError("GAS_PAYER_PRIVATE_KEY not configured")

        chain = SmartAccountGateway.from_settings(app_settings)
        logger.info(f"Gasless service ready, gas payer {chain.gas_payer_address[:10]}...")
        return cls(
            chain,
            auto_deploy=app_settings.auto_deploy_accounts,
            nonce_preflight=app_settings.nonce_preflight,
            cross_check_digest=app_settings.cross_check_digest,
        )

    async def close(self):
        await self.chain.close()

    async def get_smart_account(self, owner_address: str) -> SmartAccountRecord:
        """Resolve (deploying if enabled) the owner's smart account."""
        return await self.resolver.resolve(owner_address)

    async def get_digest_to_sign(
        self,
        owner_address: str,
        calls: Union[CallLike, Iterable[CallLike]],
    ) -> DigestToSign:
        """
        Compute the digest the owner must sign for ``calls`` at the live nonce.

        Raises:
            AccountResolutionFailed: If the smart account cannot be resolved
            DigestMismatch: If cross-checking is on and the contract disagrees
        """
        batch = as_batch(calls)
        record = await self.resolver.resolve(owner_address)
        account = record.smart_account_address

        nonce = await self.chain.get_nonce(account)
        self.cache.update_nonce(account, nonce)

        digest = await self.executor.compute_digest(account, batch, nonce)

        logger.debug(f"Digest for {account[:10]}... at nonce {nonce}: 0x{digest.hex()[:10]}...")
        return DigestToSign(
            digest=digest,
            nonce=nonce,
            smart_account_address=account,
            chain_id=self.chain.chain_id,
            calls=batch,
        )

    async def submit_relay(
        self,
        owner_address: str,
        calls: Union[CallLike, Iterable[CallLike]],
        signature: SignatureLike,
        primitive: Union[SigningPrimitive, str],
        nonce: Optional[int] = None,
    ) -> RelayResult:
        """Verify and relay a signed call batch."""
        return await self.executor.relay(
            owner_address,
            calls,
            signature,
            primitive,
            provided_nonce=nonce,
        )
