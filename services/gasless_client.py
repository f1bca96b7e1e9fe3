"""Client-side flow: fetch a digest, sign it, hand it back for relay."""

import logging
from typing import Iterable, Optional, Union

from core.gasless.calls import erc20_approve_call, erc20_transfer_call
from core.gasless.exceptions import AuthorizationFailure
from core.gasless.models import CallLike, RelayResult
from core.gasless.signatures import verify
from core.wallet.providers import WalletProvider
from core.wallet.signing import SignatureAcquirer

logger = logging.getLogger(__name__)


class GaslessClient:
    """
    Drive one gasless execution from the owner's side.

    ``backend`` is anything exposing ``get_digest_to_sign`` and
    ``submit_relay`` with the GaslessService signatures.
    """

    def __init__(
        self,
        backend,
        provider: WalletProvider,
        acquirer: Optional[SignatureAcquirer] = None,
    ):
        self.backend = backend
        self.provider = provider
        self.acquirer = acquirer or SignatureAcquirer()

    async def execute(self, calls: Union[CallLike, Iterable[CallLike]]) -> RelayResult:
        """
        Sign and relay ``calls`` through the owner's smart account.

        Raises:
            AllSigningPrimitivesExhausted: If the wallet could not sign
            AuthorizationFailure: If the signature fails the local check
        """
        owner = await self.provider.get_address()
        request = await self.backend.get_digest_to_sign(owner, calls)

        acquired = await self.acquirer.acquire_signature(request, owner, self.provider)

        # Fail fast before a network round trip
        if not verify(request.digest, acquired.signature, acquired.primitive, owner):
            raise AuthorizationFailure(
                f"Signature via {acquired.primitive.value} does not recover to {owner}"
            )

        logger.info(
            f"Submitting relay for {owner[:10]}... at nonce {request.nonce} "
            f"({acquired.primitive.value})"
        )
        return await self.backend.submit_relay(
            owner,
            request.calls,
            acquired.signature,
            acquired.primitive,
            nonce=request.nonce,
        )

    async def transfer_token(self, token: str, to_address: str, amount: int) -> RelayResult:
        """Transfer ERC20 tokens held by the smart account."""
        return await self.execute(erc20_transfer_call(token, to_address, amount))

    async def approve_token(self, token: str, spender: str, amount: int) -> RelayResult:
        """Approve ``spender`` to pull ERC20 tokens from the smart account."""
        return await self.execute(erc20_approve_call(token, spender, amount))
