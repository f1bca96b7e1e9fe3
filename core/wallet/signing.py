"""
Signature acquisition with primitive fallback.

Wallets disagree on which signing methods they expose. The acquirer asks for
a signature over the digest through each strategy in turn, normalizes what
comes back, and tags the result with the primitive that produced it.
"""

import json
import logging
from typing import List, Optional, Sequence

from core.gasless.digest import build_typed_data, hash_typed_data
from core.gasless.exceptions import AllSigningPrimitivesExhausted, DigestMismatch
from core.gasless.models import AcquiredSignature, DigestToSign, SigningPrimitive
from core.gasless.signatures import normalize_signature
from core.wallet.providers import WalletProvider

logger = logging.getLogger(__name__)


class SigningStrategy:
    """One way of asking a wallet to sign a digest."""

    primitive: SigningPrimitive

    async def attempt(self, request: DigestToSign, signer: str, provider: WalletProvider) -> str:
        """Return the raw signature the wallet produced (hex)."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class RawHashStrategy(SigningStrategy):
    """``eth_sign``: the wallet signs the 32-byte digest as-is."""

    primitive = SigningPrimitive.RAW_HASH

    async def attempt(self, request: DigestToSign, signer: str, provider: WalletProvider) -> str:
        return await provider.request("eth_sign", [signer, request.digest_hex])


class PersonalSignStrategy(SigningStrategy):
    """``personal_sign``: the wallet applies the EIP-191 prefix."""

    primitive = SigningPrimitive.PERSONAL_SIGN

    async def attempt(self, request: DigestToSign, signer: str, provider: WalletProvider) -> str:
        return await provider.request("personal_sign", [request.digest_hex, signer])


class TypedDataV4Strategy(SigningStrategy):
    """``eth_signTypedData_v4`` over the BatchTransaction payload."""

    primitive = SigningPrimitive.TYPED_DATA_V4

    async def attempt(self, request: DigestToSign, signer: str, provider: WalletProvider) -> str:
        typed_data = build_typed_data(
            request.smart_account_address,
            request.chain_id,
            request.calls,
            request.nonce,
        )
        # Never show the user a payload the account would not accept
        if hash_typed_data(typed_data) != request.digest:
            raise DigestMismatch("Typed data payload does not hash to the requested digest")

        return await provider.request("eth_signTypedData_v4", [signer, json.dumps(typed_data)])


class PrefixedMessageStrategy(SigningStrategy):
    """Signer-level message signing, always EIP-191 prefixed."""

    primitive = SigningPrimitive.PREFIXED_MESSAGE

    async def attempt(self, request: DigestToSign, signer: str, provider: WalletProvider) -> str:
        return await provider.sign_message(request.digest)


DEFAULT_STRATEGIES = (
    RawHashStrategy(),
    PersonalSignStrategy(),
    TypedDataV4Strategy(),
    PrefixedMessageStrategy(),
)


class SignatureAcquirer:
    """Obtain a normalized, verifiable signature from a wallet provider."""

    def __init__(self, strategies: Optional[Sequence[SigningStrategy]] = None):
        self.strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES

    async def acquire_signature(
        self,
        request: DigestToSign,
        expected_signer: str,
        provider: WalletProvider,
    ) -> AcquiredSignature:
        """
        Try each strategy in order until one yields a signature by ``expected_signer``.

        Args:
            request: Digest and the context needed to rebuild typed data
            expected_signer: Owner address the signature must recover to
            provider: Wallet to sign with

        Returns:
            AcquiredSignature tagged with the primitive that worked

        Raises:
            AllSigningPrimitivesExhausted: If every strategy failed
        """
        attempts: List[str] = []

        for strategy in self.strategies:
            primitive = strategy.primitive
            try:
                raw = await strategy.attempt(request, expected_signer, provider)
                signature = normalize_signature(raw, request.digest, primitive, expected_signer)
            except Exception as e:
                logger.warning(f"Signing via {primitive.value} failed: {e}")
                attempts.append(f"{primitive.value}: {e}")
                continue

            logger.info(
                f"Signed digest {request.digest_hex[:10]}... for "
                f"{expected_signer[:10]}... via {primitive.value}"
            )
            return AcquiredSignature(signature=signature, primitive=primitive)

        logger.error(f"No signing method succeeded for {expected_signer[:10]}...")
        raise AllSigningPrimitivesExhausted(attempts)
