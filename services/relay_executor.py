"""Relayer-side verification and submission of signed smart account calls."""

import logging
from typing import Iterable, Optional, Sequence, Union

from core.blockchain.smart_account import SmartAccountGateway
from core.gasless.account_cache import SmartAccountCache
from core.gasless.digest import compute_digest
from core.gasless.exceptions import (
    AccountResolutionFailed,
    AuthorizationFailure,
    DigestMismatch,
    GaslessError,
    SignatureRepairFailed,
    StaleNonceFailure,
    SubmissionFailed,
    TimeoutFailure,
    TransactionReverted,
)
from core.gasless.locks import KeyedLock
from core.gasless.models import Call, CallLike, RelayResult, SigningPrimitive, as_batch
from core.gasless.signatures import SignatureLike, normalize_signature
from services.smart_account_resolver import SmartAccountResolver

logger = logging.getLogger(__name__)


class RelayExecutor:
    """
    Verify a user's signature and submit the call batch from the gas payer key.

    Nothing is broadcast unless the signature recovers to the account owner
    over the digest recomputed here. Relays for the same smart account run one
    at a time; relays for different accounts run in parallel.
    """

    def __init__(
        self,
        chain: SmartAccountGateway,
        resolver: SmartAccountResolver,
        cache: SmartAccountCache,
        nonce_preflight: bool = True,
        cross_check_digest: bool = True,
    ):
        self.chain = chain
        self.resolver = resolver
        self.cache = cache
        self.nonce_preflight = nonce_preflight
        self.cross_check_digest = cross_check_digest
        self._account_locks = KeyedLock()

    async def compute_digest(self, account: str, batch: Sequence[Call], nonce: int) -> bytes:
        """
        Compute the digest of ``batch`` at ``nonce``, checked against the contract.

        Raises:
            DigestMismatch: If cross-checking is on and the contract disagrees
            AccountResolutionFailed: If the contract's hash view is unreachable
        """
        digest = compute_digest(account, self.chain.chain_id, batch, nonce)
        if not self.cross_check_digest:
            return digest

        try:
            on_chain = await self.chain.get_transaction_hash(account, batch, nonce)
        except GaslessError:
            raise
        except Exception as e:
            logger.error(f"Failed to read transaction hash of {account[:10]}...: {e}")
            raise AccountResolutionFailed(f"Failed to read contract digest: {e}") from e

        if on_chain != digest:
            logger.error(
                f"Digest mismatch for {account[:10]}...: local 0x{digest.hex()[:10]}..., "
                f"contract 0x{on_chain.hex()[:10]}..."
            )
            raise DigestMismatch(
                f"Local digest 0x{digest.hex()} != contract digest 0x{on_chain.hex()}"
            )
        return digest

    async def relay(
        self,
        owner_address: str,
        calls: Union[CallLike, Iterable[CallLike]],
        signature: SignatureLike,
        primitive: Union[SigningPrimitive, str],
        provided_nonce: Optional[int] = None,
    ) -> RelayResult:
        """
        Execute a signed call batch on the owner's smart account.

        Args:
            owner_address: Address that signed the digest
            calls: One call or an ordered batch
            signature: 64- or 65-byte signature (bytes or hex)
            primitive: Signing primitive the client reported
            provided_nonce: Nonce the client's digest was built with

        Returns:
            RelayResult with the confirmed transaction hash

        Raises:
            AuthorizationFailure: Signature does not recover to the owner
            StaleNonceFailure: The account nonce moved past the signed one
            DigestMismatch: The contract hashes the batch differently
            TransactionReverted: The chain rejected the execution
            TimeoutFailure: The transaction was sent but its outcome is unknown
            SubmissionFailed: The transaction never reached the chain
            AccountResolutionFailed: The smart account could not be resolved
        """
        batch = as_batch(calls)
        try:
            primitive = SigningPrimitive.parse(primitive)
        except ValueError as e:
            logger.warning(f"Rejected relay for {owner_address[:10]}...: {e}")
            raise AuthorizationFailure(str(e)) from e

        record = await self.resolver.resolve(owner_address)
        account = record.smart_account_address

        async with self._account_locks.hold(account):
            live_nonce = await self._read_nonce(account)
            nonce = live_nonce if provided_nonce is None else int(provided_nonce)

            if self.nonce_preflight and nonce != live_nonce:
                logger.warning(
                    f"Stale nonce for {account[:10]}...: signed {nonce}, on-chain {live_nonce}"
                )
                raise StaleNonceFailure(
                    f"Nonce {nonce} does not match account nonce {live_nonce}",
                    nonce_used=nonce,
                    current_nonce=live_nonce,
                )

            digest = await self.compute_digest(account, batch, nonce)
            try:
                verified = normalize_signature(signature, digest, primitive, record.owner_address)
            except SignatureRepairFailed as e:
                logger.error(
                    f"Rejected relay for {account[:10]}...: signature does not recover "
                    f"to owner {record.owner_address[:10]}... ({primitive.value})"
                )
                raise AuthorizationFailure(
                    f"Signature does not recover to owner {record.owner_address}: {e}"
                ) from e

            logger.info(
                f"Relaying {len(batch)} call(s) for {account[:10]}... at nonce {nonce} "
                f"({primitive.value})"
            )

            try:
                tx_hash = await self.chain.execute(account, batch, verified)
            except TransactionReverted as e:
                raise await self._classify_revert(account, nonce, e) from e
            except TimeoutFailure as e:
                logger.warning(
                    f"Relay for {account[:10]}... unconfirmed, tx {e.tx_hash}; poll before resubmitting"
                )
                raise
            except GaslessError:
                raise
            except Exception as e:
                logger.error(f"Relay for {account[:10]}... failed before reaching the chain: {e}")
                raise SubmissionFailed(f"Relay transaction not submitted: {e}") from e

            self.cache.invalidate(account)

        logger.info(f"Relay confirmed for {account[:10]}...: {tx_hash[:16]}...")
        return RelayResult(
            transaction_hash=tx_hash,
            smart_account_address=account,
            nonce=nonce,
        )

    async def _read_nonce(self, account: str) -> int:
        try:
            return await self.chain.get_nonce(account)
        except Exception as e:
            logger.error(f"Failed to read nonce of {account[:10]}...: {e}")
            raise AccountResolutionFailed(f"Failed to read account nonce: {e}") from e

    async def _classify_revert(
        self,
        account: str,
        nonce_used: int,
        error: TransactionReverted,
    ) -> Exception:
        current_nonce: Optional[int] = None
        try:
            current_nonce = await self.chain.get_nonce(account)
        except Exception as e:
            logger.warning(f"Could not re-read nonce of {account[:10]}... after revert: {e}")

        nonce_moved = current_nonce is not None and current_nonce > nonce_used
        if nonce_moved or "nonce" in error.reason.lower():
            logger.warning(
                f"Relay for {account[:10]}... reverted on stale nonce "
                f"(used {nonce_used}, now {current_nonce}): {error.reason}"
            )
            return StaleNonceFailure(
                error.reason,
                nonce_used=nonce_used,
                current_nonce=current_nonce,
            )

        logger.error(f"Relay for {account[:10]}... reverted: {error.reason}")
        return TransactionReverted(error.reason, tx_hash=error.tx_hash)
