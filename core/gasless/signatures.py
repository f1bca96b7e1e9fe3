"""Signature verification and normalization.

Runs on both sides of the relay: the client uses it as a sanity check before
a network round trip, the relayer as the only authorization gate.
"""

import logging
from typing import Union

from eth_account import Account
from eth_account.messages import defunct_hash_message
from eth_utils import to_bytes

from config.constants import COMPACT_SIGNATURE_LENGTH, SIGNATURE_LENGTH
from core.gasless.exceptions import SignatureRepairFailed
from core.gasless.models import SigningPrimitive

logger = logging.getLogger(__name__)

SignatureLike = Union[bytes, str]


def signature_to_bytes(signature: SignatureLike) -> bytes:
    """Decode a signature given as bytes or (optionally 0x-prefixed) hex."""
    if isinstance(signature, (bytes, bytearray)):
        return bytes(signature)
    if not signature.startswith("0x"):
        signature = "0x" + signature
    return to_bytes(hexstr=signature)


def personal_message_hash(digest: bytes) -> bytes:
    """keccak256("\\x19Ethereum Signed Message:\\n32" || digest)."""
    return bytes(defunct_hash_message(primitive=digest))


def message_hash_for(primitive: SigningPrimitive, digest: bytes) -> bytes:
    """
    Return the hash a wallet actually signed for a given primitive.

    Typed data needs no reversal: the digest is itself the EIP-712 hash of the
    ``BatchTransaction`` payload offered to the wallet.
    """
    if primitive in (SigningPrimitive.RAW_HASH, SigningPrimitive.TYPED_DATA_V4):
        return digest
    if primitive in (SigningPrimitive.PERSONAL_SIGN, SigningPrimitive.PREFIXED_MESSAGE):
        return personal_message_hash(digest)
    raise ValueError(f"Unsupported signing primitive: {primitive}")


def recover_signer(message_hash: bytes, signature: SignatureLike) -> str:
    """Recover the checksummed address that signed ``message_hash``."""
    return Account._recover_hash(message_hash, signature=signature_to_bytes(signature))


def _canonical_v(signature: bytes) -> bytes:
    v = signature[64]
    if v in (0, 1):
        v += 27
    return signature[:64] + bytes([v])


def verify(
    digest: bytes,
    signature: SignatureLike,
    primitive: Union[SigningPrimitive, str],
    expected_signer: str,
) -> bool:
    """
    Check that ``signature`` over ``digest`` was produced by ``expected_signer``.

    Args:
        digest: 32-byte transaction digest
        signature: 65-byte signature (bytes or hex)
        primitive: Signing primitive the signature was produced with
        expected_signer: Address the signature must recover to

    Returns:
        True only if the recovered address matches, case-insensitively
    """
    try:
        primitive = SigningPrimitive.parse(primitive)
        sig = signature_to_bytes(signature)
        if len(sig) != SIGNATURE_LENGTH:
            logger.debug(f"Rejecting signature of length {len(sig)}")
            return False
        recovered = recover_signer(message_hash_for(primitive, digest), _canonical_v(sig))
    except Exception as e:
        logger.debug(f"Signature recovery failed: {e}")
        return False

    return recovered.lower() == expected_signer.lower()


def normalize_signature(
    signature: SignatureLike,
    digest: bytes,
    primitive: Union[SigningPrimitive, str],
    expected_signer: str,
) -> bytes:
    """
    Turn a 64- or 65-byte signature into a verifiable 65-byte one.

    A 64-byte ``r || s`` lacks the recovery byte; both candidates (27, 28) are
    tried under the primitive's transform and the one recovering to
    ``expected_signer`` is kept. A 65-byte signature has ``v`` in 0/1 mapped to
    27/28 and is then verified.

    Raises:
        SignatureRepairFailed: If no form of the signature verifies
    """
    try:
        primitive = SigningPrimitive.parse(primitive)
    except ValueError as e:
        raise SignatureRepairFailed(str(e)) from e
    try:
        sig = signature_to_bytes(signature)
    except ValueError as e:
        raise SignatureRepairFailed(f"Signature is not valid hex: {e}") from e

    if len(sig) == SIGNATURE_LENGTH:
        candidate = _canonical_v(sig)
        if verify(digest, candidate, primitive, expected_signer):
            return candidate
        raise SignatureRepairFailed(
            f"Signature does not recover to {expected_signer} under {primitive.value}"
        )

    if len(sig) == COMPACT_SIGNATURE_LENGTH:
        for v in (27, 28):
            candidate = sig + bytes([v])
            if verify(digest, candidate, primitive, expected_signer):
                logger.info(f"Recovered missing signature byte v={v} ({primitive.value})")
                return candidate
        raise SignatureRepairFailed(
            f"Neither v=27 nor v=28 recovers {expected_signer} under {primitive.value}"
        )

    raise SignatureRepairFailed(f"Unexpected signature length: {len(sig)} bytes")
