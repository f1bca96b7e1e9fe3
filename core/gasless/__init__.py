from .models import (
    AcquiredSignature,
    Call,
    CallBatch,
    DigestToSign,
    RelayResult,
    SigningPrimitive,
    SmartAccountRecord,
    as_batch,
)
from .digest import build_typed_data, compute_digest, domain_separator, hash_typed_data
from .signatures import message_hash_for, normalize_signature, recover_signer, verify
from .account_cache import SmartAccountCache

__all__ = [
    "AcquiredSignature",
    "Call",
    "CallBatch",
    "DigestToSign",
    "RelayResult",
    "SigningPrimitive",
    "SmartAccountRecord",
    "as_batch",
    "build_typed_data",
    "compute_digest",
    "domain_separator",
    "hash_typed_data",
    "message_hash_for",
    "normalize_signature",
    "recover_signer",
    "verify",
    "SmartAccountCache",
]
