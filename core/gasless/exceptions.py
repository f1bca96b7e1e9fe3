"""Error taxonomy for the gasless relay.

Every failure carries a ``kind`` so callers can pick a remediation:
re-request a digest, poll the chain, or give up.
"""

from typing import Any, Dict, List, Optional


class GaslessError(Exception):
    """Base class for all gasless relay errors."""

    kind = "gasless"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the route layer."""
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }


class AuthorizationFailure(GaslessError):
    """Signature does not recover to the claimed owner."""

    kind = "authorization"


class StaleNonceFailure(GaslessError):
    """The account nonce moved past the one the digest was built with."""

    kind = "stale_nonce"
    retryable = True

    def __init__(
        self,
        reason: str,
        nonce_used: Optional[int] = None,
        current_nonce: Optional[int] = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.nonce_used = nonce_used
        self.current_nonce = current_nonce

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["nonce_used"] = self.nonce_used
        data["current_nonce"] = self.current_nonce
        return data


class TransactionReverted(GaslessError):
    """The chain rejected the transaction for a reason other than the nonce."""

    kind = "reverted"

    def __init__(self, reason: str, tx_hash: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.tx_hash = tx_hash

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["tx_hash"] = self.tx_hash
        return data


class SigningExhaustion(GaslessError):
    """No wallet signing primitive produced a usable signature."""

    kind = "signing_exhausted"


class AllSigningPrimitivesExhausted(SigningExhaustion):
    """Every configured signing strategy raised or failed repair."""

    def __init__(self, attempts: List[str]):
        detail = "; ".join(attempts) if attempts else "no strategies configured"
        super().__init__(f"All signing methods failed: {detail}")
        self.attempts = attempts


class SignatureRepairFailed(GaslessError):
    """A signature could not be normalized into a verifiable 65-byte form."""

    kind = "signature_repair"


class ResolutionFailure(GaslessError):
    """Factory or account RPC was unreachable or reverted."""

    kind = "resolution"
    retryable = True


class AccountResolutionFailed(ResolutionFailure):
    """The owner's smart account could not be resolved or deployed."""


class SubmissionFailed(ResolutionFailure):
    """The relay transaction never reached the chain (node or transport error)."""


class TimeoutFailure(GaslessError):
    """A confirmation wait ran out; the transaction may still be mined."""

    kind = "timeout"

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["tx_hash"] = self.tx_hash
        return data


class ConfirmationTimeout(TimeoutFailure):
    """No receipt was observed within the configured bound."""


class DigestMismatch(GaslessError):
    """Two computations of the same digest disagree."""

    kind = "digest_mismatch"
