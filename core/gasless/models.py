"""Data model for gasless meta-transactions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from eth_utils import to_bytes, to_checksum_address


class SigningPrimitive(Enum):
    """Wallet method that produced a signature.

    Each applies a different transform to the digest before signing, so the
    tag has to travel with the signature for the verifier to undo it.
    """
    RAW_HASH = "eth_sign"
    PERSONAL_SIGN = "personal_sign"
    TYPED_DATA_V4 = "eth_signTypedData_v4"
    PREFIXED_MESSAGE = "signMessage"

    @classmethod
    def parse(cls, value: Union[str, "SigningPrimitive"]) -> "SigningPrimitive":
        """Accept an enum member, its wire value or its name."""
        if isinstance(value, cls):
            return value
        if value == "signTypedData":
            return cls.TYPED_DATA_V4
        for member in cls:
            if value in (member.value, member.name):
                return member
        raise ValueError(f"Unknown signing primitive: {value!r}")


def _to_data_bytes(data: Union[bytes, str, None]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        if data in ("", "0x"):
            return b""
        return to_bytes(hexstr=data)
    raise TypeError(f"Call data must be bytes or hex string, got {type(data).__name__}")


@dataclass(frozen=True)
class Call:
    """A single call executed by the smart account."""
    to: str
    value: int = 0
    data: bytes = b""

    def __post_init__(self):
        object.__setattr__(self, "to", to_checksum_address(self.to))
        value = int(self.value)
        if value < 0 or value >= 2**256:
            raise ValueError(f"Call value out of uint256 range: {value}")
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "data", _to_data_bytes(self.data))

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Call":
        """Build from the ``{to, data, value?}`` transport shape."""
        return cls(
            to=payload["to"],
            value=int(payload.get("value") or 0),
            data=payload.get("data") or b"",
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "to": self.to,
            "value": str(self.value),
            "data": "0x" + self.data.hex(),
        }


CallBatch = Tuple[Call, ...]
CallLike = Union[Call, Dict[str, Any]]


def as_batch(calls: Union[CallLike, Iterable[CallLike]]) -> CallBatch:
    """Normalize a call, a dict, or a sequence of either into a CallBatch."""
    if isinstance(calls, (Call, dict)):
        calls = [calls]
    batch = tuple(
        item if isinstance(item, Call) else Call.from_dict(item)
        for item in calls
    )
    if not batch:
        raise ValueError("A call batch needs at least one call")
    return batch


@dataclass
class SmartAccountRecord:
    """Cached view of an owner's smart account."""
    owner_address: str
    smart_account_address: str
    deployed: bool = False
    cached_nonce: Optional[int] = None


@dataclass
class DigestToSign:
    """Digest handed to the client, with what it needs to rebuild typed data."""
    digest: bytes
    nonce: int
    smart_account_address: str
    chain_id: int
    calls: CallBatch = field(default_factory=tuple)

    @property
    def digest_hex(self) -> str:
        return "0x" + self.digest.hex()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "digest": self.digest_hex,
            "nonce": self.nonce,
            "smartAccountAddress": self.smart_account_address,
            "chainId": self.chain_id,
            "transactions": [call.to_dict() for call in self.calls],
        }


@dataclass
class AcquiredSignature:
    """A normalized 65-byte signature and the primitive that produced it."""
    signature: bytes
    primitive: SigningPrimitive

    @property
    def signature_hex(self) -> str:
        return "0x" + self.signature.hex()


@dataclass
class RelayResult:
    """Result of a confirmed relay."""
    transaction_hash: str
    smart_account_address: str
    nonce: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "smartAccountAddress": self.smart_account_address,
            "nonce": self.nonce,
        }
