"""Digest computation for smart account transactions.

The digest is the EIP-712 hash of a ``BatchTransaction`` struct bound to the
smart account's domain. A single call is hashed as a one-element batch, so
the same function serves ``executeTransaction`` and ``executeBatchTransaction``.
"""

from typing import Any, Dict, Iterable, Union

from eth_abi import encode
from eth_account.messages import encode_typed_data
from eth_utils import keccak, to_checksum_address

from config.constants import SMART_ACCOUNT_DOMAIN_NAME, SMART_ACCOUNT_DOMAIN_VERSION
from core.gasless.models import CallLike, as_batch

DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

BATCH_TRANSACTION_TYPE = [
    {"name": "to", "type": "address[]"},
    {"name": "values", "type": "uint256[]"},
    {"name": "data", "type": "bytes[]"},
    {"name": "nonce", "type": "uint256"},
]

DOMAIN_TYPEHASH = keccak(
    b"EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)

BATCH_TRANSACTION_TYPEHASH = keccak(
    b"BatchTransaction(address[] to,uint256[] values,bytes[] data,uint256 nonce)"
)


def domain_separator(wallet_address: str, chain_id: int) -> bytes:
    """Compute the EIP-712 domain separator of a smart account."""
    return keccak(
        encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                DOMAIN_TYPEHASH,
                keccak(text=SMART_ACCOUNT_DOMAIN_NAME),
                keccak(text=SMART_ACCOUNT_DOMAIN_VERSION),
                chain_id,
                to_checksum_address(wallet_address),
            ],
        )
    )


def _hash_array(abi_type: str, items: Iterable[Any]) -> bytes:
    # EIP-712 arrays hash the concatenation of their encoded members
    return keccak(b"".join(encode([abi_type], [item]) for item in items))


def compute_digest(
    wallet_address: str,
    chain_id: int,
    calls: Union[CallLike, Iterable[CallLike]],
    nonce: int,
) -> bytes:
    """
    Compute the digest the smart account verifies for a call batch.

    Args:
        wallet_address: Smart account address (EIP-712 verifying contract)
        chain_id: Chain ID of the domain
        calls: A call or an ordered sequence of calls
        nonce: Account nonce the digest is bound to

    Returns:
        32-byte digest
    """
    batch = as_batch(calls)

    to_hash = _hash_array("address", [call.to for call in batch])
    values_hash = _hash_array("uint256", [call.value for call in batch])
    # Dynamic bytes members are hashed individually before concatenation
    data_hash = keccak(b"".join(keccak(call.data) for call in batch))

    struct_hash = keccak(
        encode(
            ["bytes32", "bytes32", "bytes32", "bytes32", "uint256"],
            [BATCH_TRANSACTION_TYPEHASH, to_hash, values_hash, data_hash, nonce],
        )
    )

    # keccak256("\x19\x01" || domainSeparator || structHash)
    return keccak(b"\x19\x01" + domain_separator(wallet_address, chain_id) + struct_hash)


def build_typed_data(
    wallet_address: str,
    chain_id: int,
    calls: Union[CallLike, Iterable[CallLike]],
    nonce: int,
) -> Dict[str, Any]:
    """
    Build the ``eth_signTypedData_v4`` payload for a call batch.

    Hashing the payload yields exactly ``compute_digest`` for the same inputs.
    Integers are rendered as decimal strings so wallets do not lose precision.
    """
    batch = as_batch(calls)
    return {
        "types": {
            "EIP712Domain": DOMAIN_TYPE,
            "BatchTransaction": BATCH_TRANSACTION_TYPE,
        },
        "primaryType": "BatchTransaction",
        "domain": {
            "name": SMART_ACCOUNT_DOMAIN_NAME,
            "version": SMART_ACCOUNT_DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(wallet_address),
        },
        "message": {
            "to": [call.to for call in batch],
            "values": [str(call.value) for call in batch],
            "data": ["0x" + call.data.hex() for call in batch],
            "nonce": str(nonce),
        },
    }


def hash_typed_data(typed_data: Dict[str, Any]) -> bytes:
    """Hash a full EIP-712 payload the way a wallet does before signing."""
    signable = encode_typed_data(full_message=typed_data)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)
