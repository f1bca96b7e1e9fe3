"""Calldata builders for common smart account calls."""

from eth_abi import encode
from eth_utils import to_checksum_address

from core.gasless.models import Call

# ERC20 function selectors
APPROVE_SELECTOR = bytes.fromhex("095ea7b3")  # approve(address,uint256)
TRANSFER_SELECTOR = bytes.fromhex("a9059cbb")  # transfer(address,uint256)


def encode_erc20_approve(spender: str, amount: int) -> bytes:
    """
    Encode ERC20 approve function call.

    Args:
        spender: Address to approve
        amount: Amount to approve (in smallest unit)

    Returns:
        Calldata bytes
    """
    params = encode(
        ["address", "uint256"],
        [to_checksum_address(spender), amount]
    )
    return APPROVE_SELECTOR + params


def encode_erc20_transfer(to_address: str, amount: int) -> bytes:
    """
    Encode ERC20 transfer function call.

    Args:
        to_address: Recipient address
        amount: Amount to transfer (in smallest unit)

    Returns:
        Calldata bytes
    """
    params = encode(
        ["address", "uint256"],
        [to_checksum_address(to_address), amount]
    )
    return TRANSFER_SELECTOR + params


def erc20_approve_call(token: str, spender: str, amount: int) -> Call:
    """Build a Call approving ``spender`` on ``token``."""
    return Call(to=token, value=0, data=encode_erc20_approve(spender, amount))


def erc20_transfer_call(token: str, to_address: str, amount: int) -> Call:
    """Build a Call transferring ``amount`` of ``token`` out of the smart account."""
    return Call(to=token, value=0, data=encode_erc20_transfer(to_address, amount))
