"""Tests for smart account digest computation.

The digest must be bit-identical to the EIP-712 hash a wallet computes for
the BatchTransaction payload, since the contract verifies against it.
"""

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from core.gasless.digest import (
    build_typed_data,
    compute_digest,
    domain_separator,
    hash_typed_data,
)
from core.gasless.models import Call

WALLET = "0x1111111111111111111111111111111111111111"
TARGET = "0x000000000000000000000000000000000000c0de"
OTHER_TARGET = "0x000000000000000000000000000000000000beef"
CHAIN_ID = 11155111


@pytest.fixture
def call() -> Call:
    return Call(to=TARGET, value=0, data=bytes.fromhex("deadbeef"))


class TestComputeDigest:
    """Test suite for compute_digest."""

    def test_digest_is_32_bytes(self, call: Call):
        """Test that the digest is a 32-byte value."""
        digest = compute_digest(WALLET, CHAIN_ID, call, 5)
        assert isinstance(digest, bytes)
        assert len(digest) == 32

    def test_digest_is_deterministic(self, call: Call):
        """Test that identical inputs give identical digests."""
        assert compute_digest(WALLET, CHAIN_ID, call, 5) == compute_digest(WALLET, CHAIN_ID, call, 5)

    def test_address_case_does_not_matter(self, call: Call):
        """Test that the wallet address is normalized before hashing."""
        upper = "0x" + "ab" * 20
        assert compute_digest(upper, CHAIN_ID, call, 1) == compute_digest(upper.lower(), CHAIN_ID, call, 1)

    @pytest.mark.parametrize(
        "changed",
        [
            Call(to=OTHER_TARGET, value=0, data=bytes.fromhex("deadbeef")),
            Call(to=TARGET, value=1, data=bytes.fromhex("deadbeef")),
            Call(to=TARGET, value=0, data=bytes.fromhex("deadbeee")),
            Call(to=TARGET, value=0, data=b""),
        ],
    )
    def test_changing_a_call_field_changes_digest(self, call: Call, changed: Call):
        """Test that to, value and data are all bound into the digest."""
        assert compute_digest(WALLET, CHAIN_ID, call, 5) != compute_digest(WALLET, CHAIN_ID, changed, 5)

    def test_changing_nonce_changes_digest(self, call: Call):
        """Test that the nonce is bound into the digest."""
        assert compute_digest(WALLET, CHAIN_ID, call, 5) != compute_digest(WALLET, CHAIN_ID, call, 6)

    def test_changing_domain_changes_digest(self, call: Call):
        """Test that chain ID and wallet address are bound into the digest."""
        base = compute_digest(WALLET, CHAIN_ID, call, 5)
        assert base != compute_digest(WALLET, 1, call, 5)
        assert base != compute_digest("0x2222222222222222222222222222222222222222", CHAIN_ID, call, 5)

    def test_batch_order_matters(self, call: Call):
        """Test that reordering two distinct calls changes the digest."""
        other = Call(to=OTHER_TARGET, value=7, data=b"\x01")
        assert compute_digest(WALLET, CHAIN_ID, [call, other], 0) != compute_digest(
            WALLET, CHAIN_ID, [other, call], 0
        )

    def test_single_call_equals_one_element_batch(self, call: Call):
        """Test that a single call is the degenerate batch."""
        assert compute_digest(WALLET, CHAIN_ID, call, 3) == compute_digest(WALLET, CHAIN_ID, [call], 3)

    def test_accepts_transport_dicts(self, call: Call):
        """Test that {to, data, value?} dicts hash like Call objects."""
        as_dict = {"to": TARGET, "data": "0xdeadbeef"}
        assert compute_digest(WALLET, CHAIN_ID, as_dict, 5) == compute_digest(WALLET, CHAIN_ID, call, 5)

    def test_empty_batch_rejected(self):
        """Test that an empty batch cannot be hashed."""
        with pytest.raises(ValueError):
            compute_digest(WALLET, CHAIN_ID, [], 0)


class TestTypedData:
    """Test suite for the eth_signTypedData_v4 payload."""

    def test_typed_data_hash_equals_digest(self, call: Call):
        """Test that hashing the typed data gives exactly the digest."""
        batch = [call, Call(to=OTHER_TARGET, value=10**18, data=b"")]
        typed = build_typed_data(WALLET, CHAIN_ID, batch, 42)
        assert hash_typed_data(typed) == compute_digest(WALLET, CHAIN_ID, batch, 42)

    def test_wallet_signed_hash_equals_digest(self, call: Call):
        """Test against the hash eth_account signs for the same payload."""
        account = Account.create()
        typed = build_typed_data(WALLET, CHAIN_ID, call, 5)

        signed = account.sign_message(encode_typed_data(full_message=typed))

        assert bytes(signed.message_hash) == compute_digest(WALLET, CHAIN_ID, call, 5)

    def test_domain_separator_matches_eth_account(self, call: Call):
        """Test that the domain separator equals the EIP-712 header eth_account builds."""
        typed = build_typed_data(WALLET, CHAIN_ID, call, 5)
        signable = encode_typed_data(full_message=typed)
        assert signable.header == domain_separator(WALLET, CHAIN_ID)

    def test_typed_data_shape(self, call: Call):
        """Test the payload fields a wallet displays."""
        typed = build_typed_data(WALLET, CHAIN_ID, call, 5)

        assert typed["primaryType"] == "BatchTransaction"
        assert typed["domain"]["name"] == "SmartAccount"
        assert typed["domain"]["version"] == "1"
        assert typed["domain"]["chainId"] == CHAIN_ID
        assert typed["message"]["to"] == [call.to]
        assert typed["message"]["values"] == ["0"]
        assert typed["message"]["data"] == ["0xdeadbeef"]
        assert typed["message"]["nonce"] == "5"
