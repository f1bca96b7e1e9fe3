"""Shared pytest fixtures for gasless relay tests.

Provides real throwaway keys and an in-memory smart account chain that
enforces the contract rules: the signature must recover to the owner over the
digest at the current account nonce, and the nonce advances once per success.
"""

import asyncio
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cryptography.fernet import Fernet
from eth_account import Account
from eth_utils import keccak, to_checksum_address

from core.gasless.account_cache import SmartAccountCache
from core.gasless.digest import compute_digest
from core.gasless.exceptions import ConfirmationTimeout, TransactionReverted
from core.gasless.models import Call
from core.gasless.signatures import personal_message_hash, recover_signer
from core.wallet.encryption import KeyEncryption
from core.wallet.providers import LocalWalletProvider
from services.gasless_service import GaslessService
from services.relay_executor import RelayExecutor
from services.smart_account_resolver import SmartAccountResolver, derive_salt


# Throwaway keys, never funded anywhere
OWNER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OTHER_KEY = "0x" + "22" * 32
GAS_PAYER_KEY = "0x" + "ab" * 32

CHAIN_ID = 11155111
FACTORY_ADDRESS = "0x752F888650A57cd7c7C2B6B658012d3c9239Cc03"
TARGET_ADDRESS = "0x000000000000000000000000000000000000c0de"

# Real encryption key for testing (generated fresh)
TEST_ENCRYPTION_KEY = Fernet.generate_key().decode()


@dataclass
class FakeAccount:
    owner: str
    nonce: int = 0
    executed: List[Sequence[Call]] = field(default_factory=list)


class FakeSmartAccountChain:
    """In-memory stand-in for SmartAccountGateway."""

    def __init__(self, chain_id: int = CHAIN_ID, factory_address: str = FACTORY_ADDRESS):
        self.chain_id = chain_id
        self.factory_address = factory_address
        self.gas_payer_address = Account.from_key(GAS_PAYER_KEY).address
        self.accounts: Dict[str, FakeAccount] = {}
        self.deploy_calls = 0
        self.execute_calls = 0
        self.tx_count = 0
        self.timeout_next_execute = False
        self.revert_next_execute: Optional[str] = None
        self.fail_rpc: Optional[Exception] = None

    def _address_for(self, owner: str, salt: bytes) -> str:
        return to_checksum_address(keccak(bytes.fromhex(self.factory_address[2:]) + salt)[12:])

    def _tx_hash(self) -> str:
        self.tx_count += 1
        return "0x" + keccak(self.tx_count.to_bytes(32, "big")).hex()

    def add_account(self, owner: str, nonce: int = 0, salt: Optional[bytes] = None) -> str:
        """Deploy an account directly, bypassing the relayer."""
        owner = to_checksum_address(owner)
        address = self._address_for(owner, salt or derive_salt(owner))
        self.accounts[address] = FakeAccount(owner=owner, nonce=nonce)
        return address

    async def predict_address(self, owner_address: str, salt: bytes) -> str:
        if self.fail_rpc:
            raise self.fail_rpc
        return self._address_for(owner_address, salt)

    async def is_deployed(self, address: str) -> bool:
        return to_checksum_address(address) in self.accounts

    async def deploy_account(self, owner_address: str, salt: bytes) -> str:
        self.deploy_calls += 1
        # Let concurrent callers interleave while the deployment is "mining"
        await asyncio.sleep(0.01)
        address = self._address_for(owner_address, salt)
        if address in self.accounts:
            raise TransactionReverted("Account already exists", tx_hash=self._tx_hash())
        self.accounts[address] = FakeAccount(owner=to_checksum_address(owner_address))
        return self._tx_hash()

    async def get_owner(self, smart_account_address: str) -> str:
        return self.accounts[to_checksum_address(smart_account_address)].owner

    async def get_nonce(self, smart_account_address: str) -> int:
        return self.accounts[to_checksum_address(smart_account_address)].nonce

    async def get_transaction_hash(self, smart_account_address: str, calls, nonce: int) -> bytes:
        return compute_digest(smart_account_address, self.chain_id, calls, nonce)

    async def execute(self, smart_account_address: str, calls, signature: bytes) -> str:
        self.execute_calls += 1
        tx_hash = self._tx_hash()
        account = self.accounts[to_checksum_address(smart_account_address)]

        if self.timeout_next_execute:
            self.timeout_next_execute = False
            raise ConfirmationTimeout(f"No receipt for {tx_hash}", tx_hash=tx_hash)

        if self.revert_next_execute:
            reason, self.revert_next_execute = self.revert_next_execute, None
            raise TransactionReverted(reason, tx_hash=tx_hash)

        digest = compute_digest(smart_account_address, self.chain_id, calls, account.nonce)
        candidates = {
            recover_signer(digest, signature).lower(),
            recover_signer(personal_message_hash(digest), signature).lower(),
        }
        if account.owner.lower() not in candidates:
            raise TransactionReverted("Invalid signature", tx_hash=tx_hash)

        account.nonce += 1
        account.executed.append(tuple(calls))
        return tx_hash

    async def close(self):
        pass


@pytest.fixture
def encryption_key() -> str:
    """Provide a real Fernet encryption key for tests."""
    return TEST_ENCRYPTION_KEY


@pytest.fixture
def key_encryption(encryption_key: str) -> KeyEncryption:
    """Create a KeyEncryption instance with real key."""
    return KeyEncryption(encryption_key)


@pytest.fixture
def owner_key() -> str:
    return OWNER_KEY


@pytest.fixture
def other_key() -> str:
    return OTHER_KEY


@pytest.fixture
def gas_payer_key() -> str:
    return GAS_PAYER_KEY


@pytest.fixture
def owner_account():
    return Account.from_key(OWNER_KEY)


@pytest.fixture
def other_account():
    return Account.from_key(OTHER_KEY)


@pytest.fixture
def owner_provider() -> LocalWalletProvider:
    """Wallet supporting every signing method."""
    return LocalWalletProvider(OWNER_KEY)


@pytest.fixture
def target_call() -> Call:
    return Call(to=TARGET_ADDRESS, value=0, data=bytes.fromhex("deadbeef"))


@pytest.fixture
def fake_chain() -> FakeSmartAccountChain:
    return FakeSmartAccountChain()


@pytest.fixture
def account_cache() -> SmartAccountCache:
    return SmartAccountCache()


@pytest.fixture
def resolver(fake_chain, account_cache) -> SmartAccountResolver:
    return SmartAccountResolver(fake_chain, account_cache, auto_deploy=True)


@pytest.fixture
def executor(fake_chain, resolver, account_cache) -> RelayExecutor:
    return RelayExecutor(fake_chain, resolver, account_cache, nonce_preflight=True)


@pytest_asyncio.fixture
async def gasless_service(fake_chain, account_cache):
    """GaslessService wired to the in-memory chain."""
    service = GaslessService(fake_chain, cache=account_cache)
    yield service
    await service.close()
