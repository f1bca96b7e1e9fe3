"""On-chain access to the smart account factory and smart accounts."""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

from eth_account import Account
from eth_utils import to_checksum_address
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from config import settings
from config.constants import (
    RPC_INITIAL_DELAY,
    RPC_MAX_RETRIES,
    default_factory_address,
    default_rpc_url,
)
from core.blockchain.nonce_manager import RelayerNonceManager
from core.gasless.exceptions import ConfirmationTimeout, SubmissionFailed, TransactionReverted
from core.gasless.models import Call
from core.wallet.encryption import load_gas_payer_key

logger = logging.getLogger(__name__)

# Smart account factory ABI
FACTORY_ABI = [
    {
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "salt", "type": "bytes32"},
        ],
        "name": "createSmartAccount",
        "outputs": [{"name": "smartAccount", "type": "address"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "salt", "type": "bytes32"},
        ],
        "name": "getSmartAccountAddress",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Smart account ABI
SMART_ACCOUNT_ABI = [
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "nonce",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "data", "type": "bytes"},
            {"name": "nonce", "type": "uint256"},
        ],
        "name": "getTransactionHash",
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "to", "type": "address[]"},
            {"name": "values", "type": "uint256[]"},
            {"name": "data", "type": "bytes[]"},
            {"name": "nonce", "type": "uint256"},
        ],
        "name": "getBatchTransactionHash",
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "data", "type": "bytes"},
            {"name": "signature", "type": "bytes"},
        ],
        "name": "executeTransaction",
        "outputs": [{"name": "success", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "to", "type": "address[]"},
            {"name": "values", "type": "uint256[]"},
            {"name": "data", "type": "bytes[]"},
            {"name": "signature", "type": "bytes"},
        ],
        "name": "executeBatchTransaction",
        "outputs": [{"name": "success", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


async def _rpc_call_with_retry(fn, description: str = "RPC call"):
    """
    Execute an RPC call with exponential backoff retry for rate limits.

    Args:
        fn: Zero-argument callable returning an awaitable
        description: Description for logging

    Returns:
        Result of the call
    """
    delay = RPC_INITIAL_DELAY

    for attempt in range(RPC_MAX_RETRIES):
        try:
            return await fn()
        except Exception as e:
            error_str = str(e).lower()
            if ("rate limit" in error_str or "429" in error_str) and attempt < RPC_MAX_RETRIES - 1:
                logger.warning(
                    f"{description} rate limited, retrying in {delay}s (attempt {attempt + 1}/{RPC_MAX_RETRIES})"
                )
                await asyncio.sleep(delay)
                delay *= 2  # Exponential backoff
            else:
                raise


def _revert_reason(error: Exception) -> str:
    message = getattr(error, "message", None) or str(error)
    return message or "execution reverted"


class SmartAccountGateway:
    """
    Contract access for the relayer.

    Wraps the factory and smart account contracts behind an ``AsyncWeb3``
    instance and submits state-changing calls from the gas payer key.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        factory_address: str,
        gas_payer_key: str,
        chain_id: int,
        receipt_timeout: float = 120.0,
        poll_interval: float = 2.0,
        nonce_manager: Optional[RelayerNonceManager] = None,
    ):
        self.w3 = w3
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

        self.factory_address = to_checksum_address(factory_address)
        self.factory = w3.eth.contract(address=self.factory_address, abi=FACTORY_ABI)

        self.gas_payer = Account.from_key(gas_payer_key)
        self.nonce_manager = nonce_manager or RelayerNonceManager(w3, self.gas_payer.address)

    @classmethod
    def from_settings(cls, app_settings=None) -> "SmartAccountGateway":
        """
        Build a gateway from application settings.

        Raises:
            ValueError: If no gas payer key, RPC URL or factory is available
        """
        app_settings = app_settings or settings
        chain_id = app_settings.chain_id
        rpc_url = app_settings.rpc_url or default_rpc_url(chain_id)
        factory_address = app_settings.factory_address or default_factory_address(chain_id)
        gas_payer_key = load_gas_payer_key(app_settings)

        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        logger.info(f"Smart account gateway on chain {chain_id} via {rpc_url}")

        return cls(
            w3=w3,
            factory_address=factory_address,
            gas_payer_key=gas_payer_key,
            chain_id=chain_id,
            receipt_timeout=app_settings.receipt_timeout,
            poll_interval=app_settings.receipt_poll_interval,
        )

    @property
    def gas_payer_address(self) -> str:
        return self.gas_payer.address

    async def close(self):
        """Close the underlying HTTP provider session."""
        provider = self.w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    def _account(self, smart_account_address: str):
        return self.w3.eth.contract(
            address=to_checksum_address(smart_account_address),
            abi=SMART_ACCOUNT_ABI,
        )

    # --- views ---------------------------------------------------------

    async def predict_address(self, owner_address: str, salt: bytes) -> str:
        """Return the deterministic smart account address for ``(owner, salt)``."""
        fn = self.factory.functions.getSmartAccountAddress(
            to_checksum_address(owner_address), salt
        )
        address = await _rpc_call_with_retry(
            fn.call, f"Predict smart account for {owner_address[:10]}..."
        )
        return to_checksum_address(address)

    async def is_deployed(self, address: str) -> bool:
        """Check whether contract code exists at ``address``."""
        code = await _rpc_call_with_retry(
            lambda: self.w3.eth.get_code(to_checksum_address(address)),
            f"Get code for {address[:10]}...",
        )
        is_deployed = len(code) > 0
        logger.debug(f"Account {address[:10]}... deployed: {is_deployed} (code length: {len(code)})")
        return is_deployed

    async def get_owner(self, smart_account_address: str) -> str:
        owner = await _rpc_call_with_retry(
            self._account(smart_account_address).functions.owner().call,
            f"Read owner of {smart_account_address[:10]}...",
        )
        return to_checksum_address(owner)

    async def get_nonce(self, smart_account_address: str) -> int:
        """Read the account-level nonce of a smart account."""
        return await _rpc_call_with_retry(
            self._account(smart_account_address).functions.nonce().call,
            f"Read nonce of {smart_account_address[:10]}...",
        )

    async def get_transaction_hash(
        self,
        smart_account_address: str,
        calls: Sequence[Call],
        nonce: int,
    ) -> bytes:
        """Ask the account contract for its own digest of a call batch."""
        functions = self._account(smart_account_address).functions
        if len(calls) == 1:
            call = calls[0]
            fn = functions.getTransactionHash(call.to, call.value, call.data, nonce)
        else:
            fn = functions.getBatchTransactionHash(
                [call.to for call in calls],
                [call.value for call in calls],
                [call.data for call in calls],
                nonce,
            )
        result = await _rpc_call_with_retry(
            fn.call, f"Read transaction hash of {smart_account_address[:10]}..."
        )
        return bytes(result)

    # --- transactions --------------------------------------------------

    async def deploy_account(self, owner_address: str, salt: bytes) -> str:
        """
        Deploy a smart account for ``owner_address`` and wait for it to be mined.

        Returns:
            Deployment transaction hash

        Raises:
            TransactionReverted: If the factory call reverted
            ConfirmationTimeout: If no receipt arrived in time
            SubmissionFailed: If the transaction could not be built or sent
        """
        fn = self.factory.functions.createSmartAccount(to_checksum_address(owner_address), salt)
        tx_hash = await self._send_transaction(fn, "createSmartAccount")
        await self.wait_for_receipt(tx_hash)
        return tx_hash

    async def submit_execution(
        self,
        smart_account_address: str,
        calls: Sequence[Call],
        signature: bytes,
    ) -> str:
        """
        Broadcast ``executeTransaction`` or ``executeBatchTransaction``.

        Returns:
            Transaction hash (not yet confirmed)

        Raises:
            TransactionReverted: If gas estimation reverted
            SubmissionFailed: If the node could not be reached or refused it
        """
        functions = self._account(smart_account_address).functions
        if len(calls) == 1:
            call = calls[0]
            fn = functions.executeTransaction(call.to, call.value, call.data, signature)
            label = "executeTransaction"
        else:
            fn = functions.executeBatchTransaction(
                [call.to for call in calls],
                [call.value for call in calls],
                [call.data for call in calls],
                signature,
            )
            label = "executeBatchTransaction"
        return await self._send_transaction(fn, label)

    async def execute(
        self,
        smart_account_address: str,
        calls: Sequence[Call],
        signature: bytes,
    ) -> str:
        """Submit an execution and wait for a successful receipt."""
        tx_hash = await self.submit_execution(smart_account_address, calls, signature)
        await self.wait_for_receipt(tx_hash)
        return tx_hash

    async def _send_transaction(self, fn, label: str) -> str:
        async with self.nonce_manager.reserve() as reservation:
            try:
                tx = await fn.build_transaction({
                    "from": self.gas_payer.address,
                    "nonce": reservation.nonce,
                    "chainId": self.chain_id,
                })
            except ContractLogicError as e:
                reason = _revert_reason(e)
                logger.error(f"{label} would revert: {reason}")
                raise TransactionReverted(reason) from e
            except Exception as e:
                logger.error(f"Failed to build {label}: {e}")
                raise SubmissionFailed(f"Failed to build {label}: {e}") from e

            try:
                signed = self.gas_payer.sign_transaction(tx)
                tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            except Exception as e:
                logger.error(f"Failed to send {label}: {e}")
                raise SubmissionFailed(f"Failed to send {label}: {e}") from e
            reservation.mark_sent()

        tx_hash = Web3.to_hex(tx_hash)
        logger.info(f"{label} submitted: {tx_hash[:16]}... (relayer nonce {reservation.nonce})")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """
        Wait for a receipt and check its status.

        Raises:
            ConfirmationTimeout: If no receipt within ``receipt_timeout``
            TransactionReverted: If the transaction was mined with status 0
        """
        logger.info(f"Waiting for tx {tx_hash[:16]}... (timeout={self.receipt_timeout}s)")
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.poll_interval,
            )
        except TimeExhausted as e:
            logger.warning(f"Transaction {tx_hash[:16]}... timed out after {self.receipt_timeout}s")
            raise ConfirmationTimeout(
                f"No receipt for {tx_hash} after {self.receipt_timeout}s", tx_hash=tx_hash
            ) from e
        except Exception as e:
            # Already broadcast, so the outcome is unknown rather than failed
            logger.warning(f"Receipt poll for {tx_hash[:16]}... failed: {e}")
            raise ConfirmationTimeout(
                f"Receipt poll for {tx_hash} failed: {e}", tx_hash=tx_hash
            ) from e

        if receipt["status"] != 1:
            reason = await self._replay_revert_reason(tx_hash, receipt)
            logger.error(f"Transaction {tx_hash[:16]}... failed (status=0): {reason}")
            raise TransactionReverted(reason, tx_hash=tx_hash)

        logger.info(f"Transaction {tx_hash[:16]}... confirmed in block {receipt['blockNumber']}")
        return receipt

    async def _replay_revert_reason(self, tx_hash: str, receipt) -> str:
        # Receipts carry no reason; replay the call at the mined block to get it
        try:
            tx = await self.w3.eth.get_transaction(tx_hash)
            await self.w3.eth.call(
                {
                    "from": tx["from"],
                    "to": tx["to"],
                    "data": tx["input"],
                    "value": tx.get("value", 0),
                },
                receipt["blockNumber"],
            )
        except ContractLogicError as e:
            return _revert_reason(e)
        except Exception as e:
            logger.debug(f"Could not replay {tx_hash[:16]}... for revert reason: {e}")
        return "execution reverted"
