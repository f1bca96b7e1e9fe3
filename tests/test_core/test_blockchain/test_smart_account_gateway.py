"""Tests for SmartAccountGateway with a mocked web3 instance."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from web3.exceptions import ContractLogicError, TimeExhausted

from core.blockchain.smart_account import SmartAccountGateway, _rpc_call_with_retry
from core.gasless.exceptions import ConfirmationTimeout, SubmissionFailed, TransactionReverted
from core.gasless.models import Call

FACTORY = "0x752F888650A57cd7c7C2B6B658012d3c9239Cc03"
ACCOUNT = "0x3333333333333333333333333333333333333333"
CHAIN_ID = 11155111


def unsigned_tx(nonce: int = 7) -> dict:
    return {
        "to": ACCOUNT,
        "value": 0,
        "gas": 200_000,
        "maxFeePerGas": 2_000_000_000,
        "maxPriorityFeePerGas": 1_000_000_000,
        "nonce": nonce,
        "chainId": CHAIN_ID,
        "data": "0x",
    }


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.get_transaction_count = AsyncMock(return_value=7)
    w3.eth.send_raw_transaction = AsyncMock(return_value=b"\x12" * 32)
    return w3


@pytest.fixture
def gateway(w3, gas_payer_key):
    return SmartAccountGateway(
        w3=w3,
        factory_address=FACTORY,
        gas_payer_key=gas_payer_key,
        chain_id=CHAIN_ID,
        receipt_timeout=5,
        poll_interval=0.1,
    )


@pytest.fixture
def call() -> Call:
    return Call(to="0x000000000000000000000000000000000000c0de", data="0xdeadbeef")


class TestViews:
    """Tests for read-only calls."""

    @pytest.mark.asyncio
    async def test_is_deployed(self, gateway, w3):
        """Test that code presence means deployed."""
        w3.eth.get_code = AsyncMock(return_value=b"\x60\x80")
        assert await gateway.is_deployed(ACCOUNT) is True

        w3.eth.get_code = AsyncMock(return_value=b"")
        assert await gateway.is_deployed(ACCOUNT) is False

    @pytest.mark.asyncio
    async def test_get_nonce(self, gateway, w3):
        """Test reading the account nonce."""
        contract = w3.eth.contract.return_value
        contract.functions.nonce.return_value.call = AsyncMock(return_value=5)

        assert await gateway.get_nonce(ACCOUNT) == 5

    @pytest.mark.asyncio
    async def test_single_call_uses_get_transaction_hash(self, gateway, w3, call):
        """Test that one call is hashed with getTransactionHash."""
        contract = w3.eth.contract.return_value
        contract.functions.getTransactionHash.return_value.call = AsyncMock(return_value=b"\x01" * 32)

        result = await gateway.get_transaction_hash(ACCOUNT, (call,), 5)

        assert result == b"\x01" * 32
        contract.functions.getTransactionHash.assert_called_once_with(call.to, 0, call.data, 5)
        contract.functions.getBatchTransactionHash.assert_not_called()

    @pytest.mark.asyncio
    async def test_batch_uses_get_batch_transaction_hash(self, gateway, w3, call):
        """Test that several calls are hashed with getBatchTransactionHash."""
        contract = w3.eth.contract.return_value
        contract.functions.getBatchTransactionHash.return_value.call = AsyncMock(return_value=b"\x02" * 32)

        await gateway.get_transaction_hash(ACCOUNT, (call, call), 5)

        contract.functions.getBatchTransactionHash.assert_called_once_with(
            [call.to, call.to], [0, 0], [call.data, call.data], 5
        )


class TestTransactions:
    """Tests for state-changing calls."""

    @pytest.mark.asyncio
    async def test_submit_execution_signs_and_sends(self, gateway, w3, call):
        """Test that execution is built at the reserved nonce and broadcast."""
        contract = w3.eth.contract.return_value
        fn = contract.functions.executeTransaction.return_value
        fn.build_transaction = AsyncMock(return_value=unsigned_tx())

        tx_hash = await gateway.submit_execution(ACCOUNT, (call,), b"\x01" * 65)

        assert tx_hash == "0x" + "12" * 32
        params = fn.build_transaction.call_args[0][0]
        assert params["nonce"] == 7
        assert params["from"] == gateway.gas_payer_address
        assert params["chainId"] == CHAIN_ID
        w3.eth.send_raw_transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_batch_execution_uses_batch_function(self, gateway, w3, call):
        """Test that several calls go through executeBatchTransaction."""
        contract = w3.eth.contract.return_value
        fn = contract.functions.executeBatchTransaction.return_value
        fn.build_transaction = AsyncMock(return_value=unsigned_tx())

        await gateway.submit_execution(ACCOUNT, (call, call), b"\x01" * 65)

        contract.functions.executeBatchTransaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_estimate_revert_raises_before_send(self, gateway, w3, call):
        """Test that a revert during estimation never broadcasts."""
        contract = w3.eth.contract.return_value
        fn = contract.functions.executeTransaction.return_value
        fn.build_transaction = AsyncMock(
            side_effect=ContractLogicError("execution reverted: Invalid signature")
        )

        with pytest.raises(TransactionReverted) as exc_info:
            await gateway.submit_execution(ACCOUNT, (call,), b"\x01" * 65)

        assert "Invalid signature" in exc_info.value.reason
        w3.eth.send_raw_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreachable_node_during_build(self, gateway, w3, call):
        """Test that a transport error while building is a submission failure."""
        contract = w3.eth.contract.return_value
        fn = contract.functions.executeTransaction.return_value
        fn.build_transaction = AsyncMock(side_effect=ConnectionError("rpc unreachable"))

        with pytest.raises(SubmissionFailed) as exc_info:
            await gateway.submit_execution(ACCOUNT, (call,), b"\x01" * 65)

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        w3.eth.send_raw_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_send_resyncs_relayer_nonce(self, gateway, w3, call):
        """Test that a refused broadcast is a submission failure and the nonce is re-read."""
        contract = w3.eth.contract.return_value
        fn = contract.functions.executeTransaction.return_value
        fn.build_transaction = AsyncMock(return_value=unsigned_tx())
        w3.eth.send_raw_transaction = AsyncMock(side_effect=ValueError("insufficient funds for gas"))

        with pytest.raises(SubmissionFailed, match="insufficient funds"):
            await gateway.submit_execution(ACCOUNT, (call,), b"\x01" * 65)

        assert gateway.nonce_manager._next_nonce is None

    @pytest.mark.asyncio
    async def test_receipt_poll_error_is_ambiguous(self, gateway, w3):
        """Test that a transport error after broadcast is reported as unconfirmed."""
        w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=ConnectionError("reset by peer"))

        with pytest.raises(ConfirmationTimeout) as exc_info:
            await gateway.wait_for_receipt("0xabc")

        assert exc_info.value.tx_hash == "0xabc"
        assert exc_info.value.kind == "timeout"

    @pytest.mark.asyncio
    async def test_receipt_timeout(self, gateway, w3):
        """Test that an exhausted wait is a timeout, not a revert."""
        w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=TimeExhausted())

        with pytest.raises(ConfirmationTimeout) as exc_info:
            await gateway.wait_for_receipt("0xabc")

        assert exc_info.value.tx_hash == "0xabc"

    @pytest.mark.asyncio
    async def test_failed_receipt_replays_reason(self, gateway, w3):
        """Test that a status-0 receipt reports the replayed revert reason."""
        w3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 0, "blockNumber": 100}
        )
        w3.eth.get_transaction = AsyncMock(
            return_value={"from": gateway.gas_payer_address, "to": ACCOUNT, "input": "0x", "value": 0}
        )
        w3.eth.call = AsyncMock(side_effect=ContractLogicError("execution reverted: Invalid nonce"))

        with pytest.raises(TransactionReverted) as exc_info:
            await gateway.wait_for_receipt("0xabc")

        assert "Invalid nonce" in exc_info.value.reason
        assert exc_info.value.tx_hash == "0xabc"

    @pytest.mark.asyncio
    async def test_successful_receipt(self, gateway, w3):
        """Test that a status-1 receipt is returned."""
        receipt = {"status": 1, "blockNumber": 100}
        w3.eth.wait_for_transaction_receipt = AsyncMock(return_value=receipt)

        assert await gateway.wait_for_receipt("0xabc") == receipt


class TestRpcRetry:
    """Tests for the rate-limit retry wrapper."""

    @pytest.mark.asyncio
    async def test_retries_rate_limited_calls(self):
        """Test exponential backoff on rate-limit errors."""
        fn = AsyncMock(side_effect=[Exception("429 rate limit exceeded"), 42])

        with patch("core.blockchain.smart_account.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await _rpc_call_with_retry(fn, "test") == 42

        sleep.assert_called_once()

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        """Test that non rate-limit errors are raised immediately."""
        fn = AsyncMock(side_effect=ValueError("bad address"))

        with pytest.raises(ValueError):
            await _rpc_call_with_retry(fn, "test")

        fn.assert_called_once()
