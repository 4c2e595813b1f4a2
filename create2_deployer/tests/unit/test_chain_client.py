"""
Unit tests for the web3-backed chain client
"""

import pytest
from unittest.mock import Mock
from eth_account import Account
from eth_utils import keccak
from web3.exceptions import ContractLogicError, TransactionNotFound

from create2_deployer.core.client.chain_client import ChainClient, receipt_succeeded
from create2_deployer.tests.conftest import TEST_PRIVATE_KEY
from create2_deployer.utils.async_retry import AsyncRetry
from create2_deployer.utils.config_manager import SendOptions
from create2_deployer.utils.exceptions import (
    ConfigurationError,
    RpcError,
    TransactionFailed,
    TransactionReverted,
)

FACTORY = "0x4e59b44847b379578588920ca78fbf26c0b4956c"


@pytest.fixture
def web3():
    """Mock Web3 instance"""
    mock = Mock()
    mock.eth.chain_id = 31337
    mock.eth.get_transaction_count.return_value = 7
    mock.eth.max_priority_fee = 2
    mock.eth.gas_price = 50
    mock.eth.get_block.return_value = {"baseFeePerGas": 10}
    mock.eth.estimate_gas.return_value = 100000
    mock.eth.send_raw_transaction.return_value = b"\x12" * 32
    return mock


@pytest.fixture
def client(web3):
    return ChainClient(
        web3,
        Account.from_key(TEST_PRIVATE_KEY),
        AsyncRetry(max_retries=2, base_delay=0, jitter=False)
    )


class TestReads:
    """Read-only calls"""

    @pytest.mark.asyncio
    async def test_get_code(self, client, web3):
        web3.eth.get_code.return_value = b"\x60\x00"

        assert await client.get_code(FACTORY) == b"\x60\x00"
        web3.eth.get_code.assert_called_once_with("0x4e59b44847b379578588920cA78FbF26c0B4956C")

    @pytest.mark.asyncio
    async def test_get_code_empty(self, client, web3):
        web3.eth.get_code.return_value = b""

        assert await client.get_code(FACTORY) == b""

    @pytest.mark.asyncio
    async def test_get_code_retries_transport_errors(self, client, web3):
        web3.eth.get_code.side_effect = [ConnectionError("reset"), b"\x01"]

        assert await client.get_code(FACTORY) == b"\x01"
        assert web3.eth.get_code.call_count == 2

    @pytest.mark.asyncio
    async def test_get_code_gives_up_with_rpc_error(self, client, web3):
        web3.eth.get_code.side_effect = ConnectionError("connection refused")

        with pytest.raises(RpcError, match="connection refused") as exc_info:
            await client.get_code(FACTORY)

        assert web3.eth.get_code.call_count == 2
        assert exc_info.value.stage == "query chain"
        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_rpc_error_response_is_not_retried(self, client, web3):
        web3.eth.get_code.side_effect = ValueError({"code": -32601, "message": "method not found"})

        with pytest.raises(RpcError, match="method not found"):
            await client.get_code(FACTORY)

        assert web3.eth.get_code.call_count == 1

    @pytest.mark.asyncio
    async def test_chain_id(self, client):
        assert await client.chain_id() == 31337

    def test_keccak256(self, client):
        assert client.keccak256(b"abc") == keccak(b"abc")


class TestBuildTransaction:
    """Transaction assembly"""

    @pytest.mark.asyncio
    async def test_eip1559_fees(self, client):
        tx = await client.build_transaction(FACTORY, b"\x00" * 33, SendOptions(chain_id=1))

        assert tx["chainId"] == 1
        assert tx["nonce"] == 7
        assert tx["maxPriorityFeePerGas"] == 2
        assert tx["maxFeePerGas"] == 22
        assert tx["gas"] == 120000
        assert tx["data"] == "0x" + "00" * 33

    @pytest.mark.asyncio
    async def test_legacy_with_explicit_gas(self, client, web3):
        tx = await client.build_transaction(
            FACTORY, b"\x01", SendOptions(legacy=True, gas_price=9, gas_limit=300000)
        )

        assert tx["gasPrice"] == 9
        assert tx["gas"] == 300000
        assert tx["chainId"] == 31337
        assert "maxFeePerGas" not in tx
        web3.eth.estimate_gas.assert_not_called()

    @pytest.mark.asyncio
    async def test_requires_account(self, web3):
        with pytest.raises(ConfigurationError) as exc_info:
            await ChainClient(web3).build_transaction(FACTORY, b"", SendOptions())

        assert exc_info.value.details["field"] == "private_key"

    @pytest.mark.asyncio
    async def test_estimate_revert(self, client, web3):
        web3.eth.estimate_gas.side_effect = ContractLogicError("execution reverted")

        with pytest.raises(TransactionReverted):
            await client.build_transaction(FACTORY, b"\x01", SendOptions(chain_id=1))

    @pytest.mark.asyncio
    async def test_estimate_failure(self, client, web3):
        web3.eth.estimate_gas.side_effect = ValueError("insufficient funds")

        with pytest.raises(TransactionFailed, match="Gas estimation failed"):
            await client.build_transaction(FACTORY, b"\x01", SendOptions(chain_id=1))


class TestSend:
    """Signing, broadcast and receipts"""

    @pytest.mark.asyncio
    async def test_send_transaction(self, client, web3):
        tx_hash = await client.send_transaction(FACTORY, b"\x00" * 32 + b"\x60\x00", SendOptions(chain_id=1))

        assert tx_hash == "0x" + "12" * 32
        web3.eth.send_raw_transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_broadcast_failure(self, client, web3):
        web3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

        with pytest.raises(TransactionFailed, match="nonce too low"):
            await client.send_transaction(FACTORY, b"\x00" * 32, SendOptions(chain_id=1))

    @pytest.mark.asyncio
    async def test_receipt_after_not_found(self, client, web3):
        web3.eth.get_transaction_receipt.side_effect = [
            TransactionNotFound("pending"),
            {"status": 1, "blockNumber": 3},
        ]

        receipt = await client.get_receipt("0xabc", timeout=5, poll_latency=0)

        assert receipt_succeeded(receipt)

    @pytest.mark.asyncio
    async def test_receipt_timeout(self, client, web3):
        web3.eth.get_transaction_receipt.side_effect = TransactionNotFound("pending")

        with pytest.raises(TransactionFailed, match="timeout") as exc_info:
            await client.get_receipt("0xabc", timeout=0, poll_latency=0)

        assert exc_info.value.details["tx_hash"] == "0xabc"

    def test_receipt_succeeded(self):
        assert receipt_succeeded({"status": 1})
        assert not receipt_succeeded({"status": 0})
        assert not receipt_succeeded(Mock(spec=["status"], status=0))
