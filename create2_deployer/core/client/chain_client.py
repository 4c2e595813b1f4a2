"""
Chain client collaborator

Narrow wrapper around web3 for the four chain operations a deployment
needs: read code, hash, send one signed transaction, await its receipt.

Design Notes:
- Web3 HTTP calls are synchronous; they run in a worker thread through
  run_sync so the event loop stays responsive
- Read-only calls are retried on transport errors, sending is not; a read
  that still fails surfaces as RpcError
- Gas estimation that reverts means the factory's CREATE2 would fail, so it
  surfaces as TransactionReverted rather than a broadcast failure
- EIP-1559 fees by default, legacy gasPrice when requested
"""

import asyncio
import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound
from web3.types import TxParams, TxReceipt, Wei

from ...utils.async_retry import AsyncRetry
from ...utils.config_manager import SendOptions
from ...utils.exceptions import ConfigurationError, RpcError, TransactionFailed, TransactionReverted

LOG = logging.getLogger(__name__)

T = TypeVar('T')

GAS_PADDING = 1.2

_web3_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="web3_sync_")


async def run_sync(func: Callable[..., T], *args, **kwargs) -> T:
    """
    Run a synchronous function in a thread pool to avoid blocking the event loop.
    """
    loop = asyncio.get_running_loop()
    partial_func = functools.partial(func, *args, **kwargs)
    return await loop.run_in_executor(_web3_executor, partial_func)


class ChainClient:
    """
    Chain collaborator: code lookup, keccak256, send and receipt polling.
    """

    def __init__(
        self,
        web3: Web3,
        account: Optional[LocalAccount] = None,
        retry_config: Optional[AsyncRetry] = None
    ):
        """
        Args:
            web3: Web3 instance for blockchain interaction
            account: Signing account; None allows read-only use only
            retry_config: Retry configuration for read-only calls
        """
        self.web3 = web3
        self.account = account
        self.retry = retry_config or AsyncRetry(
            max_retries=3,
            base_delay=1.0,
            max_delay=10.0
        )

    @classmethod
    def connect(
        cls,
        rpc_url: str,
        private_key: Optional[str] = None,
        request_timeout: float = 30.0
    ) -> "ChainClient":
        """Create a client over HTTP, with a signer if a key is given"""
        web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        account = Account.from_key(private_key) if private_key else None
        return cls(web3, account)

    async def _read(self, func: Callable[..., T], *args) -> T:
        """Run a read-only call with retries; failures surface as RpcError"""
        try:
            return await self.retry.execute(run_sync, func, *args)
        except Exception as e:
            method = getattr(func, "__name__", None)
            raise RpcError(
                f"RPC call failed: {type(e).__name__}: {e}",
                method=None if method == "<lambda>" else method,
                cause=e
            )

    def keccak256(self, data: bytes) -> bytes:
        """keccak256 digest of raw bytes"""
        return bytes(Web3.keccak(primitive=bytes(data)))

    async def chain_id(self) -> int:
        return await self._read(lambda: self.web3.eth.chain_id)

    async def get_code(self, address: str) -> bytes:
        """Runtime code at an address; empty bytes when nothing is deployed"""
        code = await self._read(
            self.web3.eth.get_code,
            Web3.to_checksum_address(address)
        )
        return bytes(code or b"")

    async def build_transaction(self, to: str, data: bytes, options: SendOptions) -> TxParams:
        """
        Build a complete, unsigned transaction.

        Raises:
            ConfigurationError: No signing account
            TransactionReverted: Gas estimation reverted
            TransactionFailed: Any other RPC failure while filling fields
        """
        if self.account is None:
            raise ConfigurationError(
                "A private key is required to send the deployment transaction "
                "(--private-key or PRIVATE_KEY)",
                field="private_key"
            )

        sender = self.account.address
        tx: TxParams = {
            'from': sender,
            'to': Web3.to_checksum_address(to),
            'value': Wei(0),
            'data': Web3.to_hex(data),
        }

        try:
            tx['chainId'] = options.chain_id or await self.chain_id()
            tx['nonce'] = await self._read(self.web3.eth.get_transaction_count, sender, 'pending')

            if options.legacy:
                tx['gasPrice'] = Wei(options.gas_price or await self._read(lambda: self.web3.eth.gas_price))
            else:
                priority = options.priority_gas_price
                if priority is None:
                    priority = await self._read(lambda: self.web3.eth.max_priority_fee)
                if options.gas_price:
                    max_fee = options.gas_price
                else:
                    block = await self._read(self.web3.eth.get_block, 'latest')
                    max_fee = 2 * block.get('baseFeePerGas', 0) + priority
                tx['maxPriorityFeePerGas'] = Wei(priority)
                tx['maxFeePerGas'] = Wei(max(max_fee, priority))
        except (ConfigurationError, TransactionFailed):
            raise
        except Exception as e:
            raise TransactionFailed(
                f"Failed to prepare transaction: {e}",
                from_address=sender,
                to_address=to,
                cause=e
            )

        if options.gas_limit:
            tx['gas'] = options.gas_limit
        else:
            tx['gas'] = await self.estimate_gas(tx)

        return tx

    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas with padding"""
        try:
            estimate = await run_sync(self.web3.eth.estimate_gas, transaction)
        except ContractLogicError as e:
            raise TransactionReverted(
                f"Deployment transaction would revert: {e}",
                from_address=transaction.get('from'),
                to_address=transaction.get('to'),
                cause=e
            )
        except Exception as e:
            raise TransactionFailed(
                f"Gas estimation failed: {e}",
                from_address=transaction.get('from'),
                to_address=transaction.get('to'),
                cause=e
            )

        gas_limit = int(estimate * GAS_PADDING)
        LOG.debug(f"Gas estimate: {estimate} -> {gas_limit} (with padding)")
        return gas_limit

    async def send_transaction(self, to: str, data: bytes, options: SendOptions) -> str:
        """
        Sign and broadcast a transaction.

        Returns:
            0x-prefixed transaction hash

        Raises:
            TransactionFailed: Signing or broadcast failed
        """
        tx = await self.build_transaction(to, data, options)

        try:
            signed_tx = self.account.sign_transaction(tx)
            # eth-account renamed rawTransaction to raw_transaction
            raw_tx = getattr(signed_tx, 'raw_transaction', None) or getattr(signed_tx, 'rawTransaction')
        except Exception as e:
            raise TransactionFailed(
                f"Failed to sign transaction: {e}",
                from_address=self.account.address,
                to_address=to,
                cause=e
            )

        try:
            tx_hash = await run_sync(self.web3.eth.send_raw_transaction, raw_tx)
        except Exception as e:
            raise TransactionFailed(
                f"Failed to send transaction: {e}",
                from_address=self.account.address,
                to_address=to,
                cause=e
            )

        tx_hash_hex = Web3.to_hex(tx_hash)
        LOG.info(f"Sent transaction {tx_hash_hex} (nonce {tx['nonce']}, gas {tx['gas']})")
        return tx_hash_hex

    async def get_receipt(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_latency: float = 1.0
    ) -> TxReceipt:
        """
        Poll for a transaction receipt.

        Raises:
            TransactionFailed: No receipt within the timeout
        """
        start_time = time.time()
        LOG.info(f"Waiting for transaction receipt: {tx_hash}")

        while True:
            try:
                receipt = await run_sync(self.web3.eth.get_transaction_receipt, tx_hash)
                if receipt is not None:
                    return receipt
            except TransactionNotFound:
                pass
            except Exception as e:
                raise TransactionFailed(
                    f"Failed to fetch receipt: {e}",
                    tx_hash=tx_hash,
                    cause=e
                )

            if time.time() - start_time > timeout:
                raise TransactionFailed(
                    f"Transaction receipt timeout after {timeout}s",
                    tx_hash=tx_hash
                )

            await asyncio.sleep(poll_latency)


def receipt_succeeded(receipt: Any) -> bool:
    """Receipt status is 1 (works for AttributeDict and plain dict receipts)"""
    status = receipt.get("status") if hasattr(receipt, "get") else getattr(receipt, "status", None)
    return status == 1
