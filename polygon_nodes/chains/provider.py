"""JSON-RPC provider for Polygon nodes with local transaction signing"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence, Union

import aiohttp
import structlog
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys.exceptions import ValidationError as KeyValidationError
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from polygon_nodes.config.models import RpcCredentials
from polygon_nodes.errors import NodeApiError, NodeOperationError
from polygon_nodes.monitoring import metrics
from polygon_nodes.utils.abi import AbiLike, decode_function_result, encode_function_call
from polygon_nodes.utils.gas import apply_gas_buffer, get_fee_data
from polygon_nodes.utils.units import to_quantity

logger = structlog.get_logger()

BlockId = Union[int, str]

_QUANTITY_FIELDS = ("value", "gas", "gasPrice", "maxFeePerGas", "maxPriorityFeePerGas", "nonce", "chainId", "type")


def block_param(block: Optional[BlockId]) -> str:
    """Normalize a block tag, number or numeric string to a JSON-RPC block parameter"""
    if block is None or block == "":
        return "latest"
    if isinstance(block, int):
        return hex(block)
    text = str(block).strip()
    if text.isdigit():
        return hex(int(text))
    return text


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        return int(value, 16)
    return int(value)


class PolygonProvider:
    """Async JSON-RPC client for one Polygon network endpoint"""

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        network: str = "mainnet",
        private_key: str = "",
        request_timeout: int = 30,
    ):
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.network = network
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self._private_key = private_key
        self._account: Optional[LocalAccount] = None
        self._logger = logger.bind(component="provider", network=network)

    @classmethod
    def from_credentials(cls, credentials: RpcCredentials) -> "PolygonProvider":
        return cls(
            rpc_url=credentials.resolve_rpc_url(),
            chain_id=credentials.resolve_chain_id(),
            network=credentials.network,
            private_key=credentials.private_key,
        )

    async def request(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Send a JSON-RPC request and return its result"""
        start_time = time.time()
        try:
            response = await self.w3.provider.make_request(method, list(params or []))
        except (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            metrics.rpc_errors.labels(network=self.network, error_type=type(e).__name__).inc()
            self._logger.warning("rpc_request_failed", method=method, error=str(e))
            raise NodeApiError(f"RPC request {method} failed: {e}") from e

        metrics.rpc_request_latency.labels(network=self.network, method=method).observe(
            time.time() - start_time
        )

        error = response.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message", "Unknown RPC error")
                code = error.get("code")
                data = error.get("data")
            else:
                message, code, data = str(error), None, None
            metrics.rpc_errors.labels(network=self.network, error_type="rpc_error").inc()
            self._logger.warning("rpc_error_response", method=method, code=code, error=message)
            raise NodeApiError(message, code=code, data=data if isinstance(data, dict) else None)

        return response.get("result")

    async def batch(self, calls: Sequence[Sequence[Any]]) -> List[Any]:
        """Run several (method, params) requests concurrently, preserving order"""
        return list(await asyncio.gather(*(self.request(method, params) for method, params in calls)))

    async def verify_chain_id(self) -> int:
        """Check the endpoint is reachable and warn when it reports another chain"""
        try:
            remote_chain_id = await self.get_chain_id()
        except NodeApiError as e:
            raise NodeApiError(f"Failed to connect to RPC: {e.message}") from e

        if self.chain_id and remote_chain_id != self.chain_id:
            self._logger.warning(
                "chain_id_mismatch",
                expected=self.chain_id,
                actual=remote_chain_id,
            )
        return remote_chain_id

    # Chain state

    async def get_block_number(self) -> int:
        return _to_int(await self.request("eth_blockNumber"))

    async def get_chain_id(self) -> int:
        return _to_int(await self.request("eth_chainId"))

    async def get_block(self, block: Optional[BlockId] = "latest", full_transactions: bool = False) -> Optional[Dict[str, Any]]:
        """Fetch a block by tag, number or 32-byte hash; None when unknown"""
        if isinstance(block, str) and len(block) == 66 and block.startswith("0x"):
            return await self.request("eth_getBlockByHash", [block, full_transactions])
        return await self.request("eth_getBlockByNumber", [block_param(block), full_transactions])

    async def get_balance(self, address: str, block: Optional[BlockId] = "latest") -> int:
        return _to_int(await self.request("eth_getBalance", [address, block_param(block)]))

    async def get_transaction_count(self, address: str, block: Optional[BlockId] = "latest") -> int:
        return _to_int(await self.request("eth_getTransactionCount", [address, block_param(block)]))

    async def get_code(self, address: str, block: Optional[BlockId] = "latest") -> str:
        return await self.request("eth_getCode", [address, block_param(block)])

    async def get_gas_price(self) -> int:
        return _to_int(await self.request("eth_gasPrice"))

    async def get_max_priority_fee(self) -> int:
        return _to_int(await self.request("eth_maxPriorityFeePerGas"))

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.request("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.request("eth_getTransactionReceipt", [tx_hash])

    async def get_logs(self, log_filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self.request("eth_getLogs", [log_filter]) or []

    # Calls

    async def call(self, transaction: Dict[str, Any], block: Optional[BlockId] = "latest") -> str:
        return await self.request("eth_call", [self._format_transaction(transaction), block_param(block)])

    async def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        return _to_int(await self.request("eth_estimateGas", [self._format_transaction(transaction)]))

    async def call_function(
        self,
        address: str,
        abi: AbiLike,
        function_name: str,
        args: Sequence[Any] = (),
        block: Optional[BlockId] = "latest",
    ) -> Any:
        """Encode a contract call, run it with eth_call and decode the result"""
        data = encode_function_call(abi, function_name, args)
        result = await self.call({"to": address, "data": data}, block)
        try:
            return decode_function_result(abi, function_name, result)
        except (DecodingError, ValueError, TypeError) as e:
            raise NodeApiError(
                f"Could not decode result of {function_name} at {address}",
                description=str(e),
            ) from e

    async def send_raw_transaction(self, signed_transaction: str) -> str:
        return await self.request("eth_sendRawTransaction", [signed_transaction])

    @staticmethod
    def _format_transaction(transaction: Dict[str, Any]) -> Dict[str, Any]:
        """Encode numeric fields as hex quantities and drop empty ones"""
        formatted = {}
        for key, value in transaction.items():
            if value is None or value == "":
                continue
            if key in _QUANTITY_FIELDS:
                value = to_quantity(value)
            formatted[key] = value
        return formatted

    # Signing

    @property
    def has_signer(self) -> bool:
        return bool(self._private_key)

    @property
    def account(self) -> LocalAccount:
        if not self._private_key:
            raise NodeOperationError(
                "Private key is required for this operation. Please add a private key to your credentials."
            )
        if self._account is None:
            try:
                self._account = Account.from_key(self._private_key)
            except (KeyValidationError, ValueError, TypeError) as e:
                raise NodeOperationError("Invalid private key in credentials") from e
        return self._account

    async def sign_and_send(self, transaction: Dict[str, Any]) -> Dict[str, Any]:
        """
        Fill in nonce, chain id, gas and fees, sign locally and broadcast.

        Returns the broadcast hash together with the transaction that was signed.
        """
        account = self.account
        tx: Dict[str, Any] = {
            "from": account.address,
            "to": transaction.get("to"),
            "value": int(transaction.get("value") or 0),
            "data": transaction.get("data") or "0x",
            "chainId": self.chain_id,
        }

        nonce, fee_data = await asyncio.gather(
            self.get_transaction_count(account.address, "pending"),
            get_fee_data(self),
        )
        tx["nonce"] = nonce
        tx["gas"] = transaction.get("gas") or apply_gas_buffer(await self.estimate_gas(tx))

        if fee_data.max_fee_per_gas is not None:
            tx["maxFeePerGas"] = fee_data.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = fee_data.max_priority_fee_per_gas
            tx["type"] = 2
        else:
            tx["gasPrice"] = fee_data.gas_price

        unsigned = {key: value for key, value in tx.items() if key != "from" and value is not None}
        signed = account.sign_transaction(unsigned)
        tx_hash = await self.send_raw_transaction(Web3.to_hex(signed.raw_transaction))

        self._logger.info(
            "transaction_sent",
            tx_hash=tx_hash,
            sender=account.address,
            to=tx["to"],
            nonce=nonce,
        )
        return {"hash": tx_hash, "transaction": tx}
