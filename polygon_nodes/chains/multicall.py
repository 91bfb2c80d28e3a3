"""Multicall3 batching of read-only contract calls"""

from typing import Any, Dict, List, Sequence

import structlog
from eth_abi.exceptions import DecodingError
from web3 import Web3

from polygon_nodes.config.networks import get_network_config
from polygon_nodes.constants import ERC20_ABI, MULTICALL3_ABI
from polygon_nodes.errors import NodeOperationError
from polygon_nodes.utils.abi import decode_function_result, encode_function_call

logger = structlog.get_logger()


class MulticallClient:
    """Client for the Multicall3 contract deployed on each supported network"""

    def __init__(self, provider, network: str):
        try:
            config = get_network_config(network)
        except ValueError as e:
            raise NodeOperationError(str(e)) from e

        self.provider = provider
        self.network = network
        self.address = config.multicall_address
        self._logger = logger.bind(component="multicall", network=network)

    async def _call(self, function_name: str, args: Sequence[Any] = ()) -> Any:
        return await self.provider.call_function(self.address, MULTICALL3_ABI, function_name, args)

    async def aggregate3(self, calls: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Execute calls in one eth_call, tolerating individual failures.

        Each call is {"target", "callData", "allowFailure"?}; allowFailure
        defaults to True. Returns [{"success", "returnData"}] in call order.
        """
        formatted = [
            {
                "target": call["target"],
                "allowFailure": call.get("allowFailure", True),
                "callData": call["callData"],
            }
            for call in calls
        ]
        results = await self._call("aggregate3", [formatted])
        self._logger.debug("multicall_aggregate3", calls=len(formatted))
        return [
            {"success": success, "returnData": Web3.to_hex(return_data)}
            for success, return_data in results
        ]

    async def aggregate(self, calls: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        """Execute calls in one eth_call; the whole batch reverts if any call fails"""
        formatted = [{"target": call["target"], "callData": call["callData"]} for call in calls]
        block_number, return_data = await self._call("aggregate", [formatted])
        return {
            "blockNumber": block_number,
            "returnData": [Web3.to_hex(data) for data in return_data],
        }

    async def get_eth_balance(self, address: str) -> int:
        return await self._call("getEthBalance", [address])

    async def get_block_number(self) -> int:
        return await self._call("getBlockNumber")

    async def get_chain_id(self) -> int:
        return await self._call("getChainId")

    async def get_block_hash(self, block_number: int) -> str:
        return Web3.to_hex(await self._call("getBlockHash", [block_number]))

    async def get_current_block_timestamp(self) -> int:
        return await self._call("getCurrentBlockTimestamp")

    async def get_basefee(self) -> int:
        return await self._call("getBasefee")


async def batch_get_balances(
    multicall: MulticallClient,
    token_addresses: Sequence[str],
    wallet_address: str,
) -> Dict[str, int]:
    """ERC-20 balances of one wallet across many tokens; failed lookups count as 0"""
    calls = [
        {
            "target": token,
            "callData": encode_function_call(ERC20_ABI, "balanceOf", [wallet_address]),
            "allowFailure": True,
        }
        for token in token_addresses
    ]
    results = await multicall.aggregate3(calls)

    balances: Dict[str, int] = {}
    for token, result in zip(token_addresses, results):
        balance = 0
        if result["success"]:
            try:
                balance = decode_function_result(ERC20_ABI, "balanceOf", result["returnData"])
            except (DecodingError, ValueError):
                logger.debug("multicall_balance_undecodable", token=token)
        balances[token] = balance
    return balances
