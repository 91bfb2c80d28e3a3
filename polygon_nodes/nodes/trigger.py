"""Polygon polling trigger node"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from polygon_nodes.chains.provider import PolygonProvider
from polygon_nodes.config.models import RpcCredentials
from polygon_nodes.constants import ERC20_ABI, ERC721_ABI, TRANSFER_TOPIC
from polygon_nodes.errors import NodeApiError, NodeOperationError
from polygon_nodes.monitoring import metrics
from polygon_nodes.nodes.base import NodeRuntime
from polygon_nodes.nodes.context import PollContext
from polygon_nodes.nodes.resources.common import quantity, quantity_str
from polygon_nodes.utils.address import checksum_address, topic_to_address, validate_address
from polygon_nodes.utils.units import format_matic, format_units

logger = structlog.get_logger()

CURSOR_KEY = "lastProcessedBlock"
EVENTS = ("newBlock", "maticTransfer", "tokenTransfer", "nftTransfer")
DIRECTIONS = ("both", "incoming", "outgoing")

DEFAULT_TOKEN_INFO = ("UNKNOWN", 18)
DEFAULT_COLLECTION_INFO = ("Unknown Collection", "NFT")


def _direction_match(direction: str, sender: Optional[str], recipient: Optional[str], watch: str) -> Optional[str]:
    """Return "incoming"/"outgoing" when the transfer involves the watch address in the wanted direction"""
    is_incoming = (recipient or "").lower() == watch
    is_outgoing = (sender or "").lower() == watch

    if direction == "incoming" and not is_incoming:
        return None
    if direction == "outgoing" and not is_outgoing:
        return None
    if not is_incoming and not is_outgoing:
        return None
    return "incoming" if is_incoming else "outgoing"


def _log_value(data: Optional[str]) -> int:
    if not data or data == "0x":
        return 0
    return int(data, 16)


class PolygonTrigger:
    """
    Polling trigger emitting new blocks and transfers since the last poll.

    The last processed block is kept in the workflow's static data. Block
    scans advance it block by block, so a failed fetch resumes from the
    first unprocessed block on the next poll. Log scans cover the whole
    range in one request and advance it only on success.
    """

    description = {
        "displayName": "Polygon Trigger",
        "name": "polygonTrigger",
        "group": ["trigger"],
        "version": 1,
        "description": "Trigger on Polygon blockchain events",
        "polling": True,
        "inputs": [],
        "outputs": ["main"],
        "credentials": [{"name": "polygonRpc", "required": True}],
        "properties": [
            {
                "displayName": "Event",
                "name": "event",
                "type": "options",
                "options": [
                    {"name": "New Block", "value": "newBlock"},
                    {"name": "MATIC Transfer", "value": "maticTransfer"},
                    {"name": "Token Transfer", "value": "tokenTransfer"},
                    {"name": "NFT Transfer", "value": "nftTransfer"},
                ],
                "default": "newBlock",
            },
            {"displayName": "Watch Address", "name": "watchAddress", "type": "string", "default": ""},
            {"displayName": "Token Contract", "name": "tokenContract", "type": "string", "default": ""},
            {"displayName": "NFT Contract", "name": "nftContract", "type": "string", "default": ""},
            {
                "displayName": "Direction",
                "name": "direction",
                "type": "options",
                "options": [
                    {"name": "Both", "value": "both"},
                    {"name": "Incoming Only", "value": "incoming"},
                    {"name": "Outgoing Only", "value": "outgoing"},
                ],
                "default": "both",
            },
        ],
    }

    def __init__(
        self,
        runtime: Optional[NodeRuntime] = None,
        provider_factory: Callable[[RpcCredentials], Any] = PolygonProvider.from_credentials,
    ):
        self.runtime = runtime or NodeRuntime()
        self.provider_factory = provider_factory
        self._logger = logger.bind(component="polygon_trigger")

    async def poll(self, ctx: PollContext) -> Optional[List[List[Dict[str, Any]]]]:
        self.runtime.log_licensing_notice()

        credentials = RpcCredentials.from_host(ctx.get_credentials("polygonRpc"))
        provider = self.provider_factory(credentials)
        network = credentials.network

        event = ctx.get_node_parameter("event", default="newBlock")
        if event not in EVENTS:
            raise NodeOperationError(f"Unknown event: {event}")

        watch_address = None
        direction = "both"
        if event != "newBlock":
            raw_watch = ctx.get_node_parameter("watchAddress", default="")
            if not validate_address(raw_watch):
                raise NodeOperationError(f"Invalid watch address: {raw_watch}")
            watch_address = raw_watch.lower()
            direction = ctx.get_node_parameter("direction", default="both") or "both"
            if direction not in DIRECTIONS:
                raise NodeOperationError(f"Invalid direction: {direction}")

        state = ctx.get_workflow_static_data("node")
        current_block = await provider.get_block_number()
        last_block = state.get(CURSOR_KEY)
        if last_block is None:
            last_block = current_block - 1
            state[CURSOR_KEY] = last_block

        if current_block <= last_block:
            return None

        metrics.trigger_blocks_behind.labels(network=network, event=event).set(current_block - last_block)
        log = self._logger.bind(network=network, event=event)
        log.debug("trigger_poll_started", from_block=last_block + 1, to_block=current_block)

        if event == "newBlock":
            records = await self._scan_blocks(
                provider, state, last_block, current_block, False,
                lambda block: [self._block_record(block, network)],
                log,
            )
        elif event == "maticTransfer":
            records = await self._scan_blocks(
                provider, state, last_block, current_block, True,
                lambda block: self._matic_transfers(block, watch_address, direction, network),
                log,
            )
        else:
            contract_param = "tokenContract" if event == "tokenTransfer" else "nftContract"
            contract = ctx.get_node_parameter(contract_param, default="")
            logs = await provider.get_logs(self._transfer_filter(last_block + 1, current_block, contract))
            if event == "tokenTransfer":
                records = await self._token_transfers(provider, logs, watch_address, direction, network)
            else:
                records = await self._nft_transfers(provider, logs, watch_address, direction, network)
            state[CURSOR_KEY] = current_block

        metrics.trigger_events_emitted.labels(network=network, event=event).inc(len(records))
        log.info("trigger_poll_completed", cursor=state.get(CURSOR_KEY), items=len(records))

        if not records:
            return None
        return [[{"json": record} for record in records]]

    async def _scan_blocks(
        self,
        provider,
        state: Dict[str, Any],
        last_block: int,
        current_block: int,
        full_transactions: bool,
        handler: Callable[[Dict[str, Any]], List[Dict[str, Any]]],
        log,
    ) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        for block_number in range(last_block + 1, current_block + 1):
            try:
                block = await provider.get_block(block_number, full_transactions)
                if block is None:
                    raise NodeApiError(f"Block {block_number} not found")
            except Exception as e:
                log.warning(
                    "trigger_scan_interrupted",
                    block_number=block_number,
                    cursor=state.get(CURSOR_KEY),
                    collected=len(records),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if not records:
                    raise
                return records

            records.extend(handler(block))
            state[CURSOR_KEY] = block_number

        return records

    @staticmethod
    def _block_record(block: Dict[str, Any], network: str) -> Dict[str, Any]:
        return {
            "blockNumber": quantity(block.get("number")),
            "hash": block.get("hash"),
            "timestamp": quantity(block.get("timestamp")),
            "transactionCount": len(block.get("transactions") or []),
            "gasUsed": quantity_str(block.get("gasUsed")),
            "gasLimit": quantity_str(block.get("gasLimit")),
            "network": network,
        }

    @staticmethod
    def _matic_transfers(
        block: Dict[str, Any], watch: str, direction: str, network: str
    ) -> List[Dict[str, Any]]:
        records = []
        for tx in block.get("transactions") or []:
            if not isinstance(tx, dict):
                continue
            value = quantity(tx.get("value")) or 0
            if value == 0:
                continue

            transfer_type = _direction_match(direction, tx.get("from"), tx.get("to"), watch)
            if transfer_type is None:
                continue

            records.append({
                "type": transfer_type,
                "hash": tx.get("hash"),
                "from": tx.get("from"),
                "to": tx.get("to"),
                "value": format_matic(value),
                "valueWei": str(value),
                "blockNumber": quantity(block.get("number")),
                "network": network,
            })
        return records

    @staticmethod
    def _transfer_filter(from_block: int, to_block: int, contract: str) -> Dict[str, Any]:
        log_filter: Dict[str, Any] = {
            "topics": [TRANSFER_TOPIC],
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        # An invalid contract filter is ignored rather than rejected
        if contract and validate_address(contract):
            log_filter["address"] = checksum_address(contract)
        return log_filter

    async def _contract_info(
        self, provider, address: str, abi, functions: Tuple[str, str], default: Tuple[Any, Any]
    ) -> Tuple[Any, Any]:
        try:
            return tuple(await asyncio.gather(
                *(provider.call_function(address, abi, function) for function in functions)
            ))
        except Exception as e:
            self._logger.debug("contract_info_unavailable", address=address, error=str(e))
            return default

    async def _token_transfers(
        self, provider, logs: List[Dict[str, Any]], watch: str, direction: str, network: str
    ) -> List[Dict[str, Any]]:
        token_info: Dict[str, Tuple[str, int]] = {}
        records = []
        for log in logs:
            topics = log.get("topics") or []
            if len(topics) < 3:
                continue

            sender = topic_to_address(topics[1])
            recipient = topic_to_address(topics[2])
            transfer_type = _direction_match(direction, sender, recipient, watch)
            if transfer_type is None:
                continue

            token = log.get("address")
            if token not in token_info:
                token_info[token] = await self._contract_info(
                    provider, token, ERC20_ABI, ("symbol", "decimals"), DEFAULT_TOKEN_INFO
                )
            symbol, decimals = token_info[token]
            value = _log_value(log.get("data"))

            records.append({
                "type": transfer_type,
                "tokenAddress": token,
                "symbol": symbol,
                "from": sender,
                "to": recipient,
                "value": format_units(value, int(decimals)),
                "valueRaw": str(value),
                "blockNumber": quantity(log.get("blockNumber")),
                "transactionHash": log.get("transactionHash"),
                "network": network,
            })
        return records

    async def _nft_transfers(
        self, provider, logs: List[Dict[str, Any]], watch: str, direction: str, network: str
    ) -> List[Dict[str, Any]]:
        collection_info: Dict[str, Tuple[str, str]] = {}
        records = []
        for log in logs:
            topics = log.get("topics") or []
            # ERC-721 transfers index the token id as a fourth topic
            if len(topics) != 4:
                continue

            sender = topic_to_address(topics[1])
            recipient = topic_to_address(topics[2])
            transfer_type = _direction_match(direction, sender, recipient, watch)
            if transfer_type is None:
                continue

            contract = log.get("address")
            if contract not in collection_info:
                collection_info[contract] = await self._contract_info(
                    provider, contract, ERC721_ABI, ("name", "symbol"), DEFAULT_COLLECTION_INFO
                )
            name, symbol = collection_info[contract]

            records.append({
                "type": transfer_type,
                "contractAddress": contract,
                "collectionName": name,
                "symbol": symbol,
                "tokenId": str(int(topics[3], 16)),
                "from": sender,
                "to": recipient,
                "blockNumber": quantity(log.get("blockNumber")),
                "transactionHash": log.get("transactionHash"),
                "network": network,
            })
        return records
