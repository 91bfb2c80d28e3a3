"""Block operations"""

from polygon_nodes.chains.provider import block_param
from polygon_nodes.errors import NodeOperationError
from polygon_nodes.nodes.base import ExplorerRequest, Operation, Resource, RpcRequest
from polygon_nodes.nodes.resources.common import format_block, format_transaction, quantity, require


def _is_block_hash(value) -> bool:
    return isinstance(value, str) and value.startswith("0x") and len(value) == 66


def _block_request(block_id, full_transactions: bool) -> RpcRequest:
    if _is_block_hash(block_id):
        return RpcRequest("eth_getBlockByHash", [block_id, full_transactions])
    # 0 and empty select the latest block
    return RpcRequest("eth_getBlockByNumber", [block_param(block_id or None), full_transactions])


def _get_block(item):
    return _block_request(item.param("blockNumber", 0), False)


def _block_record(item, block):
    return format_block(require(block, "Block not found"))


def _get_latest_block(item):
    return RpcRequest("eth_getBlockByNumber", ["latest", False])


def _latest_block_record(item, block):
    block = require(block, "Block not found")
    return {
        "number": quantity(block.get("number")),
        "hash": block.get("hash"),
        "timestamp": quantity(block.get("timestamp")),
        "gasUsed": str(quantity(block.get("gasUsed"))),
        "gasLimit": str(quantity(block.get("gasLimit"))),
        "transactionCount": len(block.get("transactions") or []),
    }


def _get_block_transactions(item):
    return _block_request(item.param("blockNumber", 0), True)


def _block_transactions_record(item, block):
    block = require(block, "Block not found")
    transactions = block.get("transactions") or []
    return {
        "blockNumber": quantity(block.get("number")),
        "transactionCount": len(transactions),
        "transactions": [format_transaction(tx) for tx in transactions],
    }


def _get_block_by_hash(item):
    block_hash = str(item.param("blockHash")).strip()
    if not _is_block_hash(block_hash):
        raise NodeOperationError(f"Invalid block hash: {block_hash}")
    return RpcRequest("eth_getBlockByHash", [block_hash, bool(item.param("fullTransactions", False))])


def _block_by_hash_record(item, block):
    block = require(block, "Block not found")
    record = format_block(block)
    if item.param("fullTransactions", False):
        record["transactions"] = [format_transaction(tx) for tx in block.get("transactions") or []]
    return record


def _get_block_number(item):
    return RpcRequest("eth_blockNumber")


def _block_number_record(item, result):
    return {"blockNumber": quantity(result), "network": item.network}


def _get_block_reward(item):
    return ExplorerRequest("block", "getblockreward", {"blockno": int(item.param("blockNumber"))})


def _block_reward_record(item, result):
    return dict(result or {}, network=item.network)


BLOCK = Resource(
    name="block",
    display_name="Block",
    default_operation="getLatestBlock",
    operations={
        "getBlock": Operation("Get Block", _get_block, _block_record, "Get block by number or hash"),
        "getLatestBlock": Operation(
            "Get Latest Block", _get_latest_block, _latest_block_record, "Get latest block"
        ),
        "getBlockTransactions": Operation(
            "Get Block Transactions",
            _get_block_transactions,
            _block_transactions_record,
            "Get transactions in a block",
        ),
        "getBlockByHash": Operation(
            "Get Block by Hash", _get_block_by_hash, _block_by_hash_record, "Get block by hash"
        ),
        "getBlockNumber": Operation(
            "Get Block Number", _get_block_number, _block_number_record, "Get latest block number"
        ),
        "getBlockReward": Operation(
            "Get Block Reward", _get_block_reward, _block_reward_record, "Get block reward from explorer"
        ),
    },
)
