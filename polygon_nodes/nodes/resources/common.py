"""Parameter parsing and record shaping shared by resource operations"""

import json
from typing import Any, Dict, List, Optional

from polygon_nodes.config.networks import NETWORKS
from polygon_nodes.errors import NodeApiError, NodeOperationError
from polygon_nodes.utils.units import format_matic, parse_matic


def quantity(value: Any) -> Optional[int]:
    """Decode a JSON-RPC hex quantity"""
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def quantity_str(value: Any) -> Optional[str]:
    decoded = quantity(value)
    return None if decoded is None else str(decoded)


def currency_symbol(network: str) -> str:
    config = NETWORKS.get(network)
    return config.currency.symbol if config else "MATIC"


def parse_json_array(value: Any, name: str = "functionArgs") -> List[Any]:
    """Accept a list or a JSON array string (empty means no arguments)"""
    if isinstance(value, list):
        return value
    if value is None or str(value).strip() == "":
        return []
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError) as e:
        raise NodeOperationError(f"Invalid {name}: must be a JSON array", description=str(e)) from e
    if not isinstance(parsed, list):
        raise NodeOperationError(f"Invalid {name}: must be a JSON array")
    return parsed


def parse_csv(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(entry).strip() for entry in value if str(entry).strip()]
    return [entry.strip() for entry in str(value or "").split(",") if entry.strip()]


def parse_amount(value: Any, name: str = "value") -> int:
    """Parse a MATIC amount into wei"""
    try:
        return parse_matic(str(value or "0"))
    except ValueError as e:
        raise NodeOperationError(f"Invalid {name}: {value}") from e


def require(record: Optional[Dict[str, Any]], message: str) -> Dict[str, Any]:
    if record is None:
        raise NodeApiError(message)
    return record


def format_block(block: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "number": quantity(block.get("number")),
        "hash": block.get("hash"),
        "parentHash": block.get("parentHash"),
        "timestamp": quantity(block.get("timestamp")),
        "nonce": block.get("nonce"),
        "difficulty": quantity_str(block.get("difficulty")),
        "gasLimit": quantity_str(block.get("gasLimit")),
        "gasUsed": quantity_str(block.get("gasUsed")),
        "baseFeePerGas": quantity_str(block.get("baseFeePerGas")),
        "miner": block.get("miner"),
        "transactionCount": len(block.get("transactions") or []),
    }


def format_transaction(tx: Dict[str, Any]) -> Dict[str, Any]:
    value = quantity(tx.get("value")) or 0
    return {
        "hash": tx.get("hash"),
        "from": tx.get("from"),
        "to": tx.get("to"),
        "value": format_matic(value),
        "valueWei": str(value),
        "gasPrice": quantity_str(tx.get("gasPrice")),
        "gasLimit": quantity_str(tx.get("gas")),
        "nonce": quantity(tx.get("nonce")),
        "data": tx.get("input"),
        "blockNumber": quantity(tx.get("blockNumber")),
        "blockHash": tx.get("blockHash"),
    }


def format_log(log: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "address": log.get("address"),
        "topics": log.get("topics", []),
        "data": log.get("data"),
        "blockNumber": quantity(log.get("blockNumber")),
        "transactionHash": log.get("transactionHash"),
        "logIndex": quantity(log.get("logIndex")),
    }


def format_receipt(receipt: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "transactionHash": receipt.get("transactionHash"),
        "blockNumber": quantity(receipt.get("blockNumber")),
        "blockHash": receipt.get("blockHash"),
        "from": receipt.get("from"),
        "to": receipt.get("to"),
        "contractAddress": receipt.get("contractAddress"),
        "status": "success" if quantity(receipt.get("status")) == 1 else "failed",
        "gasUsed": quantity_str(receipt.get("gasUsed")),
        "cumulativeGasUsed": quantity_str(receipt.get("cumulativeGasUsed")),
        "effectiveGasPrice": quantity_str(receipt.get("effectiveGasPrice")),
        "logs": [
            {"address": log.get("address"), "topics": log.get("topics", []), "data": log.get("data")}
            for log in receipt.get("logs", [])
        ],
    }


def format_sent_transaction(sent: Dict[str, Any], network: str) -> Dict[str, Any]:
    tx = sent["transaction"]
    return {
        "transactionHash": sent["hash"],
        "from": tx["from"],
        "to": tx.get("to"),
        "value": format_matic(tx.get("value", 0)),
        "nonce": tx["nonce"],
        "gasLimit": str(tx["gas"]),
        "network": network,
    }
