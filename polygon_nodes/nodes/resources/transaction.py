"""Transaction lookup, gas estimation and broadcasting"""

from polygon_nodes.errors import NodeOperationError
from polygon_nodes.nodes.base import Custom, ExplorerRequest, Operation, Resource, RpcRequest
from polygon_nodes.nodes.resources.common import (
    format_receipt,
    format_sent_transaction,
    format_transaction,
    parse_amount,
    require,
)
from polygon_nodes.utils.address import checksum_address
from polygon_nodes.utils.gas import estimate_gas, format_gas_estimate


def _tx_hash(item) -> str:
    tx_hash = str(item.param("transactionHash")).strip()
    if not (tx_hash.startswith("0x") and len(tx_hash) == 66):
        raise NodeOperationError(f"Invalid transaction hash: {tx_hash}")
    return tx_hash


def _optional_address(item, name: str):
    value = str(item.param(name, "") or "").strip()
    return checksum_address(value) if value else None


def _get_transaction(item):
    return RpcRequest("eth_getTransactionByHash", [_tx_hash(item)])


def _transaction_record(item, tx):
    return format_transaction(require(tx, "Transaction not found"))


def _get_receipt(item):
    return RpcRequest("eth_getTransactionReceipt", [_tx_hash(item)])


def _receipt_record(item, receipt):
    return format_receipt(require(receipt, "Receipt not found"))


def _estimate_gas(item):
    transaction = {
        "to": _optional_address(item, "toAddress"),
        "value": parse_amount(item.param("value", "0")),
        "data": item.param("data", "0x") or "0x",
    }
    provider = item.provider
    return Custom(lambda: estimate_gas(provider, transaction))


def _gas_estimate_record(item, estimate):
    return format_gas_estimate(estimate)


def _send_raw_transaction(item):
    signed = str(item.param("signedTransaction")).strip()
    if not signed.startswith("0x"):
        raise NodeOperationError("Signed transaction must be 0x-prefixed hex")
    return RpcRequest("eth_sendRawTransaction", [signed])


def _raw_sent_record(item, tx_hash):
    return {"transactionHash": tx_hash, "network": item.network}


def _send_transaction(item):
    provider = item.provider
    # Fail fast when no signer is configured
    provider.account
    transaction = {
        "to": _optional_address(item, "toAddress"),
        "value": parse_amount(item.param("value", "0")),
        "data": item.param("data", "0x") or "0x",
    }
    return Custom(lambda: provider.sign_and_send(transaction))


def _sent_record(item, sent):
    return format_sent_transaction(sent, item.network)


def _get_status(item):
    return ExplorerRequest("transaction", "gettxreceiptstatus", {"txhash": _tx_hash(item)})


def _status_record(item, result):
    raw_status = (result or {}).get("status", "")
    status = {"1": "success", "0": "failed"}.get(raw_status, "pending")
    return {"transactionHash": _tx_hash(item), "status": status, "rawStatus": raw_status}


def _get_transaction_via_explorer(item):
    return ExplorerRequest("proxy", "eth_getTransactionByHash", {"txhash": _tx_hash(item)})


TRANSACTION = Resource(
    name="transaction",
    display_name="Transaction",
    default_operation="getTransaction",
    operations={
        "getTransaction": Operation(
            "Get Transaction", _get_transaction, _transaction_record, "Get transaction by hash"
        ),
        "getReceipt": Operation("Get Receipt", _get_receipt, _receipt_record, "Get transaction receipt"),
        "estimateGas": Operation(
            "Estimate Gas", _estimate_gas, _gas_estimate_record, "Estimate gas for transaction"
        ),
        "sendRawTransaction": Operation(
            "Send Raw Transaction", _send_raw_transaction, _raw_sent_record, "Broadcast a signed transaction"
        ),
        "sendTransaction": Operation(
            "Send Transaction", _send_transaction, _sent_record, "Sign and send a MATIC transfer or call"
        ),
        "getStatus": Operation(
            "Get Status", _get_status, _status_record, "Get receipt status from the explorer"
        ),
        "getTransactionViaExplorer": Operation(
            "Get Transaction via Explorer",
            _get_transaction_via_explorer,
            _transaction_record,
            "Get transaction through the explorer's proxy endpoint",
        ),
    },
)
