"""Event log queries and log filters"""

from typing import Any, Dict, List, Optional

from polygon_nodes.chains.provider import block_param
from polygon_nodes.errors import NodeOperationError
from polygon_nodes.nodes.base import Operation, Resource, RpcRequest
from polygon_nodes.nodes.resources.common import format_log
from polygon_nodes.utils.abi import load_abi, parse_event_log, to_json_value
from polygon_nodes.utils.address import checksum_address


def _topics(value: Any) -> List[Optional[str]]:
    """Topics from a list or comma-separated string; blank positions match anything"""
    if isinstance(value, list):
        entries = value
    elif value is None or str(value).strip() == "":
        return []
    else:
        entries = str(value).split(",")

    topics: List[Optional[str]] = []
    for entry in entries:
        topic = entry.strip() if isinstance(entry, str) else entry
        topics.append(topic or None)
    return topics


def _log_filter(item) -> Dict[str, Any]:
    log_filter: Dict[str, Any] = {
        "fromBlock": block_param(item.param("fromBlock", "latest")),
        "toBlock": block_param(item.param("toBlock", "latest")),
    }
    address = str(item.param("address", "") or "").strip()
    if address:
        log_filter["address"] = checksum_address(address)
    topics = _topics(item.param("topics", ""))
    if topics:
        log_filter["topics"] = topics
    return log_filter


def _filter_id(item) -> str:
    filter_id = str(item.param("filterId", "")).strip()
    if not filter_id:
        raise NodeOperationError("Filter ID is required")
    return filter_id


def _decode_logs(item, logs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    abi_param = item.param("abi", "")
    abi = load_abi(abi_param) if abi_param else None

    records = []
    for log in logs:
        if not isinstance(log, dict):
            # Block and pending-transaction filters return hashes
            records.append(log)
            continue
        record = format_log(log)
        if abi is not None:
            decoded = parse_event_log(abi, log)
            if decoded is not None:
                record["event"] = decoded["name"]
                record["args"] = to_json_value(decoded["args"], int_as_str=True)
        records.append(record)
    return records


def _get_logs(item):
    return RpcRequest("eth_getLogs", [_log_filter(item)])


def _logs_record(item, logs):
    records = _decode_logs(item, logs or [])
    return {"logs": records, "count": len(records)}


def _new_filter(item):
    return RpcRequest("eth_newFilter", [_log_filter(item)])


def _new_filter_record(item, filter_id):
    return {"filterId": filter_id, "network": item.network}


def _get_filter_changes(item):
    return RpcRequest("eth_getFilterChanges", [_filter_id(item)])


def _filter_changes_record(item, changes):
    records = _decode_logs(item, changes or [])
    return {"filterId": _filter_id(item), "changes": records, "count": len(records)}


def _get_filter_logs(item):
    return RpcRequest("eth_getFilterLogs", [_filter_id(item)])


def _filter_logs_record(item, logs):
    records = _decode_logs(item, logs or [])
    return {"filterId": _filter_id(item), "logs": records, "count": len(records)}


def _uninstall_filter(item):
    return RpcRequest("eth_uninstallFilter", [_filter_id(item)])


def _uninstall_record(item, result):
    return {"filterId": _filter_id(item), "uninstalled": bool(result)}


EVENT = Resource(
    name="event",
    display_name="Event",
    default_operation="getLogs",
    operations={
        "getLogs": Operation("Get Logs", _get_logs, _logs_record, "Query event logs, optionally decoded"),
        "newFilter": Operation("New Filter", _new_filter, _new_filter_record, "Install a log filter"),
        "getFilterChanges": Operation(
            "Get Filter Changes", _get_filter_changes, _filter_changes_record, "Poll a filter for new logs"
        ),
        "getFilterLogs": Operation(
            "Get Filter Logs", _get_filter_logs, _filter_logs_record, "Get all logs matching a filter"
        ),
        "uninstallFilter": Operation(
            "Uninstall Filter", _uninstall_filter, _uninstall_record, "Remove a log filter"
        ),
    },
)
