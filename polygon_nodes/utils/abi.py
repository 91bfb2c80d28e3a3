"""ABI parsing, encoding and decoding helpers"""

import json
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import event_abi_to_log_topic, function_abi_to_4byte_selector
from eth_utils.abi import collapse_if_tuple
from web3 import Web3

from polygon_nodes.errors import NodeOperationError
from polygon_nodes.utils.address import checksum_address

AbiEntry = Dict[str, Any]
AbiLike = Union[str, Sequence[Union[str, AbiEntry]]]

# Largest integer a JSON consumer can hold without losing precision
MAX_SAFE_INTEGER = 2**53 - 1

_FRAGMENT_RE = re.compile(r"^\s*(function|event)\s+([A-Za-z_$][\w$]*)\s*\(")
_ARRAY_SUFFIX_RE = re.compile(r"^((?:\[\d*\])*)(.*)$", re.DOTALL)
_ARRAY_TYPE_RE = re.compile(r"^(.*)\[(\d*)\]$")
_PARAM_KEYWORDS = {"indexed", "memory", "calldata", "storage", "payable"}
_MUTABILITY = ("view", "pure", "payable", "nonpayable")


def _matching_paren(text: str, open_index: int) -> int:
    depth = 0
    for index in range(open_index, len(text)):
        if text[index] == "(":
            depth += 1
        elif text[index] == ")":
            depth -= 1
            if depth == 0:
                return index
    raise NodeOperationError(f"Unbalanced parentheses in ABI fragment: {text}")


def _split_params(text: str) -> List[str]:
    """Split a parameter list on top-level commas"""
    if not text.strip():
        return []

    parts = []
    depth = 0
    current = []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return [part.strip() for part in parts]


def _normalize_type(abi_type: str) -> str:
    return re.sub(r"^(u?int)(?=$|\[)", r"\g<1>256", abi_type)


def _parse_param(text: str, event: bool = False) -> AbiEntry:
    text = text.strip()

    if text.startswith("tuple(") or text.startswith("("):
        open_index = text.index("(")
        close_index = _matching_paren(text, open_index)
        components = [_parse_param(part) for part in _split_params(text[open_index + 1:close_index])]
        suffix, rest = _ARRAY_SUFFIX_RE.match(text[close_index + 1:]).groups()
        param: AbiEntry = {"type": "tuple" + suffix, "components": components}
        words = rest.split()
    else:
        parts = text.split()
        param = {"type": _normalize_type(parts[0])}
        words = parts[1:]

    names = [word for word in words if word not in _PARAM_KEYWORDS]
    param["name"] = names[0] if names else ""
    if event:
        param["indexed"] = "indexed" in words
    return param


def parse_fragment(signature: str) -> AbiEntry:
    """
    Parse a human-readable fragment into a JSON ABI entry.

    Supports "function name(type name, ...) [view|pure|payable] [returns (...)]"
    and "event Name(type indexed name, ...)", including tuple parameters.
    """
    match = _FRAGMENT_RE.match(signature)
    if not match:
        raise NodeOperationError(f"Unsupported ABI fragment: {signature}")

    kind, name = match.groups()
    open_index = match.end() - 1
    close_index = _matching_paren(signature, open_index)
    inputs = [
        _parse_param(part, event=kind == "event")
        for part in _split_params(signature[open_index + 1:close_index])
    ]
    tail = signature[close_index + 1:].strip()

    if kind == "event":
        return {"type": "event", "name": name, "inputs": inputs, "anonymous": "anonymous" in tail.split()}

    outputs: List[AbiEntry] = []
    returns_at = tail.find("returns")
    if returns_at >= 0:
        open_outputs = tail.index("(", returns_at)
        close_outputs = _matching_paren(tail, open_outputs)
        outputs = [_parse_param(part) for part in _split_params(tail[open_outputs + 1:close_outputs])]
        modifiers = tail[:returns_at].split()
    else:
        modifiers = tail.split()

    mutability = next((word for word in modifiers if word in _MUTABILITY), "nonpayable")
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs,
        "stateMutability": mutability,
    }


def load_abi(abi: AbiLike) -> List[AbiEntry]:
    """
    Normalize an ABI into a list of JSON entries.

    Accepts a JSON string, a single human-readable signature, or a list
    mixing JSON entries and human-readable signatures.
    """
    if isinstance(abi, str):
        text = abi.strip()
        if not text:
            raise NodeOperationError("ABI is empty")
        if text[0] in "[{":
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as e:
                raise NodeOperationError(f"Invalid ABI JSON: {e}") from e
            entries = parsed if isinstance(parsed, list) else [parsed]
        else:
            entries = [text]
    else:
        entries = list(abi)

    normalized = []
    for entry in entries:
        if isinstance(entry, str):
            normalized.append(parse_fragment(entry))
        elif isinstance(entry, Mapping):
            normalized.append(dict(entry))
        else:
            raise NodeOperationError(f"Unsupported ABI entry: {entry!r}")
    return normalized


def _is_function(entry: AbiEntry) -> bool:
    return entry.get("type", "function") == "function"


def find_function(abi: AbiLike, name: str, arg_count: Optional[int] = None) -> AbiEntry:
    """Find a function entry by name, using the argument count to pick an overload"""
    candidates = [entry for entry in load_abi(abi) if _is_function(entry) and entry.get("name") == name]
    if not candidates:
        raise NodeOperationError(f"Function {name} not found in ABI")

    if arg_count is not None and len(candidates) > 1:
        matching = [entry for entry in candidates if len(entry.get("inputs", [])) == arg_count]
        if matching:
            return matching[0]

    return candidates[0]


def _parse_int(value: Any) -> int:
    if isinstance(value, str):
        text = value.strip()
        return int(text, 16) if text.lower().startswith(("0x", "-0x")) else int(text)
    return int(value)


def coerce_value(param: AbiEntry, value: Any) -> Any:
    """Convert a JSON-ish argument into the Python value eth-abi expects"""
    abi_type = param["type"]

    array = _ARRAY_TYPE_RE.match(abi_type)
    if array:
        if isinstance(value, str):
            value = json.loads(value)
        inner = dict(param, type=array.group(1))
        return [coerce_value(inner, item) for item in value]

    if abi_type == "tuple":
        components = param.get("components", [])
        if isinstance(value, Mapping):
            value = [value[component["name"]] for component in components]
        return tuple(coerce_value(component, item) for component, item in zip(components, value))

    if abi_type == "address":
        return checksum_address(value)

    if abi_type.startswith(("uint", "int")):
        return _parse_int(value)

    if abi_type == "bool":
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1")
        return bool(value)

    if abi_type.startswith("bytes") and isinstance(value, str):
        return Web3.to_bytes(hexstr=value)

    return value


def encode_function_call(abi: AbiLike, function_name: str, args: Sequence[Any] = ()) -> str:
    """ABI-encode a function call into 0x-prefixed calldata"""
    args = list(args)
    function = find_function(abi, function_name, len(args))
    inputs = function.get("inputs", [])

    if len(args) != len(inputs):
        raise NodeOperationError(
            f"{function_name} expects {len(inputs)} arguments, got {len(args)}"
        )

    types = [collapse_if_tuple(param) for param in inputs]
    try:
        values = [coerce_value(param, arg) for param, arg in zip(inputs, args)]
        encoded = encode(types, values)
    except (EncodingError, TypeError, ValueError) as e:
        raise NodeOperationError(f"Could not encode arguments for {function_name}: {e}") from e

    return "0x" + (function_abi_to_4byte_selector(function) + encoded).hex()


def decode_function_result(abi: AbiLike, function_name: str, data: Union[str, bytes]) -> Any:
    """
    Decode eth_call return data.

    Returns None for functions without outputs, the bare value for a single
    output, and a tuple otherwise. Raises eth-abi's DecodingError on short data.
    """
    function = find_function(abi, function_name)
    types = [collapse_if_tuple(param) for param in function.get("outputs", [])]
    if not types:
        return None

    raw = Web3.to_bytes(hexstr=data) if isinstance(data, str) else bytes(data)
    values = decode(types, raw)
    if len(values) == 1:
        return values[0]
    return tuple(values)


def function_selector(signature: str) -> str:
    """First 4 bytes of keccak-256 of a canonical signature, e.g. "transfer(address,uint256)" """
    return Web3.to_hex(Web3.keccak(text=signature)[:4])


def event_topic(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature))


def encode_parameters(types: Sequence[str], values: Sequence[Any]) -> str:
    return "0x" + encode(list(types), list(values)).hex()


def decode_parameters(types: Sequence[str], data: Union[str, bytes]) -> List[Any]:
    raw = Web3.to_bytes(hexstr=data) if isinstance(data, str) else bytes(data)
    return list(decode(list(types), raw))


def _to_hex_str(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value).lower()


def _is_dynamic(abi_type: str) -> bool:
    return abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("tuple")


def _decode_event(event: AbiEntry, topics: List[str], data: str) -> Dict[str, Any]:
    inputs = event.get("inputs", [])
    indexed = iter(topics)
    non_indexed_params = [param for param in inputs if not param.get("indexed")]

    data_bytes = Web3.to_bytes(hexstr=data) if data else b""
    non_indexed = iter(decode([collapse_if_tuple(p) for p in non_indexed_params], data_bytes))

    args: Dict[str, Any] = {}
    for index, param in enumerate(inputs):
        if param.get("indexed"):
            topic = next(indexed)
            if _is_dynamic(param["type"]):
                # Indexed dynamic values are stored as their keccak hash
                value: Any = topic
            else:
                value = decode([collapse_if_tuple(param)], Web3.to_bytes(hexstr=topic))[0]
        else:
            value = next(non_indexed)
        args[param.get("name") or f"arg{index}"] = value
    return args


def parse_event_log(abi: AbiLike, log: Mapping) -> Optional[Dict[str, Any]]:
    """Decode a raw log against the events in an ABI; None when nothing matches"""
    topics = [_to_hex_str(topic) for topic in log.get("topics", [])]
    if not topics:
        return None

    data = log.get("data") or "0x"
    if isinstance(data, (bytes, bytearray)):
        data = Web3.to_hex(data)

    for event in get_event_fragments(abi):
        if event.get("anonymous"):
            continue
        if Web3.to_hex(event_abi_to_log_topic(event)) != topics[0]:
            continue
        indexed_count = sum(1 for param in event.get("inputs", []) if param.get("indexed"))
        if indexed_count != len(topics) - 1:
            continue
        try:
            return {"name": event["name"], "args": _decode_event(event, topics[1:], data)}
        except (DecodingError, ValueError):
            return None

    return None


def get_function_fragments(abi: AbiLike) -> List[AbiEntry]:
    return [entry for entry in load_abi(abi) if _is_function(entry)]


def get_event_fragments(abi: AbiLike) -> List[AbiEntry]:
    return [entry for entry in load_abi(abi) if entry.get("type") == "event"]


def is_read_only_function(fragment: AbiEntry) -> bool:
    return fragment.get("stateMutability") in ("view", "pure") or fragment.get("constant") is True


def format_function_signature(fragment: AbiEntry) -> str:
    """Display form, e.g. "balanceOf(address owner) returns (uint256)" """
    inputs = ", ".join(
        f"{param['type']} {param.get('name', '')}".strip() for param in fragment.get("inputs", [])
    )
    outputs = ", ".join(param["type"] for param in fragment.get("outputs", []))
    signature = f"{fragment['name']}({inputs})"
    if outputs:
        signature += f" returns ({outputs})"
    return signature


def to_json_value(value: Any, int_as_str: bool = False) -> Any:
    """
    Make decoded values JSON-safe.

    Bytes become 0x-hex, tuples become lists and mappings become dicts.
    Integers are stringified when int_as_str is set or when they exceed
    MAX_SAFE_INTEGER.
    """
    if isinstance(value, Mapping):
        return {key: to_json_value(item, int_as_str) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item, int_as_str) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if int_as_str or abs(value) > MAX_SAFE_INTEGER:
            return str(value)
        return value
    return value
