"""Contract operations: reads, raw calls, explorer metadata and verification, writes"""

import json

from polygon_nodes.chains.provider import block_param
from polygon_nodes.errors import NodeApiError, NodeOperationError
from polygon_nodes.nodes.base import ContractCall, Custom, ExplorerRequest, Operation, Resource, RpcRequest
from polygon_nodes.nodes.resources.common import format_sent_transaction, parse_amount, parse_json_array
from polygon_nodes.utils.abi import encode_function_call, load_abi, to_json_value


async def _resolve_abi(item, address: str):
    """ABI from the parameter, falling back to the explorer's verified ABI"""
    abi = item.param("abi", "")
    if not abi and item.has_explorer:
        abi = await item.explorer.get_contract_abi(address)
    if not abi:
        raise NodeOperationError("ABI required. Provide ABI or add PolygonScan credentials.")
    return load_abi(abi)


async def _read_contract(item):
    address = item.address_param("contractAddress")
    function_name = item.param("functionName")
    args = parse_json_array(item.param("functionArgs", "[]"))
    abi = await _resolve_abi(item, address)
    return ContractCall(address, abi, function_name, args)


def _read_contract_record(item, result):
    return {
        "contractAddress": item.address_param("contractAddress"),
        "functionName": item.param("functionName"),
        "result": to_json_value(result, int_as_str=True),
    }


def _call(item):
    transaction = {"to": item.address_param("contractAddress"), "data": item.param("data", "0x") or "0x"}
    return RpcRequest("eth_call", [transaction, block_param(item.param("blockTag", "latest"))])


def _call_record(item, result):
    return {
        "contractAddress": item.address_param("contractAddress"),
        "data": item.param("data", "0x") or "0x",
        "result": result,
    }


def _get_abi(item):
    return ExplorerRequest("contract", "getabi", {"address": item.address_param("contractAddress")})


def _abi_record(item, result):
    try:
        abi = json.loads(result)
    except (TypeError, ValueError) as e:
        raise NodeApiError("Explorer returned an invalid ABI", description=str(result)) from e
    return {"contractAddress": item.address_param("contractAddress"), "abi": abi}


def _get_source_code(item):
    return ExplorerRequest("contract", "getsourcecode", {"address": item.address_param("contractAddress")})


def _source_code_record(item, result):
    return {"contractAddress": item.address_param("contractAddress"), "source": result}


def _verify_contract(item):
    address = item.address_param("contractAddress")
    explorer = item.explorer
    return Custom(
        lambda: explorer.verify_source_code(
            contract_address=address,
            source_code=item.param("sourceCode"),
            contract_name=item.param("contractName"),
            compiler_version=item.param("compilerVersion"),
            optimization_used=bool(item.param("optimizationUsed", False)),
            runs=int(item.param("runs", 200)),
            constructor_arguments=item.param("constructorArguments", ""),
            code_format=item.param("codeFormat", "solidity-single-file"),
        )
    )


def _verify_record(item, guid):
    return {"contractAddress": item.address_param("contractAddress"), "guid": guid, "status": "submitted"}


def _check_verify_status(item):
    guid = item.param("guid")
    explorer = item.explorer
    return Custom(lambda: explorer.check_verify_status(guid))


def _verify_status_record(item, status):
    return {"guid": item.param("guid"), "status": status}


async def _write_contract(item):
    provider = item.provider
    # Fail fast when no signer is configured
    provider.account
    address = item.address_param("contractAddress")
    function_name = item.param("functionName")
    args = parse_json_array(item.param("functionArgs", "[]"))
    value = parse_amount(item.param("value", "0"))
    abi = await _resolve_abi(item, address)
    data = encode_function_call(abi, function_name, args)
    return Custom(lambda: provider.sign_and_send({"to": address, "data": data, "value": value}))


def _write_record(item, sent):
    record = format_sent_transaction(sent, item.network)
    record["functionName"] = item.param("functionName")
    return record


CONTRACT = Resource(
    name="contract",
    display_name="Contract",
    default_operation="readContract",
    operations={
        "readContract": Operation(
            "Read Contract", _read_contract, _read_contract_record, "Call a view/pure function"
        ),
        "call": Operation("Call", _call, _call_record, "Raw eth_call with encoded calldata"),
        "getAbi": Operation("Get ABI", _get_abi, _abi_record, "Get contract ABI from explorer"),
        "getSourceCode": Operation(
            "Get Source Code", _get_source_code, _source_code_record, "Get contract source code"
        ),
        "verifyContract": Operation(
            "Verify Contract", _verify_contract, _verify_record, "Submit source code for verification"
        ),
        "checkVerifyStatus": Operation(
            "Check Verify Status", _check_verify_status, _verify_status_record, "Check a verification request"
        ),
        "writeContract": Operation(
            "Write Contract", _write_contract, _write_record, "Sign and send a contract transaction"
        ),
    },
)
