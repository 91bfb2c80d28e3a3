"""ERC-20 token operations"""

from polygon_nodes.constants import ERC20_ABI
from polygon_nodes.errors import NodeOperationError
from polygon_nodes.nodes.base import ContractCall, Custom, Operation, Resource
from polygon_nodes.nodes.resources.common import format_sent_transaction
from polygon_nodes.utils.abi import encode_function_call
from polygon_nodes.utils.units import format_units, parse_token_amount


def _token(item) -> str:
    return item.address_param("contractAddress")


def _get_token_info(item):
    token = _token(item)
    return [
        ContractCall(token, ERC20_ABI, "name"),
        ContractCall(token, ERC20_ABI, "symbol"),
        ContractCall(token, ERC20_ABI, "decimals"),
        ContractCall(token, ERC20_ABI, "totalSupply"),
    ]


def _token_info_record(item, results):
    name, symbol, decimals, total_supply = results
    return {
        "address": _token(item),
        "name": name,
        "symbol": symbol,
        "decimals": int(decimals),
        "totalSupply": format_units(total_supply, decimals),
        "totalSupplyRaw": str(total_supply),
    }


def _get_token_supply(item):
    token = _token(item)
    return [
        ContractCall(token, ERC20_ABI, "totalSupply"),
        ContractCall(token, ERC20_ABI, "decimals"),
    ]


def _token_supply_record(item, results):
    total_supply, decimals = results
    return {
        "address": _token(item),
        "totalSupply": format_units(total_supply, decimals),
        "totalSupplyRaw": str(total_supply),
        "decimals": int(decimals),
    }


def _get_allowance(item):
    token = _token(item)
    owner = item.address_param("ownerAddress")
    spender = item.address_param("spenderAddress")
    return [
        ContractCall(token, ERC20_ABI, "allowance", [owner, spender]),
        ContractCall(token, ERC20_ABI, "decimals"),
        ContractCall(token, ERC20_ABI, "symbol"),
    ]


def _allowance_record(item, results):
    allowance, decimals, symbol = results
    return {
        "tokenAddress": _token(item),
        "owner": item.address_param("ownerAddress"),
        "spender": item.address_param("spenderAddress"),
        "allowance": format_units(allowance, decimals),
        "allowanceRaw": str(allowance),
        "decimals": int(decimals),
        "symbol": symbol,
    }


async def _transfer_token(item):
    provider = item.provider
    # Fail fast when no signer is configured
    provider.account
    token = _token(item)
    recipient = item.address_param("toAddress")
    decimals = await provider.call_function(token, ERC20_ABI, "decimals")
    try:
        amount = parse_token_amount(str(item.param("amount")), decimals)
    except ValueError as e:
        raise NodeOperationError(f"Invalid amount: {item.param('amount')}", description=str(e)) from e

    data = encode_function_call(ERC20_ABI, "transfer", [recipient, amount])

    async def send():
        sent = await provider.sign_and_send({"to": token, "data": data, "value": 0})
        return sent, recipient, amount, decimals

    return Custom(send)


def _transfer_record(item, response):
    sent, recipient, amount, decimals = response
    record = format_sent_transaction(sent, item.network)
    record.update({
        "tokenAddress": _token(item),
        "recipient": recipient,
        "amount": format_units(amount, decimals),
        "amountRaw": str(amount),
    })
    return record


TOKEN = Resource(
    name="token",
    display_name="Token",
    default_operation="getTokenInfo",
    operations={
        "getTokenInfo": Operation(
            "Get Token Info", _get_token_info, _token_info_record, "Get token name, symbol, decimals"
        ),
        "getTokenSupply": Operation(
            "Get Token Supply", _get_token_supply, _token_supply_record, "Get total supply"
        ),
        "getAllowance": Operation(
            "Get Allowance", _get_allowance, _allowance_record, "Get spender allowance for an owner"
        ),
        "transferToken": Operation(
            "Transfer Token", _transfer_token, _transfer_record, "Sign and send an ERC-20 transfer"
        ),
    },
)
