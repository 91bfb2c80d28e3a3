"""Account operations: balances, nonces and explorer history"""

from polygon_nodes.chains.multicall import MulticallClient, batch_get_balances
from polygon_nodes.constants import ERC20_ABI
from polygon_nodes.nodes.base import Compute, ContractCall, Custom, Operation, Resource, RpcRequest
from polygon_nodes.nodes.resources.common import currency_symbol, parse_csv, quantity
from polygon_nodes.utils.address import checksum_address, validate_address
from polygon_nodes.utils.units import format_matic, format_units


def _get_balance(item):
    return RpcRequest("eth_getBalance", [item.address_param(), "latest"])


def _balance_record(item, result):
    balance = quantity(result)
    return {
        "address": item.address_param(),
        "balance": format_matic(balance),
        "balanceWei": str(balance),
        "symbol": currency_symbol(item.network),
        "network": item.network,
    }


def _get_token_balance(item):
    address = item.address_param()
    token = item.address_param("contractAddress")
    return [
        ContractCall(token, ERC20_ABI, "balanceOf", [address]),
        ContractCall(token, ERC20_ABI, "decimals"),
        ContractCall(token, ERC20_ABI, "symbol"),
    ]


def _token_balance_record(item, results):
    balance, decimals, symbol = results
    return {
        "address": item.address_param(),
        "tokenAddress": item.address_param("contractAddress"),
        "balance": format_units(balance, decimals),
        "balanceRaw": str(balance),
        "decimals": int(decimals),
        "symbol": symbol,
    }


def _get_token_balances(item):
    address = item.address_param()
    tokens = [checksum_address(token) for token in parse_csv(item.param("tokenAddresses"))]
    multicall = MulticallClient(item.provider, item.network)
    return Custom(lambda: batch_get_balances(multicall, tokens, address))


def _token_balances_record(item, balances):
    return {
        "address": item.address_param(),
        "balances": [
            {"tokenAddress": token, "balanceRaw": str(balance)} for token, balance in balances.items()
        ],
        "count": len(balances),
    }


def _get_transaction_count(item):
    return RpcRequest(
        "eth_getTransactionCount",
        [item.address_param(), item.param("blockTag", "latest") or "latest"],
    )


def _transaction_count_record(item, result):
    return {
        "address": item.address_param(),
        "transactionCount": quantity(result),
        "blockTag": item.param("blockTag", "latest") or "latest",
    }


def _explorer_list(method_name: str):
    """Build an operation that pages through one of the explorer's account lists"""

    def build(item):
        address = item.address_param()
        explorer = item.explorer
        options = item.options()
        fetch = getattr(explorer, method_name)
        return Custom(
            lambda: fetch(
                address,
                page=options.get("page"),
                offset=options.get("limit"),
                sort=options.get("sort"),
                contract_address=options.get("contractAddress"),
            )
        )

    return build


def _list_record(key: str):
    def reshape(item, records):
        return {"address": item.address_param(), key: records, "count": len(records)}

    return reshape


def _validate_address(item):
    address = item.param("address", "")
    is_valid = validate_address(address)
    return Compute({
        "address": address,
        "isValid": is_valid,
        "checksumAddress": checksum_address(address) if is_valid else None,
    })


def _get_code(item):
    return RpcRequest("eth_getCode", [item.address_param(), "latest"])


def _is_contract_record(item, code):
    is_contract = code not in (None, "", "0x", "0x0")
    return {
        "address": item.address_param(),
        "isContract": is_contract,
        "codeSize": (len(code) - 2) // 2 if is_contract else 0,
    }


ACCOUNT = Resource(
    name="account",
    display_name="Account",
    default_operation="getBalance",
    operations={
        "getBalance": Operation("Get Balance", _get_balance, _balance_record, "Get MATIC balance"),
        "getTokenBalance": Operation(
            "Get Token Balance", _get_token_balance, _token_balance_record, "Get ERC-20 token balance"
        ),
        "getTokenBalances": Operation(
            "Get Token Balances",
            _get_token_balances,
            _token_balances_record,
            "Get several ERC-20 balances in one Multicall3 request",
        ),
        "getTransactionCount": Operation(
            "Get Transaction Count", _get_transaction_count, _transaction_count_record, "Get account nonce"
        ),
        "getTransactions": Operation(
            "Get Transactions",
            _explorer_list("get_transaction_list"),
            _list_record("transactions"),
            "Get transaction history",
        ),
        "getInternalTransactions": Operation(
            "Get Internal Transactions",
            _explorer_list("get_internal_transactions"),
            _list_record("transactions"),
            "Get internal transaction history",
        ),
        "getTokenTransfers": Operation(
            "Get Token Transfers",
            _explorer_list("get_token_transfers"),
            _list_record("transfers"),
            "Get ERC-20 transfer history",
        ),
        "getNfts": Operation(
            "Get NFTs", _explorer_list("get_nft_transfers"), _list_record("nfts"), "Get NFT holdings"
        ),
        "validateAddress": Operation(
            "Validate Address", _validate_address, description="Validate and checksum an address"
        ),
        "isContract": Operation(
            "Is Contract", _get_code, _is_contract_record, "Check whether an address holds contract code"
        ),
    },
)
