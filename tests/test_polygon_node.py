"""Tests for the Polygon action node"""

import json
from unittest.mock import AsyncMock, Mock, patch

import pytest
from eth_abi import encode

from polygon_nodes.chains.explorer import ExplorerClient
from polygon_nodes.chains.provider import PolygonProvider
from polygon_nodes.errors import NodeApiError, NodeOperationError
from polygon_nodes.nodes import LocalContext, NodeRuntime, Polygon
from polygon_nodes.nodes.resources import RESOURCES
from polygon_nodes.utils.address import ZERO_ADDRESS, address_to_topic

WALLET = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OTHER = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
TOKEN = "0xc2132D05D31c914a87C6611C10748AEb04B58e8F"
TX_HASH = "0x" + "ab" * 32

SELECTORS = {
    "name": "0x06fdde03",
    "symbol": "0x95d89b41",
    "decimals": "0x313ce567",
    "totalSupply": "0x18160ddd",
    "balanceOf": "0x70a08231",
    "allowance": "0xdd62ed3e",
    "tokenURI": "0xc87b56dd",
    "ownerOf": "0x6352211e",
}


def encoded(types, values) -> str:
    return "0x" + encode(types, values).hex()


def make_provider(results, network="mainnet", private_key=""):
    """Real provider whose transport answers from a method table"""
    provider = PolygonProvider("https://polygon-rpc.com", 137, network=network, private_key=private_key)

    async def make_request(method, params):
        result = results[method]
        if callable(result):
            result = result(params)
        if isinstance(result, Exception):
            return {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": str(result)}}
        return {"jsonrpc": "2.0", "id": 1, "result": result}

    provider.w3.provider.make_request = AsyncMock(side_effect=make_request)
    return provider


def contract_calls(responses):
    """eth_call handler keyed by function name"""
    by_selector = {SELECTORS[name]: value for name, value in responses.items()}

    def handler(params):
        return by_selector[params[0]["data"][:10]]

    return handler


def make_context(parameters, explorer=False, **kwargs):
    credentials = {"polygonRpc": {"network": "mainnet"}}
    if explorer:
        credentials["polygonScan"] = {"apiKey": "scan-key"}
    return LocalContext(parameters=parameters, credentials=credentials, **kwargs)


def make_node(provider, explorer=None):
    return Polygon(
        runtime=NodeRuntime(),
        provider_factory=lambda credentials: provider,
        explorer_factory=lambda credentials: explorer,
    )


def make_explorer(**methods):
    explorer = Mock(spec=ExplorerClient)
    explorer.close = AsyncMock()
    for name, value in methods.items():
        setattr(explorer, name, AsyncMock(return_value=value))
    return explorer


class TestDescription:
    """Test node description"""

    def test_resources_listed(self):
        description = Polygon.description

        assert description["name"] == "polygon"
        resource_property = description["properties"][0]
        assert [option["value"] for option in resource_property["options"]] == [
            "account", "block", "contract", "token", "transaction", "nft", "event", "utility",
        ]
        assert description["credentials"] == [
            {"name": "polygonRpc", "required": True},
            {"name": "polygonScan", "required": False},
        ]

    def test_operation_property_per_resource(self):
        operations = [prop for prop in Polygon.description["properties"] if prop["name"] == "operation"]
        assert len(operations) == len(RESOURCES)
        account = operations[0]
        assert account["displayOptions"] == {"show": {"resource": ["account"]}}
        assert "getBalance" in [option["value"] for option in account["options"]]


class TestExecute:
    """Test item loop and error handling"""

    @pytest.mark.asyncio
    async def test_get_balance(self):
        provider = make_provider({"eth_getBalance": "0xde0b6b3a7640000"})
        ctx = make_context({"resource": "account", "operation": "getBalance", "address": ZERO_ADDRESS})

        result = await make_node(provider).execute(ctx)

        assert result == [[{
            "json": {
                "address": ZERO_ADDRESS,
                "balance": "1.0",
                "balanceWei": "1000000000000000000",
                "symbol": "MATIC",
                "network": "mainnet",
            },
            "pairedItem": {"item": 0},
        }]]
        provider.w3.provider.make_request.assert_awaited_once_with("eth_getBalance", [ZERO_ADDRESS, "latest"])

    @pytest.mark.asyncio
    async def test_one_output_per_item(self):
        provider = make_provider({"eth_getBalance": "0x1"})
        ctx = make_context(
            {"resource": "account", "operation": "getBalance", "address": WALLET},
            input_data=[{"json": {}}, {"json": {}}],
            item_parameters={1: {"address": OTHER}},
        )

        result = await make_node(provider).execute(ctx)

        assert [item["json"]["address"] for item in result[0]] == [WALLET, OTHER]
        assert [item["pairedItem"] for item in result[0]] == [{"item": 0}, {"item": 1}]

    @pytest.mark.asyncio
    async def test_unknown_resource(self):
        ctx = make_context({"resource": "staking", "operation": "stake"})

        with pytest.raises(NodeOperationError, match="Unknown resource: staking"):
            await make_node(make_provider({})).execute(ctx)

    @pytest.mark.asyncio
    async def test_unknown_operation(self):
        ctx = make_context({"resource": "account", "operation": "fly"})

        with pytest.raises(NodeOperationError, match="Unknown account operation: fly"):
            await make_node(make_provider({})).execute(ctx)

    @pytest.mark.asyncio
    async def test_continue_on_fail(self):
        provider = make_provider({"eth_getBalance": "0x1"})
        ctx = make_context(
            {"resource": "account", "operation": "getBalance", "address": WALLET},
            input_data=[{"json": {}}, {"json": {}}],
            item_parameters={0: {"address": "nope"}},
            continue_on_fail=True,
        )

        result = await make_node(provider).execute(ctx)

        assert result[0][0] == {"json": {"error": "Invalid address: nope"}, "pairedItem": {"item": 0}}
        assert result[0][1]["json"]["balanceWei"] == "1"

    @pytest.mark.asyncio
    async def test_rpc_error_propagates(self):
        provider = make_provider({"eth_getBalance": NodeApiError("header not found")})
        ctx = make_context({"resource": "account", "operation": "getBalance", "address": WALLET})

        with pytest.raises(NodeApiError, match="header not found"):
            await make_node(provider).execute(ctx)

    @pytest.mark.asyncio
    async def test_explorer_required(self):
        ctx = make_context({"resource": "account", "operation": "getTransactions", "address": WALLET})

        with pytest.raises(NodeOperationError, match="PolygonScan credentials required"):
            await make_node(make_provider({})).execute(ctx)

    @pytest.mark.asyncio
    async def test_explorer_closed_after_run(self):
        explorer = make_explorer(get_transaction_list=[{"hash": "0x1"}])
        ctx = make_context(
            {
                "resource": "account",
                "operation": "getTransactions",
                "address": WALLET,
                "options": {"limit": 5, "sort": "asc"},
            },
            explorer=True,
        )

        result = await make_node(make_provider({}), explorer).execute(ctx)

        assert result[0][0]["json"] == {"address": WALLET, "transactions": [{"hash": "0x1"}], "count": 1}
        explorer.get_transaction_list.assert_awaited_once_with(
            WALLET, page=None, offset=5, sort="asc", contract_address=None
        )
        explorer.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_licensing_notice_logged_once(self):
        provider = make_provider({"eth_getBalance": "0x1"})
        node = make_node(provider)
        ctx = make_context({"resource": "account", "operation": "getBalance", "address": WALLET})

        with patch("polygon_nodes.nodes.base.logger") as mock_logger:
            await node.execute(ctx)
            await node.execute(ctx)

        assert node.runtime.licensing_notice_logged is True
        warnings = [call for call in mock_logger.warning.call_args_list if call.args[0] == "licensing_notice"]
        assert len(warnings) == 1


class TestAccountOperations:
    """Test account resource"""

    @pytest.mark.asyncio
    async def test_token_balance(self):
        provider = make_provider({"eth_call": contract_calls({
            "balanceOf": encoded(["uint256"], [2_500_000]),
            "decimals": encoded(["uint8"], [6]),
            "symbol": encoded(["string"], ["USDT"]),
        })})
        ctx = make_context({
            "resource": "account",
            "operation": "getTokenBalance",
            "address": WALLET,
            "contractAddress": TOKEN,
        })

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {
            "address": WALLET,
            "tokenAddress": TOKEN,
            "balance": "2.5",
            "balanceRaw": "2500000",
            "decimals": 6,
            "symbol": "USDT",
        }

    @pytest.mark.asyncio
    async def test_validate_address_never_raises(self):
        ctx = make_context({"resource": "account", "operation": "validateAddress", "address": "0x123"})

        result = await make_node(make_provider({})).execute(ctx)

        assert result[0][0]["json"] == {"address": "0x123", "isValid": False, "checksumAddress": None}

    @pytest.mark.asyncio
    async def test_is_contract(self):
        provider = make_provider({"eth_getCode": "0x6080"})
        ctx = make_context({"resource": "account", "operation": "isContract", "address": TOKEN})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {"address": TOKEN, "isContract": True, "codeSize": 2}

    @pytest.mark.asyncio
    async def test_transaction_count(self):
        provider = make_provider({"eth_getTransactionCount": "0x7"})
        ctx = make_context({
            "resource": "account",
            "operation": "getTransactionCount",
            "address": WALLET,
            "blockTag": "pending",
        })

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {"address": WALLET, "transactionCount": 7, "blockTag": "pending"}


class TestBlockOperations:
    """Test block resource"""

    @pytest.mark.asyncio
    async def test_block_zero_means_latest(self):
        provider = make_provider({"eth_getBlockByNumber": {"number": "0x10", "hash": "0xbeef", "transactions": []}})
        ctx = make_context({"resource": "block", "operation": "getBlock", "blockNumber": 0})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"]["number"] == 16
        provider.w3.provider.make_request.assert_awaited_once_with("eth_getBlockByNumber", ["latest", False])

    @pytest.mark.asyncio
    async def test_block_not_found(self):
        provider = make_provider({"eth_getBlockByNumber": None})
        ctx = make_context({"resource": "block", "operation": "getBlock", "blockNumber": 99999999})

        with pytest.raises(NodeApiError, match="Block not found"):
            await make_node(provider).execute(ctx)

    @pytest.mark.asyncio
    async def test_block_number(self):
        provider = make_provider({"eth_blockNumber": "0x3e8"})
        ctx = make_context({"resource": "block", "operation": "getBlockNumber"})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {"blockNumber": 1000, "network": "mainnet"}


class TestContractOperations:
    """Test contract resource"""

    @pytest.mark.asyncio
    async def test_read_contract_with_abi(self):
        provider = make_provider({"eth_call": contract_calls({"balanceOf": encoded(["uint256"], [10**30])})})
        ctx = make_context({
            "resource": "contract",
            "operation": "readContract",
            "contractAddress": TOKEN,
            "abi": '["function balanceOf(address owner) view returns (uint256)"]',
            "functionName": "balanceOf",
            "functionArgs": json.dumps([WALLET]),
        })

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {
            "contractAddress": TOKEN,
            "functionName": "balanceOf",
            "result": str(10**30),
        }

    @pytest.mark.asyncio
    async def test_read_contract_abi_from_explorer(self):
        abi = json.dumps([{
            "type": "function",
            "name": "decimals",
            "inputs": [],
            "outputs": [{"type": "uint8", "name": ""}],
            "stateMutability": "view",
        }])
        explorer = make_explorer(get_contract_abi=abi)
        provider = make_provider({"eth_call": contract_calls({"decimals": encoded(["uint8"], [18])})})
        ctx = make_context(
            {"resource": "contract", "operation": "readContract", "contractAddress": TOKEN, "functionName": "decimals"},
            explorer=True,
        )

        result = await make_node(provider, explorer).execute(ctx)

        assert result[0][0]["json"]["result"] == "18"
        explorer.get_contract_abi.assert_awaited_once_with(TOKEN)

    @pytest.mark.asyncio
    async def test_read_contract_requires_abi(self):
        ctx = make_context({
            "resource": "contract",
            "operation": "readContract",
            "contractAddress": TOKEN,
            "functionName": "decimals",
        })

        with pytest.raises(NodeOperationError, match="ABI required"):
            await make_node(make_provider({})).execute(ctx)

    @pytest.mark.asyncio
    async def test_read_contract_bad_args(self):
        ctx = make_context({
            "resource": "contract",
            "operation": "readContract",
            "contractAddress": TOKEN,
            "functionName": "balanceOf",
            "functionArgs": "{not json",
        })

        with pytest.raises(NodeOperationError, match="Invalid functionArgs: must be a JSON array"):
            await make_node(make_provider({})).execute(ctx)

    @pytest.mark.asyncio
    async def test_write_contract_requires_private_key(self):
        ctx = make_context({
            "resource": "contract",
            "operation": "writeContract",
            "contractAddress": TOKEN,
            "functionName": "transfer",
        })

        with pytest.raises(NodeOperationError, match="Private key is required"):
            await make_node(make_provider({})).execute(ctx)

    @pytest.mark.asyncio
    async def test_get_abi_parsed(self):
        explorer = make_explorer()
        explorer.request = AsyncMock(return_value='[{"type": "fallback"}]')
        ctx = make_context({"resource": "contract", "operation": "getAbi", "contractAddress": TOKEN}, explorer=True)

        result = await make_node(make_provider({}), explorer).execute(ctx)

        assert result[0][0]["json"] == {"contractAddress": TOKEN, "abi": [{"type": "fallback"}]}
        explorer.request.assert_awaited_once_with(
            "contract", "getabi", {"address": TOKEN}, method="GET", allow_empty=False
        )


class TestTokenOperations:
    """Test token resource"""

    @pytest.mark.asyncio
    async def test_token_info(self):
        provider = make_provider({"eth_call": contract_calls({
            "name": encoded(["string"], ["Tether USD"]),
            "symbol": encoded(["string"], ["USDT"]),
            "decimals": encoded(["uint8"], [6]),
            "totalSupply": encoded(["uint256"], [1_000_000_000_000]),
        })})
        ctx = make_context({"resource": "token", "operation": "getTokenInfo", "contractAddress": TOKEN.lower()})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {
            "address": TOKEN,
            "name": "Tether USD",
            "symbol": "USDT",
            "decimals": 6,
            "totalSupply": "1000000.0",
            "totalSupplyRaw": "1000000000000",
        }

    @pytest.mark.asyncio
    async def test_allowance(self):
        provider = make_provider({"eth_call": contract_calls({
            "allowance": encoded(["uint256"], [500_000]),
            "decimals": encoded(["uint8"], [6]),
            "symbol": encoded(["string"], ["USDT"]),
        })})
        ctx = make_context({
            "resource": "token",
            "operation": "getAllowance",
            "contractAddress": TOKEN,
            "ownerAddress": WALLET,
            "spenderAddress": OTHER,
        })

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"]["allowance"] == "0.5"
        assert result[0][0]["json"]["spender"] == OTHER


class TestTransactionOperations:
    """Test transaction resource"""

    @pytest.mark.asyncio
    async def test_invalid_hash(self):
        ctx = make_context({"resource": "transaction", "operation": "getTransaction", "transactionHash": "0x12"})

        with pytest.raises(NodeOperationError, match="Invalid transaction hash: 0x12"):
            await make_node(make_provider({})).execute(ctx)

    @pytest.mark.asyncio
    async def test_get_transaction(self):
        provider = make_provider({"eth_getTransactionByHash": {
            "hash": TX_HASH,
            "from": WALLET,
            "to": OTHER,
            "value": "0xde0b6b3a7640000",
            "gas": "0x5208",
            "gasPrice": "0x6fc23ac00",
            "nonce": "0x1",
            "input": "0x",
            "blockNumber": "0x10",
            "blockHash": "0xbeef",
        }})
        ctx = make_context({"resource": "transaction", "operation": "getTransaction", "transactionHash": TX_HASH})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {
            "hash": TX_HASH,
            "from": WALLET,
            "to": OTHER,
            "value": "1.0",
            "valueWei": "1000000000000000000",
            "gasPrice": "30000000000",
            "gasLimit": "21000",
            "nonce": 1,
            "data": "0x",
            "blockNumber": 16,
            "blockHash": "0xbeef",
        }

    @pytest.mark.asyncio
    async def test_receipt_status(self):
        provider = make_provider({"eth_getTransactionReceipt": {"transactionHash": TX_HASH, "status": "0x0", "logs": []}})
        ctx = make_context({"resource": "transaction", "operation": "getReceipt", "transactionHash": TX_HASH})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_estimate_gas(self):
        provider = make_provider({
            "eth_estimateGas": "0x5208",
            "eth_gasPrice": hex(30 * 10**9),
            "eth_getBlockByNumber": {"number": "0x1"},
        })
        ctx = make_context({"resource": "transaction", "operation": "estimateGas", "toAddress": OTHER, "value": "1"})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"]["gasLimit"] == "25200"
        assert result[0][0]["json"]["gasPrice"] == "30.0 Gwei"
        assert result[0][0]["json"]["estimatedCost"] == "0.000756 MATIC"

    @pytest.mark.asyncio
    async def test_get_status_from_explorer(self):
        explorer = make_explorer()
        explorer.request = AsyncMock(return_value={"status": "1"})
        ctx = make_context(
            {"resource": "transaction", "operation": "getStatus", "transactionHash": TX_HASH},
            explorer=True,
        )

        result = await make_node(make_provider({}), explorer).execute(ctx)

        assert result[0][0]["json"] == {"transactionHash": TX_HASH, "status": "success", "rawStatus": "1"}

    @pytest.mark.asyncio
    async def test_send_raw_transaction(self):
        provider = make_provider({"eth_sendRawTransaction": TX_HASH})
        ctx = make_context({
            "resource": "transaction",
            "operation": "sendRawTransaction",
            "signedTransaction": "0x02f8",
        })

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {"transactionHash": TX_HASH, "network": "mainnet"}


class TestNftOperations:
    """Test NFT resource"""

    @pytest.mark.asyncio
    async def test_collection_info_without_total_supply(self):
        provider = make_provider({"eth_call": contract_calls({
            "name": encoded(["string"], ["Lens Profiles"]),
            "symbol": encoded(["string"], ["LENS"]),
            "totalSupply": NodeApiError("execution reverted"),
        })})
        ctx = make_context({"resource": "nft", "operation": "getCollectionInfo", "contractAddress": TOKEN})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {
            "contractAddress": TOKEN,
            "name": "Lens Profiles",
            "symbol": "LENS",
            "totalSupply": "N/A",
        }

    @pytest.mark.asyncio
    async def test_owner_hex_token_id(self):
        provider = make_provider({"eth_call": contract_calls({"ownerOf": encoded(["address"], [WALLET])})})
        ctx = make_context({"resource": "nft", "operation": "getNftOwner", "contractAddress": TOKEN, "tokenId": "0x10"})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {"contractAddress": TOKEN, "tokenId": "16", "owner": WALLET}


class TestEventOperations:
    """Test event resource"""

    @pytest.mark.asyncio
    async def test_get_logs_decoded(self):
        transfer_topic = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
        provider = make_provider({"eth_getLogs": [{
            "address": TOKEN,
            "topics": [transfer_topic, address_to_topic(WALLET), address_to_topic(OTHER)],
            "data": "0x" + format(1000, "064x"),
            "blockNumber": "0x10",
            "transactionHash": TX_HASH,
            "logIndex": "0x0",
        }]})
        ctx = make_context({
            "resource": "event",
            "operation": "getLogs",
            "fromBlock": 16,
            "toBlock": "latest",
            "address": TOKEN,
            "topics": f"{transfer_topic}, ,",
            "abi": '["event Transfer(address indexed from, address indexed to, uint256 value)"]',
        })

        result = await make_node(provider).execute(ctx)

        record = result[0][0]["json"]
        assert record["count"] == 1
        assert record["logs"][0]["event"] == "Transfer"
        assert record["logs"][0]["args"] == {"from": WALLET, "to": OTHER, "value": "1000"}
        provider.w3.provider.make_request.assert_awaited_once_with(
            "eth_getLogs",
            [{"fromBlock": "0x10", "toBlock": "latest", "address": TOKEN, "topics": [transfer_topic, None, None]}],
        )

    @pytest.mark.asyncio
    async def test_uninstall_filter(self):
        provider = make_provider({"eth_uninstallFilter": True})
        ctx = make_context({"resource": "event", "operation": "uninstallFilter", "filterId": "0x1"})

        result = await make_node(provider).execute(ctx)

        assert result[0][0]["json"] == {"filterId": "0x1", "uninstalled": True}


class TestUtilityOperations:
    """Test utility resource"""

    @pytest.mark.asyncio
    async def test_convert_units(self):
        ctx = make_context({"resource": "utility", "operation": "convertUnits", "value": "1.5"})

        result = await make_node(make_provider({})).execute(ctx)

        assert result[0][0]["json"] == {
            "value": "1.5",
            "fromUnit": "ether",
            "toUnit": "wei",
            "result": "1500000000000000000",
        }

    @pytest.mark.asyncio
    async def test_convert_to_gwei(self):
        ctx = make_context({
            "resource": "utility",
            "operation": "convertUnits",
            "value": "30000000000",
            "fromUnit": "wei",
            "toUnit": "gwei",
        })

        result = await make_node(make_provider({})).execute(ctx)

        assert result[0][0]["json"]["result"] == "30.0"

    @pytest.mark.asyncio
    async def test_hex_conversions(self):
        node = make_node(make_provider({}))

        to_decimal = await node.execute(make_context({"resource": "utility", "operation": "hexToDecimal", "value": "0x89"}))
        to_hex = await node.execute(make_context({"resource": "utility", "operation": "decimalToHex", "value": "137"}))

        assert to_decimal[0][0]["json"] == {"hex": "0x89", "decimal": 137}
        assert to_hex[0][0]["json"] == {"decimal": "137", "hex": "0x89"}

    @pytest.mark.asyncio
    async def test_chain_id(self):
        provider = make_provider({"eth_chainId": "0x89"})

        result = await make_node(provider).execute(make_context({"resource": "utility", "operation": "getChainId"}))

        assert result[0][0]["json"] == {"chainId": 137, "name": "Polygon Mainnet"}

    @pytest.mark.asyncio
    async def test_gas_prices(self):
        provider = make_provider({"eth_gasPrice": hex(100 * 10**9)})

        result = await make_node(provider).execute(make_context({"resource": "utility", "operation": "getGasPrices"}))

        record = result[0][0]["json"]
        assert record["slow"] == "80.0"
        assert record["instant"] == "150.0"
        assert record["fastWei"] == str(120 * 10**9)
        assert record["unit"] == "gwei"
