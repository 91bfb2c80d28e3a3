"""Tests for the Polygon polling trigger"""

import json
from unittest.mock import AsyncMock

import pytest
from eth_abi import encode

from polygon_nodes.chains.provider import PolygonProvider
from polygon_nodes.constants import TRANSFER_TOPIC
from polygon_nodes.errors import NodeApiError, NodeOperationError
from polygon_nodes.nodes import LocalContext, NodeRuntime, PolygonTrigger
from polygon_nodes.nodes.trigger import CURSOR_KEY
from polygon_nodes.utils.address import address_to_topic

WATCH = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OTHER = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
TOKEN = "0xc2132D05D31c914a87C6611C10748AEb04B58e8F"
ONE_MATIC = 10**18


def make_block(number, transactions=None):
    return {
        "number": hex(number),
        "hash": "0x" + format(number, "064x"),
        "timestamp": hex(1_700_000_000 + number),
        "gasUsed": "0x5208",
        "gasLimit": "0x1c9c380",
        "transactions": transactions or [],
    }


def make_provider(head, blocks=None, logs=None, calls=None):
    """
    Provider whose transport serves a fixed chain.

    blocks maps block numbers to block dicts, exceptions or None. A NodeApiError
    becomes an RPC error response; any other exception is raised by the transport.
    """
    provider = PolygonProvider("https://polygon-rpc.com", 137)
    blocks = blocks if blocks is not None else {}
    calls = calls or {}

    async def make_request(method, params):
        if method == "eth_blockNumber":
            result = hex(head)
        elif method == "eth_getBlockByNumber":
            result = blocks.get(int(params[0], 16), make_block(int(params[0], 16)))
        elif method == "eth_getLogs":
            result = logs
        elif method == "eth_call":
            result = calls[params[0]["data"][:10]]
        else:
            raise AssertionError(f"unexpected RPC method {method}")

        if isinstance(result, NodeApiError):
            return {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": str(result)}}
        if isinstance(result, Exception):
            raise result
        return {"jsonrpc": "2.0", "id": 1, "result": result}

    provider.w3.provider.make_request = AsyncMock(side_effect=make_request)
    return provider


def make_context(parameters, cursor=None):
    ctx = LocalContext(parameters=parameters, credentials={"polygonRpc": {"network": "mainnet"}})
    if cursor is not None:
        ctx.get_workflow_static_data("node")[CURSOR_KEY] = cursor
    return ctx


def make_trigger(provider):
    return PolygonTrigger(runtime=NodeRuntime(), provider_factory=lambda credentials: provider)


def cursor(ctx):
    return ctx.get_workflow_static_data("node").get(CURSOR_KEY)


def requested_blocks(provider):
    return [
        int(call.args[1][0], 16)
        for call in provider.w3.provider.make_request.await_args_list
        if call.args[0] == "eth_getBlockByNumber"
    ]


class TestNewBlock:
    """Test the newBlock event and cursor handling"""

    @pytest.mark.asyncio
    async def test_first_poll_emits_head(self):
        provider = make_provider(head=100)
        ctx = make_context({"event": "newBlock"})

        result = await make_trigger(provider).poll(ctx)

        assert result == [[{"json": {
            "blockNumber": 100,
            "hash": "0x" + format(100, "064x"),
            "timestamp": 1_700_000_100,
            "transactionCount": 0,
            "gasUsed": "21000",
            "gasLimit": "30000000",
            "network": "mainnet",
        }}]]
        assert cursor(ctx) == 100

    @pytest.mark.asyncio
    async def test_no_new_blocks(self):
        provider = make_provider(head=100)
        ctx = make_context({"event": "newBlock"}, cursor=100)

        assert await make_trigger(provider).poll(ctx) is None
        assert cursor(ctx) == 100
        assert requested_blocks(provider) == []

    @pytest.mark.asyncio
    async def test_catch_up_emits_every_block(self):
        provider = make_provider(head=13)
        ctx = make_context({"event": "newBlock"}, cursor=10)

        result = await make_trigger(provider).poll(ctx)

        assert [item["json"]["blockNumber"] for item in result[0]] == [11, 12, 13]
        assert cursor(ctx) == 13

    @pytest.mark.asyncio
    async def test_cursor_zero_is_kept(self):
        provider = make_provider(head=2)
        ctx = make_context({"event": "newBlock"}, cursor=0)

        result = await make_trigger(provider).poll(ctx)

        assert [item["json"]["blockNumber"] for item in result[0]] == [1, 2]

    @pytest.mark.asyncio
    async def test_failed_block_stops_scan(self):
        """Test that blocks after a failed fetch are retried on the next poll"""
        provider = make_provider(head=13, blocks={12: NodeApiError("header not found")})
        ctx = make_context({"event": "newBlock"}, cursor=10)
        trigger = make_trigger(provider)

        result = await trigger.poll(ctx)

        assert [item["json"]["blockNumber"] for item in result[0]] == [11]
        assert cursor(ctx) == 11

        retry = make_provider(head=13)
        trigger.provider_factory = lambda credentials: retry
        result = await trigger.poll(ctx)

        assert [item["json"]["blockNumber"] for item in result[0]] == [12, 13]
        assert cursor(ctx) == 13

    @pytest.mark.asyncio
    async def test_first_block_failure_raises(self):
        provider = make_provider(head=12, blocks={11: NodeApiError("header not found")})
        ctx = make_context({"event": "newBlock"}, cursor=10)

        with pytest.raises(NodeApiError, match="header not found"):
            await make_trigger(provider).poll(ctx)

        assert cursor(ctx) == 10

    @pytest.mark.asyncio
    async def test_missing_block_treated_as_failure(self):
        provider = make_provider(head=11, blocks={11: None})
        ctx = make_context({"event": "newBlock"}, cursor=10)

        with pytest.raises(NodeApiError, match="Block 11 not found"):
            await make_trigger(provider).poll(ctx)

        assert cursor(ctx) == 10

    @pytest.mark.asyncio
    async def test_non_json_body_mid_scan_emits_collected(self):
        """Test a gateway page mid-scan still emits the blocks already processed"""
        gateway_page = json.JSONDecodeError("Expecting value", "<html>rate limited</html>", 0)
        provider = make_provider(head=13, blocks={12: gateway_page})
        ctx = make_context({"event": "newBlock"}, cursor=10)

        result = await make_trigger(provider).poll(ctx)

        assert [item["json"]["blockNumber"] for item in result[0]] == [11]
        assert cursor(ctx) == 11

    @pytest.mark.asyncio
    async def test_unexpected_error_mid_scan_emits_collected(self):
        provider = make_provider(head=13)
        provider.get_block = AsyncMock(side_effect=[make_block(11), RuntimeError("decoder blew up")])
        ctx = make_context({"event": "newBlock"}, cursor=10)

        result = await make_trigger(provider).poll(ctx)

        assert [item["json"]["blockNumber"] for item in result[0]] == [11]
        assert cursor(ctx) == 11

    @pytest.mark.asyncio
    async def test_first_poll_failure_keeps_baseline(self):
        """Test blocks produced after a failed first poll are not skipped"""
        provider = make_provider(head=100, blocks={100: NodeApiError("header not found")})
        ctx = make_context({"event": "newBlock"})
        trigger = make_trigger(provider)

        with pytest.raises(NodeApiError, match="header not found"):
            await trigger.poll(ctx)

        assert cursor(ctx) == 99

        retry = make_provider(head=105)
        trigger.provider_factory = lambda credentials: retry
        result = await trigger.poll(ctx)

        assert [item["json"]["blockNumber"] for item in result[0]] == [100, 101, 102, 103, 104, 105]
        assert cursor(ctx) == 105

    @pytest.mark.asyncio
    async def test_unknown_event(self):
        ctx = make_context({"event": "newEpoch"})

        with pytest.raises(NodeOperationError, match="Unknown event: newEpoch"):
            await make_trigger(make_provider(head=1)).poll(ctx)


class TestMaticTransfer:
    """Test native transfer matching"""

    def transfer(self, sender, recipient, value=ONE_MATIC, tx_hash="0x01"):
        return {"hash": tx_hash, "from": sender, "to": recipient, "value": hex(value)}

    @pytest.mark.asyncio
    async def test_direction_both(self):
        block = make_block(5, [
            self.transfer(OTHER, WATCH, tx_hash="0x01"),
            self.transfer(WATCH, OTHER, tx_hash="0x02"),
            self.transfer(OTHER, TOKEN, tx_hash="0x03"),
            self.transfer(OTHER, WATCH, value=0, tx_hash="0x04"),
        ])
        provider = make_provider(head=5, blocks={5: block})
        ctx = make_context({"event": "maticTransfer", "watchAddress": WATCH.lower()}, cursor=4)

        result = await make_trigger(provider).poll(ctx)

        records = [item["json"] for item in result[0]]
        assert [(r["hash"], r["type"]) for r in records] == [("0x01", "incoming"), ("0x02", "outgoing")]
        assert records[0] == {
            "type": "incoming",
            "hash": "0x01",
            "from": OTHER,
            "to": WATCH,
            "value": "1.0",
            "valueWei": str(ONE_MATIC),
            "blockNumber": 5,
            "network": "mainnet",
        }
        assert requested_blocks(provider) == [5]
        assert provider.w3.provider.make_request.await_args_list[-1].args[1][1] is True

    @pytest.mark.asyncio
    async def test_direction_outgoing(self):
        block = make_block(5, [self.transfer(OTHER, WATCH, tx_hash="0x01"), self.transfer(WATCH, OTHER, tx_hash="0x02")])
        provider = make_provider(head=5, blocks={5: block})
        ctx = make_context({"event": "maticTransfer", "watchAddress": WATCH, "direction": "outgoing"}, cursor=4)

        result = await make_trigger(provider).poll(ctx)

        assert [item["json"]["hash"] for item in result[0]] == ["0x02"]

    @pytest.mark.asyncio
    async def test_self_transfer_is_incoming(self):
        block = make_block(5, [self.transfer(WATCH, WATCH)])
        provider = make_provider(head=5, blocks={5: block})
        ctx = make_context({"event": "maticTransfer", "watchAddress": WATCH}, cursor=4)

        result = await make_trigger(provider).poll(ctx)

        assert result[0][0]["json"]["type"] == "incoming"

    @pytest.mark.asyncio
    async def test_no_matches_still_advances(self):
        provider = make_provider(head=6)
        ctx = make_context({"event": "maticTransfer", "watchAddress": WATCH}, cursor=4)

        assert await make_trigger(provider).poll(ctx) is None
        assert cursor(ctx) == 6

    @pytest.mark.asyncio
    async def test_invalid_watch_address(self):
        provider = make_provider(head=6)
        ctx = make_context({"event": "maticTransfer", "watchAddress": "0x123"})

        with pytest.raises(NodeOperationError, match="Invalid watch address: 0x123"):
            await make_trigger(provider).poll(ctx)

        provider.w3.provider.make_request.assert_not_awaited()


class TestTokenTransfer:
    """Test ERC-20 transfer matching"""

    def log(self, sender, recipient, value, block=20, contract=TOKEN):
        return {
            "address": contract,
            "topics": [TRANSFER_TOPIC, address_to_topic(sender), address_to_topic(recipient)],
            "data": "0x" + format(value, "064x"),
            "blockNumber": hex(block),
            "transactionHash": "0x" + format(block, "064x"),
        }

    @pytest.mark.asyncio
    async def test_token_transfers(self):
        calls = {
            "0x95d89b41": "0x" + encode(["string"], ["USDT"]).hex(),
            "0x313ce567": "0x" + encode(["uint8"], [6]).hex(),
        }
        logs = [
            self.log(OTHER, WATCH, 1_500_000),
            self.log(OTHER, TOKEN, 1),
            # ERC-721 shaped log is not a token transfer
            {**self.log(WATCH, OTHER, 0), "topics": [TRANSFER_TOPIC, address_to_topic(WATCH)]},
        ]
        provider = make_provider(head=20, logs=logs, calls=calls)
        ctx = make_context(
            {"event": "tokenTransfer", "watchAddress": WATCH, "tokenContract": TOKEN.lower()},
            cursor=18,
        )

        result = await make_trigger(provider).poll(ctx)

        assert result == [[{"json": {
            "type": "incoming",
            "tokenAddress": TOKEN,
            "symbol": "USDT",
            "from": OTHER,
            "to": WATCH,
            "value": "1.5",
            "valueRaw": "1500000",
            "blockNumber": 20,
            "transactionHash": "0x" + format(20, "064x"),
            "network": "mainnet",
        }}]]
        assert cursor(ctx) == 20
        provider.w3.provider.make_request.assert_any_await(
            "eth_getLogs",
            [{"topics": [TRANSFER_TOPIC], "fromBlock": "0x13", "toBlock": "0x14", "address": TOKEN}],
        )

    @pytest.mark.asyncio
    async def test_token_info_fallback(self):
        calls = {"0x95d89b41": NodeApiError("execution reverted"), "0x313ce567": NodeApiError("execution reverted")}
        provider = make_provider(head=20, logs=[self.log(WATCH, OTHER, 2 * ONE_MATIC)], calls=calls)
        ctx = make_context({"event": "tokenTransfer", "watchAddress": WATCH, "tokenContract": "bogus"}, cursor=19)

        result = await make_trigger(provider).poll(ctx)

        record = result[0][0]["json"]
        assert record["type"] == "outgoing"
        assert record["symbol"] == "UNKNOWN"
        assert record["value"] == "2.0"
        log_filter = [
            call.args[1][0] for call in provider.w3.provider.make_request.await_args_list
            if call.args[0] == "eth_getLogs"
        ][0]
        assert "address" not in log_filter

    @pytest.mark.asyncio
    async def test_log_failure_keeps_cursor(self):
        provider = make_provider(head=20, logs=NodeApiError("query returned more than 10000 results"))
        ctx = make_context({"event": "tokenTransfer", "watchAddress": WATCH}, cursor=10)

        with pytest.raises(NodeApiError, match="more than 10000 results"):
            await make_trigger(provider).poll(ctx)

        assert cursor(ctx) == 10

    @pytest.mark.asyncio
    async def test_token_info_unexpected_error_falls_back(self):
        provider = make_provider(head=20, logs=[self.log(OTHER, WATCH, ONE_MATIC)])
        provider.call_function = AsyncMock(side_effect=RuntimeError("unexpected payload"))
        ctx = make_context({"event": "tokenTransfer", "watchAddress": WATCH}, cursor=19)

        result = await make_trigger(provider).poll(ctx)

        record = result[0][0]["json"]
        assert record["symbol"] == "UNKNOWN"
        assert record["value"] == "1.0"
        assert cursor(ctx) == 20

    @pytest.mark.asyncio
    async def test_first_poll_log_failure_keeps_baseline(self):
        provider = make_provider(head=50, logs=NodeApiError("query timeout"))
        ctx = make_context({"event": "tokenTransfer", "watchAddress": WATCH})

        with pytest.raises(NodeApiError, match="query timeout"):
            await make_trigger(provider).poll(ctx)

        assert cursor(ctx) == 49


class TestNftTransfer:
    """Test ERC-721 transfer matching"""

    @pytest.mark.asyncio
    async def test_nft_transfers(self):
        calls = {
            "0x06fdde03": "0x" + encode(["string"], ["Lens Profiles"]).hex(),
            "0x95d89b41": "0x" + encode(["string"], ["LENS"]).hex(),
        }
        logs = [
            {
                "address": TOKEN,
                "topics": [
                    TRANSFER_TOPIC,
                    address_to_topic(OTHER),
                    address_to_topic(WATCH),
                    "0x" + format(42, "064x"),
                ],
                "data": "0x",
                "blockNumber": "0x1e",
                "transactionHash": "0xfeed",
            },
            {
                # ERC-20 transfer from the same contract address is skipped
                "address": TOKEN,
                "topics": [TRANSFER_TOPIC, address_to_topic(OTHER), address_to_topic(WATCH)],
                "data": "0x" + format(1, "064x"),
                "blockNumber": "0x1e",
                "transactionHash": "0xbeef",
            },
        ]
        provider = make_provider(head=30, logs=logs, calls=calls)
        ctx = make_context({"event": "nftTransfer", "watchAddress": WATCH, "direction": "incoming"}, cursor=29)

        result = await make_trigger(provider).poll(ctx)

        assert result == [[{"json": {
            "type": "incoming",
            "contractAddress": TOKEN,
            "collectionName": "Lens Profiles",
            "symbol": "LENS",
            "tokenId": "42",
            "from": OTHER,
            "to": WATCH,
            "blockNumber": 30,
            "transactionHash": "0xfeed",
            "network": "mainnet",
        }}]]
        assert cursor(ctx) == 30
