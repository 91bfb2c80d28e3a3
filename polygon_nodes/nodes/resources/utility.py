"""Gas, network and unit conversion utilities"""

from polygon_nodes.config.networks import NETWORKS
from polygon_nodes.errors import NodeOperationError
from polygon_nodes.nodes.base import Compute, Custom, ExplorerRequest, Operation, Resource, RpcRequest
from polygon_nodes.nodes.resources.common import quantity
from polygon_nodes.utils.abi import to_json_value
from polygon_nodes.utils.gas import get_fee_data, get_gas_prices
from polygon_nodes.utils.units import UNITS, decimal_to_hex, format_units, hex_to_decimal, parse_units, wei_to_gwei


def _optional_str(value):
    return None if value is None else str(value)


def _get_gas_price(item):
    provider = item.provider
    return Custom(lambda: get_fee_data(provider))


def _gas_price_record(item, fee_data):
    return {
        "gasPrice": str(fee_data.gas_price),
        "gasPriceGwei": wei_to_gwei(fee_data.gas_price),
        "maxFeePerGas": _optional_str(fee_data.max_fee_per_gas),
        "maxPriorityFeePerGas": _optional_str(fee_data.max_priority_fee_per_gas),
    }


def _get_gas_prices(item):
    provider = item.provider
    return Custom(lambda: get_gas_prices(provider))


def _gas_prices_record(item, tiers):
    record = {tier: wei_to_gwei(price) for tier, price in tiers.items()}
    record.update({f"{tier}Wei": str(price) for tier, price in tiers.items()})
    record["unit"] = "gwei"
    return record


def _get_gas_oracle(item):
    return ExplorerRequest("gastracker", "gasoracle")


def _gas_oracle_record(item, result):
    result = result or {}
    return {
        "safeGasPrice": result.get("SafeGasPrice"),
        "proposeGasPrice": result.get("ProposeGasPrice"),
        "fastGasPrice": result.get("FastGasPrice"),
        "suggestBaseFee": result.get("suggestBaseFee"),
        "lastBlock": result.get("LastBlock"),
        "network": item.network,
    }


def _get_chain_id(item):
    return RpcRequest("eth_chainId")


def _chain_id_record(item, result):
    config = NETWORKS.get(item.network)
    return {"chainId": quantity(result), "name": config.name if config else item.network}


def _get_network_info(item):
    return [RpcRequest("eth_blockNumber"), RpcRequest("eth_gasPrice")]


def _network_info_record(item, results):
    block_number, gas_price = results
    config = NETWORKS.get(item.network)
    return {
        "network": item.network,
        "chainId": config.chain_id if config else item.provider.chain_id,
        "name": config.name if config else item.network,
        "currency": config.currency.model_dump() if config else None,
        "latestBlock": quantity(block_number),
        "gasPrice": str(quantity(gas_price)),
        "isTestnet": config.is_testnet if config else None,
        "explorerUrl": config.explorer_url if config else None,
    }


def _convert_units(item):
    value = str(item.param("value")).strip()
    from_unit = item.param("fromUnit", "ether")
    to_unit = item.param("toUnit", "wei")
    for unit in (from_unit, to_unit):
        if unit not in UNITS:
            raise NodeOperationError(f"Unknown unit: {unit}")

    try:
        wei = parse_units(value, from_unit)
    except ValueError as e:
        raise NodeOperationError(f"Invalid value for {from_unit}: {value}", description=str(e)) from e

    result = str(wei) if UNITS[to_unit] == 0 else format_units(wei, to_unit)
    return Compute({"value": value, "fromUnit": from_unit, "toUnit": to_unit, "result": result})


def _hex_to_decimal(item):
    value = str(item.param("value")).strip()
    try:
        decimal = hex_to_decimal(value)
    except ValueError as e:
        raise NodeOperationError(f"Invalid hex value: {value}") from e
    return Compute({"hex": value, "decimal": to_json_value(decimal)})


def _decimal_to_hex(item):
    value = item.param("value")
    try:
        hex_value = decimal_to_hex(str(value).strip() if isinstance(value, str) else value)
    except (TypeError, ValueError) as e:
        raise NodeOperationError(f"Invalid decimal value: {value}") from e
    return Compute({"decimal": str(value), "hex": hex_value})


UTILITY = Resource(
    name="utility",
    display_name="Utility",
    default_operation="getGasPrice",
    operations={
        "getGasPrice": Operation("Get Gas Price", _get_gas_price, _gas_price_record, "Get current gas prices"),
        "getGasPrices": Operation(
            "Get Gas Prices", _get_gas_prices, _gas_prices_record, "Get slow/standard/fast/instant gas prices"
        ),
        "getGasOracle": Operation(
            "Get Gas Oracle", _get_gas_oracle, _gas_oracle_record, "Get explorer gas oracle"
        ),
        "getChainId": Operation("Get Chain ID", _get_chain_id, _chain_id_record, "Get network chain ID"),
        "getNetworkInfo": Operation(
            "Get Network Info", _get_network_info, _network_info_record, "Get network information"
        ),
        "convertUnits": Operation("Convert Units", _convert_units, description="Convert between units"),
        "hexToDecimal": Operation("Hex to Decimal", _hex_to_decimal, description="Convert hex to decimal"),
        "decimalToHex": Operation("Decimal to Hex", _decimal_to_hex, description="Convert decimal to hex"),
    },
)
