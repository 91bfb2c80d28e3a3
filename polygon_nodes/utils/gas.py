"""Gas price lookup and transaction gas estimation"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Any, Dict, Optional

import structlog

from polygon_nodes.errors import NodeApiError
from polygon_nodes.utils.units import format_units

logger = structlog.get_logger()

DEFAULT_GAS_PRICE = 30_000_000_000  # 30 gwei
DEFAULT_PRIORITY_FEE = 30_000_000_000
GAS_LIMIT_BUFFER_PERCENT = 120

GAS_LIMITS = {
    "TRANSFER_NATIVE": 21000,
    "TRANSFER_ERC20": 65000,
    "TRANSFER_ERC721": 100000,
    "TRANSFER_ERC1155": 100000,
    "APPROVE_ERC20": 50000,
    "SWAP": 200000,
    "ADD_LIQUIDITY": 250000,
    "REMOVE_LIQUIDITY": 250000,
    "CONTRACT_DEPLOY": 1000000,
}


@dataclass(frozen=True)
class FeeData:
    """Current fee data; EIP-1559 fields are None on legacy-only chains"""

    gas_price: int
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    base_fee: Optional[int] = None


@dataclass(frozen=True)
class GasEstimate:
    """Buffered gas limit with the fees used to price it"""

    gas_limit: int
    gas_price: int
    max_fee_per_gas: Optional[int]
    max_priority_fee_per_gas: Optional[int]
    estimated_cost: int
    estimated_cost_matic: str


def apply_gas_buffer(gas_limit: int) -> int:
    return gas_limit * GAS_LIMIT_BUFFER_PERCENT // 100


async def get_fee_data(provider) -> FeeData:
    """
    Fetch gas price and, when the latest block carries a base fee, EIP-1559 fees.

    max_fee_per_gas is derived as base_fee * 2 + priority fee.
    """
    gas_price, block = await asyncio.gather(
        provider.get_gas_price(),
        provider.get_block("latest"),
    )

    base_fee_hex = (block or {}).get("baseFeePerGas")
    if base_fee_hex is None:
        return FeeData(gas_price=gas_price or DEFAULT_GAS_PRICE)

    base_fee = int(base_fee_hex, 16) if isinstance(base_fee_hex, str) else int(base_fee_hex)
    try:
        priority_fee = await provider.get_max_priority_fee()
    except NodeApiError as e:
        logger.warning("max_priority_fee_unavailable", error=str(e))
        priority_fee = DEFAULT_PRIORITY_FEE

    return FeeData(
        gas_price=gas_price or DEFAULT_GAS_PRICE,
        max_fee_per_gas=base_fee * 2 + priority_fee,
        max_priority_fee_per_gas=priority_fee,
        base_fee=base_fee,
    )


async def estimate_gas(provider, transaction: Dict[str, Any]) -> GasEstimate:
    """Estimate gas with a 20% buffer and price it with current fees"""
    raw_limit, fee_data = await asyncio.gather(
        provider.estimate_gas(transaction),
        get_fee_data(provider),
    )

    gas_limit = apply_gas_buffer(raw_limit)
    price = fee_data.max_fee_per_gas or fee_data.gas_price
    estimated_cost = gas_limit * price
    cost_matic = Decimal(format_units(estimated_cost, 18)).quantize(Decimal("0.000001"), rounding=ROUND_DOWN)

    logger.debug(
        "gas_estimated",
        raw_limit=raw_limit,
        gas_limit=gas_limit,
        gas_price=fee_data.gas_price,
        max_fee_per_gas=fee_data.max_fee_per_gas,
    )

    return GasEstimate(
        gas_limit=gas_limit,
        gas_price=fee_data.gas_price,
        max_fee_per_gas=fee_data.max_fee_per_gas,
        max_priority_fee_per_gas=fee_data.max_priority_fee_per_gas,
        estimated_cost=estimated_cost,
        estimated_cost_matic=str(cost_matic),
    )


async def get_gas_prices(provider) -> Dict[str, int]:
    """Slow/standard/fast/instant tiers derived from the current gas price"""
    gas_price = await provider.get_gas_price() or DEFAULT_GAS_PRICE
    return {
        "slow": gas_price * 80 // 100,
        "standard": gas_price,
        "fast": gas_price * 120 // 100,
        "instant": gas_price * 150 // 100,
    }


async def get_eip1559_fee_data(provider) -> Dict[str, int]:
    fee_data = await get_fee_data(provider)
    base_fee = fee_data.base_fee or 0
    priority_fee = fee_data.max_priority_fee_per_gas or DEFAULT_PRIORITY_FEE
    return {
        "maxFeePerGas": fee_data.max_fee_per_gas or base_fee * 2 + priority_fee,
        "maxPriorityFeePerGas": priority_fee,
        "baseFee": base_fee,
    }


def _format_gwei(value: Optional[int]) -> str:
    if not value:
        return "N/A"
    return f"{format_units(value, 'gwei')} Gwei"


def format_gas_estimate(estimate: GasEstimate) -> Dict[str, str]:
    """Display strings for a gas estimate, alongside the raw wei values"""
    return {
        "gasLimit": str(estimate.gas_limit),
        "gasPrice": _format_gwei(estimate.gas_price),
        "maxFeePerGas": _format_gwei(estimate.max_fee_per_gas),
        "maxPriorityFeePerGas": _format_gwei(estimate.max_priority_fee_per_gas),
        "estimatedCost": f"{estimate.estimated_cost_matic} MATIC",
        "gasPriceWei": str(estimate.gas_price),
        "estimatedCostWei": str(estimate.estimated_cost),
    }
