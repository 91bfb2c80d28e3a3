"""Transports for the Polygon JSON-RPC provider, explorer API and Multicall3"""

from polygon_nodes.chains.explorer import ExplorerClient
from polygon_nodes.chains.multicall import MulticallClient, batch_get_balances
from polygon_nodes.chains.provider import PolygonProvider

__all__ = ["ExplorerClient", "MulticallClient", "PolygonProvider", "batch_get_balances"]
