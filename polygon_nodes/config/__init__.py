"""Configuration module"""

from .models import ExplorerCredentials, RpcCredentials, Settings
from .networks import NETWORKS, NetworkConfig, get_chain_id, get_explorer_api_url, get_network_config, get_rpc_url

__all__ = [
    "ExplorerCredentials",
    "NETWORKS",
    "NetworkConfig",
    "RpcCredentials",
    "Settings",
    "get_chain_id",
    "get_explorer_api_url",
    "get_network_config",
    "get_rpc_url",
]
