"""Polygon network definitions"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"


class Currency(BaseModel):
    """Native currency of a network"""

    name: str
    symbol: str
    decimals: int = 18

    model_config = ConfigDict(frozen=True)


class RpcUrls(BaseModel):
    """Known RPC base URLs for a network"""

    public: str
    alchemy: Optional[str] = None
    infura: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class NetworkConfig(BaseModel):
    """Static configuration for a Polygon network"""

    name: str
    chain_id: int
    currency: Currency
    rpc_urls: RpcUrls
    explorer_url: str
    explorer_api_url: str
    is_testnet: bool
    multicall_address: str = MULTICALL3_ADDRESS

    model_config = ConfigDict(frozen=True)


NETWORKS: Dict[str, NetworkConfig] = {
    "mainnet": NetworkConfig(
        name="Polygon Mainnet",
        chain_id=137,
        currency=Currency(name="MATIC", symbol="MATIC"),
        rpc_urls=RpcUrls(
            public="https://polygon-rpc.com",
            alchemy="https://polygon-mainnet.g.alchemy.com/v2/",
            infura="https://polygon-mainnet.infura.io/v3/",
        ),
        explorer_url="https://polygonscan.com",
        explorer_api_url="https://api.polygonscan.com/api",
        is_testnet=False,
    ),
    "amoy": NetworkConfig(
        name="Polygon Amoy Testnet",
        chain_id=80002,
        currency=Currency(name="MATIC", symbol="MATIC"),
        rpc_urls=RpcUrls(
            public="https://rpc-amoy.polygon.technology",
            alchemy="https://polygon-amoy.g.alchemy.com/v2/",
            infura="https://polygon-amoy.infura.io/v3/",
        ),
        explorer_url="https://amoy.polygonscan.com",
        explorer_api_url="https://api-amoy.polygonscan.com/api",
        is_testnet=True,
    ),
    "zkevm": NetworkConfig(
        name="Polygon zkEVM Mainnet",
        chain_id=1101,
        currency=Currency(name="Ethereum", symbol="ETH"),
        rpc_urls=RpcUrls(
            public="https://zkevm-rpc.com",
            alchemy="https://polygonzkevm-mainnet.g.alchemy.com/v2/",
        ),
        explorer_url="https://zkevm.polygonscan.com",
        explorer_api_url="https://api-zkevm.polygonscan.com/api",
        is_testnet=False,
    ),
    "cardona": NetworkConfig(
        name="Polygon zkEVM Cardona Testnet",
        chain_id=2442,
        currency=Currency(name="Ethereum", symbol="ETH"),
        rpc_urls=RpcUrls(public="https://rpc.cardona.zkevm-rpc.com"),
        explorer_url="https://cardona-zkevm.polygonscan.com",
        explorer_api_url="https://api-cardona-zkevm.polygonscan.com/api",
        is_testnet=True,
    ),
}


def get_network_config(network: str) -> NetworkConfig:
    """Get the configuration for a named network"""
    config = NETWORKS.get(network)
    if config is None:
        raise ValueError(f"Unknown network: {network}")
    return config


def get_chain_id(network: str) -> int:
    return get_network_config(network).chain_id


def get_explorer_api_url(network: str) -> str:
    return get_network_config(network).explorer_api_url


def get_rpc_url(network: str, provider: str, api_key: Optional[str] = None) -> str:
    """
    Build the RPC URL for a network and provider.

    Providers without a known URL for the network fall back to the public endpoint.
    """
    urls = get_network_config(network).rpc_urls

    if provider == "alchemy" and urls.alchemy:
        return f"{urls.alchemy}{api_key or ''}"

    if provider == "infura" and urls.infura:
        return f"{urls.infura}{api_key or ''}"

    return urls.public
