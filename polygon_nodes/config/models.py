"""Configuration models for credentials and runner settings"""

from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from polygon_nodes.config.networks import NETWORKS, get_explorer_api_url, get_rpc_url
from polygon_nodes.errors import NodeOperationError

DEFAULT_CHAIN_ID = 137


class RpcCredentials(BaseSettings):
    """Credentials for the Polygon JSON-RPC provider"""

    network: str = "mainnet"
    rpc_provider: str = "public"
    api_key: str = ""
    custom_rpc_url: str = ""
    quicknode_endpoint: str = ""
    private_key: str = ""
    chain_id: Optional[int] = None

    model_config = SettingsConfigDict(frozen=True, env_prefix="POLYGON_RPC_")

    @classmethod
    def from_host(cls, data: Dict[str, Any]) -> "RpcCredentials":
        """Build credentials from the host's camelCase credential object"""
        chain_id = data.get("chainId")
        return cls(
            network=data.get("network") or "mainnet",
            rpc_provider=data.get("rpcProvider") or "public",
            api_key=data.get("apiKey") or "",
            custom_rpc_url=data.get("customRpcUrl") or "",
            quicknode_endpoint=data.get("quicknodeEndpoint") or "",
            private_key=data.get("privateKey") or "",
            chain_id=int(chain_id) if chain_id else None,
        )

    def resolve_rpc_url(self) -> str:
        """Assemble the provider URL from network, provider and API key"""
        if self.network == "custom":
            rpc_url = self.custom_rpc_url
        elif self.rpc_provider == "quicknode" and self.quicknode_endpoint:
            slug = "polygon" if self.network == "mainnet" else self.network
            rpc_url = f"https://{self.quicknode_endpoint}.{slug}.quiknode.pro/{self.api_key}/"
        else:
            if self.network not in NETWORKS:
                raise NodeOperationError(f"Unknown network: {self.network}")
            rpc_url = get_rpc_url(self.network, self.rpc_provider, self.api_key)

        if not rpc_url:
            raise NodeOperationError("No RPC URL configured. Please check your credentials.")

        return rpc_url

    def resolve_chain_id(self) -> int:
        network = NETWORKS.get(self.network)
        if network is not None:
            return network.chain_id
        return self.chain_id or DEFAULT_CHAIN_ID


class ExplorerCredentials(BaseSettings):
    """Credentials for the PolygonScan-compatible explorer API"""

    api_key: str
    network: str = "mainnet"

    model_config = SettingsConfigDict(frozen=True, env_prefix="POLYGONSCAN_")

    @classmethod
    def from_host(cls, data: Dict[str, Any]) -> "ExplorerCredentials":
        api_key = data.get("apiKey") or ""
        if not api_key:
            raise NodeOperationError("PolygonScan API key is required")
        return cls(api_key=api_key, network=data.get("network") or "mainnet")

    def resolve_api_url(self) -> str:
        if self.network not in NETWORKS:
            raise NodeOperationError(f"Unknown network: {self.network}")
        return get_explorer_api_url(self.network)


class Settings(BaseSettings):
    """Standalone runner settings loaded from environment variables"""

    # RPC
    network: str = Field(default="mainnet", alias="POLYGON_NETWORK")
    rpc_provider: str = Field(default="public", alias="POLYGON_RPC_PROVIDER")
    api_key: str = Field(default="", alias="POLYGON_API_KEY")
    custom_rpc_url: str = Field(default="", alias="POLYGON_CUSTOM_RPC_URL")
    private_key: str = Field(default="", alias="POLYGON_PRIVATE_KEY")

    # Explorer
    polygonscan_api_key: str = Field(default="", alias="POLYGONSCAN_API_KEY")

    # Trigger
    trigger_event: str = Field(default="newBlock", alias="TRIGGER_EVENT")
    trigger_watch_address: str = Field(default="", alias="TRIGGER_WATCH_ADDRESS")
    trigger_direction: str = Field(default="both", alias="TRIGGER_DIRECTION")
    trigger_contract: str = Field(default="", alias="TRIGGER_CONTRACT")
    poll_interval_seconds: float = Field(default=2.0, alias="POLL_INTERVAL_SECONDS")

    # Monitoring
    prometheus_port: int = Field(default=9090, alias="PROMETHEUS_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def get_rpc_credentials(self) -> Dict[str, Any]:
        """Credential object in the host's shape"""
        return {
            "network": self.network,
            "rpcProvider": self.rpc_provider,
            "apiKey": self.api_key,
            "customRpcUrl": self.custom_rpc_url,
            "privateKey": self.private_key,
        }

    def get_explorer_credentials(self) -> Optional[Dict[str, Any]]:
        if not self.polygonscan_api_key:
            return None
        explorer_network = self.network if self.network in NETWORKS else "mainnet"
        return {"apiKey": self.polygonscan_api_key, "network": explorer_network}

    def get_trigger_parameters(self) -> Dict[str, Any]:
        """Trigger node parameters for the configured event"""
        parameters: Dict[str, Any] = {"event": self.trigger_event}
        if self.trigger_event != "newBlock":
            parameters["watchAddress"] = self.trigger_watch_address
            parameters["direction"] = self.trigger_direction
        if self.trigger_event == "tokenTransfer":
            parameters["tokenContract"] = self.trigger_contract
        if self.trigger_event == "nftTransfer":
            parameters["nftContract"] = self.trigger_contract
        return parameters
