"""PolygonScan-compatible explorer REST client"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from polygon_nodes.config.models import ExplorerCredentials
from polygon_nodes.config.networks import get_explorer_api_url
from polygon_nodes.errors import NodeApiError
from polygon_nodes.monitoring import metrics

logger = structlog.get_logger()

NO_TRANSACTIONS_FOUND = "No transactions found"

DEFAULT_PAGE = 1
DEFAULT_OFFSET = 10
DEFAULT_SORT = "desc"
DEFAULT_START_BLOCK = 0
DEFAULT_END_BLOCK = 99999999


class ExplorerClient:
    """
    Async client for the explorer's module/action query API.

    Every request carries the API key. Responses with status other than "1"
    raise NodeApiError, except list endpoints that report no results.
    """

    def __init__(
        self,
        api_key: str,
        network: str = "mainnet",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.network = network
        self.base_url = base_url or get_explorer_api_url(network)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._logger = logger.bind(component="explorer", network=network)

    @classmethod
    def from_credentials(cls, credentials: ExplorerCredentials, **kwargs: Any) -> "ExplorerClient":
        return cls(
            api_key=credentials.api_key,
            network=credentials.network,
            base_url=credentials.resolve_api_url(),
            **kwargs,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ExplorerClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def request(
        self,
        module: str,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        allow_empty: bool = False,
    ) -> Any:
        """Call module/action and return the response's result field"""
        query: Dict[str, Any] = {"module": module, "action": action}
        query.update({key: value for key, value in (params or {}).items() if value is not None})
        query["apikey"] = self.api_key

        try:
            if method.upper() == "POST":
                response = await self._client.post(self.base_url, data=query)
            else:
                response = await self._client.get(self.base_url, params=query)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            self._record(module, action, "http_error")
            self._logger.warning(
                "explorer_http_error",
                module=module,
                action=action,
                status_code=e.response.status_code,
            )
            raise NodeApiError(
                f"Explorer API error: HTTP {e.response.status_code}",
                code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            self._record(module, action, "transport_error")
            self._logger.warning("explorer_request_failed", module=module, action=action, error=str(e))
            raise NodeApiError(f"Explorer API request failed: {e}") from e

        return self._unwrap(module, action, payload, allow_empty)

    def _unwrap(self, module: str, action: str, payload: Dict[str, Any], allow_empty: bool) -> Any:
        # Proxy endpoints answer in JSON-RPC shape without a status field
        if "status" not in payload:
            error = payload.get("error")
            if error:
                self._record(module, action, "error")
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise NodeApiError(f"Explorer API error: {message}")
            self._record(module, action, "ok")
            return payload.get("result")

        message = payload.get("message", "")
        if payload.get("status") != "1":
            if allow_empty and message == NO_TRANSACTIONS_FOUND:
                self._record(module, action, "empty")
                return []
            self._record(module, action, "error")
            self._logger.warning(
                "explorer_error_response",
                module=module,
                action=action,
                message=message,
                result=payload.get("result"),
            )
            raise NodeApiError(
                f"Explorer API error: {message}",
                description=str(payload.get("result")) if payload.get("result") else None,
            )

        self._record(module, action, "ok")
        return payload.get("result")

    def _record(self, module: str, action: str, status: str) -> None:
        metrics.explorer_requests.labels(
            network=self.network,
            module=module,
            action=action,
            status=status,
        ).inc()

    async def _list(
        self,
        action: str,
        address: str,
        page: Optional[int] = None,
        offset: Optional[int] = None,
        sort: Optional[str] = None,
        start_block: Optional[int] = None,
        end_block: Optional[int] = None,
        contract_address: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        result = await self.request(
            "account",
            action,
            {
                "address": address,
                "startblock": start_block or DEFAULT_START_BLOCK,
                "endblock": end_block or DEFAULT_END_BLOCK,
                "page": page or DEFAULT_PAGE,
                "offset": offset or DEFAULT_OFFSET,
                "sort": sort or DEFAULT_SORT,
                "contractaddress": contract_address or None,
            },
            allow_empty=True,
        )
        return result if isinstance(result, list) else []

    # Account

    async def get_account_balance(self, address: str) -> str:
        return await self.request("account", "balance", {"address": address, "tag": "latest"})

    async def get_transaction_list(self, address: str, **options: Any) -> List[Dict[str, Any]]:
        return await self._list("txlist", address, **options)

    async def get_internal_transactions(self, address: str, **options: Any) -> List[Dict[str, Any]]:
        return await self._list("txlistinternal", address, **options)

    async def get_token_transfers(self, address: str, **options: Any) -> List[Dict[str, Any]]:
        return await self._list("tokentx", address, **options)

    async def get_nft_transfers(self, address: str, **options: Any) -> List[Dict[str, Any]]:
        return await self._list("tokennfttx", address, **options)

    async def get_token_balance(self, address: str, contract_address: str) -> str:
        return await self.request(
            "account",
            "tokenbalance",
            {"address": address, "contractaddress": contract_address, "tag": "latest"},
        )

    # Contract

    async def get_contract_abi(self, address: str) -> str:
        return await self.request("contract", "getabi", {"address": address})

    async def get_contract_source(self, address: str) -> List[Dict[str, Any]]:
        return await self.request("contract", "getsourcecode", {"address": address})

    async def verify_source_code(
        self,
        contract_address: str,
        source_code: str,
        contract_name: str,
        compiler_version: str,
        optimization_used: bool = False,
        runs: int = 200,
        constructor_arguments: str = "",
        code_format: str = "solidity-single-file",
    ) -> str:
        """Submit source for verification; returns the GUID to poll with check_verify_status"""
        return await self.request(
            "contract",
            "verifysourcecode",
            {
                "contractaddress": contract_address,
                "sourceCode": source_code,
                "codeformat": code_format,
                "contractname": contract_name,
                "compilerversion": compiler_version,
                "optimizationUsed": "1" if optimization_used else "0",
                "runs": runs,
                # Parameter name is misspelled in the explorer API itself
                "constructorArguements": constructor_arguments,
            },
            method="POST",
        )

    async def check_verify_status(self, guid: str) -> str:
        try:
            return await self.request("contract", "checkverifystatus", {"guid": guid})
        except NodeApiError as e:
            # Pending and failed verifications are reported with status "0"
            if e.description:
                return e.description
            raise

    # Stats, gas and blocks

    async def get_gas_oracle(self) -> Dict[str, Any]:
        return await self.request("gastracker", "gasoracle")

    async def get_block_reward(self, block_number: int) -> Dict[str, Any]:
        return await self.request("block", "getblockreward", {"blockno": block_number})

    async def get_token_supply(self, contract_address: str) -> str:
        return await self.request("stats", "tokensupply", {"contractaddress": contract_address})

    async def get_tx_receipt_status(self, tx_hash: str) -> Dict[str, Any]:
        return await self.request("transaction", "gettxreceiptstatus", {"txhash": tx_hash})

    async def proxy(self, action: str, **params: Any) -> Any:
        return await self.request("proxy", action, params)
