"""Operation dispatch shared by the Polygon nodes"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import structlog

from polygon_nodes.errors import NodeApiError, NodeOperationError
from polygon_nodes.nodes.context import MISSING, ExecuteContext
from polygon_nodes.utils.address import checksum_address

logger = structlog.get_logger()

LICENSING_NOTICE = (
    "This node is licensed under the Business Source License 1.1 (BSL 1.1). "
    "Use by for-profit organizations in production environments requires a commercial license."
)


# Request variants


@dataclass
class RpcRequest:
    """A single JSON-RPC call"""

    method: str
    params: List[Any] = field(default_factory=list)


@dataclass
class ExplorerRequest:
    """A module/action query against the explorer API"""

    module: str
    action: str
    params: Dict[str, Any] = field(default_factory=dict)
    method: str = "GET"
    allow_empty: bool = False


@dataclass
class ContractCall:
    """A read-only contract function call; optional calls yield None on upstream failure"""

    address: str
    abi: Any
    function: str
    args: Sequence[Any] = ()
    optional: bool = False


@dataclass
class Compute:
    """A result computed locally without any network call"""

    value: Any


@dataclass
class Custom:
    """A multi-step flow, e.g. sign and broadcast"""

    run: Callable[[], Awaitable[Any]]


Request = Union[RpcRequest, ExplorerRequest, ContractCall, Compute, Custom, List[Any]]


def passthrough(item: "OperationItem", response: Any) -> Any:
    return response


@dataclass
class Operation:
    """Request builder plus response reshaper for one resource operation"""

    name: str
    build: Callable[["OperationItem"], Any]
    reshape: Callable[["OperationItem", Any], Dict[str, Any]] = passthrough
    description: str = ""


@dataclass
class Resource:
    name: str
    display_name: str
    operations: Dict[str, Operation]
    default_operation: str = ""


class OperationItem:
    """Per-item view of parameters and transports handed to operation builders"""

    def __init__(self, ctx: ExecuteContext, index: int, provider, explorer=None):
        self.ctx = ctx
        self.index = index
        self.provider = provider
        self._explorer = explorer

    @property
    def network(self) -> str:
        return self.provider.network

    @property
    def has_explorer(self) -> bool:
        return self._explorer is not None

    @property
    def explorer(self):
        if self._explorer is None:
            raise NodeOperationError("PolygonScan credentials required")
        return self._explorer

    def param(self, name: str, default: Any = MISSING) -> Any:
        return self.ctx.get_node_parameter(name, self.index, default)

    def address_param(self, name: str = "address") -> str:
        """Read an address parameter and return it checksummed"""
        return checksum_address(str(self.param(name)).strip())

    def options(self, name: str = "options") -> Dict[str, Any]:
        return self.param(name, {}) or {}


def resolve_operation(resources: Dict[str, Resource], resource: str, operation: str) -> Operation:
    found = resources.get(resource)
    if found is None:
        raise NodeOperationError(f"Unknown resource: {resource}")
    op = found.operations.get(operation)
    if op is None:
        raise NodeOperationError(f"Unknown {resource} operation: {operation}")
    return op


async def send_request(item: OperationItem, request: Request) -> Any:
    """Perform a request variant; lists are sent concurrently and keep their order"""
    if isinstance(request, list):
        return list(await asyncio.gather(*(send_request(item, entry) for entry in request)))

    if isinstance(request, Compute):
        return request.value

    if isinstance(request, RpcRequest):
        return await item.provider.request(request.method, request.params)

    if isinstance(request, ExplorerRequest):
        return await item.explorer.request(
            request.module,
            request.action,
            request.params,
            method=request.method,
            allow_empty=request.allow_empty,
        )

    if isinstance(request, ContractCall):
        try:
            return await item.provider.call_function(
                request.address, request.abi, request.function, request.args
            )
        except NodeApiError as e:
            if not request.optional:
                raise
            logger.debug("optional_contract_call_failed", function=request.function, error=e.message)
            return None

    if isinstance(request, Custom):
        return await request.run()

    raise TypeError(f"Unsupported request type: {type(request).__name__}")


async def run_operation(item: OperationItem, operation: Operation) -> Dict[str, Any]:
    request = operation.build(item)
    if inspect.isawaitable(request):
        request = await request
    response = await send_request(item, request)
    return operation.reshape(item, response)


class NodeRuntime:
    """Process-lifetime state shared by node instances"""

    def __init__(self, notice: Optional[str] = LICENSING_NOTICE):
        self.notice = notice
        self.licensing_notice_logged = False

    def log_licensing_notice(self) -> None:
        """Log the licensing notice the first time a node runs"""
        if self.licensing_notice_logged or not self.notice:
            return
        logger.warning("licensing_notice", notice=self.notice)
        self.licensing_notice_logged = True
