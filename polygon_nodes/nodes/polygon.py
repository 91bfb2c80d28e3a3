"""Polygon action node"""

from typing import Any, Callable, Dict, List, Optional

import structlog

from polygon_nodes.chains.explorer import ExplorerClient
from polygon_nodes.chains.provider import PolygonProvider
from polygon_nodes.config.models import ExplorerCredentials, RpcCredentials
from polygon_nodes.errors import NodeOperationError
from polygon_nodes.monitoring import metrics
from polygon_nodes.nodes.base import NodeRuntime, OperationItem, Resource, resolve_operation, run_operation
from polygon_nodes.nodes.context import ExecuteContext
from polygon_nodes.nodes.resources import RESOURCES

logger = structlog.get_logger()

RPC_CREDENTIALS = "polygonRpc"
EXPLORER_CREDENTIALS = "polygonScan"


def build_description(resources: Dict[str, Resource]) -> Dict[str, Any]:
    """Compact node description listing resources and their operations"""
    properties: List[Dict[str, Any]] = [
        {
            "displayName": "Resource",
            "name": "resource",
            "type": "options",
            "options": [{"name": r.display_name, "value": r.name} for r in resources.values()],
            "default": "account",
        }
    ]
    for resource in resources.values():
        properties.append({
            "displayName": "Operation",
            "name": "operation",
            "type": "options",
            "displayOptions": {"show": {"resource": [resource.name]}},
            "options": [
                {"name": op.name, "value": key, "description": op.description}
                for key, op in resource.operations.items()
            ],
            "default": resource.default_operation,
        })

    return {
        "displayName": "Polygon",
        "name": "polygon",
        "group": ["transform"],
        "version": 1,
        "subtitle": '={{$parameter["operation"] + ": " + $parameter["resource"]}}',
        "description": "Interact with the Polygon blockchain",
        "inputs": ["main"],
        "outputs": ["main"],
        "credentials": [
            {"name": RPC_CREDENTIALS, "required": True},
            {"name": EXPLORER_CREDENTIALS, "required": False},
        ],
        "properties": properties,
    }


class Polygon:
    """Action node dispatching resource/operation pairs to RPC or explorer calls"""

    description = build_description(RESOURCES)

    def __init__(
        self,
        runtime: Optional[NodeRuntime] = None,
        provider_factory: Callable[[RpcCredentials], Any] = PolygonProvider.from_credentials,
        explorer_factory: Callable[[ExplorerCredentials], Any] = ExplorerClient.from_credentials,
        resources: Optional[Dict[str, Resource]] = None,
    ):
        self.runtime = runtime or NodeRuntime()
        self.provider_factory = provider_factory
        self.explorer_factory = explorer_factory
        self.resources = resources or RESOURCES
        self._logger = logger.bind(component="polygon_node")

    def _create_explorer(self, ctx: ExecuteContext):
        try:
            data = ctx.get_credentials(EXPLORER_CREDENTIALS)
        except NodeOperationError:
            return None
        if not data or not data.get("apiKey"):
            return None
        return self.explorer_factory(ExplorerCredentials.from_host(data))

    async def execute(self, ctx: ExecuteContext) -> List[List[Dict[str, Any]]]:
        self.runtime.log_licensing_notice()

        items = ctx.get_input_data()
        credentials = RpcCredentials.from_host(ctx.get_credentials(RPC_CREDENTIALS))
        provider = self.provider_factory(credentials)
        explorer = self._create_explorer(ctx)

        resource = ctx.get_node_parameter("resource", 0)
        operation = ctx.get_node_parameter("operation", 0)
        return_data: List[Dict[str, Any]] = []

        try:
            for index in range(len(items)):
                try:
                    op = resolve_operation(self.resources, resource, operation)
                    record = await run_operation(OperationItem(ctx, index, provider, explorer), op)
                except Exception as e:
                    metrics.node_items_processed.labels(
                        resource=resource, operation=operation, status="error"
                    ).inc()
                    self._logger.warning(
                        "node_item_failed",
                        resource=resource,
                        operation=operation,
                        item_index=index,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    if ctx.continue_on_fail():
                        return_data.append({
                            "json": {"error": getattr(e, "message", str(e))},
                            "pairedItem": {"item": index},
                        })
                        continue
                    raise

                metrics.node_items_processed.labels(
                    resource=resource, operation=operation, status="success"
                ).inc()
                return_data.append({"json": record, "pairedItem": {"item": index}})
        finally:
            if explorer is not None:
                await explorer.close()

        self._logger.info(
            "node_execution_completed",
            resource=resource,
            operation=operation,
            items=len(return_data),
        )
        return [return_data]
