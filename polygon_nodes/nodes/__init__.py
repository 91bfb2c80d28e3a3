"""Workflow nodes for the Polygon blockchain"""

from polygon_nodes.nodes.base import NodeRuntime
from polygon_nodes.nodes.context import ExecuteContext, LocalContext, PollContext
from polygon_nodes.nodes.polygon import Polygon
from polygon_nodes.nodes.trigger import PolygonTrigger

__all__ = [
    "ExecuteContext",
    "LocalContext",
    "NodeRuntime",
    "PollContext",
    "Polygon",
    "PolygonTrigger",
]
