"""Operation tables for each resource of the Polygon node"""

from typing import Dict

from polygon_nodes.nodes.base import Resource
from polygon_nodes.nodes.resources.account import ACCOUNT
from polygon_nodes.nodes.resources.block import BLOCK
from polygon_nodes.nodes.resources.contract import CONTRACT
from polygon_nodes.nodes.resources.event import EVENT
from polygon_nodes.nodes.resources.nft import NFT
from polygon_nodes.nodes.resources.token import TOKEN
from polygon_nodes.nodes.resources.transaction import TRANSACTION
from polygon_nodes.nodes.resources.utility import UTILITY

RESOURCES: Dict[str, Resource] = {
    resource.name: resource
    for resource in (ACCOUNT, BLOCK, CONTRACT, TOKEN, TRANSACTION, NFT, EVENT, UTILITY)
}

__all__ = ["RESOURCES"]
