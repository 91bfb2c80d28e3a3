"""Contract ABIs and well-known topics"""

from polygon_nodes.constants.abis import (
    ERC20_ABI,
    ERC721_ABI,
    ERC1155_ABI,
    MULTICALL3_ABI,
    TRANSFER_TOPIC,
)

__all__ = [
    "ERC20_ABI",
    "ERC721_ABI",
    "ERC1155_ABI",
    "MULTICALL3_ABI",
    "TRANSFER_TOPIC",
]
