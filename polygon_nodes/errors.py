"""Node error types surfaced to the workflow host"""

from typing import Any, Dict, Optional


class NodeError(Exception):
    """Base class for errors raised while executing a node"""

    def __init__(self, message: str, description: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.description = description


class NodeOperationError(NodeError):
    """Invalid input, missing credentials or an unknown resource/operation"""


class NodeApiError(NodeError):
    """Upstream failure from the RPC provider or the explorer API"""

    def __init__(
        self,
        message: str,
        description: Optional[str] = None,
        code: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, description)
        self.code = code
        self.data = data


class InvalidAddressError(NodeOperationError, ValueError):
    """Raised when a string is not a valid 20-byte hex address"""

    def __init__(self, address: Any):
        super().__init__(f"Invalid address: {address}")
        self.address = address
