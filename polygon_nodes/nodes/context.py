"""Host-facing contexts handed to the action and trigger nodes"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from polygon_nodes.errors import NodeOperationError


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class ExecuteContext(ABC):
    """What the host provides to an action node for one execution"""

    @abstractmethod
    def get_input_data(self) -> List[Dict[str, Any]]:
        """Input items, each shaped {"json": {...}}"""

    @abstractmethod
    def get_node_parameter(self, name: str, item_index: int = 0, default: Any = MISSING) -> Any:
        """Resolved parameter value; raises NodeOperationError when absent without a default"""

    @abstractmethod
    def get_credentials(self, name: str) -> Dict[str, Any]:
        """Credential object; raises NodeOperationError when not configured"""

    @abstractmethod
    def continue_on_fail(self) -> bool:
        """Whether item failures become error items instead of aborting"""


class PollContext(ABC):
    """What the host provides to a polling trigger"""

    @abstractmethod
    def get_node_parameter(self, name: str, default: Any = MISSING) -> Any:
        """Resolved parameter value; raises NodeOperationError when absent without a default"""

    @abstractmethod
    def get_credentials(self, name: str) -> Dict[str, Any]:
        """Credential object; raises NodeOperationError when not configured"""

    @abstractmethod
    def get_workflow_static_data(self, scope: str) -> Dict[str, Any]:
        """Mutable state the host persists between polls"""


class LocalContext(ExecuteContext, PollContext):
    """
    In-memory host used by the standalone runner and tests.

    Parameters are shared by every item unless item_parameters overrides
    them for a given index.
    """

    def __init__(
        self,
        parameters: Optional[Dict[str, Any]] = None,
        credentials: Optional[Dict[str, Dict[str, Any]]] = None,
        input_data: Optional[List[Dict[str, Any]]] = None,
        item_parameters: Optional[Dict[int, Dict[str, Any]]] = None,
        continue_on_fail: bool = False,
    ):
        self.parameters = dict(parameters or {})
        self.credentials = dict(credentials or {})
        self.input_data = list(input_data) if input_data is not None else [{"json": {}}]
        self.item_parameters = dict(item_parameters or {})
        self._continue_on_fail = continue_on_fail
        self.static_data: Dict[str, Dict[str, Any]] = {}

    def get_input_data(self) -> List[Dict[str, Any]]:
        return self.input_data

    def get_node_parameter(self, name: str, item_index: int = 0, default: Any = MISSING) -> Any:
        overrides = self.item_parameters.get(item_index, {})
        if name in overrides:
            return overrides[name]
        if name in self.parameters:
            return self.parameters[name]
        if default is not MISSING:
            return default
        raise NodeOperationError(f"Could not get parameter: {name}")

    def get_credentials(self, name: str) -> Dict[str, Any]:
        if name not in self.credentials:
            raise NodeOperationError(f"Credentials not found: {name}")
        return self.credentials[name]

    def continue_on_fail(self) -> bool:
        return self._continue_on_fail

    def get_workflow_static_data(self, scope: str) -> Dict[str, Any]:
        return self.static_data.setdefault(scope, {})
