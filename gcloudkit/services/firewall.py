"""
Compute Engine firewall rule resource.
"""

from typing import Any, Dict, Optional, Tuple

from ..utils.logging_config import get_logger
from ..utils.service_object import ServiceObject
from .operation import Operation

logger = get_logger(__name__)

DEFAULT_NETWORK = 'global/networks/default'


class Firewall(ServiceObject):
    """A named firewall rule.

    ``create``, ``exists``, ``get`` and ``get_metadata`` come from
    ServiceObject. ``delete`` and ``set_metadata`` start remote operations and
    return an Operation handle along with the raw response.
    """

    def __init__(self, compute, name: str):
        super().__init__(parent=compute,
                         base_url='/global/firewalls',
                         id=name,
                         create_method=compute.create_firewall,
                         methods=('create', 'exists', 'get', 'get_metadata'))
        self.compute = compute
        self.name = name
        self.metadata['network'] = DEFAULT_NETWORK

    def delete(self) -> Tuple[Operation, Dict[str, Any]]:
        """
        Delete the firewall rule.

        Returns:
            Tuple of (operation, api_response)

        Raises:
            ApiError: If the request fails
        """
        resp = self.request('DELETE')
        logger.debug(f"Deleting firewall {self.name} (operation {resp.get('name')})")
        return self._operation_from(resp), resp

    def set_metadata(self, metadata: Optional[Dict[str, Any]] = None) -> Tuple[Operation, Dict[str, Any]]:
        """
        Patch the firewall rule. The rule's name and network are always sent.

        Args:
            metadata: Partial firewall resource to merge

        Returns:
            Tuple of (operation, api_response)

        Raises:
            ApiError: If the request fails
        """
        metadata = dict(metadata or {})
        metadata['name'] = self.name
        metadata['network'] = self.metadata.get('network', DEFAULT_NETWORK)

        resp = self.request('PATCH', json=metadata)
        logger.debug(f"Updating firewall {self.name} (operation {resp.get('name')})")
        return self._operation_from(resp), resp

    def _operation_from(self, resp: Dict[str, Any]) -> Operation:
        operation = self.compute.operation(resp.get('name'))
        operation.metadata = resp
        return operation
