"""
Compute Engine client for firewall rules and global operations.
"""

from typing import Any, Dict, List, Optional, Tuple

from ..utils.config import ComputeConfig
from ..utils.connection import Connection
from ..utils.logging_config import get_logger
from .firewall import Firewall
from .operation import Operation

logger = get_logger(__name__)


def _arrify(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class Compute:
    """Compute Engine client."""

    def __init__(self, config: Optional[ComputeConfig] = None, connection: Optional[Connection] = None):
        """
        Initialize the Compute client.

        Args:
            config: ComputeConfig instance, uses default if None
            connection: Shared transport, a default Connection is created if None

        Raises:
            ValueError: If no project id is configured
        """
        if config is None:
            from ..utils.config import config as default_config
            config = default_config.compute

        if not config.project_id:
            raise ValueError('A project id is required; set GCLOUD_PROJECT.')

        self.config = config
        self.project_id = config.project_id
        self.api_endpoint = config.api_endpoint
        self.connection = connection or Connection()

        logger.info(f'Initialized Compute client for project {self.project_id}')

    def request(self,
                method: str,
                uri: str,
                json: Optional[Dict[str, Any]] = None,
                params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send a request relative to the project.

        Args:
            method: HTTP method
            uri: Path under ``/projects/{project}``
            json: Request body
            params: Query string parameters

        Returns:
            Decoded response body

        Raises:
            ApiError: If the request fails
        """
        url = f'{self.api_endpoint}/projects/{self.project_id}{uri}'
        return self.connection.make_request(method, url, json=json, params=params, idempotent=method != 'POST')

    def firewall(self, name: str) -> Firewall:
        """Get a reference to a firewall rule."""
        return Firewall(self, name)

    def operation(self, name: str) -> Operation:
        """Get a reference to a global operation."""
        return Operation(self, name)

    def create_firewall(self, name: str, config: Dict[str, Any]) -> Tuple[Firewall, Operation, Dict[str, Any]]:
        """
        Create a firewall rule.

        Besides the API's own fields, ``config`` accepts shorthands:
        ``protocols`` (``{'tcp': [80, 443], 'icmp': True}``) becomes
        ``allowed``, ``ranges`` becomes ``sourceRanges`` and ``tags`` becomes
        ``sourceTags``.

        Args:
            name: Name of the firewall rule
            config: Firewall resource fields

        Returns:
            Tuple of (firewall, operation, api_response)

        Raises:
            ValueError: If no configuration mapping is given
            ApiError: If the request fails
        """
        if not isinstance(config, dict):
            raise ValueError('A firewall configuration object must be provided.')

        body = dict(config)
        body['name'] = name

        if 'protocols' in body:
            allowed = _arrify(body.get('allowed'))
            for protocol, ports in body.pop('protocols').items():
                if ports is False or (isinstance(ports, (list, tuple)) and not ports):
                    continue
                rule: Dict[str, Any] = {'IPProtocol': protocol}
                if ports is not True:
                    rule['ports'] = [str(port) for port in _arrify(ports)]
                allowed.append(rule)
            body['allowed'] = allowed

        if 'ranges' in body:
            body['sourceRanges'] = _arrify(body.pop('ranges'))

        if 'tags' in body:
            body['sourceTags'] = _arrify(body.pop('tags'))

        resp = self.request('POST', '/global/firewalls', json=body)
        logger.debug(f"Creating firewall {name} (operation {resp.get('name')})")

        firewall = self.firewall(name)
        operation = self.operation(resp.get('name'))
        operation.metadata = resp
        return firewall, operation, resp

    def get_firewalls(self,
                      filter: Optional[str] = None,
                      max_results: Optional[int] = None,
                      page_token: Optional[str] = None) -> Tuple[List[Firewall], Optional[Dict[str, Any]], Dict[str, Any]]:
        """
        List one page of firewall rules.

        Args:
            filter: API filter expression
            max_results: Page size
            page_token: Token from a previous page

        Returns:
            Tuple of (firewalls, next_query, api_response). ``next_query`` holds
            the keyword arguments for the next page, or None on the last page.
        """
        params: Dict[str, Any] = {}
        if filter:
            params['filter'] = filter
        if max_results is not None:
            params['maxResults'] = max_results
        if page_token:
            params['pageToken'] = page_token

        resp = self.request('GET', '/global/firewalls', params=params)

        firewalls = []
        for item in resp.get('items') or []:
            firewall = self.firewall(item['name'])
            firewall.metadata = item
            firewalls.append(firewall)

        next_query = None
        if resp.get('nextPageToken'):
            next_query = {'filter': filter, 'max_results': max_results, 'page_token': resp['nextPageToken']}

        return firewalls, next_query, resp
