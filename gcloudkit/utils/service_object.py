"""
Generic wrapper for a remote resource addressed by a parent service and an id.
"""

from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .connection import ApiError
from .logging_config import get_logger

logger = get_logger(__name__)

ALL_METHODS = ('create', 'delete', 'exists', 'get', 'get_metadata', 'set_metadata')


class ServiceObject:
    """Base class for resources exposing create/delete/exists/get/metadata calls.

    Subclasses choose which of these are available with ``methods``; calling a
    method that was not enabled raises NotImplementedError.
    """

    def __init__(self,
                 parent: Any,
                 base_url: str,
                 id: str,
                 create_method: Optional[Callable[..., Any]] = None,
                 methods: Optional[Iterable[str]] = None):
        """
        Initialize the resource wrapper.

        Args:
            parent: Object providing ``request(method, uri, json=None, params=None)``
            base_url: Collection path under the parent, e.g. ``/global/firewalls``
            id: Resource name
            create_method: Callable used by ``create``, called as ``create_method(id, *args, **kwargs)``
            methods: Names of the operations to enable, all of them if None
        """
        self.parent = parent
        self.base_url = base_url
        self.id = id
        self.create_method = create_method
        self.methods = set(methods) if methods is not None else set(ALL_METHODS)
        self.metadata: Dict[str, Any] = {}

    def _check_method(self, name: str) -> None:
        if name not in self.methods:
            raise NotImplementedError(f'{type(self).__name__} does not support {name}()')

    def create(self, *args, **kwargs):
        """Create the resource through the parent's create method."""
        self._check_method('create')
        if self.create_method is None:
            raise NotImplementedError(f'{type(self).__name__} has no create method')
        return self.create_method(self.id, *args, **kwargs)

    def delete(self) -> Dict[str, Any]:
        """Delete the resource and return the API response."""
        self._check_method('delete')
        return self.request('DELETE')

    def exists(self) -> bool:
        """Check if the resource exists."""
        self._check_method('exists')
        try:
            self.get_metadata()
        except ApiError as e:
            if e.code == 404:
                return False
            raise
        return True

    def get(self, auto_create: bool = False, *args, **kwargs) -> Tuple[Any, Dict[str, Any]]:
        """
        Fetch the resource's metadata.

        Args:
            auto_create: Create the resource when it does not exist
            *args: Passed to ``create`` when auto-creating

        Returns:
            Tuple of (resource, api_response), or whatever ``create`` returns when auto-creating

        Raises:
            ApiError: If the request fails
        """
        self._check_method('get')
        try:
            metadata = self.get_metadata()
        except ApiError as e:
            if e.code == 404 and auto_create and 'create' in self.methods:
                logger.debug(f'{type(self).__name__} {self.id} not found, creating it')
                return self.create(*args, **kwargs)
            raise
        return self, metadata

    def get_metadata(self) -> Dict[str, Any]:
        """Fetch the resource's metadata and store it on ``self.metadata``."""
        self._check_method('get_metadata')
        resp = self.request('GET')
        self.metadata = resp
        return resp

    def set_metadata(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Patch the resource's metadata and return the API response."""
        self._check_method('set_metadata')
        resp = self.request('PATCH', json=metadata)
        self.metadata = resp
        return resp

    def request(self,
                method: str,
                uri: str = '',
                json: Optional[Dict[str, Any]] = None,
                params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request relative to this resource through the parent."""
        return self.parent.request(method, f'{self.base_url}/{self.id}{uri}', json=json, params=params)
