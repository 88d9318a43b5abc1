"""
Handle to an asynchronous Compute Engine operation.
"""

import time
from typing import Any, Dict, Optional

from ..utils.logging_config import get_logger
from ..utils.service_object import ServiceObject

logger = get_logger(__name__)


class OperationError(Exception):
    """Raised when a remote operation finishes with an error."""

    def __init__(self, name: str, errors: Any, metadata: Optional[Dict[str, Any]] = None):
        super().__init__(f'Operation {name} failed: {errors}')
        self.name = name
        self.errors = errors
        self.metadata = metadata


class Operation(ServiceObject):
    """A global Compute Engine operation, created from a response's ``name`` field."""

    def __init__(self, compute, name: str):
        super().__init__(parent=compute,
                         base_url='/global/operations',
                         id=name,
                         methods=('delete', 'exists', 'get', 'get_metadata'))
        self.compute = compute
        self.name = name

    def wait(self, timeout: Optional[float] = None, poll_interval: Optional[float] = None) -> Dict[str, Any]:
        """
        Poll the operation until its status is DONE.

        Args:
            timeout: Seconds to wait before giving up, forever if None
            poll_interval: Seconds between polls, uses the Compute config if None

        Returns:
            The final operation metadata

        Raises:
            OperationError: If the operation finished with an error
            TimeoutError: If the timeout elapses first
        """
        if poll_interval is None:
            poll_interval = self.compute.config.operation_poll_interval
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            metadata = self.get_metadata()
            if metadata.get('status') == 'DONE':
                error = metadata.get('error')
                if error:
                    errors = error.get('errors', error) if isinstance(error, dict) else error
                    logger.error(f'Operation {self.name} failed: {errors}')
                    raise OperationError(self.name, errors, metadata)
                return metadata

            if deadline is not None and time.monotonic() + poll_interval > deadline:
                raise TimeoutError(f'Operation {self.name} not done after {timeout} seconds')

            logger.debug(f"Operation {self.name} is {metadata.get('status')}, polling again in {poll_interval}s")
            time.sleep(poll_interval)
