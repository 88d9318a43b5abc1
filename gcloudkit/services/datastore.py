"""
Cloud Datastore client.
"""

from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

from ..models.core import Key
from ..utils.config import DatastoreConfig
from ..utils.connection import Connection
from ..utils.logging_config import get_logger
from .datastore_request import DatastoreRequest
from .query import Query
from .transaction import Transaction

logger = get_logger(__name__)

API_VERSION = 'v1'


class Datastore(DatastoreRequest):
    """Cloud Datastore client sending every operation directly (non-transactionally)."""

    def __init__(self, config: Optional[DatastoreConfig] = None, connection: Optional[Connection] = None):
        """
        Initialize the Datastore client.

        Args:
            config: DatastoreConfig instance, uses default if None
            connection: Shared transport, a default Connection is created if None

        Raises:
            ValueError: If no project id is configured
        """
        if config is None:
            from ..utils.config import config as default_config
            config = default_config.datastore

        if not config.project_id:
            raise ValueError('A project id is required; set DATASTORE_PROJECT_ID or GCLOUD_PROJECT.')

        self.config = config
        self.project_id = config.project_id
        self.namespace = config.namespace
        self.api_endpoint = config.api_endpoint
        self.connection = connection or Connection()

        logger.info(f'Initialized Datastore client for project {self.project_id} at {self.api_endpoint}')

    def request(self, proto_opts: Dict[str, str], req_opts: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a Datastore RPC over the JSON API.

        Args:
            proto_opts: ``{'service': 'Datastore', 'method': ...}``
            req_opts: Request body

        Returns:
            Decoded response body

        Raises:
            ApiError: If the request fails
        """
        method = proto_opts['method']
        url = f'{self.api_endpoint}/{API_VERSION}/projects/{self.project_id}:{method}'

        # A transactional commit is rejected if resent; a non-transactional one could apply twice
        idempotent = method != 'commit' or req_opts.get('mode') == 'TRANSACTIONAL'

        logger.debug(f"Datastore {method} request for project {self.project_id}")
        return self.connection.make_request('POST', url, json=req_opts, idempotent=idempotent)

    def key(self, path: Union[str, Sequence[Any]], namespace: Optional[str] = None) -> Key:
        """Build a Key in the given namespace, or the client's default one."""
        return Key(path, namespace=namespace or self.namespace)

    def create_query(self, kinds=None, namespace: Optional[str] = None) -> Query:
        """Create a query bound to this client."""
        return Query(kinds, namespace=namespace or self.namespace, scope=self)

    def transaction(self) -> Transaction:
        """Create a transaction; it begins when used as a context manager or on ``begin()``."""
        return Transaction(self)

    def run_in_transaction(self, fn: Callable[[Transaction], Any]) -> Tuple[Any, Optional[Dict[str, Any]]]:
        """
        Run ``fn`` inside a new transaction and commit its queued mutations.

        The transaction is rolled back, and the exception re-raised, if ``fn``
        raises.

        Args:
            fn: Callable receiving the Transaction

        Returns:
            Tuple of (fn_result, commit_response)
        """
        transaction = self.transaction()
        transaction.begin()

        try:
            result = fn(transaction)
        except Exception as e:
            logger.warning(f'Rolling back transaction {transaction.id} after error: {e}')
            transaction.rollback()
            raise

        return result, transaction.commit()
