"""
Datastore transactions: queue mutations locally and commit them atomically.
"""

from typing import Any, Dict, List, Optional

from ..utils.logging_config import get_logger
from .datastore_request import DatastoreRequest
from .query import Query

logger = get_logger(__name__)


class Transaction(DatastoreRequest):
    """A transaction context bound to a Datastore client.

    Once ``begin()`` has assigned an id, ``save``/``delete`` (and their
    insert/update/upsert variants) queue their payloads instead of sending
    them, and reads run inside the transaction. ``commit()`` sends everything
    queued as a single transactional commit.

    Can be used as a context manager::

        with datastore.transaction() as transaction:
            task = transaction.get(key)
            task.data['done'] = True
            transaction.save(task)
    """

    def __init__(self, datastore):
        """
        Initialize a transaction.

        Args:
            datastore: Datastore client used to send requests
        """
        self.datastore = datastore
        self.project_id = datastore.project_id
        self.namespace = datastore.namespace
        self.id: Optional[str] = None
        self.requests: List[Dict[str, Any]] = []
        self.request_callbacks: List[Any] = []
        self.skip_commit = False

    def request(self, proto_opts: Dict[str, str], req_opts: Dict[str, Any]) -> Dict[str, Any]:
        return self.datastore.request(proto_opts, req_opts)

    def create_query(self, kinds=None, namespace: Optional[str] = None):
        """Create a query that reads inside this transaction."""
        return Query(kinds, namespace=namespace or self.namespace, scope=self)

    def begin(self) -> Dict[str, Any]:
        """
        Start the transaction and record its id.

        Returns:
            The beginTransaction response
        """
        resp = self._request({'service': 'Datastore', 'method': 'beginTransaction'}, {})
        self.id = resp['transaction']
        logger.debug(f'Began transaction {self.id}')
        return resp

    def commit(self) -> Optional[Dict[str, Any]]:
        """
        Send all queued mutations as one transactional commit.

        Each queued save receives the mutation results for its own mutations,
        so generated ids reach the keys they were saved with.

        Returns:
            The commit response, or None if the transaction was rolled back
        """
        if self.skip_commit:
            logger.debug(f'Transaction {self.id} was rolled back, skipping commit')
            return None

        mutations = [mutation for req_opts in self.requests for mutation in req_opts['mutations']]
        resp = self._request({'service': 'Datastore', 'method': 'commit'}, {'mutations': mutations})

        mutation_results = resp.get('mutationResults') or []
        offset = 0
        for req_opts, callback in zip(self.requests, self.request_callbacks):
            count = len(req_opts['mutations'])
            if callback is not None:
                callback(dict(resp, mutationResults=mutation_results[offset:offset + count]))
            offset += count

        logger.debug(f'Committed transaction {self.id} with {len(mutations)} mutations')
        self.requests = []
        self.request_callbacks = []
        return resp

    def rollback(self) -> Dict[str, Any]:
        """
        Roll the transaction back. A later ``commit()`` does nothing.

        Returns:
            The rollback response
        """
        self.skip_commit = True
        resp = self._request({'service': 'Datastore', 'method': 'rollback'}, {})
        logger.debug(f'Rolled back transaction {self.id}')
        self.requests = []
        self.request_callbacks = []
        return resp

    def __enter__(self) -> 'Transaction':
        self.begin()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        if exc_type is not None:
            logger.warning(f'Rolling back transaction {self.id} after {exc_type.__name__}: {exc_value}')
            self.rollback()
            return False

        self.commit()
        return False
