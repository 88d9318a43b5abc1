"""
Request logic shared by the Datastore client and transactions.

Every operation here shapes a Datastore v1 payload and hands it to the host's
``request`` method. The host decides the mode: a Datastore client sends
mutations right away, while a Transaction that has an ``id`` queues them until
it commits.
"""

import copy
import dataclasses
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..models.core import Entity, Key
from ..utils.logging_config import get_logger
from . import entity
from .query import Query

logger = get_logger(__name__)

SAVE_METHODS = ('insert', 'update', 'upsert')

ALLOCATE_IDS = {'service': 'Datastore', 'method': 'allocateIds'}
COMMIT = {'service': 'Datastore', 'method': 'commit'}
LOOKUP = {'service': 'Datastore', 'method': 'lookup'}
RUN_QUERY = {'service': 'Datastore', 'method': 'runQuery'}


def _arrify(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _entity_fields(entity_object: Any) -> Tuple[Key, Any, Optional[str]]:
    if isinstance(entity_object, Mapping):
        return entity_object.get('key'), entity_object.get('data'), entity_object.get('method')
    return entity_object.key, entity_object.data, getattr(entity_object, 'method', None)


def _with_method(entity_object: Any, method: str) -> Any:
    # Shallow copy: the caller's Key stays shared so generated ids reach it
    if isinstance(entity_object, Mapping):
        return {**entity_object, 'method': method}
    if dataclasses.is_dataclass(entity_object):
        return dataclasses.replace(entity_object, method=method)
    copied = copy.copy(entity_object)
    copied.method = method
    return copied


def _encode_property_list(data: List[Dict[str, Any]]) -> Dict[str, Any]:
    properties = {}
    for prop in data:
        value = entity.encode_value(prop.get('value'))
        excluded = prop.get('excludeFromIndexes')

        if isinstance(excluded, bool):
            if 'arrayValue' in value:
                for element in value['arrayValue'].get('values', []):
                    element['excludeFromIndexes'] = excluded
            else:
                value['excludeFromIndexes'] = excluded

        properties[prop['name']] = value
    return properties


def _complete_key_proto(key: Key) -> Dict[str, Any]:
    key_proto = entity.key_to_key_proto(key)
    last_element = key_proto['path'][-1]
    if 'id' not in last_element and 'name' not in last_element:
        raise ValueError(f'A complete key is required, got {key!r}.')
    return key_proto


class DatastoreRequest(ABC):
    """Datastore operations shared by the client and transactions.

    Hosts provide ``request(proto_opts, req_opts)``. Transactions also provide
    ``id``, ``requests`` and ``request_callbacks``.
    """

    id: Optional[str] = None

    @abstractmethod
    def request(self, proto_opts: Dict[str, str], req_opts: Dict[str, Any]) -> Dict[str, Any]:
        """Send one Datastore RPC and return the decoded response."""

    def allocate_ids(self, incomplete_key: Key, n: int) -> Tuple[List[Key], Dict[str, Any]]:
        """
        Ask the service to assign ids for ``n`` copies of an incomplete key.

        Args:
            incomplete_key: Key whose last path element has no id or name
            n: Number of ids to allocate

        Returns:
            Tuple of (keys, api_response), keys in request order

        Raises:
            ValueError: If the key is already complete
        """
        if entity.is_key_complete(incomplete_key):
            raise ValueError('An incomplete key should be provided.')

        incomplete_keys = [entity.key_to_key_proto(incomplete_key) for _ in range(n)]

        resp = self._request(ALLOCATE_IDS, {'keys': incomplete_keys})
        keys = [entity.key_from_key_proto(key_proto) for key_proto in resp.get('keys') or []]

        logger.debug(f'Allocated {len(keys)} ids for kind {incomplete_key.kind}')
        return keys, resp

    def delete(self, keys) -> Optional[Dict[str, Any]]:
        """
        Delete one or more entities by key.

        Args:
            keys: A Key or a list of Keys

        Returns:
            The commit response, or None when queued in a transaction
        """
        req_opts = {'mutations': [{'delete': _complete_key_proto(key)} for key in _arrify(keys)]}

        if self.id:
            self.requests.append(req_opts)
            self.request_callbacks.append(None)
            return None

        return self._request(COMMIT, req_opts)

    def get(self, keys):
        """
        Retrieve entities by key.

        Args:
            keys: A Key or a list of Keys

        Returns:
            The Entity (or None) for a single Key, otherwise a list of found Entities

        Raises:
            ValueError: If no keys are given
        """
        results = list(self.get_stream(keys))
        if isinstance(keys, (list, tuple)):
            return results
        return results[0] if results else None

    def get_stream(self, keys) -> Iterator[Entity]:
        """
        Iterate over found entities, following deferred keys until none remain.

        Raises:
            ValueError: If no keys are given
        """
        key_protos = [_complete_key_proto(key) for key in _arrify(keys)]
        if not key_protos:
            raise ValueError('At least one Key object is required.')

        return self._lookup(key_protos)

    def _lookup(self, key_protos: List[Dict[str, Any]]) -> Iterator[Entity]:
        while key_protos:
            resp = self._request(LOOKUP, {'keys': key_protos})
            for found in entity.format_array(resp.get('found')):
                yield found

            key_protos = resp.get('deferred') or []
            if key_protos:
                logger.debug(f'Lookup deferred {len(key_protos)} keys, requesting again')

    def insert(self, entities) -> Optional[Dict[str, Any]]:
        """Save entities, failing remotely if any already exist."""
        return self.save([_with_method(e, 'insert') for e in _arrify(entities)])

    def update(self, entities) -> Optional[Dict[str, Any]]:
        """Save entities, failing remotely if any do not exist yet."""
        return self.save([_with_method(e, 'update') for e in _arrify(entities)])

    def upsert(self, entities) -> Optional[Dict[str, Any]]:
        """Save entities, inserting or overwriting."""
        return self.save([_with_method(e, 'upsert') for e in _arrify(entities)])

    def save(self, entities) -> Optional[Dict[str, Any]]:
        """
        Insert or update entities in one commit.

        Entities with incomplete keys get their generated id written back onto
        the Key object they were saved with once the commit succeeds.

        Args:
            entities: An Entity (or mapping with key, data and method) or a list of them

        Returns:
            The commit response, or None when queued in a transaction

        Raises:
            ValueError: If an entity names a method other than insert, update or upsert
        """
        entities = _arrify(entities)
        insert_indexes = set()
        mutations = []

        for index, entity_object in enumerate(entities):
            entity_object = copy.deepcopy(entity_object)
            key, data, method = _entity_fields(entity_object)

            method = method or 'upsert'
            if method not in SAVE_METHODS:
                raise ValueError(f'Method {method} not recognized.')

            if not entity.is_key_complete(key):
                insert_indexes.add(index)

            if isinstance(data, list):
                entity_proto = {'properties': _encode_property_list(data)}
            else:
                entity_proto = entity.entity_to_entity_proto(data or {})

            entity_proto['key'] = entity.key_to_key_proto(key)
            mutations.append({method: entity_proto})

        req_opts = {'mutations': mutations}

        def on_commit(resp: Dict[str, Any]) -> Dict[str, Any]:
            for index, result in enumerate(resp.get('mutationResults') or []):
                if not result.get('key') or index not in insert_indexes:
                    continue
                key, _, _ = _entity_fields(entities[index])
                key.id = entity.key_from_key_proto(result['key']).id
            return resp

        if self.id:
            self.requests.append(req_opts)
            self.request_callbacks.append(on_commit)
            return None

        return on_commit(self._request(COMMIT, req_opts))

    def run_query(self, query: Query) -> Tuple[List[Entity], Optional[Query], Dict[str, Any]]:
        """
        Run a query, fetching again while the service reports NOT_FINISHED.

        Args:
            query: Query to run; it is never modified

        Returns:
            Tuple of (entities, next_query, last_api_response). ``next_query``
            resumes after the delivered results with the original limit, or is
            None when the service has no more results.
        """
        req_opts: Dict[str, Any] = {'readOptions': {}, 'query': entity.query_to_query_proto(query)}
        if query.namespace:
            req_opts['partitionId'] = {'namespaceId': query.namespace}

        original_limit = query.limit_val
        current = query
        entities: List[Entity] = []

        while True:
            resp = self._request(RUN_QUERY, req_opts)
            batch = resp.get('batch') or {}
            results = batch.get('entityResults') or []
            entities.extend(entity.format_array(results))

            more_results = batch.get('moreResults')
            not_finished = more_results == 'NOT_FINISHED'

            next_query = None
            if not_finished or more_results == 'MORE_RESULTS_AFTER_LIMIT':
                next_query = self._continuation(current, batch)

            if not not_finished:
                break

            if current.limit_val is not None:
                next_query.limit(max(current.limit_val - len(results), 0))

            logger.debug(f'Query batch not finished after {len(entities)} results, requesting again')
            current = next_query
            req_opts['query'] = entity.query_to_query_proto(current)

        if next_query is not None and original_limit is not None:
            next_query.limit(original_limit)

        return entities, next_query, resp

    def run_query_stream(self, query: Query) -> Iterator[Entity]:
        """
        Lazily iterate over all results of a query, one page at a time.

        Stops after the query's limit has been reached, when one is set.
        """
        entity.query_to_query_proto(query)
        return self._paginate(query)

    def _paginate(self, query: Optional[Query]) -> Iterator[Entity]:
        remaining = query.limit_val

        while query is not None:
            entities, query, _ = self.run_query(query)
            for result in entities:
                if remaining is not None:
                    if remaining <= 0:
                        return
                    remaining -= 1
                yield result

            if remaining is not None and remaining <= 0:
                return

    def _continuation(self, query: Query, batch: Dict[str, Any]) -> Query:
        offset = query.offset_val or 0
        next_offset = offset - int(batch.get('skippedResults') or 0)
        if next_offset < 0:
            logger.debug(f'Clamping negative continuation offset {next_offset} to 0')
            next_offset = 0

        next_query = query.clone()
        next_query.start(batch.get('endCursor')).offset(next_offset)
        return next_query

    def _request(self, proto_opts: Dict[str, str], req_opts: Dict[str, Any]) -> Dict[str, Any]:
        is_transaction = self.id is not None
        method = proto_opts['method']

        if method == 'commit':
            if is_transaction:
                req_opts['mode'] = 'TRANSACTIONAL'
                req_opts['transaction'] = self.id
            else:
                req_opts['mode'] = 'NON_TRANSACTIONAL'

        if method == 'rollback':
            req_opts['transaction'] = self.id

        if is_transaction and method in ('lookup', 'runQuery'):
            req_opts.setdefault('readOptions', {})['transaction'] = self.id

        return self.request(proto_opts, req_opts)
