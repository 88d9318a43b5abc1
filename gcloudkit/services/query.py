"""
Query builder for Datastore.
"""

import copy
from typing import Any, Dict, List, Optional, Sequence, Union

from ..models.core import Key

FILTER_OPERATORS = ('=', '<', '<=', '>', '>=', 'HAS_ANCESTOR')

_MISSING = object()


class Query:
    """Declarative description of a read, run through a Datastore or Transaction.

    Builder methods return the query so calls can be chained::

        query = datastore.create_query('Task').filter('done', '=', False).limit(10)
        tasks, next_query, _ = query.run()
    """

    def __init__(self,
                 kinds: Optional[Union[str, Sequence[str]]] = None,
                 namespace: Optional[str] = None,
                 scope: Any = None):
        if isinstance(kinds, str):
            kinds = [kinds]
        self.kinds: List[str] = list(kinds or [])
        self.namespace = namespace
        self.scope = scope

        self.filters: List[Dict[str, Any]] = []
        self.orders: List[Dict[str, str]] = []
        self.group_by_val: List[str] = []
        self.select_val: List[str] = []
        self.start_val: Optional[str] = None
        self.end_val: Optional[str] = None
        self.limit_val: Optional[int] = None
        self.offset_val: Optional[int] = None

    def filter(self, property: str, operator: Any, value: Any = _MISSING) -> 'Query':
        """Add a property filter; ``filter('done', False)`` means equality."""
        if value is _MISSING:
            operator, value = '=', operator

        operator = str(operator).strip()
        if operator not in FILTER_OPERATORS:
            raise ValueError(f'Unsupported filter operator: {operator}')

        self.filters.append({'name': property.strip(), 'op': operator, 'val': value})
        return self

    def has_ancestor(self, key: Key) -> 'Query':
        self.filters.append({'name': '__key__', 'op': 'HAS_ANCESTOR', 'val': key})
        return self

    def order(self, property: str, descending: bool = False) -> 'Query':
        """Sort by a property; a leading ``-`` also requests descending order."""
        if property.startswith('-'):
            property = property[1:]
            descending = True
        self.orders.append({'name': property, 'sign': '-' if descending else '+'})
        return self

    def group_by(self, fields: Union[str, Sequence[str]]) -> 'Query':
        self.group_by_val = [fields] if isinstance(fields, str) else list(fields)
        return self

    def select(self, fields: Union[str, Sequence[str]]) -> 'Query':
        self.select_val = [fields] if isinstance(fields, str) else list(fields)
        return self

    def start(self, cursor: Optional[str]) -> 'Query':
        self.start_val = cursor
        return self

    def end(self, cursor: Optional[str]) -> 'Query':
        self.end_val = cursor
        return self

    def limit(self, n: Optional[int]) -> 'Query':
        self.limit_val = n
        return self

    def offset(self, n: Optional[int]) -> 'Query':
        self.offset_val = n
        return self

    def clone(self) -> 'Query':
        """Deep copy of the query that still runs against the same scope."""
        scope = self.scope
        self.scope = None
        try:
            cloned = copy.deepcopy(self)
        finally:
            self.scope = scope
        cloned.scope = scope
        return cloned

    def run(self):
        """Run the query once. See DatastoreRequest.run_query."""
        return self._require_scope().run_query(self)

    def run_stream(self):
        """Lazily iterate every result page. See DatastoreRequest.run_query_stream."""
        return self._require_scope().run_query_stream(self)

    def _require_scope(self):
        if self.scope is None:
            raise ValueError('Query is not bound to a Datastore or Transaction; create it with create_query().')
        return self.scope

    def __repr__(self) -> str:
        return f'Query(kinds={self.kinds!r}, namespace={self.namespace!r})'
