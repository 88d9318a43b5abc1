"""
Core data models for Datastore keys and entities.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

PathId = Union[int, str, None]


class Key:
    """Identifies an entity by namespace and a path of kind/identifier pairs.

    The path is flat: ``['Company', 'Google', 'Employee', 5]``. A key whose
    last kind has no identifier is incomplete; the server assigns one when an
    entity is inserted with it. The identifier can be set in place with
    ``key.id = ...``, which is how saved entities pick up generated ids.
    """

    def __init__(self, path: Union[str, Sequence[PathId]], namespace: Optional[str] = None):
        if isinstance(path, str):
            path = [path]
        self.path: List[PathId] = list(path)
        self.namespace = namespace

    @property
    def kind(self) -> Optional[str]:
        if not self.path:
            return None
        if len(self.path) % 2 == 1:
            return self.path[-1]
        return self.path[-2]

    @property
    def id(self) -> Optional[int]:
        identifier = self._identifier()
        if isinstance(identifier, int) and not isinstance(identifier, bool):
            return identifier
        return None

    @id.setter
    def id(self, value: Optional[int]) -> None:
        self._set_identifier(value)

    @property
    def name(self) -> Optional[str]:
        identifier = self._identifier()
        return identifier if isinstance(identifier, str) else None

    @name.setter
    def name(self, value: Optional[str]) -> None:
        self._set_identifier(value)

    @property
    def is_complete(self) -> bool:
        return self._identifier() is not None

    @property
    def parent(self) -> Optional['Key']:
        end = len(self.path) - 1 if len(self.path) % 2 == 1 else len(self.path) - 2
        if end <= 0:
            return None
        return Key(self.path[:end], namespace=self.namespace)

    def _identifier(self) -> PathId:
        if not self.path or len(self.path) % 2 == 1:
            return None
        return self.path[-1]

    def _set_identifier(self, value: PathId) -> None:
        if len(self.path) % 2 == 1:
            self.path.append(value)
        else:
            self.path[-1] = value

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return self.namespace == other.namespace and self.path == other.path

    # The path changes in place when an id is assigned
    __hash__ = None

    def __repr__(self) -> str:
        if self.namespace:
            return f'Key({self.path!r}, namespace={self.namespace!r})'
        return f'Key({self.path!r})'


@dataclass
class GeoPoint:
    """A latitude/longitude pair."""
    latitude: float
    longitude: float


@dataclass
class Entity:
    """A stored record: its key and property data.

    ``data`` is either a mapping of property names to values, or an explicit
    list of ``{'name', 'value', 'excludeFromIndexes'}`` entries when some
    properties must stay out of the indexes. ``method`` optionally forces the
    save mutation (insert, update or upsert).
    """
    key: Key
    data: Union[Dict[str, Any], List[Dict[str, Any]]] = field(default_factory=dict)
    method: Optional[str] = None
