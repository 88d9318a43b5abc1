"""
Conversion between domain objects and the Datastore v1 JSON wire format.
"""

import base64
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.core import Entity, GeoPoint, Key
from ..utils.timestamp_utils import from_rfc3339, to_rfc3339

OPERATORS = {
    '=': 'EQUAL',
    '<': 'LESS_THAN',
    '<=': 'LESS_THAN_OR_EQUAL',
    '>': 'GREATER_THAN',
    '>=': 'GREATER_THAN_OR_EQUAL',
    'HAS_ANCESTOR': 'HAS_ANCESTOR',
}

SORT_DIRECTIONS = {
    '+': 'ASCENDING',
    '-': 'DESCENDING',
}


def is_key_complete(key: Key) -> bool:
    """Check if a key's last path element has an id or a name."""
    last_element = key_to_key_proto(key)['path'][-1]
    return 'id' in last_element or 'name' in last_element


def key_to_key_proto(key: Key) -> Dict[str, Any]:
    """Convert a Key into its wire representation.

    Args:
        key: Key to convert

    Returns:
        Key payload with partitionId and path

    Raises:
        ValueError: If the key has no kind or an ancestor is incomplete
    """
    key_path = key.path
    if not key_path or not isinstance(key_path[0], str):
        raise ValueError('A key should contain at least a kind.')

    path = []
    for index in range(0, len(key_path), 2):
        element: Dict[str, Any] = {'kind': key_path[index]}
        identifier = key_path[index + 1] if index + 1 < len(key_path) else None

        if isinstance(identifier, int) and not isinstance(identifier, bool):
            element['id'] = str(identifier)
        elif isinstance(identifier, str):
            element['name'] = identifier
        elif identifier is not None:
            raise ValueError(f'Unsupported key identifier: {identifier!r}')

        path.append(element)

    for element in path[:-1]:
        if 'id' not in element and 'name' not in element:
            raise ValueError('Ancestor keys require an id or name.')

    key_proto: Dict[str, Any] = {'path': path}
    if key.namespace:
        key_proto['partitionId'] = {'namespaceId': key.namespace}
    return key_proto


def key_from_key_proto(key_proto: Dict[str, Any]) -> Key:
    """Convert a key payload back into a Key."""
    namespace = (key_proto.get('partitionId') or {}).get('namespaceId') or None

    path: List[Any] = []
    for element in key_proto.get('path', []):
        path.append(element['kind'])
        if element.get('id') is not None:
            path.append(int(element['id']))
        elif element.get('name') is not None:
            path.append(element['name'])

    return Key(path, namespace=namespace)


def encode_value(value: Any) -> Dict[str, Any]:
    """Convert a Python value into a Datastore value payload.

    Raises:
        ValueError: If the value type has no Datastore representation
    """
    if value is None:
        return {'nullValue': 'NULL_VALUE'}

    # bool is an int subclass, check it first
    if isinstance(value, bool):
        return {'booleanValue': value}

    if isinstance(value, int):
        return {'integerValue': str(value)}

    if isinstance(value, float):
        return {'doubleValue': value}

    if isinstance(value, datetime):
        return {'timestampValue': to_rfc3339(value)}

    if isinstance(value, Key):
        return {'keyValue': key_to_key_proto(value)}

    if isinstance(value, str):
        return {'stringValue': value}

    if isinstance(value, (bytes, bytearray)):
        return {'blobValue': base64.b64encode(bytes(value)).decode('ascii')}

    if isinstance(value, GeoPoint):
        return {'geoPointValue': {'latitude': value.latitude, 'longitude': value.longitude}}

    if isinstance(value, (list, tuple)):
        return {'arrayValue': {'values': [encode_value(item) for item in value]}}

    if isinstance(value, dict):
        return {'entityValue': entity_to_entity_proto(value)}

    raise ValueError(f'Unsupported field value, {value!r}, of type {type(value).__name__}.')


def decode_value(value_proto: Dict[str, Any]) -> Any:
    """Convert a Datastore value payload into a Python value."""
    if 'nullValue' in value_proto:
        return None

    if 'booleanValue' in value_proto:
        return bool(value_proto['booleanValue'])

    if 'integerValue' in value_proto:
        return int(value_proto['integerValue'])

    if 'doubleValue' in value_proto:
        return float(value_proto['doubleValue'])

    if 'timestampValue' in value_proto:
        return from_rfc3339(value_proto['timestampValue'])

    if 'keyValue' in value_proto:
        return key_from_key_proto(value_proto['keyValue'])

    if 'stringValue' in value_proto:
        return value_proto['stringValue']

    if 'blobValue' in value_proto:
        return base64.b64decode(value_proto['blobValue'])

    if 'geoPointValue' in value_proto:
        point = value_proto['geoPointValue']
        return GeoPoint(latitude=point.get('latitude', 0.0), longitude=point.get('longitude', 0.0))

    if 'arrayValue' in value_proto:
        return [decode_value(item) for item in value_proto['arrayValue'].get('values', [])]

    if 'entityValue' in value_proto:
        return entity_from_entity_proto(value_proto['entityValue'])

    # An empty array comes back without any value field
    return None


def entity_to_entity_proto(data: Dict[str, Any]) -> Dict[str, Any]:
    """Encode a mapping of property values into an entity payload."""
    return {'properties': {name: encode_value(value) for name, value in data.items()}}


def entity_from_entity_proto(entity_proto: Dict[str, Any]) -> Dict[str, Any]:
    """Decode an entity payload's properties into a plain mapping."""
    properties = entity_proto.get('properties') or {}
    return {name: decode_value(value) for name, value in properties.items()}


def format_array(results: Optional[List[Dict[str, Any]]]) -> List[Entity]:
    """Convert ``entityResults`` (or lookup ``found``) payloads into Entity objects."""
    entities = []
    for result in results or []:
        entity_proto = result['entity']
        entities.append(Entity(key=key_from_key_proto(entity_proto['key']), data=entity_from_entity_proto(entity_proto)))
    return entities


def query_to_query_proto(query) -> Dict[str, Any]:
    """Convert a Query into a runQuery ``query`` payload.

    Raises:
        ValueError: If a filter uses an unknown operator
    """
    query_proto: Dict[str, Any] = {
        'kind': [{'name': kind} for kind in query.kinds],
    }

    if query.filters:
        filters = []
        for query_filter in query.filters:
            operator = OPERATORS.get(query_filter['op'])
            if operator is None:
                raise ValueError(f"Unsupported filter operator: {query_filter['op']}")

            value = query_filter['val']
            if query_filter['name'] == '__key__' and not isinstance(value, Key):
                raise ValueError('Filters on __key__ require a Key value.')

            filters.append({
                'propertyFilter': {
                    'property': {
                        'name': query_filter['name']
                    },
                    'op': operator,
                    'value': encode_value(value)
                }
            })

        query_proto['filter'] = {'compositeFilter': {'op': 'AND', 'filters': filters}}

    if query.orders:
        query_proto['order'] = [{
            'property': {
                'name': order['name']
            },
            'direction': SORT_DIRECTIONS[order['sign']]
        } for order in query.orders]

    if query.select_val:
        query_proto['projection'] = [{'property': {'name': name}} for name in query.select_val]

    if query.group_by_val:
        query_proto['distinctOn'] = [{'name': name} for name in query.group_by_val]

    if query.start_val:
        query_proto['startCursor'] = query.start_val

    if query.end_val:
        query_proto['endCursor'] = query.end_val

    if query.offset_val is not None and query.offset_val > 0:
        query_proto['offset'] = query.offset_val

    if query.limit_val is not None and query.limit_val >= 0:
        query_proto['limit'] = query.limit_val

    return query_proto
