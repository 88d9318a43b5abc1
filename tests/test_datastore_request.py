"""Tests for Datastore request shaping, id write-back and query pagination."""

from types import SimpleNamespace

import pytest

from gcloudkit.models.core import Entity, Key
from gcloudkit.services.datastore_request import DatastoreRequest
from gcloudkit.utils.connection import ApiError
from tests.conftest import DATASTORE_ENDPOINT, entity_result, query_batch

# --- allocate_ids ---


def test_allocate_ids_requests_n_copies_and_returns_keys_in_order(datastore, connection) -> None:
    connection.queue({'keys': [{'path': [{'kind': 'Task', 'id': str(i)}]} for i in (11, 12, 13)]})

    keys, resp = datastore.allocate_ids(Key('Task'), 3)

    call = connection.calls[0]
    assert call['method'] == 'POST'
    assert call['url'] == f'{DATASTORE_ENDPOINT}/v1/projects/test-project:allocateIds'
    assert call['json'] == {'keys': [{'path': [{'kind': 'Task'}]}] * 3}
    assert [key.id for key in keys] == [11, 12, 13]
    assert 'keys' in resp


def test_allocate_ids_with_zero_count_sends_no_keys(datastore, connection) -> None:
    keys, _ = datastore.allocate_ids(Key('Task'), 0)

    assert connection.bodies == [{'keys': []}]
    assert keys == []


def test_allocate_ids_rejects_complete_key_before_sending(datastore, connection) -> None:
    with pytest.raises(ValueError, match='incomplete key'):
        datastore.allocate_ids(Key(['Task', 1]), 2)

    assert connection.calls == []


# --- delete ---


def test_delete_sends_non_transactional_commit(datastore, connection) -> None:
    connection.queue({'mutationResults': [{}, {}]})

    resp = datastore.delete([Key(['Task', 1]), Key(['Task', 'two'])])

    call = connection.calls[0]
    assert call['url'].endswith(':commit')
    assert call['json'] == {
        'mutations': [{
            'delete': {
                'path': [{
                    'kind': 'Task',
                    'id': '1'
                }]
            }
        }, {
            'delete': {
                'path': [{
                    'kind': 'Task',
                    'name': 'two'
                }]
            }
        }],
        'mode': 'NON_TRANSACTIONAL',
    }
    assert resp == {'mutationResults': [{}, {}]}


def test_delete_rejects_incomplete_key(datastore, connection) -> None:
    with pytest.raises(ValueError, match='complete key'):
        datastore.delete(Key('Task'))

    assert connection.calls == []


def test_non_transactional_commit_is_marked_non_idempotent(datastore, connection) -> None:
    connection.queue({'found': []}, {'mutationResults': [{}]})

    datastore.get([Key(['Task', 1])])
    datastore.delete(Key(['Task', 1]))

    assert [call['idempotent'] for call in connection.calls] == [True, False]


def test_datastore_request_requires_a_request_method() -> None:

    class NoTransport(DatastoreRequest):
        pass

    with pytest.raises(TypeError):
        NoTransport()


# --- get ---


def test_get_single_key_returns_entity(datastore, connection) -> None:
    connection.queue({'found': [entity_result(1, description='Buy milk')]})

    task = datastore.get(Key(['Task', 1]))

    assert connection.calls[0]['url'].endswith(':lookup')
    assert connection.bodies[0] == {'keys': [{'path': [{'kind': 'Task', 'id': '1'}]}]}
    assert task.key == Key(['Task', 1])
    assert task.data == {'description': 'Buy milk'}


def test_get_single_missing_key_returns_none(datastore, connection) -> None:
    connection.queue({'missing': [{'entity': {'key': {'path': [{'kind': 'Task', 'id': '1'}]}}}]})

    assert datastore.get(Key(['Task', 1])) is None


def test_get_follows_deferred_keys(datastore, connection) -> None:
    deferred = [{'path': [{'kind': 'Task', 'id': '2'}]}]
    connection.queue({'found': [entity_result(1)], 'deferred': deferred}, {'found': [entity_result(2)]})

    tasks = datastore.get([Key(['Task', 1]), Key(['Task', 2])])

    assert [task.key.id for task in tasks] == [1, 2]
    assert connection.bodies[1] == {'keys': deferred}


def test_get_with_no_keys_fails_immediately(datastore, connection) -> None:
    with pytest.raises(ValueError, match='At least one Key'):
        datastore.get([])

    with pytest.raises(ValueError, match='At least one Key'):
        datastore.get_stream([])

    assert connection.calls == []


def test_get_stream_is_lazy(datastore, connection) -> None:
    connection.queue({'found': [entity_result(1)]})

    stream = datastore.get_stream([Key(['Task', 1])])
    assert connection.calls == []

    assert [task.key.id for task in stream] == [1]
    assert len(connection.calls) == 1


def test_get_propagates_api_errors(datastore, connection) -> None:
    error = ApiError('Permission denied', code=403)
    connection.queue(error)

    with pytest.raises(ApiError) as excinfo:
        datastore.get(Key(['Task', 1]))

    assert excinfo.value is error


# --- save ---


def test_save_writes_generated_ids_back_to_incomplete_keys(datastore, connection) -> None:
    new_key = Key('Task')
    existing_key = Key(['Task', 7])
    connection.queue({
        'mutationResults': [
            {
                'key': {
                    'path': [{
                        'kind': 'Task',
                        'id': '4242'
                    }]
                }
            },
            {
                'key': {
                    'path': [{
                        'kind': 'Task',
                        'id': '7'
                    }]
                }
            },
        ]
    })

    datastore.save([Entity(key=new_key, data={'done': False}), {'key': existing_key, 'data': {'done': True}}])

    assert new_key.id == 4242
    assert new_key.path == ['Task', 4242]
    assert existing_key.path == ['Task', 7]
    assert connection.bodies[0] == {
        'mutations': [
            {
                'upsert': {
                    'key': {
                        'path': [{
                            'kind': 'Task'
                        }]
                    },
                    'properties': {
                        'done': {
                            'booleanValue': False
                        }
                    }
                }
            },
            {
                'upsert': {
                    'key': {
                        'path': [{
                            'kind': 'Task',
                            'id': '7'
                        }]
                    },
                    'properties': {
                        'done': {
                            'booleanValue': True
                        }
                    }
                }
            },
        ],
        'mode': 'NON_TRANSACTIONAL',
    }


def test_save_uses_explicit_method(datastore, connection) -> None:
    datastore.save(Entity(key=Key(['Task', 1]), data={}, method='insert'))

    assert list(connection.bodies[0]['mutations'][0]) == ['insert']


def test_save_rejects_unknown_method_before_sending(datastore, connection) -> None:
    with pytest.raises(ValueError, match='Method replace not recognized'):
        datastore.save({'key': Key(['Task', 1]), 'data': {}, 'method': 'replace'})

    assert connection.calls == []


def test_save_does_not_mutate_caller_data(datastore, connection) -> None:
    data = [{'name': 'tags', 'value': ['a', 'b'], 'excludeFromIndexes': True}]
    entity_object = {'key': Key(['Task', 1]), 'data': data}

    datastore.save(entity_object)

    assert data == [{'name': 'tags', 'value': ['a', 'b'], 'excludeFromIndexes': True}]
    assert entity_object['key'] == Key(['Task', 1])


def test_save_explicit_property_list_excludes_array_elements(datastore, connection) -> None:
    datastore.save(
        Entity(key=Key(['Task', 1]),
               data=[
                   {
                       'name': 'tags',
                       'value': ['a', 'b'],
                       'excludeFromIndexes': True
                   },
                   {
                       'name': 'description',
                       'value': 'long text',
                       'excludeFromIndexes': True
                   },
                   {
                       'name': 'priority',
                       'value': 4
                   },
               ]))

    properties = connection.bodies[0]['mutations'][0]['upsert']['properties']
    assert properties['tags'] == {
        'arrayValue': {
            'values': [{
                'stringValue': 'a',
                'excludeFromIndexes': True
            }, {
                'stringValue': 'b',
                'excludeFromIndexes': True
            }]
        }
    }
    assert properties['description'] == {'stringValue': 'long text', 'excludeFromIndexes': True}
    assert properties['priority'] == {'integerValue': '4'}


@pytest.mark.parametrize('method', ['insert', 'update', 'upsert'])
def test_insert_update_upsert_force_method_without_touching_caller(datastore, connection, method) -> None:
    key = Key('Task')
    task = Entity(key=key, data={'done': False})
    connection.queue({'mutationResults': [{'key': {'path': [{'kind': 'Task', 'id': '99'}]}}]})

    getattr(datastore, method)(task)

    assert list(connection.bodies[0]['mutations'][0]) == [method]
    assert task.method is None
    assert key.id == 99


def test_insert_accepts_plain_objects_with_key_and_data(datastore, connection) -> None:
    key = Key('Task')
    task = SimpleNamespace(key=key, data={'done': False})
    connection.queue({'mutationResults': [{'key': {'path': [{'kind': 'Task', 'id': '7'}]}}]})

    datastore.insert(task)

    assert list(connection.bodies[0]['mutations'][0]) == ['insert']
    assert not hasattr(task, 'method')
    assert key.id == 7


def test_save_propagates_commit_errors_without_write_back(datastore, connection) -> None:
    key = Key('Task')
    connection.queue(ApiError('Conflict', code=409))

    with pytest.raises(ApiError):
        datastore.save(Entity(key=key, data={}))

    assert not key.is_complete


# --- run_query ---


def test_run_query_accumulates_not_finished_batches(datastore, connection) -> None:
    query = datastore.create_query('Task').limit(10)
    connection.queue(
        query_batch([1, 2], 'NOT_FINISHED', end_cursor='c1'),
        query_batch([3], 'NOT_FINISHED', end_cursor='c2'),
        query_batch([4], 'MORE_RESULTS_AFTER_LIMIT', end_cursor='c3'),
    )

    entities, next_query, resp = datastore.run_query(query)

    assert [e.key.id for e in entities] == [1, 2, 3, 4]
    assert next_query.limit_val == 10
    assert next_query.start_val == 'c3'
    assert resp['batch']['endCursor'] == 'c3'

    requests = [body['query'] for body in connection.bodies]
    assert [r.get('limit') for r in requests] == [10, 8, 7]
    assert [r.get('startCursor') for r in requests] == [None, 'c1', 'c2']

    assert query.limit_val == 10
    assert query.start_val is None


def test_run_query_without_more_results_has_no_next_query(datastore, connection) -> None:
    connection.queue(query_batch([1], 'NO_MORE_RESULTS'))

    entities, next_query, _ = datastore.run_query(datastore.create_query('Task'))

    assert len(entities) == 1
    assert next_query is None


def test_run_query_without_limit_keeps_next_query_unlimited(datastore, connection) -> None:
    connection.queue(query_batch([1], 'MORE_RESULTS_AFTER_LIMIT', end_cursor='c1'))

    _, next_query, _ = datastore.run_query(datastore.create_query('Task'))

    assert next_query.limit_val is None
    assert next_query.start_val == 'c1'
    assert next_query.scope is datastore


def test_run_query_reduces_offset_by_skipped_results(datastore, connection) -> None:
    query = datastore.create_query('Task').offset(5)
    connection.queue(
        query_batch([], 'NOT_FINISHED', end_cursor='c1', skipped=3),
        query_batch([1], 'MORE_RESULTS_AFTER_LIMIT', end_cursor='c2', skipped=2),
    )

    _, next_query, _ = datastore.run_query(query)

    assert connection.bodies[1]['query']['offset'] == 2
    assert next_query.offset_val == 0


def test_run_query_clamps_negative_offset_to_zero(datastore, connection) -> None:
    connection.queue(query_batch([1], 'MORE_RESULTS_AFTER_LIMIT', skipped=4))

    _, next_query, _ = datastore.run_query(datastore.create_query('Task').offset(2))

    assert next_query.offset_val == 0


def test_run_query_sends_namespace_partition(datastore, connection) -> None:
    connection.queue(query_batch([], 'NO_MORE_RESULTS'))

    datastore.run_query(datastore.create_query('Task', namespace='tenant-a'))

    body = connection.bodies[0]
    assert body['partitionId'] == {'namespaceId': 'tenant-a'}
    assert body['readOptions'] == {}
    assert connection.calls[0]['url'].endswith(':runQuery')


def test_run_query_fails_as_a_whole(datastore, connection) -> None:
    error = ApiError('Backend unavailable', code=503)
    connection.queue(query_batch([1, 2], 'NOT_FINISHED'), error)

    with pytest.raises(ApiError) as excinfo:
        datastore.run_query(datastore.create_query('Task'))

    assert excinfo.value is error


def test_run_query_stream_follows_next_queries_lazily(datastore, connection) -> None:
    connection.queue(
        query_batch([1, 2], 'MORE_RESULTS_AFTER_LIMIT', end_cursor='c1'),
        query_batch([3], 'NO_MORE_RESULTS'),
    )

    stream = datastore.create_query('Task').run_stream()
    assert connection.calls == []

    assert [e.key.id for e in stream] == [1, 2, 3]
    assert connection.bodies[1]['query']['startCursor'] == 'c1'


def test_run_query_stream_stops_at_limit(datastore, connection) -> None:
    connection.queue(query_batch([1, 2], 'MORE_RESULTS_AFTER_LIMIT', end_cursor='c1'))

    results = list(datastore.run_query_stream(datastore.create_query('Task').limit(2)))

    assert [e.key.id for e in results] == [1, 2]
    assert len(connection.calls) == 1


def test_run_query_stream_surfaces_errors(datastore, connection) -> None:
    connection.queue(query_batch([1], 'MORE_RESULTS_AFTER_LIMIT'), ApiError('boom', code=500))

    stream = datastore.run_query_stream(datastore.create_query('Task'))
    assert next(stream).key.id == 1

    with pytest.raises(ApiError):
        next(stream)
