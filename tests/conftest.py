"""Shared test fixtures: clients wired to an in-memory fake transport."""

import copy

import pytest

from gcloudkit.services.compute import Compute
from gcloudkit.services.datastore import Datastore
from gcloudkit.services.entity import encode_value
from gcloudkit.utils.config import ComputeConfig, DatastoreConfig

DATASTORE_ENDPOINT = 'https://datastore.test'
COMPUTE_ENDPOINT = 'https://compute.test/compute/v1'


class FakeConnection:
    """Records requests and replays scripted responses (or raises scripted errors)."""

    def __init__(self):
        self.responses = []
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def make_request(self, method, url, json=None, params=None, idempotent=True):
        self.calls.append({
            'method': method,
            'url': url,
            'json': copy.deepcopy(json),
            'params': params,
            'idempotent': idempotent
        })
        if not self.responses:
            return {}
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return copy.deepcopy(resp)

    @property
    def bodies(self):
        return [call['json'] for call in self.calls]


def entity_result(entity_id, kind='Task', **properties):
    """Build one ``entityResults``/``found`` element."""
    return {
        'entity': {
            'key': {
                'path': [{
                    'kind': kind,
                    'id': str(entity_id)
                }]
            },
            'properties': {name: encode_value(value) for name, value in properties.items()}
        }
    }


def query_batch(ids, more_results, end_cursor='cursor', skipped=0):
    """Build a runQuery response."""
    return {
        'batch': {
            'entityResults': [entity_result(entity_id) for entity_id in ids],
            'moreResults': more_results,
            'endCursor': end_cursor,
            'skippedResults': skipped,
        }
    }


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def datastore(connection):
    config = DatastoreConfig(project_id='test-project', namespace=None, api_endpoint=DATASTORE_ENDPOINT)
    return Datastore(config=config, connection=connection)


@pytest.fixture
def compute(connection):
    config = ComputeConfig(project_id='test-project', api_endpoint=COMPUTE_ENDPOINT, operation_poll_interval=0.0)
    return Compute(config=config, connection=connection)
