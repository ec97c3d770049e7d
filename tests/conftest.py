import copy
import json
import time

import pytest
from google.api_core import exceptions as google_exceptions
import requests

from storefront.local_store import LocalStore
from storefront.session import SessionContext


# ---------- Firestore ----------

class FakeSnapshot:
    def __init__(self, data, update_time):
        self._data = data
        self.update_time = update_time
        self.exists = data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, db, path):
        self.db = db
        self.path = path

    def collection(self, name):
        return FakeCollection(self.db, f'{self.path}/{name}')

    def get(self):
        self.db.before_call()
        entry = self.db.docs.get(self.path)
        if entry is None:
            return FakeSnapshot(None, None)
        return FakeSnapshot(entry['data'], entry['update_time'])

    def set(self, data):
        self.db.before_call()
        self.db.before_write()
        self.db.store(self.path, data)

    def create(self, data):
        self.db.before_call()
        self.db.before_write()
        self.db.run_interleaved()
        if self.path in self.db.docs:
            raise google_exceptions.AlreadyExists(f'{self.path} already exists')
        self.db.store(self.path, data)

    def update(self, data, option=None):
        self.db.before_call()
        self.db.before_write()
        self.db.run_interleaved()
        entry = self.db.docs.get(self.path)
        if entry is None:
            raise google_exceptions.NotFound(f'{self.path} not found')
        if option is not None and option.get('last_update_time') != entry['update_time']:
            raise google_exceptions.FailedPrecondition(f'{self.path} was modified')
        self.db.store(self.path, data)


class FakeCollection:
    def __init__(self, db, path):
        self.db = db
        self.path = path

    def document(self, name):
        return FakeDocument(self.db, f'{self.path}/{name}')


class FakeFirestore:
    """Dict-backed stand-in for the Firestore client used by RemoteStore."""

    def __init__(self):
        self.docs = {}
        self.clock = 0
        self.delay = 0
        self.write_delay = 0
        self.fail_with = None
        self.interleave = []

    def collection(self, name):
        return FakeCollection(self, name)

    def write_option(self, **kwargs):
        return dict(kwargs)

    def before_call(self):
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    def before_write(self):
        if self.write_delay:
            time.sleep(self.write_delay)

    def run_interleaved(self):
        # Simulates another writer landing between our read and write.
        if self.interleave:
            self.interleave.pop(0)(self)

    def store(self, path, data):
        self.clock += 1
        stored = dict(data)
        stored['items'] = copy.deepcopy(data.get('items'))
        self.docs[path] = {'data': stored, 'update_time': self.clock}

    def items_at(self, path):
        entry = self.docs.get(path)
        return None if entry is None else entry['data']['items']


# ---------- Storage bucket ----------

class FakeBlob:
    def __init__(self, bucket, name, generation=None):
        self.bucket = bucket
        self.name = name
        self.generation = generation
        self.metadata = None
        self.cache_control = None

    def download_as_text(self):
        self.bucket.before_call()
        return self.bucket.files[self.name]['data']

    def upload_from_string(self, data, content_type=None, if_generation_match=None):
        self.bucket.before_call()
        if self.bucket.interleave and not self.name.startswith('stockLogs/'):
            self.bucket.interleave.pop(0)(self.bucket)

        current = self.bucket.files.get(self.name)
        current_generation = current['generation'] if current else 0
        if if_generation_match is not None and if_generation_match != current_generation:
            raise google_exceptions.PreconditionFailed(f'{self.name} generation mismatch')

        self.generation = self.bucket.write(self.name, data)
        self.bucket.files[self.name].update({
            'content_type': content_type,
            'metadata': self.metadata,
            'cache_control': self.cache_control,
        })


class FakeBucket:
    """Dict-backed stand-in for a Firebase Storage bucket with generations."""

    def __init__(self):
        self.files = {}
        self.counter = 0
        self.fail_with = None
        self.interleave = []

    def before_call(self):
        if self.fail_with is not None:
            raise self.fail_with

    def get_blob(self, name):
        self.before_call()
        entry = self.files.get(name)
        if entry is None:
            return None
        return FakeBlob(self, name, entry['generation'])

    def blob(self, name):
        return FakeBlob(self, name)

    def write(self, name, data):
        self.counter += 1
        self.files[name] = {'data': data, 'generation': self.counter}
        return self.counter

    def put_json(self, name, value):
        return self.write(name, json.dumps(value))

    def read_json(self, name):
        return json.loads(self.files[name]['data'])


# ---------- HTTP ----------

class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError('No JSON body')
        return copy.deepcopy(self._payload)


class FakeHttpSession:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._next('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self._next('POST', url, **kwargs)


# ---------- fixtures ----------

@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / 'storefront.db')


@pytest.fixture
def firestore_db():
    return FakeFirestore()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def cart_local(db_path):
    return LocalStore(db_path, 'auric_cart_items', 'client-1')


@pytest.fixture
def guest():
    return SessionContext(client_id='client-1')


@pytest.fixture
def member(guest):
    return guest.login('user-1')


@pytest.fixture
def ring():
    return {'id': 'FEA-1', 'name': 'Gold Ring', 'price': 1200.0, 'image': 'ring.jpg'}


@pytest.fixture
def necklace():
    return {'id': 'NEW-7', 'name': 'Pearl Necklace', 'price': 800.5, 'image': 'necklace.jpg'}


@pytest.fixture
def connection_error():
    return requests.exceptions.ConnectionError('connection refused')
