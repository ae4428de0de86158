"""
Shared pytest fixtures for FocusLog tests.
Provides a mock PostgreSQL pool backed by in-memory tables, sample entries
and an authenticated Flask test client.
"""
import copy
from datetime import date

import psycopg2
import pytest

from focuslog.models.entry import Entry, Session


def _unwrap(value):
    """psycopg2 Json wrappers keep the original object in .adapted"""
    return copy.deepcopy(getattr(value, 'adapted', value))


class MockCursor:
    """Mock PostgreSQL cursor with RealDictCursor behavior for the FocusLog queries."""

    def __init__(self, data_store):
        self.data_store = data_store
        self._results = []
        self._index = 0
        self.rowcount = 0

    def _next_id(self, table):
        self.data_store['ids'][table] = self.data_store['ids'].get(table, 0) + 1
        return self.data_store['ids'][table]

    def _find_entry(self, **match):
        for row in self.data_store['focus_entries']:
            if all(row[k] == v for k, v in match.items()):
                return row
        return None

    def _find_user(self, **match):
        for row in self.data_store['users']:
            if all(row[k] == v for k, v in match.items()):
                return row
        return None

    def execute(self, query, params=None):
        """Interpret the handful of statements the store issues."""
        if self.data_store.get('fail'):
            raise psycopg2.OperationalError("connection refused")

        self.data_store['queries'].append(query)
        q = ' '.join(query.lower().split())
        params = params or ()
        self._results = []
        self._index = 0
        self.rowcount = 0

        if q.startswith('create table') or 'create table' in q:
            return
        if q == 'select 1':
            self._results = [{'?column?': 1}]
            return

        # focus_entries
        if q.startswith('insert into focus_entries'):
            owner, entry_date, sessions, notes, created_at, updated_at = params
            if self._find_entry(owner_id=int(owner), date=entry_date):
                return
            row = {
                'id': self._next_id('focus_entries'),
                'owner_id': int(owner),
                'date': entry_date,
                'sessions': _unwrap(sessions),
                'notes': notes,
                'created_at': created_at,
                'updated_at': updated_at,
            }
            self.data_store['focus_entries'].append(row)
            self._results = [copy.deepcopy(row)]
            self.rowcount = 1
        elif q.startswith('update focus_entries'):
            sessions, notes, updated_at, entry_id, owner = params
            row = self._find_entry(id=int(entry_id), owner_id=int(owner))
            if row:
                row.update({'sessions': _unwrap(sessions), 'notes': notes, 'updated_at': updated_at})
                self._results = [copy.deepcopy(row)]
                self.rowcount = 1
        elif q.startswith('delete from focus_entries'):
            entry_id, owner = params
            row = self._find_entry(id=int(entry_id), owner_id=int(owner))
            if row:
                self.data_store['focus_entries'].remove(row)
                self.rowcount = 1
        elif 'from focus_entries' in q and 'for update' in q:
            owner, entry_date = params
            row = self._find_entry(owner_id=int(owner), date=entry_date)
            self._results = [copy.deepcopy(row)] if row else []
        elif 'from focus_entries' in q:
            owner = int(params[0])
            rows = [copy.deepcopy(r) for r in self.data_store['focus_entries'] if r['owner_id'] == owner]
            rows.sort(key=lambda r: str(r['date']), reverse=True)
            if 'limit' in q:
                rows = rows[:params[1]]
            self._results = rows

        # users
        elif q.startswith('insert into users'):
            username, password_hash, created_at = params
            if self._find_user(username=username):
                return
            row = {
                'id': self._next_id('users'),
                'username': username,
                'password_hash': password_hash,
                'tracks': [],
                'todos': [],
                'created_at': created_at,
            }
            self.data_store['users'].append(row)
            self._results = [copy.deepcopy(row)]
            self.rowcount = 1
        elif 'from users where username' in q:
            row = self._find_user(username=params[0])
            self._results = [copy.deepcopy(row)] if row else []
        elif 'from users where id' in q:
            row = self._find_user(id=int(params[0]))
            self._results = [copy.deepcopy(row)] if row else []
        elif q.startswith('update users set tracks') or q.startswith('update users set todos'):
            column = 'tracks' if 'set tracks' in q else 'todos'
            value, user_id = params
            row = self._find_user(id=int(user_id))
            if row:
                row[column] = _unwrap(value)
                self._results = [{column: copy.deepcopy(row[column])}]
                self.rowcount = 1
        else:
            raise AssertionError(f"Unexpected query in test: {query}")

    def fetchone(self):
        if self._results and self._index < len(self._results):
            result = self._results[self._index]
            self._index += 1
            return result
        return None

    def fetchall(self):
        return self._results

    def close(self):
        pass


class MockConnection:
    """Mock PostgreSQL connection."""

    def __init__(self, data_store):
        self.data_store = data_store

    def cursor(self, cursor_factory=None):
        return MockCursor(self.data_store)

    def commit(self):
        self.data_store['commits'] += 1

    def rollback(self):
        self.data_store['rollbacks'] += 1


class MockPool:
    """Mock PostgreSQL connection pool."""

    def __init__(self, data_store):
        self.data_store = data_store

    def getconn(self):
        return MockConnection(self.data_store)

    def putconn(self, conn):
        pass

    def closeall(self):
        pass


@pytest.fixture
def mock_db_data():
    """Shared data store for the mock database."""
    return {
        'users': [],
        'focus_entries': [],
        'ids': {},
        'queries': [],
        'commits': 0,
        'rollbacks': 0,
        'fail': False,
    }


@pytest.fixture
def mock_pool(mock_db_data, monkeypatch):
    """Patch the store module to use the mock pool."""
    from focuslog.models import database

    pool = MockPool(mock_db_data)
    monkeypatch.setattr(database, '_pool', pool)
    monkeypatch.setattr(database, 'get_pool', lambda: pool)
    return pool


@pytest.fixture
def app(mock_pool):
    """Flask app wired to the mock database."""
    from focuslog.app import app as flask_app

    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(mock_pool):
    """A registered user."""
    from focuslog.auth import hash_password
    from focuslog.models import database

    return database.create_user('tester', hash_password('secret'))


@pytest.fixture
def token(user):
    from focuslog.auth import issue_token

    return issue_token(user['id'])


@pytest.fixture
def auth_headers(token):
    return {'x-auth-token': token}


@pytest.fixture
def make_entry():
    """Factory: make_entry('2024-01-05', ('DSA', 2, 3), ('Dev', 1, 0))"""
    def _make(entry_date, *sessions, owner='1', notes=''):
        return Entry(
            id=entry_date,
            owner=owner,
            date=entry_date,
            sessions=[
                Session(category=category, focused=focused, assigned=assigned)
                for category, focused, assigned in sessions
            ],
            notes=notes,
        )
    return _make


@pytest.fixture
def reference_day():
    """Fixed 'today' for engine tests."""
    return date(2024, 1, 5)


@pytest.fixture
def week_entries(make_entry):
    """2024-01-01..2024-01-05, one hour of DSA each day."""
    return [make_entry(f'2024-01-0{day}', ('DSA', 1, 1)) for day in range(1, 6)]
