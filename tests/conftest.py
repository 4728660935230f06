import re
import uuid
from types import SimpleNamespace

import pytest

from backend.invoicing import repository as repo


class SimpleResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count
        self.error = None


class FakeAuth:
    def __init__(self):
        self.users = {}
        self.tokens = {}

    def _session(self, uid):
        token = 'tok-' + uid
        self.tokens[token] = uid
        return SimpleNamespace(user=SimpleNamespace(id=uid), session=SimpleNamespace(access_token=token))

    def sign_up(self, creds):
        if creds['email'] in self.users:
            raise Exception('User already registered')
        uid = str(uuid.uuid4())
        self.users[creds['email']] = (uid, creds['password'])
        return self._session(uid)

    def sign_in_with_password(self, creds):
        uid, password = self.users.get(creds['email'], (None, None))
        if uid is None or password != creds['password']:
            raise Exception('Invalid login credentials')
        return self._session(uid)

    def get_user(self, token):
        if token not in self.tokens:
            raise Exception('invalid JWT')
        return SimpleNamespace(user=SimpleNamespace(id=self.tokens[token]))


class FakeSupabase:
    """In-memory stand-in for the PostgREST query builder used by the repository."""

    unique = {'documents': ('user_id', 'type', 'document_number')}
    # (child table, child column, parent table)
    foreign_keys = [
        ('documents', 'client_id', 'clients'),
        ('document_items', 'document_id', 'documents'),
        ('document_items', 'product_id', 'products'),
    ]
    defaults = {
        'products': {'archived': False, 'includes_vat': False, 'unit': 'unit'},
        'documents': {'status': 'DRAFT'},
    }

    def __init__(self):
        self.tables = {}
        self.auth = FakeAuth()
        self.before_insert = None
        self._clock = 0

    def table(self, name):
        return TableQuery(self, name)

    def rows(self, name):
        return self.tables.setdefault(name, [])

    def add(self, table_name, **row):
        self._clock += 1
        rec = dict(self.defaults.get(table_name, {}))
        rec.setdefault('id', str(uuid.uuid4()))
        rec.setdefault('created_at', f'2026-01-01T00:00:00.{self._clock:06d}')
        rec.update(row)
        self.rows(table_name).append(rec)
        return rec


INT4_COLUMNS = ('document_number',)


def _same(a, b):
    return a == b or (a is not None and str(a) == str(b))


def _ilike(value, pattern):
    if value is None:
        return False
    rx = re.escape(pattern).replace('%', '.*')
    return re.fullmatch(rx, str(value), re.IGNORECASE) is not None


def _split_top_level(expr):
    parts, depth, cur = [], 0, ''
    for ch in expr:
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
        if ch == ',' and depth == 0:
            parts.append(cur)
            cur = ''
        else:
            cur += ch
    parts.append(cur)
    return parts


def _clause(text):
    col, op, value = text.split('.', 2)
    if col in INT4_COLUMNS and op == 'eq' and int(value) > 2147483647:
        raise Exception(f'value "{value}" is out of range for type integer (22003)')
    if op == 'eq':
        return lambda r: _same(r.get(col), value)
    if op == 'ilike':
        return lambda r: _ilike(r.get(col), value)
    if op == 'in':
        values = value.strip('()').split(',')
        return lambda r: any(_same(r.get(col), v) for v in values)
    raise ValueError(op)


class TableQuery:
    def __init__(self, db, name):
        self.db = db
        self.name = name
        self._op = 'select'
        self._filters = []
        self._order = []
        self._range = None
        self._limit = None
        self._count = None
        self._payload = None
        self._negate = False

    def select(self, *columns, count=None):
        self._op = 'select'
        self._count = count
        return self

    def insert(self, payload):
        self._op = 'insert'
        self._payload = payload
        return self

    def update(self, payload):
        self._op = 'update'
        self._payload = payload
        return self

    def delete(self):
        self._op = 'delete'
        return self

    @property
    def not_(self):
        self._negate = True
        return self

    def _add(self, pred):
        if self._negate:
            inner = pred
            pred = lambda r: not inner(r)
            self._negate = False
        self._filters.append(pred)
        return self

    def eq(self, col, val):
        return self._add(lambda r: _same(r.get(col), val))

    def in_(self, col, vals):
        vals = list(vals)
        return self._add(lambda r: any(_same(r.get(col), v) for v in vals))

    def gte(self, col, val):
        return self._add(lambda r: r.get(col) is not None and r.get(col) >= val)

    def lte(self, col, val):
        return self._add(lambda r: r.get(col) is not None and r.get(col) <= val)

    def ilike(self, col, pattern):
        return self._add(lambda r: _ilike(r.get(col), pattern))

    def is_(self, col, val):
        return self._add(lambda r: r.get(col) is None if val == 'null' else _same(r.get(col), val))

    def or_(self, expr):
        clauses = [_clause(c) for c in _split_top_level(expr)]
        return self._add(lambda r: any(c(r) for c in clauses))

    def order(self, col, desc=False):
        self._order.append((col, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def _matching(self):
        return [r for r in self.db.rows(self.name) if all(f(r) for f in self._filters)]

    def _check_unique(self, row):
        cols = self.db.unique.get(self.name)
        if not cols or any(row.get(c) is None for c in cols):
            return
        for other in self.db.rows(self.name):
            if all(_same(other.get(c), row.get(c)) for c in cols):
                raise Exception(f'duplicate key value violates unique constraint "{self.name}_key" (23505)')

    def _check_referenced(self, row):
        for child, col, parent in self.db.foreign_keys:
            if parent == self.name and any(_same(c.get(col), row['id']) for c in self.db.rows(child)):
                raise Exception(f'update or delete on table "{parent}" violates foreign key constraint on "{child}" (23503)')

    def execute(self):
        if self._op == 'insert':
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            out = []
            for rec in payload:
                if self.db.before_insert:
                    self.db.before_insert(self.name, rec)
                self._check_unique(rec)
                out.append(dict(self.db.add(self.name, **rec)))
            return SimpleResult(out)

        rows = self._matching()

        if self._op == 'update':
            for r in rows:
                r.update(self._payload)
            return SimpleResult([dict(r) for r in rows])

        if self._op == 'delete':
            for r in rows:
                self._check_referenced(r)
            table = self.db.rows(self.name)
            for r in rows:
                table.remove(r)
            return SimpleResult([dict(r) for r in rows])

        total = len(rows)
        for col, desc in reversed(self._order):
            rows.sort(key=lambda r: (r.get(col) is None, r.get(col)), reverse=desc)
        if self._range:
            rows = rows[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            rows = rows[:self._limit]
        return SimpleResult([dict(r) for r in rows], total if self._count else None)


@pytest.fixture
def fake_db(monkeypatch):
    fake = FakeSupabase()
    monkeypatch.setattr(repo, '_get_supabase', lambda: fake)
    return fake


@pytest.fixture
def owner(fake_db):
    return fake_db.add('profiles', id='u1', email='owner@example.com', business_name='Acme Ltd',
                       business_id='515151515', address='1 Main St', phone='03-5555555',
                       role='USER', logo=None, vat_rate=17)


@pytest.fixture
def client_row(fake_db, owner):
    return fake_db.add('clients', user_id=owner['id'], name='Globex', email='ap@globex.test',
                       business_id='999', address='2 Side St', city='Haifa')
