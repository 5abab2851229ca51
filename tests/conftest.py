"""
Shared fixtures: an in-memory Supabase stand-in and fake OpenAI clients
"""

import copy
import json
import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def load_fixture(filename):
    """Load test fixture"""
    fixture_path = Path(__file__).parent / 'fixtures' / filename
    with open(fixture_path, 'r') as f:
        return json.load(f)


def _sort_key(value):
    return (value is None, value if value is not None else '')


class FakeQuery:
    """Chainable query builder covering the PostgREST calls the services make"""

    def __init__(self, db, table):
        self.db = db
        self.table_name = table
        self.op = 'select'
        self.payload = None
        self.filters = []
        self.orders = []
        self.row_range = None
        self.row_limit = None
        self.on_conflict = None
        self.ignore_duplicates = False

    # operations

    def select(self, columns='*', count=None):
        self.op = 'select'
        return self

    def insert(self, data):
        self.op, self.payload = 'insert', data
        return self

    def update(self, data):
        self.op, self.payload = 'update', data
        return self

    def upsert(self, data, on_conflict='id', ignore_duplicates=False):
        self.op, self.payload = 'upsert', data
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def delete(self):
        self.op = 'delete'
        return self

    # filters and modifiers

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def range(self, start, end):
        self.row_range = (start, end)
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    # execution

    def _matching(self):
        return [row for row in self.db.tables.setdefault(self.table_name, []) if all(f(row) for f in self.filters)]

    def _new_row(self, row):
        row = copy.deepcopy(row)
        if 'id' not in row:
            self.db.next_id += 1
            row['id'] = f"{self.table_name}-{self.db.next_id}"
        self.db.tables.setdefault(self.table_name, []).append(row)
        return row

    def execute(self):
        self.db.calls.append((self.table_name, self.op, copy.deepcopy(self.payload), {
            'on_conflict': self.on_conflict,
            'ignore_duplicates': self.ignore_duplicates,
        }))
        if (self.table_name, self.op) in self.db.failures:
            raise Exception(f"{self.op} on {self.table_name} failed")

        if self.op == 'select':
            rows = self._matching()
            for column, desc in reversed(self.orders):
                rows = sorted(rows, key=lambda r: _sort_key(r.get(column)), reverse=desc)
            if self.row_range is not None:
                rows = rows[self.row_range[0]:self.row_range[1] + 1]
            if self.row_limit is not None:
                rows = rows[:self.row_limit]
            return SimpleNamespace(data=copy.deepcopy(rows), count=len(rows))

        if self.op == 'insert':
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            return SimpleNamespace(data=[copy.deepcopy(self._new_row(r)) for r in items], count=None)

        if self.op == 'update':
            rows = self._matching()
            for row in rows:
                row.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=copy.deepcopy(rows), count=None)

        if self.op == 'upsert':
            keys = [k.strip() for k in (self.on_conflict or 'id').split(',')]
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            written = []
            for item in items:
                existing = next(
                    (r for r in self.db.tables.setdefault(self.table_name, [])
                     if all(r.get(k) == item.get(k) for k in keys)),
                    None
                )
                if existing is None:
                    written.append(self._new_row(item))
                elif not self.ignore_duplicates:
                    existing.update(copy.deepcopy(item))
                    written.append(existing)
            return SimpleNamespace(data=copy.deepcopy(written), count=None)

        if self.op == 'delete':
            doomed = self._matching()
            self.db.tables[self.table_name] = [r for r in self.db.tables[self.table_name] if r not in doomed]
            return SimpleNamespace(data=copy.deepcopy(doomed), count=None)

        raise ValueError(f"Unsupported operation {self.op}")


class FakeSupabase:
    """In-memory tables keyed by name; `failures` holds (table, op) pairs that raise"""

    def __init__(self, tables=None):
        self.tables = copy.deepcopy(tables or {})
        self.calls = []
        self.failures = set()
        self.next_id = 0

    def table(self, name):
        return FakeQuery(self, name)

    def calls_for(self, table, op=None):
        return [c for c in self.calls if c[0] == table and (op is None or c[1] == op)]


class FakeEmbeddings:
    """Stand-in for `OpenAI().embeddings`; vectors come from `vector_for(text)`"""

    def __init__(self, vector_for=None, fail_batches_over=None, fail_texts=()):
        self.vector_for = vector_for or (lambda text: [float(len(text) % 7 + 1), 1.0, 0.5])
        self.fail_batches_over = fail_batches_over
        self.fail_texts = fail_texts
        self.requests = []

    def create(self, model, input):
        self.requests.append(list(input))
        if self.fail_batches_over is not None and len(input) > self.fail_batches_over:
            raise Exception("batch too large")
        if any(marker in text for text in input for marker in self.fail_texts):
            raise Exception("rejected input")
        # returned out of order; callers must sort by index
        data = [SimpleNamespace(index=i, embedding=self.vector_for(text)) for i, text in enumerate(input)]
        return SimpleNamespace(data=list(reversed(data)))


class FakeChatCompletions:
    """Stand-in for `OpenAI().chat.completions`; replies are popped in order"""

    def __init__(self, replies):
        self.replies = list(replies)
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        reply = self.replies.pop(0) if self.replies else None
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_openai(embeddings=None, chat=None):
    """OpenAI client double exposing only the endpoints the services call"""
    return SimpleNamespace(
        embeddings=embeddings or FakeEmbeddings(),
        chat=SimpleNamespace(completions=chat or FakeChatCompletions([]))
    )


@pytest.fixture
def participant_rows():
    return load_fixture('participants.json')


@pytest.fixture
def rules_row():
    return {
        'id': 'rules-1',
        'event_id': 'event-1',
        'intent_weight': 0.35,
        'industry_weight': 0.25,
        'interest_weight': 0.25,
        'complementarity_weight': 0.15,
        'embedding_weight': 0.0,
        'minimum_score': 40,
        'max_recommendations': 20,
        'exclude_same_company': True,
        'exclude_same_role': False,
        'prioritize_sponsors': False,
        'prioritize_vip': False,
        'use_behavioral_intent': False,
        'intent_confidence_threshold': 50,
    }


@pytest.fixture
def fake_db(participant_rows, rules_row):
    return FakeSupabase({
        'participants': participant_rows,
        'matching_rules': [rules_row],
        'matches': [],
        'profile_embeddings': [],
        'conversations': [],
        'messages': [],
        'meetings': [],
    })


@pytest.fixture
def directory(fake_db):
    from directory_service import DirectoryService
    return DirectoryService(client=fake_db)
