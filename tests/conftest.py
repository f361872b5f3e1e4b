from datetime import datetime, timedelta

import pytest

from post_tags.errors import StorageError
from post_tags.records import PostHistory, PostHistoryType, Tag


ENV_KEYS = (
    "DATABASE_URL",
    "DB_USER",
    "DB_PASSWORD",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_SSLMODE",
    "DB_CONNECT_TIMEOUT",
    "DESTINATION_TABLE_NAME",
    "ALLOW_DROP_DESTINATION_TABLE",
    "ONLY_THESE_TAGS",
    "BATCH_SIZE",
)


class FakeStore:
    """In-memory stand-in for post_tags.db.Store."""

    def __init__(self, rows=None, existing_tables=(), fail_after_inserts=None):
        self.rows = {record: list(items) for record, items in (rows or {}).items()}
        self.existing_tables = set(existing_tables)
        self.fail_after_inserts = fail_after_inserts
        self.inserted = []
        self.executed = []
        self.closed = False

    def _matching(self, record, where):
        for row in self.rows.get(record, []):
            if where and any(getattr(row, field) not in allowed for field, allowed in where.items()):
                continue
            yield row

    def stream(self, record, where=None, order_by=None, limit=None):
        rows = self._matching(record, where)
        if order_by:
            rows = iter(sorted(rows, key=lambda row: getattr(row, order_by)))
        for index, row in enumerate(rows):
            if limit is not None and index >= limit:
                return
            yield row

    def count(self, record, where=None):
        return sum(1 for _ in self._matching(record, where))

    def table_exists(self, table):
        return table in self.existing_tables

    def execute(self, statement, params=()):
        self.executed.append(repr(statement))

    def insert(self, table, row):
        if self.fail_after_inserts is not None and len(self.inserted) >= self.fail_after_inserts:
            raise StorageError(f"Insert into {table} failed for {row.values()}: boom")
        self.inserted.append((table, row.post_id, row.tag_id))

    def close(self):
        self.closed = True


def ts(minutes: int) -> datetime:
    return datetime(2023, 1, 1) + timedelta(minutes=minutes)


def history(id, post_id, minutes, text, type_id=PostHistoryType.EDIT_TAGS):
    creation_date = ts(minutes) if minutes is not None else None
    return PostHistory(
        id=id,
        post_history_type_id=int(type_id),
        post_id=post_id,
        creation_date=creation_date,
        text=text,
    )


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Empty DB-related environment, run from a directory with no .env."""
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "placeholder")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def tags():
    return [Tag(id=1, tag_name="python"), Tag(id=2, tag_name="rust")]
