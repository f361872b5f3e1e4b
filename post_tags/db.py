import itertools
import logging
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence, Type

import psycopg2
from psycopg2 import sql

from post_tags.errors import StorageError
from post_tags.records import Record


logger = logging.getLogger(__name__)

_cursor_ids = itertools.count(1)


def get_connection(settings):
    try:
        conn = psycopg2.connect(dsn=settings.dsn, connect_timeout=settings.connect_timeout)
    except psycopg2.Error as exc:
        raise StorageError(
            "Database connection failed. "
            "Verify DATABASE_URL (or DB_* vars), SSL mode, and network access."
        ) from exc
    # Every insert is committed on its own; a failed run keeps what it wrote.
    conn.autocommit = True
    return conn


class Store:
    """Thin repository over a psycopg2 connection.

    Records describe their own table and columns, so the store only ever
    composes SQL from identifiers and passes values as parameters.
    """

    def __init__(self, conn, itersize: int = 2000):
        self.conn = conn
        self.itersize = itersize

    def close(self) -> None:
        self.conn.close()

    def _select(
        self,
        record: Type[Record],
        fields: sql.Composable,
        where: Optional[Dict[str, Iterable[Any]]],
    ) -> tuple[sql.Composed, list[Any]]:
        query = sql.SQL("SELECT {fields} FROM {table}").format(
            fields=fields,
            table=sql.Identifier(record.table),
        )
        params: list[Any] = []
        if where:
            conditions = []
            for field, allowed in where.items():
                conditions.append(sql.SQL("{} IN %s").format(sql.Identifier(record.columns[field])))
                params.append(tuple(int(v) if isinstance(v, int) else v for v in allowed))
            query = sql.SQL("{} WHERE {}").format(query, sql.SQL(" AND ").join(conditions))
        return query, params

    def stream(
        self,
        record: Type[Record],
        where: Optional[Dict[str, Iterable[Any]]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Iterator[Record]:
        fields = sql.SQL(", ").join(sql.Identifier(column) for column in record.columns.values())
        query, params = self._select(record, fields, where)
        if order_by:
            query = sql.SQL("{} ORDER BY {}").format(query, sql.Identifier(record.columns[order_by]))
        if limit is not None:
            query = sql.SQL("{} LIMIT %s").format(query)
            params.append(limit)

        name = f"post_tags_stream_{next(_cursor_ids)}"
        try:
            # Server-side cursor: rows arrive itersize at a time.
            with self.conn.cursor(name=name, withhold=True) as cur:
                cur.itersize = self.itersize
                cur.execute(query, params)
                for row in cur:
                    yield record.from_row(row)
        except psycopg2.Error as exc:
            raise StorageError(f"Failed to read {record.table}: {exc}") from exc

    def count(self, record: Type[Record], where: Optional[Dict[str, Iterable[Any]]] = None) -> int:
        query, params = self._select(record, sql.SQL("COUNT(*)"), where)
        return int(self._fetchone(query, params)[0])

    def table_exists(self, table: str) -> bool:
        row = self._fetchone(
            """
            SELECT EXISTS (
                SELECT 1
                FROM information_schema.tables
                WHERE table_schema = current_schema()
                  AND table_name = %s
            )
            """,
            (table,),
        )
        return bool(row[0])

    def execute(self, statement, params: Sequence[Any] = ()) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute(statement, params)
        except psycopg2.Error as exc:
            raise StorageError(f"Statement failed: {exc}") from exc

    def insert(self, table: str, row: Record) -> None:
        values = row.values()
        statement = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({placeholders})").format(
            table=sql.Identifier(table),
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in values),
            placeholders=sql.SQL(", ").join(sql.Placeholder() for _ in values),
        )
        try:
            with self.conn.cursor() as cur:
                cur.execute(statement, list(values.values()))
        except psycopg2.Error as exc:
            raise StorageError(f"Insert into {table} failed for {values}: {exc}") from exc

    def _fetchone(self, query, params: Sequence[Any]):
        try:
            with self.conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchone()
        except psycopg2.Error as exc:
            raise StorageError(f"Query failed: {exc}") from exc
