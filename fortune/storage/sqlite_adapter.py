from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Mapping

from fortune.config.load_config import FortuneOptions
from fortune.exceptions import AdapterConnectionError, AdapterError
from fortune.schema import ResourceModel
from fortune.storage.adapter import Adapter, Record, _utc_ts
from fortune.utils.logger import get_logger


logger = get_logger(__name__)


def _json_dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _quote_ident(name: str) -> str:
    return '"' + str(name).replace('"', '""') + '"'


def _json_path(key: str) -> str:
    return '$."' + str(key).replace('"', '\\"') + '"'


def resolve_db_path(db: str, flags: Mapping[str, Any] | None = None) -> str:
    raw = str((flags or {}).get("path") or db or "fortune")
    if raw == ":memory:":
        return raw
    p = Path(raw).expanduser()
    if not p.suffix:
        p = p.with_suffix(".db")
    return str(p.resolve())


class SQLiteAdapter(Adapter):
    """SQLite-backed adapter: one table per resource, fields stored as JSON.

    `host`, `port`, `username` and `password` have no meaning for SQLite and are ignored.
    """

    name = "sqlite"

    def __init__(self, options: FortuneOptions | None = None) -> None:
        super().__init__(options)
        self.db_path = resolve_db_path(self.options.db, self.options.flags)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _connect(self) -> None:
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except (sqlite3.Error, OSError) as e:
            raise AdapterConnectionError(f"Cannot open SQLite database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL;")
        conn.execute("PRAGMA synchronous = NORMAL;")
        self._conn = conn
        logger.info("SQLite adapter using %s", self.db_path)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
        super().close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise AdapterError("SQLite adapter is not connected.")
        return self._conn

    @contextmanager
    def transaction(self, *, mode: str = "IMMEDIATE") -> Iterable[None]:
        with self._lock:
            self.conn.execute(f"BEGIN {mode};")
            try:
                yield
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

    def _table(self, model: ResourceModel) -> str:
        return _quote_ident(f"resource_{model.name}")

    def _prepare(self, model: ResourceModel) -> None:
        table = self._table(model)
        with self._lock:
            self.conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                  id TEXT PRIMARY KEY,
                  created_at REAL NOT NULL,
                  updated_at REAL NOT NULL,
                  fields_json TEXT NOT NULL
                );
                """
            )
            self.conn.execute(
                f"CREATE INDEX IF NOT EXISTS {_quote_ident(f'idx_{model.name}_created')} "
                f"ON {table}(created_at, id);"
            )
            self.conn.commit()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        return Record(
            id=str(row["id"]),
            created_at=float(row["created_at"]),
            fields=json.loads(str(row["fields_json"] or "{}")),
        )

    def _get(self, model: ResourceModel, resource_id: str) -> Record | None:
        with self._lock:
            row = self.conn.execute(
                f"SELECT id, created_at, fields_json FROM {self._table(model)} WHERE id = ?;",
                (str(resource_id),),
            ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def _scan(
        self,
        model: ResourceModel,
        *,
        ids: list[str] | None,
        query: Mapping[str, Any] | None,
        limit: int | None,
        after: tuple[float, str] | None,
    ) -> list[Record]:
        where = ["1=1"]
        params: list[Any] = []

        if ids is not None:
            if not ids:
                return []
            where.append("id IN (%s)" % ",".join(["?"] * len(ids)))
            params.extend(ids)

        for key, value in (query or {}).items():
            if isinstance(value, (list, dict)):
                where.append("json_extract(fields_json, ?) = json(?)")
                params.extend([_json_path(key), _json_dumps(value)])
            elif value is None:
                where.append("json_extract(fields_json, ?) IS NULL")
                params.append(_json_path(key))
            else:
                where.append("json_extract(fields_json, ?) = ?")
                params.extend([_json_path(key), value])

        if after is not None:
            created_at, item_id = after
            where.append("(created_at > ? OR (created_at = ? AND id > ?))")
            params.extend([float(created_at), float(created_at), str(item_id)])

        sql = (
            f"SELECT id, created_at, fields_json FROM {self._table(model)} "
            f"WHERE {' AND '.join(where)} ORDER BY created_at ASC, id ASC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._lock:
            rows = self.conn.execute(sql + ";", params).fetchall()
        return [self._row_to_record(r) for r in rows]

    def _insert(self, model: ResourceModel, record: Record) -> None:
        with self.transaction():
            self.conn.execute(
                f"INSERT INTO {self._table(model)} (id, created_at, updated_at, fields_json) VALUES (?, ?, ?, ?);",
                (record.id, float(record.created_at), float(record.created_at), _json_dumps(record.fields)),
            )

    def _replace(self, model: ResourceModel, record: Record) -> None:
        with self.transaction():
            self.conn.execute(
                f"UPDATE {self._table(model)} SET fields_json = ?, updated_at = ? WHERE id = ?;",
                (_json_dumps(record.fields), _utc_ts(), record.id),
            )

    def _remove(self, model: ResourceModel, resource_id: str) -> bool:
        with self.transaction():
            cur = self.conn.execute(f"DELETE FROM {self._table(model)} WHERE id = ?;", (str(resource_id),))
            return cur.rowcount > 0
