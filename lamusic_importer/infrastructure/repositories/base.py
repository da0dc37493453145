from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable


_TAIL_MARKER = re.compile(r"\b(group\s+by|order\s+by|limit|offset|returning|for\s+update)\b", re.IGNORECASE)


class BaseRepository:
    """Table access with soft-delete filtering applied by default.

    Every read goes through ``select_live``/``enforce_live_scope`` so rows carrying a
    ``deleted_at`` tombstone never leak into lookups. ``include_deleted=True`` is the
    only way to see them.
    """

    table_name: str = ""
    deleted_column: str = "deleted_at"

    def build_live_clause(self, *, table_alias: str | None = None) -> str:
        prefix = f"{table_alias.strip()}." if table_alias and str(table_alias).strip() else ""
        return f"{prefix}{self.deleted_column} IS NULL"

    def enforce_live_scope(self, query: str, *, table_alias: str | None = None) -> str:
        raw_query = str(query or "").strip()
        if not raw_query:
            return raw_query

        clause = self.build_live_clause(table_alias=table_alias)
        if clause.lower() in raw_query.lower():
            return raw_query

        marker = _TAIL_MARKER.search(raw_query)
        if marker:
            head = raw_query[: marker.start()].rstrip()
            tail = raw_query[marker.start() :]
        else:
            head = raw_query
            tail = ""

        if re.search(r"\bwhere\b", head, flags=re.IGNORECASE):
            scoped_head = f"{head} AND {clause}"
        else:
            scoped_head = f"{head} WHERE {clause}"
        return f"{scoped_head} {tail}".strip()

    def select_live(
        self,
        db,
        query: str,
        params: Iterable[Any] | None = None,
        *,
        include_deleted: bool = False,
        table_alias: str | None = None,
    ):
        statement = query if include_deleted else self.enforce_live_scope(query, table_alias=table_alias)
        return db.execute(statement, tuple(params or ()))

    def fetch_one(self, db, query: str, params: Iterable[Any] | None = None, **kwargs) -> dict | None:
        row = self.select_live(db, query, params, **kwargs).fetchone()
        return self.map_row(dict(row)) if row else None

    def fetch_all(self, db, query: str, params: Iterable[Any] | None = None, **kwargs) -> list[dict]:
        rows = self.select_live(db, query, params, **kwargs).fetchall()
        return [self.map_row(dict(row)) for row in rows]

    def soft_delete(self, db, record_id: str) -> None:
        db.execute(
            f"""
            UPDATE {self.table_name}
            SET {self.deleted_column} = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND {self.deleted_column} IS NULL
            """,
            (record_id,),
        )

    def update_fields(self, db, record_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        updates = [f"{key} = ?" for key in fields.keys()]
        params = list(fields.values())
        params.append(record_id)
        db.execute(
            f"""
            UPDATE {self.table_name}
            SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND {self.deleted_column} IS NULL
            """,
            tuple(params),
        )

    def map_row(self, row: dict) -> dict:
        return row

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def as_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "t", "yes"}
        return bool(value)

    @staticmethod
    def as_money(value: Any) -> str | None:
        if value is None or value == "":
            return None
        try:
            return str(Decimal(str(value)).quantize(Decimal("0.01")))
        except (InvalidOperation, ValueError):
            return None
