from __future__ import annotations

import json
from typing import Any

from lamusic_importer.db import new_id


PRODUCT_LOG_ACTIONS = ("created", "updated", "deleted", "stock_changed")


def _dump_snapshot(values: dict | None) -> str | None:
    if values is None:
        return None
    return json.dumps(values, ensure_ascii=False, sort_keys=True, default=str)


def _load_snapshot(raw: Any) -> dict | None:
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    return json.loads(raw)


class ProductLogRepository:
    """Append-only audit trail; there is deliberately no update or delete path."""

    def append(
        self,
        db,
        *,
        product_id: str,
        action: str,
        responsible_user_id: str | None,
        old_values: dict | None = None,
        new_values: dict | None = None,
    ) -> str:
        if action not in PRODUCT_LOG_ACTIONS:
            raise ValueError(f"Acao de log invalida: {action}")
        log_id = new_id()
        db.execute(
            """
            INSERT INTO product_logs (id, product_id, action, old_values, new_values, responsible_user_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                log_id,
                product_id,
                action,
                _dump_snapshot(old_values),
                _dump_snapshot(new_values),
                responsible_user_id,
            ),
        )
        return log_id

    def list_by_product(self, db, product_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, product_id, action, old_values, new_values, responsible_user_id, created_at
            FROM product_logs
            WHERE product_id = ?
            ORDER BY created_at ASC, rowid ASC
            """
            if db.backend == "sqlite"
            else """
            SELECT id, product_id, action, old_values, new_values, responsible_user_id, created_at
            FROM product_logs
            WHERE product_id = ?
            ORDER BY created_at ASC, id ASC
            """,
            (product_id,),
        ).fetchall()
        logs = []
        for row in rows:
            item = dict(row)
            item["old_values"] = _load_snapshot(item.get("old_values"))
            item["new_values"] = _load_snapshot(item.get("new_values"))
            logs.append(item)
        return logs
