from __future__ import annotations

from lamusic_importer.db import new_id
from lamusic_importer.infrastructure.repositories.base import BaseRepository


class CategoryRepository(BaseRepository):
    table_name = "categories"

    def map_row(self, row: dict) -> dict:
        row["is_active"] = self.as_bool(row.get("is_active"))
        row["sort_order"] = int(row.get("sort_order") or 0)
        return row

    def get_by_id(self, db, category_id: str) -> dict | None:
        return self.fetch_one(
            db,
            """
            SELECT *
            FROM categories
            WHERE id = ?
            LIMIT 1
            """,
            (category_id,),
        )

    def find_by_slug(self, db, slug: str, *, include_deleted: bool = False) -> dict | None:
        return self.fetch_one(
            db,
            """
            SELECT *
            FROM categories
            WHERE slug = ?
            LIMIT 1
            """,
            (slug,),
            include_deleted=include_deleted,
        )

    def list_active(self, db) -> list[dict]:
        return self.fetch_all(
            db,
            """
            SELECT *
            FROM categories
            WHERE is_active = ?
            ORDER BY sort_order ASC, name ASC
            """,
            (True,),
        )

    def list_children(self, db, parent_id: str, *, active_only: bool = False) -> list[dict]:
        query = """
            SELECT *
            FROM categories
            WHERE parent_id = ?
        """
        params: list = [parent_id]
        if active_only:
            query += " AND is_active = ?"
            params.append(True)
        query += " ORDER BY sort_order ASC, name ASC"
        return self.fetch_all(db, query, params)

    def create(
        self,
        db,
        *,
        name: str,
        slug: str,
        description: str | None = None,
        parent_id: str | None = None,
        sort_order: int = 0,
        is_active: bool = True,
    ) -> str:
        category_id = new_id()
        db.execute(
            """
            INSERT INTO categories (id, name, slug, description, parent_id, sort_order, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (category_id, name, slug, description, parent_id, int(sort_order), bool(is_active)),
        )
        return category_id

    def set_parent(self, db, category_id: str, parent_id: str | None) -> None:
        db.execute(
            """
            UPDATE categories
            SET parent_id = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND deleted_at IS NULL
            """,
            (parent_id, category_id),
        )
