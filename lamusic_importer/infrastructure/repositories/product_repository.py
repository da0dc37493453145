from __future__ import annotations

from typing import Any

from lamusic_importer.db import new_id
from lamusic_importer.infrastructure.repositories.base import BaseRepository


PRODUCT_UPDATABLE_FIELDS = (
    "name",
    "slug",
    "sku",
    "description",
    "short_description",
    "price",
    "compare_price",
    "cost_price",
    "barcode",
    "stock_quantity",
    "min_stock_alert",
    "status",
    "featured",
    "meta_title",
    "meta_description",
)


class ProductRepository(BaseRepository):
    table_name = "products"

    def map_row(self, row: dict) -> dict:
        for key in ("price", "compare_price", "cost_price"):
            row[key] = self.as_money(row.get(key))
        if row.get("price") is None:
            row["price"] = "0.00"
        row["stock_quantity"] = int(row.get("stock_quantity") or 0)
        row["min_stock_alert"] = int(row.get("min_stock_alert") or 0)
        row["featured"] = self.as_bool(row.get("featured"))
        return row

    def get_by_id(self, db, product_id: str, *, include_deleted: bool = False) -> dict | None:
        return self.fetch_one(
            db,
            """
            SELECT *
            FROM products
            WHERE id = ?
            LIMIT 1
            """,
            (product_id,),
            include_deleted=include_deleted,
        )

    def find_by_sku(self, db, sku: str) -> dict | None:
        return self.fetch_one(
            db,
            """
            SELECT *
            FROM products
            WHERE sku = ?
            LIMIT 1
            """,
            (sku,),
        )

    def slug_exists(self, db, slug: str) -> bool:
        # The unique index on slug also covers tombstoned rows.
        row = self.select_live(
            db,
            "SELECT 1 AS found FROM products WHERE slug = ? LIMIT 1",
            (slug,),
            include_deleted=True,
        ).fetchone()
        return bool(row)

    def create(
        self,
        db,
        *,
        name: str,
        slug: str,
        price: str,
        stock_quantity: int,
        sku: str | None = None,
        description: str | None = None,
        status: str = "active",
        featured: bool = False,
    ) -> str:
        product_id = new_id()
        db.execute(
            """
            INSERT INTO products (id, name, slug, sku, description, price, stock_quantity, status, featured)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (product_id, name, slug, sku, description, price, int(stock_quantity), status, bool(featured)),
        )
        return product_id

    def update(self, db, product_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - set(PRODUCT_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Campos de produto desconhecidos: {sorted(unknown)}")
        self.update_fields(db, product_id, fields)

    def associate_category(self, db, product_id: str, category_id: str) -> None:
        db.execute(
            """
            INSERT INTO product_categories (product_id, category_id)
            VALUES (?, ?)
            ON CONFLICT DO NOTHING
            """,
            (product_id, category_id),
        )

    def list_category_ids(self, db, product_id: str) -> list[str]:
        rows = db.execute(
            """
            SELECT pc.category_id
            FROM product_categories pc
            JOIN categories c ON c.id = pc.category_id
            WHERE pc.product_id = ? AND c.deleted_at IS NULL
            ORDER BY pc.created_at ASC, pc.category_id ASC
            """,
            (product_id,),
        ).fetchall()
        return [str(dict(row)["category_id"]) for row in rows]
