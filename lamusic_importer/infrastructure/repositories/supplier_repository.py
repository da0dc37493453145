from __future__ import annotations

from typing import Any

from lamusic_importer.db import new_id
from lamusic_importer.infrastructure.repositories.base import BaseRepository


SUPPLIER_OPTIONAL_FIELDS = ("email", "phone", "address", "city", "state", "zip_code")


class SupplierRepository(BaseRepository):
    table_name = "suppliers"

    def get_by_id(self, db, supplier_id: str) -> dict | None:
        return self.fetch_one(
            db,
            """
            SELECT *
            FROM suppliers
            WHERE id = ?
            LIMIT 1
            """,
            (supplier_id,),
        )

    def find_by_cnpj(self, db, cnpj: str) -> dict | None:
        return self.fetch_one(
            db,
            """
            SELECT *
            FROM suppliers
            WHERE cnpj = ?
            LIMIT 1
            """,
            (cnpj,),
        )

    def list_all(self, db) -> list[dict]:
        return self.fetch_all(
            db,
            """
            SELECT *
            FROM suppliers
            ORDER BY name ASC, id ASC
            """,
        )

    def create(self, db, *, name: str, cnpj: str, **optional: Any) -> str:
        supplier_id = new_id()
        values = {key: optional.get(key) for key in SUPPLIER_OPTIONAL_FIELDS}
        db.execute(
            """
            INSERT INTO suppliers (id, name, cnpj, email, phone, address, city, state, zip_code)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (supplier_id, name, cnpj, *values.values()),
        )
        return supplier_id
