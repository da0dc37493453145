from __future__ import annotations

import logging
from typing import Any, Dict, List

from lamusic_importer.db import is_unique_violation
from lamusic_importer.domain.contracts import ExtractedSupplier
from lamusic_importer.domain.tax_id import is_valid_tax_id, normalize_tax_id
from lamusic_importer.errors import DuplicateTaxIdError, InvalidTaxIdError, NotFoundError, ValidationError
from lamusic_importer.infrastructure.repositories import SupplierRepository
from lamusic_importer.infrastructure.repositories.supplier_repository import SUPPLIER_OPTIONAL_FIELDS


logger = logging.getLogger(__name__)


def _clean_optional(values: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for key in SUPPLIER_OPTIONAL_FIELDS:
        value = str(values.get(key) or "").strip()
        if key == "zip_code":
            value = normalize_tax_id(value)
        cleaned[key] = value or None
    return cleaned


class SupplierService:
    def __init__(self, repository: SupplierRepository | None = None) -> None:
        self.repository = repository or SupplierRepository()

    @staticmethod
    def validated_tax_id(raw_tax_id: str | None) -> str:
        cnpj = normalize_tax_id(raw_tax_id)
        if not is_valid_tax_id(cnpj):
            raise InvalidTaxIdError(details=f"CNPJ invalido: {str(raw_tax_id or '').strip() or 'vazio'}")
        return cnpj

    def get(self, db, supplier_id: str) -> dict:
        supplier = self.repository.get_by_id(db, supplier_id)
        if supplier is None:
            raise NotFoundError(message_key="supplier_not_found", details=f"Fornecedor {supplier_id} nao encontrado.")
        return supplier

    def find_by_tax_id(self, db, raw_tax_id: str | None) -> dict | None:
        cnpj = normalize_tax_id(raw_tax_id)
        if not cnpj:
            return None
        return self.repository.find_by_cnpj(db, cnpj)

    def list_all(self, db) -> List[dict]:
        return self.repository.list_all(db)

    def find_or_create(self, db, extracted: ExtractedSupplier) -> dict:
        """Return the live supplier for the extracted CNPJ, creating it on first sight.

        The insert runs under a savepoint: when a concurrent import wins the race the
        unique index rejects our row, the savepoint is rolled back and the winner's
        row is returned instead.
        """
        cnpj = self.validated_tax_id(extracted.tax_id)
        existing = self.repository.find_by_cnpj(db, cnpj)
        if existing is not None:
            logger.info("supplier_reused", extra={"supplier_id": existing["id"]})
            return existing

        name = str(extracted.name or "").strip()
        if not name:
            raise ValidationError(details="Nome do fornecedor ausente na NFE.")

        optional = _clean_optional(
            {
                "address": extracted.address,
                "city": extracted.city,
                "state": extracted.state,
                "zip_code": extracted.zip_code,
                "phone": extracted.phone,
                "email": extracted.email,
            }
        )
        try:
            with db.savepoint("supplier_insert"):
                supplier_id = self.repository.create(db, name=name, cnpj=cnpj, **optional)
        except Exception as exc:
            if not is_unique_violation(exc):
                raise
            winner = self.repository.find_by_cnpj(db, cnpj)
            if winner is None:
                raise
            logger.info("supplier_race_recovered", extra={"supplier_id": winner["id"]})
            return winner

        logger.info("supplier_created", extra={"supplier_id": supplier_id})
        return self.get(db, supplier_id)

    def create(self, db, data: Dict[str, Any]) -> dict:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError(details="Nome do fornecedor e obrigatorio.")
        cnpj = self.validated_tax_id(data.get("cnpj"))
        if self.repository.find_by_cnpj(db, cnpj) is not None:
            raise DuplicateTaxIdError(details=f"CNPJ {cnpj} ja cadastrado.")
        supplier_id = self.repository.create(db, name=name, cnpj=cnpj, **_clean_optional(data))
        return self.get(db, supplier_id)

    def update(self, db, supplier_id: str, patch: Dict[str, Any]) -> dict:
        current = self.get(db, supplier_id)
        fields: Dict[str, Any] = {}
        if "name" in patch:
            name = str(patch.get("name") or "").strip()
            if not name:
                raise ValidationError(details="Nome do fornecedor e obrigatorio.")
            fields["name"] = name
        if "cnpj" in patch:
            cnpj = self.validated_tax_id(patch.get("cnpj"))
            holder = self.repository.find_by_cnpj(db, cnpj)
            if holder is not None and holder["id"] != current["id"]:
                raise DuplicateTaxIdError(details=f"CNPJ {cnpj} ja cadastrado.")
            fields["cnpj"] = cnpj
        optional = _clean_optional(patch)
        fields.update({key: optional[key] for key in SUPPLIER_OPTIONAL_FIELDS if key in patch})

        self.repository.update_fields(db, supplier_id, fields)
        return self.get(db, supplier_id)

    def remove(self, db, supplier_id: str) -> None:
        self.get(db, supplier_id)
        self.repository.soft_delete(db, supplier_id)
