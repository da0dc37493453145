from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Sequence

from lamusic_importer.application.category_service import CategoryService
from lamusic_importer.application.product_service import ProductService
from lamusic_importer.application.supplier_service import SupplierService
from lamusic_importer.contexts.ai.application.response_parser import parse_ai_response
from lamusic_importer.contexts.ai.application.service import AiService, validation_rejects
from lamusic_importer.db import is_database_error
from lamusic_importer.domain.contracts import (
    ExtractedLineItem,
    ExtractedSupplier,
    ImportSummary,
    ProductCreateInput,
    line_items_from_payload,
)
from lamusic_importer.errors import (
    AiCallFailedError,
    AppError,
    InvalidDocumentError,
    PersistenceError,
    UnprocessableResponseError,
    ValidationError,
)
from lamusic_importer.observability import observe_import


logger = logging.getLogger(__name__)


class ImportState(str, Enum):
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    RESOLVING_SUPPLIER = "resolving_supplier"
    RESOLVING_CATEGORIES = "resolving_categories"
    MATCHING = "matching"
    CREATING_OR_UPDATING = "creating_or_updating"
    CATEGORIZING = "categorizing"
    ENRICHING = "enriching"
    COMMITTED = "committed"
    REJECTED_INVALID = "rejected_invalid"
    EXTRACTION_FAILED = "extraction_failed"
    PARSE_FAILED = "parse_failed"


def _clean_category_answer(text: str | None) -> str:
    lines = [line.strip() for line in str(text or "").strip().splitlines() if line.strip()]
    if not lines:
        return ""
    answer = lines[0]
    if ":" in answer and answer.split(":", 1)[0].strip().upper() in {"CATEGORIA", "CATEGORY"}:
        answer = answer.split(":", 1)[1]
    return answer.strip().strip("*#`\"'").strip().rstrip(".").strip()


def _absorbable(exc: Exception) -> bool:
    return isinstance(exc, AppError) or is_database_error(exc)


class ImportService:
    """NFE import pipeline.

    AI validation and extraction happen before any write. Everything after that
    runs inside a single ``db.transaction()``: the supplier, every product and
    every log row commit together or not at all. Categorization and enrichment
    of new products are best effort and only add warnings to the summary.
    """

    def __init__(
        self,
        ai_service: AiService,
        *,
        supplier_service: SupplierService | None = None,
        category_service: CategoryService | None = None,
        product_service: ProductService | None = None,
    ) -> None:
        self.ai_service = ai_service
        self.supplier_service = supplier_service or SupplierService()
        self.category_service = category_service or CategoryService()
        self.product_service = product_service or ProductService()

    @staticmethod
    def _enter(state: ImportState, **context: Any) -> None:
        logger.info("nfe_import_state", extra={"state": state.value, **context})

    def process_nfe(self, db, nfe_content: str | None, user_id: str | None) -> ImportSummary:
        content = str(nfe_content or "").strip()
        if not content:
            raise ValidationError(message_key="nfe_content_required", details="nfeXmlContent vazio.")

        self._enter(ImportState.VALIDATING, content_length=len(content))
        validation = self.ai_service.validate_nfe(content)
        if validation_rejects(validation):
            self._enter(ImportState.REJECTED_INVALID)
            observe_import(ImportState.REJECTED_INVALID.value)
            reason = validation.error if not validation.success else (validation.text or "").strip()[:300]
            raise InvalidDocumentError(details=reason or None)

        self._enter(ImportState.EXTRACTING)
        supplier_result, products_result = self.ai_service.extract_invoice(content)
        if not supplier_result.success or not products_result.success:
            self._enter(ImportState.EXTRACTION_FAILED)
            observe_import(ImportState.EXTRACTION_FAILED.value)
            errors = [result.error for result in (supplier_result, products_result) if not result.success]
            raise AiCallFailedError(details="; ".join(str(error) for error in errors))

        try:
            extracted_supplier = ExtractedSupplier.from_payload(parse_ai_response(supplier_result.text))
            line_items = line_items_from_payload(parse_ai_response(products_result.text))
        except UnprocessableResponseError:
            self._enter(ImportState.PARSE_FAILED)
            observe_import(ImportState.PARSE_FAILED.value)
            raise

        try:
            with db.transaction():
                summary = self._persist(db, extracted_supplier, line_items, user_id)
        except AppError:
            observe_import("failed")
            raise
        except Exception as exc:
            observe_import("failed")
            if is_database_error(exc):
                logger.exception("nfe_import_persistence_failed")
                raise PersistenceError(details=str(exc)) from exc
            raise

        self._enter(ImportState.COMMITTED, processed_count=summary.processed_count)
        observe_import(ImportState.COMMITTED.value, summary.processed_count)
        return summary

    def _persist(
        self,
        db,
        extracted_supplier: ExtractedSupplier,
        line_items: Sequence[ExtractedLineItem],
        user_id: str | None,
    ) -> ImportSummary:
        self._enter(ImportState.RESOLVING_CATEGORIES)
        categories = self.category_service.list_active(db)
        category_names = [category["name"] for category in categories]

        self._enter(ImportState.RESOLVING_SUPPLIER)
        supplier = self.supplier_service.find_or_create(db, extracted_supplier)

        summary = ImportSummary(
            supplier=supplier,
            processed_products=[],
            available_categories_count=len(categories),
            total_value=str(sum((Decimal(item.total_price) for item in line_items), Decimal("0.00"))),
            imported_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
        for index, item in enumerate(line_items):
            product = self._process_item(db, index, item, categories, category_names, user_id, summary)
            summary.processed_products.append(product)
        return summary

    def _process_item(
        self,
        db,
        index: int,
        item: ExtractedLineItem,
        categories: List[dict],
        category_names: List[str],
        user_id: str | None,
        summary: ImportSummary,
    ) -> dict:
        self._enter(ImportState.MATCHING, item=index, sku=item.sku)
        existing = self.product_service.find_by_sku(db, item.sku)

        self._enter(ImportState.CREATING_OR_UPDATING, item=index, restock=existing is not None)
        if existing is not None:
            summary.restocked_count += 1
            return self.product_service.update_stock(db, existing["id"], item.quantity, "increment", user_id)

        product = self.product_service.create(
            db,
            ProductCreateInput(
                name=item.name,
                price=item.unit_price,
                stock_quantity=item.quantity,
                sku=item.sku,
                description=item.description or item.name,
            ),
            user_id,
        )
        summary.created_count += 1

        self._enter(ImportState.CATEGORIZING, item=index, product_id=product["id"])
        category = self._categorize(db, product, item, categories, category_names, summary)

        self._enter(ImportState.ENRICHING, item=index, product_id=product["id"])
        return self._enrich(db, product, item, category, user_id, summary)

    def _categorize(
        self,
        db,
        product: Dict[str, Any],
        item: ExtractedLineItem,
        categories: List[dict],
        category_names: List[str],
        summary: ImportSummary,
    ) -> dict | None:
        if not category_names:
            summary.warnings.append(f"Nenhuma categoria ativa para classificar {product['name']}.")
            return None

        result = self.ai_service.categorize_product(
            {"name": product["name"], "description": item.description, "brand": item.brand, "sku": item.sku},
            category_names,
        )
        if not result.success:
            logger.warning("nfe_import_categorization_failed", extra={"product_id": product["id"], "error": result.error})
            summary.warnings.append(f"Falha ao categorizar {product['name']}: {result.error}")
            return None

        suggested = _clean_category_answer(result.text)
        category = self.category_service.find_by_name(db, suggested, categories)
        if category is None:
            logger.warning(
                "nfe_import_category_unmatched",
                extra={"product_id": product["id"], "suggested_category": suggested},
            )
            summary.warnings.append(f"Categoria sugerida '{suggested}' nao existe para {product['name']}.")
            return None

        try:
            with db.savepoint("product_category"):
                self.product_service.associate_category(db, product["id"], category["id"])
        except Exception as exc:
            if not _absorbable(exc):
                raise
            logger.warning("nfe_import_category_association_failed", extra={"product_id": product["id"]}, exc_info=True)
            summary.warnings.append(f"Falha ao associar categoria a {product['name']}.")
            return None

        summary.categorized_count += 1
        if category["name"] not in summary.category_names:
            summary.category_names.append(category["name"])
        return category

    def _enrich(
        self,
        db,
        product: Dict[str, Any],
        item: ExtractedLineItem,
        category: dict | None,
        user_id: str | None,
        summary: ImportSummary,
    ) -> dict:
        try:
            enrichment = self.ai_service.generate_full_enrichment(
                {
                    "name": product["name"],
                    "brand": item.brand,
                    "category": category["name"] if category else None,
                    "features": [item.description] if item.description else None,
                }
            )
            patch = enrichment.as_patch()
            if not patch:
                return product
            with db.savepoint("product_enrichment"):
                enriched = self.product_service.update(db, product["id"], patch, user_id)
        except Exception as exc:
            if not _absorbable(exc):
                raise
            logger.warning("nfe_import_enrichment_failed", extra={"product_id": product["id"]}, exc_info=True)
            summary.warnings.append(f"Falha ao enriquecer {product['name']}.")
            return product

        summary.enriched_count += 1
        return enriched
