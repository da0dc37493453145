from __future__ import annotations

import contextvars
import logging
import unicodedata
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from lamusic_importer.contexts.ai.application import prompts
from lamusic_importer.contexts.ai.application.gateway import AiGateway
from lamusic_importer.contexts.ai.application.response_parser import parse_ai_response
from lamusic_importer.domain.contracts import AiResult, GenerationOptions, ImportSummary, ProductEnrichment
from lamusic_importer.errors import AiCallFailedError


logger = logging.getLogger(__name__)

INVALID_MARKER = "INVALIDA"


def _fold(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return normalized.encode("ascii", "ignore").decode("ascii").upper()


def validation_rejects(result: AiResult) -> bool:
    """A document is rejected when the call failed or the answer carries the invalid marker."""
    if not result.success:
        return True
    return INVALID_MARKER in _fold(result.text or "")


class AiService:
    """Use cases over the gateway: one prompt and one sampling preset each."""

    def __init__(self, gateway: AiGateway) -> None:
        self.gateway = gateway

    def _run_parallel(self, calls: Sequence[Tuple[str, GenerationOptions]]) -> List[AiResult]:
        with ThreadPoolExecutor(max_workers=len(calls), thread_name_prefix="ai-call") as executor:
            futures = [
                executor.submit(contextvars.copy_context().run, self.gateway.generate, prompt, options)
                for prompt, options in calls
            ]
            return [future.result() for future in futures]

    def generate_text(self, prompt: str, options: GenerationOptions | None = None) -> AiResult:
        return self.gateway.generate(prompt, options)

    def validate_nfe(self, nfe_text: str) -> AiResult:
        return self.gateway.generate(prompts.build_nfe_validation_prompt(nfe_text), prompts.VALIDATION_OPTIONS)

    def extract_supplier(self, nfe_text: str) -> AiResult:
        return self.gateway.generate(
            prompts.build_supplier_extraction_prompt(nfe_text),
            prompts.SUPPLIER_EXTRACTION_OPTIONS,
        )

    def extract_products(self, nfe_text: str) -> AiResult:
        return self.gateway.generate(
            prompts.build_product_extraction_prompt(nfe_text),
            prompts.PRODUCT_EXTRACTION_OPTIONS,
        )

    def extract_invoice(self, nfe_text: str) -> Tuple[AiResult, AiResult]:
        """Supplier and line-item extraction, issued concurrently."""
        supplier_result, products_result = self._run_parallel(
            [
                (prompts.build_supplier_extraction_prompt(nfe_text), prompts.SUPPLIER_EXTRACTION_OPTIONS),
                (prompts.build_product_extraction_prompt(nfe_text), prompts.PRODUCT_EXTRACTION_OPTIONS),
            ]
        )
        return supplier_result, products_result

    def categorize_product(self, product: Mapping[str, Any], category_names: Sequence[str]) -> AiResult:
        return self.gateway.generate(
            prompts.build_categorization_prompt(product, category_names),
            prompts.CATEGORIZATION_OPTIONS,
        )

    def categorize_batch(
        self,
        products: Sequence[Mapping[str, Any]],
        category_names: Sequence[str],
    ) -> List[Dict[str, Any]]:
        result = self.gateway.generate(
            prompts.build_batch_categorization_prompt(products, category_names),
            prompts.BATCH_CATEGORIZATION_OPTIONS,
        )
        if not result.success:
            raise AiCallFailedError(details=result.error)
        payload = parse_ai_response(result.text)
        if isinstance(payload, dict):
            payload = payload.get("categorizations", [])
        if not isinstance(payload, list):
            return []
        return [entry for entry in payload if isinstance(entry, dict)]

    def generate_full_enrichment(self, product: Mapping[str, Any]) -> ProductEnrichment:
        description, meta_title, meta_description = self._run_parallel(
            [
                (prompts.build_description_prompt(product), prompts.DESCRIPTION_OPTIONS),
                (prompts.build_seo_title_prompt(product), prompts.SEO_TITLE_OPTIONS),
                (prompts.build_meta_description_prompt(product), prompts.META_DESCRIPTION_OPTIONS),
            ]
        )
        results = {"description": description, "meta_title": meta_title, "meta_description": meta_description}
        failed = sorted(field for field, result in results.items() if not result.success)
        if len(failed) == len(results):
            raise AiCallFailedError(details="; ".join(str(result.error) for result in results.values()))
        if failed:
            logger.warning("ai_enrichment_partial", extra={"failed_fields": failed, "product": product.get("name")})
        return ProductEnrichment(
            **{field: (result.text or "").strip() or None for field, result in results.items() if result.success}
        )

    def summarize_import(self, summary: ImportSummary) -> AiResult:
        return self.gateway.generate(
            prompts.build_import_summary_prompt(
                {
                    "total_products": summary.processed_count,
                    "supplier": (summary.supplier or {}).get("name"),
                    "total_value": summary.total_value,
                    "import_date": summary.imported_at,
                    "categories": summary.category_names,
                    "new_products": summary.created_count,
                    "updated_products": summary.restocked_count,
                }
            ),
            prompts.IMPORT_SUMMARY_OPTIONS,
        )

    def status(self) -> dict:
        return self.gateway.status()
