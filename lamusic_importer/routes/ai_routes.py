from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from lamusic_importer.application.category_service import CategoryService
from lamusic_importer.contexts.ai.application.service import AiService
from lamusic_importer.db import get_db
from lamusic_importer.domain.contracts import ImportSummary
from lamusic_importer.errors import AiCallFailedError, ValidationError


ai_bp = Blueprint("ai", __name__, url_prefix="/api/v1/ai")


def _ai_service() -> AiService:
    return current_app.extensions["lamusic_ai_service"]


@ai_bp.get("/status")
def ai_status():
    return jsonify(_ai_service().status())


@ai_bp.post("/categorize-products")
def categorize_products():
    """Suggest a category for each product in one call, restricted to the active taxonomy."""
    payload = request.get_json(silent=True)
    products = payload.get("products") if isinstance(payload, dict) else None
    if not isinstance(products, list) or not products or not all(isinstance(item, dict) for item in products):
        raise ValidationError(details="products deve ser uma lista de objetos.")

    category_names = [category["name"] for category in CategoryService().list_active(get_db())]
    if not category_names:
        raise ValidationError(details="Nenhuma categoria ativa cadastrada.")

    entries = _ai_service().categorize_batch(products, category_names)
    return jsonify({"categorizations": entries, "count": len(entries), "availableCategories": category_names})


@ai_bp.post("/import-summary")
def import_summary():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError(details="Corpo JSON ausente ou invalido.")

    result = _ai_service().summarize_import(ImportSummary.from_payload(payload))
    if not result.success:
        raise AiCallFailedError(details=result.error)
    return jsonify({"summary": (result.text or "").strip(), "tokensUsed": result.tokens_used})
