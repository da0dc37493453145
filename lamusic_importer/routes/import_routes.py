from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from lamusic_importer.application.import_service import ImportService
from lamusic_importer.application.product_service import ProductService
from lamusic_importer.auth import current_user_id
from lamusic_importer.db import get_db
from lamusic_importer.errors import ValidationError
from lamusic_importer.ui_strings import success_message


import_bp = Blueprint("nfe_import", __name__, url_prefix="/api/v1")


def _import_service() -> ImportService:
    return ImportService(current_app.extensions["lamusic_ai_service"])


@import_bp.post("/import/nfe")
def import_nfe():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError(message_key="nfe_content_required", details="Corpo JSON ausente ou invalido.")
    content = payload.get("nfeXmlContent")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError(message_key="nfe_content_required", details="nfeXmlContent obrigatorio.")

    summary = _import_service().process_nfe(get_db(), content, current_user_id())
    body = summary.to_payload()
    body["detail"] = success_message("nfe_imported")
    return jsonify(body), 201


@import_bp.get("/products/<product_id>/logs")
def product_logs(product_id: str):
    logs = ProductService().list_logs(get_db(), product_id)
    return jsonify({"product_id": product_id, "logs": logs, "count": len(logs)})
