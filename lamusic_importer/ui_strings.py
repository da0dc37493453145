from __future__ import annotations

from typing import Dict


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "LaMusic Importer",
    "supplier": "Fornecedor",
    "product": "Produto",
    "category": "Categoria",
    "nfe": "Nota fiscal eletronica",
}


PRODUCT_LOG_ACTION_LABELS: Dict[str, str] = {
    "created": "Produto criado",
    "updated": "Produto atualizado",
    "deleted": "Produto removido",
    "stock_changed": "Estoque alterado",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "nfe_imported": "NFE processada com sucesso.",
    },
    "error": {
        "ai_call_failed": "O servico de IA nao respondeu. Tente novamente em instantes.",
        "ai_not_configured": "Servico de IA nao configurado.",
        "auth_required": "Autenticacao necessaria.",
        "auth_invalid_token": "Token de acesso invalido ou expirado.",
        "category_cycle": "A categoria nao pode ser filha de si mesma ou de uma descendente.",
        "category_has_children": "A categoria possui subcategorias ativas e nao pode ser removida.",
        "category_not_found": "Categoria nao encontrada.",
        "duplicate_sku": "Ja existe um produto com este SKU.",
        "duplicate_slug": "Ja existe um registro com este slug.",
        "duplicate_tax_id": "Ja existe um fornecedor com este CNPJ.",
        "invalid_document": "O conteudo da NFE e invalido ou nao pode ser processado.",
        "invalid_tax_id": "CNPJ informado e invalido.",
        "nfe_content_required": "Informe o conteudo da NFE em nfeXmlContent.",
        "not_found": "Registro nao encontrado.",
        "persistence_error": "Falha ao gravar os dados. Nenhuma alteracao foi aplicada.",
        "product_not_found": "Produto nao encontrado.",
        "rate_limit_exceeded": "Muitas requisicoes. Tente novamente em instantes.",
        "stock_mode_invalid": "Modo de atualizacao de estoque invalido.",
        "quantity_invalid": "Quantidade invalida.",
        "supplier_not_found": "Fornecedor nao encontrado.",
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente em instantes.",
        "unprocessable_response": "A resposta da IA nao continha um JSON valido.",
        "validation_error": "Dados informados sao invalidos.",
    },
}


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def product_log_action_label(action: str, default: str | None = None) -> str:
    return PRODUCT_LOG_ACTION_LABELS.get(str(action or "").strip(), default or str(action or ""))
