from __future__ import annotations

from typing import Any, Dict

from lamusic_importer.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "Nao foi possivel concluir a operacao.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.details and not self.critical:
            payload["details"] = self.details
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"


class AuthenticationError(UserActionError):
    default_code = "auth_required"
    default_message_key = "auth_required"
    default_http_status = 401


class InvalidDocumentError(UserActionError):
    default_code = "invalid_document"
    default_message_key = "invalid_document"


class InvalidTaxIdError(UserActionError):
    default_code = "invalid_tax_id"
    default_message_key = "invalid_tax_id"


class UnprocessableResponseError(AppError):
    default_code = "unprocessable_response"
    default_message_key = "unprocessable_response"
    default_http_status = 422
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "not_found"
    default_http_status = 404


class ConflictError(UserActionError):
    default_code = "conflict"
    default_http_status = 409


class DuplicateSkuError(ConflictError):
    default_code = "duplicate_sku"
    default_message_key = "duplicate_sku"


class DuplicateSlugError(ConflictError):
    default_code = "duplicate_slug"
    default_message_key = "duplicate_slug"


class DuplicateTaxIdError(ConflictError):
    default_code = "duplicate_tax_id"
    default_message_key = "duplicate_tax_id"


class CategoryCycleError(ConflictError):
    default_code = "category_cycle"
    default_message_key = "category_cycle"


class CategoryHasChildrenError(ConflictError):
    default_code = "category_has_children"
    default_message_key = "category_has_children"


class IntegrationError(AppError):
    default_code = "integration_error"
    default_message_key = "ai_call_failed"
    default_http_status = 502
    default_critical = False


class AiCallFailedError(IntegrationError):
    default_code = "ai_call_failed"
    default_message_key = "ai_call_failed"


class PersistenceError(AppError):
    default_code = "persistence_error"
    default_message_key = "persistence_error"
    default_http_status = 500
    default_critical = True


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


class AiNotConfiguredError(SystemError):
    default_code = "ai_not_configured"
    default_message_key = "ai_not_configured"
