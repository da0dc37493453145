from __future__ import annotations

import json
import logging
import re
from typing import Any

from lamusic_importer.errors import UnprocessableResponseError


logger = logging.getLogger(__name__)

_FENCED_DOCUMENT = re.compile(r"```[ \t]*[A-Za-z0-9_+-]*[ \t]*\r?\n(.*?)\r?\n?[ \t]*```", re.DOTALL)
_FENCED_BLOCK = re.compile(r"```[ \t]*[A-Za-z0-9_+-]*[ \t]*\r?\n(.*)```", re.DOTALL)
_INLINE_FENCE = re.compile(r"^```(.*)```$", re.DOTALL)


def strip_code_fence(raw: str) -> str:
    text = str(raw or "").strip()
    match = _FENCED_DOCUMENT.fullmatch(text) or _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    match = _INLINE_FENCE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_ai_response(raw: str | None) -> Any:
    """Decode the JSON carried by a model response, fenced or not."""
    if raw is None or not str(raw).strip():
        logger.error("ai_response_empty")
        raise UnprocessableResponseError(details="A IA retornou uma resposta vazia.")

    cleaned = strip_code_fence(raw)
    if not cleaned:
        logger.error("ai_response_empty_after_cleanup", extra={"raw_length": len(str(raw))})
        raise UnprocessableResponseError(details="A resposta da IA nao continha um JSON valido.")

    try:
        return json.loads(cleaned)
    except ValueError as exc:
        logger.error("ai_response_invalid_json", extra={"error": str(exc), "raw_length": len(str(raw))})
        raise UnprocessableResponseError(details=f"A resposta da IA nao e um JSON valido: {exc}") from exc
