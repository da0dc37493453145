from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Mapping

from lamusic_importer.contexts.ai.domain.provider import TextGenerationProvider
from lamusic_importer.contexts.ai.infrastructure.gemini_provider import GeminiTextProvider
from lamusic_importer.contexts.ai.infrastructure.rate_governor import RequestRateGovernor
from lamusic_importer.domain.contracts import AiResult, GenerationOptions
from lamusic_importer.errors import AiNotConfiguredError
from lamusic_importer.observability import observe_ai_call


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AiSettings:
    api_key: str | None
    model_name: str = "gemini-1.5-flash"
    requests_per_minute: int = 15
    window_seconds: int = 60

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AiSettings":
        return cls(
            api_key=str(config.get("GEMINI_API_KEY") or "").strip() or None,
            model_name=str(config.get("GEMINI_MODEL") or "gemini-1.5-flash").strip(),
            requests_per_minute=int(config.get("AI_REQUESTS_PER_MINUTE") or 15),
            window_seconds=int(config.get("AI_RATE_WINDOW_SECONDS") or 60),
        )


def estimate_tokens(text: str | None) -> int:
    return math.ceil(len(text or "") / 4)


class AiGateway:
    """Rate-limited, failure-capturing front door to the text model.

    Provider errors never escape ``generate``: they come back as an
    unsuccessful ``AiResult``. The only exception raised is
    ``AiNotConfiguredError`` when the gateway was never initialized.
    """

    def __init__(
        self,
        settings: AiSettings,
        *,
        provider: TextGenerationProvider | None = None,
        governor: RequestRateGovernor | None = None,
    ) -> None:
        self.settings = settings
        self._provider = provider
        self._governor = governor or RequestRateGovernor(
            max_requests=settings.requests_per_minute,
            window_seconds=settings.window_seconds,
        )
        self._lock = Lock()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def governor(self) -> RequestRateGovernor:
        return self._governor

    def initialize(self) -> None:
        with self._lock:
            if self._initialized:
                return
            if self._provider is None:
                if not self.settings.api_key:
                    raise AiNotConfiguredError(details="GEMINI_API_KEY nao configurada.")
                self._provider = GeminiTextProvider(self.settings.api_key)
            self._initialized = True
        logger.info("ai_gateway_initialized", extra={"model": self.settings.model_name})

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> AiResult:
        if not self._initialized or self._provider is None:
            raise AiNotConfiguredError(details="Gateway de IA nao inicializado.")

        waited = self._governor.acquire()
        started = time.perf_counter()
        try:
            text = self._provider.generate_text(self.settings.model_name, prompt, options)
        except Exception as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.warning(
                "ai_call_failed",
                extra={"model": self.settings.model_name, "elapsed_ms": elapsed_ms, "error": str(exc)},
            )
            observe_ai_call(False, elapsed_ms)
            return AiResult(success=False, error=str(exc) or exc.__class__.__name__, elapsed_ms=elapsed_ms)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if not str(text or "").strip():
            observe_ai_call(False, elapsed_ms)
            return AiResult(success=False, error="Resposta vazia do modelo.", elapsed_ms=elapsed_ms)

        tokens_used = estimate_tokens(text)
        observe_ai_call(True, elapsed_ms, tokens_used)
        logger.debug(
            "ai_call_ok",
            extra={"elapsed_ms": elapsed_ms, "tokens_used": tokens_used, "rate_wait_seconds": round(waited, 3)},
        )
        return AiResult(success=True, text=text, tokens_used=tokens_used, elapsed_ms=elapsed_ms)

    def status(self) -> dict:
        return {
            "initialized": self._initialized,
            "model": self.settings.model_name,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
