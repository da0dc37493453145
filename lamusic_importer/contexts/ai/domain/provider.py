from __future__ import annotations

from abc import ABC, abstractmethod

from lamusic_importer.domain.contracts import GenerationOptions


class ProviderError(RuntimeError):
    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = str(code or "").strip() or None


class TextGenerationProvider(ABC):
    """Plain-text completion backend; the only seam that knows a vendor SDK."""

    @abstractmethod
    def generate_text(self, model_name: str, prompt: str, options: GenerationOptions | None = None) -> str:
        raise NotImplementedError
