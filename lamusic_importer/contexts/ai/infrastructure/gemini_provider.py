from __future__ import annotations

from google import genai
from google.genai import types

from lamusic_importer.contexts.ai.domain.provider import ProviderError, TextGenerationProvider
from lamusic_importer.domain.contracts import GenerationOptions


def build_generation_config(options: GenerationOptions | None) -> types.GenerateContentConfig | None:
    if options is None:
        return None
    return types.GenerateContentConfig(
        temperature=options.temperature,
        max_output_tokens=options.max_tokens,
        top_p=options.top_p,
        top_k=options.top_k,
    )


class GeminiTextProvider(TextGenerationProvider):
    def __init__(self, api_key: str, *, client: genai.Client | None = None) -> None:
        if not client and not str(api_key or "").strip():
            raise ProviderError("GEMINI_API_KEY e obrigatoria para o Gemini.", code="missing_api_key")
        self._client = client or genai.Client(api_key=api_key)

    def generate_text(self, model_name: str, prompt: str, options: GenerationOptions | None = None) -> str:
        response = self._client.models.generate_content(
            model=model_name,
            contents=prompt,
            config=build_generation_config(options),
        )
        text = response.text
        if not text:
            raise ProviderError("Resposta vazia do Gemini.", code="empty_response")
        return text
