from __future__ import annotations

from urllib import parse

import httpx

from errbook.ai.extraction import parse_json_response
from errbook.domain.models import QuestionRecord
from errbook.infra.ai.http import JSONHTTPClient
from errbook.infra.ports.ai import AIProvider

_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(AIProvider):
    """Gemini ``generateContent`` in JSON mode.

    The backend is asked for ``application/json`` output, but responses are
    still run through the full JSON fallback chain.
    """

    provider_name = "gemini"
    output_format = "json"

    def __init__(
        self,
        *,
        api_key: str | None,
        model_name: str = "gemini-2.5-flash",
        base_url: str | None = None,
        timeout_seconds: int = 60,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs,
    ):
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is required for Gemini provider")
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = (base_url or _DEFAULT_BASE_URL).rstrip("/")
        self.http = JSONHTTPClient(
            label="Gemini API",
            timeout_seconds=timeout_seconds,
            client=client,
            transport=transport,
        )

    async def _request_image(self, *, prompt: str, image_base64: str, mime_type: str) -> str:
        parts = [
            {"text": prompt},
            {"inlineData": {"mimeType": mime_type, "data": image_base64}},
        ]
        return await self._generate(parts)

    async def _request_text(self, *, prompt: str, user_text: str) -> str:
        # The similar-question prompt already embeds the original question.
        return await self._generate([{"text": prompt}])

    async def _generate(self, parts: list[dict]) -> str:
        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        url = f"{self.base_url}/models/{parse.quote(self.model_name)}:generateContent"
        body = await self.http.post_json(url, payload=payload, params={"key": self.api_key})

        candidates = body.get("candidates") or []
        if not candidates:
            feedback = body.get("promptFeedback") or {}
            raise RuntimeError(f"Gemini response has no candidates: {feedback}")

        content_parts = ((candidates[0].get("content") or {}).get("parts") or [])
        return "".join(part.get("text", "") for part in content_parts if isinstance(part, dict))

    def parse_response(self, text: str) -> QuestionRecord:
        return parse_json_response(text, self.vocabulary)

    async def aclose(self) -> None:
        await self.http.aclose()
