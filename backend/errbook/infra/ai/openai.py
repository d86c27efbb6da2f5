from __future__ import annotations

import httpx

from errbook.ai.extraction import parse_tagged_response
from errbook.domain.errors import AIErrorKind, AIServiceError
from errbook.domain.models import QuestionRecord
from errbook.infra.ai.http import JSONHTTPClient
from errbook.infra.ports.ai import AIProvider

_DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIProvider(AIProvider):
    """OpenAI-compatible chat completions returning XML-tagged fields.

    ``response_format`` is left unset so third-party compatible endpoints
    work; structure comes from the tags requested in the system prompt.
    """

    provider_name = "openai"
    output_format = "xml"

    def __init__(
        self,
        *,
        api_key: str | None,
        model_name: str = "gpt-4o",
        base_url: str | None = None,
        timeout_seconds: int = 60,
        max_tokens: int = 4096,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs,
    ):
        if not api_key:
            raise AIServiceError(AIErrorKind.AUTH_ERROR, "OPENAI_API_KEY is required for OpenAI provider")
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = (base_url or _DEFAULT_BASE_URL).rstrip("/")
        self.max_tokens = max_tokens
        self.http = JSONHTTPClient(
            label="OpenAI API",
            timeout_seconds=timeout_seconds,
            client=client,
            transport=transport,
        )

    async def _request_image(self, *, prompt: str, image_base64: str, mime_type: str) -> str:
        messages = [
            {"role": "system", "content": prompt},
            {
                "role": "user",
                "content": [
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{image_base64}"},
                    }
                ],
            },
        ]
        return await self._complete(messages)

    async def _request_text(self, *, prompt: str, user_text: str) -> str:
        messages = [
            {"role": "system", "content": prompt},
            {"role": "user", "content": user_text},
        ]
        return await self._complete(messages)

    async def _complete(self, messages: list[dict]) -> str:
        payload = {
            "model": self.model_name,
            "messages": messages,
            "max_tokens": self.max_tokens,
        }
        body = await self.http.post_json(
            f"{self.base_url}/chat/completions",
            payload=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        choices = body.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        content = message.get("content")
        return content if isinstance(content, str) else ""

    def parse_response(self, text: str) -> QuestionRecord:
        return parse_tagged_response(text, self.vocabulary)

    async def aclose(self) -> None:
        await self.http.aclose()
