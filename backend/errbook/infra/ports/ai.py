from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from errbook.ai.prompts import OutputFormat, PromptOptions, generate_analyze_prompt, generate_similar_question_prompt
from errbook.ai.retry import RetryPolicy, Sleep, call_with_retry
from errbook.domain.errors import AIServiceError, classify_error
from errbook.domain.models import QuestionRecord
from errbook.domain.subjects import SubjectVocabulary

logger = logging.getLogger(__name__)


def encode_image(image_data: bytes | str) -> str:
    """Return base64 text; strings are assumed to be encoded already."""
    if isinstance(image_data, str):
        return image_data
    return base64.b64encode(image_data).decode("ascii")


class AIProvider(ABC):
    """One upstream AI backend.

    Subclasses perform a single remote call returning raw text and know how
    to turn that text into a ``QuestionRecord``. Classification and retries
    are shared here.
    """

    provider_name = "base"
    output_format: OutputFormat = "json"

    def __init__(
        self,
        *,
        vocabulary: SubjectVocabulary | None = None,
        retry_policy: RetryPolicy | None = None,
        prompt_options: PromptOptions | None = None,
        sleep: Sleep | None = None,
    ):
        self.vocabulary = vocabulary or SubjectVocabulary.default()
        self.retry_policy = retry_policy or RetryPolicy()
        self.prompt_options = prompt_options or PromptOptions()
        self._sleep = sleep

    @abstractmethod
    async def _request_image(self, *, prompt: str, image_base64: str, mime_type: str) -> str:
        """Send one image analysis request and return the raw model text."""

    @abstractmethod
    async def _request_text(self, *, prompt: str, user_text: str) -> str:
        """Send one text-only request and return the raw model text."""

    @abstractmethod
    def parse_response(self, text: str) -> QuestionRecord:
        """Normalize raw model text into a validated record."""

    async def analyze_image(
        self,
        image_data: bytes | str,
        mime_type: str = "image/jpeg",
        language: str = "zh",
    ) -> QuestionRecord:
        image_base64 = encode_image(image_data)
        logger.info(
            "[%s] analyze_image mime=%s language=%s size=%d",
            self.provider_name,
            mime_type,
            language,
            len(image_base64),
        )
        return await self._run(
            "analyze_image",
            lambda: self._request_image(
                prompt=generate_analyze_prompt(
                    language,
                    subjects=self.vocabulary,
                    output_format=self.output_format,
                    options=self.prompt_options,
                ),
                image_base64=image_base64,
                mime_type=mime_type,
            ),
        )

    async def generate_similar_question(
        self,
        original_question: str,
        knowledge_points: list[str],
        language: str = "zh",
        difficulty: str = "medium",
    ) -> QuestionRecord:
        user_text = (
            f'Original Question: "{original_question}"\n'
            f"Knowledge Points: {', '.join(knowledge_points)}"
        )
        logger.info(
            "[%s] generate_similar_question difficulty=%s language=%s points=%s",
            self.provider_name,
            difficulty,
            language,
            list(knowledge_points),
        )
        return await self._run(
            "generate_similar_question",
            lambda: self._request_text(
                prompt=generate_similar_question_prompt(
                    language,
                    original_question,
                    list(knowledge_points),
                    difficulty,
                    subjects=self.vocabulary,
                    output_format=self.output_format,
                    options=self.prompt_options,
                ),
                user_text=user_text,
            ),
        )

    async def _run(self, label: str, request: Callable[[], Awaitable[str]]) -> QuestionRecord:
        async def attempt() -> QuestionRecord:
            try:
                text = await request()
                if not text or not text.strip():
                    raise RuntimeError("Empty response from AI")
                logger.debug("[%s] raw response: %s", self.provider_name, text)
                return self.parse_response(text)
            except AIServiceError:
                raise
            except Exception as exc:
                kind = classify_error(exc)
                logger.warning("[%s] %s classified as %s: %s", self.provider_name, label, kind.value, exc)
                raise AIServiceError(kind, str(exc)) from exc

        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return await call_with_retry(
            attempt,
            policy=self.retry_policy,
            label=f"{self.provider_name}.{label}",
            **kwargs,
        )

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
