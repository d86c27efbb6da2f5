from __future__ import annotations

from errbook.ai.extraction import parse_tagged_response
from errbook.domain.models import QuestionRecord
from errbook.infra.ports.ai import AIProvider


class MockAIProvider(AIProvider):
    provider_name = "mock"
    output_format = "xml"
    model_name = "mock-ai-v1"

    async def _request_image(self, *, prompt: str, image_base64: str, mime_type: str) -> str:
        return (
            "<question_text>[mock] 解方程 $x^2 - 5x + 6 = 0$</question_text>\n"
            "<answer_text>$x_1 = 2, x_2 = 3$</answer_text>\n"
            f"<analysis>[mock] {mime_type} image of {len(image_base64)} base64 chars; factor as $(x-2)(x-3)=0$.</analysis>\n"
            "<subject>数学</subject>\n"
            "<knowledge_points>一元二次方程, 因式分解</knowledge_points>"
        )

    async def _request_text(self, *, prompt: str, user_text: str) -> str:
        return (
            f"<question_text>[mock] variant of: {user_text[:80]}</question_text>\n"
            "<answer_text>[mock] answer</answer_text>\n"
            "<analysis>[mock] analysis</analysis>\n"
            "<subject>其他</subject>\n"
            "<knowledge_points></knowledge_points>"
        )

    def parse_response(self, text: str) -> QuestionRecord:
        return parse_tagged_response(text, self.vocabulary)
