from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from adapters.assessment_prompts import SYSTEM_PROMPT, build_user_prompt
from adapters.openai_assessment import OpenAIAssessmentService
from core.assessment import CATEGORIES, ImportanceAssessor
from core.errors import AssessmentError
from core.models import AssessmentRequest, MediaKind


class FakeCompletions:
    def __init__(self, content=None, error: Exception | None = None) -> None:
        self._content = content
        self._error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        if self._content is None:
            return SimpleNamespace(choices=[])
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self._content))])


def _service(completions: FakeCompletions) -> OpenAIAssessmentService:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIAssessmentService("sk-test", model="gpt-test", client=client)


REQUEST = AssessmentRequest(text="Flood warning for the river district", source_name="City News")


def test_request_uses_json_mode_and_prompts() -> None:
    completions = FakeCompletions('{"importance": {"score": 77}}')
    payload = asyncio.run(_service(completions).request_assessment(REQUEST))

    assert payload == {"importance": {"score": 77}}
    call = completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["response_format"] == {"type": "json_object"}
    assert call["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert call["messages"][1]["content"] == build_user_prompt(REQUEST)


def test_user_prompt_carries_message_details() -> None:
    prompt = build_user_prompt(
        AssessmentRequest(text="Flood warning for the river district", source_name="City News", media_kind=MediaKind.PHOTO)
    )
    assert "Flood warning for the river district" in prompt
    assert "City News" in prompt
    assert "photo" in prompt
    for category in CATEGORIES:
        assert category in prompt


def test_transport_error_becomes_assessment_error() -> None:
    completions = FakeCompletions(error=OpenAIError("rate limited"))
    with pytest.raises(AssessmentError):
        asyncio.run(_service(completions).request_assessment(REQUEST))


@pytest.mark.parametrize("content", [None, "", "not json at all", "[1, 2, 3]"])
def test_unusable_responses_become_assessment_error(content) -> None:
    with pytest.raises(AssessmentError):
        asyncio.run(_service(FakeCompletions(content)).request_assessment(REQUEST))


def test_assessor_falls_back_when_service_fails() -> None:
    assessor = ImportanceAssessor(_service(FakeCompletions("not json at all")))
    assessment = asyncio.run(assessor.assess("Flood warning for the river district"))
    assert assessment.fallback


def test_assessor_uses_service_payload() -> None:
    content = '{"importance": {"score": 88, "reasoning": "Flood risk"}, "category": "incidents"}'
    assessment = asyncio.run(ImportanceAssessor(_service(FakeCompletions(content))).assess("Flood warning"))
    assert not assessment.fallback
    assert assessment.score == 88
    assert assessment.category.category == "incidents"
