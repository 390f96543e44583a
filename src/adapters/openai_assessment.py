"""OpenAI assessment service adapter.

Implements the core AssessmentServicePort with a chat completion in JSON
mode. This adapter only transports: it returns the decoded JSON object and
leaves validation and clamping to the core.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError

from adapters.assessment_prompts import SYSTEM_PROMPT, build_user_prompt
from core.errors import AssessmentError
from core.models import AssessmentRequest

LOGGER = logging.getLogger(__name__)


class OpenAIAssessmentService:
    """Assessment service backed by the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1000,
        temperature: float = 0.3,
        client: Optional[Any] = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._client = client if client is not None else AsyncOpenAI(api_key=api_key)

    async def request_assessment(self, request: AssessmentRequest) -> Dict[str, Any]:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(request)},
                ],
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            raise AssessmentError(f"OpenAI request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        raw = choices[0].message.content if choices else None
        if not raw:
            raise AssessmentError("Empty response from assessment model")

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOGGER.debug("Unparseable assessment response: %.300s", raw)
            raise AssessmentError(f"Assessment model returned invalid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise AssessmentError(f"Assessment model returned {type(payload).__name__}, expected an object")
        return payload
