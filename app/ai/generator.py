"""Scenario content generation through OpenRouter using the openai SDK."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Final, Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.config import Settings
from app.core.exceptions import GenerationError

logger = logging.getLogger(__name__)

_FENCE_PATTERN: Final = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_SYSTEM_PROMPT: Final[str] = (
  "You design spoken-conversation practice scenarios for language learners.\n"
  "Reply with a single JSON object with the keys: title, description, difficulty, cefrLevel, learningGoal, "
  "instructions, context, expectedOutcome, learningObjectives (list of strings), persona (object).\n"
  "Output valid JSON only, no markdown formatting."
)


@dataclass(frozen=True)
class GenerationRequest:
  brief: str
  mode: str = "tutor"
  language_hint: str | None = None


class GeneratedContent(BaseModel):
  """Validated scenario content returned by the generator."""

  model_config = ConfigDict(populate_by_name=True, extra="allow")

  title: str = Field(min_length=1)
  description: str = Field(min_length=1)
  difficulty: str | None = None
  cefr_level: str | None = Field(default=None, alias="cefrLevel")
  learning_goal: str | None = Field(default=None, alias="learningGoal")
  instructions: str | None = None
  context: str | None = None
  expected_outcome: str | None = Field(default=None, alias="expectedOutcome")
  learning_objectives: list[str] = Field(default_factory=list, alias="learningObjectives")
  persona: dict[str, Any] | None = None


class ContentGenerator(Protocol):
  """Opaque request -> content call. Implementations may fail or hang."""

  async def generate(self, request: GenerationRequest) -> GeneratedContent:
    """Produce scenario content for a brief."""


def strip_json_fences(raw: str) -> str:
  return _FENCE_PATTERN.sub("", raw.strip()).strip()


def parse_generated_content(raw: str) -> GeneratedContent:
  """Parse a model reply into GeneratedContent, tolerating fences and surrounding text."""
  cleaned = strip_json_fences(raw)
  try:
    payload = json.loads(cleaned)
  except json.JSONDecodeError as exc:
    # Fall back to the outermost object so chatter around the JSON does not cost a retry.
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
      raise GenerationError(f"Generator returned invalid JSON: {exc}") from exc
    try:
      payload = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as inner:
      raise GenerationError(f"Generator returned invalid JSON: {inner}") from inner

  if not isinstance(payload, dict):
    raise GenerationError("Generator returned a non-object JSON payload")
  try:
    return GeneratedContent.model_validate(payload)
  except ValidationError as exc:
    raise GenerationError(f"Generator returned incomplete content: {exc.error_count()} validation error(s)") from exc


class OpenRouterContentGenerator:
  """ContentGenerator backed by an OpenRouter chat model in JSON mode."""

  def __init__(self, *, api_key: str, model: str, base_url: str = "https://openrouter.ai/api/v1", client: AsyncOpenAI | None = None) -> None:
    self.model = model
    self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

  async def generate(self, request: GenerationRequest) -> GeneratedContent:
    user_prompt = request.brief
    if request.language_hint:
      user_prompt = f"{user_prompt}\n\nLanguage: {request.language_hint}\nMode: {request.mode}"

    try:
      response = await self._client.chat.completions.create(
        model=self.model, messages=[{"role": "system", "content": _SYSTEM_PROMPT}, {"role": "user", "content": user_prompt}], response_format={"type": "json_object"}
      )
    except OpenAIError as exc:
      raise GenerationError(f"OpenRouter request failed: {exc}") from exc

    if not response.choices:
      raise GenerationError("OpenRouter returned no choices")
    content = response.choices[0].message.content or ""
    if response.usage:
      logger.debug("OpenRouter usage model=%s prompt_tokens=%s completion_tokens=%s", self.model, response.usage.prompt_tokens, response.usage.completion_tokens)
    return parse_generated_content(content)


def build_content_generator(settings: Settings) -> ContentGenerator:
  """Return the production generator, failing fast when no API key is configured."""
  if not settings.openrouter_api_key:
    raise ValueError("OPENROUTER_API_KEY environment variable is required")
  return OpenRouterContentGenerator(api_key=settings.openrouter_api_key, model=settings.generation_model, base_url=settings.openrouter_base_url)
