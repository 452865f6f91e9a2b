"""Scenario generation adapters."""

from __future__ import annotations

import json
import logging
from typing import Any, Final

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from scenario_queue.ai.contracts import GenerationContext, ScenarioDraft, ScenarioGenerator, map_cefr_to_difficulty
from scenario_queue.ai.json_parser import parse_json_object
from scenario_queue.ai.prompts import SYSTEM_PROMPT, build_scenario_brief
from scenario_queue.config import Settings
from scenario_queue.jobs.errors import GenerationError

logger = logging.getLogger(__name__)


class OpenAIScenarioGenerator:
  """Generate scenario drafts with an OpenAI-compatible chat completions endpoint.

  The adapter performs exactly one request per call. Retries belong to the
  queue executor, so the SDK's own retry loop is disabled.
  """

  _TEMPERATURE: Final[float] = 0.8

  def __init__(self, *, model: str, api_key: str | None = None, base_url: str | None = None, client: AsyncOpenAI | None = None) -> None:
    self.model = model
    self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

  async def generate(self, context: GenerationContext) -> ScenarioDraft:
    prompt = build_scenario_brief(context)
    try:
      response = await self._client.chat.completions.create(
        model=self.model,
        messages=[{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": prompt}],
        response_format={"type": "json_object"},
        temperature=self._TEMPERATURE,
      )
    except OpenAIError as exc:
      raise GenerationError(f"Scenario generation request failed: {exc}") from exc

    content = response.choices[0].message.content if response.choices else None
    if not content:
      raise GenerationError("Scenario generation returned an empty response")

    if response.usage:
      logger.debug("Scenario generation usage model=%s prompt_tokens=%s completion_tokens=%s", self.model, response.usage.prompt_tokens, response.usage.completion_tokens)

    return parse_scenario_draft(content, context)


class StaticScenarioGenerator:
  """Deterministic offline generator for local development and tests."""

  def __init__(self, *, title_prefix: str = "Practice") -> None:
    self._title_prefix = title_prefix
    self.calls: list[GenerationContext] = []

  async def generate(self, context: GenerationContext) -> ScenarioDraft:
    self.calls.append(context)
    return ScenarioDraft(
      title=f"{self._title_prefix}: {context.title}",
      description=context.description or f"Conversation practice about {context.theme.lower()}.",
      learning_goal=f"Hold a conversation about {context.title.lower()}",
      instructions=f"Talk with your partner in {context.language_target}.",
      learning_objectives=list(context.learning_objectives),
      difficulty=map_cefr_to_difficulty(context.difficulty),
      cefr_level=context.difficulty,
    )


def parse_scenario_draft(content: str, context: GenerationContext) -> ScenarioDraft:
  """Parse model output into a draft, falling back to brief fields for missing basics."""
  try:
    payload: dict[str, Any] = parse_json_object(content)
  except json.JSONDecodeError as exc:
    raise GenerationError(f"Scenario generation returned invalid JSON: {exc}") from exc

  payload.setdefault("title", context.title)
  payload.setdefault("description", context.description or context.title)
  payload.setdefault("cefr_level", context.difficulty)
  if not payload.get("difficulty"):
    payload["difficulty"] = map_cefr_to_difficulty(context.difficulty)

  try:
    return ScenarioDraft.model_validate(payload)
  except ValidationError as exc:
    raise GenerationError(f"Scenario generation returned an invalid draft: {exc.error_count()} validation error(s)") from exc


def build_generator(settings: Settings) -> ScenarioGenerator:
  """Return the OpenAI generator, or the static one when no API key is configured in development."""
  if settings.openai_api_key:
    return OpenAIScenarioGenerator(model=settings.openai_model, api_key=settings.openai_api_key, base_url=settings.openai_base_url)
  if settings.is_development:
    logger.warning("OPENAI_API_KEY not set - using static scenario generator")
    return StaticScenarioGenerator()
  raise RuntimeError("OPENAI_API_KEY must be set outside development.")
