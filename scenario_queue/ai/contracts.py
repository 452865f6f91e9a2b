"""Typed input and output of the scenario generation adapter."""

from __future__ import annotations

from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator

CefrLevel = Literal["A1", "A2", "B1", "B2", "C1", "C2"]
Difficulty = Literal["beginner", "intermediate", "advanced"]

_CEFR_ORDER: tuple[str, ...] = ("A1", "A2", "B1", "B2", "C1", "C2")


def _normalize_cefr(value: Any) -> Any:
  if isinstance(value, str):
    return value.strip().upper()
  return value


class GenerationContext(BaseModel):
  """Brief for one scenario: what to practise, at which level, for whom."""

  theme: StrictStr = Field(min_length=1, description="Weekly or path theme.", examples=["Business meetings"])
  title: StrictStr = Field(min_length=1, description="Conversation topic for this unit.", examples=["Introducing yourself to a new team"])
  description: StrictStr = Field(default="", description="What the conversation is about.")
  theme_description: StrictStr = Field(default="")
  difficulty: CefrLevel = Field(description="Lowest CEFR level the scenario should target.")
  difficulty_max: CefrLevel | None = Field(default=None, description="Optional upper CEFR bound.")
  language_target: StrictStr = Field(min_length=2, description="Target language code.", examples=["ja"])
  learner_profile: dict[str, Any] = Field(default_factory=dict, description="Free-form learner details such as native language, goals and interests.")
  learning_objectives: list[StrictStr] = Field(default_factory=list)
  vocabulary_hints: list[StrictStr] = Field(default_factory=list)
  grammar_hints: list[StrictStr] = Field(default_factory=list)
  session_types: list[StrictStr] = Field(default_factory=list)
  week_number: int | None = Field(default=None, ge=1)
  day_index: int | None = Field(default=None, ge=1)
  model_config = ConfigDict(extra="forbid")

  @field_validator("difficulty", "difficulty_max", mode="before")
  @classmethod
  def normalize_difficulty(cls, value: Any) -> Any:
    return _normalize_cefr(value)

  @field_validator("language_target", mode="before")
  @classmethod
  def normalize_language(cls, value: Any) -> Any:
    if isinstance(value, str):
      return value.strip().lower()
    return value

  @model_validator(mode="after")
  def check_difficulty_range(self) -> GenerationContext:
    if self.difficulty_max is not None and _CEFR_ORDER.index(self.difficulty_max) < _CEFR_ORDER.index(self.difficulty):
      raise ValueError("difficulty_max must not be below difficulty.")
    return self

  @property
  def difficulty_ceiling(self) -> CefrLevel:
    return self.difficulty_max or self.difficulty


class ScenarioDraft(BaseModel):
  """Scenario definition returned by the model before it is persisted."""

  title: StrictStr = Field(min_length=1)
  description: StrictStr = Field(min_length=1)
  learning_goal: StrictStr | None = None
  instructions: StrictStr | None = None
  context: StrictStr | None = None
  expected_outcome: StrictStr | None = None
  learning_objectives: list[StrictStr] = Field(default_factory=list)
  persona: dict[str, Any] | None = None
  difficulty: Difficulty | None = None
  cefr_level: CefrLevel | None = None
  model_config = ConfigDict(extra="ignore")

  @field_validator("cefr_level", mode="before")
  @classmethod
  def normalize_cefr_level(cls, value: Any) -> Any:
    return _normalize_cefr(value)

  @field_validator("difficulty", mode="before")
  @classmethod
  def normalize_difficulty(cls, value: Any) -> Any:
    if isinstance(value, str):
      return value.strip().lower() or None
    return value


class ScenarioGenerator(Protocol):
  """Adapter contract: one brief in, one draft out, errors raised as GenerationError."""

  async def generate(self, context: GenerationContext) -> ScenarioDraft:
    """Produce a scenario draft for the given brief."""


def map_cefr_to_difficulty(cefr: str | None) -> Difficulty:
  """Map a CEFR level to the coarse difficulty bucket used by scenarios."""
  if not cefr:
    return "intermediate"
  upper = cefr.upper()
  if upper.startswith("A"):
    return "beginner"
  if upper.startswith("C"):
    return "advanced"
  return "intermediate"


def difficulty_rating(cefr: str | None) -> int:
  """Return a 1-5 rating for a CEFR level, 3 when unknown."""
  if not cefr:
    return 3
  upper = cefr.upper()
  if upper.startswith("C"):
    return 5
  ratings = {"A1": 1, "A2": 2, "B1": 3, "B2": 4}
  return ratings.get(upper, 3)
