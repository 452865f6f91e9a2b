"""Prompt construction for scenario generation."""

from __future__ import annotations

import json
from typing import Literal

from scenario_queue.ai.contracts import GenerationContext

RealismLevel = Literal["supportive", "realistic", "challenging"]

SYSTEM_PROMPT = (
  "You design spoken conversation practice scenarios for language learners. "
  "Reply with a single JSON object and nothing else. Keys: title, description, learning_goal, "
  "instructions, context, expected_outcome, learning_objectives (array of strings), "
  "persona (object with name, role, personality), difficulty (beginner|intermediate|advanced), cefr_level."
)

_PARTNER_BEHAVIOUR: dict[RealismLevel, tuple[str, ...]] = {
  "supportive": (
    "Warm, patient, and encouraging",
    "Speaks clearly and at a comfortable pace",
    "Gives the learner time to respond",
  ),
  "realistic": (
    "Generally friendly but not overly accommodating",
    "May ask follow-up questions the learner didn't prepare for",
    "Occasionally pauses, expecting the learner to continue",
    "Uses natural speech patterns",
  ),
  "challenging": (
    "Realistic human behavior, not artificially supportive",
    "May express mild skepticism or ask probing questions",
    "Uses indirect communication that requires interpretation",
    "Creates moments where the learner must recover from small mistakes",
  ),
}


def infer_realism_level(context: GenerationContext) -> RealismLevel:
  """Ramp conversation friction up as the curriculum progresses."""
  if context.week_number is not None:
    week = context.week_number
  elif context.day_index is not None:
    week = (context.day_index - 1) // 7 + 1
  else:
    return "supportive"
  if week <= 1:
    return "supportive"
  if week <= 2:
    return "realistic"
  return "challenging"


def build_scenario_brief(context: GenerationContext) -> str:
  """Render the user prompt describing the scenario to generate."""
  parts = [
    f"Create a personalized {context.language_target.upper()} language learning scenario.",
    "",
    f"CONVERSATION TOPIC: {context.title}",
  ]
  if context.description:
    parts.append(context.description)
  parts += ["", f"THEME: {context.theme}"]
  if context.theme_description:
    parts.append(context.theme_description)
  parts += ["", f"TARGET DIFFICULTY: {context.difficulty} to {context.difficulty_ceiling}", ""]

  if context.learning_objectives:
    parts += ["LEARNING OBJECTIVES:", *(f"- {objective}" for objective in context.learning_objectives), ""]

  if context.vocabulary_hints:
    parts += ["KEY VOCABULARY TO PRACTICE:", f"- {', '.join(context.vocabulary_hints)}", ""]

  if context.grammar_hints:
    parts += ["GRAMMAR FOCUS:", f"- {', '.join(context.grammar_hints)}", ""]

  if context.session_types:
    parts += [f"SESSION STYLE: {' or '.join(context.session_types)}", ""]

  if context.learner_profile:
    parts += ["LEARNER PROFILE:", json.dumps(context.learner_profile, ensure_ascii=False, sort_keys=True), ""]

  level = infer_realism_level(context)
  parts += [f"REALISM LEVEL: {level.upper()}", "", "CONVERSATION PARTNER BEHAVIOR:"]
  parts += [f"- {line}" for line in _PARTNER_BEHAVIOUR[level]]
  parts += [
    "",
    "Create a scenario that balances learning support with realistic human interaction.",
    "The goal is to prepare the learner for real conversations, not just comfortable practice.",
  ]
  return "\n".join(parts)
