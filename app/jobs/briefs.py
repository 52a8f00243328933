"""Prompt briefs for scenario generation."""

from __future__ import annotations

from typing import Literal

from app.jobs.models import GenerationGroup, GenerationTarget, LearningPath, PathDay

FrictionLevel = Literal["supportive", "realistic", "challenging"]

_PARTNER_BEHAVIOR: dict[FrictionLevel, tuple[str, ...]] = {
  "supportive": ("Warm, patient, and encouraging", "Speaks clearly and at a comfortable pace", "Gives the learner time to respond"),
  "realistic": (
    "Generally friendly but not overly accommodating",
    "May ask follow-up questions the learner didn't prepare for",
    "Occasionally pauses, expecting the learner to continue",
    "Uses natural speech patterns",
  ),
  "challenging": (
    "Realistic human behavior - not artificially supportive",
    "May express mild skepticism or ask probing questions",
    "Uses indirect communication that requires interpretation",
    "Creates moments where the learner must recover from small mistakes",
  ),
}

_CEFR_RATINGS = {"A1": 1, "A2": 2, "B1": 3, "B2": 4}


def infer_friction_level(week_number: int) -> FrictionLevel:
  if week_number <= 1:
    return "supportive"
  if week_number <= 2:
    return "realistic"
  return "challenging"


def map_cefr_to_difficulty(cefr: str | None) -> str:
  """Collapse a CEFR level into beginner/intermediate/advanced."""
  if not cefr:
    return "intermediate"
  upper = cefr.upper()
  if upper.startswith("A"):
    return "beginner"
  if upper.startswith("C"):
    return "advanced"
  return "intermediate"


def difficulty_rating(cefr: str | None) -> int:
  if not cefr:
    return 3
  upper = cefr.upper()
  if upper.startswith("C"):
    return 5
  return _CEFR_RATINGS.get(upper, 3)


def build_target_brief(target: GenerationTarget, group: GenerationGroup) -> str:
  """Describe one conversation seed for the generator, including partner realism for the week."""
  parts = [
    f"Create a personalized {group.target_language.upper()} language learning scenario.",
    "",
    f"CONVERSATION TOPIC: {target.title}",
    target.description,
    "",
    f"WEEKLY THEME: {group.theme}",
    group.theme_description,
    "",
    f"TARGET DIFFICULTY: {group.difficulty_min} to {group.difficulty_max}",
    "",
  ]
  if target.vocabulary_hints:
    parts.extend(["KEY VOCABULARY TO PRACTICE:", f"- {', '.join(target.vocabulary_hints)}", ""])
  if target.grammar_hints:
    parts.extend(["GRAMMAR FOCUS:", f"- {', '.join(target.grammar_hints)}", ""])
  if target.session_types:
    parts.extend([f"SESSION STYLE: {', '.join(target.session_types)}", ""])

  friction = infer_friction_level(group.week_number)
  parts.extend([f"REALISM LEVEL: {friction.upper()}", "", "CONVERSATION PARTNER BEHAVIOR:"])
  parts.extend(f"- {line}" for line in _PARTNER_BEHAVIOR[friction])
  parts.extend(
    [
      "",
      "Create a scenario that balances learning support with realistic human interaction.",
      "The goal is to prepare the learner for real conversations, not just comfortable practice.",
    ]
  )
  return "\n".join(parts)


def build_day_brief(day: PathDay, path: LearningPath) -> str:
  """Describe one scheduled path day for the generator."""
  parts = [
    f"Create a {path.target_language.upper()} language learning scenario for day {day.day_index} of the path '{path.title}'.",
    "",
    f"THEME: {day.theme}",
    f"DIFFICULTY: {day.difficulty}",
  ]
  if day.description:
    parts.extend(["", day.description])
  if day.learning_objectives:
    parts.extend(["", "LEARNING OBJECTIVES:"])
    parts.extend(f"- {objective}" for objective in day.learning_objectives)
  return "\n".join(parts)
