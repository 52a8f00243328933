from __future__ import annotations

from app.jobs.briefs import build_day_brief, build_target_brief, difficulty_rating, infer_friction_level, map_cefr_to_difficulty
from app.jobs.models import GenerationGroup, GenerationTarget, LearningPath, PathDay


def _group(week_number: int) -> GenerationGroup:
  return GenerationGroup(
    group_id="week-1",
    path_id="path-1",
    user_id="user-1",
    target_language="fr",
    week_number=week_number,
    theme="Travel",
    theme_description="Getting around town",
    difficulty_min="A2",
    difficulty_max="B1",
  )


def test_friction_level_rises_with_week() -> None:
  assert [infer_friction_level(week) for week in (1, 2, 3, 8)] == ["supportive", "realistic", "challenging", "challenging"]


def test_cefr_mapping() -> None:
  assert map_cefr_to_difficulty("a2") == "beginner"
  assert map_cefr_to_difficulty("B2") == "intermediate"
  assert map_cefr_to_difficulty("C1") == "advanced"
  assert map_cefr_to_difficulty(None) == "intermediate"
  assert [difficulty_rating(level) for level in ("A1", "B2", "C2", None)] == [1, 4, 5, 3]


def test_target_brief_includes_hints_and_realism() -> None:
  target = GenerationTarget(target_id="seed-1", title="Buying a train ticket", description="At the station counter", vocabulary_hints=["billet", "quai"], grammar_hints=["je voudrais"])

  brief = build_target_brief(target, _group(3))

  assert brief.startswith("Create a personalized FR language learning scenario.")
  assert "CONVERSATION TOPIC: Buying a train ticket" in brief
  assert "- billet, quai" in brief
  assert "GRAMMAR FOCUS:" in brief
  assert "REALISM LEVEL: CHALLENGING" in brief
  assert "SESSION STYLE" not in brief


def test_day_brief_names_the_day_and_objectives() -> None:
  day = PathDay(day_index=4, theme="Restaurants", difficulty="A2", learning_objectives=["order a meal"], description="Dinner with friends")
  path = LearningPath(path_id="path-1", user_id="user-1", target_language="it", title="Italian basics")

  brief = build_day_brief(day, path)

  assert "for day 4 of the path 'Italian basics'" in brief
  assert "THEME: Restaurants" in brief
  assert "- order a meal" in brief
  assert "Dinner with friends" in brief
