"""ORM models. Importing the package registers every table on Base.metadata."""

from .generation import GenerationGroupRow, GenerationQueueJob, GenerationTargetRow
from .paths import LearningPathDayRow, LearningPathRow, ScenarioRow

__all__ = ["GenerationGroupRow", "GenerationQueueJob", "GenerationTargetRow", "LearningPathDayRow", "LearningPathRow", "ScenarioRow"]
