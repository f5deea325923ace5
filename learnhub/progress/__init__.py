"""Enrollment and learner progress.

Provides:
- Enrollment, lesson progress and quiz attempt models
- The enrollment recompute applied on every lesson completion
- ProgressService with version-guarded enrollment writes
"""

from .models import (
    PROGRESS_TABLES_CQL,
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    LessonProgressStatus,
    QuizAnswer,
    QuizAttempt,
)
from .tracker import (
    ProgressOutcome,
    ProgressSkipped,
    ProgressUpdated,
    SkipReason,
    recompute_enrollment_progress,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "Enrollment",
    "EnrollmentStatus",
    "LessonProgress",
    "LessonProgressStatus",
    "ProgressOutcome",
    "ProgressSkipped",
    "ProgressUpdated",
    "QuizAnswer",
    "QuizAttempt",
    "SkipReason",
    "recompute_enrollment_progress",
]
