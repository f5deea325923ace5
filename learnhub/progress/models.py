"""Database models for enrollment and learner progress.

Cassandra table definitions for:
- Enrollments: one row per (user, course), written with lightweight
  transactions guarded by a ``version`` column
- Lesson progress: engagement counters per lesson, partitioned by
  (user, course) so a course's time spent is one partition read
- Quiz attempts: per (user, lesson), newest attempt first
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple
from uuid import UUID


class EnrollmentStatus(str, Enum):
    """Course enrollment status. Only ever moves forward."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class LessonProgressStatus(str, Enum):
    """Lesson progress status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


_LESSON_STATUS_RANK = {
    LessonProgressStatus.NOT_STARTED.value: 0,
    LessonProgressStatus.IN_PROGRESS.value: 1,
    LessonProgressStatus.COMPLETED.value: 2,
}


def merge_lesson_status(existing: str, reported: str) -> str:
    """The further along of two lesson statuses; status never moves back."""
    return max(existing, reported, key=lambda s: _LESSON_STATUS_RANK.get(s, 0))


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# completed_lesson_ids is a LIST to keep completion order; membership is
# checked before append so it never holds duplicates
ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    user_id UUID,
    course_id UUID,
    organization_id UUID,
    status TEXT,
    progress_percentage INT,
    completed_lesson_ids LIST<UUID>,
    current_lesson_id UUID,
    enrolled_at TIMESTAMP,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    version INT,
    PRIMARY KEY (user_id, course_id)
)
"""

LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    user_id UUID,
    course_id UUID,
    lesson_id UUID,
    organization_id UUID,
    status TEXT,
    watch_time_seconds INT,
    scroll_depth INT,
    time_spent_seconds INT,
    started_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    completed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), lesson_id)
)
"""

QUIZ_ATTEMPTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_attempts (
    user_id UUID,
    lesson_id UUID,
    attempt_number INT,
    course_id UUID,
    organization_id UUID,
    answers LIST<FROZEN<TUPLE<INT, INT, BOOLEAN>>>,
    score INT,
    passed BOOLEAN,
    time_spent_seconds INT,
    is_module_assessment BOOLEAN,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    PRIMARY KEY ((user_id, lesson_id), attempt_number)
) WITH CLUSTERING ORDER BY (attempt_number DESC)
"""

PROGRESS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    LESSON_PROGRESS_TABLE_CQL,
    QUIZ_ATTEMPTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """Course enrollment entity.

    Attributes:
        user_id: Learner UUID
        course_id: Course UUID
        organization_id: Tenant UUID
        status: EnrollmentStatus value
        progress_percentage: Integer 0-100 derived from completed lessons
        completed_lesson_ids: Lesson UUIDs in completion order, no duplicates
        current_lesson_id: First lesson in course order not yet completed
        enrolled_at: Enrollment timestamp
        started_at: Set once, on the first completion
        completed_at: Set once, when the percentage first reaches 100
        updated_at: Last tracker write
        version: Compare-and-set token for conditional writes
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        organization_id: UUID,
        status: str = EnrollmentStatus.NOT_STARTED.value,
        progress_percentage: int = 0,
        completed_lesson_ids: list[UUID] | None = None,
        current_lesson_id: UUID | None = None,
        enrolled_at: datetime | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        updated_at: datetime | None = None,
        version: int = 0,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.organization_id = organization_id
        self.status = status
        self.progress_percentage = progress_percentage
        self.completed_lesson_ids = list(completed_lesson_ids or [])
        self.current_lesson_id = current_lesson_id
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.updated_at = ensure_utc_aware(updated_at) or self.enrolled_at
        self.version = version

    @property
    def is_completed(self) -> bool:
        return self.status == EnrollmentStatus.COMPLETED.value

    def has_completed(self, lesson_id: UUID) -> bool:
        return lesson_id in self.completed_lesson_ids

    def copy(self, **changes: Any) -> "Enrollment":
        """Return a new enrollment with ``changes`` applied."""
        return Enrollment(**{**self.to_dict(), **changes})

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            organization_id=row.organization_id,
            status=row.status or EnrollmentStatus.NOT_STARTED.value,
            progress_percentage=row.progress_percentage or 0,
            completed_lesson_ids=list(row.completed_lesson_ids or []),
            current_lesson_id=row.current_lesson_id,
            enrolled_at=row.enrolled_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
            updated_at=row.updated_at,
            version=row.version or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "organization_id": self.organization_id,
            "status": self.status,
            "progress_percentage": self.progress_percentage,
            "completed_lesson_ids": list(self.completed_lesson_ids),
            "current_lesson_id": self.current_lesson_id,
            "enrolled_at": self.enrolled_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "updated_at": self.updated_at,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment user={self.user_id} course={self.course_id} "
            f"{self.status} {self.progress_percentage}% v{self.version}>"
        )


class LessonProgress:
    """Engagement on one lesson by one learner.

    ``watch_time_seconds`` and ``scroll_depth`` keep the maximum reported
    value; ``time_spent_seconds`` accumulates every report.
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        organization_id: UUID | None = None,
        status: str = LessonProgressStatus.NOT_STARTED.value,
        watch_time_seconds: int = 0,
        scroll_depth: int = 0,
        time_spent_seconds: int = 0,
        started_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
        completed_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.lesson_id = lesson_id
        self.organization_id = organization_id
        self.status = status
        self.watch_time_seconds = watch_time_seconds
        self.scroll_depth = scroll_depth
        self.time_spent_seconds = time_spent_seconds
        self.started_at = ensure_utc_aware(started_at)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at) or datetime.now(UTC)
        self.completed_at = ensure_utc_aware(completed_at)

    @property
    def is_completed(self) -> bool:
        return self.status == LessonProgressStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            lesson_id=row.lesson_id,
            organization_id=row.organization_id,
            status=row.status or LessonProgressStatus.NOT_STARTED.value,
            watch_time_seconds=row.watch_time_seconds or 0,
            scroll_depth=row.scroll_depth or 0,
            time_spent_seconds=row.time_spent_seconds or 0,
            started_at=row.started_at,
            last_accessed_at=row.last_accessed_at,
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "lesson_id": self.lesson_id,
            "organization_id": self.organization_id,
            "status": self.status,
            "watch_time_seconds": self.watch_time_seconds,
            "scroll_depth": self.scroll_depth,
            "time_spent_seconds": self.time_spent_seconds,
            "started_at": self.started_at,
            "last_accessed_at": self.last_accessed_at,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        return f"<LessonProgress user={self.user_id} lesson={self.lesson_id} {self.status}>"


class QuizAnswer(NamedTuple):
    """One answered question. Stored as a frozen CQL tuple."""

    question_index: int
    selected_answer_index: int
    is_correct: bool


class QuizAttempt:
    """A submitted quiz attempt."""

    def __init__(
        self,
        user_id: UUID,
        lesson_id: UUID,
        attempt_number: int,
        course_id: UUID,
        organization_id: UUID,
        score: int,
        passed: bool,
        answers: list[QuizAnswer] | None = None,
        time_spent_seconds: int = 0,
        is_module_assessment: bool = False,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.lesson_id = lesson_id
        self.attempt_number = attempt_number
        self.course_id = course_id
        self.organization_id = organization_id
        self.score = score
        self.passed = passed
        self.answers = list(answers or [])
        self.time_spent_seconds = time_spent_seconds
        self.is_module_assessment = is_module_assessment
        self.completed_at = ensure_utc_aware(completed_at) or datetime.now(UTC)
        self.started_at = ensure_utc_aware(started_at) or self.completed_at

    @classmethod
    def from_row(cls, row: Any) -> "QuizAttempt":
        return cls(
            user_id=row.user_id,
            lesson_id=row.lesson_id,
            attempt_number=row.attempt_number,
            course_id=row.course_id,
            organization_id=row.organization_id,
            score=row.score or 0,
            passed=bool(row.passed),
            answers=[QuizAnswer(*answer) for answer in row.answers or []],
            time_spent_seconds=row.time_spent_seconds or 0,
            is_module_assessment=bool(row.is_module_assessment),
            started_at=row.started_at,
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "lesson_id": self.lesson_id,
            "attempt_number": self.attempt_number,
            "course_id": self.course_id,
            "organization_id": self.organization_id,
            "score": self.score,
            "passed": self.passed,
            "answers": [answer._asdict() for answer in self.answers],
            "time_spent_seconds": self.time_spent_seconds,
            "is_module_assessment": self.is_module_assessment,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<QuizAttempt user={self.user_id} lesson={self.lesson_id} "
            f"#{self.attempt_number} {self.score} passed={self.passed}>"
        )
