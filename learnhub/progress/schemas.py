"""Pydantic schemas for enrollments and learner progress."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from .models import (
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    LessonProgressStatus,
    QuizAnswer,
    QuizAttempt,
)
from .tracker import ProgressOutcome, ProgressSkipped


# ==============================================================================
# Recompute Outcome
# ==============================================================================


class ProgressOutcomeResponse(BaseModel):
    """What the completion did to the enrollment."""

    updated: bool
    skip_reason: str | None = None
    progress_percentage: int | None = None
    course_completed: bool = False

    @classmethod
    def from_outcome(
        cls, outcome: ProgressOutcome | None
    ) -> "ProgressOutcomeResponse | None":
        if outcome is None:
            return None
        if isinstance(outcome, ProgressSkipped):
            return cls(updated=False, skip_reason=outcome.reason.value)
        return cls(
            updated=True,
            progress_percentage=outcome.enrollment.progress_percentage,
            course_completed=outcome.course_completed,
        )


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollRequest(BaseModel):
    user_id: UUID = Field(..., description="Learner UUID")
    course_id: UUID = Field(..., description="Course UUID")
    organization_id: UUID | None = Field(
        None, description="Tenant UUID, defaults to the course's organization"
    )


class EnrollmentResponse(BaseModel):
    user_id: UUID
    course_id: UUID
    organization_id: UUID
    status: EnrollmentStatus
    progress_percentage: int
    completed_lesson_ids: list[UUID]
    current_lesson_id: UUID | None = None
    enrolled_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        data = entity.to_dict()
        data.pop("version")
        return cls(**data)


class EnrollmentListResponse(BaseModel):
    items: list[EnrollmentResponse]
    total: int


# ==============================================================================
# Lesson Progress Schemas
# ==============================================================================


class LessonProgressRequest(BaseModel):
    """Engagement report for a lesson."""

    user_id: UUID
    course_id: UUID
    lesson_id: UUID
    organization_id: UUID | None = None
    status: LessonProgressStatus = Field(
        LessonProgressStatus.IN_PROGRESS, description="Reported status"
    )
    watch_time_seconds: int = Field(0, ge=0, description="Furthest video position")
    scroll_depth: int = Field(0, ge=0, le=100, description="Article scroll percentage")
    time_spent_seconds: int = Field(0, ge=0, description="Time spent since last report")


class LessonProgressResponse(BaseModel):
    user_id: UUID
    course_id: UUID
    lesson_id: UUID
    organization_id: UUID | None = None
    status: LessonProgressStatus
    watch_time_seconds: int
    scroll_depth: int
    time_spent_seconds: int
    started_at: datetime | None = None
    last_accessed_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: LessonProgress) -> "LessonProgressResponse":
        return cls(**entity.to_dict())


class LessonProgressResult(BaseModel):
    progress: LessonProgressResponse
    enrollment_update: ProgressOutcomeResponse | None = None


class LessonProgressListResponse(BaseModel):
    items: list[LessonProgressResponse]
    total: int


# ==============================================================================
# Quiz Attempt Schemas
# ==============================================================================


class QuizAnswerSchema(BaseModel):
    question_index: int = Field(..., ge=0)
    selected_answer_index: int = Field(..., ge=0)
    is_correct: bool


class QuizAttemptRequest(BaseModel):
    """Quiz submission. ``passed`` defaults to the lesson's passing score."""

    user_id: UUID
    lesson_id: UUID
    course_id: UUID
    organization_id: UUID
    score: int = Field(..., ge=0, le=100)
    answers: list[QuizAnswerSchema] = Field(default_factory=list)
    time_spent_seconds: int = Field(0, ge=0)
    passed: bool | None = None
    is_module_assessment: bool = False

    def to_answers(self) -> list[QuizAnswer]:
        return [
            QuizAnswer(a.question_index, a.selected_answer_index, a.is_correct)
            for a in self.answers
        ]


class QuizAttemptResponse(BaseModel):
    user_id: UUID
    lesson_id: UUID
    attempt_number: int
    course_id: UUID
    organization_id: UUID
    score: int
    passed: bool
    answers: list[QuizAnswerSchema]
    time_spent_seconds: int
    is_module_assessment: bool
    started_at: datetime
    completed_at: datetime

    @classmethod
    def from_entity(cls, entity: QuizAttempt) -> "QuizAttemptResponse":
        return cls(**entity.to_dict())


class QuizAttemptResult(BaseModel):
    attempt: QuizAttemptResponse
    enrollment_update: ProgressOutcomeResponse | None = None


class QuizAttemptListResponse(BaseModel):
    items: list[QuizAttemptResponse]
    total: int
