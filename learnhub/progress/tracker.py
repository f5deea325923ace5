"""Enrollment progress recompute.

A pure function from (enrollment, course lesson order, completed lesson) to
an outcome. Storage, retries and analytics live in ``ProgressService``; this
module only decides what the enrollment should look like next.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from .models import Enrollment, EnrollmentStatus


class SkipReason(str, Enum):
    """Why a completion event did not change the enrollment."""

    ALREADY_COMPLETED = "already_completed"
    ENROLLMENT_NOT_FOUND = "enrollment_not_found"
    COURSE_NOT_FOUND = "course_not_found"
    WRITE_CONFLICT = "write_conflict"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(frozen=True)
class ProgressUpdated:
    """The enrollment changed.

    ``course_completed`` is True only for the update that moved the status
    to completed, so it is the signal to emit the completion event.
    """

    enrollment: Enrollment
    previous_percentage: int
    total_lessons: int
    course_completed: bool = False

    @property
    def updated(self) -> bool:
        return True


@dataclass(frozen=True)
class ProgressSkipped:
    reason: SkipReason
    detail: str | None = None

    @property
    def updated(self) -> bool:
        return False


ProgressOutcome = ProgressUpdated | ProgressSkipped


def compute_progress_percentage(completed_count: int, total_lessons: int) -> int:
    """Whole-number percentage, rounding halves up, clamped to 0-100.

    A course without lessons is always 0%.
    """
    if total_lessons <= 0:
        return 0
    # floor(100 * c / t + 0.5) in integer arithmetic
    percentage = (200 * completed_count + total_lessons) // (2 * total_lessons)
    return max(0, min(100, percentage))


def first_incomplete_lesson(
    ordered_lesson_ids: Sequence[UUID], completed_lesson_ids: Sequence[UUID]
) -> UUID | None:
    completed = set(completed_lesson_ids)
    return next((lid for lid in ordered_lesson_ids if lid not in completed), None)


def recompute_enrollment_progress(
    enrollment: Enrollment,
    ordered_lesson_ids: Sequence[UUID],
    lesson_id: UUID,
    now: datetime | None = None,
) -> ProgressOutcome:
    """Record ``lesson_id`` as completed and derive the enrollment's new state.

    Args:
        enrollment: Current enrollment, not modified
        ordered_lesson_ids: The course's lessons in course order, read fresh
        lesson_id: Lesson that was just completed or whose quiz was passed
        now: Clock override

    Returns:
        ProgressUpdated with a new Enrollment (version incremented), or
        ProgressSkipped(ALREADY_COMPLETED) when the lesson was already recorded.
    """
    if enrollment.has_completed(lesson_id):
        return ProgressSkipped(SkipReason.ALREADY_COMPLETED)

    now = now or datetime.now(UTC)
    completed = [*enrollment.completed_lesson_ids, lesson_id]
    total = len(ordered_lesson_ids)
    percentage = compute_progress_percentage(len(completed), total)

    status = enrollment.status
    started_at = enrollment.started_at
    completed_at = enrollment.completed_at

    if status == EnrollmentStatus.NOT_STARTED.value:
        status = EnrollmentStatus.IN_PROGRESS.value
        started_at = started_at or now

    course_completed = False
    if percentage == 100 and status != EnrollmentStatus.COMPLETED.value:
        status = EnrollmentStatus.COMPLETED.value
        completed_at = completed_at or now
        course_completed = True

    updated = enrollment.copy(
        status=status,
        progress_percentage=percentage,
        completed_lesson_ids=completed,
        current_lesson_id=first_incomplete_lesson(ordered_lesson_ids, completed),
        started_at=started_at,
        completed_at=completed_at,
        updated_at=now,
        version=enrollment.version + 1,
    )

    return ProgressUpdated(
        enrollment=updated,
        previous_percentage=enrollment.progress_percentage,
        total_lessons=total,
        course_completed=course_completed,
    )
