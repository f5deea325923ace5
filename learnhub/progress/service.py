"""Enrollment and learner progress service layer.

Business logic for:
- Enrollment creation (one per user and course)
- Lesson engagement tracking and completion
- Quiz attempts, where a passing attempt completes the lesson
- Enrollment recompute after every completion, with one analytics event
  when a course is finished

Completion bookkeeping is best-effort: the primary write (lesson progress or
quiz attempt) has already succeeded when the recompute runs, so recompute
failures are logged and reported as a skipped outcome, never raised.
"""

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from learnhub.analytics.models import EventType
from learnhub.courses.models import DEFAULT_PASSING_SCORE

from .models import (
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    LessonProgressStatus,
    QuizAnswer,
    QuizAttempt,
    merge_lesson_status,
)
from .tracker import (
    ProgressOutcome,
    ProgressSkipped,
    ProgressUpdated,
    SkipReason,
    first_incomplete_lesson,
    recompute_enrollment_progress,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from learnhub.analytics.emitter import AnalyticsEmitter
    from learnhub.courses.models import CourseOutline
    from learnhub.courses.service import CourseService

logger = structlog.get_logger(__name__)

MAX_QUIZ_INSERT_ATTEMPTS = 3


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class AlreadyEnrolledError(ProgressError):
    def __init__(self, message: str = "User is already enrolled in this course"):
        super().__init__(message, "already_enrolled")


class CourseUnavailableError(ProgressError):
    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class QuizAttemptConflictError(ProgressError):
    def __init__(self, message: str = "Could not allocate a quiz attempt number"):
        super().__init__(message, "quiz_attempt_conflict")


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for enrollments, lesson progress and quiz attempts."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        course_service: "CourseService",
        analytics: "AnalyticsEmitter | None" = None,
        max_update_attempts: int = 5,
    ):
        self.session = session
        self.keyspace = keyspace
        self.course_service = course_service
        self.analytics = analytics
        self.max_update_attempts = max_update_attempts
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Enrollments
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE user_id = ? AND course_id = ?
        """)
        self._get_user_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments WHERE user_id = ?
        """)
        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (user_id, course_id, organization_id, status, progress_percentage,
             completed_lesson_ids, current_lesson_id, enrolled_at, started_at,
             completed_at, updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._update_enrollment_if_version = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET status = ?, progress_percentage = ?, completed_lesson_ids = ?,
                current_lesson_id = ?, started_at = ?, completed_at = ?,
                updated_at = ?, version = ?
            WHERE user_id = ? AND course_id = ?
            IF version = ?
        """)

        # Lesson progress
        self._get_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ? AND lesson_id = ?
        """)
        self._get_course_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ?
        """)
        self._upsert_lesson_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (user_id, course_id, lesson_id, organization_id, status,
             watch_time_seconds, scroll_depth, time_spent_seconds, started_at,
             last_accessed_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Quiz attempts
        self._get_quiz_attempts = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempts
            WHERE user_id = ? AND lesson_id = ?
            LIMIT ?
        """)
        self._get_latest_attempt_number = self.session.prepare(f"""
            SELECT attempt_number FROM {self.keyspace}.quiz_attempts
            WHERE user_id = ? AND lesson_id = ?
            LIMIT 1
        """)
        self._insert_quiz_attempt = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_attempts
            (user_id, lesson_id, attempt_number, course_id, organization_id,
             answers, score, passed, time_spent_seconds, is_module_assessment,
             started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll_user(
        self,
        user_id: UUID,
        course_id: UUID,
        organization_id: UUID | None = None,
    ) -> Enrollment:
        """Enroll a user with zeroed progress.

        Raises:
            CourseUnavailableError: If the course does not exist
            AlreadyEnrolledError: If an enrollment for (user, course) exists
        """
        outline = await self.course_service.get_course_outline(course_id)
        if not outline:
            raise CourseUnavailableError

        now = datetime.now(UTC)
        enrollment = Enrollment(
            user_id=user_id,
            course_id=course_id,
            organization_id=organization_id or outline.course.organization_id,
            status=EnrollmentStatus.NOT_STARTED.value,
            current_lesson_id=first_incomplete_lesson(outline.ordered_lesson_ids(), []),
            enrolled_at=now,
            updated_at=now,
        )

        result = await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.user_id,
                enrollment.course_id,
                enrollment.organization_id,
                enrollment.status,
                enrollment.progress_percentage,
                enrollment.completed_lesson_ids,
                enrollment.current_lesson_id,
                enrollment.enrolled_at,
                enrollment.started_at,
                enrollment.completed_at,
                enrollment.updated_at,
                enrollment.version,
            ],
        )
        if not result.was_applied:
            raise AlreadyEnrolledError

        logger.info(
            "user_enrolled",
            user_id=str(user_id),
            course_id=str(course_id),
            organization_id=str(enrollment.organization_id),
        )
        self._track(
            enrollment.organization_id,
            EventType.COURSE_ENROLLED,
            "Course Enrolled",
            user_id,
            {"courseId": str(course_id), "courseTitle": outline.course.title},
        )
        return enrollment

    async def get_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        result = await self.session.aexecute(self._get_enrollment, [user_id, course_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def get_user_enrollments(
        self, user_id: UUID, organization_id: UUID | None = None
    ) -> list[Enrollment]:
        """All enrollments of a user, optionally limited to one organization."""
        rows = await self.session.aexecute(self._get_user_enrollments, [user_id])
        enrollments = [Enrollment.from_row(row) for row in rows]
        if organization_id is None:
            return enrollments
        return [e for e in enrollments if e.organization_id == organization_id]

    # ==========================================================================
    # Enrollment Recompute
    # ==========================================================================

    async def apply_lesson_completion(
        self, user_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> ProgressOutcome:
        """Fold a completed lesson into the user's enrollment.

        Shared by direct lesson completion and passing quiz attempts. Never
        raises: storage errors come back as ProgressSkipped(PERSISTENCE_FAILED).
        """
        log = logger.bind(
            user_id=str(user_id), course_id=str(course_id), lesson_id=str(lesson_id)
        )
        try:
            outcome = await self._apply_lesson_completion(user_id, course_id, lesson_id)
        except Exception as e:
            log.exception("enrollment_progress_update_failed", error=str(e))
            return ProgressSkipped(SkipReason.PERSISTENCE_FAILED, detail=str(e))

        if isinstance(outcome, ProgressSkipped):
            log.info("enrollment_progress_skipped", reason=outcome.reason.value)
            return outcome

        log.info(
            "enrollment_progress_updated",
            previous_percentage=outcome.previous_percentage,
            progress_percentage=outcome.enrollment.progress_percentage,
            status=outcome.enrollment.status,
            completed_lessons=len(outcome.enrollment.completed_lesson_ids),
            total_lessons=outcome.total_lessons,
        )
        if outcome.course_completed:
            await self._emit_course_completed(outcome)
        return outcome

    async def _apply_lesson_completion(
        self, user_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> ProgressOutcome:
        outline: CourseOutline | None = None

        for attempt in range(1, self.max_update_attempts + 1):
            enrollment = await self.get_enrollment(user_id, course_id)
            if not enrollment:
                return ProgressSkipped(SkipReason.ENROLLMENT_NOT_FOUND)

            if outline is None:
                outline = await self.course_service.get_course_outline(course_id)
                if not outline:
                    return ProgressSkipped(SkipReason.COURSE_NOT_FOUND)

            outcome = recompute_enrollment_progress(
                enrollment, outline.ordered_lesson_ids(), lesson_id
            )
            if isinstance(outcome, ProgressSkipped):
                return outcome

            if await self._save_enrollment_if_version(
                outcome.enrollment, expected_version=enrollment.version
            ):
                return outcome

            logger.info(
                "enrollment_progress_conflict",
                user_id=str(user_id),
                course_id=str(course_id),
                attempt=attempt,
            )

        return ProgressSkipped(
            SkipReason.WRITE_CONFLICT,
            detail=f"gave up after {self.max_update_attempts} attempts",
        )

    async def _save_enrollment_if_version(
        self, enrollment: Enrollment, expected_version: int
    ) -> bool:
        """Conditional write. Returns False when another writer got there first."""
        result = await self.session.aexecute(
            self._update_enrollment_if_version,
            [
                enrollment.status,
                enrollment.progress_percentage,
                enrollment.completed_lesson_ids,
                enrollment.current_lesson_id,
                enrollment.started_at,
                enrollment.completed_at,
                enrollment.updated_at,
                enrollment.version,
                enrollment.user_id,
                enrollment.course_id,
                expected_version,
            ],
        )
        return bool(result.was_applied)

    async def _emit_course_completed(self, outcome: ProgressUpdated) -> None:
        """Queue the course_completed event. Failures are logged only."""
        if not self.analytics:
            return

        enrollment = outcome.enrollment
        try:
            course = await self.course_service.get_course(enrollment.course_id)
            lesson_progress = await self.get_course_lesson_progress(
                enrollment.user_id, enrollment.course_id
            )
            properties = build_course_completed_properties(
                enrollment,
                course_title=course.title if course else None,
                course_category=course.category if course else None,
                total_lessons=outcome.total_lessons,
                total_time_spent_seconds=sum(
                    p.time_spent_seconds for p in lesson_progress
                ),
            )
            self._track(
                enrollment.organization_id,
                EventType.COURSE_COMPLETED,
                "Course Completed",
                enrollment.user_id,
                properties,
            )
        except Exception:
            logger.exception(
                "course_completed_event_failed",
                user_id=str(enrollment.user_id),
                course_id=str(enrollment.course_id),
            )

    def _track(
        self,
        organization_id: UUID | None,
        event_type: EventType,
        event_name: str,
        user_id: UUID,
        properties: dict[str, Any],
    ) -> None:
        if self.analytics and organization_id:
            self.analytics.track(
                organization_id=organization_id,
                event_type=event_type.value,
                event_name=event_name,
                user_id=user_id,
                properties=properties,
            )

    # ==========================================================================
    # Lesson Progress Operations
    # ==========================================================================

    async def get_lesson_progress(
        self, user_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        result = await self.session.aexecute(
            self._get_lesson_progress, [user_id, course_id, lesson_id]
        )
        row = result.one()
        return LessonProgress.from_row(row) if row else None

    async def get_course_lesson_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        rows = await self.session.aexecute(
            self._get_course_lesson_progress, [user_id, course_id]
        )
        return [LessonProgress.from_row(row) for row in rows]

    async def record_lesson_progress(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        organization_id: UUID | None = None,
        status: str = LessonProgressStatus.IN_PROGRESS.value,
        watch_time_seconds: int = 0,
        scroll_depth: int = 0,
        time_spent_seconds: int = 0,
    ) -> tuple[LessonProgress, ProgressOutcome | None]:
        """Merge an engagement report into lesson progress.

        Watch time and scroll depth keep their maximum, time spent adds up,
        and a completed lesson stays completed. When the merged status is
        completed the enrollment is recomputed.

        Returns:
            The saved LessonProgress and the recompute outcome (None when the
            lesson is not completed)
        """
        now = datetime.now(UTC)
        existing = await self.get_lesson_progress(user_id, course_id, lesson_id)

        if existing:
            progress = LessonProgress(
                user_id=user_id,
                course_id=course_id,
                lesson_id=lesson_id,
                organization_id=organization_id or existing.organization_id,
                status=merge_lesson_status(existing.status, status),
                watch_time_seconds=max(existing.watch_time_seconds, watch_time_seconds),
                scroll_depth=max(existing.scroll_depth, scroll_depth),
                time_spent_seconds=existing.time_spent_seconds + time_spent_seconds,
                started_at=existing.started_at or now,
                last_accessed_at=now,
                completed_at=existing.completed_at,
            )
        else:
            progress = LessonProgress(
                user_id=user_id,
                course_id=course_id,
                lesson_id=lesson_id,
                organization_id=organization_id,
                status=status,
                watch_time_seconds=watch_time_seconds,
                scroll_depth=scroll_depth,
                time_spent_seconds=time_spent_seconds,
                started_at=now,
                last_accessed_at=now,
            )

        newly_completed = progress.is_completed and progress.completed_at is None
        if newly_completed:
            progress.completed_at = now

        await self._save_lesson_progress(progress)

        if newly_completed:
            logger.info(
                "lesson_completed",
                user_id=str(user_id),
                course_id=str(course_id),
                lesson_id=str(lesson_id),
            )
            self._track(
                progress.organization_id,
                EventType.LESSON_COMPLETED,
                "Lesson Completed",
                user_id,
                {"courseId": str(course_id), "lessonId": str(lesson_id)},
            )
        elif not existing:
            self._track(
                progress.organization_id,
                EventType.LESSON_STARTED,
                "Lesson Started",
                user_id,
                {"courseId": str(course_id), "lessonId": str(lesson_id)},
            )

        if not progress.is_completed:
            return progress, None

        outcome = await self.apply_lesson_completion(user_id, course_id, lesson_id)
        return progress, outcome

    async def _save_lesson_progress(self, progress: LessonProgress) -> None:
        await self.session.aexecute(
            self._upsert_lesson_progress,
            [
                progress.user_id,
                progress.course_id,
                progress.lesson_id,
                progress.organization_id,
                progress.status,
                progress.watch_time_seconds,
                progress.scroll_depth,
                progress.time_spent_seconds,
                progress.started_at,
                progress.last_accessed_at,
                progress.completed_at,
            ],
        )

    # ==========================================================================
    # Quiz Attempt Operations
    # ==========================================================================

    async def submit_quiz_attempt(
        self,
        user_id: UUID,
        lesson_id: UUID,
        course_id: UUID,
        organization_id: UUID,
        score: int,
        answers: list[QuizAnswer],
        time_spent_seconds: int = 0,
        passed: bool | None = None,
        is_module_assessment: bool = False,
    ) -> tuple[QuizAttempt, ProgressOutcome | None]:
        """Store a quiz attempt; a pass completes the lesson.

        When ``passed`` is not given it is derived from the lesson's passing
        score.

        Returns:
            The stored attempt and the recompute outcome (None when not passed)
        """
        if passed is None:
            lesson = await self.course_service.get_lesson(lesson_id)
            passing_score = lesson.passing_score if lesson else DEFAULT_PASSING_SCORE
            passed = score >= passing_score

        completed_at = datetime.now(UTC)
        attempt = await self._insert_next_attempt(
            QuizAttempt(
                user_id=user_id,
                lesson_id=lesson_id,
                attempt_number=0,
                course_id=course_id,
                organization_id=organization_id,
                score=score,
                passed=passed,
                answers=answers,
                time_spent_seconds=time_spent_seconds,
                is_module_assessment=is_module_assessment,
                started_at=completed_at - timedelta(seconds=time_spent_seconds),
                completed_at=completed_at,
            )
        )

        logger.info(
            "quiz_attempt_submitted",
            user_id=str(user_id),
            lesson_id=str(lesson_id),
            attempt_number=attempt.attempt_number,
            score=score,
            passed=passed,
        )
        self._track(
            organization_id,
            EventType.QUIZ_PASSED if passed else EventType.QUIZ_ATTEMPTED,
            "Quiz Passed" if passed else "Quiz Attempted",
            user_id,
            {
                "courseId": str(course_id),
                "lessonId": str(lesson_id),
                "score": score,
                "attemptNumber": attempt.attempt_number,
            },
        )

        if not passed:
            return attempt, None

        _, outcome = await self.record_lesson_progress(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            organization_id=organization_id,
            status=LessonProgressStatus.COMPLETED.value,
        )
        return attempt, outcome

    async def _insert_next_attempt(self, attempt: QuizAttempt) -> QuizAttempt:
        """Insert under the next free attempt number.

        Raises:
            QuizAttemptConflictError: If concurrent submissions keep winning
        """
        for _ in range(MAX_QUIZ_INSERT_ATTEMPTS):
            result = await self.session.aexecute(
                self._get_latest_attempt_number, [attempt.user_id, attempt.lesson_id]
            )
            row = result.one()
            attempt.attempt_number = (row.attempt_number if row else 0) + 1

            inserted = await self.session.aexecute(
                self._insert_quiz_attempt,
                [
                    attempt.user_id,
                    attempt.lesson_id,
                    attempt.attempt_number,
                    attempt.course_id,
                    attempt.organization_id,
                    [tuple(answer) for answer in attempt.answers],
                    attempt.score,
                    attempt.passed,
                    attempt.time_spent_seconds,
                    attempt.is_module_assessment,
                    attempt.started_at,
                    attempt.completed_at,
                ],
            )
            if inserted.was_applied:
                return attempt

        raise QuizAttemptConflictError

    async def get_quiz_attempts(
        self, user_id: UUID, lesson_id: UUID, limit: int = 50
    ) -> list[QuizAttempt]:
        """Attempts for a lesson, most recent first."""
        rows = await self.session.aexecute(
            self._get_quiz_attempts, [user_id, lesson_id, limit]
        )
        return [QuizAttempt.from_row(row) for row in rows]


# ==============================================================================
# Helpers
# ==============================================================================


def build_course_completed_properties(
    enrollment: Enrollment,
    course_title: str | None,
    course_category: str | None,
    total_lessons: int,
    total_time_spent_seconds: int,
) -> dict[str, Any]:
    """Properties of the course_completed analytics event."""
    duration_days = 0
    if enrollment.started_at and enrollment.completed_at:
        duration_days = (enrollment.completed_at - enrollment.started_at).days

    return {
        "courseId": str(enrollment.course_id),
        "courseTitle": course_title,
        "courseCategory": course_category,
        "totalLessons": total_lessons,
        "completedLessons": len(enrollment.completed_lesson_ids),
        "totalTimeSpent": total_time_spent_seconds // 60,
        "startedAt": enrollment.started_at.isoformat() if enrollment.started_at else None,
        "completedAt": (
            enrollment.completed_at.isoformat() if enrollment.completed_at else None
        ),
        "durationDays": duration_days,
    }
