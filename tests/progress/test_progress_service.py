"""Tests for ProgressService.

Cassandra is replaced by an in-memory fake that dispatches on the prepared
statement, so the version-guarded write and its retry run for real.
"""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest

from learnhub.analytics.models import EventType
from learnhub.courses.models import (
    Course,
    CourseCategory,
    CourseOutline,
    Lesson,
    OutlineLesson,
    OutlineModule,
)
from learnhub.progress.models import (
    Enrollment,
    EnrollmentStatus,
    LessonProgressStatus,
    QuizAnswer,
)
from learnhub.progress.service import (
    AlreadyEnrolledError,
    CourseUnavailableError,
    ProgressService,
    build_course_completed_properties,
)
from learnhub.progress.tracker import ProgressSkipped, ProgressUpdated, SkipReason


class Result:
    """Stand-in for a driver ResultSet."""

    def __init__(self, rows=(), was_applied: bool = True):
        self._rows = list(rows)
        self.was_applied = was_applied

    def one(self):
        return self._rows[0] if self._rows else None

    def __iter__(self):
        return iter(self._rows)


class FakeProgressStore:
    """In-memory tables behind ProgressService's prepared statements."""

    def __init__(self):
        self.enrollments: dict[tuple, dict] = {}
        self.lesson_progress: dict[tuple, dict] = {}
        self.quiz_attempts: dict[tuple, list[int]] = {}
        self.update_calls = 0
        self.before_update = None
        self.fail_updates = False
        self.service: ProgressService | None = None

    def put_enrollment(self, enrollment: Enrollment) -> None:
        self.enrollments[(enrollment.user_id, enrollment.course_id)] = (
            enrollment.to_dict()
        )

    def enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment:
        return Enrollment(**self.enrollments[(user_id, course_id)])

    async def aexecute(self, statement, params=None):
        s = self.service
        if statement is s._get_enrollment:
            row = self.enrollments.get(tuple(params))
            return Result([SimpleNamespace(**row)] if row else [])
        if statement is s._get_user_enrollments:
            return Result(
                SimpleNamespace(**row)
                for key, row in self.enrollments.items()
                if key[0] == params[0]
            )
        if statement is s._insert_enrollment:
            key = (params[0], params[1])
            if key in self.enrollments:
                return Result(was_applied=False)
            self.enrollments[key] = dict(
                zip(
                    [
                        "user_id",
                        "course_id",
                        "organization_id",
                        "status",
                        "progress_percentage",
                        "completed_lesson_ids",
                        "current_lesson_id",
                        "enrolled_at",
                        "started_at",
                        "completed_at",
                        "updated_at",
                        "version",
                    ],
                    params,
                    strict=True,
                )
            )
            return Result()
        if statement is s._update_enrollment_if_version:
            return self._conditional_update(params)
        if statement is s._get_lesson_progress:
            row = self.lesson_progress.get(tuple(params))
            return Result([SimpleNamespace(**row)] if row else [])
        if statement is s._get_course_lesson_progress:
            return Result(
                SimpleNamespace(**row)
                for key, row in self.lesson_progress.items()
                if key[:2] == tuple(params)
            )
        if statement is s._upsert_lesson_progress:
            names = [
                "user_id",
                "course_id",
                "lesson_id",
                "organization_id",
                "status",
                "watch_time_seconds",
                "scroll_depth",
                "time_spent_seconds",
                "started_at",
                "last_accessed_at",
                "completed_at",
            ]
            row = dict(zip(names, params, strict=True))
            self.lesson_progress[(params[0], params[1], params[2])] = row
            return Result()
        if statement is s._get_latest_attempt_number:
            numbers = self.quiz_attempts.get(tuple(params), [])
            return Result(
                [SimpleNamespace(attempt_number=max(numbers))] if numbers else []
            )
        if statement is s._insert_quiz_attempt:
            numbers = self.quiz_attempts.setdefault((params[0], params[1]), [])
            if params[2] in numbers:
                return Result(was_applied=False)
            numbers.append(params[2])
            return Result()
        msg = f"unexpected statement {statement!r}"
        raise AssertionError(msg)

    def _conditional_update(self, params):
        self.update_calls += 1
        if self.fail_updates:
            msg = "write timeout"
            raise RuntimeError(msg)
        if self.before_update:
            hook, self.before_update = self.before_update, None
            hook()

        (
            status,
            percentage,
            completed,
            current,
            started_at,
            completed_at,
            updated_at,
            version,
            user_id,
            course_id,
            expected_version,
        ) = params
        row = self.enrollments[(user_id, course_id)]
        if row["version"] != expected_version:
            return Result(was_applied=False)
        row.update(
            status=status,
            progress_percentage=percentage,
            completed_lesson_ids=list(completed),
            current_lesson_id=current,
            started_at=started_at,
            completed_at=completed_at,
            updated_at=updated_at,
            version=version,
        )
        return Result()


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def organization_id() -> UUID:
    return uuid4()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def course(organization_id: UUID) -> Course:
    return Course(
        organization_id=organization_id,
        title="Security Awareness",
        category=CourseCategory.COMPLIANCE.value,
    )


@pytest.fixture
def lessons() -> list[UUID]:
    return [uuid4() for _ in range(4)]


@pytest.fixture
def outline(course: Course, lessons: list[UUID]) -> CourseOutline:
    first = OutlineModule(
        module_id=uuid4(),
        position=1,
        lessons=(OutlineLesson(lessons[0], 1), OutlineLesson(lessons[1], 2)),
    )
    second = OutlineModule(
        module_id=uuid4(),
        position=2,
        lessons=(OutlineLesson(lessons[2], 1), OutlineLesson(lessons[3], 2)),
    )
    return CourseOutline(course=course, modules=(second, first))


@pytest.fixture
def course_service(course: Course, outline: CourseOutline):
    service = Mock()
    service.get_course_outline = AsyncMock(return_value=outline)
    service.get_course = AsyncMock(return_value=course)
    service.get_lesson = AsyncMock(return_value=None)
    return service


@pytest.fixture
def analytics():
    emitter = Mock()
    emitter.track = Mock(return_value=True)
    return emitter


@pytest.fixture
def store() -> FakeProgressStore:
    return FakeProgressStore()


@pytest.fixture
def progress_service(store, course_service, analytics) -> ProgressService:
    session = Mock()
    # Distinct objects per statement so the fake can dispatch on identity
    session.prepare = Mock(side_effect=lambda *args, **kwargs: Mock())
    session.aexecute = AsyncMock(side_effect=store.aexecute)
    service = ProgressService(
        session=session,
        keyspace="test_keyspace",
        course_service=course_service,
        analytics=analytics,
        max_update_attempts=3,
    )
    store.service = service
    return service


@pytest.fixture
def enrollment(store, user_id, course, organization_id) -> Enrollment:
    enrollment = Enrollment(
        user_id=user_id, course_id=course.id, organization_id=organization_id
    )
    store.put_enrollment(enrollment)
    return enrollment


def course_completed_calls(analytics) -> list:
    return [
        call
        for call in analytics.track.call_args_list
        if call.kwargs["event_type"] == EventType.COURSE_COMPLETED.value
    ]


# ==============================================================================
# Enrollment
# ==============================================================================


class TestEnrollUser:
    @pytest.mark.asyncio
    async def test_enroll_creates_zeroed_enrollment(
        self, progress_service, store, analytics, user_id, course, lessons
    ):
        enrollment = await progress_service.enroll_user(user_id, course.id)

        assert enrollment.status == EnrollmentStatus.NOT_STARTED.value
        assert enrollment.progress_percentage == 0
        assert enrollment.current_lesson_id == lessons[0]
        assert enrollment.organization_id == course.organization_id
        assert (user_id, course.id) in store.enrollments
        assert analytics.track.call_args.kwargs["event_type"] == (
            EventType.COURSE_ENROLLED.value
        )

    @pytest.mark.asyncio
    async def test_duplicate_enrollment_rejected(
        self, progress_service, enrollment, user_id, course
    ):
        with pytest.raises(AlreadyEnrolledError):
            await progress_service.enroll_user(user_id, course.id)

    @pytest.mark.asyncio
    async def test_unknown_course_rejected(self, progress_service, course_service):
        course_service.get_course_outline.return_value = None

        with pytest.raises(CourseUnavailableError):
            await progress_service.enroll_user(uuid4(), uuid4())


# ==============================================================================
# Completion Recompute
# ==============================================================================


class TestApplyLessonCompletion:
    @pytest.mark.asyncio
    async def test_updates_enrollment(
        self, progress_service, store, enrollment, user_id, course, lessons
    ):
        outcome = await progress_service.apply_lesson_completion(
            user_id, course.id, lessons[0]
        )

        assert isinstance(outcome, ProgressUpdated)
        saved = store.enrollment(user_id, course.id)
        assert saved.progress_percentage == 25
        assert saved.status == EnrollmentStatus.IN_PROGRESS.value
        assert saved.current_lesson_id == lessons[1]
        assert saved.version == 1

    @pytest.mark.asyncio
    async def test_missing_enrollment_is_skipped(self, progress_service, lessons):
        outcome = await progress_service.apply_lesson_completion(
            uuid4(), uuid4(), lessons[0]
        )

        assert isinstance(outcome, ProgressSkipped)
        assert outcome.reason == SkipReason.ENROLLMENT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_missing_course_is_skipped(
        self, progress_service, course_service, enrollment, user_id, course, lessons
    ):
        course_service.get_course_outline.return_value = None

        outcome = await progress_service.apply_lesson_completion(
            user_id, course.id, lessons[0]
        )

        assert outcome.reason == SkipReason.COURSE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_completing_last_lesson_emits_one_event(
        self, progress_service, store, analytics, user_id, course, lessons,
        organization_id,
    ):
        started = datetime.now(UTC) - timedelta(days=3, hours=1)
        store.put_enrollment(
            Enrollment(
                user_id=user_id,
                course_id=course.id,
                organization_id=organization_id,
                status=EnrollmentStatus.IN_PROGRESS.value,
                progress_percentage=75,
                completed_lesson_ids=lessons[:3],
                started_at=started,
                version=3,
            )
        )
        for index, lesson_id in enumerate(lessons):
            store.lesson_progress[(user_id, course.id, lesson_id)] = {
                "user_id": user_id,
                "course_id": course.id,
                "lesson_id": lesson_id,
                "organization_id": organization_id,
                "status": LessonProgressStatus.COMPLETED.value,
                "watch_time_seconds": 0,
                "scroll_depth": 0,
                "time_spent_seconds": 600 + index,
                "started_at": started,
                "last_accessed_at": started,
                "completed_at": started,
            }

        outcome = await progress_service.apply_lesson_completion(
            user_id, course.id, lessons[3]
        )

        assert outcome.course_completed is True
        assert outcome.previous_percentage == 75
        assert outcome.enrollment.progress_percentage == 100
        assert outcome.enrollment.status == EnrollmentStatus.COMPLETED.value

        calls = course_completed_calls(analytics)
        assert len(calls) == 1
        kwargs = calls[0].kwargs
        assert kwargs["organization_id"] == organization_id
        assert kwargs["user_id"] == user_id
        properties = kwargs["properties"]
        assert properties["courseId"] == str(course.id)
        assert properties["courseTitle"] == "Security Awareness"
        assert properties["courseCategory"] == "compliance"
        assert properties["totalLessons"] == 4
        assert properties["completedLessons"] == 4
        assert properties["totalTimeSpent"] == 40
        assert properties["durationDays"] == 3

        # Completing again neither changes the status nor re-emits
        again = await progress_service.apply_lesson_completion(
            user_id, course.id, lessons[3]
        )
        assert again.reason == SkipReason.ALREADY_COMPLETED
        assert len(course_completed_calls(analytics)) == 1

    @pytest.mark.asyncio
    async def test_lost_race_is_retried_on_fresh_state(
        self, progress_service, store, enrollment, user_id, course, lessons
    ):
        """A concurrent completion of another lesson is kept, not overwritten."""

        def concurrent_writer():
            row = store.enrollments[(user_id, course.id)]
            row.update(
                completed_lesson_ids=[lessons[1]],
                progress_percentage=25,
                status=EnrollmentStatus.IN_PROGRESS.value,
                version=row["version"] + 1,
            )

        store.before_update = concurrent_writer

        outcome = await progress_service.apply_lesson_completion(
            user_id, course.id, lessons[0]
        )

        assert isinstance(outcome, ProgressUpdated)
        assert store.update_calls == 2
        saved = store.enrollment(user_id, course.id)
        assert set(saved.completed_lesson_ids) == {lessons[0], lessons[1]}
        assert saved.progress_percentage == 50
        assert saved.current_lesson_id == lessons[2]
        assert saved.version == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(
        self, progress_service, store, enrollment, user_id, course, lessons
    ):
        original = store._conditional_update

        def always_conflict(params):
            store.update_calls += 1
            return Result(was_applied=False)

        store._conditional_update = always_conflict
        try:
            outcome = await progress_service.apply_lesson_completion(
                user_id, course.id, lessons[0]
            )
        finally:
            store._conditional_update = original

        assert outcome.reason == SkipReason.WRITE_CONFLICT
        assert store.update_calls == 3

    @pytest.mark.asyncio
    async def test_persistence_failure_is_reported_not_raised(
        self, progress_service, store, enrollment, user_id, course, lessons
    ):
        store.fail_updates = True

        outcome = await progress_service.apply_lesson_completion(
            user_id, course.id, lessons[0]
        )

        assert outcome.reason == SkipReason.PERSISTENCE_FAILED
        assert "write timeout" in outcome.detail

    @pytest.mark.asyncio
    async def test_analytics_failure_keeps_update(
        self, progress_service, store, analytics, user_id, course, lessons,
        organization_id,
    ):
        store.put_enrollment(
            Enrollment(
                user_id=user_id,
                course_id=course.id,
                organization_id=organization_id,
                status=EnrollmentStatus.IN_PROGRESS.value,
                completed_lesson_ids=lessons[:3],
                started_at=datetime.now(UTC),
                version=3,
            )
        )
        analytics.track.side_effect = RuntimeError("queue broken")

        outcome = await progress_service.apply_lesson_completion(
            user_id, course.id, lessons[3]
        )

        assert isinstance(outcome, ProgressUpdated)
        assert store.enrollment(user_id, course.id).is_completed


# ==============================================================================
# Triggers
# ==============================================================================


class TestRecordLessonProgress:
    @pytest.mark.asyncio
    async def test_engagement_merges_without_recompute(
        self, progress_service, store, enrollment, user_id, course, lessons
    ):
        await progress_service.record_lesson_progress(
            user_id, course.id, lessons[0], watch_time_seconds=120,
            scroll_depth=40, time_spent_seconds=60,
        )
        progress, outcome = await progress_service.record_lesson_progress(
            user_id, course.id, lessons[0], watch_time_seconds=90,
            scroll_depth=70, time_spent_seconds=30,
        )

        assert outcome is None
        assert progress.watch_time_seconds == 120
        assert progress.scroll_depth == 70
        assert progress.time_spent_seconds == 90
        assert store.update_calls == 0

    @pytest.mark.asyncio
    async def test_completion_recomputes_enrollment(
        self, progress_service, store, enrollment, user_id, course, lessons
    ):
        progress, outcome = await progress_service.record_lesson_progress(
            user_id,
            course.id,
            lessons[0],
            status=LessonProgressStatus.COMPLETED.value,
        )

        assert progress.completed_at is not None
        assert isinstance(outcome, ProgressUpdated)
        assert store.enrollment(user_id, course.id).progress_percentage == 25

    @pytest.mark.asyncio
    async def test_completed_status_is_sticky(
        self, progress_service, enrollment, user_id, course, lessons
    ):
        first, _ = await progress_service.record_lesson_progress(
            user_id, course.id, lessons[0], status=LessonProgressStatus.COMPLETED.value
        )
        second, outcome = await progress_service.record_lesson_progress(
            user_id, course.id, lessons[0], status=LessonProgressStatus.IN_PROGRESS.value
        )

        assert second.status == LessonProgressStatus.COMPLETED.value
        assert second.completed_at == first.completed_at
        assert outcome.reason == SkipReason.ALREADY_COMPLETED

    @pytest.mark.asyncio
    async def test_not_enrolled_completion_still_saves_progress(
        self, progress_service, store, user_id, course, lessons
    ):
        progress, outcome = await progress_service.record_lesson_progress(
            user_id, course.id, lessons[0], status=LessonProgressStatus.COMPLETED.value
        )

        assert (user_id, course.id, lessons[0]) in store.lesson_progress
        assert progress.is_completed
        assert outcome.reason == SkipReason.ENROLLMENT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_status_never_moves_backwards(
        self, progress_service, enrollment, user_id, course, lessons
    ):
        await progress_service.record_lesson_progress(
            user_id,
            course.id,
            lessons[0],
            status=LessonProgressStatus.IN_PROGRESS.value,
            watch_time_seconds=30,
        )
        progress, outcome = await progress_service.record_lesson_progress(
            user_id, course.id, lessons[0], status=LessonProgressStatus.NOT_STARTED.value
        )

        assert progress.status == LessonProgressStatus.IN_PROGRESS.value
        assert progress.watch_time_seconds == 30
        assert outcome is None


class TestSubmitQuizAttempt:
    @pytest.mark.asyncio
    async def test_passing_attempt_without_enrollment_is_skipped(
        self, progress_service, store, user_id, course, lessons, organization_id
    ):
        attempt, outcome = await progress_service.submit_quiz_attempt(
            user_id=user_id,
            lesson_id=lessons[1],
            course_id=course.id,
            organization_id=organization_id,
            score=95,
            answers=[],
        )

        assert attempt.passed is True
        assert isinstance(outcome, ProgressSkipped)
        assert outcome.reason == SkipReason.ENROLLMENT_NOT_FOUND
        assert store.quiz_attempts[(user_id, lessons[1])] == [1]

    @pytest.mark.asyncio
    async def test_failed_attempt_does_not_complete(
        self, progress_service, store, enrollment, user_id, course, lessons,
        organization_id,
    ):
        attempt, outcome = await progress_service.submit_quiz_attempt(
            user_id=user_id,
            lesson_id=lessons[1],
            course_id=course.id,
            organization_id=organization_id,
            score=40,
            answers=[QuizAnswer(0, 2, False)],
        )

        assert attempt.attempt_number == 1
        assert attempt.passed is False
        assert outcome is None
        assert store.enrollment(user_id, course.id).progress_percentage == 0

    @pytest.mark.asyncio
    async def test_passing_attempt_completes_lesson(
        self, progress_service, store, course_service, enrollment, user_id,
        course, lessons, organization_id,
    ):
        course_service.get_lesson.return_value = Lesson(
            course_id=course.id,
            module_id=uuid4(),
            title="Phishing",
            position=2,
            id=lessons[1],
            passing_score=80,
        )
        await progress_service.submit_quiz_attempt(
            user_id=user_id,
            lesson_id=lessons[1],
            course_id=course.id,
            organization_id=organization_id,
            score=75,
            answers=[],
        )

        attempt, outcome = await progress_service.submit_quiz_attempt(
            user_id=user_id,
            lesson_id=lessons[1],
            course_id=course.id,
            organization_id=organization_id,
            score=85,
            answers=[QuizAnswer(0, 1, True)],
            time_spent_seconds=120,
        )

        assert attempt.attempt_number == 2
        assert attempt.passed is True
        assert attempt.started_at == attempt.completed_at - timedelta(seconds=120)
        assert isinstance(outcome, ProgressUpdated)
        saved = store.enrollment(user_id, course.id)
        assert saved.completed_lesson_ids == [lessons[1]]
        assert saved.current_lesson_id == lessons[0]
        assert (
            store.lesson_progress[(user_id, course.id, lessons[1])]["status"]
            == LessonProgressStatus.COMPLETED.value
        )


def test_course_completed_properties_without_start():
    enrollment = Enrollment(
        user_id=uuid4(),
        course_id=uuid4(),
        organization_id=uuid4(),
        completed_lesson_ids=[uuid4()],
        completed_at=datetime.now(UTC),
    )

    properties = build_course_completed_properties(
        enrollment,
        course_title=None,
        course_category=None,
        total_lessons=1,
        total_time_spent_seconds=59,
    )

    assert properties["durationDays"] == 0
    assert properties["totalTimeSpent"] == 0
    assert properties["startedAt"] is None
