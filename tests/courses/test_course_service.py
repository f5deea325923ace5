"""Tests for course outline reads."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest

from learnhub.courses.service import CourseService


class Result:
    def __init__(self, rows=()):
        self._rows = list(rows)

    def one(self):
        return self._rows[0] if self._rows else None

    def __iter__(self):
        return iter(self._rows)


def course_row(course_id: UUID) -> SimpleNamespace:
    return SimpleNamespace(
        id=course_id,
        organization_id=uuid4(),
        title="Security Basics",
        description=None,
        category="compliance",
        status="published",
        estimated_minutes=None,
        created_by=None,
        created_at=None,
        updated_at=None,
    )


def lesson_row(lesson_id: UUID, position: int, has_quiz=None) -> SimpleNamespace:
    return SimpleNamespace(
        lesson_id=lesson_id, position=position, title=f"L{position}", has_quiz=has_quiz
    )


@pytest.fixture
def session():
    session = Mock()
    session.prepare = Mock(side_effect=lambda *args, **kwargs: Mock())
    session.aexecute = AsyncMock()
    return session


@pytest.fixture
def service(session) -> CourseService:
    return CourseService(session=session, keyspace="test_keyspace")


class TestGetCourseOutline:
    @pytest.mark.asyncio
    async def test_builds_ordered_outline(self, service, session):
        course_id = uuid4()
        intro, deep_dive = uuid4(), uuid4()
        first, second, third = uuid4(), uuid4(), uuid4()
        lessons_by_module = {
            intro: [lesson_row(second, 2), lesson_row(first, 1, has_quiz=True)],
            deep_dive: [lesson_row(third, 1)],
        }

        async def execute(statement, params):
            if statement is service._get_course_by_id:
                return Result([course_row(course_id)])
            if statement is service._get_course_modules:
                return Result(
                    [
                        SimpleNamespace(module_id=deep_dive, position=2, title="Deep"),
                        SimpleNamespace(module_id=intro, position=1, title="Intro"),
                    ]
                )
            if statement is service._get_module_lessons:
                return Result(lessons_by_module[params[0]])
            raise AssertionError("unexpected statement")

        session.aexecute.side_effect = execute

        outline = await service.get_course_outline(course_id)

        assert outline.course.title == "Security Basics"
        assert outline.ordered_lesson_ids() == [first, second, third]
        assert outline.total_lessons == 3
        intro_module = outline.ordered_modules()[0]
        assert intro_module.title == "Intro"
        assert {lesson.has_quiz for lesson in intro_module.lessons} == {True, False}

    @pytest.mark.asyncio
    async def test_missing_course(self, service, session):
        session.aexecute.return_value = Result()

        assert await service.get_course_outline(uuid4()) is None
        assert session.aexecute.await_count == 1
