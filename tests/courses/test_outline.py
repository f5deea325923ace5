"""Tests for the course outline read model."""

from uuid import UUID

from learnhub.courses.models import Course, CourseOutline, OutlineLesson, OutlineModule


def uid(n: int) -> UUID:
    return UUID(int=n)


def make_outline(*modules: OutlineModule) -> CourseOutline:
    course = Course(organization_id=uid(999), title="Onboarding")
    return CourseOutline(course=course, modules=modules)


class TestCourseOutline:
    def test_lessons_follow_module_then_lesson_position(self):
        outline = make_outline(
            OutlineModule(
                module_id=uid(20),
                position=2,
                lessons=(OutlineLesson(uid(3), 1),),
            ),
            OutlineModule(
                module_id=uid(10),
                position=1,
                lessons=(OutlineLesson(uid(2), 2), OutlineLesson(uid(1), 1)),
            ),
        )

        assert outline.ordered_lesson_ids() == [uid(1), uid(2), uid(3)]
        assert outline.total_lessons == 3

    def test_position_ties_broken_by_id(self):
        outline = make_outline(
            OutlineModule(
                module_id=uid(10),
                position=1,
                lessons=(OutlineLesson(uid(5), 1), OutlineLesson(uid(4), 1)),
            ),
        )

        assert outline.ordered_lesson_ids() == [uid(4), uid(5)]

    def test_empty_course(self):
        outline = make_outline()

        assert outline.ordered_lesson_ids() == []
        assert outline.total_lessons == 0

    def test_empty_module_contributes_nothing(self):
        outline = make_outline(
            OutlineModule(module_id=uid(10), position=1),
            OutlineModule(
                module_id=uid(11), position=2, lessons=(OutlineLesson(uid(1), 1),)
            ),
        )

        assert outline.ordered_lesson_ids() == [uid(1)]
