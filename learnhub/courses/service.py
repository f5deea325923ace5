"""Course structure service layer.

Business logic for:
- Course creation and catalogue listing per organization
- Module and lesson placement inside a course
- Course outline reads used by the progress tracker
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import (
    Course,
    CourseOutline,
    Lesson,
    Module,
    OutlineLesson,
    OutlineModule,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseError(Exception):
    """Base course error."""

    def __init__(self, message: str, code: str = "course_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CourseNotFoundError(CourseError):
    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class ModuleNotFoundError(CourseError):
    def __init__(self, message: str = "Module not found"):
        super().__init__(message, "module_not_found")


class LessonNotFoundError(CourseError):
    def __init__(self, message: str = "Lesson not found"):
        super().__init__(message, "lesson_not_found")


# ==============================================================================
# Course Service
# ==============================================================================


class CourseService:
    """Service for courses and their ordered module/lesson structure."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Courses
        self._get_course_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._insert_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses
            (id, organization_id, title, description, category, status,
             estimated_minutes, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_course_by_organization = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses_by_organization
            (organization_id, created_at, course_id, title, category, status)
            VALUES (?, ?, ?, ?, ?, ?)
        """)
        self._get_courses_by_organization = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses_by_organization "
            "WHERE organization_id = ? LIMIT ?"
        )

        # Modules
        self._get_module_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.modules WHERE id = ?"
        )
        self._insert_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.modules
            (id, course_id, title, position, created_at)
            VALUES (?, ?, ?, ?, ?)
        """)
        self._insert_course_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_modules
            (course_id, position, module_id, title)
            VALUES (?, ?, ?, ?)
        """)
        self._get_course_modules = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.course_modules WHERE course_id = ?"
        )

        # Lessons
        self._get_lesson_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.lessons WHERE id = ?"
        )
        self._insert_lesson = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lessons
            (id, course_id, module_id, title, content_type, position,
             estimated_minutes, has_quiz, passing_score, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_lesson = self.session.prepare(
            f"DELETE FROM {self.keyspace}.lessons WHERE id = ?"
        )
        self._insert_module_lesson = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_lessons
            (module_id, position, lesson_id, title, has_quiz)
            VALUES (?, ?, ?, ?, ?)
        """)
        self._delete_module_lesson = self.session.prepare(
            f"DELETE FROM {self.keyspace}.module_lessons "
            "WHERE module_id = ? AND position = ? AND lesson_id = ?"
        )
        self._get_module_lessons = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.module_lessons WHERE module_id = ?"
        )

    # ==========================================================================
    # Courses
    # ==========================================================================

    async def create_course(
        self,
        organization_id: UUID,
        title: str,
        description: str | None,
        category: str,
        status: str,
        estimated_minutes: int | None = None,
        created_by: UUID | None = None,
    ) -> Course:
        """Create a course and its organization catalogue entry."""
        course = Course(
            organization_id=organization_id,
            title=title,
            description=description,
            category=category,
            status=status,
            estimated_minutes=estimated_minutes,
            created_by=created_by,
        )

        await self.session.aexecute(
            self._insert_course,
            [
                course.id,
                course.organization_id,
                course.title,
                course.description,
                course.category,
                course.status,
                course.estimated_minutes,
                course.created_by,
                course.created_at,
                course.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_course_by_organization,
            [
                course.organization_id,
                course.created_at,
                course.id,
                course.title,
                course.category,
                course.status,
            ],
        )

        logger.info(
            "course_created",
            course_id=str(course.id),
            organization_id=str(organization_id),
        )
        return course

    async def get_course(self, course_id: UUID) -> Course | None:
        result = await self.session.aexecute(self._get_course_by_id, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def list_organization_courses(
        self, organization_id: UUID, limit: int = 50
    ) -> list[dict]:
        """List catalogue entries for an organization, newest first."""
        rows = await self.session.aexecute(
            self._get_courses_by_organization, [organization_id, limit]
        )
        return [
            {
                "id": row.course_id,
                "organization_id": row.organization_id,
                "title": row.title,
                "category": row.category,
                "status": row.status,
                "created_at": row.created_at,
            }
            for row in rows
        ]

    # ==========================================================================
    # Modules
    # ==========================================================================

    async def get_module(self, module_id: UUID) -> Module | None:
        result = await self.session.aexecute(self._get_module_by_id, [module_id])
        row = result.one()
        return Module.from_row(row) if row else None

    async def add_module(self, course_id: UUID, title: str, position: int) -> Module:
        """Append a module to a course at ``position``.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        if not await self.get_course(course_id):
            raise CourseNotFoundError

        module = Module(course_id=course_id, title=title, position=position)
        await self.session.aexecute(
            self._insert_module,
            [module.id, module.course_id, module.title, module.position, module.created_at],
        )
        await self.session.aexecute(
            self._insert_course_module,
            [course_id, module.position, module.id, module.title],
        )

        logger.info(
            "module_added",
            course_id=str(course_id),
            module_id=str(module.id),
            position=position,
        )
        return module

    # ==========================================================================
    # Lessons
    # ==========================================================================

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        result = await self.session.aexecute(self._get_lesson_by_id, [lesson_id])
        row = result.one()
        return Lesson.from_row(row) if row else None

    async def add_lesson(
        self,
        course_id: UUID,
        module_id: UUID,
        title: str,
        position: int,
        content_type: str,
        estimated_minutes: int | None = None,
        has_quiz: bool = False,
        passing_score: int | None = None,
    ) -> Lesson:
        """Place a new lesson in a module.

        Raises:
            ModuleNotFoundError: If the module does not belong to the course
        """
        module = await self.get_module(module_id)
        if not module or module.course_id != course_id:
            raise ModuleNotFoundError

        lesson = Lesson(
            course_id=course_id,
            module_id=module_id,
            title=title,
            position=position,
            content_type=content_type,
            estimated_minutes=estimated_minutes,
            has_quiz=has_quiz,
        )
        if passing_score is not None:
            lesson.passing_score = passing_score

        await self.session.aexecute(
            self._insert_lesson,
            [
                lesson.id,
                lesson.course_id,
                lesson.module_id,
                lesson.title,
                lesson.content_type,
                lesson.position,
                lesson.estimated_minutes,
                lesson.has_quiz,
                lesson.passing_score,
                lesson.created_at,
                lesson.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_module_lesson,
            [module_id, lesson.position, lesson.id, lesson.title, lesson.has_quiz],
        )

        logger.info(
            "lesson_added",
            course_id=str(course_id),
            module_id=str(module_id),
            lesson_id=str(lesson.id),
        )
        return lesson

    async def remove_lesson(self, course_id: UUID, lesson_id: UUID) -> None:
        """Remove a lesson from its module.

        Enrollments are not touched; the lesson drops out of the outline and
        therefore out of the percentage denominator on the next recompute.

        Raises:
            LessonNotFoundError: If the lesson does not belong to the course
        """
        lesson = await self.get_lesson(lesson_id)
        if not lesson or lesson.course_id != course_id:
            raise LessonNotFoundError

        await self.session.aexecute(
            self._delete_module_lesson, [lesson.module_id, lesson.position, lesson.id]
        )
        await self.session.aexecute(self._delete_lesson, [lesson.id])

        logger.info(
            "lesson_removed",
            course_id=str(course_id),
            lesson_id=str(lesson_id),
        )

    # ==========================================================================
    # Outline
    # ==========================================================================

    async def get_course_outline(self, course_id: UUID) -> CourseOutline | None:
        """Read the course with its modules and lessons, in course order.

        Always reads from storage so structural edits are visible to the next
        progress recompute.
        """
        course = await self.get_course(course_id)
        if not course:
            return None

        module_rows = await self.session.aexecute(self._get_course_modules, [course_id])
        modules: list[OutlineModule] = []
        for module_row in module_rows:
            lesson_rows = await self.session.aexecute(
                self._get_module_lessons, [module_row.module_id]
            )
            lessons = tuple(
                OutlineLesson(
                    lesson_id=row.lesson_id,
                    position=row.position,
                    title=row.title,
                    has_quiz=bool(row.has_quiz),
                )
                for row in lesson_rows
            )
            modules.append(
                OutlineModule(
                    module_id=module_row.module_id,
                    position=module_row.position,
                    title=module_row.title,
                    lessons=lessons,
                )
            )

        return CourseOutline(course=course, modules=tuple(modules))

