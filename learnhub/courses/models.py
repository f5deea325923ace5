"""Database models for course structure.

Cassandra table definitions for:
- Courses: one row per course, owned by an organization
- Modules and lessons: entity tables keyed by id
- Ordering tables: course_modules and module_lessons, clustered by position
  so a course outline is read in order with one query per level
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class CourseStatus(str, Enum):
    """Course publication status."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class CourseCategory(str, Enum):
    """Course catalogue category."""

    ONBOARDING = "onboarding"
    TECHNICAL = "technical"
    SALES = "sales"
    SOFT_SKILLS = "soft_skills"
    COMPLIANCE = "compliance"
    OTHER = "other"


class ContentType(str, Enum):
    """Lesson content type."""

    VIDEO = "video"
    ARTICLE = "article"


DEFAULT_PASSING_SCORE = 70


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

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    organization_id UUID,
    title TEXT,
    description TEXT,
    category TEXT,
    status TEXT,
    estimated_minutes INT,
    created_by UUID,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Catalogue lookup: "which courses does this organization publish?"
COURSES_BY_ORGANIZATION_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_organization (
    organization_id UUID,
    created_at TIMESTAMP,
    course_id UUID,
    title TEXT,
    category TEXT,
    status TEXT,
    PRIMARY KEY (organization_id, created_at, course_id)
) WITH CLUSTERING ORDER BY (created_at DESC, course_id ASC)
"""

MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules (
    id UUID PRIMARY KEY,
    course_id UUID,
    title TEXT,
    position INT,
    created_at TIMESTAMP
)
"""

LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    course_id UUID,
    module_id UUID,
    title TEXT,
    content_type TEXT,
    position INT,
    estimated_minutes INT,
    has_quiz BOOLEAN,
    passing_score INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

COURSE_MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_modules (
    course_id UUID,
    position INT,
    module_id UUID,
    title TEXT,
    PRIMARY KEY (course_id, position, module_id)
) WITH CLUSTERING ORDER BY (position ASC, module_id ASC)
"""

MODULE_LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_lessons (
    module_id UUID,
    position INT,
    lesson_id UUID,
    title TEXT,
    has_quiz BOOLEAN,
    PRIMARY KEY (module_id, position, lesson_id)
) WITH CLUSTERING ORDER BY (position ASC, lesson_id ASC)
"""

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    COURSES_BY_ORGANIZATION_TABLE_CQL,
    MODULE_TABLE_CQL,
    LESSON_TABLE_CQL,
    COURSE_MODULES_TABLE_CQL,
    MODULE_LESSONS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Course:
    """Course entity.

    Attributes:
        id: Course UUID
        organization_id: Owning organization
        title: Display title
        description: Long description
        category: CourseCategory value
        status: CourseStatus value
        estimated_minutes: Author estimate of total duration
        created_by: Author user UUID
    """

    def __init__(
        self,
        organization_id: UUID,
        title: str,
        id: UUID | None = None,
        description: str | None = None,
        category: str = CourseCategory.OTHER.value,
        status: str = CourseStatus.DRAFT.value,
        estimated_minutes: int | None = None,
        created_by: UUID | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.organization_id = organization_id
        self.title = title
        self.description = description
        self.category = category
        self.status = status
        self.estimated_minutes = estimated_minutes
        self.created_by = created_by
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            organization_id=row.organization_id,
            title=row.title,
            description=row.description,
            category=row.category or CourseCategory.OTHER.value,
            status=row.status or CourseStatus.DRAFT.value,
            estimated_minutes=row.estimated_minutes,
            created_by=row.created_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "estimated_minutes": self.estimated_minutes,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Course {self.id} {self.title!r} {self.status}>"


class Module:
    """Ordered group of lessons inside a course."""

    def __init__(
        self,
        course_id: UUID,
        title: str,
        position: int,
        id: UUID | None = None,
        created_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.course_id = course_id
        self.title = title
        self.position = position
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "Module":
        return cls(
            id=row.id,
            course_id=row.course_id,
            title=row.title,
            position=row.position or 0,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "title": self.title,
            "position": self.position,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"<Module {self.id} #{self.position} {self.title!r}>"


class Lesson:
    """Lesson entity. Lessons with ``has_quiz`` complete when the quiz is passed."""

    def __init__(
        self,
        course_id: UUID,
        module_id: UUID,
        title: str,
        position: int,
        id: UUID | None = None,
        content_type: str = ContentType.ARTICLE.value,
        estimated_minutes: int | None = None,
        has_quiz: bool = False,
        passing_score: int = DEFAULT_PASSING_SCORE,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.course_id = course_id
        self.module_id = module_id
        self.title = title
        self.position = position
        self.content_type = content_type
        self.estimated_minutes = estimated_minutes
        self.has_quiz = has_quiz
        self.passing_score = passing_score
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        return cls(
            id=row.id,
            course_id=row.course_id,
            module_id=row.module_id,
            title=row.title,
            position=row.position or 0,
            content_type=row.content_type or ContentType.ARTICLE.value,
            estimated_minutes=row.estimated_minutes,
            has_quiz=bool(row.has_quiz),
            passing_score=(
                row.passing_score
                if row.passing_score is not None
                else DEFAULT_PASSING_SCORE
            ),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "title": self.title,
            "position": self.position,
            "content_type": self.content_type,
            "estimated_minutes": self.estimated_minutes,
            "has_quiz": self.has_quiz,
            "passing_score": self.passing_score,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Lesson {self.id} #{self.position} {self.title!r}>"


# ==============================================================================
# Course Outline (read model)
# ==============================================================================


@dataclass(frozen=True)
class OutlineLesson:
    lesson_id: UUID
    position: int
    title: str | None = None
    has_quiz: bool = False


@dataclass(frozen=True)
class OutlineModule:
    module_id: UUID
    position: int
    title: str | None = None
    lessons: tuple[OutlineLesson, ...] = ()


@dataclass(frozen=True)
class CourseOutline:
    """Ordered structure of a course as read at one point in time.

    Modules sort by position then id; lessons sort the same way within their
    module. Ties on position are broken by id so the order is total.
    """

    course: Course
    modules: tuple[OutlineModule, ...] = field(default_factory=tuple)

    def ordered_modules(self) -> list[OutlineModule]:
        return sorted(self.modules, key=lambda m: (m.position, m.module_id))

    def ordered_lesson_ids(self) -> list[UUID]:
        """Flatten the outline into the course's lesson sequence."""
        return [
            lesson.lesson_id
            for module in self.ordered_modules()
            for lesson in sorted(
                module.lessons, key=lambda item: (item.position, item.lesson_id)
            )
        ]

    @property
    def total_lessons(self) -> int:
        return sum(len(module.lessons) for module in self.modules)
