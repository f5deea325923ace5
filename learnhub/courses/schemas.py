"""Pydantic schemas for course structure.

Request and response models for:
- Courses: creation and catalogue listing
- Modules and lessons: placement inside a course
- Course outline: ordered modules with their lessons
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    ContentType,
    Course,
    CourseCategory,
    CourseOutline,
    CourseStatus,
    Lesson,
    Module,
)


# ==============================================================================
# Course Schemas
# ==============================================================================


class CreateCourseRequest(BaseModel):
    """Course creation request."""

    organization_id: UUID = Field(..., description="Owning organization")
    title: str = Field(..., min_length=3, max_length=200, description="Course title")
    description: str | None = Field(
        None, max_length=5000, description="Course description"
    )
    category: CourseCategory = Field(CourseCategory.OTHER, description="Category")
    status: CourseStatus = Field(CourseStatus.DRAFT, description="Publication status")
    estimated_minutes: int | None = Field(None, ge=0, description="Estimated duration")
    created_by: UUID | None = Field(None, description="Author user UUID")


class CourseResponse(BaseModel):
    """Course response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    title: str
    description: str | None = None
    category: CourseCategory
    status: CourseStatus
    estimated_minutes: int | None = None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Course) -> "CourseResponse":
        return cls(**entity.to_dict())


class CourseSummary(BaseModel):
    """Catalogue entry."""

    id: UUID
    organization_id: UUID
    title: str
    category: CourseCategory
    status: CourseStatus
    created_at: datetime | None = None


class CourseListResponse(BaseModel):
    items: list[CourseSummary]
    total: int


# ==============================================================================
# Module / Lesson Schemas
# ==============================================================================


class CreateModuleRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200, description="Module title")
    position: int = Field(..., ge=0, description="Order within the course")


class ModuleResponse(BaseModel):
    id: UUID
    course_id: UUID
    title: str
    position: int
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: Module) -> "ModuleResponse":
        return cls(**entity.to_dict())


class CreateLessonRequest(BaseModel):
    """Lesson placement request."""

    title: str = Field(..., min_length=1, max_length=200, description="Lesson title")
    position: int = Field(..., ge=0, description="Order within the module")
    content_type: ContentType = Field(ContentType.ARTICLE, description="Content type")
    estimated_minutes: int | None = Field(None, ge=0)
    has_quiz: bool = Field(False, description="Lesson completes via a quiz")
    passing_score: int | None = Field(
        None, ge=0, le=100, description="Quiz passing score (default 70)"
    )


class LessonResponse(BaseModel):
    id: UUID
    course_id: UUID
    module_id: UUID
    title: str
    position: int
    content_type: ContentType
    estimated_minutes: int | None = None
    has_quiz: bool
    passing_score: int
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Lesson) -> "LessonResponse":
        return cls(**entity.to_dict())


# ==============================================================================
# Outline Schemas
# ==============================================================================


class OutlineLessonResponse(BaseModel):
    id: UUID
    title: str | None = None
    position: int
    has_quiz: bool = False


class OutlineModuleResponse(BaseModel):
    id: UUID
    title: str | None = None
    position: int
    lessons: list[OutlineLessonResponse]


class CourseOutlineResponse(BaseModel):
    """Course with its modules and lessons in course order."""

    course: CourseResponse
    modules: list[OutlineModuleResponse]
    lesson_ids: list[UUID] = Field(description="Flattened lesson sequence")
    total_lessons: int

    @classmethod
    def from_outline(cls, outline: CourseOutline) -> "CourseOutlineResponse":
        modules = [
            OutlineModuleResponse(
                id=module.module_id,
                title=module.title,
                position=module.position,
                lessons=[
                    OutlineLessonResponse(
                        id=lesson.lesson_id,
                        title=lesson.title,
                        position=lesson.position,
                        has_quiz=lesson.has_quiz,
                    )
                    for lesson in sorted(
                        module.lessons, key=lambda item: (item.position, item.lesson_id)
                    )
                ],
            )
            for module in outline.ordered_modules()
        ]
        lesson_ids = outline.ordered_lesson_ids()
        return cls(
            course=CourseResponse.from_entity(outline.course),
            modules=modules,
            lesson_ids=lesson_ids,
            total_lessons=len(lesson_ids),
        )
