"""Course structure API endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from learnhub.auth import ApiToken

from .dependencies import CourseServiceDep, handle_course_error
from .schemas import (
    CourseListResponse,
    CourseOutlineResponse,
    CourseResponse,
    CourseSummary,
    CreateCourseRequest,
    CreateLessonRequest,
    CreateModuleRequest,
    LessonResponse,
    ModuleResponse,
)
from .service import CourseError


router = APIRouter(prefix="/v1/courses", tags=["courses"])


@router.post(
    "",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create course",
)
async def create_course(
    _token: ApiToken,
    data: CreateCourseRequest,
    course_service: CourseServiceDep,
) -> CourseResponse:
    course = await course_service.create_course(
        organization_id=data.organization_id,
        title=data.title,
        description=data.description,
        category=data.category.value,
        status=data.status.value,
        estimated_minutes=data.estimated_minutes,
        created_by=data.created_by,
    )
    return CourseResponse.from_entity(course)


@router.get(
    "",
    response_model=CourseListResponse,
    summary="List organization courses",
)
async def list_courses(
    _token: ApiToken,
    course_service: CourseServiceDep,
    organization_id: UUID = Query(..., description="Organization UUID"),
    limit: int = Query(50, ge=1, le=200),
) -> CourseListResponse:
    entries = await course_service.list_organization_courses(organization_id, limit)
    items = [CourseSummary(**entry) for entry in entries]
    return CourseListResponse(items=items, total=len(items))


@router.get(
    "/{course_id}",
    response_model=CourseOutlineResponse,
    summary="Get course outline",
)
async def get_course_outline(
    _token: ApiToken,
    course_id: UUID,
    course_service: CourseServiceDep,
) -> CourseOutlineResponse:
    """Get a course with its modules and lessons in course order."""
    outline = await course_service.get_course_outline(course_id)
    if not outline:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Course not found",
        )
    return CourseOutlineResponse.from_outline(outline)


@router.post(
    "/{course_id}/modules",
    response_model=ModuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add module to course",
)
async def add_module(
    _token: ApiToken,
    course_id: UUID,
    data: CreateModuleRequest,
    course_service: CourseServiceDep,
) -> ModuleResponse:
    try:
        module = await course_service.add_module(course_id, data.title, data.position)
    except CourseError as e:
        raise handle_course_error(e) from e
    return ModuleResponse.from_entity(module)


@router.post(
    "/{course_id}/modules/{module_id}/lessons",
    response_model=LessonResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add lesson to module",
)
async def add_lesson(
    _token: ApiToken,
    course_id: UUID,
    module_id: UUID,
    data: CreateLessonRequest,
    course_service: CourseServiceDep,
) -> LessonResponse:
    try:
        lesson = await course_service.add_lesson(
            course_id=course_id,
            module_id=module_id,
            title=data.title,
            position=data.position,
            content_type=data.content_type.value,
            estimated_minutes=data.estimated_minutes,
            has_quiz=data.has_quiz,
            passing_score=data.passing_score,
        )
    except CourseError as e:
        raise handle_course_error(e) from e
    return LessonResponse.from_entity(lesson)


@router.delete(
    "/{course_id}/lessons/{lesson_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove lesson from course",
)
async def remove_lesson(
    _token: ApiToken,
    course_id: UUID,
    lesson_id: UUID,
    course_service: CourseServiceDep,
) -> None:
    try:
        await course_service.remove_lesson(course_id, lesson_id)
    except CourseError as e:
        raise handle_course_error(e) from e
