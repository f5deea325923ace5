"""Enrollment and progress API endpoints.

Routes:
- /v1/enrollments: enroll and read enrollments
- /v1/lesson-progress: engagement reports, completion included
- /v1/quiz-attempts: quiz submissions
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from learnhub.auth import ApiToken

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    LessonProgressListResponse,
    LessonProgressRequest,
    LessonProgressResponse,
    LessonProgressResult,
    ProgressOutcomeResponse,
    QuizAttemptListResponse,
    QuizAttemptRequest,
    QuizAttemptResponse,
    QuizAttemptResult,
)
from .service import ProgressError


router = APIRouter(tags=["progress"])


# ==============================================================================
# Enrollments
# ==============================================================================


@router.post(
    "/v1/enrollments",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll user in course",
)
async def enroll(
    _token: ApiToken,
    data: EnrollRequest,
    progress_service: ProgressServiceDep,
) -> EnrollmentResponse:
    try:
        enrollment = await progress_service.enroll_user(
            data.user_id, data.course_id, data.organization_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return EnrollmentResponse.from_entity(enrollment)


@router.get(
    "/v1/enrollments",
    response_model=EnrollmentListResponse,
    summary="List user enrollments",
)
async def list_enrollments(
    _token: ApiToken,
    progress_service: ProgressServiceDep,
    user_id: UUID = Query(...),
    organization_id: UUID | None = Query(None),
) -> EnrollmentListResponse:
    enrollments = await progress_service.get_user_enrollments(user_id, organization_id)
    items = [EnrollmentResponse.from_entity(e) for e in enrollments]
    return EnrollmentListResponse(items=items, total=len(items))


@router.get(
    "/v1/enrollments/{course_id}",
    response_model=EnrollmentResponse,
    summary="Get enrollment",
)
async def get_enrollment(
    _token: ApiToken,
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user_id: UUID = Query(...),
) -> EnrollmentResponse:
    enrollment = await progress_service.get_enrollment(user_id, course_id)
    if not enrollment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Enrollment not found",
        )
    return EnrollmentResponse.from_entity(enrollment)


# ==============================================================================
# Lesson Progress
# ==============================================================================


@router.post(
    "/v1/lesson-progress",
    response_model=LessonProgressResult,
    summary="Report lesson progress",
)
async def report_lesson_progress(
    _token: ApiToken,
    data: LessonProgressRequest,
    progress_service: ProgressServiceDep,
) -> LessonProgressResult:
    """Record engagement; a completed status also updates the enrollment."""
    progress, outcome = await progress_service.record_lesson_progress(
        user_id=data.user_id,
        course_id=data.course_id,
        lesson_id=data.lesson_id,
        organization_id=data.organization_id,
        status=data.status.value,
        watch_time_seconds=data.watch_time_seconds,
        scroll_depth=data.scroll_depth,
        time_spent_seconds=data.time_spent_seconds,
    )
    return LessonProgressResult(
        progress=LessonProgressResponse.from_entity(progress),
        enrollment_update=ProgressOutcomeResponse.from_outcome(outcome),
    )


@router.get(
    "/v1/lesson-progress",
    response_model=LessonProgressListResponse,
    summary="List lesson progress for a course",
)
async def list_lesson_progress(
    _token: ApiToken,
    progress_service: ProgressServiceDep,
    user_id: UUID = Query(...),
    course_id: UUID = Query(...),
    lesson_id: UUID | None = Query(None),
) -> LessonProgressListResponse:
    if lesson_id:
        progress = await progress_service.get_lesson_progress(
            user_id, course_id, lesson_id
        )
        entries = [progress] if progress else []
    else:
        entries = await progress_service.get_course_lesson_progress(
            user_id, course_id
        )
    items = [LessonProgressResponse.from_entity(p) for p in entries]
    return LessonProgressListResponse(items=items, total=len(items))


# ==============================================================================
# Quiz Attempts
# ==============================================================================


@router.post(
    "/v1/quiz-attempts",
    response_model=QuizAttemptResult,
    status_code=status.HTTP_201_CREATED,
    summary="Submit quiz attempt",
)
async def submit_quiz_attempt(
    _token: ApiToken,
    data: QuizAttemptRequest,
    progress_service: ProgressServiceDep,
) -> QuizAttemptResult:
    try:
        attempt, outcome = await progress_service.submit_quiz_attempt(
            user_id=data.user_id,
            lesson_id=data.lesson_id,
            course_id=data.course_id,
            organization_id=data.organization_id,
            score=data.score,
            answers=data.to_answers(),
            time_spent_seconds=data.time_spent_seconds,
            passed=data.passed,
            is_module_assessment=data.is_module_assessment,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return QuizAttemptResult(
        attempt=QuizAttemptResponse.from_entity(attempt),
        enrollment_update=ProgressOutcomeResponse.from_outcome(outcome),
    )


@router.get(
    "/v1/quiz-attempts",
    response_model=QuizAttemptListResponse,
    summary="List quiz attempts",
)
async def list_quiz_attempts(
    _token: ApiToken,
    progress_service: ProgressServiceDep,
    user_id: UUID = Query(...),
    lesson_id: UUID = Query(...),
    limit: int = Query(50, ge=1, le=200),
) -> QuizAttemptListResponse:
    attempts = await progress_service.get_quiz_attempts(user_id, lesson_id, limit)
    items = [QuizAttemptResponse.from_entity(a) for a in attempts]
    return QuizAttemptListResponse(items=items, total=len(items))
