"""Course structure module.

Provides:
- Courses owned by an organization
- Ordered modules and lessons
- Course outline reads for progress recompute
"""

from .models import (
    COURSES_TABLES_CQL,
    ContentType,
    Course,
    CourseCategory,
    CourseOutline,
    CourseStatus,
    Lesson,
    Module,
    OutlineLesson,
    OutlineModule,
)


__all__ = [
    "COURSES_TABLES_CQL",
    "ContentType",
    "Course",
    "CourseCategory",
    "CourseOutline",
    "CourseStatus",
    "Lesson",
    "Module",
    "OutlineLesson",
    "OutlineModule",
]
