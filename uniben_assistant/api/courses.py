from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from uniben_assistant.api.dependencies import (
    enforce,
    forbidden,
    get_db,
    not_found,
    require_departmental_admin,
    require_roles,
    require_user,
)
from uniben_assistant.core.identity import Actor, Role
from uniben_assistant.core.policy import (
    check_lecturer_course_update,
    check_offering_write,
    merge_offerings,
    normalize_offerings,
    stamp_offering,
)
from uniben_assistant.schemas import CourseCreate, DepartmentCourseUpdate, LecturerCourseUpdate, OfferingRow
from uniben_assistant.utils.logging_utils import log_audit

router = APIRouter()

require_course_viewer = require_roles(
    Role.STAFF, Role.LECTURER_ADMIN, Role.DEPARTMENTAL_ADMIN, Role.BURSARY_ADMIN, Role.SYSTEM_ADMIN
)
require_lecturer_view = require_roles(Role.SYSTEM_ADMIN, Role.LECTURER_ADMIN)


def _rows(offerings: List[OfferingRow]) -> List[Dict[str, Any]]:
    rows = []
    for offering in offerings or []:
        row = offering.model_dump(exclude_unset=True)
        row.setdefault("level", 100)
        rows.append(row)
    return rows


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# /admin/courses
# =============================================================================

@router.get("/admin/courses")
async def list_courses(actor: Actor = Depends(require_course_viewer), db=Depends(get_db)):
    if actor.role is Role.DEPARTMENTAL_ADMIN:
        courses = await db.list_department_courses(actor.department)
    elif actor.role is Role.LECTURER_ADMIN:
        courses = await db.list_lecturer_courses(actor.id)
    else:
        courses = await db.list_courses()
    return {"success": True, "courses": courses}


async def _create_offering_copy(payload: CourseCreate, actor: Actor, db) -> Dict[str, Any]:
    if not payload.courseId:
        raise HTTPException(status_code=400, detail="Course ID is required")
    if not actor.department:
        raise forbidden("You are not assigned to a department")
    base = await db.get_course(payload.courseId)
    if not base:
        raise not_found("Base course not found")

    offering = stamp_offering({
        "department": actor.department,
        "level": payload.level,
        "lecturerId": payload.lecturerId,
        "schedule": payload.schedule,
        "semester": payload.semester or base.get("semester") or "both",
    }, actor, _now())
    return await db.create_course({
        "code": base.get("code"),
        "title": base.get("title"),
        "description": base.get("description"),
        "department": actor.department,
        "faculty": base.get("faculty"),
        "level": payload.level,
        "credit": base.get("credit"),
        "semester": payload.semester or base.get("semester"),
        "prerequisites": base.get("prerequisites") or [],
        "lecturerId": payload.lecturerId,
        "schedule": payload.schedule,
        "venue": payload.venue,
        "maxStudents": payload.maxStudents,
        "baseCourseId": payload.courseId,
        "departments_offering": [offering],
    })


async def _create_base_course(payload: CourseCreate, db) -> Dict[str, Any]:
    offerings = _rows(payload.departments_offering)
    for row in offerings:
        row.setdefault("isActive", True)
    department = payload.department or next((o["department"] for o in offerings if o.get("department")), None)

    if not payload.code or not payload.title:
        raise HTTPException(status_code=400, detail="Course code and title are required.")
    if not department:
        raise HTTPException(
            status_code=400,
            detail="Department is required. Please select a department that will offer this course.",
        )
    if payload.credit is None or not 1 <= payload.credit <= 6:
        raise HTTPException(status_code=400, detail="Credit hours must be between 1 and 6.")

    doc = payload.model_dump(exclude={"courseId", "lecturerId", "schedule", "venue", "maxStudents"})
    doc.update({"code": payload.code.strip().upper(), "department": department,
                "departments_offering": offerings})
    return await db.create_course(doc)


@router.post("/admin/courses", status_code=201)
async def create_course(payload: CourseCreate, actor: Actor = Depends(require_user), db=Depends(get_db)):
    if actor.role is Role.DEPARTMENTAL_ADMIN:
        course = await _create_offering_copy(payload, actor, db)
    elif actor.role is Role.LECTURER_ADMIN:
        raise forbidden("Lecturer admins cannot create courses. Contact your departmental admin.")
    elif actor.role in (Role.SYSTEM_ADMIN, Role.BURSARY_ADMIN):
        course = await _create_base_course(payload, db)
    else:
        raise forbidden("Insufficient permissions to create courses")

    log_audit("COURSE_CREATED", actor.id, f"{course['id']} {course.get('code')}")
    return {"success": True, "course": course}


# =============================================================================
# /department-admin/courses
# =============================================================================

@router.get("/department-admin/courses")
async def list_department_courses(actor: Actor = Depends(require_departmental_admin), db=Depends(get_db)):
    if actor.role is Role.SYSTEM_ADMIN:
        courses = await db.list_courses()
    else:
        courses = await db.list_department_courses(actor.department)
    return {"success": True, "courses": courses}


@router.put("/department-admin/courses/{course_id}")
async def update_department_course(course_id: str, payload: DepartmentCourseUpdate,
                                   actor: Actor = Depends(require_departmental_admin),
                                   db=Depends(get_db)):
    course = await db.get_course(course_id)
    if not course:
        raise not_found("Course not found")

    fields = payload.model_dump(exclude_unset=True, exclude={"departments_offering"})
    if payload.departments_offering is not None:
        incoming = normalize_offerings(actor, _rows(payload.departments_offering))
        enforce(check_offering_write(actor, incoming))
        if actor.role is Role.SYSTEM_ADMIN:
            fields["departments_offering"] = incoming
        else:
            fields["departments_offering"] = merge_offerings(
                course.get("departments_offering") or [], incoming, actor, _now()
            )
    elif actor.role is not Role.SYSTEM_ADMIN and str(course.get("department")) != str(actor.department):
        raise forbidden("You can only edit courses owned by your department")

    updated = await db.update_course(course_id, fields)
    log_audit("COURSE_OFFERINGS_UPDATED", actor.id, course_id)
    return {"success": True, "course": updated}


# =============================================================================
# /lecturer-admin/courses
# =============================================================================

@router.get("/lecturer-admin/courses")
async def list_lecturer_courses(actor: Actor = Depends(require_lecturer_view), db=Depends(get_db)):
    if actor.role is Role.SYSTEM_ADMIN:
        courses = await db.list_courses()
    else:
        courses = await db.list_lecturer_courses(actor.id)
    return {"success": True, "courses": courses}


@router.put("/lecturer-admin/courses/{course_id}")
async def update_lecturer_course(course_id: str, payload: LecturerCourseUpdate,
                                 actor: Actor = Depends(require_user), db=Depends(get_db)):
    course = await db.get_course(course_id)
    if not course:
        raise not_found("Course not found")
    enforce(check_lecturer_course_update(actor, course))

    updated = await db.update_course(course_id, payload.model_dump(exclude_unset=True))
    log_audit("COURSE_UPDATED", actor.id, course_id)
    return {"success": True, "course": updated}
