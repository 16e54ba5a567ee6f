"""
Access Policy Evaluator

Decides who may see and who may write campus content. Visibility and write
permissions are declared as tables keyed by audience; the helpers below only
combine table lookups with a department or course equality check.

Two renderings of the visibility rule are provided and must stay in step:
- can_view_news(): pure predicate over a single news document
- build_news_query(): MongoDB filter for listing news
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from uniben_assistant.core.identity import Actor, Audience, Role

# =============================================================================
# TABLES
# =============================================================================

# Roles that see an audience unconditionally.
VISIBLE_TO: Dict[Audience, FrozenSet[Role]] = {
    Audience.EVERYONE: frozenset(Role),
    Audience.STUDENTS_ONLY: frozenset({Role.STUDENT, Role.BURSARY_ADMIN, Role.SYSTEM_ADMIN}),
    Audience.STAFF_ONLY: frozenset({
        Role.STAFF,
        Role.LECTURER_ADMIN,
        Role.DEPARTMENTAL_ADMIN,
        Role.BURSARY_ADMIN,
        Role.SYSTEM_ADMIN,
    }),
    Audience.DEPARTMENT_SPECIFIC: frozenset({Role.BURSARY_ADMIN, Role.SYSTEM_ADMIN}),
    Audience.COURSE_SPECIFIC: frozenset({Role.SYSTEM_ADMIN}),
}

# Roles that may write an audience unconditionally.
WRITABLE_BY: Dict[Audience, FrozenSet[Role]] = {
    Audience.EVERYONE: frozenset({Role.SYSTEM_ADMIN, Role.BURSARY_ADMIN}),
    Audience.STUDENTS_ONLY: frozenset({Role.SYSTEM_ADMIN, Role.BURSARY_ADMIN}),
    Audience.STAFF_ONLY: frozenset({Role.SYSTEM_ADMIN, Role.BURSARY_ADMIN}),
    Audience.DEPARTMENT_SPECIFIC: frozenset({Role.SYSTEM_ADMIN, Role.BURSARY_ADMIN}),
    Audience.COURSE_SPECIFIC: frozenset({Role.SYSTEM_ADMIN, Role.DEPARTMENTAL_ADMIN}),
}

# Roles that may write an audience when the target falls inside their scope.
SCOPED_WRITERS: Dict[Audience, Role] = {
    Audience.DEPARTMENT_SPECIFIC: Role.DEPARTMENTAL_ADMIN,
    Audience.COURSE_SPECIFIC: Role.LECTURER_ADMIN,
}

GENERAL_AUDIENCES = (Audience.EVERYONE, Audience.STUDENTS_ONLY, Audience.STAFF_ONLY)

DENIAL_MESSAGES: Dict[Audience, str] = {
    Audience.EVERYONE: "Only system admin and bursary admin can post university-wide news",
    Audience.STUDENTS_ONLY: "Only system admin and bursary admin can post news for students",
    Audience.STAFF_ONLY: "Only system admin and bursary admin can post news for staff",
    Audience.DEPARTMENT_SPECIFIC: "You can only post to your assigned department",
    Audience.COURSE_SPECIFIC: "You can only post to courses you are assigned to",
}


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PolicyDecision(True)


def deny(reason: str) -> PolicyDecision:
    return PolicyDecision(False, reason)


# =============================================================================
# HELPERS
# =============================================================================

def parse_audience(value: Any) -> Optional[Audience]:
    if isinstance(value, Audience):
        return value
    try:
        return Audience(str(value or "").strip())
    except ValueError:
        return None


def item_courses(item: Mapping[str, Any]) -> FrozenSet[str]:
    """Course references of a news item (accepts the legacy single `course` key)."""
    raw = item.get("courses")
    if raw is None:
        raw = item.get("course")
    if raw is None:
        return frozenset()
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        raw = [raw]
    return frozenset(str(c) for c in raw if c)


def _tags_pass(actor: Actor, item: Mapping[str, Any]) -> bool:
    if not actor.tags:
        return True
    tags = {str(t).lower() for t in (item.get("tags") or [])}
    return not tags or bool(tags & actor.tags)


def _same(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


# =============================================================================
# VISIBILITY
# =============================================================================

def audience_visible(actor: Actor, audience: Audience, department: Any = None,
                     courses: FrozenSet[str] = frozenset()) -> bool:
    if actor.is_guest:
        return audience is Audience.EVERYONE
    if actor.role in VISIBLE_TO[audience]:
        return True
    if audience is Audience.DEPARTMENT_SPECIFIC:
        return _same(actor.department, department)
    if audience is Audience.COURSE_SPECIFIC:
        return bool(actor.courses & courses)
    return False


def can_view_news(actor: Actor, item: Mapping[str, Any]) -> bool:
    if not item.get("active", True):
        return False
    audience = parse_audience(item.get("audience"))
    if audience is None:
        return False
    if not audience_visible(actor, audience, item.get("department"), item_courses(item)):
        return False
    return _tags_pass(actor, item)


def build_news_query(actor: Actor) -> Dict[str, Any]:
    """MongoDB filter selecting the active news an actor may see."""
    if actor.is_guest:
        return {"active": True, "audience": Audience.EVERYONE.value}

    clauses: List[Dict[str, Any]] = []
    for audience, roles in VISIBLE_TO.items():
        if actor.role in roles:
            clauses.append({"audience": audience.value})
        elif audience is Audience.DEPARTMENT_SPECIFIC and actor.department:
            clauses.append({"audience": audience.value, "department": actor.department})
        elif audience is Audience.COURSE_SPECIFIC and actor.courses:
            courses = sorted(actor.courses)
            clauses.append({"audience": audience.value, "courses": {"$in": courses}})
            # legacy single-course items
            clauses.append({"audience": audience.value, "course": {"$in": courses}})

    query: Dict[str, Any] = {"active": True, "$or": clauses}
    if actor.tags:
        tag_clause = {"$or": [
            {"tags": {"$exists": False}},
            {"tags": {"$size": 0}},
            {"tags": {"$in": sorted(actor.tags)}},
        ]}
        query = {"active": True, "$and": [{"$or": clauses}, tag_clause]}
    return query


def news_admin_query(actor: Actor) -> Optional[Dict[str, Any]]:
    """Filter for the news management screen, or None when the role has no such screen."""
    own = {"authorId": actor.id}
    if actor.role is Role.SYSTEM_ADMIN:
        return {}
    if actor.role is Role.BURSARY_ADMIN:
        return {"$or": [own, {"audience": {"$in": [a.value for a in GENERAL_AUDIENCES]}}]}
    if actor.role is Role.DEPARTMENTAL_ADMIN:
        return {"$or": [own, {"audience": Audience.DEPARTMENT_SPECIFIC.value,
                              "department": actor.department}]}
    if actor.role is Role.LECTURER_ADMIN:
        courses = sorted(actor.courses)
        return {"$or": [own,
                        {"audience": Audience.COURSE_SPECIFIC.value, "courses": {"$in": courses}},
                        {"audience": Audience.COURSE_SPECIFIC.value, "course": {"$in": courses}}]}
    return None


# =============================================================================
# MUTATION
# =============================================================================

def check_news_write(
    actor: Actor,
    audience: Any,
    department: Any = None,
    courses: Optional[Iterable[Any]] = None,
    author_id: Any = None,
) -> PolicyDecision:
    """
    Decide whether the actor may create, edit or delete news for an audience.

    `author_id` is the author of an existing item; authors may always edit or
    delete their own posts.
    """
    target = parse_audience(audience)
    if target is None:
        return deny("Invalid audience type")

    if author_id is not None and _same(author_id, actor.id):
        return ALLOW
    if actor.role in WRITABLE_BY[target]:
        return ALLOW

    scoped_role = SCOPED_WRITERS.get(target)
    if scoped_role is not None and actor.role is scoped_role:
        if target is Audience.DEPARTMENT_SPECIFIC and _same(actor.department, department):
            return ALLOW
        if target is Audience.COURSE_SPECIFIC:
            wanted = frozenset(str(c) for c in (courses or []) if c)
            if wanted and wanted <= actor.courses:
                return ALLOW

    return deny(DENIAL_MESSAGES[target])


# =============================================================================
# COURSE OFFERINGS
# =============================================================================

def normalize_offerings(actor: Actor, offerings: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Copy offering rows, defaulting a missing department to the writer's."""
    rows = []
    for offering in offerings or []:
        row = dict(offering)
        if not row.get("department"):
            row["department"] = actor.department
        if row.get("level") is not None:
            row["level"] = int(row["level"])
        rows.append(row)
    return rows


def check_offering_write(actor: Actor, offerings: Iterable[Mapping[str, Any]]) -> PolicyDecision:
    if actor.role is Role.SYSTEM_ADMIN:
        return ALLOW
    if actor.role is not Role.DEPARTMENTAL_ADMIN:
        return deny("Insufficient permissions to manage course offerings")
    if not actor.department:
        return deny("You are not assigned to a department")
    for row in offerings or []:
        if not _same(row.get("department") or actor.department, actor.department):
            return deny("You can only manage offerings for your department")
    return ALLOW


def check_lecturer_course_update(actor: Actor, course: Mapping[str, Any]) -> PolicyDecision:
    if actor.role is Role.SYSTEM_ADMIN:
        return ALLOW
    if actor.role is not Role.LECTURER_ADMIN:
        return deny("Insufficient permissions to edit this course")
    for offering in course.get("departments_offering") or []:
        if _same(offering.get("lecturerId"), actor.id):
            return ALLOW
    return deny("You can only edit courses you are assigned to teach")


def _offering_key(row: Mapping[str, Any]):
    level = row.get("level")
    return str(row.get("department")), int(level) if level is not None else None


def stamp_offering(row: Dict[str, Any], actor: Actor, now: datetime) -> Dict[str, Any]:
    """Record who offered a row and when, keeping any stamps already present."""
    if not row.get("assignedBy"):
        row["assignedBy"] = actor.id
    if not row.get("offeredAt"):
        row["offeredAt"] = now
    if row.get("isActive") is None:
        row["isActive"] = True
    return row


def merge_offerings(
    existing: Iterable[Mapping[str, Any]],
    incoming: Iterable[Mapping[str, Any]],
    actor: Actor,
    now: datetime,
) -> List[Dict[str, Any]]:
    """
    Merge a departmental admin's offering rows into a course's offerings.

    Rows are matched on (department, level). Matches are updated field by
    field; new rows are appended. Rows from the writer's own department are
    stamped with assignedBy/offeredAt when those fields are missing.
    """
    merged = [dict(row) for row in existing or []]
    index = {_offering_key(row): i for i, row in enumerate(merged)}

    for row in incoming or []:
        new_row = dict(row)
        if _same(new_row.get("department"), actor.department):
            stamp_offering(new_row, actor, now)
        key = _offering_key(new_row)
        if key in index:
            target = merged[index[key]]
            target.update(new_row)
            stamp_offering(target, actor, now)
        else:
            index[key] = len(merged)
            merged.append(new_row)
    return merged


# =============================================================================
# QUIZZES
# =============================================================================

def check_quiz_access(actor: Actor, quiz: Mapping[str, Any]) -> PolicyDecision:
    """Owners, system admins and anyone for a public quiz may open it."""
    if actor.is_guest:
        return deny("Authentication required")
    if actor.role is Role.SYSTEM_ADMIN or _same(quiz.get("userId"), actor.id):
        return ALLOW
    if quiz.get("isPublic") and quiz.get("isActive", True):
        return ALLOW
    return deny("You do not have access to this quiz")
