"""
Identity types shared by the policy evaluator, the tools and the API layer.

An Actor is rebuilt from verified token claims on every request and is never
mutated afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

GUEST_ID = "guest-user"


class Role(str, Enum):
    GUEST = "guest"
    STUDENT = "student"
    STAFF = "staff"
    LECTURER_ADMIN = "lecturer_admin"
    DEPARTMENTAL_ADMIN = "departmental_admin"
    BURSARY_ADMIN = "bursary_admin"
    SYSTEM_ADMIN = "system_admin"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Map a raw claim to a Role; unknown values collapse to guest."""
        raw = str(value or "").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            return cls.GUEST


ADMIN_ROLES: FrozenSet[Role] = frozenset({
    Role.LECTURER_ADMIN,
    Role.DEPARTMENTAL_ADMIN,
    Role.BURSARY_ADMIN,
    Role.SYSTEM_ADMIN,
})

# Roles that authenticate with a staff ID.
STAFF_LOGIN_ROLES: FrozenSet[Role] = frozenset({Role.STAFF}) | ADMIN_ROLES


class Audience(str, Enum):
    EVERYONE = "everyone"
    STUDENTS_ONLY = "students_only"
    STAFF_ONLY = "staff_only"
    DEPARTMENT_SPECIFIC = "department_specific"
    COURSE_SPECIFIC = "course_specific"


def _clean_ids(values: Optional[Iterable[Any]]) -> FrozenSet[str]:
    if not values:
        return frozenset()
    if isinstance(values, (str, bytes)):
        values = [values]
    return frozenset(str(v).strip() for v in values if str(v or "").strip())


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role
    name: str = ""
    department: Optional[str] = None
    courses: FrozenSet[str] = field(default_factory=frozenset)
    tags: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_guest(self) -> bool:
        return self.role is Role.GUEST

    @classmethod
    def guest(cls) -> "Actor":
        return cls(id=GUEST_ID, role=Role.GUEST, name="Guest User")

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Actor":
        role = Role.parse(claims.get("role"))
        if role is Role.GUEST:
            return cls.guest()
        department = str(claims.get("department") or "").strip() or None
        return cls(
            id=str(claims.get("id") or claims.get("sub") or "").strip(),
            role=role,
            name=str(claims.get("name") or "").strip(),
            department=department,
            courses=_clean_ids(claims.get("courses")),
            tags=frozenset(t.lower() for t in _clean_ids(claims.get("tags"))),
        )

    def to_claims(self) -> Dict[str, Any]:
        claims: Dict[str, Any] = {"id": self.id, "role": self.role.value, "name": self.name}
        if self.is_guest:
            claims["isGuest"] = True
            return claims
        claims["department"] = self.department
        claims["courses"] = sorted(self.courses)
        claims["tags"] = sorted(self.tags)
        return claims
