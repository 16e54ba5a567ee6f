from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from uniben_assistant.core.identity import Audience, Role


def _strip_upper(value: str) -> str:
    value = str(value or "").strip().upper()
    if not value:
        raise ValueError("must not be empty")
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class StudentLoginRequest(BaseModel):
    matricNumber: str = Field(validation_alias=AliasChoices("matricNumber", "matric_number"))

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("matricNumber")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return _strip_upper(value)


class StaffLoginRequest(BaseModel):
    staffId: str = Field(validation_alias=AliasChoices("staffId", "staff_id"))

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("staffId")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return _strip_upper(value)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class ChatMessageRequest(BaseModel):
    message: str = Field(max_length=5000)
    conversationId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("conversationId", "conversation_id"),
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("message")
    @classmethod
    def _require_text(cls, value: str) -> str:
        value = str(value or "").strip()
        if not value:
            raise ValueError("Message is required")
        return value


# ---------------------------------------------------------------------------
# News
# ---------------------------------------------------------------------------

def _clean_tags(value: Optional[List[str]]) -> List[str]:
    return [str(t).strip().lower() for t in (value or []) if str(t or "").strip()]


class NewsCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=5000)
    audience: Audience = Audience.EVERYONE
    department: Optional[str] = None
    courses: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    priority: Literal["low", "medium", "high"] = "medium"
    expiresAt: Optional[datetime] = None
    attachments: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("tags")
    @classmethod
    def _tags(cls, value):
        return _clean_tags(value)


class NewsUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    audience: Optional[Audience] = None
    department: Optional[str] = None
    courses: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    priority: Optional[Literal["low", "medium", "high"]] = None
    expiresAt: Optional[datetime] = None
    attachments: Optional[List[Dict[str, Any]]] = None
    active: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("tags")
    @classmethod
    def _tags(cls, value):
        return None if value is None else _clean_tags(value)


# ---------------------------------------------------------------------------
# Fee catalogs
# ---------------------------------------------------------------------------

class FeeItem(BaseModel):
    name: str = Field(min_length=1)
    amount: float = Field(ge=0)


class FeesCatalogCreate(BaseModel):
    level: str
    session: str
    currency: str = "NGN"
    effectiveFrom: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    items: List[FeeItem] = Field(default_factory=list)
    notes: Optional[str] = None
    isActive: bool = True

    model_config = ConfigDict(extra="ignore")

    @field_validator("level", "session", mode="before")
    @classmethod
    def _as_text(cls, value):
        value = str(value or "").strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class FeesCatalogUpdate(BaseModel):
    level: Optional[str] = None
    session: Optional[str] = None
    currency: Optional[str] = None
    effectiveFrom: Optional[datetime] = None
    items: Optional[List[FeeItem]] = None
    notes: Optional[str] = None
    isActive: Optional[bool] = None
    isNew: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("level", "session", mode="before")
    @classmethod
    def _as_text(cls, value):
        return None if value is None else str(value).strip()


class AcknowledgeRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------

class OfferingRow(BaseModel):
    department: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("department", "departmentId")
    )
    level: int = Field(default=100, ge=100, le=800)
    lecturerId: Optional[str] = Field(default=None, validation_alias=AliasChoices("lecturerId", "lecturer"))
    schedule: Optional[str] = None
    semester: Literal["first", "second", "both"] = "both"
    isActive: Optional[bool] = None
    assignedBy: Optional[str] = None
    offeredAt: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CourseCreate(BaseModel):
    """Base course (system admin) or offering copy of a base course (departmental admin)."""

    code: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    department: Optional[str] = None
    faculty: Optional[str] = None
    level: int = Field(default=100, ge=100, le=800)
    credit: Optional[int] = None
    semester: Literal["first", "second", "both"] = "both"
    departments_offering: List[OfferingRow] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)

    # offering copy fields
    courseId: Optional[str] = None
    lecturerId: Optional[str] = None
    schedule: Optional[str] = None
    venue: Optional[str] = None
    maxStudents: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(extra="ignore")

    @field_validator("prerequisites", mode="before")
    @classmethod
    def _split(cls, value):
        if isinstance(value, str):
            return [p.strip() for p in value.split(",") if p.strip()]
        return value or []


class DepartmentCourseUpdate(BaseModel):
    departments_offering: Optional[List[OfferingRow]] = None
    description: Optional[str] = None
    syllabus: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class LecturerCourseUpdate(BaseModel):
    description: Optional[str] = None
    syllabus: Optional[str] = None
    announcements: Optional[List[Dict[str, Any]]] = None
    resources: Optional[List[Dict[str, Any]]] = None

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------

Choice = Literal["A", "B", "C", "D"]


class QuizQuestion(BaseModel):
    question: str = Field(min_length=1, max_length=500)
    options: List[str] = Field(min_length=4, max_length=4)
    correctAnswer: Choice
    hint: Optional[str] = Field(default=None, max_length=200)
    explanation: str = Field(min_length=1, max_length=1000)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    topic: Optional[str] = Field(default=None, max_length=100)
    points: int = Field(default=1, ge=1)

    @field_validator("options")
    @classmethod
    def _options(cls, value: List[str]) -> List[str]:
        value = [str(o or "").strip() for o in value]
        if not all(value):
            raise ValueError("Must have exactly 4 non-empty options")
        return value


class QuizCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    course: Optional[str] = None
    department: Optional[str] = None
    questions: List[QuizQuestion] = Field(min_length=1, max_length=50)
    timeLimit: int = Field(default=1200, ge=60, le=7200)
    difficulty: Literal["easy", "medium", "hard", "mixed"] = "medium"
    tags: List[str] = Field(default_factory=list)
    isPublic: bool = False

    model_config = ConfigDict(extra="ignore")

    @field_validator("tags")
    @classmethod
    def _tags(cls, value):
        return _clean_tags(value)


class QuizAnswer(BaseModel):
    selected: Choice
    attempts: int = Field(default=1, ge=1)
    timeSpent: int = Field(default=0, ge=0)


class QuizSubmission(BaseModel):
    answers: Dict[str, QuizAnswer] = Field(default_factory=dict)
    timeSpent: int = Field(default=0, ge=0)

    @field_validator("answers")
    @classmethod
    def _indexes(cls, value):
        for key in value:
            if not str(key).isdigit():
                raise ValueError("Answer keys must be question indexes")
        return value


# ---------------------------------------------------------------------------
# System admin
# ---------------------------------------------------------------------------

class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    role: Role
    matricNumber: Optional[str] = None
    staffId: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    courses: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("matricNumber", "staffId")
    @classmethod
    def _upper(cls, value):
        return None if value is None else _strip_upper(value)

    @field_validator("tags")
    @classmethod
    def _tags(cls, value):
        return _clean_tags(value)


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[Role] = None
    email: Optional[str] = None
    department: Optional[str] = None
    courses: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    isActive: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")


class DepartmentPayload(BaseModel):
    name: Optional[str] = None
    faculty: Optional[str] = None
    description: Optional[str] = None
    hodName: Optional[str] = None
    hodContact: Optional[str] = None
    hodEmail: Optional[str] = None
    location: Optional[str] = None
    isActive: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")


class BuildingPayload(BaseModel):
    name: Optional[str] = None
    department: Optional[str] = None
    faculty: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    photoURL: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Literal[
        "academic", "administrative", "facility", "hostel", "library", "sports", "dining"
    ]] = None
    tags: Optional[List[str]] = None
    isActive: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")
