#!/usr/bin/env python3
"""
DATA MODELS - Pydantic schemas for semesters, courses and student profile
Type-safe records exchanged with the backend and held in the local snapshot

RECORDS:
✅ Course: IA/UE scores, credit hours and derived grade fields
✅ Semester: Semester number, dates, GPA aggregate and owned courses
✅ Profile / Preferences: Student details and default mark maxima
✅ SemesterSnapshot: Immutable point-in-time copy of the semester graph
✅ PendingSyncItem: Write queued locally while offline

VALIDATION RULES:
- Credit hours are non-negative integers
- GPAs must be 0.0-5.0
- Snapshot records are frozen; changes go through model_copy()

Dependencies: Pydantic for validation
"""

from typing import Any, Dict, List, Literal, Optional, Tuple
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


TEMP_ID_PREFIX = "temp-"


class Course(BaseModel):
    """Single course record with IA/UE marks and derived grade"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Course ID (temp-* while optimistic)")
    semester_id: str = Field(..., description="Owning semester ID")
    user_id: Optional[str] = Field(None, description="Owning student identity")
    name: str = Field(..., description="Course name")
    credit_hours: int = Field(..., ge=0, description="Credit hours")

    ia_score: Optional[float] = Field(None, description="Internal assessment score")
    ia_max: float = Field(30, description="Internal assessment maximum")
    ue_score: Optional[float] = Field(None, description="University exam score")
    ue_max: float = Field(70, description="University exam maximum")

    # Derived from the four score fields
    total_score: Optional[float] = Field(None, description="IA + UE")
    percentage: Optional[float] = Field(None, description="Total as percent of max")
    grade: Optional[str] = Field(None, description="Letter grade")
    grade_points: Optional[float] = Field(None, ge=0.0, le=5.0, description="Grade points")

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_graded(self) -> bool:
        """Both score components entered"""
        return self.grade_points is not None

    @property
    def is_optimistic(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)


class Semester(BaseModel):
    """Semester record with its GPA aggregate and courses"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Semester ID (temp-* while optimistic)")
    user_id: Optional[str] = Field(None, description="Owning student identity")
    semester_number: int = Field(..., ge=1, description="Semester number, unique per student")
    name: Optional[str] = Field(None, description="Display name")
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    gpa: Optional[float] = Field(None, ge=0.0, le=5.0, description="Semester GPA (None = no graded courses)")
    total_credits: int = Field(0, ge=0, description="Sum of course credit hours")

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    courses: Tuple[Course, ...] = Field(default_factory=tuple)

    @field_validator("courses", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return () if v is None else v

    @property
    def is_optimistic(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    @property
    def display_name(self) -> str:
        return self.name or f"Semester {self.semester_number}"

    def find_course(self, course_id: str) -> Optional[Course]:
        for course in self.courses:
            if course.id == course_id:
                return course
        return None


class Profile(BaseModel):
    """Student profile"""

    model_config = ConfigDict(frozen=True)

    id: str
    full_name: Optional[str] = None
    university: str = "ISBAT University"
    program: Optional[str] = None
    country: str = "Uganda"
    student_id: Optional[str] = None
    start_year: Optional[int] = None
    avatar_url: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Preferences(BaseModel):
    """Per-student defaults for new courses"""

    model_config = ConfigDict(frozen=True)

    user_id: str
    default_ia_max: float = 30
    default_ue_max: float = 70
    notifications_enabled: bool = True
    haptic_enabled: bool = True

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SemesterSnapshot(BaseModel):
    """Point-in-time copy of the full semester + course graph"""

    model_config = ConfigDict(frozen=True)

    semesters: Tuple[Semester, ...] = Field(default_factory=tuple)
    last_sync: Optional[datetime] = Field(None, description="When the server copy was fetched")
    stale: bool = Field(False, description="Served from cache instead of the server")

    def get_semester(self, semester_id: str) -> Optional[Semester]:
        for semester in self.semesters:
            if semester.id == semester_id:
                return semester
        return None

    def get_course(self, course_id: str) -> Optional[Course]:
        for semester in self.semesters:
            course = semester.find_course(course_id)
            if course is not None:
                return course
        return None

    def all_courses(self) -> List[Course]:
        return [course for semester in self.semesters for course in semester.courses]

    @property
    def semester_numbers(self) -> List[int]:
        return [semester.semester_number for semester in self.semesters]


class PendingSyncItem(BaseModel):
    """Write that could not reach the backend and waits for replay"""

    id: str
    entity: Literal["semester", "course", "profile"]
    action: Literal["create", "update", "delete"]
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


# Export all models
__all__ = [
    "TEMP_ID_PREFIX",
    "Course",
    "Semester",
    "Profile",
    "Preferences",
    "SemesterSnapshot",
    "PendingSyncItem",
]
