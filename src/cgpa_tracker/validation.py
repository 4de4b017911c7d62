#!/usr/bin/env python3
"""
VALIDATION - Form input rules for courses, semesters and the student profile

VALIDATION RULES:
- Course name 2-100 characters (trimmed)
- Credit hours must be a whole number 1-10
- IA/UE maxima must be positive; scores, when entered, 0 <= score <= max
- Semester number must be a whole number 1-20 and not already used
- Semester name at most 50 characters; end date not before start date
- Profile name 2-100 characters; university, program and country required
- Student ID only letters, digits and - / _
- Start year between 1990 and next year

Validators are pure: they never raise on bad input and never mutate it. They
return a ValidationResult mapping field name -> message; ensure_valid() turns
an invalid result into a ValidationError for callers that want an exception.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .errors import ValidationError

STUDENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9/_-]+$")

COURSE_NAME_MIN, COURSE_NAME_MAX = 2, 100
CREDIT_HOURS_MIN, CREDIT_HOURS_MAX = 1, 10
SEMESTER_NUMBER_MIN, SEMESTER_NUMBER_MAX = 1, 20
SEMESTER_NAME_MAX = 50
PROFILE_NAME_MIN, PROFILE_NAME_MAX = 2, 100
START_YEAR_MIN = 1990


@dataclass
class ValidationResult:
    is_valid: bool
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class CourseFormData:
    name: str = ""
    credit_hours: Any = None
    ia_score: Optional[float] = None
    ia_max: Any = 30
    ue_score: Optional[float] = None
    ue_max: Any = 70


@dataclass
class SemesterFormData:
    semester_number: Any = None
    name: Optional[str] = None
    start_date: Union[str, date, None] = None
    end_date: Union[str, date, None] = None


@dataclass
class ProfileFormData:
    full_name: Optional[str] = None
    university: Optional[str] = None
    program: Optional[str] = None
    country: Optional[str] = None
    student_id: Optional[str] = None
    start_year: Any = None


FormData = Union[CourseFormData, SemesterFormData, ProfileFormData, Mapping[str, Any]]


def as_fields(data: FormData) -> Mapping[str, Any]:
    if isinstance(data, (CourseFormData, SemesterFormData, ProfileFormData)):
        return asdict(data)
    return data


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_whole_number(value: Any) -> bool:
    return isinstance(value, int) or (isinstance(value, float) and value.is_integer())


def _trimmed(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    """Parse an ISO date string; raises ValueError for garbage"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).strip()).date()


def _result(errors: Dict[str, str]) -> ValidationResult:
    return ValidationResult(is_valid=not errors, errors=errors)


def _check_score(errors: Dict[str, str], field_name: str, label: str, score: Any, max_value: Any) -> None:
    if score is None:
        return
    if not _is_number(score):
        errors[field_name] = f"{label} score must be a number"
    elif score < 0:
        errors[field_name] = f"{label} score cannot be negative"
    elif _is_number(max_value) and max_value > 0 and score > max_value:
        errors[field_name] = f"{label} score cannot exceed {max_value:g}"


def validate_course(data: FormData) -> ValidationResult:
    """Validate course form input"""
    data = as_fields(data)
    errors: Dict[str, str] = {}

    name = _trimmed(data.get("name"))
    if len(name) < COURSE_NAME_MIN:
        errors["name"] = "Course name must be at least 2 characters"
    elif len(name) > COURSE_NAME_MAX:
        errors["name"] = "Course name must be less than 100 characters"

    credit_hours = data.get("credit_hours")
    if credit_hours is None:
        errors["credit_hours"] = "Credit hours is required"
    elif not _is_number(credit_hours):
        errors["credit_hours"] = "Credit hours must be a number"
    elif credit_hours < CREDIT_HOURS_MIN or credit_hours > CREDIT_HOURS_MAX:
        errors["credit_hours"] = "Credit hours must be between 1 and 10"
    elif not _is_whole_number(credit_hours):
        errors["credit_hours"] = "Credit hours must be a whole number"

    ia_max = data.get("ia_max")
    if not _is_number(ia_max) or ia_max <= 0:
        errors["ia_max"] = "IA max marks must be greater than 0"

    ue_max = data.get("ue_max")
    if not _is_number(ue_max) or ue_max <= 0:
        errors["ue_max"] = "UE max marks must be greater than 0"

    _check_score(errors, "ia_score", "IA", data.get("ia_score"), ia_max)
    _check_score(errors, "ue_score", "UE", data.get("ue_score"), ue_max)

    return _result(errors)


def validate_semester(data: FormData, existing_numbers: Iterable[int] = ()) -> ValidationResult:
    """
    Validate semester form input

    Args:
        data: Semester form fields
        existing_numbers: Semester numbers the student already uses. The caller
            decides the scope (and leaves out the semester being edited).
    """
    data = as_fields(data)
    errors: Dict[str, str] = {}

    number = data.get("semester_number")
    if number is None:
        errors["semester_number"] = "Semester number is required"
    elif not _is_number(number) or not _is_whole_number(number):
        errors["semester_number"] = "Semester number must be a whole number"
    elif number < SEMESTER_NUMBER_MIN:
        errors["semester_number"] = "Semester number must be at least 1"
    elif number > SEMESTER_NUMBER_MAX:
        errors["semester_number"] = "Semester number cannot exceed 20"
    elif number in set(existing_numbers):
        errors["semester_number"] = f"Semester {int(number)} already exists"

    name = data.get("name")
    if name and len(_trimmed(name)) > SEMESTER_NAME_MAX:
        errors["name"] = "Semester name must be less than 50 characters"

    try:
        start = parse_date(data.get("start_date"))
    except ValueError:
        start = None
        errors["start_date"] = "Start date is not a valid date"
    try:
        end = parse_date(data.get("end_date"))
    except ValueError:
        end = None
        errors["end_date"] = "End date is not a valid date"

    if start and end and end < start:
        errors["end_date"] = "End date cannot be before start date"

    return _result(errors)


def validate_profile(data: FormData, current_year: Optional[int] = None) -> ValidationResult:
    """Validate profile form input"""
    data = as_fields(data)
    errors: Dict[str, str] = {}
    current_year = current_year or date.today().year

    full_name = _trimmed(data.get("full_name"))
    if len(full_name) < PROFILE_NAME_MIN:
        errors["full_name"] = "Full name must be at least 2 characters"
    elif len(full_name) > PROFILE_NAME_MAX:
        errors["full_name"] = "Full name must be less than 100 characters"

    for field_name, label in (("university", "University"), ("program", "Program"), ("country", "Country")):
        if len(_trimmed(data.get(field_name))) < 2:
            errors[field_name] = f"{label} is required"

    student_id = data.get("student_id")
    if student_id and not STUDENT_ID_PATTERN.match(str(student_id)):
        errors["student_id"] = "Student ID can only contain letters, numbers, and - / _"

    start_year = data.get("start_year")
    if start_year is not None and start_year != "":
        if not _is_number(start_year) or not _is_whole_number(start_year):
            errors["start_year"] = "Start year must be a whole number"
        elif start_year < START_YEAR_MIN or start_year > current_year + 1:
            errors["start_year"] = f"Start year must be between {START_YEAR_MIN} and {current_year + 1}"

    return _result(errors)


def validate(entity: FormData, existing_keys: Optional[Iterable[int]] = None) -> ValidationResult:
    """
    Validate any form by its type

    Mappings are classified by their keys: semester_number -> semester,
    credit_hours -> course, otherwise profile.
    """
    if isinstance(entity, SemesterFormData):
        return validate_semester(entity, existing_keys or ())
    if isinstance(entity, CourseFormData):
        return validate_course(entity)
    if isinstance(entity, ProfileFormData):
        return validate_profile(entity)
    if "semester_number" in entity:
        return validate_semester(entity, existing_keys or ())
    if "credit_hours" in entity:
        return validate_course(entity)
    return validate_profile(entity)


def ensure_valid(result: ValidationResult) -> None:
    """Raise ValidationError when the result carries errors"""
    if not result.is_valid:
        raise ValidationError(result.errors)


# =========================
# Form input parsing
# =========================

def sanitize_string(value: str) -> str:
    """Trim and collapse internal whitespace"""
    return re.sub(r"\s+", " ", value.strip())


def parse_number(value: Union[str, int, float, None]) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return None if value != value else value  # NaN
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = float(text)
    except ValueError:
        return None
    return None if parsed != parsed else parsed


def parse_integer(value: Union[str, int, float, None]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value != value:
            return None
        return int(value // 1)
    text = str(value).strip()
    if not text:
        return None
    match = re.match(r"^[+-]?\d+", text)
    return int(match.group(0)) if match else None


__all__ = [
    "ValidationResult",
    "as_fields",
    "parse_date",
    "CourseFormData",
    "SemesterFormData",
    "ProfileFormData",
    "validate_course",
    "validate_semester",
    "validate_profile",
    "validate",
    "ensure_valid",
    "sanitize_string",
    "parse_number",
    "parse_integer",
]
