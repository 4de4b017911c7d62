#!/usr/bin/env python3
"""
GPA CALCULATOR - Credit-weighted semester GPA and cumulative CGPA (5.0 scale)

CALCULATION TYPES:
✅ Semester GPA: Sum(grade points x credit hours) / Sum(credit hours)
✅ Cumulative GPA: Sum(semester GPA x semester credits) / Sum(semester credits)
✅ GPA Trend: Improving / stable / declining over the semester history
✅ Target Planning: GPA required over future credits to reach a target CGPA

EDGE CASES HANDLED:
- Ungraded courses (missing IA or UE score): Excluded from GPA
- Zero credit courses: Excluded from GPA
- Semesters without graded courses: GPA is None ("no data"), not 0.0
- Null-GPA semesters: Excluded from CGPA, their credits do not dilute it

All functions are pure and return full precision; rounding to 2 decimal
places is done by format_gpa() at display time.

Dependencies: grade_scale.py for scale bounds
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .grade_scale import MAX_GPA, MIN_GPA, PASSING_GPA

logger = logging.getLogger(__name__)

# Consecutive GPA changes within +/- this band count as "no change"
TREND_THRESHOLD = 0.1


def _get(record: Any, name: str, default: Any = None) -> Any:
    """Read a field from a model or a plain mapping"""
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


@dataclass(frozen=True)
class GPATrend:
    """Direction of the GPA history (exactly one flag is set)"""
    improving: bool
    stable: bool
    declining: bool

    @property
    def label(self) -> str:
        if self.improving:
            return "improving"
        if self.declining:
            return "declining"
        return "stable"


STABLE_TREND = GPATrend(improving=False, stable=True, declining=False)


def gpa_of(courses: Iterable[Any]) -> Optional[float]:
    """
    Calculate the credit-weighted GPA of a set of courses

    Args:
        courses: Course models or mappings with grade_points/credit_hours

    Returns:
        GPA, or None when no course is graded with positive credit
    """
    total_points = 0.0
    total_credits = 0

    for course in courses:
        grade_points = _get(course, "grade_points")
        credit_hours = _get(course, "credit_hours") or 0
        if grade_points is None or credit_hours <= 0:
            continue
        total_points += grade_points * credit_hours
        total_credits += credit_hours

    if total_credits == 0:
        return None
    return total_points / total_credits


def cgpa_of(semesters: Iterable[Any]) -> Optional[float]:
    """
    Calculate the cumulative GPA from semester aggregates

    Args:
        semesters: Semester models or mappings with gpa and total_credits
            (the spelling totalCredits is accepted for mappings)

    Returns:
        CGPA, or None when no semester has a GPA and positive credits
    """
    total_weighted = 0.0
    total_credits = 0.0

    for semester in semesters:
        gpa = _get(semester, "gpa")
        credits = _get(semester, "total_credits")
        if credits is None:
            credits = _get(semester, "totalCredits", 0)
        if gpa is None or not credits or credits <= 0:
            continue
        total_weighted += gpa * credits
        total_credits += credits

    if total_credits == 0:
        return None
    return total_weighted / total_credits


def cgpa_from_courses(semesters: Iterable[Any]) -> Optional[float]:
    """CGPA computed directly over every course of every semester"""
    all_courses: List[Any] = []
    for semester in semesters:
        all_courses.extend(_get(semester, "courses", ()) or ())
    return gpa_of(all_courses)


def trend_of(ordered_gpa_history: Sequence[float]) -> GPATrend:
    """
    Classify a chronologically ordered GPA history

    A change above +0.1 is an increase and below -0.1 a decrease. The history
    is improving (declining) when increases (decreases) make up more than half
    of the consecutive comparisons, otherwise stable.
    """
    if len(ordered_gpa_history) < 2:
        return STABLE_TREND

    increases = 0
    decreases = 0
    for previous, current in zip(ordered_gpa_history, ordered_gpa_history[1:]):
        diff = current - previous
        if diff > TREND_THRESHOLD:
            increases += 1
        elif diff < -TREND_THRESHOLD:
            decreases += 1

    threshold = (len(ordered_gpa_history) - 1) / 2
    return GPATrend(
        improving=increases > threshold,
        stable=increases <= threshold and decreases <= threshold,
        declining=decreases > threshold,
    )


def semester_trend(semesters: Iterable[Any]) -> GPATrend:
    """Trend over semesters with a GPA, ordered by semester number"""
    graded = [s for s in semesters if _get(s, "gpa") is not None]
    graded.sort(key=lambda s: _get(s, "semester_number", 0))
    return trend_of([_get(s, "gpa") for s in graded])


def required_future_gpa(
    current_cgpa: float,
    current_credits: float,
    target_cgpa: float,
    future_credits: float,
) -> Optional[float]:
    """
    GPA needed over future credits to bring the CGPA to a target

    Returns:
        Required GPA (floored at 0.0 when the target is already exceeded),
        or None when there are no future credits or the target needs more
        than the 5.0 maximum
    """
    if future_credits <= 0:
        return None

    required_total_points = target_cgpa * (current_credits + future_credits)
    current_total_points = current_cgpa * current_credits
    required_gpa = (required_total_points - current_total_points) / future_credits

    if required_gpa > MAX_GPA:
        logger.debug(
            f"Target {target_cgpa:.2f} unreachable: needs {required_gpa:.3f} over {future_credits} credits"
        )
        return None
    if required_gpa < MIN_GPA:
        return MIN_GPA
    return required_gpa


# =========================
# Credit helpers
# =========================

def total_credits_of(courses: Iterable[Any]) -> int:
    """Sum of credit hours over all courses, graded or not"""
    return sum(_get(course, "credit_hours") or 0 for course in courses)


def completed_credits(courses: Iterable[Any]) -> int:
    """Credits of graded courses with a passing grade"""
    total = 0
    for course in courses:
        grade_points = _get(course, "grade_points")
        if grade_points is not None and grade_points >= PASSING_GPA:
            total += _get(course, "credit_hours") or 0
    return total


def failed_credits(courses: Iterable[Any]) -> int:
    """Credits of graded courses below the passing grade"""
    total = 0
    for course in courses:
        grade_points = _get(course, "grade_points")
        if grade_points is not None and grade_points < PASSING_GPA:
            total += _get(course, "credit_hours") or 0
    return total


def grade_distribution(courses: Iterable[Any]) -> Dict[str, int]:
    """Count of graded courses per letter grade"""
    return dict(Counter(_get(c, "grade") for c in courses if _get(c, "grade")))


# =========================
# Standing / display
# =========================

def class_standing(cgpa: float) -> str:
    """Degree classification for a CGPA"""
    if cgpa >= 4.5:
        return "First Class Honours"
    elif cgpa >= 4.0:
        return "Second Class Honours (Upper)"
    elif cgpa >= 3.0:
        return "Second Class Honours (Lower)"
    elif cgpa >= 2.0:
        return "Pass"
    else:
        return "Fail"


def class_standing_short(cgpa: float) -> str:
    if cgpa >= 4.5:
        return "First Class"
    elif cgpa >= 4.0:
        return "Second Upper"
    elif cgpa >= 3.0:
        return "Second Lower"
    elif cgpa >= 2.0:
        return "Pass"
    else:
        return "Fail"


def performance_message(gpa: float) -> str:
    if gpa >= 4.5:
        return "Outstanding Performance!"
    elif gpa >= 4.0:
        return "Excellent Performance!"
    elif gpa >= 3.5:
        return "Very Good Performance!"
    elif gpa >= 3.0:
        return "Good Performance"
    elif gpa >= 2.5:
        return "Fair Performance"
    elif gpa >= 2.0:
        return "Needs Improvement"
    else:
        return "Critical - Seek Academic Support"


def gpa_progress(gpa: float) -> float:
    """GPA as a percentage of the 5.0 maximum"""
    return (gpa / MAX_GPA) * 100


def format_gpa(gpa: Optional[float]) -> str:
    if gpa is None:
        return "--.--"
    return f"{gpa:.2f}"


def format_percentage(percentage: Optional[float]) -> str:
    if percentage is None:
        return "--%"
    return f"{percentage:.1f}%"


__all__ = [
    "TREND_THRESHOLD",
    "GPATrend",
    "STABLE_TREND",
    "gpa_of",
    "cgpa_of",
    "cgpa_from_courses",
    "trend_of",
    "semester_trend",
    "required_future_gpa",
    "total_credits_of",
    "completed_credits",
    "failed_credits",
    "grade_distribution",
    "class_standing",
    "class_standing_short",
    "performance_message",
    "gpa_progress",
    "format_gpa",
    "format_percentage",
]
