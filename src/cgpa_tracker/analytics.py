#!/usr/bin/env python3
"""
ANALYTICS - Dashboard aggregates over the semester snapshot

OUTPUTS:
✅ CGPA, class standing and total credits/courses/semesters
✅ Best / worst semester GPA (with semester number)
✅ GPA history and credits per semester, ordered by semester number
✅ Grade distribution across all courses
✅ Trend and latest semester-over-semester change
✅ Target planning via required_future_gpa()

Priority: MEDIUM - Read-only views for the analytics screen
Dependencies: pandas, gpa_calculator
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .data_models import Semester
from .gpa_calculator import (
    GPATrend,
    STABLE_TREND,
    cgpa_of,
    class_standing_short,
    grade_distribution,
    required_future_gpa,
    trend_of,
)

logger = logging.getLogger(__name__)

SEMESTER_COLUMNS = ["semester_id", "semester_number", "name", "gpa", "total_credits", "course_count"]
COURSE_COLUMNS = [
    "course_id",
    "semester_id",
    "semester_number",
    "name",
    "credit_hours",
    "percentage",
    "grade",
    "grade_points",
]


@dataclass
class AnalyticsData:
    """Aggregates shown on the analytics screen"""
    cgpa: Optional[float]
    total_credits: int
    total_courses: int
    total_semesters: int
    best_gpa: Optional[float]
    worst_gpa: Optional[float]
    best_semester: Optional[int]
    worst_semester: Optional[int]
    grade_distribution: Dict[str, int] = field(default_factory=dict)
    gpa_history: List[Tuple[int, float]] = field(default_factory=list)
    credits_per_semester: List[Tuple[int, int]] = field(default_factory=list)
    trend: GPATrend = STABLE_TREND
    latest_change: Optional[float] = None

    @property
    def standing(self) -> Optional[str]:
        if self.cgpa is None:
            return None
        return class_standing_short(self.cgpa)


def semester_frame(semesters: Iterable[Semester]) -> pd.DataFrame:
    """One row per semester, ordered by semester number"""
    rows = [
        {
            "semester_id": s.id,
            "semester_number": s.semester_number,
            "name": s.display_name,
            "gpa": s.gpa,
            "total_credits": s.total_credits,
            "course_count": len(s.courses),
        }
        for s in semesters
    ]
    df = pd.DataFrame(rows, columns=SEMESTER_COLUMNS)
    # Keep None-GPA rows as NaN so they drop out of min/max
    df["gpa"] = pd.to_numeric(df["gpa"], errors="coerce")
    return df.sort_values("semester_number").reset_index(drop=True)


def course_frame(semesters: Iterable[Semester]) -> pd.DataFrame:
    """One row per course with its semester number"""
    rows = [
        {
            "course_id": c.id,
            "semester_id": s.id,
            "semester_number": s.semester_number,
            "name": c.name,
            "credit_hours": c.credit_hours,
            "percentage": c.percentage,
            "grade": c.grade,
            "grade_points": c.grade_points,
        }
        for s in semesters
        for c in s.courses
    ]
    return pd.DataFrame(rows, columns=COURSE_COLUMNS)


def build_analytics(semesters: Iterable[Semester]) -> AnalyticsData:
    """
    Build dashboard aggregates for a list of semesters

    Args:
        semesters: Semesters with their courses (any order)

    Returns:
        AnalyticsData; GPA-based fields are None when nothing is graded
    """
    semesters = list(semesters)
    sem_df = semester_frame(semesters)
    course_df = course_frame(semesters)

    graded = sem_df.dropna(subset=["gpa"])
    gpa_history = [
        (int(row.semester_number), float(row.gpa)) for row in graded.itertuples(index=False)
    ]
    credits_per_semester = [
        (int(row.semester_number), int(row.total_credits)) for row in sem_df.itertuples(index=False)
    ]

    best_gpa = worst_gpa = None
    best_semester = worst_semester = None
    if not graded.empty:
        best_row = graded.loc[graded["gpa"].idxmax()]
        worst_row = graded.loc[graded["gpa"].idxmin()]
        best_gpa, best_semester = float(best_row["gpa"]), int(best_row["semester_number"])
        worst_gpa, worst_semester = float(worst_row["gpa"]), int(worst_row["semester_number"])

    history = [gpa for _, gpa in gpa_history]
    latest_change = history[-1] - history[-2] if len(history) >= 2 else None

    return AnalyticsData(
        cgpa=cgpa_of(semesters),
        total_credits=int(course_df["credit_hours"].sum()) if not course_df.empty else 0,
        total_courses=len(course_df),
        total_semesters=len(sem_df),
        best_gpa=best_gpa,
        worst_gpa=worst_gpa,
        best_semester=best_semester,
        worst_semester=worst_semester,
        grade_distribution=grade_distribution(c for s in semesters for c in s.courses),
        gpa_history=gpa_history,
        credits_per_semester=credits_per_semester,
        trend=trend_of(history),
        latest_change=latest_change,
    )


def target_projection(
    semesters: Iterable[Semester],
    target_cgpa: float,
    future_credits: float,
) -> Optional[float]:
    """GPA needed over future_credits for the current record to reach target_cgpa"""
    semesters = list(semesters)
    current_cgpa = cgpa_of(semesters)
    counted_credits = sum(s.total_credits for s in semesters if s.gpa is not None and s.total_credits > 0)
    if current_cgpa is None:
        # Nothing graded yet: the whole target falls on future credits
        return required_future_gpa(0.0, 0, target_cgpa, future_credits)
    return required_future_gpa(current_cgpa, counted_credits, target_cgpa, future_credits)


__all__ = [
    "AnalyticsData",
    "semester_frame",
    "course_frame",
    "build_analytics",
    "target_projection",
]
