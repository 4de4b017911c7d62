#!/usr/bin/env python3
"""
GRADE SCALE - Percentage bands to letter grade and grade points (5.0 scale)

GRADE MAPPING:
80-100 = A  (5.0)    75-79 = B+ (4.5)    70-74 = B  (4.0)
65-69  = C+ (3.5)    60-64 = C  (3.0)    55-59 = D+ (2.5)
50-54  = D  (2.0)    40-49 = E  (1.0)    0-39  = F  (0.0)

EDGE CASES HANDLED:
- Fractional percentages: Rounded half-up to an integer before lookup (79.5 -> A)
- Out-of-range percentages (< 0, > 100, NaN): Fall back to F instead of raising
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple


MAX_GPA = 5.0
MIN_GPA = 0.0
PASSING_GPA = 2.0
PASSING_PERCENTAGE = 50.0
DEFAULT_IA_MAX = 30
DEFAULT_UE_MAX = 70


@dataclass(frozen=True)
class GradeBand:
    """One row of the grading scale"""
    letter_grade: str
    min_percent: int
    max_percent: int
    grade_points: float
    description: str

    def contains(self, percentage: int) -> bool:
        return self.min_percent <= percentage <= self.max_percent


# Highest to lowest; the last band is the fallback
GRADE_SCALE: Tuple[GradeBand, ...] = (
    GradeBand("A", 80, 100, 5.0, "Excellent"),
    GradeBand("B+", 75, 79, 4.5, "Very Good"),
    GradeBand("B", 70, 74, 4.0, "Good"),
    GradeBand("C+", 65, 69, 3.5, "Fairly Good"),
    GradeBand("C", 60, 64, 3.0, "Fair"),
    GradeBand("D+", 55, 59, 2.5, "Pass"),
    GradeBand("D", 50, 54, 2.0, "Marginal Pass"),
    GradeBand("E", 40, 49, 1.0, "Conditional"),
    GradeBand("F", 0, 39, 0.0, "Fail"),
)

LOWEST_BAND = GRADE_SCALE[-1]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)"""
    return math.floor(value + 0.5)


def grade_for(percentage: float) -> GradeBand:
    """
    Look up the grade band for a percentage

    Args:
        percentage: Course percentage, normally 0-100

    Returns:
        Matching GradeBand, or the F band for anything outside 0-100
    """
    try:
        rounded = round_half_up(float(percentage))
    except (TypeError, ValueError, OverflowError):
        return LOWEST_BAND

    for band in GRADE_SCALE:
        if band.contains(rounded):
            return band
    return LOWEST_BAND


def band_for_letter(letter_grade: str) -> Optional[GradeBand]:
    """Get the band for a letter grade (case-sensitive, 'B+' not 'b+')"""
    for band in GRADE_SCALE:
        if band.letter_grade == letter_grade:
            return band
    return None


def is_passing_grade(grade_points: float) -> bool:
    return grade_points >= PASSING_GPA


def is_passing_percentage(percentage: float) -> bool:
    return percentage >= PASSING_PERCENTAGE


__all__ = [
    "MAX_GPA",
    "MIN_GPA",
    "PASSING_GPA",
    "PASSING_PERCENTAGE",
    "DEFAULT_IA_MAX",
    "DEFAULT_UE_MAX",
    "GradeBand",
    "GRADE_SCALE",
    "LOWEST_BAND",
    "round_half_up",
    "grade_for",
    "band_for_letter",
    "is_passing_grade",
    "is_passing_percentage",
]
