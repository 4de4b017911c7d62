"""
Score aggregation for a single course.

Combines the internal assessment (IA) and university exam (UE) marks into a
total, a percentage and the grade looked up from the grading scale. No range
checks happen here; the validation layer does those before scores arrive.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .grade_scale import grade_for


@dataclass(frozen=True)
class CourseScore:
    """Derived grade fields of a graded course"""
    total_score: float
    percentage: float
    grade: str
    grade_points: float

    def as_fields(self) -> Dict[str, Any]:
        return {
            "total_score": self.total_score,
            "percentage": self.percentage,
            "grade": self.grade,
            "grade_points": self.grade_points,
        }


UNGRADED_FIELDS: Dict[str, Any] = {
    "total_score": None,
    "percentage": None,
    "grade": None,
    "grade_points": None,
}


def score_course(
    ia_score: Optional[float],
    ia_max: float,
    ue_score: Optional[float],
    ue_max: float,
) -> Optional[CourseScore]:
    """
    Score one course from its two components

    Returns None while either score is missing (course not graded yet).
    A non-positive combined maximum scores as 0% rather than dividing by zero.
    """
    if ia_score is None or ue_score is None:
        return None

    total_score = ia_score + ue_score
    total_max = (ia_max or 0) + (ue_max or 0)
    percentage = (total_score / total_max) * 100 if total_max > 0 else 0.0

    band = grade_for(percentage)
    return CourseScore(
        total_score=total_score,
        percentage=percentage,
        grade=band.letter_grade,
        grade_points=band.grade_points,
    )


def apply_scores(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of course fields with the derived grade fields recomputed

    Derived values present in the input are always overwritten so that the
    result depends only on ia_score/ia_max/ue_score/ue_max.
    """
    result = dict(fields)
    score = score_course(
        fields.get("ia_score"),
        fields.get("ia_max"),
        fields.get("ue_score"),
        fields.get("ue_max"),
    )
    result.update(score.as_fields() if score else UNGRADED_FIELDS)
    return result


__all__ = ["CourseScore", "UNGRADED_FIELDS", "score_course", "apply_scores"]
