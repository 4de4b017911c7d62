"""
Unit Tests for Score Aggregation

Tests for:
- IA + UE totals and percentages
- Ungraded courses
- Derived field overwrite in apply_scores()
"""

import pytest

from cgpa_tracker.score_aggregator import UNGRADED_FIELDS, apply_scores, score_course


class TestScoreCourse:
    """Tests for score_course()"""

    def test_standard_course(self):
        score = score_course(24, 30, 50, 70)

        assert score.total_score == 74
        assert score.percentage == pytest.approx(74.0)
        assert score.grade == "B"
        assert score.grade_points == 4.0

    def test_custom_maxima(self):
        # 18/20 + 36/40 = 54/60 = 90%
        score = score_course(18, 20, 36, 40)
        assert score.percentage == pytest.approx(90.0)
        assert score.grade == "A"

    def test_missing_score_is_ungraded(self):
        assert score_course(None, 30, 50, 70) is None
        assert score_course(20, 30, None, 70) is None

    def test_zero_maximum_scores_zero_percent(self):
        score = score_course(0, 0, 0, 0)
        assert score.percentage == 0.0
        assert score.grade == "F"

    def test_fractional_percentage_rounded_before_lookup(self):
        # 79.5% rounds to 80 -> A
        score = score_course(29.5, 30, 50, 70)
        assert score.percentage == pytest.approx(79.5)
        assert score.grade == "A"

    def test_idempotent(self):
        assert score_course(21, 30, 40, 70) == score_course(21, 30, 40, 70)


class TestApplyScores:
    """Tests for apply_scores()"""

    def test_overwrites_stale_derived_fields(self):
        fields = {
            "name": "Physics",
            "ia_score": 24,
            "ia_max": 30,
            "ue_score": 50,
            "ue_max": 70,
            "grade": "F",
            "grade_points": 0.0,
        }
        result = apply_scores(fields)

        assert result["name"] == "Physics"
        assert result["grade"] == "B"
        assert result["grade_points"] == 4.0
        assert fields["grade"] == "F"

    def test_clears_derived_fields_when_ungraded(self):
        result = apply_scores({"ia_score": 24, "ia_max": 30, "ue_score": None, "ue_max": 70, "grade": "B"})
        for name, value in UNGRADED_FIELDS.items():
            assert result[name] == value
