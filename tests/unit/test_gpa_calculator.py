"""
Unit Tests for GPA Calculator

Tests for:
- Semester GPA (credit weighted)
- Cumulative GPA from semester aggregates
- Trend classification
- Required future GPA
- Credit helpers and standing
"""

import pytest

from conftest import make_course
from cgpa_tracker.gpa_calculator import (
    cgpa_from_courses,
    cgpa_of,
    class_standing,
    class_standing_short,
    completed_credits,
    failed_credits,
    format_gpa,
    format_percentage,
    gpa_of,
    gpa_progress,
    grade_distribution,
    performance_message,
    required_future_gpa,
    semester_trend,
    total_credits_of,
    trend_of,
)


class TestSemesterGPA:
    """Tests for gpa_of()"""

    def test_credit_weighted_average(self):
        courses = [
            {"grade_points": 5.0, "credit_hours": 4},
            {"grade_points": 4.0, "credit_hours": 3},
            {"grade_points": 3.0, "credit_hours": 3},
        ]
        # (20 + 12 + 9) / 10
        assert gpa_of(courses) == pytest.approx(4.1)

    def test_two_course_mix(self):
        courses = [{"grade_points": 5.0, "credit_hours": 3}, {"grade_points": 3.0, "credit_hours": 2}]
        # (15 + 6) / 5
        assert gpa_of(courses) == pytest.approx(4.2)
        assert gpa_of([{"grade_points": 4.5, "credit_hours": 3}, {"grade_points": 3.5, "credit_hours": 2}, {"grade_points": 4.5, "credit_hours": 5}]) == pytest.approx(4.3)

    def test_model_courses(self, sample_courses):
        assert gpa_of(sample_courses) == pytest.approx(4.25)

    def test_empty_is_none(self):
        assert gpa_of([]) is None

    def test_ungraded_and_zero_credit_courses_ignored(self):
        courses = [
            {"grade_points": None, "credit_hours": 3},
            {"grade_points": 5.0, "credit_hours": 0},
            {"grade_points": 4.0, "credit_hours": 2},
        ]
        assert gpa_of(courses) == 4.0

    def test_only_ungraded_is_none(self):
        assert gpa_of([make_course("c1", "s1", 3, 20, None)]) is None

    def test_idempotent(self, sample_courses):
        assert gpa_of(sample_courses) == gpa_of(sample_courses)


class TestCumulativeGPA:
    """Tests for cgpa_of()"""

    def test_weighted_by_semester_credits(self, sample_semesters):
        # (4.0 * 4 + 3.0 * 6) / 10
        assert cgpa_of(sample_semesters) == pytest.approx(3.4)

    def test_semesters_without_gpa_excluded(self):
        semesters = [
            {"gpa": 4.0, "total_credits": 20},
            {"gpa": None, "total_credits": 15},
            {"gpa": 3.0, "total_credits": 0},
        ]
        assert cgpa_of(semesters) == 4.0

    def test_camel_case_credits_accepted(self):
        assert cgpa_of([{"gpa": 4.0, "totalCredits": 10}, {"gpa": 3.0, "totalCredits": 10}]) == pytest.approx(3.5)

    def test_nothing_graded_is_none(self):
        assert cgpa_of([]) is None
        assert cgpa_of([{"gpa": None, "total_credits": 5}]) is None

    def test_from_courses(self, sample_courses):
        assert cgpa_from_courses([{"courses": sample_courses[:1]}, {"courses": sample_courses[1:]}]) == pytest.approx(4.25)


class TestTrend:
    """Tests for trend_of() / semester_trend()"""

    def test_short_history_is_stable(self):
        assert trend_of([]).stable
        assert trend_of([3.0]).stable

    def test_improving(self):
        trend = trend_of([3.0, 3.5, 4.0])
        assert trend.improving and not trend.stable and not trend.declining
        assert trend.label == "improving"

    def test_declining(self):
        assert trend_of([4.5, 4.0, 3.2]).declining

    def test_small_changes_are_stable(self):
        assert trend_of([3.0, 3.05, 3.1, 3.12]).stable

    def test_mixed_changes_are_stable(self):
        # one increase, one decrease out of two comparisons: neither exceeds 1
        assert trend_of([3.0, 3.5, 3.0]).stable

    def test_exactly_one_flag_set(self):
        for history in ([1.0, 2.0], [2.0, 1.0], [2.0, 2.0], [1.0, 2.0, 1.0, 2.0]):
            trend = trend_of(history)
            assert [trend.improving, trend.stable, trend.declining].count(True) == 1

    def test_semester_trend_orders_by_number(self, sample_semesters):
        # s1 = 4.0, s2 = 3.0 -> declining, even though given out of order
        assert semester_trend(sample_semesters).declining


class TestRequiredFutureGPA:
    """Tests for required_future_gpa()"""

    def test_substitution_reaches_target(self):
        current_cgpa, current_credits, target, future_credits = 3.5, 40, 4.0, 20
        required = required_future_gpa(current_cgpa, current_credits, target, future_credits)

        achieved = (current_cgpa * current_credits + required * future_credits) / (current_credits + future_credits)
        assert achieved == pytest.approx(target)
        assert required == pytest.approx(5.0)

    def test_unreachable_target_is_none(self):
        assert required_future_gpa(2.0, 60, 4.5, 10) is None

    def test_no_future_credits_is_none(self):
        assert required_future_gpa(3.0, 30, 3.5, 0) is None
        assert required_future_gpa(3.0, 30, 3.5, -5) is None

    def test_exceeded_target_floors_at_zero(self):
        assert required_future_gpa(4.8, 100, 3.0, 10) == 0.0

    def test_keeps_full_precision(self):
        assert required_future_gpa(3.0, 30, 3.1, 30) == pytest.approx(3.2)


class TestCreditsAndStanding:
    def test_credit_helpers(self):
        courses = [
            make_course("c1", "s1", 4, 26, 60),    # A
            make_course("c2", "s1", 3, 10, 25),    # 35% F
            make_course("c3", "s1", 2, 20, None),  # ungraded
        ]
        assert total_credits_of(courses) == 9
        assert completed_credits(courses) == 4
        assert failed_credits(courses) == 3
        assert grade_distribution(courses) == {"A": 1, "F": 1}

    @pytest.mark.parametrize(
        "cgpa,standing,short",
        [
            (4.6, "First Class Honours", "First Class"),
            (4.0, "Second Class Honours (Upper)", "Second Upper"),
            (3.2, "Second Class Honours (Lower)", "Second Lower"),
            (2.0, "Pass", "Pass"),
            (1.5, "Fail", "Fail"),
        ],
    )
    def test_class_standing(self, cgpa, standing, short):
        assert class_standing(cgpa) == standing
        assert class_standing_short(cgpa) == short

    def test_display_helpers(self):
        assert performance_message(4.7) == "Outstanding Performance!"
        assert performance_message(1.0) == "Critical - Seek Academic Support"
        assert gpa_progress(2.5) == 50.0
        assert format_gpa(None) == "--.--"
        assert format_gpa(4.257) == "4.26"
        assert format_percentage(None) == "--%"
        assert format_percentage(74.0) == "74.0%"
