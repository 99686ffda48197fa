"""
ABC Cours CRM - Settlement note arithmetic
Run: cd backend && pytest tests/test_settlement_calculator.py -v
"""

import pytest

from models import SubjectLine
from services.settlement_calculator import compute_totals, total_amount


class TestSingleSubject:
    def test_margin_amount(self):
        totals = compute_totals(
            [{"subject_id": "s1", "hourly_rate": 50.0, "quantity": 4, "professor_salary": 25.0}],
            charges=5.0,
        )
        # 200 - (100 + 20)
        assert totals["total_revenue"] == 200
        assert totals["salary_to_pay"] == 100
        assert totals["charges_to_pay"] == 20
        assert totals["margin_amount"] == 80
        assert totals["margin_percentage"] == 40

    def test_margin_percentage(self):
        totals = compute_totals(
            [{"subject_id": "s1", "hourly_rate": 100.0, "quantity": 2, "professor_salary": 40.0}],
            charges=10.0,
        )
        assert totals["margin_amount"] == 100
        assert totals["margin_percentage"] == 50

    def test_zero_margin(self):
        totals = compute_totals(
            [{"subject_id": "s1", "hourly_rate": 30.0, "quantity": 1, "professor_salary": 20.0}],
            charges=10.0,
        )
        assert totals["margin_amount"] == 0
        assert totals["margin_percentage"] == 0

    def test_zero_revenue_gives_zero_percentage(self):
        totals = compute_totals(
            [{"subject_id": "s1", "hourly_rate": 0, "quantity": 1, "professor_salary": 0}],
            charges=0,
        )
        assert totals["total_revenue"] == 0
        assert totals["margin_percentage"] == 0

    def test_negative_margin_is_kept(self):
        totals = compute_totals(
            [{"subject_id": "s1", "hourly_rate": 20.0, "quantity": 2, "professor_salary": 25.0}],
            charges=3.0,
        )
        assert totals["margin_amount"] == -16
        assert totals["margin_percentage"] == -40


class TestMultipleSubjects:
    def test_totals_over_lines(self):
        lines = [
            SubjectLine(subject_id="math", hourly_rate=30, quantity=10, professor_salary=20),
            SubjectLine(subject_id="phys", hourly_rate=35, quantity=8, professor_salary=25),
        ]
        totals = compute_totals(lines, charges=2)

        assert totals["total_hourly_rate"] == 65
        assert totals["total_quantity"] == 18
        assert totals["total_professor_salary"] == 45
        assert totals["total_revenue"] == 580
        assert totals["salary_to_pay"] == 400
        assert totals["charges_to_pay"] == 36
        assert totals["margin_amount"] == 144
        assert totals["margin_percentage"] == pytest.approx(24.83)

    def test_charges_apply_to_total_quantity(self):
        lines = [
            {"subject_id": "a", "hourly_rate": 40, "quantity": 5, "professor_salary": 25},
            {"subject_id": "b", "hourly_rate": 35, "quantity": 3, "professor_salary": 20},
        ]
        assert compute_totals(lines, charges=7)["charges_to_pay"] == 56


class TestTotalAmount:
    def test_uses_stored_revenue(self):
        assert total_amount({"total_revenue": 500, "subjects": []}) == 500

    def test_recomputes_when_missing(self):
        note = {"subjects": [
            {"subject_id": "a", "hourly_rate": 40, "quantity": 5, "professor_salary": 25},
            {"subject_id": "b", "hourly_rate": 35, "quantity": 3, "professor_salary": 20},
        ]}
        assert total_amount(note) == 305
