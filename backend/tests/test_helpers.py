"""
ABC Cours CRM - Shared helpers (config, coupon codes, permissions)
"""

from datetime import datetime, timezone

import pytest

from tests.conftest import run
from config import get_department_from_postal_code, add_months, to_iso, is_valid_email_format
from services.coupon_generation import (
    BASE32_CHARS,
    MAX_CODE_ATTEMPTS,
    CouponCodeError,
    coupon_count_for_note,
    decimal_to_base32,
    decode_coupon_code,
    generate_coupon_code,
    generate_unique_coupon_code,
)
from services.permissions import get_preset_permissions, user_has_permission


class TestDepartment:
    @pytest.mark.parametrize("postal_code,expected", [
        ("75001", "75"),
        ("13008", "13"),
        ("97110", "971"),
        ("98800", "988"),
        (" 69003 ", "69"),
        ("", ""),
        (None, ""),
        ("7", ""),
        ("invalid", ""),
    ])
    def test_department(self, postal_code, expected):
        assert get_department_from_postal_code(postal_code) == expected


class TestDates:
    def test_add_months_clamps_day(self):
        dt = datetime(2024, 1, 31, tzinfo=timezone.utc)
        assert add_months(dt, 1) == datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_add_months_crosses_year(self):
        dt = datetime(2024, 11, 15, tzinfo=timezone.utc)
        assert add_months(dt, 12 + 2) == datetime(2026, 1, 15, tzinfo=timezone.utc)

    def test_to_iso_normalizes_to_utc(self):
        assert to_iso("2024-09-30") == "2024-09-30T00:00:00+00:00"
        assert to_iso("2024-09-30T10:00:00Z") == "2024-09-30T10:00:00+00:00"
        assert to_iso("2024-09-30T12:00:00+02:00") == "2024-09-30T10:00:00+00:00"
        assert to_iso(None) is None

    def test_to_iso_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_iso("pas une date")

    def test_email_format(self):
        assert is_valid_email_format("a.b@c.fr")
        assert not is_valid_email_format("a.b@c")
        assert not is_valid_email_format("")


class TestCouponCodes:
    def test_alphabet_excludes_ambiguous_letters(self):
        assert "I" not in BASE32_CHARS
        assert "O" not in BASE32_CHARS

    def test_padding(self):
        assert decimal_to_base32(0, 3) == "000"
        assert decimal_to_base32(1, 3) == "001"
        assert decimal_to_base32(10, 3) == "00A"

    def test_code_format(self):
        code = generate_coupon_code("3f9a1c2d-aaaa-bbbb", 1)
        assert code == "3F9A1C-001"

    def test_decode_matches_encode(self):
        for number in (1, 33, 34, 35, 1000):
            assert decode_coupon_code(generate_coupon_code("abcdef12", number)) == number

    def test_decode_accepts_uniqueness_suffix(self):
        assert decode_coupon_code("ABCDEF-00A-K2X9") == 10

    def test_decode_rejects_bad_format(self):
        with pytest.raises(CouponCodeError):
            decode_coupon_code("ABCDEF001")
        with pytest.raises(CouponCodeError):
            decode_coupon_code("ABCDEF-0I1")

    def test_count_multiplies_by_students(self):
        note = {
            "student_ids": ["s1", "s2"],
            "subjects": [{"quantity": 4}, {"quantity": 3}],
        }
        assert coupon_count_for_note(note) == 14

    def test_count_for_family_only_note(self):
        note = {"student_ids": [], "subjects": [{"quantity": 5}]}
        assert coupon_count_for_note(note) == 5


class TestUniqueCouponCodes:
    def test_01_free_code_is_used_as_is(self, db):
        assert run(generate_unique_coupon_code("abcdef12", 1)) == "ABCDEF-001"

    def test_02_collision_shifts_number(self, db):
        run(db.coupons.insert_one({"code": "ABCDEF-001"}))
        assert run(generate_unique_coupon_code("abcdef12", 1)) == "ABCDEF-002"

    def test_03_reserved_codes_are_skipped(self, db):
        code = run(generate_unique_coupon_code("abcdef12", 1, {"ABCDEF-001", "ABCDEF-002"}))
        assert code == "ABCDEF-003"

    def test_04_suffix_after_max_attempts(self, db):
        """After 10 taken numbers the code keeps its number and gets a suffix"""
        run(db.coupons.insert_many([
            {"code": generate_coupon_code("abcdef12", n)} for n in range(1, MAX_CODE_ATTEMPTS + 1)
        ]))
        code = run(generate_unique_coupon_code("abcdef12", 1))
        assert code.startswith("ABCDEF-001-")
        assert len(code.split("-")[2]) == 4
        assert decode_coupon_code(code) == 1

    def test_05_suffixed_code_is_unique(self, db):
        taken = {generate_coupon_code("abcdef12", n) for n in range(1, MAX_CODE_ATTEMPTS + 1)}
        run(db.coupons.insert_many([{"code": c} for c in taken]))
        first = run(generate_unique_coupon_code("abcdef12", 1, taken))
        taken.add(first)
        second = run(generate_unique_coupon_code("abcdef12", 1, taken))
        assert second != first
        assert second.startswith("ABCDEF-001-")


class TestPermissions:
    def test_admin_has_everything(self):
        assert user_has_permission({"role": "admin", "permissions": {}}, "users.manage")

    def test_professor_preset(self):
        prof = {"role": "professor", "permissions": get_preset_permissions("professor")}
        assert user_has_permission(prof, "coupons.use")
        assert user_has_permission(prof, "families.view")
        assert not user_has_permission(prof, "families.create")
        assert not user_has_permission(prof, "settlement_notes.view")
