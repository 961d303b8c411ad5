"""Tests for shared input validators."""

from datetime import date

import pytest

from workbridge.schemas.validators import (
    calculate_age,
    file_extension,
    sanitize_filename,
    validate_email,
    validate_minimum_age,
    validate_phone,
)


@pytest.mark.unit
class TestContactValidators:
    def test_email_is_lowercased(self):
        assert validate_email("  Asha.Verma@Example.COM ") == "asha.verma@example.com"

    @pytest.mark.parametrize("value", ["", "asha", "asha@", "asha@example", "@example.com"])
    def test_invalid_email(self, value):
        with pytest.raises(ValueError):
            validate_email(value)

    def test_e164_phone(self):
        assert validate_phone("+919876543210") == "+919876543210"

    @pytest.mark.parametrize("value", ["9876543210", "+0123456", "+91 98765 43210", "+1234567890123456"])
    def test_invalid_phone(self, value):
        """Leading +, no spaces, at most 15 digits."""
        with pytest.raises(ValueError):
            validate_phone(value)


@pytest.mark.unit
class TestAge:
    def test_eighteenth_birthday_today(self):
        today = date(2026, 6, 15)
        assert validate_minimum_age(date(2008, 6, 15), today=today) == date(2008, 6, 15)

    def test_day_before_eighteenth_birthday(self):
        today = date(2026, 6, 14)
        with pytest.raises(ValueError, match="at least 18"):
            validate_minimum_age(date(2008, 6, 15), today=today)

    def test_year_only_check_counts_birthday_early(self):
        """Non-strict mode subtracts calendar years only."""
        today = date(2026, 6, 14)
        assert calculate_age(date(2008, 6, 15), today=today, strict=False) == 18
        assert validate_minimum_age(date(2008, 6, 15), today=today, strict=False)

    def test_future_date_of_birth(self):
        with pytest.raises(ValueError, match="future"):
            validate_minimum_age(date(2030, 1, 1), today=date(2026, 1, 1))


@pytest.mark.unit
class TestFilenames:
    def test_extension_is_lowercased(self):
        assert file_extension("Scan.PDF") == "pdf"
        assert file_extension("archive.tar.gz") == "gz"
        assert file_extension("README") == ""

    def test_extension_ignores_directories(self):
        assert file_extension("scans.v2/front") == ""

    def test_sanitize_strips_path_and_unsafe_characters(self):
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("C:\\Users\\me\\my scan (1).pdf") == "my_scan_1_.pdf"

    def test_sanitize_strips_leading_dots(self):
        assert sanitize_filename(".hidden.png") == "hidden.png"

    def test_sanitize_keeps_extension_when_trimming(self):
        safe = sanitize_filename("a" * 300 + ".jpeg")
        assert len(safe) == 255
        assert safe.endswith(".jpeg")

    def test_sanitize_fallback(self):
        assert sanitize_filename("...") == "document"
