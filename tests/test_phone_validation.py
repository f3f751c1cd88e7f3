"""
Tests for phone normalization and inbound text sanitization
"""
import pytest
from hypothesis import given
from hypothesis.strategies import integers, sampled_from, text

from dealer_bot.core.exceptions import ErrorCode, ValidationException
from dealer_bot.core.validation import PhoneNumberValidator, TextSanitizer


class TestNormalize:
    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [
        "5873066133",
        "587-306-6133",
        "(587) 306-6133",
        "587.306.6133",
        "15873066133",
        "+15873066133",
        "+1 (587) 306-6133",
    ])
    def test_accepted_formats(self, raw):
        assert PhoneNumberValidator.normalize(raw) == "+15873066133"

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [
        None,
        "",
        "12345",
        "25873066133",  # 11 digits without the leading 1
        "+44 20 7946 0958",
        "587306613",
    ])
    def test_rejected_formats(self, raw):
        assert PhoneNumberValidator.normalize(raw) is None
        assert not PhoneNumberValidator.validate(raw)

    @given(integers(min_value=0, max_value=9_999_999_999))
    def test_ten_digits_prepend_country_code(self, n):
        digits = f"{n:010d}"
        assert PhoneNumberValidator.normalize(digits) == f"+1{digits}"

    @given(integers(min_value=0, max_value=9_999_999_999), sampled_from(["", "-", " ", "."]))
    def test_normalize_is_idempotent(self, n, sep):
        digits = f"{n:010d}"
        raw = sep.join([digits[:3], digits[3:6], digits[6:]])
        once = PhoneNumberValidator.normalize(raw)
        assert PhoneNumberValidator.normalize(once) == once

    @given(text(max_size=30))
    def test_result_is_canonical_or_none(self, raw):
        result = PhoneNumberValidator.normalize(raw)
        assert result is None or (result.startswith("+1") and len(result) == 12 and result[1:].isdigit())


class TestHelpers:
    @pytest.mark.unit
    def test_require_raises_invalid_phone(self):
        with pytest.raises(ValidationException) as exc_info:
            PhoneNumberValidator.require("123")
        assert exc_info.value.error_code == ErrorCode.INVALID_PHONE
        assert exc_info.value.status_code == 400

    @pytest.mark.unit
    def test_pretty(self):
        assert PhoneNumberValidator.pretty("5873066133") == "+1 (587) 306-6133"
        assert PhoneNumberValidator.pretty("abc") == "abc"

    @pytest.mark.unit
    def test_mask_hides_last_four(self):
        assert PhoneNumberValidator.mask("+15873066133") == "+1587306****"
        assert PhoneNumberValidator.mask(None) == "****"


class TestTextSanitizer:
    @pytest.mark.unit
    def test_strips_control_chars_and_spaces(self):
        assert TextSanitizer.sanitize("  hi\x00   there \x07") == "hi there"

    @pytest.mark.unit
    def test_caps_length(self):
        assert len(TextSanitizer.sanitize("a" * 2000)) == 1600

    @pytest.mark.unit
    def test_empty(self):
        assert TextSanitizer.sanitize(None) == ""
