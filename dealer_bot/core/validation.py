"""
Input Validation Utilities

- Phone number normalization to the canonical +1XXXXXXXXXX wire format
- Inbound text sanitization before it reaches the dialogue engine
"""
import re

from dealer_bot.core.exceptions import ErrorCode, ValidationException


class ValidationPatterns:
    """Regex patterns for validation"""

    NON_DIGIT = re.compile(r"\D")

    # Canonical North American E.164: +1 followed by 10 digits
    PHONE_CANONICAL = re.compile(r"^\+1\d{10}$")

    # Control characters other than newline/tab/carriage return
    CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class PhoneNumberValidator:
    """Phone number validation and normalization"""

    COUNTRY_CODE = "1"

    @classmethod
    def normalize(cls, phone: str | None) -> str | None:
        """
        Normalize a phone number to the canonical wire format.

        Accepts 5873066133, 587-306-6133, (587) 306-6133, 15873066133 and
        +15873066133. Returns None for any other digit count; callers treat
        that as a validation failure.
        """
        digits = ValidationPatterns.NON_DIGIT.sub("", str(phone or ""))
        if len(digits) == 10:
            return f"+{cls.COUNTRY_CODE}{digits}"
        if len(digits) == 11 and digits.startswith(cls.COUNTRY_CODE):
            return f"+{digits}"
        return None

    @classmethod
    def validate(cls, phone: str | None) -> bool:
        return cls.normalize(phone) is not None

    @classmethod
    def require(cls, phone: str | None, field: str = "phone") -> str:
        """Normalize or raise ValidationException (for HTTP boundaries)."""
        normalized = cls.normalize(phone)
        if normalized is None:
            raise ValidationException(
                "Invalid phone number format",
                field=field,
                details={"value": str(phone or "")},
                error_code=ErrorCode.INVALID_PHONE,
            )
        return normalized

    @classmethod
    def pretty(cls, phone: str | None) -> str:
        """
        Human readable form: +1 (587) 306-6133.

        Display only, never a storage key. Falls back to the raw input.
        """
        canonical = cls.normalize(phone)
        if canonical is None:
            return str(phone or "")
        ten = canonical[2:]
        return f"+1 ({ten[:3]}) {ten[3:6]}-{ten[6:]}"

    @staticmethod
    def mask(phone: str | None) -> str:
        """Mask phone number for logging (e.g. +1587306****)."""
        if not phone or len(phone) < 4:
            return "****"
        return phone[:-4] + "****"


class TextSanitizer:
    """Text sanitization for inbound SMS bodies"""

    # Twilio concatenates long SMS up to 1600 characters
    MAX_SMS_LENGTH = 1600

    @staticmethod
    def sanitize(text: str | None, max_length: int = MAX_SMS_LENGTH) -> str:
        """
        Trim, cap length and drop control characters.

        Does NOT HTML escape; staff-facing renderers escape at display time.
        """
        if not text:
            return ""
        sanitized = ValidationPatterns.CONTROL_CHARS.sub("", text)
        sanitized = sanitized.strip()[:max_length]
        return re.sub(r" +", " ", sanitized)
