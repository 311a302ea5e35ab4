from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Final

# First run that starts with a zero followed by digits / hyphens (half- or full-width).
# Latin letters count only when more digits follow them, so "090123asa45" is one
# malformed number while units like "300mg" stay a short digit run.
PHONE_CANDIDATE_RE: Final = re.compile(
    r"[0０][0-9０-９\-]+(?:[A-Za-zＡ-Ｚａ-ｚ]+[0-9０-９\-]+)*"
)

FULLWIDTH_DIGITS_RE: Final = re.compile(r"[０-９]")
FULLWIDTH_OFFSET: Final[int] = 0xFEE0

INVALID_CHARS_RE: Final = re.compile(r"[^0-9\-]")
MOBILE_PREFIX_RE: Final = re.compile(r"^0[789]0")

MOBILE_LENGTH: Final[int] = 11
FIXED_LINE_LENGTH: Final[int] = 10


class PhoneVerdict(str, Enum):
    NO_MATCH = "no_match"
    INVALID_CHARACTERS = "invalid_characters"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    VALID = "valid"


@dataclass(frozen=True)
class PhoneValidationResult:
    verdict: PhoneVerdict
    # Hyphen-free half-width digits; None when nothing usable was extracted
    number: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.verdict is PhoneVerdict.VALID

    @property
    def has_invalid_chars(self) -> bool:
        return self.verdict is PhoneVerdict.INVALID_CHARACTERS

    @property
    def is_invalid_length(self) -> bool:
        return self.verdict in (PhoneVerdict.TOO_SHORT, PhoneVerdict.TOO_LONG)


def normalize_digits(text: str) -> str:
    """Convert full-width digits (０-９) to their half-width equivalents."""
    return FULLWIDTH_DIGITS_RE.sub(lambda m: chr(ord(m.group(0)) - FULLWIDTH_OFFSET), text)


def is_valid_phone_number(digits: str) -> bool:
    """
    Check a hyphen-free digit string against the accepted Japanese formats:

    - mobile: 070 / 080 / 090 followed by 8 digits (11 digits total)
    - fixed line: any 10-digit number
    """
    if not digits.startswith("0"):
        return False

    if MOBILE_PREFIX_RE.match(digits) and len(digits) == MOBILE_LENGTH:
        return True

    return len(digits) == FIXED_LINE_LENGTH


def evaluate(text: str) -> PhoneValidationResult:
    """
    Find the first phone-number-like run in free-form text and validate it.

    Steps:
      1. locate the candidate (must start with "0" or "０")
      2. convert full-width digits to half-width
      3. reject anything that is not a digit or hyphen after conversion
      4. drop hyphens and check the length / prefix rules
    """
    match = PHONE_CANDIDATE_RE.search(text)
    if match is None:
        return PhoneValidationResult(PhoneVerdict.NO_MATCH)

    normalized = normalize_digits(match.group(0))

    if INVALID_CHARS_RE.search(normalized):
        return PhoneValidationResult(PhoneVerdict.INVALID_CHARACTERS)

    digits = normalized.replace("-", "")

    if is_valid_phone_number(digits):
        return PhoneValidationResult(PhoneVerdict.VALID, digits)

    if len(digits) < FIXED_LINE_LENGTH:
        return PhoneValidationResult(PhoneVerdict.TOO_SHORT, digits)

    return PhoneValidationResult(PhoneVerdict.TOO_LONG, digits)
