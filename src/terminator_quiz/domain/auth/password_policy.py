"""Password strength policy shared by registration and password change."""

from __future__ import annotations

from enum import StrEnum
from typing import Final

MIN_PASSWORD_LENGTH: Final[int] = 10
SPECIAL_CHARACTERS: Final[frozenset[str]] = frozenset("!@#$%^&*")


class PolicyViolation(StrEnum):
    """One unmet password-strength rule."""

    TOO_SHORT = "too_short"
    NO_UPPERCASE = "no_uppercase"
    NO_DIGIT = "no_digit"
    NO_SPECIAL_CHAR = "no_special_char"


_VIOLATION_DESCRIPTIONS: Final[dict[PolicyViolation, str]] = {
    PolicyViolation.TOO_SHORT: f"at least {MIN_PASSWORD_LENGTH} characters",
    PolicyViolation.NO_UPPERCASE: "an uppercase letter",
    PolicyViolation.NO_DIGIT: "a digit",
    PolicyViolation.NO_SPECIAL_CHAR: "one of the special characters !@#$%^&*",
}


def policy_violations(candidate: str) -> frozenset[PolicyViolation]:
    """Return every rule the candidate password fails to satisfy."""

    violations: set[PolicyViolation] = set()
    if len(candidate) < MIN_PASSWORD_LENGTH:
        violations.add(PolicyViolation.TOO_SHORT)
    if not any(char.isupper() for char in candidate):
        violations.add(PolicyViolation.NO_UPPERCASE)
    if not any(char.isdecimal() for char in candidate):
        violations.add(PolicyViolation.NO_DIGIT)
    if not any(char in SPECIAL_CHARACTERS for char in candidate):
        violations.add(PolicyViolation.NO_SPECIAL_CHAR)
    return frozenset(violations)


def is_acceptable(candidate: str) -> bool:
    """Return whether the candidate password satisfies the whole policy."""

    return not policy_violations(candidate)


def describe_violation(violation: PolicyViolation) -> str:
    """Return user-facing wording for one unmet rule."""

    return _VIOLATION_DESCRIPTIONS[violation]
