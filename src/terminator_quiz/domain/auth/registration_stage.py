"""Registration flow stages and their transition guards."""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class RegistrationStage(StrEnum):
    """Stages an interactive registration passes through."""

    COLLECTING_USERNAME = "collecting_username"
    VALIDATING_UNIQUENESS = "validating_uniqueness"
    COLLECTING_PASSWORD = "collecting_password"
    VALIDATING_POLICY = "validating_policy"
    HASHING = "hashing"
    PERSISTING = "persisting"
    DONE = "done"


class InvalidRegistrationTransitionError(ValueError):
    """Raised when a registration flow attempts a disallowed stage change."""


# Every forward step may fail back to the collection stage it depends on.
_ALLOWED_TRANSITIONS: Final[dict[RegistrationStage, frozenset[RegistrationStage]]] = {
    RegistrationStage.COLLECTING_USERNAME: frozenset({RegistrationStage.VALIDATING_UNIQUENESS}),
    RegistrationStage.VALIDATING_UNIQUENESS: frozenset(
        {RegistrationStage.COLLECTING_PASSWORD, RegistrationStage.COLLECTING_USERNAME}
    ),
    RegistrationStage.COLLECTING_PASSWORD: frozenset({RegistrationStage.VALIDATING_POLICY}),
    RegistrationStage.VALIDATING_POLICY: frozenset(
        {RegistrationStage.HASHING, RegistrationStage.COLLECTING_PASSWORD}
    ),
    RegistrationStage.HASHING: frozenset(
        {RegistrationStage.PERSISTING, RegistrationStage.COLLECTING_PASSWORD}
    ),
    RegistrationStage.PERSISTING: frozenset(
        {RegistrationStage.DONE, RegistrationStage.COLLECTING_USERNAME}
    ),
    RegistrationStage.DONE: frozenset(),
}


def can_transition(from_stage: RegistrationStage, to_stage: RegistrationStage) -> bool:
    """Return whether the stage change is valid for the registration flow."""

    return to_stage in _ALLOWED_TRANSITIONS[from_stage]


def assert_transition(from_stage: RegistrationStage, to_stage: RegistrationStage) -> None:
    """Assert a stage change is allowed, else raise deterministic domain error."""

    if not can_transition(from_stage, to_stage):
        raise InvalidRegistrationTransitionError(
            f"Invalid registration transition: {from_stage.value} -> {to_stage.value}"
        )
