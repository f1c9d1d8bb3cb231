"""Input limits and interpreter response validation.

Raw input is checked with plain helpers that raise ``ValueError``;
interpreter responses are checked with pydantic models so that malformed
or out-of-range observations never reach the local store.
"""

import logging
import math
import re
from dataclasses import asdict
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from finishstrong.types import InterpretationResult, Observation

logger = logging.getLogger(__name__)

INPUT_MAX_LENGTH = 300
WEIGHT_MIN = 0
WEIGHT_MAX = 500
REPS_MIN = 1
REPS_MAX = 100
SETS_MIN = 1
SETS_MAX = 50


def validate_raw_input(value: Any, max_length: int = INPUT_MAX_LENGTH) -> str:
    """Validate raw free text before it is sent for interpretation.

    Returns the trimmed input with control characters removed.

    Raises:
        ValueError: If the input is missing, empty or too long.
    """
    if value is None or not isinstance(value, str):
        raise ValueError("Input is required")
    trimmed = value.strip()
    if not trimmed:
        raise ValueError("Input cannot be empty")
    if len(trimmed) > max_length:
        raise ValueError(f"Input exceeds {max_length} characters")
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", trimmed)


class ParsedExercise(BaseModel):
    """One observation as returned by the interpreter."""

    model_config = ConfigDict(extra="ignore")

    exercise: str
    weight: Optional[float] = Field(default=None, ge=WEIGHT_MIN, le=WEIGHT_MAX)
    unit: Optional[Literal["kg", "lbs"]] = None
    reps: Optional[int] = Field(default=None, ge=REPS_MIN, le=REPS_MAX)
    sets: Optional[int] = Field(default=None, ge=SETS_MIN, le=SETS_MAX)

    @field_validator("exercise")
    @classmethod
    def _name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Exercise name is required")
        return value.strip()

    @field_validator("weight", "reps", "sets", mode="before")
    @classmethod
    def _numbers_only(cls, value: Any) -> Any:
        # Reject strings and booleans that lax coercion would otherwise accept
        if value is None:
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("must be a number or null")
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            raise ValueError("must be a finite number")
        return value

    def to_observation(self) -> Observation:
        return Observation(
            exercise=self.exercise,
            weight=self.weight,
            unit=self.unit,
            reps=self.reps,
            sets=self.sets,
        )


class ParseResponse(BaseModel):
    """Envelope returned by the interpretation service."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    data: Optional[List[Any]] = None
    error: Optional[str] = None


def describe_validation_error(exc: ValidationError) -> str:
    """Render the first pydantic error as a short human-readable message."""
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
    message = first.get("msg", "invalid value")
    message = message.removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


def validate_observation(raw: Any, index: int = 1) -> Observation:
    """Validate one observation, raw dict or ``Observation``.

    Raises:
        ValueError: Naming the 1-based ``index`` of the bad observation.
    """
    if isinstance(raw, Observation):
        raw = asdict(raw)
    try:
        parsed = ParsedExercise.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Exercise {index}: {describe_validation_error(exc)}") from exc
    return parsed.to_observation()


def validate_interpretation(payload: Any) -> InterpretationResult:
    """Validate a raw interpreter response into an InterpretationResult.

    A response that reports failure, is malformed, or contains any invalid
    observation yields ``success=False`` with a readable error. Nothing is
    partially accepted.
    """
    try:
        envelope = ParseResponse.model_validate(payload)
    except ValidationError as exc:
        return InterpretationResult(
            success=False,
            error=f"Malformed interpreter response: {describe_validation_error(exc)}",
        )

    if not envelope.success:
        return InterpretationResult(success=False, error=envelope.error or "Failed to parse")

    observations: List[Observation] = []
    for index, raw in enumerate(envelope.data or [], start=1):
        try:
            observations.append(validate_observation(raw, index))
        except ValueError as exc:
            return InterpretationResult(success=False, error=str(exc))

    return InterpretationResult(success=True, data=observations)
