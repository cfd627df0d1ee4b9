"""
Validation Gate

DESIGN DECISION: Every record read from the local store (or pulled from
the remote backend) is checked against the CURRENT entity shape before
anyone sees it. This runs on every read, not just at boot, because a
migration may have claimed a version bump its steps did not fully apply.

RULES:
- Each record is checked on its own
- A non-conforming record is excluded and counted, never partially repaired
- For the profile singleton, a non-conforming value is replaced by the
  fallback as a whole

The gate only reports. Persisting the filtered result and telling the
user are the caller's job.
"""

from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel, Field, ValidationError

from finsync.models.entities import StoredModel


logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=StoredModel)


class RecordIssue(BaseModel):
    """Why one raw record was rejected."""

    index: int = Field(
        ...,
        description="Position of the record in the raw collection (-1 for the container)"
    )
    errors: list[str] = Field(default_factory=list)


class CollectionOutcome(BaseModel, Generic[T]):
    """Partition of a raw collection into valid records and a rejected count."""

    valid: list[T] = Field(default_factory=list)
    invalid_count: int = Field(default=0, ge=0)
    issues: list[RecordIssue] = Field(default_factory=list)

    @property
    def has_invalid(self) -> bool:
        return self.invalid_count > 0


class SingletonOutcome(BaseModel, Generic[T]):
    """Validated singleton, or the fallback if the stored value was bad."""

    value: T
    is_valid: bool
    errors: list[str] = Field(default_factory=list)


def _summarize(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(loc) for loc in item['loc']) or '<root>'}: {item['msg']}"
        for item in error.errors()
    ]


def validate_collection(raw: Any, shape: type[T]) -> CollectionOutcome[T]:
    """
    Check every element of a raw collection against an entity shape.

    A raw value that is not a list at all counts as one invalid record
    with no valid ones, so the caller rewrites the key as an empty list.
    """
    if not isinstance(raw, list):
        logger.warning(
            "collection_not_a_list",
            shape=shape.__name__,
            raw_type=type(raw).__name__,
        )
        return CollectionOutcome(
            invalid_count=1,
            issues=[RecordIssue(index=-1, errors=["expected a list"])],
        )

    valid = []
    issues = []
    for index, item in enumerate(raw):
        try:
            valid.append(shape.model_validate(item))
        except ValidationError as e:
            errors = _summarize(e)
            issues.append(RecordIssue(index=index, errors=errors))
            logger.warning(
                "invalid_record",
                shape=shape.__name__,
                index=index,
                errors=errors,
            )

    return CollectionOutcome(valid=valid, invalid_count=len(issues), issues=issues)


def validate_singleton(raw: Any, shape: type[T], fallback: T) -> SingletonOutcome[T]:
    """Check a single raw object; return the fallback if it does not conform."""
    try:
        return SingletonOutcome(value=shape.model_validate(raw), is_valid=True)
    except ValidationError as e:
        errors = _summarize(e)
        logger.warning("invalid_singleton", shape=shape.__name__, errors=errors)
        return SingletonOutcome(value=fallback, is_valid=False, errors=errors)
