"""
Fundraising Domain Models

FundraisingEvent is the stored record; EventSnapshot and EventListing are
the immutable views handed out by the store. StoreResult carries the outcome
of store operations that can fail for domain reasons.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.domain.exceptions import ErrorCode

T = TypeVar("T")


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class FundraisingEvent(BaseModel):
    """
    A fundraising campaign record.

    Only current_amount may change after creation. Whether the event is
    current or past is derived from the deadline at query time.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: int = Field(..., ge=0, frozen=True, description="Insertion index (zero-based)")
    name: str = Field(..., frozen=True)
    target_amount: float = Field(..., frozen=True)
    deadline: datetime = Field(..., frozen=True)
    current_amount: float = Field(default=0.0)

    @field_validator("deadline")
    @classmethod
    def _normalize_deadline(cls, value: datetime) -> datetime:
        return as_utc(value)

    def is_current(self, now: datetime) -> bool:
        """True while the deadline is still in the future relative to now."""
        return self.deadline > now

    def snapshot(self) -> "EventSnapshot":
        """Immutable copy of the record as it is right now."""
        return EventSnapshot(
            id=self.id,
            name=self.name,
            target_amount=self.target_amount,
            current_amount=self.current_amount,
            deadline=self.deadline,
        )


class EventSnapshot(BaseModel):
    """Point-in-time view of a FundraisingEvent."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    target_amount: float
    current_amount: float
    deadline: datetime

    @field_validator("deadline")
    @classmethod
    def _normalize_deadline(cls, value: datetime) -> datetime:
        return as_utc(value)


class EventListing(BaseModel):
    """Current and past events, each ordered by ascending deadline."""

    model_config = ConfigDict(frozen=True)

    current: tuple[EventSnapshot, ...] = ()
    past: tuple[EventSnapshot, ...] = ()


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Outcome of a store operation: a value, or an error code."""

    value: T | None = None
    error: ErrorCode | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "StoreResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorCode) -> "StoreResult[T]":
        return cls(error=error)
