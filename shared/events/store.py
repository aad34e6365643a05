"""
Event Store Implementation

In-memory, insertion-ordered store of fundraising events.
Every operation runs under a single lock so that concurrent callers
observe each create/list/donate/details/exists call as one atomic step.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from shared.domain.exceptions import ErrorCode
from shared.domain.fundraising import (
    EventListing,
    EventSnapshot,
    FundraisingEvent,
    StoreResult,
    as_utc,
    utc_now,
)

logger = structlog.get_logger(__name__)


class FundraisingEventStore:
    """
    Shared collection of fundraising events.

    Features:
    - Ids equal insertion indices and are assigned under the same lock as the append
    - Storage order is never changed; sorted and partitioned views are built per query
    - Domain failures are returned as StoreResult errors, never raised
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        """
        Initialize an empty store.

        Args:
            clock: Source of "now" for current/past classification (defaults to UTC wall clock)
        """
        self._events: list[FundraisingEvent] = []
        self._lock = asyncio.Lock()
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        return as_utc(self._clock())

    async def create(self, name: str, target_amount: float, deadline: datetime) -> int:
        """
        Append a new event.

        Args:
            name: Event name
            target_amount: Fundraising goal
            deadline: Point in time after which donations are refused

        Returns:
            int: Id of the new event
        """
        async with self._lock:
            event = FundraisingEvent(
                id=len(self._events),
                name=name,
                target_amount=target_amount,
                deadline=deadline,
            )
            self._events.append(event)

        logger.info(
            "Event created",
            event_id=event.id,
            name=event.name,
            target_amount=event.target_amount,
            deadline=event.deadline.isoformat(),
        )

        return event.id

    async def list_events(self) -> EventListing:
        """
        Partition events into current and past against a single "now".

        Each partition is ordered by ascending deadline; equal deadlines keep
        insertion order.

        Returns:
            EventListing: Snapshots of current and past events
        """
        async with self._lock:
            now = self._now()
            current = [e.snapshot() for e in self._events if e.is_current(now)]
            past = [e.snapshot() for e in self._events if not e.is_current(now)]

        # sorted() is stable, and snapshots were taken in insertion order
        return EventListing(
            current=tuple(sorted(current, key=lambda s: s.deadline)),
            past=tuple(sorted(past, key=lambda s: s.deadline)),
        )

    async def donate(self, event_id: int, amount: float) -> StoreResult[float]:
        """
        Add a donation to an event that has not ended.

        Args:
            event_id: Zero-based event id
            amount: Donation amount (not validated here)

        Returns:
            StoreResult: New current amount, or INVALID_INDEX / EVENT_ENDED
        """
        async with self._lock:
            if not 0 <= event_id < len(self._events):
                result: StoreResult[float] = StoreResult.failure(ErrorCode.INVALID_INDEX)
            else:
                event = self._events[event_id]
                if not event.is_current(self._now()):
                    result = StoreResult.failure(ErrorCode.EVENT_ENDED)
                else:
                    event.current_amount += amount
                    result = StoreResult.success(event.current_amount)

        if result.ok:
            logger.info(
                "Donation recorded",
                event_id=event_id,
                amount=amount,
                current_amount=result.value,
            )
        else:
            logger.info(
                "Donation rejected",
                event_id=event_id,
                amount=amount,
                reason=result.error.value,
            )

        return result

    async def details(self, event_id: int) -> StoreResult[EventSnapshot]:
        """
        Get a consistent snapshot of one event.

        Args:
            event_id: Zero-based event id

        Returns:
            StoreResult: Snapshot, or INVALID_INDEX
        """
        async with self._lock:
            if not 0 <= event_id < len(self._events):
                return StoreResult.failure(ErrorCode.INVALID_INDEX)
            return StoreResult.success(self._events[event_id].snapshot())

    async def exists(self) -> bool:
        """Check whether any event has been created."""
        async with self._lock:
            return bool(self._events)

    async def count(self) -> int:
        """Number of stored events."""
        async with self._lock:
            return len(self._events)
