"""
Fundraising Event Storage

In-memory, lock-guarded store of fundraising events.
"""

from shared.events.store import FundraisingEventStore

__all__ = ["FundraisingEventStore"]
