"""
Concurrency Primitives

Shared, lock-guarded bookkeeping used by the server's listeners.
"""

from shared.concurrency.registry import ClientAddress, ClientRegistration, ClientRegistry

__all__ = ["ClientAddress", "ClientRegistration", "ClientRegistry"]
