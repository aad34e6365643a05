"""
Fundraising Service

Concurrent coordination server for fundraising events over TCP or UDP.
"""

from services.fundraising_service.handler import RequestHandler
from services.fundraising_service.listener import DatagramListener, StreamListener
from services.fundraising_service.monitor import IdleTimeoutMonitor
from services.fundraising_service.server import FundraisingServer
from services.fundraising_service.session import serve_connection

__all__ = [
    "FundraisingServer",
    "RequestHandler",
    "StreamListener",
    "DatagramListener",
    "IdleTimeoutMonitor",
    "serve_connection",
]
