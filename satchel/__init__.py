"""
Satchel - request-scoped sessions for ASGI applications.

Explicit session handling:
- Session ids are validated before they are trusted
- Retired ids are remembered and never accepted again
- Id delivery (parameter, cookie, header) is chosen at composition time
- Persistence belongs to a pluggable store
"""

from .request import Request
from .response import Response
from .config import ConfigLoader, ConfigError
from .faults import Fault, FaultDomain, Severity
from .sessions import (
    SessionHandle,
    SessionIdState,
    SessionMiddleware,
    SessionPolicy,
    TransportPolicy,
    MemoryStore,
    FileStore,
    MemoryExpiredRegistry,
    ParameterTransport,
    CookieTransport,
    HeaderTransport,
)

__version__ = "0.1.0"

__all__ = [
    "Request",
    "Response",
    "ConfigLoader",
    "ConfigError",
    "Fault",
    "FaultDomain",
    "Severity",
    "SessionHandle",
    "SessionIdState",
    "SessionMiddleware",
    "SessionPolicy",
    "TransportPolicy",
    "MemoryStore",
    "FileStore",
    "MemoryExpiredRegistry",
    "ParameterTransport",
    "CookieTransport",
    "HeaderTransport",
]
