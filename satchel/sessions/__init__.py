"""
Satchel sessions - session accessor and session-id lifecycle.

This package provides:
- SessionHandle: per-request view over session data and lifecycle flags
- SessionIdState: extraction, generation, validation and expiry of ids
- Interchangeable transports (parameter, cookie, header)
- A bounded registry of retired ids
- Simple stores (memory, file) and an ASGI middleware wiring it together
"""

from .handle import (
    SessionHandle,
    SESSION_SCOPE_KEY,
    OPTIONS_SCOPE_KEY,
)

from .state import SessionIdState

from .generators import (
    default_sid_generator,
    secure_sid_generator,
)

from .registry import (
    ExpiredIdRegistry,
    MemoryExpiredRegistry,
)

from .transport import (
    SessionTransport,
    ParameterTransport,
    CookieTransport,
    HeaderTransport,
    create_transport,
)

from .policy import (
    SessionPolicy,
    TransportPolicy,
    ExpiryPolicy,
    PersistencePolicy,
)

from .store import (
    SessionStore,
    MemoryStore,
    FileStore,
)

from .middleware import SessionMiddleware

from .faults import (
    SessionFault,
    SessionWiringFault,
    SessionStoreUnavailableFault,
    SessionStoreCorruptedFault,
)

__all__ = [
    # Accessor
    "SessionHandle",
    "SESSION_SCOPE_KEY",
    "OPTIONS_SCOPE_KEY",
    # Id state
    "SessionIdState",
    "default_sid_generator",
    "secure_sid_generator",
    "ExpiredIdRegistry",
    "MemoryExpiredRegistry",
    # Transport
    "SessionTransport",
    "ParameterTransport",
    "CookieTransport",
    "HeaderTransport",
    "create_transport",
    # Policy types
    "SessionPolicy",
    "TransportPolicy",
    "ExpiryPolicy",
    "PersistencePolicy",
    # Storage
    "SessionStore",
    "MemoryStore",
    "FileStore",
    # Middleware
    "SessionMiddleware",
    # Faults
    "SessionFault",
    "SessionWiringFault",
    "SessionStoreUnavailableFault",
    "SessionStoreCorruptedFault",
]
