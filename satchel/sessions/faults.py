"""
Satchel sessions - Fault definitions.

Session-specific faults that integrate with the Satchel fault system.

Invalid, forged or expired session identifiers are NOT faults: they are
expected on every busy site and are answered by issuing a fresh id. Only
wiring bugs and storage failures are raised.
"""

import hashlib

from satchel.faults.core import Fault, FaultDomain, Severity


def hash_session_id(session_id: str) -> str:
    """Hash session ID for logging (privacy)."""
    return f"sha256:{hashlib.sha256(session_id.encode()).hexdigest()[:16]}"


# ============================================================================
# Session Fault Base
# ============================================================================

class SessionFault(Fault):
    """Base class for session-related faults."""

    domain = FaultDomain.SESSION


# ============================================================================
# Wiring Faults
# ============================================================================

class SessionWiringFault(SessionFault):
    """
    A collaborator wired the session components incorrectly.

    Examples:
    - SessionHandle built without a session mapping
    - Handle requested from a scope the middleware never populated
    - Generator that is not callable
    """

    code = "SESSION_WIRING"
    message = "Session components wired incorrectly"
    severity = Severity.FATAL
    public = False
    retryable = False

    def __init__(self, reason: str, **kwargs):
        super().__init__(**kwargs)
        self.reason = reason
        self.message = f"Session wiring error: {reason}"
        self.args = (self.message,)


# ============================================================================
# Storage Faults
# ============================================================================

class SessionStoreUnavailableFault(SessionFault):
    """
    Session store is unavailable.

    This is a transient error - retry may succeed.
    Examples: file system error, backend connection failure.
    """

    code = "SESSION_STORE_UNAVAILABLE"
    message = "Session storage unavailable"
    severity = Severity.ERROR
    public = False
    retryable = True

    def __init__(self, store_name: str, cause: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.store_name = store_name
        self.cause = cause
        if cause:
            self.message = f"Session store '{store_name}' unavailable: {cause}"
        else:
            self.message = f"Session store '{store_name}' unavailable"
        self.args = (self.message,)


class SessionStoreCorruptedFault(SessionFault):
    """
    Session data in store is corrupted.

    Data cannot be deserialized or is structurally invalid.
    """

    code = "SESSION_STORE_CORRUPTED"
    message = "Session data corrupted"
    severity = Severity.ERROR
    public = False
    retryable = False

    def __init__(self, session_id: str | None = None, cause: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.session_id_hash = hash_session_id(session_id) if session_id else None
        self.cause = cause
        if cause:
            self.message = f"Session data corrupted: {cause}"
            self.args = (self.message,)
