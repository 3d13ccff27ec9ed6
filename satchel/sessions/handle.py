"""
Satchel sessions - Request-scoped session accessor.

SessionHandle is a thin view over two mappings the middleware places in
the ASGI scope:

- ``satchel.session``: the session data (key -> value)
- ``satchel.session.options``: lifecycle flags for this request

The handle mutates both in place; persisting them is the middleware's job.
"""

from __future__ import annotations

from typing import Any, MutableMapping

from .faults import SessionWiringFault

SESSION_SCOPE_KEY = "satchel.session"
OPTIONS_SCOPE_KEY = "satchel.session.options"

# Option flags
OPT_ID = "id"
OPT_CHANGE_ID = "change_id"
OPT_NO_STORE = "no_store"
OPT_LATE_STORE = "late_store"
OPT_EXPIRE = "expire"


class SessionHandle:
    """
    Accessor for one request's session data and lifecycle flags.

    Writes (``set``/``remove``) clear ``no_store``: a session that was
    changed should be persisted unless ``no_store()`` is called again
    afterwards. The order of those calls therefore matters.

    ``expire()`` only clears the data and flags the session. Retiring the
    identifier is a separate step performed by the middleware
    (``SessionIdState.expire_session_id``).

    Example:
        >>> handle = SessionHandle({}, {"id": "a" * 40})
        >>> handle.set("cart", [1, 2])
        >>> handle.get("cart")
        [1, 2]
        >>> handle.expire()
        >>> handle.keys()
        []
    """

    __slots__ = ("_session", "_options")

    def __init__(
        self,
        session: MutableMapping[str, Any],
        options: MutableMapping[str, Any],
    ):
        if session is None:
            raise SessionWiringFault("SessionHandle requires a session mapping")
        if options is None:
            raise SessionWiringFault("SessionHandle requires an options mapping")

        self._session = session
        self._options = options

    @classmethod
    def from_scope(cls, scope: MutableMapping[str, Any]) -> SessionHandle:
        """
        Build a handle from an ASGI scope populated by SessionMiddleware.

        Raises:
            SessionWiringFault: If the middleware did not run for this scope
        """
        if SESSION_SCOPE_KEY not in scope or OPTIONS_SCOPE_KEY not in scope:
            raise SessionWiringFault(
                "scope has no session; is SessionMiddleware installed?"
            )
        return cls(scope[SESSION_SCOPE_KEY], scope[OPTIONS_SCOPE_KEY])

    @property
    def options(self) -> MutableMapping[str, Any]:
        """Lifecycle flags shared with the middleware for this request."""
        return self._options

    @property
    def id(self) -> str | None:
        """Current session identifier."""
        return self._options.get(OPT_ID)

    # ========================================================================
    # Data Management
    # ========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        return self._session.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._options.pop(OPT_NO_STORE, None)
        self._session[key] = value

    def remove(self, key: str) -> Any:
        """Delete ``key`` if present and return its old value."""
        self._options.pop(OPT_NO_STORE, None)
        return self._session.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._session.keys())

    def dump(self) -> MutableMapping[str, Any]:
        """Return the session mapping itself (not a copy)."""
        return self._session

    def __contains__(self, key: str) -> bool:
        return key in self._session

    def __repr__(self) -> str:
        sid = self.id or ""
        return f"SessionHandle(id={sid[:8]}..., keys={len(self._session)})"

    # ========================================================================
    # Lifecycle Management
    # ========================================================================

    def change_id(self) -> None:
        """Ask the middleware to issue a new id and retire the current one."""
        self._options[OPT_CHANGE_ID] = True

    def no_store(self) -> None:
        """Ask the middleware not to persist this session."""
        self._options[OPT_NO_STORE] = True

    def late_store(self) -> None:
        """Ask the middleware to persist only after the response body is sent."""
        self._options[OPT_LATE_STORE] = True

    def expire(self) -> None:
        """Clear all session data and mark the session for termination."""
        for key in list(self._session.keys()):
            del self._session[key]
        self._options[OPT_EXPIRE] = True

    @property
    def is_expired(self) -> bool:
        return bool(self._options.get(OPT_EXPIRE))
