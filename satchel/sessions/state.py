"""
Satchel sessions - Session identifier state machine.

SessionIdState decides which session id governs a request and remembers
which ids were retired:

    Unknown --(generated / extracted and valid)--> Active
    Active  --(expire_session_id)----------------> Expired (terminal)

A malformed, forged or retired id is an ordinary event, not an error:
extraction quietly yields None and a fresh id is generated instead.
"""

from __future__ import annotations

import inspect
import logging
import re
from typing import TYPE_CHECKING, Any, Callable, Optional, Pattern, Union

from .faults import SessionWiringFault
from .generators import default_sid_generator
from .policy import DEFAULT_SESSION_KEY, DEFAULT_SID_PATTERN
from .registry import ExpiredIdRegistry, MemoryExpiredRegistry
from .transport import ParameterTransport, SessionTransport

if TYPE_CHECKING:
    from satchel.request import Request
    from satchel.response import Response

Validator = Union[str, Pattern[str], Callable[[str], bool]]


def _accepts_argument(func: Callable[..., Any]) -> bool:
    """Whether ``func`` needs, or collects, a positional argument.

    Optional parameters keep their defaults, so ``secrets.token_hex`` is
    called bare.
    """
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False

    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if (
            param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
            and param.default is inspect.Parameter.empty
        ):
            return True
    return False


class SessionIdState:
    """
    Obtains, validates and retires session identifiers.

    Args:
        session_key: Name the id travels under (parameter or cookie name)
        sid_generator: Callable returning a fresh id. It receives the
            request when it accepts an argument.
        sid_validator: Regex (string or compiled) an incoming id must match,
            or a predicate returning True for acceptable ids
        transport: How ids are read from requests and written to responses
        expired: Registry of retired ids (a bounded in-memory one if omitted)
        logger: Optional logger

    Example:
        >>> state = SessionIdState(transport=CookieTransport(TransportPolicy()))
        >>> sid = state.get_session_id(request)
        >>> state.expire_session_id(sid)
        >>> state.check_expired(sid) is None
        True
    """

    def __init__(
        self,
        session_key: str = DEFAULT_SESSION_KEY,
        sid_generator: Optional[Callable[..., str]] = None,
        sid_validator: Optional[Validator] = None,
        transport: Optional[SessionTransport] = None,
        expired: Optional[ExpiredIdRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if sid_generator is None:
            sid_generator = default_sid_generator
        if not callable(sid_generator):
            raise SessionWiringFault("sid_generator must be callable")

        if sid_validator is None:
            sid_validator = DEFAULT_SID_PATTERN
        if isinstance(sid_validator, str):
            try:
                sid_validator = re.compile(sid_validator)
            except re.error as e:
                raise SessionWiringFault(f"sid_validator is not a valid regex: {e}")

        if isinstance(sid_validator, re.Pattern):
            self._match = sid_validator.search
        elif callable(sid_validator):
            self._match = sid_validator
        else:
            raise SessionWiringFault("sid_validator must be a regex or a predicate")

        self.session_key = session_key
        self.sid_generator = sid_generator
        self.sid_validator = sid_validator
        self.transport = transport if transport is not None else ParameterTransport()
        self.expired = expired if expired is not None else MemoryExpiredRegistry()
        self.logger = logger or logging.getLogger("satchel.sessions")

        self._generator_takes_request = _accepts_argument(sid_generator)

    # ========================================================================
    # Session ID Management
    # ========================================================================

    def get_session_id(self, request: Request) -> str:
        """Extract a usable id from ``request`` or generate a fresh one."""
        return self.extract(request) or self.generate(request)

    def get_session_id_from_request(self, request: Request) -> str | None:
        """Raw id as delivered by the transport, unvalidated."""
        return self.transport.extract(request, self.session_key)

    def extract(self, request: Request) -> str | None:
        """
        Return the request's id if it is well-formed and not expired.

        Both kinds of rejection look the same to the caller.
        """
        session_id = self.get_session_id_from_request(request)
        if session_id is None:
            return None

        if not self.validate_session_id(session_id):
            self.logger.debug(f"Rejected malformed session id: {session_id[:8]}...")
            return None

        if self.check_expired(session_id) is None:
            self.logger.debug(f"Rejected expired session id: {session_id[:8]}...")
            return None

        return session_id

    def generate(self, request: Optional[Request] = None) -> str:
        """Produce a fresh id with the configured generator."""
        if self._generator_takes_request:
            return self.sid_generator(request)
        return self.sid_generator()

    def validate_session_id(self, session_id: Any) -> bool:
        if not isinstance(session_id, str):
            return False
        return bool(self._match(session_id))

    def finalize(self, session_id: str, response: Response) -> None:
        """
        Make the id observable to the client's next request.

        Called once per request after rotation/expiry decisions are final.
        An expired id is cleared from the client instead of re-sent.
        """
        if self.is_session_expired(session_id):
            self.transport.clear(response, self.session_key)
        else:
            self.transport.inject(response, self.session_key, session_id)

    # ========================================================================
    # Session Expiration Handling
    # ========================================================================

    def expire_session_id(self, session_id: str) -> None:
        count = self.expired.add(session_id)
        if count == 1:
            self.logger.info(f"Session id expired: {session_id[:8]}...")

    def is_session_expired(self, session_id: str) -> bool:
        return session_id in self.expired

    def check_expired(self, session_id: str) -> str | None:
        """Return ``session_id`` unless it has been expired."""
        if self.is_session_expired(session_id):
            return None
        return session_id

    def __repr__(self) -> str:
        return (
            f"SessionIdState(session_key={self.session_key!r}, "
            f"transport={self.transport!r})"
        )
