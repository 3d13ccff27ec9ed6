"""
Satchel sessions - Transport adapters.

Handles session id extraction and injection across different transports:
- ParameterTransport: Query parameter (caller propagates the id itself)
- CookieTransport: HTTP cookies (most common)
- HeaderTransport: Custom headers (APIs, mobile apps)

Transports are interchangeable; SessionIdState delegates to whichever one
it was composed with.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from satchel.request import Request
    from satchel.response import Response
    from .policy import TransportPolicy


# ============================================================================
# SessionTransport Protocol
# ============================================================================

class SessionTransport(Protocol):
    """
    Transport interface for session id delivery.

    Transports are responsible for:
    - Reading the raw session id from a request
    - Writing the session id to a response
    - Clearing the session id from a response

    Transports do NOT validate ids or track expiry (that's SessionIdState).
    """

    def extract(self, request: Request, key: str) -> str | None:
        """
        Read the raw session id from a request.

        Args:
            request: Incoming request
            key: Configured session key

        Returns:
            Session id string if present, None otherwise
        """
        ...

    def inject(self, response: Response, key: str, session_id: str) -> None:
        """Make ``session_id`` observable to the client's next request."""
        ...

    def clear(self, response: Response, key: str) -> None:
        """Tell the client to forget its session id."""
        ...


# ============================================================================
# ParameterTransport - Request Parameters
# ============================================================================

class ParameterTransport:
    """
    Parameter-based session transport.

    Reads the id from the query parameter named by the session key. It
    does not write anything: the application is responsible for passing
    the id along in the links and forms it renders.
    """

    def extract(self, request: Request, key: str) -> str | None:
        return request.param(key)

    def inject(self, response: Response, key: str, session_id: str) -> None:
        pass

    def clear(self, response: Response, key: str) -> None:
        pass

    def __repr__(self) -> str:
        return "ParameterTransport()"


# ============================================================================
# CookieTransport - HTTP Cookies
# ============================================================================

class CookieTransport:
    """
    Cookie-based session transport.

    The cookie is named after the session key.

    Features:
    - HttpOnly flag (XSS protection)
    - Secure flag (HTTPS only)
    - SameSite policy (CSRF protection)
    - Configurable path, domain and Max-Age

    Example:
        >>> transport = CookieTransport(TransportPolicy(adapter="cookie"))
        >>> transport.inject(response, "plack_session", sid)
    """

    def __init__(self, policy: TransportPolicy):
        self.policy = policy

    def extract(self, request: Request, key: str) -> str | None:
        return request.cookie(key)

    def inject(self, response: Response, key: str, session_id: str) -> None:
        response.set_cookie(
            key,
            session_id,
            max_age=self.policy.cookie_max_age,
            path=self.policy.cookie_path,
            domain=self.policy.cookie_domain,
            secure=self.policy.cookie_secure,
            httponly=self.policy.cookie_httponly,
            samesite=self.policy.cookie_samesite,
        )

    def clear(self, response: Response, key: str) -> None:
        # Browsers only replace a cookie when path and domain match
        response.delete_cookie(
            key,
            path=self.policy.cookie_path,
            domain=self.policy.cookie_domain,
            secure=self.policy.cookie_secure,
            httponly=self.policy.cookie_httponly,
            samesite=self.policy.cookie_samesite,
        )

    def __repr__(self) -> str:
        return f"CookieTransport(path={self.policy.cookie_path!r})"


# ============================================================================
# HeaderTransport - Custom Header
# ============================================================================

class HeaderTransport:
    """
    Header-based session transport.

    Used for:
    - API clients
    - Mobile app sessions
    - Service-to-service communication

    The header name comes from the policy, not from the session key.
    """

    def __init__(self, policy: TransportPolicy):
        self.policy = policy
        self.header_name = policy.header_name

    def extract(self, request: Request, key: str) -> str | None:
        return request.header(self.header_name)

    def inject(self, response: Response, key: str, session_id: str) -> None:
        response.set_header(self.header_name, session_id)

    def clear(self, response: Response, key: str) -> None:
        response.unset_header(self.header_name)

    def __repr__(self) -> str:
        return f"HeaderTransport(header_name={self.header_name!r})"


# ============================================================================
# Transport Factory
# ============================================================================

def create_transport(
    policy: TransportPolicy,
) -> ParameterTransport | CookieTransport | HeaderTransport:
    """
    Create transport adapter from policy.

    Raises:
        ValueError: If adapter type is unsupported
    """
    if policy.adapter == "param":
        return ParameterTransport()
    elif policy.adapter == "cookie":
        return CookieTransport(policy)
    elif policy.adapter == "header":
        return HeaderTransport(policy)
    else:
        raise ValueError(f"Unsupported transport adapter: {policy.adapter}")
