"""
Request - Minimal ASGI request view for session handling.

Provides read-only, lazily parsed access to the parts of an ASGI HTTP
scope that session transports read:
- Query parameters
- Headers (case-insensitive)
- Cookies
"""

from __future__ import annotations

from http.cookies import CookieError, SimpleCookie
from typing import Any, Dict, List, Mapping, MutableMapping, Optional
from urllib.parse import parse_qsl


class Request:
    """
    Read-only view over an ASGI HTTP scope.

    The scope is kept by reference, so values the middleware stores in it
    (such as the session) are visible to the application.
    """

    __slots__ = ("scope", "_query_params", "_headers", "_cookies")

    def __init__(self, scope: MutableMapping[str, Any]):
        self.scope = scope
        self._query_params: Optional[Dict[str, List[str]]] = None
        self._headers: Optional[Dict[str, str]] = None
        self._cookies: Optional[Dict[str, str]] = None

    @property
    def method(self) -> str:
        return self.scope.get("method", "GET")

    @property
    def path(self) -> str:
        return self.scope.get("path", "/")

    @property
    def query_string(self) -> str:
        raw = self.scope.get("query_string", b"")
        if isinstance(raw, bytes):
            return raw.decode("latin-1")
        return raw

    # ========================================================================
    # Query Parameters
    # ========================================================================

    @property
    def query_params(self) -> Dict[str, List[str]]:
        """Parsed query parameters; repeated names keep every value in order."""
        if self._query_params is None:
            params: Dict[str, List[str]] = {}
            for name, value in parse_qsl(self.query_string, keep_blank_values=True):
                params.setdefault(name, []).append(value)
            self._query_params = params
        return self._query_params

    def param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value of a query parameter."""
        values = self.query_params.get(name)
        if not values:
            return default
        return values[0]

    # ========================================================================
    # Headers
    # ========================================================================

    @property
    def headers(self) -> Mapping[str, str]:
        """Headers keyed by lower-case name; repeated headers are comma-joined."""
        if self._headers is None:
            headers: Dict[str, str] = {}
            for raw_name, raw_value in self.scope.get("headers", []):
                name = raw_name.decode("latin-1").lower()
                value = raw_value.decode("latin-1")
                if name in headers:
                    # Cookie headers are joined with "; " per RFC 6265
                    sep = "; " if name == "cookie" else ", "
                    headers[name] = f"{headers[name]}{sep}{value}"
                else:
                    headers[name] = value
            self._headers = headers
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single header (case-insensitive)."""
        return self.headers.get(name.lower(), default)

    # ========================================================================
    # Cookies
    # ========================================================================

    @property
    def cookies(self) -> Mapping[str, str]:
        """Parsed cookies; a malformed Cookie header yields no cookies."""
        if self._cookies is None:
            cookie_header = self.header("cookie", "")
            cookies: Dict[str, str] = {}
            if cookie_header:
                cookie = SimpleCookie()
                try:
                    cookie.load(cookie_header)
                except CookieError:
                    cookie = SimpleCookie()
                cookies = {key: morsel.value for key, morsel in cookie.items()}
            self._cookies = cookies
        return self._cookies

    def cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single cookie value."""
        return self.cookies.get(name, default)

    def __repr__(self) -> str:
        return f"Request({self.method} {self.path})"
