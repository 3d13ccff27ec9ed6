"""
Response - Mutable view over an ASGI ``http.response.start`` message.

Session transports write the session identifier here (cookie or header)
before the middleware forwards the start message to the server.
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import formatdate
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .faults import Fault, FaultDomain, Severity


class InvalidHeaderError(Fault):
    """Header name or value would allow response splitting."""
    code = "INVALID_HEADER"
    message = "Invalid header"
    domain = FaultDomain.IO
    severity = Severity.ERROR
    retryable = False


class Response:
    """
    Status and headers of an outgoing response.

    Header names are stored lower-case. A header may hold several values
    (e.g. ``set-cookie``), kept as a list.
    """

    def __init__(
        self,
        status: int = 200,
        headers: Optional[Mapping[str, Union[str, Sequence[str]]]] = None,
    ):
        self.status = status
        self._headers: Dict[str, Union[str, List[str]]] = {}
        self._extra: Dict[str, Any] = {}
        if headers:
            for key, value in headers.items():
                if isinstance(value, (list, tuple)):
                    self._headers[key.lower()] = list(value)
                else:
                    self._headers[key.lower()] = value

    @classmethod
    def from_start_message(cls, message: Mapping[str, Any]) -> Response:
        """Build from an ASGI ``http.response.start`` message."""
        response = cls(status=message.get("status", 200))
        for raw_name, raw_value in message.get("headers", []):
            name = raw_name.decode("latin-1") if isinstance(raw_name, bytes) else raw_name
            value = raw_value.decode("latin-1") if isinstance(raw_value, bytes) else raw_value
            response._append(name.lower(), value)
        response._extra = {
            k: v for k, v in message.items() if k not in ("type", "status", "headers")
        }
        return response

    def to_start_message(self) -> Dict[str, Any]:
        """Render as an ASGI ``http.response.start`` message."""
        return {
            **self._extra,
            "type": "http.response.start",
            "status": self.status,
            "headers": self._prepare_headers(),
        }

    @property
    def headers(self) -> Dict[str, Union[str, List[str]]]:
        return self._headers

    # ========================================================================
    # Header Helpers
    # ========================================================================

    def set_header(self, name: str, value: str) -> None:
        """Set header (replaces existing)."""
        self._validate_header(name, value)
        self._headers[name.lower()] = value

    def add_header(self, name: str, value: str) -> None:
        """Add header (supports multiple values)."""
        self._validate_header(name, value)
        self._append(name.lower(), value)

    def unset_header(self, name: str) -> None:
        """Remove header."""
        self._headers.pop(name.lower(), None)

    def get_all(self, name: str) -> List[str]:
        """All values of a header, in insertion order."""
        value = self._headers.get(name.lower())
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    def _append(self, name_lower: str, value: str) -> None:
        if name_lower in self._headers:
            existing = self._headers[name_lower]
            if isinstance(existing, list):
                existing.append(value)
            else:
                self._headers[name_lower] = [existing, value]
        else:
            self._headers[name_lower] = value

    @staticmethod
    def _validate_header(name: str, value: str) -> None:
        if any(c in name for c in "\r\n:") or any(c in value for c in "\r\n"):
            raise InvalidHeaderError(
                message=f"Header {name!r} contains forbidden characters",
                metadata={"header": name},
            )

    def _prepare_headers(self) -> List[tuple]:
        """Convert to ASGI list of byte tuples."""
        headers_list = []
        for name, value in self._headers.items():
            name_bytes = name.encode("latin-1")
            if isinstance(value, list):
                for v in value:
                    headers_list.append((name_bytes, v.encode("latin-1")))
            else:
                headers_list.append((name_bytes, value.encode("latin-1")))
        return headers_list

    # ========================================================================
    # Cookie Helpers
    # ========================================================================

    def set_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: Optional[int] = None,
        expires: Optional[datetime] = None,
        path: str = "/",
        domain: Optional[str] = None,
        secure: bool = True,
        httponly: bool = True,
        samesite: Optional[str] = "Lax",
    ) -> None:
        """
        Set a cookie.

        Args:
            name: Cookie name
            value: Cookie value
            max_age: Max age in seconds
            expires: Expiration datetime
            path: Cookie path
            domain: Cookie domain
            secure: Secure flag
            httponly: HttpOnly flag
            samesite: SameSite policy (Strict, Lax, None)
        """
        cookie_parts = [f"{name}={value}"]

        if max_age is not None:
            cookie_parts.append(f"Max-Age={max_age}")

        if expires:
            cookie_parts.append(f"Expires={formatdate(expires.timestamp(), usegmt=True)}")

        cookie_parts.append(f"Path={path}")

        if domain:
            cookie_parts.append(f"Domain={domain}")

        if secure:
            cookie_parts.append("Secure")

        if httponly:
            cookie_parts.append("HttpOnly")

        if samesite:
            cookie_parts.append(f"SameSite={samesite.capitalize()}")

        self.add_header("set-cookie", "; ".join(cookie_parts))

    def delete_cookie(
        self,
        name: str,
        path: str = "/",
        domain: Optional[str] = None,
        *,
        secure: bool = False,
        httponly: bool = False,
        samesite: Optional[str] = None,
    ) -> None:
        """Delete a cookie by setting Max-Age=0."""
        self.set_cookie(
            name,
            "",
            max_age=0,
            expires=datetime.fromtimestamp(0, tz=timezone.utc),
            path=path,
            domain=domain,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        )

    def __repr__(self) -> str:
        return f"Response(status={self.status}, headers={len(self._headers)})"
