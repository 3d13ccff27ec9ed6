"""
Satchel sessions - Policy types.

Declarative settings for the session components:
- TransportPolicy: How the session id travels
- ExpiryPolicy: How long retired ids are remembered
- PersistencePolicy: Which store keeps session data
- SessionPolicy: Master policy, builds configured collaborators
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from .state import SessionIdState
    from .store import SessionStore


DEFAULT_SESSION_KEY = "plack_session"
DEFAULT_SID_PATTERN = r"\A[0-9a-f]{40}\Z"


# ============================================================================
# Sub-Policies
# ============================================================================

@dataclass
class TransportPolicy:
    """
    Controls how session ids travel across the network.

    The parameter and cookie adapters name the parameter/cookie after the
    state's ``session_key``; the header adapter uses ``header_name``.

    Attributes:
        adapter: Transport adapter type
        cookie_httponly: HttpOnly flag (prevents XSS)
        cookie_secure: Secure flag (HTTPS only)
        cookie_samesite: SameSite policy (CSRF protection)
        cookie_path: Cookie path
        cookie_domain: Cookie domain
        cookie_max_age: Cookie lifetime in seconds (None = browser session)
        header_name: Header name (if adapter=header)

    Example:
        >>> policy = TransportPolicy(adapter="cookie", cookie_samesite="strict")
    """

    adapter: Literal["param", "cookie", "header"] = "param"

    # Cookie options
    cookie_httponly: bool = True
    cookie_secure: bool = True
    cookie_samesite: Literal["strict", "lax", "none"] | None = "lax"
    cookie_path: str = "/"
    cookie_domain: str | None = None
    cookie_max_age: int | None = None

    # Header options
    header_name: str = "X-Session-ID"


@dataclass
class ExpiryPolicy:
    """
    Bounds for the registry of retired session ids.

    Attributes:
        max_entries: Maximum ids remembered (None = unbounded)
        ttl: Seconds an id stays rejected (None = forever)
    """

    max_entries: int | None = 100_000
    ttl: float | None = 86_400.0


@dataclass
class PersistencePolicy:
    """
    Selects and sizes the session data store.

    Attributes:
        store: Store kind
        directory: Directory for the file store
        max_sessions: Capacity of the memory store (LRU eviction)
        ttl: Seconds a stored session lives without being saved again
    """

    store: Literal["memory", "file"] = "memory"
    directory: str | None = None
    max_sessions: int = 10_000
    ttl: float | None = None


# ============================================================================
# Master Policy
# ============================================================================

@dataclass
class SessionPolicy:
    """
    Master policy that defines how sessions behave.

    Attributes:
        session_key: Name of the parameter/cookie carrying the id
        generator: Named id generator ("default" or "secure")
        validator: Regex an incoming id must match
        transport: Transport sub-policy
        expiry: Retired-id registry sub-policy
        persistence: Store sub-policy

    Example:
        >>> policy = SessionPolicy(transport=TransportPolicy(adapter="cookie"))
        >>> state = policy.build_state()
        >>> store = policy.build_store()
    """

    session_key: str = DEFAULT_SESSION_KEY
    generator: Literal["default", "secure"] = "default"
    validator: str = DEFAULT_SID_PATTERN
    transport: TransportPolicy = field(default_factory=TransportPolicy)
    expiry: ExpiryPolicy = field(default_factory=ExpiryPolicy)
    persistence: PersistencePolicy = field(default_factory=PersistencePolicy)

    def build_state(self) -> SessionIdState:
        """Create a SessionIdState configured by this policy."""
        from .generators import GENERATORS
        from .registry import MemoryExpiredRegistry
        from .state import SessionIdState
        from .transport import create_transport

        if self.generator not in GENERATORS:
            raise ValueError(f"Unknown session id generator: {self.generator}")

        return SessionIdState(
            session_key=self.session_key,
            sid_generator=GENERATORS[self.generator],
            sid_validator=self.validator,
            transport=create_transport(self.transport),
            expired=MemoryExpiredRegistry(
                max_entries=self.expiry.max_entries,
                ttl=self.expiry.ttl,
            ),
        )

    def build_store(self) -> SessionStore:
        """Create the session store selected by this policy."""
        from .store import FileStore, MemoryStore

        if self.persistence.store == "memory":
            return MemoryStore(
                max_sessions=self.persistence.max_sessions,
                ttl=self.persistence.ttl,
            )
        elif self.persistence.store == "file":
            if not self.persistence.directory:
                raise ValueError("File store requires persistence.directory")
            return FileStore(self.persistence.directory)
        else:
            raise ValueError(f"Unsupported session store: {self.persistence.store}")

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> SessionPolicy:
        """
        Create policy from configuration dictionary.

        Unknown keys are ignored; missing keys take the dataclass defaults.
        """
        defaults = cls()

        transport_config = config.get("transport", {})
        transport = TransportPolicy(
            adapter=transport_config.get("adapter", "param"),
            cookie_httponly=transport_config.get("cookie_httponly", True),
            cookie_secure=transport_config.get("cookie_secure", True),
            cookie_samesite=transport_config.get("cookie_samesite", "lax"),
            cookie_path=transport_config.get("cookie_path", "/"),
            cookie_domain=transport_config.get("cookie_domain"),
            cookie_max_age=transport_config.get("cookie_max_age"),
            header_name=transport_config.get("header_name", "X-Session-ID"),
        )

        expiry_config = config.get("expiry", {})
        expiry = ExpiryPolicy(
            max_entries=expiry_config.get("max_entries", defaults.expiry.max_entries),
            ttl=expiry_config.get("ttl", defaults.expiry.ttl),
        )

        persistence_config = config.get("persistence", {})
        persistence = PersistencePolicy(
            store=persistence_config.get("store", "memory"),
            directory=persistence_config.get("directory"),
            max_sessions=persistence_config.get("max_sessions", defaults.persistence.max_sessions),
            ttl=persistence_config.get("ttl"),
        )

        return cls(
            session_key=config.get("session_key", DEFAULT_SESSION_KEY),
            generator=config.get("generator", "default"),
            validator=config.get("validator", DEFAULT_SID_PATTERN),
            transport=transport,
            expiry=expiry,
            persistence=persistence,
        )
