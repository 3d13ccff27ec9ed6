"""
Satchel sessions - ASGI session middleware.

Wires SessionIdState (which id?) and a SessionStore (which data?) around
an ASGI application, once per HTTP request:

1. Detection - extract a valid, unexpired id from the request
2. Resolution - load its data from the store, or start a new session
3. Binding - expose data and options in the scope for SessionHandle
4. Finalization - on ``http.response.start``: expire or rotate the id,
   persist the data, and let the state write the id to the response
5. Late store - persist after the last body chunk when requested

Retiring a session is always two explicit steps here: the handle clears
the data and sets ``expire``; this middleware then deletes the stored data
and calls ``SessionIdState.expire_session_id``.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, MutableMapping, Optional

from satchel.request import Request
from satchel.response import Response

from .faults import SessionStoreCorruptedFault, SessionStoreUnavailableFault
from .handle import (
    OPT_CHANGE_ID,
    OPT_EXPIRE,
    OPT_ID,
    OPT_LATE_STORE,
    OPT_NO_STORE,
    OPTIONS_SCOPE_KEY,
    SESSION_SCOPE_KEY,
)
from .policy import SessionPolicy
from .state import SessionIdState
from .store import SessionStore

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]


class SessionMiddleware:
    """
    ASGI middleware providing per-request sessions.

    Args:
        app: Wrapped ASGI application
        store: Session data store (built from ``policy`` if omitted)
        state: Session id state (built from ``policy`` if omitted)
        policy: Policy used to build missing collaborators
        logger: Optional logger

    Example:
        >>> app = SessionMiddleware(
        ...     app,
        ...     policy=SessionPolicy(transport=TransportPolicy(adapter="cookie")),
        ... )

    Inside the application:
        >>> session = SessionHandle.from_scope(scope)
        >>> session.set("visits", session.get("visits", 0) + 1)
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        store: Optional[SessionStore] = None,
        state: Optional[SessionIdState] = None,
        policy: Optional[SessionPolicy] = None,
        logger: Optional[logging.Logger] = None,
    ):
        policy = policy or SessionPolicy()
        self.app = app
        self.state = state if state is not None else policy.build_state()
        self.store = store if store is not None else policy.build_store()
        self.logger = logger or logging.getLogger("satchel.sessions")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        session_id, session = await self._load_session(request)

        if session_id is None or session is None:
            session_id = self.state.generate(request)
            session = {}
            # An untouched new session is not worth persisting
            options = {OPT_ID: session_id, OPT_NO_STORE: True}
        else:
            options = {OPT_ID: session_id}

        scope[SESSION_SCOPE_KEY] = session
        scope[OPTIONS_SCOPE_KEY] = options

        finalized = False

        async def send_wrapper(message: Message) -> None:
            nonlocal finalized

            if message["type"] == "http.response.start":
                response = Response.from_start_message(message)
                await self.finalize(scope, response)
                finalized = True
                message = response.to_start_message()

            await send(message)

            if (
                finalized
                and message["type"] == "http.response.body"
                and not message.get("more_body", False)
                and self._wants_late_store(options)
            ):
                await self._commit(scope)

        await self.app(scope, receive, send_wrapper)

    # ========================================================================
    # Detection + Resolution
    # ========================================================================

    async def _load_session(
        self, request: Request
    ) -> tuple[Optional[str], Optional[dict[str, Any]]]:
        session_id = self.state.extract(request)
        if session_id is None:
            return None, None

        try:
            session = await self.store.load(session_id)
        except SessionStoreUnavailableFault as e:
            self.logger.error(f"Session store unavailable, starting new session: {e}")
            return None, None
        except SessionStoreCorruptedFault as e:
            self.logger.warning(f"Discarding corrupted session {session_id[:8]}...: {e}")
            return None, None

        if session is None:
            return None, None

        return session_id, session

    # ========================================================================
    # Finalization
    # ========================================================================

    async def finalize(self, scope: Scope, response: Response) -> None:
        """
        Apply the request's session decisions and emit the id.

        Runs once per request, before the response headers are sent.
        """
        options = scope[OPTIONS_SCOPE_KEY]

        if options.get(OPT_EXPIRE):
            await self.expire_session(options[OPT_ID], response)
            return

        if options.get(OPT_CHANGE_ID):
            await self.change_id(scope)

        if not options.get(OPT_NO_STORE) and not options.get(OPT_LATE_STORE):
            await self._commit(scope)

        self.state.finalize(options[OPT_ID], response)

    async def expire_session(self, session_id: str, response: Response) -> None:
        """Second step of expiry: drop stored data, retire the id, clear the client."""
        await self._delete(session_id)
        self.state.expire_session_id(session_id)
        self.state.finalize(session_id, response)

    async def change_id(self, scope: Scope) -> None:
        """Retire the current id and bind the session to a fresh one."""
        options = scope[OPTIONS_SCOPE_KEY]
        old_id = options[OPT_ID]

        await self._delete(old_id)
        self.state.expire_session_id(old_id)
        options[OPT_ID] = self.state.generate(Request(scope))

        self.logger.info(f"Session id rotated: {old_id[:8]}... -> {options[OPT_ID][:8]}...")

    @staticmethod
    def _wants_late_store(options: MutableMapping[str, Any]) -> bool:
        return bool(
            options.get(OPT_LATE_STORE)
            and not options.get(OPT_NO_STORE)
            and not options.get(OPT_EXPIRE)
        )

    async def _commit(self, scope: Scope) -> None:
        session_id = scope[OPTIONS_SCOPE_KEY][OPT_ID]
        if self.state.is_session_expired(session_id):
            # Another request retired this id after we loaded it
            self.logger.debug(f"Skipping save for retired session id {session_id[:8]}...")
            return

        try:
            await self.store.save(session_id, scope[SESSION_SCOPE_KEY])
        except SessionStoreUnavailableFault as e:
            # Don't fail the response, but make the loss visible
            self.logger.error(f"Failed to persist session {session_id[:8]}...: {e}")

    async def _delete(self, session_id: str) -> None:
        try:
            await self.store.delete(session_id)
        except SessionStoreUnavailableFault as e:
            self.logger.error(f"Failed to delete session {session_id[:8]}...: {e}")
