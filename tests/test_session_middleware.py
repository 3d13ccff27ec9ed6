"""
Tests for SessionMiddleware: resolution, finalization, rotation, expiry,
late store, and store failures.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from satchel.sessions import (
    CookieTransport,
    MemoryStore,
    SessionHandle,
    SessionIdState,
    SessionMiddleware,
    SessionPolicy,
    SessionStoreCorruptedFault,
    SessionStoreUnavailableFault,
    TransportPolicy,
)
from satchel.sessions.handle import OPTIONS_SCOPE_KEY, SESSION_SCOPE_KEY
from tests.conftest import (
    ResponseCapture,
    make_receive,
    make_request,
    make_scope,
    session_app,
)


def noop(handle):
    pass


async def call(middleware, query_string="", headers=None):
    scope = make_scope(query_string=query_string, headers=headers)
    capture = ResponseCapture()
    await middleware(scope, make_receive(), capture)
    return scope, capture


# ============================================================================
# Resolution
# ============================================================================

class TestResolution:

    @pytest.mark.asyncio
    async def test_new_session_gets_generated_id(self, state, store):
        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        scope, capture = await call(mw)

        sid = scope[OPTIONS_SCOPE_KEY]["id"]
        assert state.validate_session_id(sid)
        assert scope[SESSION_SCOPE_KEY] == {}
        assert capture.body == sid.encode()

    @pytest.mark.asyncio
    async def test_untouched_new_session_not_stored(self, state, store):
        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        scope, _ = await call(mw)
        assert not await store.exists(scope[OPTIONS_SCOPE_KEY]["id"])

    @pytest.mark.asyncio
    async def test_written_session_is_stored(self, state, store):
        mw = SessionMiddleware(session_app(lambda h: h.set("n", 1)), store=store, state=state)
        scope, _ = await call(mw)
        assert await store.load(scope[OPTIONS_SCOPE_KEY]["id"]) == {"n": 1}

    @pytest.mark.asyncio
    async def test_existing_session_is_loaded(self, state, store):
        sid = state.generate()
        await store.save(sid, {"n": 1})
        seen = {}

        def action(handle):
            seen["n"] = handle.get("n")
            handle.set("n", handle.get("n") + 1)

        mw = SessionMiddleware(session_app(action), store=store, state=state)
        scope, _ = await call(mw, f"plack_session={sid}")

        assert seen["n"] == 1
        assert scope[OPTIONS_SCOPE_KEY]["id"] == sid
        assert await store.load(sid) == {"n": 2}

    @pytest.mark.asyncio
    async def test_existing_session_stored_without_writes(self, state, store):
        sid = state.generate()
        await store.save(sid, {"n": 1})
        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        await call(mw, f"plack_session={sid}")
        assert await store.load(sid) == {"n": 1}

    @pytest.mark.asyncio
    async def test_valid_id_unknown_to_store_gets_new_id(self, state, store):
        sid = state.generate()
        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        scope, _ = await call(mw, f"plack_session={sid}")
        assert scope[OPTIONS_SCOPE_KEY]["id"] != sid

    @pytest.mark.asyncio
    async def test_malformed_id_gets_new_id(self, state, store):
        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        scope, capture = await call(mw, "plack_session=forged")
        assert scope[OPTIONS_SCOPE_KEY]["id"] != "forged"
        assert capture.status == 200

    @pytest.mark.asyncio
    async def test_non_http_scope_passes_through(self, state, store):
        seen = []

        async def app(scope, receive, send):
            seen.append(scope)

        mw = SessionMiddleware(app, store=store, state=state)
        scope = {"type": "lifespan"}
        await mw(scope, make_receive(), ResponseCapture())
        assert seen == [scope]
        assert SESSION_SCOPE_KEY not in scope

    @pytest.mark.asyncio
    async def test_defaults_from_policy(self):
        mw = SessionMiddleware(
            session_app(noop),
            policy=SessionPolicy(transport=TransportPolicy(adapter="cookie")),
        )
        assert isinstance(mw.state.transport, CookieTransport)
        assert isinstance(mw.store, MemoryStore)


# ============================================================================
# no_store Ordering
# ============================================================================

class TestNoStore:

    @pytest.mark.asyncio
    async def test_no_store_after_write_suppresses_storage(self, state, store):
        def action(handle):
            handle.set("k", 1)
            handle.no_store()

        mw = SessionMiddleware(session_app(action), store=store, state=state)
        scope, _ = await call(mw)
        assert not await store.exists(scope[OPTIONS_SCOPE_KEY]["id"])

    @pytest.mark.asyncio
    async def test_write_after_no_store_is_stored(self, state, store):
        def action(handle):
            handle.no_store()
            handle.set("k", 1)

        mw = SessionMiddleware(session_app(action), store=store, state=state)
        scope, _ = await call(mw)
        assert await store.load(scope[OPTIONS_SCOPE_KEY]["id"]) == {"k": 1}


# ============================================================================
# Rotation
# ============================================================================

class TestChangeId:

    @pytest.mark.asyncio
    async def test_change_id_moves_data_and_retires_old_id(self, state, store):
        old = state.generate()
        await store.save(old, {"user": "alice"})

        mw = SessionMiddleware(session_app(lambda h: h.change_id()), store=store, state=state)
        scope, capture = await call(mw, f"plack_session={old}")

        new = scope[OPTIONS_SCOPE_KEY]["id"]
        assert new != old
        assert state.is_session_expired(old)
        assert not await store.exists(old)
        assert await store.load(new) == {"user": "alice"}
        # The body is rendered after finalization, so the handle sees the new id
        assert capture.body == new.encode()

    @pytest.mark.asyncio
    async def test_old_id_rejected_after_rotation(self, state, store):
        old = state.generate()
        await store.save(old, {"user": "alice"})
        mw = SessionMiddleware(session_app(lambda h: h.change_id()), store=store, state=state)
        await call(mw, f"plack_session={old}")

        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        scope, _ = await call(mw, f"plack_session={old}")
        assert scope[OPTIONS_SCOPE_KEY]["id"] != old
        assert scope[SESSION_SCOPE_KEY] == {}


# ============================================================================
# Expiry
# ============================================================================

class TestExpire:

    @pytest.mark.asyncio
    async def test_expire_is_two_steps(self, state, store):
        sid = state.generate()
        await store.save(sid, {"user": "alice"})

        mw = SessionMiddleware(session_app(lambda h: h.expire()), store=store, state=state)
        scope, _ = await call(mw, f"plack_session={sid}")

        assert scope[SESSION_SCOPE_KEY] == {}
        assert scope[OPTIONS_SCOPE_KEY]["expire"] is True
        assert not await store.exists(sid)
        assert state.is_session_expired(sid)
        assert state.extract(make_request(f"plack_session={sid}")) is None

    @pytest.mark.asyncio
    async def test_expire_wins_over_change_id(self, state, store):
        sid = state.generate()
        await store.save(sid, {"user": "alice"})

        def action(handle):
            handle.change_id()
            handle.expire()

        mw = SessionMiddleware(session_app(action), store=store, state=state)
        scope, _ = await call(mw, f"plack_session={sid}")
        assert scope[OPTIONS_SCOPE_KEY]["id"] == sid
        assert store.get_stats()["total_sessions"] == 0

    @pytest.mark.asyncio
    async def test_expire_clears_cookie(self, registry, store):
        state = SessionIdState(
            transport=CookieTransport(TransportPolicy(adapter="cookie")),
            expired=registry,
        )
        sid = state.generate()
        await store.save(sid, {"user": "alice"})

        mw = SessionMiddleware(session_app(lambda h: h.expire()), store=store, state=state)
        _, capture = await call(mw, headers=[("cookie", f"plack_session={sid}")])

        cookie = capture.header("set-cookie")
        assert cookie.startswith("plack_session=;")
        assert "Max-Age=0" in cookie

    @pytest.mark.asyncio
    async def test_slow_writer_cannot_revive_retired_id(self, state, store, clock):
        sid = state.generate()
        await store.save(sid, {"user": "alice"})
        loaded = asyncio.Event()
        logged_out = asyncio.Event()

        async def slow_app(scope, receive, send):
            handle = SessionHandle.from_scope(scope)
            loaded.set()
            await logged_out.wait()
            handle.set("cart", [1])
            await send({"type": "http.response.start", "status": 200, "headers": []})
            await send({"type": "http.response.body", "body": b""})

        async def logout():
            await loaded.wait()
            mw = SessionMiddleware(session_app(lambda h: h.expire()), store=store, state=state)
            await call(mw, f"plack_session={sid}")
            logged_out.set()

        slow = SessionMiddleware(slow_app, store=store, state=state)
        (_, capture), _ = await asyncio.gather(call(slow, f"plack_session={sid}"), logout())

        assert not await store.exists(sid)
        assert capture.status == 200

        # Once the registry forgets the id there is still nothing to resume
        clock.advance(3601)
        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        scope, _ = await call(mw, f"plack_session={sid}")
        assert scope[OPTIONS_SCOPE_KEY]["id"] != sid
        assert scope[SESSION_SCOPE_KEY] == {}


# ============================================================================
# Late Store
# ============================================================================

class TestLateStore:

    @pytest.mark.asyncio
    async def test_stored_only_after_last_chunk(self, state):
        store = MemoryStore()
        saves = []
        original_save = store.save

        async def recording_save(session_id, data):
            saves.append(session_id)
            await original_save(session_id, data)

        store.save = recording_save
        saved_during_body = []

        def action(handle):
            handle.set("k", 1)
            handle.late_store()

        mw = SessionMiddleware(session_app(action, chunks=3), store=store, state=state)
        scope = make_scope()
        capture = ResponseCapture()

        async def send(message):
            await capture(message)
            if message["type"] == "http.response.body":
                saved_during_body.append(len(saves))

        await mw(scope, make_receive(), send)

        assert saved_during_body == [0, 0, 0]
        assert saves == [scope[OPTIONS_SCOPE_KEY]["id"]]
        assert await store.load(scope[OPTIONS_SCOPE_KEY]["id"]) == {"k": 1}

    @pytest.mark.asyncio
    async def test_late_store_respects_no_store(self, state, store):
        def action(handle):
            handle.set("k", 1)
            handle.late_store()
            handle.no_store()

        mw = SessionMiddleware(session_app(action), store=store, state=state)
        scope, _ = await call(mw)
        assert not await store.exists(scope[OPTIONS_SCOPE_KEY]["id"])


# ============================================================================
# Store Failures
# ============================================================================

class TestStoreFailures:

    @pytest.mark.asyncio
    async def test_unavailable_on_load_starts_new_session(self, state):
        store = MemoryStore()
        store.load = AsyncMock(side_effect=SessionStoreUnavailableFault(store_name="mock"))
        sid = state.generate()

        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        scope, capture = await call(mw, f"plack_session={sid}")
        assert capture.status == 200
        assert scope[OPTIONS_SCOPE_KEY]["id"] != sid

    @pytest.mark.asyncio
    async def test_corrupted_on_load_starts_new_session(self, state):
        store = MemoryStore()
        store.load = AsyncMock(side_effect=SessionStoreCorruptedFault(session_id="x"))
        sid = state.generate()

        mw = SessionMiddleware(session_app(noop), store=store, state=state)
        scope, _ = await call(mw, f"plack_session={sid}")
        assert scope[OPTIONS_SCOPE_KEY]["id"] != sid

    @pytest.mark.asyncio
    async def test_unavailable_on_save_does_not_fail_response(self, state, caplog):
        store = MemoryStore()
        store.save = AsyncMock(side_effect=SessionStoreUnavailableFault(store_name="mock"))

        mw = SessionMiddleware(session_app(lambda h: h.set("k", 1)), store=store, state=state)
        with caplog.at_level("ERROR", logger="satchel.sessions"):
            _, capture = await call(mw)

        assert capture.status == 200
        assert "Failed to persist session" in caplog.text

    @pytest.mark.asyncio
    async def test_app_error_persists_nothing(self, state, store):
        async def app(scope, receive, send):
            SessionHandle.from_scope(scope).set("k", 1)
            raise RuntimeError("boom")

        mw = SessionMiddleware(app, store=store, state=state)
        with pytest.raises(RuntimeError):
            await mw(make_scope(), make_receive(), ResponseCapture())
        assert store.get_stats()["total_sessions"] == 0


# ============================================================================
# Cookie Round Trip (httpx)
# ============================================================================

async def counter_app(scope, receive, send):
    session = SessionHandle.from_scope(scope)
    if scope["path"] == "/logout":
        session.expire()
    elif scope["path"] == "/rotate":
        session.change_id()
    else:
        session.set("visits", session.get("visits", 0) + 1)

    body = str(session.get("visits", 0)).encode()
    await send({
        "type": "http.response.start",
        "status": 200,
        "headers": [(b"content-type", b"text/plain")],
    })
    await send({"type": "http.response.body", "body": body})


class TestCookieRoundTrip:

    @pytest.mark.asyncio
    async def test_visits_rotate_and_logout(self):
        app = SessionMiddleware(
            counter_app,
            policy=SessionPolicy(transport=TransportPolicy(adapter="cookie")),
        )
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as client:
            assert (await client.get("/")).text == "1"
            first_sid = client.cookies.get("plack_session")
            assert (await client.get("/")).text == "2"
            assert client.cookies.get("plack_session") == first_sid

            await client.get("/rotate")
            rotated_sid = client.cookies.get("plack_session")
            assert rotated_sid != first_sid
            assert (await client.get("/")).text == "3"

            await client.get("/logout")
            assert client.cookies.get("plack_session") is None
            assert (await client.get("/")).text == "1"

    @pytest.mark.asyncio
    async def test_replayed_expired_cookie_is_refused(self):
        app = SessionMiddleware(
            counter_app,
            policy=SessionPolicy(transport=TransportPolicy(adapter="cookie")),
        )
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as client:
            await client.get("/")
            await client.get("/")
            stolen = client.cookies.get("plack_session")
            await client.get("/logout")

        async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as attacker:
            response = await attacker.get("/", headers={"cookie": f"plack_session={stolen}"})
            assert response.text == "1"
