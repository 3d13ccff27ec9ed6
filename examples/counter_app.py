"""
Visit counter demo.

Run with:
    python examples/counter_app.py

Then open http://127.0.0.1:8000/ (count), /rotate (new id, same data)
and /logout (expire the session).
"""

import json

import uvicorn

from satchel import SessionHandle, SessionMiddleware, SessionPolicy, TransportPolicy


async def counter(scope, receive, send):
    session = SessionHandle.from_scope(scope)

    if scope["path"] == "/logout":
        session.expire()
        body = {"logged_out": True}
    else:
        if scope["path"] == "/rotate":
            session.change_id()
        visits = session.get("visits", 0) + 1
        session.set("visits", visits)
        body = {"visits": visits}

    payload = json.dumps(body).encode()
    await send({
        "type": "http.response.start",
        "status": 200,
        "headers": [
            (b"content-type", b"application/json"),
            (b"content-length", str(len(payload)).encode()),
        ],
    })
    await send({"type": "http.response.body", "body": payload})


app = SessionMiddleware(
    counter,
    # Plain HTTP on localhost, so the cookie cannot be Secure
    policy=SessionPolicy(transport=TransportPolicy(adapter="cookie", cookie_secure=False)),
)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
