import orjson
import pytest

from signer.app.api.limits import BodySizeLimitMiddleware

pytestmark = pytest.mark.anyio

LIMIT = 100


async def reading_app(scope, receive, send):
    while True:
        message = await receive()
        if not message.get("more_body"):
            break
    await send({"type": "http.response.start", "status": 200, "headers": []})
    await send({"type": "http.response.body", "body": b"ok"})


class Channel:
    """Feeds body chunks to the app and records what it sends back."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.pulled = 0
        self.sent = []

    async def receive(self):
        self.pulled += 1
        chunk = self.chunks.pop(0)
        return {"type": "http.request", "body": chunk, "more_body": bool(self.chunks)}

    async def send(self, message):
        self.sent.append(message)

    @property
    def status(self):
        return self.sent[0]["status"]

    @property
    def body(self):
        return b"".join(m.get("body", b"") for m in self.sent[1:])


def _scope(path="/sign", headers=()):
    return {"type": "http", "method": "POST", "path": path, "headers": list(headers)}


def _middleware(app=reading_app):
    return BodySizeLimitMiddleware(
        app,
        max_body_bytes=LIMIT,
        detail="File size exceeds 1MB limit.",
    )


async def test_declared_length_over_limit_never_reads_body():
    channel = Channel([b"x" * 500])
    scope = _scope(headers=[(b"content-length", b"500")])

    await _middleware()(scope, channel.receive, channel.send)

    assert channel.status == 413
    assert orjson.loads(channel.body) == {"error": "File size exceeds 1MB limit."}
    assert channel.pulled == 0


async def test_streamed_body_is_cut_off_once_over_limit():
    channel = Channel([b"x" * 60] * 10)

    await _middleware()(_scope(), channel.receive, channel.send)

    assert channel.status == 413
    assert channel.pulled == 2
    assert len(channel.chunks) == 8


async def test_app_response_to_aborted_read_is_replaced():
    async def forgiving_app(scope, receive, send):
        try:
            while (await receive()).get("more_body"):
                pass
            status = 200
        except Exception:
            status = 400
        await send({"type": "http.response.start", "status": status, "headers": []})
        await send({"type": "http.response.body", "body": b""})

    channel = Channel([b"x" * 60] * 3)

    await _middleware(forgiving_app)(_scope(), channel.receive, channel.send)

    assert [m["type"] for m in channel.sent] == [
        "http.response.start",
        "http.response.body",
    ]
    assert channel.status == 413


async def test_body_within_limit_passes_through():
    channel = Channel([b"x" * 50, b"x" * 50])
    scope = _scope(headers=[(b"content-length", b"100")])

    await _middleware()(scope, channel.receive, channel.send)

    assert channel.status == 200
    assert channel.body == b"ok"


async def test_other_paths_are_not_limited():
    channel = Channel([b"x" * 500])

    await _middleware()(_scope(path="/healthz"), channel.receive, channel.send)

    assert channel.status == 200
