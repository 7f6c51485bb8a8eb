"""Fakes shared by the test modules."""

import json
from typing import Callable, List

import httpx


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def json_bodies(self) -> list:
        return [json.loads(r.content) for r in self.requests]


def sse_response(*chunks: bytes, status_code: int = 200) -> httpx.Response:
    """A streamed response delivering the given chunks as separate reads."""

    async def body():
        for chunk in chunks:
            yield chunk

    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        content=body(),
    )


def delta_event(content: str) -> bytes:
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")
