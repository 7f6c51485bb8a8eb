import asyncio
import json
from types import SimpleNamespace

import httpx
from fastapi.testclient import TestClient

from app.llm.client import ChatCompletionClient
from app.llm.streaming import DONE_EVENT, StreamTranscript
from app.main import app
from app.rag.prompt import PromptBuilder
from app.rag.retriever import Retriever
from app.services.chat_log import ChatLogStore
from app.services.chat_service import ChatService, get_chat_service
from helpers import RecordingTransport, delta_event, sse_response

client = TestClient(app)

CHUNKS = [
    b'data: {"choices":[{"delta":{"content":"He"}}]}\n\n',
    b'data: {"choices":[{"delta":{"content":"llo"}}]}\n\ndata: [DONE]\n\n',
]


def build_service(
    llm_handler=None,
    vector_handler=None,
    redis_handler=None,
    api_key="sk-test"
):
    """ChatService wired to recording mock transports."""
    llm_transport = RecordingTransport(llm_handler or (lambda request: sse_response(*CHUNKS)))
    vector_transport = RecordingTransport(
        vector_handler or (lambda request: httpx.Response(200, json={"result": []}))
    )
    redis_transport = RecordingTransport(
        redis_handler or (lambda request: httpx.Response(200, json=[{"result": 1}] * 4))
    )

    service = ChatService(
        retriever=Retriever(url="https://vector.example", token="v", transport=vector_transport),
        prompt_builder=PromptBuilder("PERSONA"),
        llm_client=ChatCompletionClient(
            api_key=api_key,
            base_url="https://llm.example",
            transport=llm_transport,
        ),
        chat_log=ChatLogStore(url="https://redis.example", token="r", transport=redis_transport),
    )
    transports = SimpleNamespace(llm=llm_transport, vector=vector_transport, redis=redis_transport)
    return service, transports


def use(service):
    app.dependency_overrides[get_chat_service] = lambda: service


def test_stream_relays_chunks_and_logs_reply(clean_overrides):
    service, transports = build_service()
    use(service)

    response = client.post("/chat", json={"message": "hi", "history": [], "sessionId": "s1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.content == b"".join(CHUNKS) + DONE_EVENT

    pipeline = transports.redis.json_bodies()
    assert len(pipeline) == 1
    commands = pipeline[0]
    assert [c[0] for c in commands] == ["RPUSH", "RPUSH", "ZADD", "PERSIST"]
    assert commands[0][1] == "chat:s1"
    assert json.loads(commands[0][2])["content"] == "hi"
    assert json.loads(commands[1][2]) == {
        "role": "assistant",
        "content": "Hello",
        "ts": commands[2][2],
    }
    assert commands[2][1:] == ["chat:sessions", commands[2][2], "s1"]


def test_upstream_request_carries_prompt_and_generation_parameters(clean_overrides):
    service, transports = build_service(
        vector_handler=lambda request: httpx.Response(200, json={"result": [
            {"score": 0.8, "data": "问: 在吗\n悠的回答: 在"},
        ]})
    )
    use(service)
    history = [{"role": "user", "content": f"u{i}"} for i in range(12)]

    client.post("/chat", json={"message": "hello", "history": history})

    request = transports.llm.requests[0]
    assert request.url == "https://llm.example/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["stream"] is True
    assert body["max_tokens"] == 600
    assert body["temperature"] == 0.9
    assert body["messages"][0]["role"] == "system"
    assert "问: 在吗\n悠的回答: 在" in body["messages"][0]["content"]
    assert [m["content"] for m in body["messages"][1:-1]] == [f"u{i}" for i in range(2, 12)]
    assert body["messages"][-1] == {"role": "user", "content": "hello"}


def test_retrieval_timeout_falls_back_to_persona_prompt(clean_overrides):
    def timeout(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    service, transports = build_service(vector_handler=timeout)
    use(service)

    response = client.post("/chat", json={"message": "hi", "sessionId": "s1"})

    assert response.status_code == 200
    assert response.content.endswith(DONE_EVENT)
    system = json.loads(transports.llm.requests[0].content)["messages"][0]["content"]
    assert system == PromptBuilder("PERSONA").build_system_prompt("")


def test_no_session_id_means_no_log_write(clean_overrides):
    service, transports = build_service()
    use(service)

    response = client.post("/chat", json={"message": "hi"})

    assert response.content == b"".join(CHUNKS) + DONE_EVENT
    assert transports.redis.requests == []


def test_log_store_failure_does_not_change_stream(clean_overrides):
    def broken(request):
        raise httpx.ConnectError("redis down", request=request)

    for redis_handler in (broken, lambda request: httpx.Response(500, text="oops")):
        service, transports = build_service(redis_handler=redis_handler)
        use(service)

        response = client.post("/chat", json={"message": "hi", "sessionId": "s1"})

        assert response.status_code == 200
        assert response.content == b"".join(CHUNKS) + DONE_EVENT
        assert len(transports.redis.requests) == 1


def test_missing_or_empty_message_is_rejected_before_any_call(clean_overrides):
    service, transports = build_service()
    use(service)

    for body in ({}, {"message": ""}, {"message": "   "}, {"history": []}):
        response = client.post("/chat", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "message is required"

    assert transports.llm.requests == []
    assert transports.vector.requests == []
    assert transports.redis.requests == []


def test_too_long_message_is_not_reported_as_missing(clean_overrides):
    service, transports = build_service()
    use(service)

    response = client.post("/chat", json={"message": "x" * 10001})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"
    assert transports.llm.requests == []


def test_long_session_id_is_relayed_and_logged(clean_overrides):
    service, transports = build_service()
    use(service)
    session_id = "s" * 500

    response = client.post("/chat", json={"message": "hi", "sessionId": session_id})

    assert response.status_code == 200
    assert response.content == b"".join(CHUNKS) + DONE_EVENT
    commands = transports.redis.json_bodies()[0]
    assert commands[0][1] == "chat:" + session_id
    assert commands[2][3] == session_id


def test_message_is_forwarded_and_logged_verbatim(clean_overrides):
    service, transports = build_service()
    use(service)

    client.post("/chat", json={"message": "  hi there \n", "sessionId": "s1"})

    body = json.loads(transports.llm.requests[0].content)
    assert body["messages"][-1] == {"role": "user", "content": "  hi there \n"}
    commands = transports.redis.json_bodies()[0]
    assert json.loads(commands[0][2])["content"] == "  hi there \n"


def test_missing_api_key_is_a_server_error(clean_overrides):
    service, transports = build_service(api_key=None)
    use(service)

    response = client.post("/chat", json={"message": "hi"})

    assert response.status_code == 500
    assert response.json() == {"error": "Server config error"}
    assert transports.llm.requests == []
    assert transports.vector.requests == []


def test_upstream_rejection_maps_to_502_without_stream(clean_overrides):
    service, transports = build_service(
        llm_handler=lambda request: httpx.Response(401, json={"error": {"message": "bad key"}})
    )
    use(service)

    response = client.post("/chat", json={"message": "hi", "sessionId": "s1"})

    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "AI service error"
    assert "bad key" in body["detail"]
    assert transports.redis.requests == []


def test_mid_stream_drop_ends_response_and_skips_logging(clean_overrides):
    async def dropping_body():
        yield delta_event("par")
        raise httpx.RemoteProtocolError("peer closed connection")

    service, transports = build_service(
        llm_handler=lambda request: httpx.Response(200, content=dropping_body())
    )
    use(service)

    response = client.post("/chat", json={"message": "hi", "sessionId": "s1"})

    assert response.status_code == 200
    assert response.content == delta_event("par")
    assert transports.redis.requests == []


def test_wrong_method_and_preflight():
    assert client.get("/chat").status_code == 405

    response = client.options("/chat")
    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "*"


def test_browser_preflight_has_no_body():
    response = client.options(
        "/chat",
        headers={
            "Origin": "https://site.example",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_log_exchange_skips_empty_and_aborted_transcripts():
    service, transports = build_service()

    empty = StreamTranscript()
    empty.finish()
    aborted = StreamTranscript()
    aborted.feed(delta_event("x"))
    aborted.abort()

    assert asyncio.run(service.log_exchange("s1", "hi", empty)) is False
    assert asyncio.run(service.log_exchange("s1", "hi", aborted)) is False
    assert transports.redis.requests == []


def test_health_reports_integrations():
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] in ("ok", "degraded")
    assert set(body["integrations"]) == {"llm", "vector_store", "chat_log", "email"}
