import json

import httpx
import pytest

import assistant

SSE = b'data: {"choices":[{"delta":{"content":"Restock the Copacabana set."}}]}\n\ndata: [DONE]\n\n'


@pytest.fixture
def gateway(monkeypatch):
    monkeypatch.setenv("AI_GATEWAY_API_KEY", "gw-key")
    sent = []

    def use(response):
        def handler(request):
            sent.append(request)
            return response
        monkeypatch.setattr(assistant, "http_client", lambda: httpx.Client(transport=httpx.MockTransport(handler)))
    return use, sent


def test_chat_streams_gateway_response(client, mongo, gateway):
    use, sent = gateway
    use(httpx.Response(200, content=SSE, headers={"content-type": "text/event-stream"}))
    mongo["chat_message"].insert_one({"user_id": "admin", "role": "assistant", "content": "Last week: push swim sets.",
                                      "created_at": "2025-05-01T00:00:00+00:00"})

    res = client.post("/admin/assistant/chat", json={
        "messages": [{"role": "user", "content": "What should I restock?"}],
        "store_context": "Copacabana Bikini Set: 2 left",
    })

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/event-stream")
    assert res.content == SSE

    payload = json.loads(sent[0].content)
    assert payload["stream"] is True
    system = payload["messages"][0]
    assert system["role"] == "system"
    assert "Copacabana Bikini Set: 2 left" in system["content"]
    assert "Last week: push swim sets." in system["content"]
    assert payload["messages"][1] == {"role": "user", "content": "What should I restock?"}
    assert sent[0].headers["Authorization"] == "Bearer gw-key"
    assert mongo["chat_message"].count_documents({"role": "user"}) == 1


def test_product_description_mode(client, mongo, gateway):
    use, sent = gateway
    use(httpx.Response(200, content=SSE))

    client.post("/admin/assistant/chat", json={
        "messages": [{"role": "user", "content": "Ipanema One Piece in emerald"}],
        "mode": "product_description",
    })

    system = json.loads(sent[0].content)["messages"][0]["content"]
    assert system == assistant.COPYWRITER_PROMPT
    assert mongo["chat_message"].count_documents({}) == 0


@pytest.mark.parametrize("status,code,message", [
    (429, 429, "Rate limit exceeded. Please try again in a moment."),
    (402, 402, "AI credits depleted. Please add credits in Settings."),
    (503, 500, "AI service unavailable"),
])
def test_gateway_errors(client, gateway, status, code, message):
    use, _ = gateway
    use(httpx.Response(status, json={"error": "upstream"}))

    res = client.post("/admin/assistant/chat", json={"messages": [{"role": "user", "content": "hi"}]})

    assert res.status_code == code
    assert res.json() == {"error": message}


def test_missing_gateway_key(client, monkeypatch):
    monkeypatch.delenv("AI_GATEWAY_API_KEY", raising=False)

    res = client.post("/admin/assistant/chat", json={"messages": []})

    assert res.status_code == 500
    assert res.json() == {"error": "AI_GATEWAY_API_KEY is not configured"}
