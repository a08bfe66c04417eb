"""
Admin assistant backed by a chat-completions gateway

Two modes: product description copywriting, and a store analyst that sees the
store context passed by the dashboard plus its recent conversation memory.
"""
import os
from typing import Any, Dict, Iterator, List, Optional

import httpx
import structlog

from database import db, now_iso
from schemas import ChatMessage

logger = structlog.get_logger(__name__)

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_MODEL = "google/gemini-3-pro-preview"
MEMORY_LIMIT = 30
MEMORY_SNIPPET = 500

COPYWRITER_PROMPT = """You are a luxury copywriter for a premium Brazilian swimwear brand.
Write compelling, elegant product descriptions that:
- Emphasize premium Brazilian fabrics and craftsmanship
- Use sophisticated language fitting a luxury beach brand
- Keep descriptions 2-3 sentences max
- Highlight comfort, fit, and style
Only return the description text, nothing else."""

ANALYST_PROMPT = """You are the senior business strategist and data analyst embedded in the admin dashboard of a luxury Brazilian swimwear brand.

STORE INTELLIGENCE BRIEF:
{store_context}
{memory}

Cross-reference products, customers and inventory when answering. Only cite numbers present in the brief; derived metrics (percentages, averages) are fine.
Use markdown, lead with the direct answer, keep it to 2-5 paragraphs and close complex analyses with a short "Next Steps" section."""


class AssistantError(Exception):
    def __init__(self, detail: str, status_code: int = 500):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


def http_client() -> httpx.Client:
    return httpx.Client(timeout=httpx.Timeout(60.0, connect=10.0))


def load_memory(user_id: str) -> str:
    if db is None:
        return ""
    try:
        past = list(db["chat_message"].find({"user_id": user_id}).sort("created_at", -1).limit(MEMORY_LIMIT))
    except Exception as e:
        logger.error("assistant.memory_failed", user_id=user_id, error=str(e))
        return ""
    if not past:
        return ""
    lines = [f"[{m.get('role', '').upper()}]: {m.get('content', '')[:MEMORY_SNIPPET]}" for m in reversed(past)]
    return "\n\n=== CONVERSATION MEMORY ===\n" + "\n".join(lines) + "\n=== END MEMORY ===\n"


def remember(user_id: str, role: str, content: str) -> None:
    if db is None or not content:
        return
    try:
        message = ChatMessage(user_id=user_id, role=role, content=content)
        db["chat_message"].insert_one({**message.model_dump(), "created_at": now_iso()})
    except Exception as e:
        logger.error("assistant.remember_failed", user_id=user_id, error=str(e))


def system_prompt(mode: Optional[str], store_context: Optional[str], user_id: str) -> str:
    if mode == "product_description":
        return COPYWRITER_PROMPT
    return ANALYST_PROMPT.format(store_context=store_context or "No store data available.", memory=load_memory(user_id))


def stream_chat(messages: List[Dict[str, Any]], store_context: Optional[str] = None,
                mode: Optional[str] = None, user_id: str = "admin") -> Iterator[bytes]:
    """Open the upstream stream and return an iterator over its SSE bytes.

    Upstream errors are raised before any byte is yielded so the caller can
    still answer with a JSON error.
    """
    api_key = os.getenv("AI_GATEWAY_API_KEY")
    if not api_key:
        raise AssistantError("AI_GATEWAY_API_KEY is not configured")

    prompt = system_prompt(mode, store_context, user_id)
    if mode != "product_description" and messages and messages[-1].get("role") == "user":
        remember(user_id, "user", str(messages[-1].get("content", "")))

    client = http_client()
    request = client.build_request(
        "POST",
        os.getenv("AI_GATEWAY_URL", DEFAULT_GATEWAY_URL),
        headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        json={
            "model": os.getenv("AI_MODEL", DEFAULT_MODEL),
            "messages": [{"role": "system", "content": prompt}, *messages],
            "stream": True,
        },
    )
    try:
        response = client.send(request, stream=True)
    except httpx.HTTPError as e:
        client.close()
        logger.error("assistant.gateway_unreachable", error=str(e))
        raise AssistantError("AI service unavailable")

    if response.status_code != 200:
        body = response.read().decode("utf-8", "replace")
        response.close()
        client.close()
        if response.status_code == 429:
            raise AssistantError("Rate limit exceeded. Please try again in a moment.", status_code=429)
        if response.status_code == 402:
            raise AssistantError("AI credits depleted. Please add credits in Settings.", status_code=402)
        logger.error("assistant.gateway_error", status_code=response.status_code, body=body[:500])
        raise AssistantError("AI service unavailable")

    def relay() -> Iterator[bytes]:
        try:
            for chunk in response.iter_bytes():
                yield chunk
        finally:
            response.close()
            client.close()

    return relay()
