"""
Streaming relay: forwards Responses API events to the browser as Server-Sent Events.
"""

from openai import AsyncOpenAI, RateLimitError
from typing import Any, AsyncIterator, Dict, List, Optional
import json
import logging

from config import settings

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

def _has_vector_store(tool: Dict[str, Any]) -> bool:
    ids = tool.get("vector_store_ids")
    return (
        isinstance(ids, list)
        and len(ids) > 0
        and isinstance(ids[0], str)
        and ids[0].strip() != ""
    )

def validate_tools(tools: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Drop file_search tools without a usable vector store ID; upstream rejects them."""
    valid = []
    for tool in tools or []:
        if tool.get("type") == "file_search" and not _has_vector_store(tool):
            logger.warning("Dropping file_search tool with empty vector_store_ids")
            continue
        valid.append(tool)
    return valid

async def open_turn_stream(
    client: AsyncOpenAI,
    messages: List[Dict[str, Any]],
    tools: List[Dict[str, Any]],
    previous_response_id: Optional[str] = None,
):
    """
    Start one streaming response.
    A rate limit on the primary model is retried once on the fallback model.
    """
    request: Dict[str, Any] = {
        "model": settings.MODEL,
        "input": messages,
        "tools": tools,
        "stream": True,
        "parallel_tool_calls": False,
    }
    if previous_response_id:
        request["previous_response_id"] = previous_response_id

    try:
        return await client.responses.create(**request)
    except RateLimitError:
        logger.warning(f"Rate limited on {settings.MODEL}, retrying with {settings.FALLBACK_MODEL}")
        request["model"] = settings.FALLBACK_MODEL
        return await client.responses.create(**request)

def event_payload(event: Any) -> Dict[str, Any]:
    """SDK event (or plain dict) as {"event": type, "data": event}."""
    if hasattr(event, "model_dump"):
        data = event.model_dump(mode="json", exclude_none=True)
    else:
        data = dict(event)
    return {"event": data.get("type"), "data": data}

def format_sse(event: Any) -> str:
    return f"data: {json.dumps(event_payload(event))}\n\n"

async def relay_events(stream: AsyncIterator[Any]) -> AsyncIterator[str]:
    """Re-emit upstream events one by one; an upstream error ends the stream."""
    count = 0
    try:
        async for event in stream:
            count += 1
            yield format_sse(event)
    except Exception as e:
        logger.error(f"[ERROR] Stream failed after {count} events: {e}")
        raise
    logger.info(f"Stream finished after {count} events")
