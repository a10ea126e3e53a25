from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from openai import AsyncOpenAI

import schemas
from auth import CurrentUser, get_optional_user
from openai_client import get_openai_client
from relay import SSE_HEADERS, open_turn_stream, relay_events, validate_tools

router = APIRouter(prefix="/api", tags=["assistant"])

@router.post("/turn_response")
async def turn_response(
    payload: schemas.TurnRequest,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    """
    Stream one assistant turn as Server-Sent Events.
    Guests may chat too; only the function tools need a signed-in user.
    Errors before the upstream stream opens come back as a 500 JSON body.
    """
    caller = user.id if user else "guest"
    print(f"[ENDPOINT] /api/turn_response called by {caller} with {len(payload.messages)} messages")

    tools = validate_tools(payload.tools)
    try:
        events = await open_turn_stream(client, payload.messages, tools, payload.previous_response_id)
    except Exception as e:
        print(f"[ERROR] Failed to open response stream: {str(e)}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return StreamingResponse(relay_events(events), media_type="text/event-stream", headers=SSE_HEADERS)
