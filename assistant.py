"""
Assistant stream accumulator.

Consumes the /api/turn_response event stream and builds chat messages and
tool-call records from it, executing function calls locally and starting a
follow-up turn whenever a function output has been added. Finished assistant
messages are handed to a persistence callback.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple
import json
import logging

import httpx
import json_repair

from prompts import get_developer_prompt
from tool_handler import FunctionsClient, handle_tool
from tools import get_tools

logger = logging.getLogger(__name__)

CHAIN_PREFIX = "__CHAIN__:"
USE_PREV_PREFIX = "__USE_PREV__:"
DONE_MARKER = "[DONE]"

@dataclass
class MessageItem:
    id: str
    role: str
    text: str = ""
    annotations: List[Any] = field(default_factory=list)
    type: str = "message"

@dataclass
class ToolCallItem:
    id: str
    tool_type: str  # function_call | web_search_call | file_search_call
    status: str = "in_progress"
    name: Optional[str] = None
    call_id: Optional[str] = None
    arguments: str = ""
    parsed_arguments: Any = field(default_factory=dict)
    output: Optional[str] = None
    type: str = "tool_call"

@dataclass
class ConversationState:
    """What the browser kept in its conversation store."""
    chat_messages: List[Any] = field(default_factory=list)
    conversation_items: List[Dict[str, Any]] = field(default_factory=list)
    previous_response_id: Optional[str] = None
    last_response_id: Optional[str] = None
    persisted_message_ids: Set[str] = field(default_factory=set)

    def add_user_message(self, text: str):
        self.conversation_items.append({"role": "user", "content": text})
        self.chat_messages.append(MessageItem(id=f"user_{len(self.chat_messages)}", role="user", text=text))

    def find(self, item_id: str) -> Optional[Any]:
        for message in self.chat_messages:
            if message.id == item_id:
                return message
        return None

ToolRunner = Callable[[str, Dict[str, Any], ConversationState], Awaitable[Any]]
MessagePersister = Callable[[MessageItem], Awaitable[None]]

def parse_partial_json(text: str) -> Any:
    """Best-effort parse of an incomplete JSON document; {} when nothing usable."""
    if not text:
        return {}
    try:
        return json_repair.loads(text)
    except Exception:
        return {}

def parse_arguments(text: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(text) if text else {}
    except json.JSONDecodeError:
        parsed = parse_partial_json(text)
    return parsed if isinstance(parsed, dict) else {}

class StreamAccumulator:
    """Applies one turn's events to a ConversationState."""

    def __init__(self, state: ConversationState, run_tool: ToolRunner, persist_message: Optional[MessagePersister] = None):
        self.state = state
        self.run_tool = run_tool
        self.persist_message = persist_message
        self.needs_followup = False

    async def handle_event(self, event: str, data: Dict[str, Any]):
        handler = {
            "response.created": self._response_created,
            "response.output_text.delta": self._text_delta,
            "response.output_text.annotation.added": self._text_delta,
            "response.output_item.added": self._item_added,
            "response.output_item.done": self._item_done,
            "response.function_call_arguments.delta": self._arguments_delta,
            "response.function_call_arguments.done": self._arguments_done,
            "response.web_search_call.completed": self._search_completed,
            "response.file_search_call.completed": self._search_completed,
        }.get(event)
        if handler is not None:
            await handler(data or {})

    async def _response_created(self, data: Dict[str, Any]):
        response_id = (data.get("response") or {}).get("id")
        if isinstance(response_id, str):
            self.state.last_response_id = response_id

    async def _text_delta(self, data: Dict[str, Any]):
        item_id = data.get("item_id")
        delta = data.get("delta")
        annotation = data.get("annotation")

        message = self.state.find(item_id)
        if not isinstance(message, MessageItem):
            message = MessageItem(id=item_id, role="assistant")
            self.state.chat_messages.append(message)
        if isinstance(delta, str):
            message.text += delta
        if annotation:
            message.annotations.append(annotation)

    async def _item_added(self, data: Dict[str, Any]):
        item = data.get("item") or {}
        item_type = item.get("type")

        if item_type == "message":
            role = item.get("role")
            if role == "user":
                return  # already present locally
            if role == "assistant":
                content = item.get("content")
                exists = any(
                    ci.get("role") == "assistant" and ci.get("content") == content
                    for ci in self.state.conversation_items
                )
                if not exists:
                    self.state.conversation_items.append({"role": "assistant", "content": content})
                return
            text = (item.get("content") or {}).get("text", "") if isinstance(item.get("content"), dict) else ""
            self.state.chat_messages.append(MessageItem(id=item.get("id"), role=role, text=text))

        elif item_type == "function_call":
            self.state.chat_messages.append(ToolCallItem(
                id=item.get("id"),
                tool_type="function_call",
                name=item.get("name"),
                call_id=item.get("call_id"),
                arguments=item.get("arguments") or "",
            ))

        elif item_type in ("web_search_call", "file_search_call"):
            self.state.chat_messages.append(ToolCallItem(
                id=item.get("id"),
                tool_type=item_type,
                status=item.get("status") or "in_progress",
            ))

    async def _item_done(self, data: Dict[str, Any]):
        item = data.get("item") or {}
        item_id = item.get("id")
        if not item_id:
            logger.warning("response.output_item.done without an item id")
            return

        if not any(ci.get("type") == item.get("type") and ci.get("id") == item_id for ci in self.state.conversation_items):
            self.state.conversation_items.append(item)

        if item.get("type") != "message":
            record = self.state.find(item_id)
            if isinstance(record, ToolCallItem):
                record.call_id = item.get("call_id") or record.call_id
                record.status = "completed"
            return

        if item.get("role") != "assistant":
            return
        message = self.state.find(item_id)
        if not isinstance(message, MessageItem) or self.persist_message is None:
            return
        # At most one write per message id, even if "done" repeats
        if item_id in self.state.persisted_message_ids:
            logger.info(f"Message {item_id} already persisted, skipping")
            return
        self.state.persisted_message_ids.add(item_id)
        await self.persist_message(message)

    async def _arguments_delta(self, data: Dict[str, Any]):
        record = self.state.find(data.get("item_id"))
        if not isinstance(record, ToolCallItem):
            return
        record.arguments += data.get("delta") or ""
        # Partial JSON rarely parses; keep the last good value
        parsed = parse_partial_json(record.arguments)
        if parsed:
            record.parsed_arguments = parsed

    async def _arguments_done(self, data: Dict[str, Any]):
        record = self.state.find(data.get("item_id"))
        if not isinstance(record, ToolCallItem):
            return

        record.arguments = data.get("arguments") or ""
        record.parsed_arguments = parse_arguments(record.arguments)
        record.status = "completed"

        # The call must precede its output in the next turn's input
        if not any(ci.get("type") == "function_call" and ci.get("id") == record.id for ci in self.state.conversation_items):
            self.state.conversation_items.append({
                "type": "function_call",
                "id": record.id,
                "call_id": record.call_id,
                "name": record.name,
                "arguments": record.arguments,
            })

        result = await self.run_tool(record.name, record.parsed_arguments, self.state)
        record.output = json.dumps(result, default=str)
        self.state.conversation_items.append({
            "type": "function_call_output",
            "call_id": record.call_id,
            "output": record.output,
        })
        self.needs_followup = True

    async def _search_completed(self, data: Dict[str, Any]):
        record = self.state.find(data.get("item_id"))
        if isinstance(record, ToolCallItem):
            record.output = data.get("output")
            record.status = "completed"

def split_sse_buffer(buffer: str) -> Tuple[List[str], str]:
    """Complete `data:` payloads in the buffer, plus the unfinished remainder."""
    parts = buffer.split("\n\n")
    rest = parts.pop()
    payloads = [part[len("data: "):] for part in parts if part.startswith("data: ")]
    return payloads, rest

async def handle_turn(
    http: httpx.AsyncClient,
    messages: List[Dict[str, Any]],
    tools: List[Dict[str, Any]],
    on_event: Callable[[str, Dict[str, Any]], Awaitable[None]],
    previous_response_id: Optional[str] = None,
):
    """Post one turn to the relay and feed every event to on_event."""
    body: Dict[str, Any] = {"messages": messages, "tools": tools}
    if previous_response_id:
        body["previous_response_id"] = previous_response_id

    async with http.stream("POST", "/api/turn_response", json=body) as response:
        if response.status_code >= 400:
            await response.aread()
            response.raise_for_status()

        buffer = ""
        async for chunk in response.aiter_text():
            buffer += chunk
            payloads, buffer = split_sse_buffer(buffer)
            if await _dispatch_payloads(payloads, on_event):
                return

        # Last frame may arrive without its blank line
        if buffer.strip():
            payloads, _ = split_sse_buffer(buffer.rstrip("\n") + "\n\n")
            await _dispatch_payloads(payloads, on_event)

async def _dispatch_payloads(payloads: List[str], on_event: Callable[[str, Dict[str, Any]], Awaitable[None]]) -> bool:
    """Feed parsed payloads to on_event; True once the done marker is seen."""
    for payload in payloads:
        if payload == DONE_MARKER:
            return True
        parsed = json.loads(payload)
        await on_event(parsed.get("event"), parsed.get("data"))
    return False

def build_turn_input(state: ConversationState) -> List[Dict[str, Any]]:
    """
    Strip sentinel system items and prepend the developer prompt.
    A __CHAIN__: sentinel sets the continuation token for this turn.
    """
    items = []
    for item in state.conversation_items:
        content = item.get("content")
        if item.get("role") == "system" and isinstance(content, str):
            if content.startswith(CHAIN_PREFIX):
                state.previous_response_id = content[len(CHAIN_PREFIX):]
                continue
            if content.startswith(USE_PREV_PREFIX):
                continue
        items.append(item)
    return [{"role": "developer", "content": get_developer_prompt()}] + items

async def process_messages(
    state: ConversationState,
    http: httpx.AsyncClient,
    tools: List[Dict[str, Any]],
    run_tool: ToolRunner,
    persist_message: Optional[MessagePersister] = None,
    max_turns: int = 10,
):
    """Run turns until the model stops calling functions."""
    for _ in range(max_turns):
        accumulator = StreamAccumulator(state, run_tool, persist_message)
        await handle_turn(http, build_turn_input(state), tools, accumulator.handle_event, state.previous_response_id)

        if state.previous_response_id:
            state.conversation_items = [
                item for item in state.conversation_items if item.get("role") != "assistant"
            ]
        if not accumulator.needs_followup:
            return
    logger.warning(f"Stopped after {max_turns} consecutive tool turns")

def api_message_persister(http: httpx.AsyncClient, conversation_id: str) -> MessagePersister:
    """Persist finished assistant messages through the conversations API."""
    async def persist(message: MessageItem):
        response = await http.post(
            f"/api/conversations/{conversation_id}/messages",
            json={
                "role": message.role,
                "message_content": [{"type": "output_text", "text": message.text, "annotations": message.annotations}],
            },
        )
        response.raise_for_status()
    return persist

def api_tool_runner(functions: FunctionsClient) -> ToolRunner:
    async def run(name: str, arguments: Dict[str, Any], state: ConversationState) -> Any:
        return await handle_tool(name, arguments, functions, state.conversation_items, state.chat_messages)
    return run

async def send_message(
    state: ConversationState,
    text: str,
    base_url: str,
    access_token: str,
    conversation_id: Optional[str] = None,
    vector_store_id: Optional[str] = None,
) -> ConversationState:
    """Add a user message and run the assistant against a Vista API at base_url."""
    state.add_user_message(text)
    headers = {"Authorization": f"Bearer {access_token}"}
    async with httpx.AsyncClient(base_url=base_url, headers=headers, timeout=None) as http:
        persist = api_message_persister(http, conversation_id) if conversation_id else None
        await process_messages(
            state,
            http,
            get_tools(vector_store_id),
            api_tool_runner(FunctionsClient(http)),
            persist,
        )
    return state
