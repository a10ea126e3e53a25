"""
Local execution of the assistant's function calls.

Each function maps onto one /api/functions/<name> endpoint of this service and
is called with the user's bearer token. Creation functions are guarded so the
model researches before it writes.
"""

from typing import Any, Dict, List, Optional
import httpx
import logging

logger = logging.getLogger(__name__)

# name -> HTTP method of /api/functions/<name>
FUNCTION_ROUTES = {
    "create_application_plan": "POST",
    "get_application_state": "POST",
    "update_application_task": "POST",
    "create_application_task": "POST",
    "delete_application_task": "POST",
    "update_application_timeline": "POST",
    "save_application_plan": "POST",
    "list_user_applications": "GET",
    "list_user_pathways": "GET",
    "create_pathway": "POST",
    "get_recommendation_by_program": "GET",
    "create_recommendation": "POST",
    "update_recommendation": "POST",
}

class UnknownToolError(Exception):
    pass

class FunctionsClient:
    """Calls the function endpoints of a running Vista API."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def call(self, name: str, arguments: Dict[str, Any]) -> Any:
        method = FUNCTION_ROUTES.get(name)
        if method is None:
            raise UnknownToolError(f"Unknown tool: {name}")

        path = f"/api/functions/{name}"
        if method == "GET":
            params = {k: v for k, v in (arguments or {}).items() if v not in (None, "")}
            response = await self.http.get(path, params=params)
        else:
            response = await self.http.post(path, json=arguments or {})

        # Error bodies go back to the model as the tool output
        try:
            return response.json()
        except ValueError:
            return {"success": False, "status": response.status_code, "error": response.text}

def _items_since_last_user_message(conversation_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    last_user = None
    for index, item in enumerate(conversation_items):
        if item.get("type", "message") == "message" and item.get("role") == "user":
            last_user = index
    return conversation_items if last_user is None else conversation_items[last_user + 1:]

def _has_item(items: List[Dict[str, Any]], item_type: str) -> bool:
    return any(item.get("type") == item_type or item.get("tool_type") == item_type for item in items)

def _called_function(chat_messages: List[Any], name: str) -> bool:
    return any(
        getattr(m, "type", None) == "tool_call"
        and getattr(m, "tool_type", None) == "function_call"
        and getattr(m, "name", None) == name
        for m in chat_messages
    )

def check_tool_preconditions(
    tool_name: str,
    conversation_items: List[Dict[str, Any]],
    chat_messages: List[Any],
) -> Optional[Dict[str, Any]]:
    """Return an error payload for the model when a creation call skipped its research steps."""
    if tool_name not in ("create_recommendation", "create_pathway"):
        return None

    noun = "recommendation" if tool_name == "create_recommendation" else "pathway"
    recent = _items_since_last_user_message(conversation_items)

    if not _has_item(recent, "web_search_call"):
        return {
            "success": False,
            "error": f"Before creating a {noun}, please use the web_search tool to gather accurate external information.",
        }
    if not _has_item(recent, "file_search_call"):
        return {
            "success": False,
            "error": f"Before creating a {noun}, please use the file_search tool to verify the user's profile context.",
        }

    required = "get_recommendation_by_program" if tool_name == "create_recommendation" else "list_user_pathways"
    if not _called_function(chat_messages, required):
        return {
            "success": False,
            "error": f"Before creating a {noun}, please use the {required} function to check for existing entries and avoid duplicates.",
        }
    return None

def normalize_tool_arguments(tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    if tool_name == "get_recommendation_by_program":
        params = {"name": "", "institution": "", **(arguments or {})}
        # Identical values mean the model only knew the institution
        if params["name"] and params["institution"] and params["name"] == params["institution"]:
            params["name"] = ""
        return params
    return arguments or {}

async def handle_tool(
    tool_name: str,
    arguments: Dict[str, Any],
    functions: FunctionsClient,
    conversation_items: List[Dict[str, Any]],
    chat_messages: List[Any],
) -> Any:
    logger.info(f"Handle tool {tool_name}")
    error = check_tool_preconditions(tool_name, conversation_items, chat_messages)
    if error is not None:
        return error
    try:
        return await functions.call(tool_name, normalize_tool_arguments(tool_name, arguments))
    except UnknownToolError as e:
        # The model gets the error as its tool output and the turn continues
        logger.warning(str(e))
        return {"success": False, "error": str(e)}
