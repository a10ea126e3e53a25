"""Tests for local execution of the assistant's function calls."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from assistant import ToolCallItem
from tool_handler import (
    FunctionsClient,
    UnknownToolError,
    check_tool_preconditions,
    handle_tool,
    normalize_tool_arguments,
)

USER = {"role": "user", "content": "Find me a programme in Amsterdam"}
WEB_SEARCH = {"type": "web_search_call", "id": "ws_1", "status": "completed"}
FILE_SEARCH = {"type": "file_search_call", "id": "fs_1", "status": "completed"}


def called(name: str) -> ToolCallItem:
    return ToolCallItem(id=f"fc_{name}", tool_type="function_call", name=name, status="completed")


class TestPreconditions:
    def test_other_tools_are_not_guarded(self) -> None:
        assert check_tool_preconditions("list_user_applications", [USER], []) is None

    def test_recommendation_requires_web_search(self) -> None:
        error = check_tool_preconditions("create_recommendation", [USER, FILE_SEARCH], [])

        assert error["success"] is False
        assert "web_search" in error["error"]

    def test_recommendation_requires_file_search(self) -> None:
        error = check_tool_preconditions("create_recommendation", [USER, WEB_SEARCH], [])

        assert "file_search" in error["error"]

    def test_searches_before_last_user_message_do_not_count(self) -> None:
        items = [WEB_SEARCH, FILE_SEARCH, USER]

        error = check_tool_preconditions("create_pathway", items, [called("list_user_pathways")])

        assert "web_search" in error["error"]

    def test_recommendation_requires_duplicate_check(self) -> None:
        error = check_tool_preconditions("create_recommendation", [USER, WEB_SEARCH, FILE_SEARCH], [called("list_user_pathways")])

        assert "get_recommendation_by_program" in error["error"]

    def test_pathway_requires_listing_existing_pathways(self) -> None:
        error = check_tool_preconditions("create_pathway", [USER, WEB_SEARCH, FILE_SEARCH], [])

        assert "list_user_pathways" in error["error"]

    def test_all_steps_done(self) -> None:
        items = [USER, WEB_SEARCH, FILE_SEARCH]

        assert check_tool_preconditions("create_recommendation", items, [called("get_recommendation_by_program")]) is None
        assert check_tool_preconditions("create_pathway", items, [called("list_user_pathways")]) is None


class TestNormalizeArguments:
    def test_name_equal_to_institution_is_cleared(self) -> None:
        params = normalize_tool_arguments("get_recommendation_by_program", {"name": "TU Delft", "institution": "TU Delft"})

        assert params == {"name": "", "institution": "TU Delft"}

    def test_missing_keys_default_to_empty(self) -> None:
        assert normalize_tool_arguments("get_recommendation_by_program", {"name": "MSc AI"}) == {"name": "MSc AI", "institution": ""}


class TestFunctionsClient:
    @pytest.mark.asyncio
    async def test_get_functions_send_query_params(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"success": True, "recommendations": []})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://vista.test") as http:
            result = await FunctionsClient(http).call("get_recommendation_by_program", {"name": "", "institution": "TU Delft"})

        assert result == {"success": True, "recommendations": []}
        assert seen["method"] == "GET"
        assert seen["path"] == "/api/functions/get_recommendation_by_program"
        assert seen["params"] == {"institution": "TU Delft"}

    @pytest.mark.asyncio
    async def test_post_functions_send_json_and_return_error_bodies(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(400, json={"error": "Missing recommendation_id"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://vista.test") as http:
            result = await FunctionsClient(http).call("create_application_plan", {"previous_response_id": "resp_1"})

        assert seen["body"] == {"previous_response_id": "resp_1"}
        assert result == {"error": "Missing recommendation_id"}

    @pytest.mark.asyncio
    async def test_unknown_tool(self) -> None:
        with pytest.raises(UnknownToolError):
            await FunctionsClient(http=None).call("query_supabase", {})


class TestHandleTool:
    @pytest.mark.asyncio
    async def test_guard_short_circuits_call(self) -> None:
        functions = AsyncMock()

        result = await handle_tool("create_pathway", {"title": "x"}, functions, [USER], [])

        assert result["success"] is False
        functions.call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forwards_normalized_arguments(self) -> None:
        functions = AsyncMock()
        functions.call.return_value = {"success": True}

        result = await handle_tool(
            "get_recommendation_by_program",
            {"name": "Leiden University", "institution": "Leiden University"},
            functions,
            [USER],
            [],
        )

        assert result == {"success": True}
        functions.call.assert_awaited_once_with(
            "get_recommendation_by_program", {"name": "", "institution": "Leiden University"},
        )

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_tool_output(self) -> None:
        result = await handle_tool("query_supabase", {}, FunctionsClient(http=None), [USER], [])

        assert result == {"success": False, "error": "Unknown tool: query_supabase"}
