"""
Tool definitions sent with every assistant turn.
"""

from typing import Any, Dict, List, Optional

RANGE_SCHEMA = {
    "type": "object",
    "properties": {
        "min": {"type": "number"},
        "max": {"type": "number"},
    },
    "required": ["min", "max"],
    "additionalProperties": False,
}

CHECKLIST_ITEM_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "due_date": {"type": "string", "description": "YYYY-MM-DD"},
    },
    "required": ["title", "description", "due_date"],
    "additionalProperties": False,
}

TIMELINE_ITEM_SCHEMA = {
    "type": "object",
    "properties": {
        "label": {"type": "string"},
        "target_date": {"type": "string", "description": "YYYY-MM-DD"},
    },
    "required": ["label", "target_date"],
    "additionalProperties": False,
}

SCHOLARSHIP_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "amount": {"type": "string"},
        "eligibility": {"type": "string"},
    },
    "required": ["name", "amount", "eligibility"],
    "additionalProperties": False,
}

PROGRAM_PROPERTIES = {
    "name": {"type": "string", "description": "Programme name"},
    "institution": {"type": "string", "description": "Institution offering the programme"},
    "degree_type": {"type": "string", "description": "e.g. Master's, Bachelor's, Certificate"},
    "field_of_study": {"type": "string"},
    "description": {"type": "string"},
    "cost_per_year": {"type": "number", "description": "Annual cost in USD"},
    "duration": {"type": "integer", "description": "Duration in months"},
    "location": {"type": "string"},
    "start_date": {"type": "string", "description": "YYYY-MM-DD"},
    "application_deadline": {"type": "string", "description": "YYYY-MM-DD"},
    "requirements": {"type": "array", "items": {"type": "string"}},
    "highlights": {"type": "array", "items": {"type": "string"}},
    "page_link": {"type": "string", "description": "Direct URL of the programme page"},
    "match_score": {"type": "number", "description": "0-100 fit for this user"},
    "match_rationale": {"type": "string", "description": "Why the programme fits the user"},
    "scholarships": {"type": "array", "items": SCHOLARSHIP_SCHEMA},
}

TOOLS_LIST: List[Dict[str, Any]] = [
    {
        "name": "create_application_plan",
        "description": "Generate an application checklist and timeline for a recommended programme using the user's profile, store it, and return the application_id.",
        "parameters": {
            "recommendation_id": {"type": "string", "description": "ID of the recommendation the user is applying to."},
        },
    },
    {
        "name": "get_application_state",
        "description": "Fetch the current state and tasks of an application.",
        "parameters": {
            "application_id": {"type": "string", "description": "ID of the application."},
        },
    },
    {
        "name": "update_application_task",
        "description": "Update a task in an application (status, due_date, ...).",
        # Partial updates: an omitted field is left alone, a null due_date clears it
        "strict": False,
        "required": ["task_id", "updates"],
        "parameters": {
            "task_id": {"type": "string", "description": "ID of the task to update."},
            "updates": {
                "type": "object",
                "description": "Fields to update on the task.",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "due_date": {"type": ["string", "null"], "description": "YYYY-MM-DD, or null to clear"},
                    "status": {"type": "string", "description": "pending, in_progress or completed"},
                    "sort_order": {"type": "integer"},
                },
                "additionalProperties": False,
            },
        },
    },
    {
        "name": "create_application_task",
        "description": "Add a task to the end of an application's checklist.",
        "parameters": {
            "application_id": {"type": "string"},
            "title": {"type": "string"},
            "description": {"type": "string"},
            "due_date": {"type": "string", "description": "YYYY-MM-DD"},
        },
    },
    {
        "name": "delete_application_task",
        "description": "Remove a task from an application's checklist.",
        "parameters": {
            "task_id": {"type": "string"},
        },
    },
    {
        "name": "update_application_timeline",
        "description": "Replace an application's timeline milestones.",
        "parameters": {
            "application_id": {"type": "string"},
            "timeline": {"type": "array", "items": TIMELINE_ITEM_SCHEMA},
        },
    },
    {
        "name": "save_application_plan",
        "description": "Save an application checklist and timeline for the given recommendation.",
        "parameters": {
            "recommendation_id": {"type": "string"},
            "plan": {
                "type": "object",
                "properties": {
                    "checklist": {"type": "array", "items": CHECKLIST_ITEM_SCHEMA},
                    "timeline": {"type": "array", "items": TIMELINE_ITEM_SCHEMA},
                },
                "required": ["checklist", "timeline"],
                "additionalProperties": False,
            },
        },
    },
    {
        "name": "list_user_applications",
        "description": "List the user's applications with their recommendation IDs.",
        "parameters": {},
    },
    {
        "name": "list_user_pathways",
        "description": "List the education pathways already saved by the user.",
        "parameters": {},
    },
    {
        "name": "create_pathway",
        "description": "Save a new education pathway for the user. Requires list_user_pathways, web_search and file_search first.",
        "parameters": {
            "title": {"type": "string"},
            "qualification_type": {"type": "string"},
            "field_of_study": {"type": "string"},
            "subfields": {"type": "array", "items": {"type": "string"}},
            "target_regions": {"type": "array", "items": {"type": "string"}},
            "budget_range_usd": RANGE_SCHEMA,
            "duration_months": RANGE_SCHEMA,
            "alignment_rationale": {"type": "string"},
            "alternatives": {"type": "array", "items": {"type": "string"}},
            "query_string": {"type": "string"},
        },
    },
    {
        "name": "get_recommendation_by_program",
        "description": "Look up an existing recommendation by programme name and/or institution.",
        "parameters": {
            "name": {"type": "string"},
            "institution": {"type": "string"},
        },
    },
    {
        "name": "create_recommendation",
        "description": "Save a programme recommendation for the user. Requires web_search, file_search and get_recommendation_by_program first.",
        "parameters": {
            "program": {
                "type": "object",
                "properties": PROGRAM_PROPERTIES,
                "required": list(PROGRAM_PROPERTIES.keys()),
                "additionalProperties": False,
            },
        },
    },
]

def function_tool(tool: Dict[str, Any]) -> Dict[str, Any]:
    """Function tool, strict unless the definition opts out: every parameter required, no extras."""
    strict = tool.get("strict", True)
    return {
        "type": "function",
        "name": tool["name"],
        "description": tool["description"],
        "parameters": {
            "type": "object",
            "properties": dict(tool["parameters"]),
            "required": list(tool["parameters"].keys()) if strict else tool.get("required", []),
            "additionalProperties": False,
        },
        "strict": strict,
    }

def web_search_tool(user_location: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    tool: Dict[str, Any] = {"type": "web_search"}
    if user_location and any(user_location.get(k) for k in ("country", "region", "city")):
        tool["user_location"] = {"type": "approximate", **user_location}
    return tool

def file_search_tool(vector_store_id: str) -> Dict[str, Any]:
    return {"type": "file_search", "vector_store_ids": [vector_store_id]}

def get_tools(
    vector_store_id: Optional[str] = None,
    user_location: Optional[Dict[str, str]] = None,
    include_functions: bool = True,
) -> List[Dict[str, Any]]:
    """Web search always, file search when a vector store exists, then the function tools."""
    tools = [web_search_tool(user_location)]
    if vector_store_id:
        tools.append(file_search_tool(vector_store_id))
    if include_functions:
        tools.extend(function_tool(tool) for tool in TOOLS_LIST)
    return tools
