"""
Structured LLM generators: application plans, education pathways and programme research.

All three use the Responses API with a strict JSON schema and return plain dictionaries.
"""

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError
from datetime import date, timedelta
from typing import Any, Dict, List, Optional
import json
import logging

from config import settings
from prompts import (
    PLANNER_PROMPT, PATHWAY_SYSTEM_PROMPT, PROGRAM_RESEARCH_SYSTEM_PROMPT,
    build_planner_input, build_pathway_prompt, build_program_research_prompt,
)
from schemas import ApplicationPlan
from tools import CHECKLIST_ITEM_SCHEMA, TIMELINE_ITEM_SCHEMA, RANGE_SCHEMA, PROGRAM_PROPERTIES, get_tools

logger = logging.getLogger(__name__)

MAX_PROGRAMS = 15

APPLICATION_PLAN_SCHEMA = {
    "type": "object",
    "properties": {
        "checklist": {"type": "array", "items": CHECKLIST_ITEM_SCHEMA},
        "timeline": {"type": "array", "items": TIMELINE_ITEM_SCHEMA},
    },
    "required": ["checklist", "timeline"],
    "additionalProperties": False,
}

PATHWAY_ITEM_PROPERTIES = {
    "title": {"type": "string"},
    "qualificationType": {"type": "string"},
    "fieldOfStudy": {"type": "string"},
    "subfields": {"type": "array", "items": {"type": "string"}},
    "targetRegions": {"type": "array", "items": {"type": "string"}},
    "budgetRange": RANGE_SCHEMA,
    "duration": RANGE_SCHEMA,
    "alignment": {"type": "string"},
    "alternatives": {"type": "array", "items": {"type": "string"}},
    "queryString": {"type": "string"},
}

PATHWAY_SCHEMA = {
    "type": "object",
    "properties": {
        "pathways": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": PATHWAY_ITEM_PROPERTIES,
                "required": list(PATHWAY_ITEM_PROPERTIES.keys()),
                "additionalProperties": False,
            },
        }
    },
    "required": ["pathways"],
    "additionalProperties": False,
}

PROGRAM_EVALUATION_SCHEMA = {
    "type": "object",
    "properties": {
        "programs": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": PROGRAM_PROPERTIES,
                "required": list(PROGRAM_PROPERTIES.keys()),
                "additionalProperties": False,
            },
        }
    },
    "required": ["programs"],
    "additionalProperties": False,
}

class GenerationError(Exception):
    """Raised when a structured generation cannot produce usable output."""

def _json_format(name: str, schema: Dict[str, Any]) -> Dict[str, Any]:
    return {"format": {"type": "json_schema", "name": name, "schema": schema, "strict": True}}

def _output_text(response) -> str:
    """Text of the first output_text block, whichever way the SDK exposes it."""
    text = getattr(response, "output_text", None)
    if text:
        return text
    for item in getattr(response, "output", None) or []:
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "refusal":
                raise GenerationError(f"AI refused the request: {content.refusal}")
            if getattr(content, "type", None) == "output_text":
                return content.text
    return ""

def stub_application_plan(today: Optional[date] = None) -> Dict[str, Any]:
    """Generic plan used whenever the planner cannot produce one."""
    today = today or date.today()
    return {
        "checklist": [
            {
                "title": "Gather transcripts",
                "description": "Collect official academic transcripts from all institutions attended.",
                "due_date": (today + timedelta(days=14)).isoformat(),
            },
            {
                "title": "Prepare statement of purpose",
                "description": "Draft and refine your statement of purpose according to program guidelines.",
                "due_date": (today + timedelta(days=28)).isoformat(),
            },
        ],
        "timeline": [
            {"label": "Application opens", "target_date": today.isoformat()},
            {"label": "Application deadline", "target_date": (today + timedelta(days=60)).isoformat()},
        ],
    }

async def generate_application_plan(
    client: Optional[AsyncOpenAI],
    raw_profile: Optional[Dict[str, Any]],
    raw_program: Optional[Dict[str, Any]],
    vector_store_id: Optional[str] = None,
    previous_response_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Generate a checklist and timeline for one programme.

    Returns {"plan": {...}, "previous_response_id": str | None}. Never raises:
    a missing client, empty or invalid output, or an API error all yield the stub plan.
    """
    if client is None:
        logger.warning("OPENAI_API_KEY not set, using stub application plan")
        return {"plan": stub_application_plan(), "previous_response_id": None}

    request = {
        "model": settings.PLANNER_MODEL,
        "input": [
            {"role": "system", "content": PLANNER_PROMPT},
            {"role": "user", "content": build_planner_input(raw_profile, raw_program)},
        ],
        "tools": get_tools(vector_store_id, include_functions=False),
        "text": _json_format("application_plan", APPLICATION_PLAN_SCHEMA),
        "max_output_tokens": settings.PLAN_MAX_OUTPUT_TOKENS,
        "parallel_tool_calls": False,
        "store": True,
    }
    if previous_response_id:
        request["previous_response_id"] = previous_response_id

    try:
        response = await client.responses.create(**request)
        raw = _output_text(response)
        if not raw:
            logger.error("Empty output from planner, using stub application plan")
            return {"plan": stub_application_plan(), "previous_response_id": None}
        plan = ApplicationPlan.model_validate(json.loads(raw))
        return {"plan": plan.model_dump(), "previous_response_id": response.id}
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Planner returned an invalid application plan, using stub: {e}")
    except (OpenAIError, GenerationError) as e:
        logger.error(f"Application plan generation failed, using stub: {e}")
    return {"plan": stub_application_plan(), "previous_response_id": None}

def map_agent_pathway(pathway: Dict[str, Any]) -> Dict[str, Any]:
    """Agent output (camelCase) to the education_pathways row shape."""
    return {
        "title": pathway.get("title"),
        "qualification_type": pathway.get("qualificationType"),
        "field_of_study": pathway.get("fieldOfStudy"),
        "subfields": pathway.get("subfields") or [],
        "target_regions": pathway.get("targetRegions") or [],
        "budget_range_usd": pathway.get("budgetRange") or {"min": 0, "max": 0},
        "duration_months": pathway.get("duration") or {"min": 0, "max": 0},
        "alignment_rationale": pathway.get("alignment"),
        "alternatives": pathway.get("alternatives") or [],
        "query_string": pathway.get("queryString"),
    }

async def generate_education_pathways(
    client: AsyncOpenAI,
    profile: Dict[str, Any],
    previous_response_id: Optional[str] = None,
    existing_pathways: Optional[List[Dict[str, Any]]] = None,
    feedback_context: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Ask the planning agent for new pathways.
    Returns {"pathways": [row dicts], "response_id": str}; raises GenerationError on failure.
    """
    logger.info(
        f"Generating pathways: previous_response_id={previous_response_id or 'none'}, "
        f"existing={len(existing_pathways or [])}, feedback={len(feedback_context or [])}"
    )
    request = {
        "model": settings.PATHWAY_MODEL,
        "input": [
            {"role": "system", "content": PATHWAY_SYSTEM_PROMPT},
            {"role": "user", "content": build_pathway_prompt(profile, existing_pathways, feedback_context)},
        ],
        "text": _json_format("education_pathways", PATHWAY_SCHEMA),
        "store": True,
    }
    if previous_response_id:
        request["previous_response_id"] = previous_response_id

    try:
        response = await client.responses.create(**request)
    except OpenAIError as e:
        raise GenerationError(f"OpenAI API error: {e}") from e

    if getattr(response, "status", None) == "incomplete":
        details = getattr(response, "incomplete_details", None)
        reason = getattr(details, "reason", None) or "unknown"
        raise GenerationError(f"Response was incomplete. Reason: {reason}")

    raw = _output_text(response)
    if not raw:
        raise GenerationError("Failed to extract any usable text from the AI response")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Invalid JSON in AI response: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("pathways"), list):
        raise GenerationError("Invalid JSON structure in AI response")

    logger.info(f"Parsed {len(data['pathways'])} pathways from response {response.id}")
    return {"pathways": [map_agent_pathway(p) for p in data["pathways"]], "response_id": response.id}

def _parse_programs(response) -> List[Dict[str, Any]]:
    raw = _output_text(response)
    if not raw:
        raise GenerationError("No output text from OpenAI")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Invalid JSON in AI response: {e}") from e
    programs = data.get("programs") if isinstance(data, dict) else None
    if not isinstance(programs, list):
        raise GenerationError("Invalid JSON structure in AI response")
    programs.sort(key=lambda p: p.get("match_score") or 0, reverse=True)
    return programs[:MAX_PROGRAMS]

async def research_programs(
    client: AsyncOpenAI,
    pathway: Dict[str, Any],
    profile: Dict[str, Any],
    vector_store_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Find concrete programmes for a pathway. Returns {"programs": [...], "response_id": str}."""
    logger.info(f"Researching programs for pathway: {pathway.get('title')}")
    try:
        response = await client.responses.create(
            model=settings.PROGRAM_MODEL,
            input=[
                {"role": "system", "content": PROGRAM_RESEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": build_program_research_prompt(pathway, profile)},
            ],
            tools=get_tools(vector_store_id, include_functions=False),
            text=_json_format("program_evaluation", PROGRAM_EVALUATION_SCHEMA),
            store=True,
        )
    except OpenAIError as e:
        raise GenerationError(f"OpenAI API error: {e}") from e
    return {"programs": _parse_programs(response), "response_id": response.id}

async def rerun_program_evaluation(client: AsyncOpenAI, previous_response_id: str) -> Dict[str, Any]:
    """Ask the model to re-emit a previous programme evaluation in schema form."""
    try:
        response = await client.responses.create(
            model=settings.PROGRAM_MODEL,
            previous_response_id=previous_response_id,
            input=[{
                "role": "user",
                "content": "Please re-output the previous program evaluation JSON again, strictly following the schema, with no additional explanation.",
            }],
            text=_json_format("program_evaluation", PROGRAM_EVALUATION_SCHEMA),
            store=True,
        )
    except OpenAIError as e:
        raise GenerationError(f"OpenAI API error: {e}") from e
    if getattr(response, "status", None) == "incomplete":
        raise GenerationError("OpenAI response incomplete")
    return {"programs": _parse_programs(response), "response_id": response.id}
