"""
Education pathways and programme recommendations.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
import asyncio

import crud
import link_search
import planner
import schemas
import vector_store
from auth import CurrentUser, get_current_user
from config import settings
from database import get_db
from openai_client import get_optional_openai_client

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])

def _require_client(client: Optional[AsyncOpenAI]) -> AsyncOpenAI:
    if client is None:
        raise HTTPException(status_code=500, detail="Server configuration error: Missing OpenAI API key")
    return client

def _owned_pathway(db: Session, pathway_id: str, user: CurrentUser):
    pathway = crud.get_pathway(db, pathway_id, user.id)
    if pathway is None or pathway.is_deleted:
        raise HTTPException(status_code=404, detail="Pathway not found")
    return pathway

def _complete_profile(db: Session, user: CurrentUser):
    profile = crud.get_profile(db, user.id)
    missing = crud.find_missing_profile_fields(profile)
    if missing:
        print(f"[LOGIC] Profile guard triggered, missing: {missing}")
        raise HTTPException(
            status_code=400,
            detail=f"Incomplete profile: missing {', '.join(missing)}. Please complete your profile before generating pathways.",
        )
    return profile

async def _generate_and_save(
    db: Session,
    user: CurrentUser,
    client: AsyncOpenAI,
    profile,
    existing: List[Dict[str, Any]],
    feedback: List[Dict[str, Any]],
    previous_response_id: Optional[str],
) -> Dict[str, Any]:
    try:
        generated = await asyncio.wait_for(
            planner.generate_education_pathways(
                client,
                crud.format_profile(profile),
                previous_response_id=previous_response_id,
                existing_pathways=existing,
                feedback_context=feedback,
            ),
            timeout=settings.PATHWAY_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        print(f"[ERROR] Pathway generation timed out after {settings.PATHWAY_TIMEOUT_SECONDS}s")
        raise HTTPException(status_code=504, detail="Pathway generation timed out. Please try again.")
    except planner.GenerationError as e:
        print(f"[ERROR] Pathway generation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    try:
        rows = crud.create_education_pathways(db, user.id, generated["pathways"])
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to save pathways: {str(e)}")

    print(f"[SUCCESS] Saved {len(rows)} pathways for {user.id}")
    return {
        "pathways": [crud.pathway_to_dict(p) for p in rows],
        "responseId": generated["response_id"],
    }

@router.post("/pathways/generate")
async def generate_pathways(
    payload: schemas.PathwayGenerateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """
    Generate new education pathways from the stored profile.

    Pathways the user already has, and feedback left on deleted ones, are passed
    to the model so it suggests something different.
    """
    print(f"[ENDPOINT] POST /api/recommendations/pathways/generate for {user.id}")
    client = _require_client(client)
    profile = _complete_profile(db, user)

    existing = [crud.pathway_to_dict(p) for p in crud.get_user_pathways(db, user.id)]
    feedback = payload.feedback_context or crud.get_deleted_pathway_feedback(db, user.id)
    return await _generate_and_save(db, user, client, profile, existing, feedback, payload.previous_response_id)

@router.post("/pathways/generate-more")
async def generate_more_pathways(
    payload: schemas.PathwayGenerateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """
    Add pathways next to the ones the user already has.

    Feedback from the request is combined with feedback stored on deleted
    pathways. The response lists the new pathways only.
    """
    print(f"[ENDPOINT] POST /api/recommendations/pathways/generate-more for {user.id}")
    client = _require_client(client)
    profile = _complete_profile(db, user)

    existing = [crud.pathway_to_dict(p) for p in crud.get_user_pathways(db, user.id)]
    if not existing:
        raise HTTPException(status_code=400, detail="No existing pathways. Generate pathways first.")
    feedback = list(payload.feedback_context) + crud.get_deleted_pathway_feedback(db, user.id)
    return await _generate_and_save(db, user, client, profile, existing, feedback, payload.previous_response_id)

@router.post("/pathways/reset")
async def reset_pathways(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """Permanently delete all pathways and their recommendations. Vector file cleanup is best-effort."""
    print(f"[ENDPOINT] POST /api/recommendations/pathways/reset for {user.id}")
    try:
        result = crud.reset_pathways(db, user.id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to reset pathways: {str(e)}")

    body = {
        "success": True,
        "deletedPathwaysCount": result["deleted_pathways"],
        "deletedProgramsCount": result["deleted_programs"],
    }
    await _remove_files(db, user, client, result["file_ids"], body)
    print(f"[SUCCESS] Reset {result['deleted_pathways']} pathways for {user.id}")
    return body

async def _remove_files(db: Session, user: CurrentUser, client: Optional[AsyncOpenAI], file_ids: List[str], body: Dict[str, Any]):
    """Remove deleted recommendations' files from the user's store, noting leftovers in body."""
    if not file_ids:
        return
    if client is None:
        print("[LOGIC] OPENAI_API_KEY not set, skipping recommendation file cleanup")
        body["orphaned_file_ids"] = file_ids
        return
    profile = crud.get_profile(db, user.id)
    failed = await vector_store.remove_recommendation_files(client, profile.vector_store_id if profile else None, file_ids)
    if failed:
        body["orphaned_file_ids"] = failed

@router.get("/pathways")
async def list_pathways(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"pathways": [crud.pathway_to_dict(p) for p in crud.get_user_pathways(db, user.id)]}

@router.delete("/pathways/{pathway_id}")
async def delete_pathway(
    pathway_id: str,
    payload: Optional[schemas.PathwayDeleteRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Soft-delete a pathway; favorite recommendations under it are kept."""
    pathway = _owned_pathway(db, pathway_id, user)
    try:
        crud.delete_pathway(db, pathway, payload.feedback if payload else None)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True}

@router.get("/pathways/{pathway_id}/programs")
async def list_pathway_programs(
    pathway_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _owned_pathway(db, pathway_id, user)
    programs = crud.get_pathway_programs(db, pathway_id, user.id)
    return {"programs": [crud.recommendation_to_dict(r) for r in programs]}

@router.post("/pathways/{pathway_id}/explore")
async def explore_pathway(
    pathway_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """Research concrete programmes for a pathway and save them as recommendations."""
    print(f"[ENDPOINT] POST /api/recommendations/pathways/{pathway_id}/explore")
    client = _require_client(client)
    pathway = _owned_pathway(db, pathway_id, user)
    profile = crud.get_profile(db, user.id)
    if profile is None:
        raise HTTPException(status_code=404, detail="User profile not found")

    try:
        research = await planner.research_programs(
            client,
            crud.pathway_to_dict(pathway),
            crud.format_profile(profile),
            vector_store_id=profile.vector_store_id,
        )
    except planner.GenerationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    stored = crud.store_programs_batch(db, user.id, pathway.id, research["programs"])
    crud.mark_pathway_explored(db, pathway)
    programs = crud.get_pathway_programs(db, pathway.id, user.id)

    body = {
        "success": True,
        "programs": [crud.recommendation_to_dict(r) for r in programs],
        "rejected": stored["rejected"],
        "responseId": research["response_id"],
    }

    saved = [r for r in programs if r.id in set(stored["saved_ids"])]
    sync = await vector_store.sync_recommendations(client, db, user.id, saved, profile.vector_store_id)
    if not sync["success"]:
        body["warning"] = "Programs saved but vector store sync failed"
        body["sync_errors"] = sync["errors"]
        return JSONResponse(status_code=207, content=body)
    return body

@router.post("/programs/rerun")
async def rerun_programs(
    payload: schemas.ProgramRerunRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """Re-emit a previous programme evaluation in schema form."""
    if not payload.previous_response_id or not payload.pathway_id:
        raise HTTPException(status_code=400, detail="Missing previousResponseId or pathwayId")
    client = _require_client(client)
    _owned_pathway(db, payload.pathway_id, user)
    try:
        result = await planner.rerun_program_evaluation(client, payload.previous_response_id)
    except planner.GenerationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"programs": result["programs"], "responseId": result["response_id"]}

@router.get("")
async def list_recommendations(
    favorites_only: bool = False,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = crud.list_user_recommendations(db, user.id, favorites_only=favorites_only)
    return {"recommendations": [crud.recommendation_to_dict(r) for r in rows]}

@router.post("/{recommendation_id}/favorite")
async def toggle_favorite(
    recommendation_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    recommendation = crud.get_recommendation(db, recommendation_id, user.id)
    if recommendation is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    return {"success": True, "is_favorite": crud.toggle_recommendation_favorite(db, recommendation)}

@router.post("/{recommendation_id}/feedback")
async def submit_feedback(
    recommendation_id: str,
    payload: schemas.RecommendationFeedbackRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    recommendation = crud.get_recommendation(db, recommendation_id, user.id)
    if recommendation is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    crud.set_recommendation_feedback(db, recommendation, payload.negative, payload.reason, payload.data)
    return {"success": True}

@router.delete("/{recommendation_id}")
async def delete_recommendation(
    recommendation_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """Delete a recommendation and remove its file from the user's vector store."""
    print(f"[ENDPOINT] DELETE /api/recommendations/{recommendation_id}")
    recommendation = crud.get_recommendation(db, recommendation_id, user.id)
    if recommendation is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    try:
        file_ids = crud.delete_recommendation(db, recommendation)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete recommendation: {str(e)}")

    body = {"success": True, "recommendation_id": recommendation_id}
    await _remove_files(db, user, client, file_ids, body)
    return body

@router.post("/{recommendation_id}/page-links")
async def refresh_page_links(
    recommendation_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Look up the programme's web pages and store them on the programme."""
    recommendation = crud.get_recommendation(db, recommendation_id, user.id)
    if recommendation is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")

    program = recommendation.program
    links = await link_search.fetch_program_page_links(program.name, program.institution)
    if not links:
        print(f"[LOGIC] No page links found for {program.name} at {program.institution}")
        return {"success": False, "page_link": program.page_link, "page_links": program.page_links or []}

    crud.set_program_page_links(db, program, links)
    return {"success": True, "page_link": program.page_link, "page_links": program.page_links}
