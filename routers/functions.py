"""
Endpoints behind the assistant's function calls.

Each route matches one function in tools.TOOLS_LIST and is called by the
stream accumulator with the user's bearer token. Error bodies are returned to
the model as the tool output, so messages are kept readable.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI
from sqlalchemy.orm import Session
from typing import Optional

import applications
import crud
import planner
import schemas
import vector_store
from auth import CurrentUser, get_current_user
from database import get_db
from openai_client import get_optional_openai_client

router = APIRouter(prefix="/api/functions", tags=["functions"])

def _profile_files(db: Session, user_id: str):
    """profile_file_id and vector_store_id of the user's profile, or the matching HTTP error."""
    profile = crud.get_profile(db, user_id)
    if profile is None or not profile.profile_file_id:
        raise HTTPException(status_code=404, detail="Profile file not found for user")
    if not profile.vector_store_id:
        raise HTTPException(status_code=400, detail="Vector store not configured for user")
    return profile

def _data_result(result: dict, status_code: int = 500):
    """Forward an applications.* result, turning failures into an error response."""
    if result.get("success"):
        return result
    error = result.get("error") or "Operation failed"
    if error in ("Application not found", "Task not found"):
        status_code = 404
    elif error == "No valid updates provided":
        status_code = 400
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})

# ============================================
# APPLICATIONS
# ============================================

@router.post("/create_application_plan")
async def create_application_plan(
    payload: schemas.CreateApplicationPlanRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """
    Generate a checklist and timeline for a recommended programme and store it as an application.

    Without recommendation_id the user's most recent favorite (else most recent)
    recommendation is used.
    """
    print(f"[ENDPOINT] POST /api/functions/create_application_plan for {user.id}")

    recommendation_id = payload.recommendation_id or crud.infer_recommendation_id(db, user.id)
    if not recommendation_id:
        raise HTTPException(status_code=400, detail="Missing recommendation_id")

    # Optional: the planner can work from the raw program data
    recommendation_file = crud.get_recommendation_file(db, recommendation_id, user.id)
    program_file_id = recommendation_file.file_id if recommendation_file else ""
    if not program_file_id:
        print(f"[LOGIC] No program file for recommendation {recommendation_id}, using raw program data")

    profile = _profile_files(db, user.id)

    recommendation = crud.get_recommendation(db, recommendation_id, user.id)
    if recommendation is None or not recommendation.program_id:
        raise HTTPException(status_code=500, detail="Failed to fetch recommendation program ID")
    if recommendation.program is None:
        raise HTTPException(status_code=500, detail="Failed to fetch program data")

    generated = await planner.generate_application_plan(
        client,
        crud.format_profile(profile),
        crud.program_to_dict(recommendation.program),
        vector_store_id=profile.vector_store_id,
        previous_response_id=payload.previous_response_id,
    )

    result = applications.create_application_with_plan(
        db,
        user_id=user.id,
        recommendation_id=recommendation_id,
        profile_file_id=profile.profile_file_id,
        program_file_id=program_file_id,
        plan=generated["plan"],
    )
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error") or "Failed to create application")

    saved = applications.set_planner_response_id(db, result["application_id"], generated.get("previous_response_id"))
    if not saved.get("success"):
        print(f"[ERROR] Planner response id not saved: {saved.get('error')}")

    print(f"[SUCCESS] Application plan created: {result['application_id']}")
    return {
        "success": True,
        "application_id": result["application_id"],
        "previous_response_id": generated.get("previous_response_id"),
    }

@router.post("/save_application_plan")
async def save_application_plan(
    payload: schemas.SaveApplicationPlanRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Store a plan the assistant already produced in conversation."""
    print(f"[ENDPOINT] POST /api/functions/save_application_plan for {user.id}")
    if not payload.recommendation_id or payload.plan is None:
        raise HTTPException(status_code=400, detail="Missing required arguments for save_application_plan")

    if crud.get_recommendation(db, payload.recommendation_id, user.id) is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")

    recommendation_file = crud.get_recommendation_file(db, payload.recommendation_id, user.id)
    if recommendation_file is None:
        raise HTTPException(status_code=404, detail="Program file not found for recommendation")

    profile = _profile_files(db, user.id)

    result = applications.create_application_with_plan(
        db,
        user_id=user.id,
        recommendation_id=payload.recommendation_id,
        profile_file_id=profile.profile_file_id,
        program_file_id=recommendation_file.file_id,
        plan=payload.plan,
        planner_response_id=payload.previous_response_id,
    )
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error") or "Failed to save application plan")

    return {
        "success": True,
        "application_id": result["application_id"],
        "previous_response_id": payload.previous_response_id,
    }

@router.post("/get_application_state")
async def get_application_state(
    payload: schemas.ApplicationStateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _data_result(applications.get_application_state(db, payload.application_id, user.id))

@router.post("/update_application_task")
async def update_application_task(
    payload: schemas.UpdateApplicationTaskRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _data_result(applications.update_application_task(db, payload.task_id, payload.updates, user.id))

@router.post("/create_application_task")
async def create_application_task(
    payload: schemas.CreateApplicationTaskRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _data_result(applications.create_application_task(
        db,
        payload.application_id,
        payload.title,
        description=payload.description,
        due_date=payload.due_date,
        sort_order=payload.sort_order,
        user_id=user.id,
    ))

@router.post("/delete_application_task")
async def delete_application_task(
    payload: schemas.DeleteApplicationTaskRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _data_result(applications.delete_application_task(db, payload.task_id, user.id))

@router.post("/update_application_timeline")
async def update_application_timeline(
    payload: schemas.UpdateApplicationTimelineRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _data_result(applications.update_application_timeline(db, payload.application_id, payload.timeline, user.id))

@router.get("/list_user_applications")
async def list_user_applications(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return applications.list_user_applications(db, user.id)

# ============================================
# PATHWAYS
# ============================================

@router.post("/create_pathway")
async def create_pathway(
    payload: schemas.PathwayCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    print(f"[ENDPOINT] POST /api/functions/create_pathway for {user.id}: {payload.title}")
    try:
        pathway = crud.create_pathway(db, user.id, payload.model_dump())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create pathway: {str(e)}")
    return {"success": True, "pathway": crud.pathway_to_dict(pathway)}

@router.get("/list_user_pathways")
async def list_user_pathways(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    pathways = crud.get_user_pathways(db, user.id)
    return {"success": True, "pathways": [crud.pathway_to_dict(p) for p in pathways]}

# ============================================
# RECOMMENDATIONS
# ============================================

@router.post("/create_recommendation")
async def create_recommendation(
    payload: schemas.CreateRecommendationRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """
    Save a researched programme as a recommendation, then mirror it into the
    user's vector store. A failed sync still keeps the recommendation (207).
    """
    print(f"[ENDPOINT] POST /api/functions/create_recommendation for {user.id}: {payload.program.name}")

    profile = crud.get_profile(db, user.id)
    if profile is None:
        raise HTTPException(status_code=500, detail="Unable to retrieve user profile")
    if not profile.vector_store_id:
        raise HTTPException(status_code=400, detail="Vector store not configured for user")

    try:
        recommendation = crud.store_recommendation(db, user.id, payload.program.model_dump())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to store recommendation: {str(e)}")

    body = {
        "success": True,
        "recommendation_id": recommendation.id,
        "program_id": recommendation.program_id,
    }
    try:
        if client is None:
            raise ValueError("OPENAI_API_KEY not set")
        await vector_store.sync_recommendation(client, db, user.id, recommendation, profile.vector_store_id)
    except Exception as e:
        db.rollback()
        print(f"[ERROR] Vector store sync failed for {recommendation.id}: {str(e)}")
        body["warning"] = f"Recommendation saved but vector store sync failed: {str(e)}"
        return JSONResponse(status_code=207, content=body)
    return body

@router.get("/get_recommendation_by_program")
async def get_recommendation_by_program(
    name: Optional[str] = None,
    institution: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Look up existing recommendations by programme name or institution."""
    if not name and not institution:
        raise HTTPException(status_code=400, detail="Missing name or institution")

    matches = crud.search_recommendations(db, user.id, name=name, institution=institution)
    if not matches:
        raise HTTPException(status_code=404, detail="No recommendation found for the given program")
    return {"success": True, "recommendations": [crud.recommendation_to_dict(r) for r in matches]}

@router.post("/update_recommendation")
async def update_recommendation(
    payload: schemas.UpdateRecommendationRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not payload.recommendation_id:
        raise HTTPException(status_code=400, detail="Missing recommendation_id")
    recommendation = crud.get_recommendation(db, payload.recommendation_id, user.id)
    if recommendation is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")

    try:
        updated = crud.update_recommendation(
            db,
            recommendation,
            program_updates=payload.program,
            scholarships=[s.model_dump() for s in payload.scholarships] if payload.scholarships is not None else None,
            recommendation_updates=payload.recommendation,
            files=payload.files,
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "recommendation": crud.recommendation_to_dict(updated)}
