"""
Account endpoints: a thin proxy over Supabase auth plus guest-to-account conversion.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

import auth
import crud
import schemas
import vector_store
from auth import CurrentUser, get_current_user, get_optional_user
from database import get_db
from openai_client import get_optional_openai_client

router = APIRouter(prefix="/api/auth", tags=["auth"])

DEFAULT_MATCH_RATIONALE = {"careerAlignment": 70, "budgetFit": 70, "locationMatch": 70, "academicFit": 70}

def _auth_error(e: auth.AuthServiceError) -> HTTPException:
    print(f"[ERROR] Auth service: {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.message)

@router.post("/signup")
async def signup(payload: schemas.SignupRequest):
    print(f"[ENDPOINT] POST /api/auth/signup: {payload.email}")
    try:
        data = await auth.sign_up(
            payload.email,
            payload.password,
            {"first_name": payload.first_name, "last_name": payload.last_name},
        )
    except auth.AuthServiceError as e:
        raise _auth_error(e)
    return {
        "user": data.get("user") or data,
        "message": "Signup successful. Please check your email for verification.",
    }

@router.post("/login")
async def login(payload: schemas.LoginRequest):
    print(f"[ENDPOINT] POST /api/auth/login: {payload.email}")
    try:
        session = await auth.sign_in(payload.email, payload.password)
    except auth.AuthServiceError as e:
        raise _auth_error(e)
    return {"user": session.get("user"), "session": session}

@router.post("/logout")
async def logout(user: CurrentUser = Depends(get_current_user)):
    try:
        await auth.sign_out(user.access_token)
    except auth.AuthServiceError as e:
        raise _auth_error(e)
    return {"success": True}

@router.post("/reset-password")
async def reset_password(payload: schemas.ResetPasswordRequest):
    try:
        await auth.send_password_reset(payload.email)
    except auth.AuthServiceError as e:
        raise _auth_error(e)
    return {"success": True, "message": "Password reset email sent"}

@router.get("/session")
async def session(user: Optional[CurrentUser] = Depends(get_optional_user)):
    """Current auth user, or {"user": null} for guests."""
    if user is None:
        return {"user": None}
    try:
        return {"user": await auth.get_auth_user(user.access_token)}
    except auth.AuthServiceError as e:
        print(f"[LOGIC] Session user fetch failed: {e.message}")
        return {"user": None}

def guest_pathway_row(pathway: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": pathway.get("title"),
        "qualification_type": pathway.get("qualification_type"),
        "field_of_study": pathway.get("field_of_study"),
        "subfields": pathway.get("subfields") or [],
        "target_regions": pathway.get("target_regions") or [],
        "budget_range_usd": pathway.get("budget_range_usd") or {"min": 0, "max": 0},
        "duration_months": pathway.get("duration_months") or {"min": 0, "max": 0},
        "alignment_rationale": pathway.get("alignment_rationale") or "",
        "alternatives": pathway.get("alternatives") or [],
        "query_string": pathway.get("query_string"),
    }

def guest_program_row(program: Dict[str, Any]) -> Dict[str, Any]:
    """Program from the guest session (camelCase) as a store_recommendation payload."""
    rationale = program.get("matchRationale")
    score = program.get("matchScore")
    return {
        "name": program.get("name"),
        "institution": program.get("institution"),
        "description": program.get("description"),
        "location": program.get("location"),
        "degree_type": program.get("degreeType"),
        "field_of_study": program.get("fieldOfStudy"),
        "cost_per_year": program.get("costPerYear") if isinstance(program.get("costPerYear"), (int, float)) else None,
        "duration": program.get("duration") if isinstance(program.get("duration"), (int, float)) else None,
        "start_date": program.get("startDate") or "",
        "application_deadline": program.get("applicationDeadline") or "",
        "page_link": program.get("pageLink") or "",
        "page_links": program.get("pageLinks") or [],
        "match_score": score if isinstance(score, (int, float)) else 70,
        "match_rationale": rationale if isinstance(rationale, dict) else DEFAULT_MATCH_RATIONALE,
        "is_favorite": program.get("isFavorite") is True,
        "requirements": [r for r in program.get("requirements") or [] if isinstance(r, str)],
        "highlights": [h for h in program.get("highlights") or [] if isinstance(h, str)],
        "scholarships": program.get("scholarships") or [],
    }

@router.post("/convert-guest")
async def convert_guest(
    payload: schemas.GuestConversionRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """
    Move a guest session into the new account: profile, pathways and programs.

    Programs are stored per pathway and a failing pathway does not stop the
    others. A failed vector store sync still counts as a conversion (207).
    """
    print(f"[ENDPOINT] POST /api/auth/convert-guest for {payload.user_id}")
    if not payload.user_id:
        raise HTTPException(status_code=400, detail="Invalid userId provided")
    if payload.user_id != user.id:
        raise HTTPException(status_code=403, detail="Cannot convert a guest session for another user")

    profile_data = payload.profile_data.model_dump(exclude_none=True)
    profile_data.pop("email", None)
    vector_store_id = profile_data.get("vector_store_id")
    if not vector_store_id:
        print(f"[LOGIC] Guest profile has no vector store ID for {user.id}, programs will not be stored")

    try:
        crud.upsert_profile(db, user.id, crud.profile_columns(profile_data))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to save profile data: {str(e)}")

    # Guest pathway ID -> new pathway ID
    pathway_ids: Dict[str, str] = {}
    if payload.pathways:
        try:
            rows = crud.create_education_pathways(db, user.id, [guest_pathway_row(p) for p in payload.pathways])
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to save pathway data: {str(e)}")
        for guest, row in zip(payload.pathways, rows):
            if guest.get("id"):
                pathway_ids[guest["id"]] = row.id
            else:
                print(f"[LOGIC] Guest pathway '{row.title}' has no ID, its programs cannot be mapped")

    saved_ids: List[str] = []
    if vector_store_id:
        for guest_id, programs in payload.programs_by_pathway.items():
            pathway_id = pathway_ids.get(guest_id)
            if not pathway_id or not programs:
                continue
            result = crud.store_programs_batch(db, user.id, pathway_id, [guest_program_row(p) for p in programs])
            if result["rejected"]:
                print(f"[ERROR] {len(result['rejected'])} programs rejected for pathway {pathway_id}")
            saved_ids.extend(result["saved_ids"])

    if vector_store_id and saved_ids:
        recommendations = [crud.get_recommendation(db, rid, user.id) for rid in saved_ids]
        if client is None:
            sync = {"success": False, "errors": [{"error": "OPENAI_API_KEY not set"}]}
        else:
            sync = await vector_store.sync_recommendations(
                client, db, user.id, [r for r in recommendations if r is not None], vector_store_id,
            )
        if not sync["success"]:
            return JSONResponse(status_code=207, content={
                "message": "Guest conversion successful, but failed to sync programs to vector store.",
                "syncError": sync["errors"],
            })

    print(f"[SUCCESS] Guest conversion completed for {user.id}")
    return {"message": "Guest conversion successful", "pathway_ids": pathway_ids, "saved_recommendation_ids": saved_ids}
