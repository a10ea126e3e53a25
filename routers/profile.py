from fastapi import APIRouter, Depends, HTTPException
from openai import AsyncOpenAI
from sqlalchemy.orm import Session
from typing import Optional

import auth
import crud
import schemas
import vector_store
from auth import CurrentUser, get_current_user
from database import get_db
from openai_client import get_optional_openai_client

router = APIRouter(prefix="/api/profile", tags=["profile"])

@router.post("/create")
async def create_profile(
    payload: schemas.ProfileCreateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create or overwrite the user's profile from the onboarding wizard.
    camelCase fields are mapped onto snake_case columns.
    """
    print(f"[ENDPOINT] POST /api/profile/create for {payload.user_id}")

    if not payload.user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    if payload.user_id != user.id:
        raise HTTPException(status_code=403, detail="Cannot create a profile for another user")
    if not payload.profile_data.vector_store_id:
        raise HTTPException(status_code=400, detail="Vector store is missing. Please restart the onboarding wizard.")

    data = payload.profile_data.model_dump()
    for key in ("language_proficiency", "education", "skills"):
        data[key] = data[key] or []
    for key in ("career_goals", "preferences", "documents"):
        data[key] = data[key] or {}

    try:
        crud.upsert_profile(db, user.id, crud.profile_columns(data))
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))

    print(f"[SUCCESS] Profile created for {user.id}")
    return {"success": True, "message": "Profile created successfully"}

@router.post("/update")
async def update_profile(
    payload: schemas.ProfileData,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update only the fields present in the request body."""
    print(f"[ENDPOINT] POST /api/profile/update for {user.id}")

    columns = crud.profile_columns(payload.model_dump(exclude_none=True))
    # vector_store_id is fixed at onboarding
    columns.pop("vector_store_id", None)
    if not columns:
        return {"message": "No fields to update"}

    try:
        profile = crud.update_profile(db, user.id, columns)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Failed to update profile: {str(e)}")
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")

    return {"success": True, "profile": crud.format_profile(profile)}

@router.get("/{user_id}")
async def get_profile(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")

    profile = crud.get_profile(db, user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return crud.format_profile(profile)

@router.delete("/delete")
async def delete_profile(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: Optional[AsyncOpenAI] = Depends(get_optional_openai_client),
):
    """
    Delete the user's recommendations and profile, then clean up their vector
    store and auth account. The cleanup steps are best-effort.
    """
    print(f"[ENDPOINT] DELETE /api/profile/delete for {user.id}")

    if crud.get_profile(db, user.id) is None:
        return {"success": True, "message": "No profile found to delete"}

    try:
        vector_store_id = crud.delete_profile(db, user.id)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Failed to delete profile: {str(e)}")

    if vector_store_id and client is not None:
        cleanup = await vector_store.cleanup_store(client, vector_store_id)
        if not cleanup["success"]:
            print(f"[ERROR] Vector store cleanup incomplete for {vector_store_id}: {cleanup['failed_files']}")
    elif vector_store_id:
        print("[LOGIC] OPENAI_API_KEY not set, skipping vector store cleanup")

    auth_deleted = False
    try:
        auth_deleted = await auth.delete_auth_user(user.id)
    except auth.AuthServiceError as e:
        print(f"[ERROR] Failed to delete auth user {user.id}: {e.message}")

    message = "Profile deleted" if auth_deleted else "Profile deleted; auth account was not removed"
    return {"success": True, "message": message, "auth_user_deleted": auth_deleted}
